"""
Aura avatar backend — FastAPI application.

``create_app`` wires the store, media directory, vendor adapters and
services once and hangs them on ``app.state``; routers resolve them through
``aura.deps``.  Tests build their own app with temp paths and fake adapters.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Optional

import httpx
from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from . import ranking, social, users
from .auth import require_api_key
from .avatar.media import MediaStore
from .avatar.orchestrator import GenerationOrchestrator
from .avatar.providers import ProviderSet, build_provider_set
from .avatar.router import router as avatar_router
from .avatar.service import AvatarService
from .config import Settings, get_settings
from .credits import CreditLedger
from .errors import AuraError
from .storage import SQLiteStore

logger = logging.getLogger(__name__)


def _safe_err(message: str, code: str = "error") -> dict:
    return {"ok": False, "code": code, "message": message}


def create_app(
    settings: Optional[Settings] = None,
    providers: Optional[ProviderSet] = None,
    client: Optional[httpx.AsyncClient] = None,
) -> FastAPI:
    settings = settings or get_settings()
    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    client = client or httpx.AsyncClient(timeout=settings.PROVIDER_TIMEOUT_S)

    @asynccontextmanager
    async def lifespan(_: FastAPI):
        yield
        await client.aclose()

    app = FastAPI(title="Aura Avatar API", version=settings.SERVICE_VERSION, lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins or ["http://localhost:3000"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ----------------------------
    # Collaborators
    # ----------------------------

    store = SQLiteStore(settings.SQLITE_PATH)
    media = MediaStore(settings.MEDIA_DIR, settings.MEDIA_URL_PREFIX, settings.PUBLIC_BASE_URL)
    providers = providers or build_provider_set(settings, client)
    orchestrator = GenerationOrchestrator(
        providers,
        timeout_s=settings.PROVIDER_TIMEOUT_S,
        enhance_timeout_s=settings.ENHANCE_TIMEOUT_S,
        variation_count=settings.VARIATION_COUNT,
    )
    ledger = CreditLedger(
        store,
        free_max_size=settings.FREE_MAX_SIZE,
        referral_credits=settings.REFERRAL_CREDITS,
    )

    app.state.settings = settings
    app.state.store = store
    app.state.media = media
    app.state.providers = providers
    app.state.orchestrator = orchestrator
    app.state.ledger = ledger
    app.state.avatar_service = AvatarService(store, ledger, orchestrator, media, client)

    # StaticFiles validates the directory at mount time; MediaStore created it
    app.mount(media.url_prefix, StaticFiles(directory=str(media.root)), name="media")

    # ----------------------------
    # Error handling (prod-safe)
    # ----------------------------

    @app.exception_handler(AuraError)
    async def aura_error_handler(_: Request, exc: AuraError):
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(_: Request, exc: RequestValidationError):
        errors = exc.errors()
        first = errors[0] if errors else {}
        where = ".".join(str(p) for p in first.get("loc", ())[1:])
        message = f"{where}: {first.get('msg', 'invalid value')}" if where else "Invalid request."
        return JSONResponse(status_code=400, content=_safe_err(message, code="INVALID_REQUEST"))

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=500,
            content=_safe_err("Internal server error.", code="internal_error"),
        )

    # ----------------------------
    # Routes
    # ----------------------------

    @app.get("/health")
    async def health() -> JSONResponse:
        return JSONResponse(
            {
                "ok": True,
                "service": settings.SERVICE_NAME,
                "version": app.version,
                "providers": providers.describe(),
            }
        )

    guarded = [Depends(require_api_key)]
    app.include_router(avatar_router, dependencies=guarded)
    app.include_router(ranking.router, dependencies=guarded)
    app.include_router(social.router, dependencies=guarded)
    app.include_router(users.router, dependencies=guarded)

    return app


app = create_app()
