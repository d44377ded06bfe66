"""
Aura avatars — FastAPI router.

Generation, uploads and prompt helpers.  Typed ``AuraError`` exceptions
propagate to the app-level handler, which renders the error envelope.
"""

from __future__ import annotations

from typing import Dict, List

from fastapi import APIRouter, Depends, File, UploadFile

from ..auth import current_user_id
from ..config import Settings
from ..deps import get_avatar_service, get_orchestrator, get_settings_dep
from ..models import GenerateResponse, Variation
from .media import validate_image
from .orchestrator import GenerationOrchestrator
from .prompts import generate_hashtags
from .schemas import (
    AvatarRequest,
    BackgroundRemovalRequest,
    BackgroundRemovalResponse,
    EnhancePromptRequest,
    EnhancePromptResponse,
    HashtagRequest,
    HashtagResponse,
    UploadResponse,
    VariationRequest,
)
from .service import AvatarService

router = APIRouter(prefix="/api", tags=["avatars"])


# ------------------------------------------------------------------
# Generate
# ------------------------------------------------------------------


@router.post("/avatars/generate", response_model=GenerateResponse)
async def generate_avatar(
    req: AvatarRequest,
    user_id: str = Depends(current_user_id),
    service: AvatarService = Depends(get_avatar_service),
) -> GenerateResponse:
    """Generate one avatar for the authenticated user."""
    return await service.generate(user_id, req)


@router.post("/generate-variations")
async def generate_variations(
    body: VariationRequest,
    user_id: str = Depends(current_user_id),
    service: AvatarService = Depends(get_avatar_service),
) -> Dict[str, List[Variation]]:
    """Premium: restyle an uploaded photo in several styles."""
    return {"variations": await service.variations(user_id, body.image_url)}


@router.post("/remove-background", response_model=BackgroundRemovalResponse)
async def remove_background(
    body: BackgroundRemovalRequest,
    user_id: str = Depends(current_user_id),
    service: AvatarService = Depends(get_avatar_service),
) -> BackgroundRemovalResponse:
    """Best-effort subject cut-out of an uploaded photo."""
    return BackgroundRemovalResponse(image_url=await service.remove_background(user_id, body.image_url))


# ------------------------------------------------------------------
# Prompt helpers
# ------------------------------------------------------------------


@router.post("/prompt/enhance", response_model=EnhancePromptResponse)
async def enhance_prompt(
    body: EnhancePromptRequest,
    _: str = Depends(current_user_id),
    orchestrator: GenerationOrchestrator = Depends(get_orchestrator),
) -> EnhancePromptResponse:
    return EnhancePromptResponse(enhanced_prompt=await orchestrator.enhance(body.prompt))


@router.post("/hashtags/generate", response_model=HashtagResponse)
def hashtags(body: HashtagRequest) -> HashtagResponse:
    return HashtagResponse(hashtags=generate_hashtags(body.art_style, body.gender, body.age))


# ------------------------------------------------------------------
# Upload
# ------------------------------------------------------------------


@router.post("/upload-image", response_model=UploadResponse)
async def upload_image(
    image: UploadFile = File(...),
    _: str = Depends(current_user_id),
    settings: Settings = Depends(get_settings_dep),
    service: AvatarService = Depends(get_avatar_service),
) -> UploadResponse:
    """Validate an uploaded photo, strip its metadata and store it."""
    data = await image.read()
    validate_image(data, image.content_type, settings.MAX_UPLOAD_MB * 1024 * 1024)
    return UploadResponse(image_url=service.store_upload(data))
