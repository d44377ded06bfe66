"""
Configuration module for the Aura avatar service.

Uses pydantic-settings for environment-based configuration with sensible defaults.
"""

from __future__ import annotations

import os
import pathlib
from functools import lru_cache
from typing import List

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


# Detect if we're running in a Docker container
_IS_DOCKER = pathlib.Path("/.dockerenv").exists() or os.getenv("DOCKER_CONTAINER", "").lower() == "true"

if _IS_DOCKER:
    _DEFAULT_DATA_DIR = pathlib.Path("/app/data")
else:
    # Local development: keep data next to the package
    _DEFAULT_DATA_DIR = pathlib.Path(__file__).resolve().parent.parent / "data"


def _parse_csv(value: str) -> List[str]:
    return [x.strip() for x in (value or "").split(",") if x.strip()]


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    All settings can be overridden via environment variables.
    Example: STABILITY_API_KEY=sk-...
    """

    model_config = SettingsConfigDict(env_prefix="", env_file=".env", extra="ignore")

    # Storage
    SQLITE_PATH: str = Field(
        default=str(_DEFAULT_DATA_DIR / "aura.db"),
        description="Path to SQLite database file",
    )
    MEDIA_DIR: str = Field(
        default=str(_DEFAULT_DATA_DIR / "media"),
        description="Directory where generated and uploaded images are written",
    )
    MEDIA_URL_PREFIX: str = Field(
        default="/media",
        description="URL path the media directory is served under",
    )
    PUBLIC_BASE_URL: str = Field(
        default="",
        description="Externally reachable base URL (vendors fetch uploaded photos from here)",
    )

    # Security / HTTP
    API_KEY: str = Field(default="", description="Optional shared API key (X-API-Key)")
    ADMIN_USER_IDS: str = Field(default="", description="Comma-separated user ids granted the admin role on sign-up")
    CORS_ORIGINS: str = Field(
        default="http://localhost:3000,http://localhost:5173,http://127.0.0.1:5173",
        description="Comma-separated list of allowed CORS origins",
    )
    LOG_LEVEL: str = Field(default="INFO")

    # Credit economy
    DEFAULT_CREDITS: int = Field(default=3, ge=0, description="Credits granted on sign-up")
    REFERRAL_CREDITS: int = Field(default=5, ge=0, description="Credits awarded to a referrer")
    FREE_MAX_SIZE: int = Field(default=512, description="Largest resolution free users may request")
    MAX_UPLOAD_MB: int = Field(default=10, description="Maximum upload file size in megabytes")

    # Vendors
    GEMINI_API_KEY: str = Field(default="")
    GEMINI_BASE_URL: str = Field(default="https://generativelanguage.googleapis.com/v1beta")
    GEMINI_IMAGE_MODEL: str = Field(default="imagen-4.0-generate-001")
    GEMINI_TEXT_MODEL: str = Field(default="gemini-2.5-flash")
    STABILITY_API_KEY: str = Field(default="")
    STABILITY_BASE_URL: str = Field(default="https://api.stability.ai")
    REPLICATE_API_TOKEN: str = Field(default="")
    REPLICATE_BASE_URL: str = Field(default="https://api.replicate.com/v1")
    REPLICATE_MODEL_VERSION: str = Field(
        default="39ed52f2a78e934b3ba6e2a89f5b1c712de7dfea535525255b1aa35c5565e08b",
        description="SDXL img2img version used for photo transforms",
    )
    REPLICATE_REMBG_VERSION: str = Field(
        default="fb8af171cfa1616ddcf1242c093f9c46bcada5ad4cf6f2fbe8b81b330ec5c003",
        description="rembg version used for background removal; empty disables it",
    )

    # Orchestration
    TEXT_PROVIDERS: str = Field(
        default="gemini,stability",
        description="Text-to-image providers in priority order (placeholder is always last)",
    )
    PHOTO_PROVIDERS: str = Field(
        default="replicate",
        description="Image-conditioned providers in priority order",
    )
    PROVIDER_TIMEOUT_S: float = Field(default=60.0, gt=0)
    ENHANCE_TIMEOUT_S: float = Field(default=15.0, gt=0)
    REPLICATE_POLL_INTERVAL_S: float = Field(default=1.5, gt=0)
    VARIATION_COUNT: int = Field(default=4, ge=0, le=6)

    # Service metadata
    SERVICE_NAME: str = Field(default="aura-avatar")
    SERVICE_VERSION: str = Field(default="1.0.0")

    @property
    def cors_origins(self) -> List[str]:
        return _parse_csv(self.CORS_ORIGINS)

    @property
    def admin_user_ids(self) -> List[str]:
        return _parse_csv(self.ADMIN_USER_IDS)

    @property
    def text_providers(self) -> List[str]:
        return [p.lower() for p in _parse_csv(self.TEXT_PROVIDERS)]

    @property
    def photo_providers(self) -> List[str]:
        return [p.lower() for p in _parse_csv(self.PHOTO_PROVIDERS)]


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Settings singleton, read once from the environment."""
    return Settings()
