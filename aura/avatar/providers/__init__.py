"""
Image-generation vendor adapters.

``build_provider_set`` constructs the adapters once at process start from
configuration; nothing here creates clients lazily at import time.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

import httpx

from ...config import Settings
from .base import AdapterError, AdapterErrorKind, AdapterResult, ImageProvider, classify_status
from .gemini import GeminiProvider
from .placeholder import PlaceholderProvider, render_placeholder
from .replicate import ReplicateProvider
from .stability import StabilityProvider

logger = logging.getLogger(__name__)

__all__ = [
    "AdapterError",
    "AdapterErrorKind",
    "AdapterResult",
    "GeminiProvider",
    "ImageProvider",
    "PlaceholderProvider",
    "ProviderSet",
    "ReplicateProvider",
    "StabilityProvider",
    "build_provider_set",
    "classify_status",
    "render_placeholder",
]


@dataclass
class ProviderSet:
    """Adapters in priority order, per request kind."""

    text_chain: List[ImageProvider] = field(default_factory=list)
    photo_chain: List[ImageProvider] = field(default_factory=list)
    placeholder: ImageProvider = field(default_factory=PlaceholderProvider)

    @property
    def enhancer(self) -> Optional[ImageProvider]:
        """First available adapter that can rewrite prompts."""
        for p in self.text_chain:
            if p.supports_enhance and p.available():
                return p
        return None

    @property
    def background_remover(self) -> Optional[ImageProvider]:
        """First available photo adapter that can cut out the subject."""
        for p in self.photo_chain:
            if p.supports_background_removal and p.available():
                return p
        return None

    def describe(self) -> Dict[str, List[str]]:
        return {
            "text": [p.name for p in self.text_chain if p.available()] + [self.placeholder.name],
            "photo": [p.name for p in self.photo_chain if p.available()],
        }


def _factories(settings: Settings, client: httpx.AsyncClient) -> Dict[str, Callable[[], ImageProvider]]:
    return {
        "gemini": lambda: GeminiProvider(
            client,
            api_key=settings.GEMINI_API_KEY,
            base_url=settings.GEMINI_BASE_URL,
            image_model=settings.GEMINI_IMAGE_MODEL,
            text_model=settings.GEMINI_TEXT_MODEL,
            enhance_timeout_s=settings.ENHANCE_TIMEOUT_S,
        ),
        "stability": lambda: StabilityProvider(
            client,
            api_key=settings.STABILITY_API_KEY,
            base_url=settings.STABILITY_BASE_URL,
        ),
        "replicate": lambda: ReplicateProvider(
            client,
            api_token=settings.REPLICATE_API_TOKEN,
            model_version=settings.REPLICATE_MODEL_VERSION,
            rembg_version=settings.REPLICATE_REMBG_VERSION,
            base_url=settings.REPLICATE_BASE_URL,
            poll_interval_s=settings.REPLICATE_POLL_INTERVAL_S,
        ),
    }


def build_provider_set(settings: Settings, client: httpx.AsyncClient) -> ProviderSet:
    """Instantiate the configured adapters, in the configured order."""
    factories = _factories(settings, client)

    def _chain(names: List[str], kind: str) -> List[ImageProvider]:
        chain: List[ImageProvider] = []
        for name in names:
            factory = factories.get(name)
            if factory is None:
                logger.warning("Unknown %s provider '%s' in configuration; skipping", kind, name)
                continue
            chain.append(factory())
        return chain

    text_chain = [p for p in _chain(settings.text_providers, "text") if p.supports_text]
    photo_chain = [p for p in _chain(settings.photo_providers, "photo") if p.supports_image_input]
    ps = ProviderSet(text_chain=text_chain, photo_chain=photo_chain)
    logger.info("Providers configured: %s", ps.describe())
    return ps
