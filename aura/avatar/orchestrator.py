"""
Aura avatars — generation orchestrator.

Walks the configured provider chain for one request:

  - photo requests   → image-conditioned adapters only; no placeholder
  - text requests    → optional prompt enhancement, text adapters in priority
                       order, then the deterministic placeholder

Adapters run one at a time.  Each call is bounded by a timeout, and a
failure only advances the chain; it is logged, never surfaced.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from ..errors import GenerationUnavailable
from .audit import audit_event
from .prompts import VARIATION_STYLES, build_photo_prompt, build_prompt, build_variation_prompt
from .providers import AdapterErrorKind, AdapterResult, ImageProvider, ProviderSet
from .providers.base import ImageRef
from .schemas import AvatarRequest

logger = logging.getLogger(__name__)


@dataclass
class GenerationResult:
    image: ImageRef
    provider: str
    prompt: str
    negative_prompt: str
    variations: List[Tuple[str, ImageRef]] = field(default_factory=list)
    is_placeholder: bool = False
    attempts: List[str] = field(default_factory=list)


class GenerationOrchestrator:
    def __init__(
        self,
        providers: ProviderSet,
        *,
        timeout_s: float = 60.0,
        enhance_timeout_s: float = 15.0,
        variation_count: int = 4,
    ):
        self.providers = providers
        self.timeout_s = timeout_s
        self.enhance_timeout_s = enhance_timeout_s
        self.variation_count = variation_count

    # ------------------------------------------------------------------
    # Single adapter call
    # ------------------------------------------------------------------

    async def _attempt(
        self,
        provider: ImageProvider,
        prompt: str,
        negative_prompt: str,
        size_hint: int,
        *,
        source_image_url: Optional[str] = None,
        seed: Optional[int] = None,
    ) -> AdapterResult:
        try:
            return await asyncio.wait_for(
                provider.generate(
                    prompt,
                    negative_prompt,
                    size_hint,
                    source_image_url=source_image_url,
                    seed=seed,
                ),
                timeout=self.timeout_s,
            )
        except asyncio.TimeoutError:
            return AdapterResult.failure(AdapterErrorKind.NETWORK, provider.name, f"timed out after {self.timeout_s}s")
        except Exception as exc:  # adapter bug: treat as unavailable, keep the chain going
            logger.exception("Provider %s raised unexpectedly", provider.name)
            return AdapterResult.failure(AdapterErrorKind.UNAVAILABLE, provider.name, str(exc))

    async def _run_chain(
        self,
        chain: List[ImageProvider],
        prompt: str,
        negative_prompt: str,
        size_hint: int,
        attempts: List[str],
        *,
        source_image_url: Optional[str] = None,
        seed: Optional[int] = None,
    ) -> Optional[Tuple[ImageProvider, ImageRef]]:
        for provider in chain:
            if not provider.available():
                attempts.append(f"{provider.name}:{AdapterErrorKind.UNAVAILABLE.value}")
                continue
            result = await self._attempt(
                provider,
                prompt,
                negative_prompt,
                size_hint,
                source_image_url=source_image_url,
                seed=seed,
            )
            if result.ok:
                attempts.append(f"{provider.name}:ok")
                return provider, result.image
            err = result.error
            kind = err.kind.value if err else AdapterErrorKind.EMPTY_RESULT.value
            attempts.append(f"{provider.name}:{kind}")
            logger.warning(
                "Provider %s failed (%s): %s; trying next",
                provider.name,
                kind,
                err.message if err else "no image",
            )
        return None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def enhance(self, prompt: str) -> str:
        """Best-effort prompt rewrite by the first adapter that offers it."""
        enhancer = self.providers.enhancer
        if enhancer is None:
            return prompt
        try:
            return await asyncio.wait_for(enhancer.enhance(prompt), timeout=self.enhance_timeout_s)
        except Exception as exc:
            logger.warning("Prompt enhancement by %s failed: %s", enhancer.name, exc)
            return prompt

    def _photo_chain(self) -> List[ImageProvider]:
        return [p for p in self.providers.photo_chain if p.supports_image_input and p.available()]

    async def run(
        self,
        req: AvatarRequest,
        *,
        source_image_url: Optional[str] = None,
        variations: bool = False,
    ) -> GenerationResult:
        """
        Produce one image for ``req``.

        ``source_image_url`` is the vendor-reachable form of
        ``req.uploaded_image_url``; it defaults to the request value.
        """
        attempts: List[str] = []
        seed = req.trait_seed()

        if req.is_photo_request:
            source = source_image_url or req.uploaded_image_url
            chain = self._photo_chain()
            if not chain:
                audit_event("photo_unavailable", reason="no_provider")
                raise GenerationUnavailable()

            prompt, negative = build_photo_prompt(req)
            hit = await self._run_chain(
                chain, prompt, negative, req.size_pixels, attempts,
                source_image_url=source, seed=seed,
            )
            if hit is None:
                audit_event("photo_unavailable", reason="all_failed", attempts=attempts)
                raise GenerationUnavailable()
            provider, image = hit

            result = GenerationResult(
                image=image,
                provider=provider.name,
                prompt=prompt,
                negative_prompt=negative,
                attempts=attempts,
            )
            if variations:
                result.variations = await self.generate_variations(source)
            return result

        prompt, negative = build_prompt(req)
        prompt = await self.enhance(prompt)

        hit = await self._run_chain(
            self.providers.text_chain, prompt, negative, req.size_pixels, attempts, seed=seed,
        )
        if hit is not None:
            provider, image = hit
            return GenerationResult(
                image=image,
                provider=provider.name,
                prompt=prompt,
                negative_prompt=negative,
                attempts=attempts,
            )

        logger.warning("All text providers failed (%s); using placeholder", ", ".join(attempts) or "none configured")
        placeholder = self.providers.placeholder
        fallback = await self._attempt(placeholder, prompt, negative, req.size_pixels, seed=seed)
        if not fallback.ok:
            # The placeholder renders locally; this only happens on a broken Pillow install.
            raise RuntimeError(f"Placeholder generation failed: {fallback.error}")
        attempts.append(f"{placeholder.name}:ok")
        audit_event("placeholder_fallback", seed=seed, attempts=attempts)
        return GenerationResult(
            image=fallback.image,
            provider=placeholder.name,
            prompt=prompt,
            negative_prompt=negative,
            is_placeholder=True,
            attempts=attempts,
        )

    async def generate_variations(self, source_image_url: str) -> List[Tuple[str, ImageRef]]:
        """Restyle a photo in several styles concurrently; failed styles are dropped."""
        chain = self._photo_chain()
        if not chain or self.variation_count <= 0:
            return []

        async def _one(style: str, phrase: str) -> Optional[Tuple[str, ImageRef]]:
            prompt, negative = build_variation_prompt(phrase)
            hit = await self._run_chain(chain, prompt, negative, 1024, [], source_image_url=source_image_url)
            if hit is None:
                logger.warning("Variation '%s' failed on every provider", style)
                return None
            return style, hit[1]

        styles = VARIATION_STYLES[: self.variation_count]
        results = await asyncio.gather(*(_one(name, phrase) for name, phrase in styles))
        return [r for r in results if r is not None]

    async def remove_background(self, source_image_url: str) -> ImageRef:
        """
        Cut the subject out of a photo with the first capable adapter.

        Raises:
            GenerationUnavailable: no adapter offers it, or the call failed
        """
        remover = self.providers.background_remover
        if remover is None:
            audit_event("remove_background_unavailable", reason="no_provider")
            raise GenerationUnavailable("Background removal is temporarily unavailable.")
        try:
            result = await asyncio.wait_for(remover.remove_background(source_image_url), timeout=self.timeout_s)
        except asyncio.TimeoutError:
            result = AdapterResult.failure(AdapterErrorKind.NETWORK, remover.name, f"timed out after {self.timeout_s}s")
        if not result.ok:
            logger.warning("Background removal by %s failed: %s", remover.name, result.error)
            audit_event("remove_background_unavailable", reason="failed", provider=remover.name)
            raise GenerationUnavailable("Background removal is temporarily unavailable.")
        return result.image
