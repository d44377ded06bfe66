"""
Google Gemini adapter.

Text-to-image through the Imagen ``:predict`` REST endpoint and best-effort
prompt enhancement through ``:generateContent``.
"""

from __future__ import annotations

import logging
from typing import Optional

import httpx

from .base import AdapterError, AdapterErrorKind, ImageProvider, ImageRef, decode_image_payload

logger = logging.getLogger(__name__)

_ENHANCE_INSTRUCTION = (
    "Rewrite the following avatar description as a single vivid, detailed "
    "image-generation prompt. Keep every requested trait, add lighting and "
    "composition detail, and reply with the prompt text only.\n\n"
)


class GeminiProvider(ImageProvider):
    name = "gemini"
    supports_text = True
    supports_enhance = True

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        api_key: str,
        base_url: str = "https://generativelanguage.googleapis.com/v1beta",
        image_model: str = "imagen-4.0-generate-001",
        text_model: str = "gemini-2.5-flash",
        enhance_timeout_s: float = 15.0,
    ):
        self.client = client
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.image_model = image_model
        self.text_model = text_model
        self.enhance_timeout_s = enhance_timeout_s

    def available(self) -> bool:
        return bool(self.api_key)

    def _headers(self) -> dict:
        return {"x-goog-api-key": self.api_key, "Content-Type": "application/json"}

    async def _generate(
        self,
        prompt: str,
        negative_prompt: str,
        size_hint: int,
        *,
        source_image_url: Optional[str] = None,
        seed: Optional[int] = None,
    ) -> Optional[ImageRef]:
        # Imagen has no negative prompt field; fold it into the prompt text
        text = f"{prompt} Avoid: {negative_prompt}." if negative_prompt else prompt
        payload = {
            "instances": [{"prompt": text}],
            "parameters": {"sampleCount": 1, "aspectRatio": "1:1"},
        }
        r = await self.client.post(
            f"{self.base_url}/models/{self.image_model}:predict",
            headers=self._headers(),
            json=payload,
        )
        r.raise_for_status()
        predictions = r.json().get("predictions") or []
        for item in predictions:
            encoded = item.get("bytesBase64Encoded")
            if encoded:
                return decode_image_payload(encoded, self.name)
        raise AdapterError(AdapterErrorKind.EMPTY_RESULT, self.name, "no image in predictions")

    async def enhance(self, prompt: str) -> str:
        """Ask Gemini for a richer prompt; any failure returns ``prompt`` unchanged."""
        if not self.available():
            return prompt
        payload = {"contents": [{"parts": [{"text": _ENHANCE_INSTRUCTION + prompt}]}]}
        try:
            r = await self.client.post(
                f"{self.base_url}/models/{self.text_model}:generateContent",
                headers=self._headers(),
                json=payload,
                timeout=self.enhance_timeout_s,
            )
            r.raise_for_status()
            data = r.json()
            text = data["candidates"][0]["content"]["parts"][0]["text"]
        except (httpx.HTTPError, ValueError, KeyError, IndexError, TypeError) as exc:
            logger.warning("Prompt enhancement failed, using original prompt: %s", exc)
            return prompt
        text = (text or "").strip()
        return text or prompt
