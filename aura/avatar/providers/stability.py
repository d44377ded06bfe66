"""
Stability AI adapter (``v2beta/stable-image/generate/core``).
"""

from __future__ import annotations

from typing import Optional

import httpx

from .base import AdapterError, AdapterErrorKind, ImageProvider, ImageRef, decode_image_payload


class StabilityProvider(ImageProvider):
    name = "stability"
    supports_text = True

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        api_key: str,
        base_url: str = "https://api.stability.ai",
    ):
        self.client = client
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")

    def available(self) -> bool:
        return bool(self.api_key)

    async def _generate(
        self,
        prompt: str,
        negative_prompt: str,
        size_hint: int,
        *,
        source_image_url: Optional[str] = None,
        seed: Optional[int] = None,
    ) -> Optional[ImageRef]:
        data = {
            "prompt": prompt,
            "negative_prompt": negative_prompt,
            "aspect_ratio": "1:1",
            "output_format": "png",
        }
        if seed is not None:
            data["seed"] = str(seed)
        # The endpoint only accepts multipart/form-data; an empty file part forces it.
        r = await self.client.post(
            f"{self.base_url}/v2beta/stable-image/generate/core",
            headers={"Authorization": f"Bearer {self.api_key}", "Accept": "application/json"},
            data=data,
            files={"none": b""},
        )
        r.raise_for_status()
        body = r.json()
        encoded = body.get("image")
        if not encoded:
            raise AdapterError(AdapterErrorKind.EMPTY_RESULT, self.name, "no image in response")
        return decode_image_payload(encoded, self.name)
