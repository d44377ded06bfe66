"""
Replicate adapter: SDXL img2img for photo transforms, rembg for cut-outs.

Creates a prediction and polls it until it settles.  The poll loop has no
deadline of its own; the orchestrator bounds every adapter call.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Optional

import httpx

from .base import AdapterError, AdapterErrorKind, AdapterResult, ImageProvider, ImageRef

logger = logging.getLogger(__name__)

_TERMINAL = {"succeeded", "failed", "canceled"}


class ReplicateProvider(ImageProvider):
    name = "replicate"
    supports_text = False
    supports_image_input = True
    supports_background_removal = True

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        api_token: str,
        model_version: str,
        rembg_version: str = "",
        base_url: str = "https://api.replicate.com/v1",
        poll_interval_s: float = 1.5,
    ):
        self.client = client
        self.api_token = api_token
        self.model_version = model_version
        self.rembg_version = rembg_version
        self.base_url = base_url.rstrip("/")
        self.poll_interval_s = poll_interval_s

    def available(self) -> bool:
        return bool(self.api_token and self.model_version)

    def _headers(self) -> dict:
        return {
            "Authorization": f"Bearer {self.api_token}",
            "Content-Type": "application/json",
        }

    async def _predict(self, version: str, inputs: Dict[str, Any]) -> str:
        """Run one prediction to completion and return its first output URL."""
        r = await self.client.post(
            f"{self.base_url}/predictions",
            headers=self._headers(),
            json={"version": version, "input": inputs},
        )
        r.raise_for_status()
        prediction = r.json()
        prediction_id = prediction.get("id")
        status = prediction.get("status")

        while status not in _TERMINAL:
            await asyncio.sleep(self.poll_interval_s)
            poll = await self.client.get(
                f"{self.base_url}/predictions/{prediction_id}",
                headers=self._headers(),
            )
            poll.raise_for_status()
            prediction = poll.json()
            status = prediction.get("status")

        if status != "succeeded":
            raise AdapterError(
                AdapterErrorKind.EMPTY_RESULT,
                self.name,
                f"prediction {prediction_id} finished with status {status}: {prediction.get('error')}",
            )

        output = prediction.get("output")
        if isinstance(output, list):
            output = output[0] if output else None
        if not output:
            raise AdapterError(AdapterErrorKind.EMPTY_RESULT, self.name, "prediction has no output")
        return str(output)

    async def _generate(
        self,
        prompt: str,
        negative_prompt: str,
        size_hint: int,
        *,
        source_image_url: Optional[str] = None,
        seed: Optional[int] = None,
    ) -> Optional[ImageRef]:
        if not source_image_url:
            raise AdapterError(AdapterErrorKind.UNAVAILABLE, self.name, "source image required")

        inputs = {
            "image": source_image_url,
            "prompt": prompt,
            "negative_prompt": negative_prompt,
            "num_outputs": 1,
            "guidance_scale": 7.5,
            "num_inference_steps": 25,
            "width": min(size_hint, 1024),
            "height": min(size_hint, 1024),
        }
        if seed is not None:
            inputs["seed"] = seed
        return await self._predict(self.model_version, inputs)

    async def remove_background(self, image_url: str) -> AdapterResult:
        if not (self.api_token and self.rembg_version):
            return AdapterResult.failure(AdapterErrorKind.UNAVAILABLE, self.name, "rembg not configured")
        return await self._capture(self._predict(self.rembg_version, {"image": image_url}))
