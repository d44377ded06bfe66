"""
Provider adapter contract.

Every adapter turns ``(prompt, negative_prompt, size_hint)`` into either an
image or a typed failure.  Ordinary vendor failures are returned, not raised,
so the orchestrator can walk its fallback chain without try/except noise.
"""

from __future__ import annotations

import base64
import binascii
import enum
import logging
from dataclasses import dataclass
from io import BytesIO
from typing import Awaitable, Optional, Union

import httpx
from PIL import Image

logger = logging.getLogger(__name__)

ImageRef = Union[str, bytes]


class AdapterErrorKind(str, enum.Enum):
    QUOTA = "quota"
    AUTH = "auth"
    NETWORK = "network"
    EMPTY_RESULT = "empty_result"
    UNAVAILABLE = "unavailable"


class AdapterError(Exception):
    """A classified vendor failure."""

    def __init__(self, kind: AdapterErrorKind, provider: str, message: str = ""):
        super().__init__(f"{provider}: {kind.value}: {message}")
        self.kind = kind
        self.provider = provider
        self.message = message


@dataclass
class AdapterResult:
    """Either ``image`` (URL, data URL or raw bytes) or ``error`` is set."""

    image: Optional[ImageRef] = None
    error: Optional[AdapterError] = None

    @property
    def ok(self) -> bool:
        return self.error is None and bool(self.image)

    @classmethod
    def failure(cls, kind: AdapterErrorKind, provider: str, message: str = "") -> "AdapterResult":
        return cls(error=AdapterError(kind, provider, message))


def classify_status(status_code: int) -> AdapterErrorKind:
    """Map a vendor HTTP status to an error kind."""
    if status_code in (401, 403):
        return AdapterErrorKind.AUTH
    if status_code in (402, 429):
        return AdapterErrorKind.QUOTA
    return AdapterErrorKind.NETWORK


def decode_image_payload(encoded: str, provider: str) -> bytes:
    """
    Decode a vendor's base64 image and check that it is a readable image.

    Raises:
        AdapterError: EMPTY_RESULT when the payload is not valid base64 or
            does not decode to an image
    """
    try:
        data = base64.b64decode(encoded, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise AdapterError(AdapterErrorKind.EMPTY_RESULT, provider, f"invalid base64 image: {exc}") from exc
    if not data:
        raise AdapterError(AdapterErrorKind.EMPTY_RESULT, provider, "empty image payload")
    try:
        Image.open(BytesIO(data)).verify()
    except Exception as exc:
        raise AdapterError(AdapterErrorKind.EMPTY_RESULT, provider, f"undecodable image: {exc}") from exc
    return data


class ImageProvider:
    """
    Base class for image-generation vendors.

    Subclasses implement ``available()`` (configuration check only, never a
    network call) and ``_generate()``, which may raise ``httpx`` errors or
    ``AdapterError``; ``generate()`` converts those into an ``AdapterResult``.
    """

    name = "base"
    supports_text = True
    supports_image_input = False
    supports_enhance = False
    supports_background_removal = False

    def available(self) -> bool:
        raise NotImplementedError

    async def _generate(
        self,
        prompt: str,
        negative_prompt: str,
        size_hint: int,
        *,
        source_image_url: Optional[str] = None,
        seed: Optional[int] = None,
    ) -> Optional[ImageRef]:
        raise NotImplementedError

    async def _capture(self, call: Awaitable[Optional[ImageRef]]) -> AdapterResult:
        """Await a vendor call and classify whatever goes wrong."""
        try:
            image = await call
        except AdapterError as exc:
            return AdapterResult(error=exc)
        except httpx.HTTPStatusError as exc:
            code = exc.response.status_code
            return AdapterResult.failure(classify_status(code), self.name, f"HTTP {code}")
        except httpx.TimeoutException:
            return AdapterResult.failure(AdapterErrorKind.NETWORK, self.name, "timeout")
        except httpx.HTTPError as exc:
            return AdapterResult.failure(AdapterErrorKind.NETWORK, self.name, str(exc) or type(exc).__name__)
        except (ValueError, KeyError, TypeError) as exc:
            # malformed vendor payload
            return AdapterResult.failure(AdapterErrorKind.EMPTY_RESULT, self.name, str(exc))
        if not image:
            return AdapterResult.failure(AdapterErrorKind.EMPTY_RESULT, self.name, "no image in response")
        return AdapterResult(image=image)

    async def generate(
        self,
        prompt: str,
        negative_prompt: str,
        size_hint: int,
        *,
        source_image_url: Optional[str] = None,
        seed: Optional[int] = None,
    ) -> AdapterResult:
        if not self.available():
            return AdapterResult.failure(AdapterErrorKind.UNAVAILABLE, self.name, "not configured")
        return await self._capture(
            self._generate(
                prompt,
                negative_prompt,
                size_hint,
                source_image_url=source_image_url,
                seed=seed,
            )
        )

    async def enhance(self, prompt: str) -> str:
        """Optional prompt rewrite; the default is the identity."""
        return prompt

    async def remove_background(self, image_url: str) -> AdapterResult:
        """Optional cut-out of the subject in ``image_url``."""
        return AdapterResult.failure(AdapterErrorKind.UNAVAILABLE, self.name, "background removal not supported")
