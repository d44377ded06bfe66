"""
Aura avatars — premium derivative sizes.

Each derivative is a centre-crop "cover" resize of the generated image, so
the output always fills the target box exactly.
"""

from __future__ import annotations

import logging
from io import BytesIO
from typing import Dict, Tuple

import httpx
from PIL import Image, ImageOps

from .media import ImageRef, MediaStore

logger = logging.getLogger(__name__)

DERIVATIVE_SIZES: Dict[str, Tuple[int, int]] = {
    "profile": (400, 400),
    "story": (1080, 1920),
    "post": (1080, 1080),
    "hd": (2048, 2048),
}


def resize_cover(data: bytes, width: int, height: int) -> bytes:
    """Crop-to-fill ``data`` into ``width``×``height`` and return PNG bytes."""
    with Image.open(BytesIO(data)) as im:
        if im.mode not in ("RGB", "RGBA"):
            im = im.convert("RGBA")
        out = ImageOps.fit(im, (width, height), method=Image.LANCZOS, centering=(0.5, 0.5))
    buf = BytesIO()
    out.save(buf, format="PNG")
    return buf.getvalue()


class DerivativeFanout:
    def __init__(self, media: MediaStore, client: httpx.AsyncClient):
        self.media = media
        self.client = client

    async def produce(self, image: ImageRef) -> Dict[str, str]:
        """
        Resize ``image`` into every derivative size and persist each one.

        A size that fails is left out of the result; if the source image
        cannot be loaded at all, the result is empty.
        """
        try:
            source = await self.media.load(image, self.client)
        except Exception as exc:
            logger.warning("Derivatives skipped, source image unavailable: %s", exc)
            return {}

        urls: Dict[str, str] = {}
        for key, (w, h) in DERIVATIVE_SIZES.items():
            try:
                urls[key] = self.media.save(resize_cover(source, w, h))
            except Exception as exc:
                logger.warning("Derivative %s (%dx%d) failed: %s", key, w, h, exc)
        return urls
