"""
Deterministic placeholder generator.

Produces a labelled PNG locally with Pillow so the text path always has a
last resort.  The same seed always yields the same image.
"""

from __future__ import annotations

import hashlib
import io
import random
from typing import Optional

from PIL import Image, ImageDraw

from .base import ImageProvider, ImageRef

# Generating a full 2048px canvas for a placeholder is wasted work
MAX_PLACEHOLDER_SIZE = 1024


def render_placeholder(seed: int, size: int = 512) -> bytes:
    """Return PNG bytes for ``seed``."""
    size = max(64, min(size, MAX_PLACEHOLDER_SIZE))
    rng = random.Random(seed)
    top = tuple(rng.randint(40, 200) for _ in range(3))
    bottom = tuple(min(255, max(0, c + rng.randint(-40, 80))) for c in top)

    img = Image.new("RGB", (size, size), top)
    d = ImageDraw.Draw(img)
    # vertical gradient
    for y in range(size):
        t = y / max(size - 1, 1)
        color = tuple(int(a + (b - a) * t) for a, b in zip(top, bottom))
        d.line([(0, y), (size, y)], fill=color)

    s = size / 512
    white = (255, 255, 255)
    d.ellipse([156 * s, 100 * s, 356 * s, 300 * s], outline=white, width=max(1, int(2 * s)))  # face
    d.ellipse([200 * s, 170 * s, 240 * s, 210 * s], fill=white)  # left eye
    d.ellipse([272 * s, 170 * s, 312 * s, 210 * s], fill=white)  # right eye
    d.arc([210 * s, 230 * s, 302 * s, 290 * s], start=0, end=180, fill=white, width=max(1, int(2 * s)))
    d.text((20, 20), f"Avatar Placeholder\nseed={seed}", fill=(240, 240, 240))

    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


class PlaceholderProvider(ImageProvider):
    """Always available, never fails."""

    name = "placeholder"
    supports_text = True

    def available(self) -> bool:
        return True

    async def _generate(
        self,
        prompt: str,
        negative_prompt: str,
        size_hint: int,
        *,
        source_image_url: Optional[str] = None,
        seed: Optional[int] = None,
    ) -> Optional[ImageRef]:
        if seed is None:
            seed = int(hashlib.sha256(prompt.encode("utf-8")).hexdigest()[:8], 16) & 0x7FFFFFFF
        return render_placeholder(seed, size_hint)
