"""
Media storage: image bytes in, public URL out (and back).

Generated images, derivatives and uploads are written as PNG files under
``MEDIA_DIR`` and served under ``MEDIA_URL_PREFIX``.  Image references
flowing through the pipeline may be raw bytes, ``data:`` URLs, local media
URLs or remote http(s) URLs; this module normalizes between them.
"""

from __future__ import annotations

import base64
import binascii
import logging
import os
import uuid
from io import BytesIO
from pathlib import Path
from typing import Optional, Set, Union

import httpx
from PIL import Image

from ..errors import InvalidRequest

logger = logging.getLogger(__name__)

ImageRef = Union[str, bytes]

# Allowed MIME types for image uploads
ALLOWED_MIME: Set[str] = {"image/png", "image/jpeg", "image/webp"}


def decode_data_url(ref: str) -> bytes:
    """Decode a ``data:<mime>;base64,<payload>`` URL."""
    header, _, payload = ref.partition(",")
    if not header.startswith("data:") or ";base64" not in header:
        raise ValueError("not a base64 data URL")
    try:
        return base64.b64decode(payload, validate=True)
    except binascii.Error as exc:
        raise ValueError(f"invalid base64 payload: {exc}") from exc


def validate_image(data: bytes, content_type: Optional[str], max_bytes: int) -> None:
    """
    Reject uploads that are not decodable PNG/JPEG/WebP images.

    Raises:
        InvalidRequest: wrong type, empty, too large or undecodable
    """
    if content_type not in ALLOWED_MIME:
        raise InvalidRequest(
            f"Unsupported content type: {content_type}. Allowed: {', '.join(sorted(ALLOWED_MIME))}"
        )
    if not data:
        raise InvalidRequest("Empty upload")
    if len(data) > max_bytes:
        raise InvalidRequest(f"Upload too large. Maximum size: {max_bytes // (1024 * 1024)}MB")
    # Validate by decoding (do not trust MIME/extension alone)
    try:
        Image.open(BytesIO(data)).verify()
    except Exception as exc:
        raise InvalidRequest(f"Invalid image file: {exc}") from exc


def strip_exif(image_bytes: bytes) -> bytes:
    """Re-encode as PNG, which drops EXIF metadata."""
    im = Image.open(BytesIO(image_bytes))
    if im.mode not in ("RGBA", "RGB"):
        im = im.convert("RGBA")
    out = BytesIO()
    im.save(out, format="PNG", optimize=True)
    return out.getvalue()


class MediaStore:
    def __init__(self, root: str, url_prefix: str = "/media", public_base_url: str = ""):
        self.root = Path(root)
        self.url_prefix = "/" + url_prefix.strip("/")
        self.public_base_url = public_base_url.rstrip("/")
        self.root.mkdir(parents=True, exist_ok=True)

    # ------------------------------------------------------------------
    # Local files
    # ------------------------------------------------------------------

    def save(self, data: bytes, *, ext: str = "png") -> str:
        """Write ``data`` to a new file and return its media URL."""
        name = f"{uuid.uuid4().hex}.{ext}"
        path = self.root / name
        tmp = path.with_suffix(path.suffix + ".tmp")
        tmp.write_bytes(data)
        os.replace(tmp, path)
        return f"{self.url_prefix}/{name}"

    def delete(self, ref: str) -> bool:
        """Remove the local file behind a media URL; other references are left alone."""
        if not self.is_local(ref):
            return False
        path = self._local_path(ref)
        if not path.is_file():
            return False
        path.unlink(missing_ok=True)
        return True

    def is_local(self, ref: str) -> bool:
        return ref.startswith(self.url_prefix + "/")

    def _local_path(self, ref: str) -> Path:
        # Only the basename is honoured so a crafted URL cannot escape the media root
        name = os.path.basename(ref[len(self.url_prefix) + 1:])
        return self.root / name

    # ------------------------------------------------------------------
    # Normalization
    # ------------------------------------------------------------------

    async def persist(self, ref: ImageRef, client: httpx.AsyncClient) -> str:
        """
        Make ``ref`` durable and return a media URL for it.

        Remote vendor URLs are short-lived, so they are downloaded; when the
        download fails the remote URL is kept as-is.
        """
        if isinstance(ref, (bytes, bytearray)):
            return self.save(bytes(ref))
        if ref.startswith("data:"):
            return self.save(decode_data_url(ref))
        if self.is_local(ref):
            return ref
        try:
            r = await client.get(ref)
            r.raise_for_status()
            return self.save(r.content)
        except httpx.HTTPError as exc:
            logger.warning("Could not download %s, keeping remote URL: %s", ref, exc)
            return ref

    async def load(self, ref: ImageRef, client: httpx.AsyncClient) -> bytes:
        """Return the bytes behind any image reference."""
        if isinstance(ref, (bytes, bytearray)):
            return bytes(ref)
        if ref.startswith("data:"):
            return decode_data_url(ref)
        if self.is_local(ref):
            return self._local_path(ref).read_bytes()
        r = await client.get(ref)
        r.raise_for_status()
        return r.content

    def vendor_url(self, ref: str) -> str:
        """
        A URL an external vendor can fetch.

        Local media becomes absolute when ``PUBLIC_BASE_URL`` is set and is
        inlined as a data URL otherwise.
        """
        if not self.is_local(ref):
            return ref
        if self.public_base_url:
            return f"{self.public_base_url}{ref}"
        data = self._local_path(ref).read_bytes()
        return "data:image/png;base64," + base64.b64encode(data).decode("ascii")
