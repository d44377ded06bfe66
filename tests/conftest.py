# tests/conftest.py
import asyncio
import io
import os
import tempfile

import pytest
from fastapi.testclient import TestClient
from PIL import Image

# Importing aura.main builds a module-level app from the environment; point it
# at a throwaway directory and disable every real vendor before that happens.
_SESSION_TMP = tempfile.mkdtemp(prefix="aura-tests-")
os.environ["SQLITE_PATH"] = os.path.join(_SESSION_TMP, "default.db")
os.environ["MEDIA_DIR"] = os.path.join(_SESSION_TMP, "media")
os.environ["API_KEY"] = ""
os.environ["GEMINI_API_KEY"] = ""
os.environ["STABILITY_API_KEY"] = ""
os.environ["REPLICATE_API_TOKEN"] = ""

from aura.avatar.providers import ProviderSet  # noqa: E402
from aura.avatar.providers.base import AdapterError, AdapterErrorKind, AdapterResult, ImageProvider  # noqa: E402
from aura.config import Settings  # noqa: E402
from aura.main import create_app  # noqa: E402
from aura.storage import SQLiteStore  # noqa: E402


def png_bytes(size=(64, 64), color=(200, 80, 120)) -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", size, color).save(buf, format="PNG")
    return buf.getvalue()


def auth(user_id: str) -> dict:
    return {"X-User-Id": user_id}


class FakeProvider(ImageProvider):
    """Scriptable adapter that records every call it receives."""

    def __init__(
        self,
        name="fake",
        *,
        image=None,
        error=None,
        raises=None,
        delay=0.0,
        available=True,
        text=True,
        image_input=False,
        fail_when=None,
        enhanced=None,
        enhance_delay=0.0,
        background=None,
    ):
        self.name = name
        self.image = image if image is not None else png_bytes()
        self.error = error
        self.raises = raises
        self.delay = delay
        self._available = available
        self.supports_text = text
        self.supports_image_input = image_input
        self.supports_enhance = enhanced is not None
        self.fail_when = fail_when
        self.enhanced = enhanced
        self.enhance_delay = enhance_delay
        self.supports_background_removal = background is not None
        self.background = background
        self.calls = []
        self.active = 0
        self.max_active = 0

    def available(self) -> bool:
        return self._available

    async def _generate(self, prompt, negative_prompt, size_hint, *, source_image_url=None, seed=None):
        self.calls.append(
            {"prompt": prompt, "negative_prompt": negative_prompt, "size": size_hint, "source": source_image_url}
        )
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            if self.raises is not None:
                raise self.raises
            if self.error is not None:
                raise AdapterError(self.error, self.name, "scripted failure")
            if self.fail_when and self.fail_when in prompt:
                raise AdapterError(AdapterErrorKind.NETWORK, self.name, "filtered")
            return self.image
        finally:
            self.active -= 1

    async def enhance(self, prompt: str) -> str:
        if self.enhance_delay:
            await asyncio.sleep(self.enhance_delay)
        if isinstance(self.enhanced, Exception):
            raise self.enhanced
        return self.enhanced if self.enhanced is not None else prompt

    async def remove_background(self, image_url):
        self.calls.append({"prompt": "remove-background", "negative_prompt": "", "size": None, "source": image_url})
        if isinstance(self.background, AdapterErrorKind):
            return AdapterResult.failure(self.background, self.name, "scripted failure")
        return AdapterResult(image=self.background)


@pytest.fixture()
def settings(tmp_path):
    return Settings(
        SQLITE_PATH=str(tmp_path / "aura.db"),
        MEDIA_DIR=str(tmp_path / "media"),
        API_KEY="",
        GEMINI_API_KEY="",
        STABILITY_API_KEY="",
        REPLICATE_API_TOKEN="",
        PROVIDER_TIMEOUT_S=5,
        REPLICATE_POLL_INTERVAL_S=0.01,
        LOG_LEVEL="WARNING",
    )


@pytest.fixture()
def store(settings):
    return SQLiteStore(settings.SQLITE_PATH)


@pytest.fixture()
def text_provider():
    return FakeProvider("fake-text")


@pytest.fixture()
def photo_provider():
    return FakeProvider("fake-photo", text=False, image_input=True)


@pytest.fixture()
def providers(text_provider, photo_provider):
    return ProviderSet(text_chain=[text_provider], photo_chain=[photo_provider])


@pytest.fixture()
def app(settings, providers):
    return create_app(settings, providers=providers)


@pytest.fixture()
def client(app):
    return TestClient(app)


@pytest.fixture()
def make_user(app):
    store = app.state.store

    def _make(user_id="u1", *, credits=3, premium=False, role="user", name=None):
        store.create_user(user_id, display_name=name or user_id.upper(), credits=credits, role=role)
        if premium:
            store.upgrade_user(user_id)
        return store.get_user(user_id)

    return _make
