"""
Generation API: entitlement, credits, fallback, photo path and uploads.
"""
import io

import httpx
from fastapi.testclient import TestClient
from PIL import Image

from aura.avatar import derivatives
from aura.avatar.providers import AdapterErrorKind, ProviderSet
from aura.avatar.providers.gemini import GeminiProvider
from aura.main import create_app

from conftest import FakeProvider, auth, png_bytes


def _upload(client, user_id="u1"):
    r = client.post(
        "/api/upload-image",
        files={"image": ("me.png", png_bytes(size=(96, 96)), "image/png")},
        headers=auth(user_id),
    )
    assert r.status_code == 200
    return r.json()["image_url"]


def test_generate_charges_one_credit(client, app, make_user, text_provider):
    make_user("u1", credits=3)
    r = client.post("/api/avatars/generate", json={"art_style": "anime"}, headers=auth("u1"))

    assert r.status_code == 200
    body = r.json()
    assert body["credits_remaining"] == 2
    artifact = body["artifact"]
    assert artifact["provider"] == "fake-text"
    assert artifact["user_id"] == "u1"
    assert artifact["urls"]["normal"].startswith("/media/")
    assert artifact["urls"]["thumbnail"] == artifact["urls"]["normal"]
    assert "#AnimeArt" in artifact["hashtags"]
    assert len(text_provider.calls) == 1

    user = app.state.store.get_user("u1")
    assert user.credits == 2
    assert user.total_avatars == 1

    served = client.get(artifact["urls"]["normal"])
    assert served.status_code == 200
    assert Image.open(io.BytesIO(served.content)).format == "PNG"


def test_premium_is_not_charged(client, app, make_user):
    make_user("vip", credits=0, premium=True)
    r = client.post("/api/avatars/generate", json={"size": "2048"}, headers=auth("vip"))
    assert r.status_code == 200
    assert r.json()["credits_remaining"] == "unlimited"
    assert app.state.store.get_user("vip").credits == 0


def test_hd_size_requires_premium_before_any_vendor_call(client, app, make_user, text_provider):
    make_user("u1", credits=3)
    r = client.post("/api/avatars/generate", json={"size": "1024"}, headers=auth("u1"))
    assert r.status_code == 403
    assert r.json()["code"] == "SIZE_REQUIRES_PREMIUM"
    assert text_provider.calls == []
    assert app.state.store.get_user("u1").credits == 3


def test_no_credits(client, make_user, text_provider):
    make_user("u1", credits=0)
    r = client.post("/api/avatars/generate", json={}, headers=auth("u1"))
    assert r.status_code == 403
    assert r.json()["code"] == "NO_CREDITS"
    assert text_provider.calls == []


def test_unknown_user_and_missing_identity(client):
    r = client.post("/api/avatars/generate", json={}, headers=auth("ghost"))
    assert r.status_code == 404
    assert r.json()["code"] == "NOT_FOUND_USER"

    r = client.post("/api/avatars/generate", json={})
    assert r.status_code == 401


def test_invalid_request_is_400(client, make_user):
    make_user("u1")
    r = client.post("/api/avatars/generate", json={"art_style": "oil"}, headers=auth("u1"))
    assert r.status_code == 400
    body = r.json()
    assert body["ok"] is False
    assert body["code"] == "INVALID_REQUEST"
    assert body["message"].startswith("art_style")

    r = client.post("/api/avatars/generate", json={"unknown": 1}, headers=auth("u1"))
    assert r.status_code == 400


def test_all_vendors_down_returns_placeholder(settings):
    down = FakeProvider("down", error=AdapterErrorKind.QUOTA)
    app = create_app(settings, providers=ProviderSet(text_chain=[down]))
    app.state.store.create_user("u1", credits=1)
    r = TestClient(app).post("/api/avatars/generate", json={}, headers=auth("u1"))
    assert r.status_code == 200
    assert r.json()["artifact"]["provider"] == "placeholder"
    assert r.json()["credits_remaining"] == 0


def test_malformed_vendor_image_falls_back_to_placeholder(settings):
    body = {"predictions": [{"bytesBase64Encoded": "%%%not-base64%%%"}]}
    vendor = httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(200, json=body)))
    gemini = GeminiProvider(vendor, api_key="k")
    app = create_app(settings, providers=ProviderSet(text_chain=[gemini]))
    app.state.store.create_user("u1", credits=1)

    r = TestClient(app).post("/api/avatars/generate", json={}, headers=auth("u1"))

    assert r.status_code == 200
    artifact = r.json()["artifact"]
    assert artifact["provider"] == "placeholder"
    assert artifact["urls"]["normal"].startswith("/media/")
    assert r.json()["credits_remaining"] == 0


# ---------------------------------------------------------------------------
# Photo path
# ---------------------------------------------------------------------------


def test_photo_request_without_photo_adapter_is_503(settings, text_provider):
    app = create_app(settings, providers=ProviderSet(text_chain=[text_provider]))
    app.state.store.create_user("u1", credits=3)
    client = TestClient(app)
    image_url = _upload(client)

    r = client.post("/api/avatars/generate", json={"uploaded_image_url": image_url}, headers=auth("u1"))
    assert r.status_code == 503
    assert r.json()["code"] == "GENERATION_UNAVAILABLE"
    assert text_provider.calls == []
    assert app.state.store.get_user("u1").credits == 3


def test_free_photo_request_has_no_derivatives(client, make_user, photo_provider):
    make_user("u1", credits=3)
    image_url = _upload(client)
    r = client.post("/api/avatars/generate", json={"uploaded_image_url": image_url}, headers=auth("u1"))

    assert r.status_code == 200
    artifact = r.json()["artifact"]
    assert artifact["provider"] == "fake-photo"
    assert set(artifact["urls"]) == {"normal", "thumbnail"}
    assert artifact["variations"] == []
    assert len(photo_provider.calls) == 1
    assert photo_provider.calls[0]["source"].startswith("data:image/png;base64,")


def test_premium_photo_request_gets_derivatives_and_variations(client, make_user, photo_provider):
    make_user("vip", premium=True)
    image_url = _upload(client, "vip")
    r = client.post("/api/avatars/generate", json={"uploaded_image_url": image_url}, headers=auth("vip"))

    assert r.status_code == 200
    artifact = r.json()["artifact"]
    assert set(artifact["urls"]) == {"normal", "thumbnail", "profile", "story", "post", "hd"}
    assert len(artifact["variations"]) == 4
    profile = client.get(artifact["urls"]["profile"])
    assert Image.open(io.BytesIO(profile.content)).size == (400, 400)


def test_failed_derivative_is_left_out(client, make_user, monkeypatch):
    real = derivatives.resize_cover

    def flaky(data, width, height):
        if (width, height) == (2048, 2048):
            raise OSError("out of memory")
        return real(data, width, height)

    monkeypatch.setattr(derivatives, "resize_cover", flaky)
    make_user("vip", premium=True)
    image_url = _upload(client, "vip")
    r = client.post("/api/avatars/generate", json={"uploaded_image_url": image_url}, headers=auth("vip"))

    assert r.status_code == 200
    urls = r.json()["artifact"]["urls"]
    assert {"profile", "story", "post"} <= set(urls)
    assert "hd" not in urls


def test_missing_upload_is_invalid(client, make_user):
    make_user("u1")
    r = client.post(
        "/api/avatars/generate",
        json={"uploaded_image_url": "/media/does-not-exist.png"},
        headers=auth("u1"),
    )
    assert r.status_code == 400
    assert r.json()["code"] == "INVALID_REQUEST"


# ---------------------------------------------------------------------------
# Uploads, variations, prompt helpers
# ---------------------------------------------------------------------------


def test_upload_rejects_unsupported_files(client):
    r = client.post(
        "/api/upload-image",
        files={"image": ("a.gif", b"GIF89a", "image/gif")},
        headers=auth("u1"),
    )
    assert r.status_code == 400
    assert r.json()["code"] == "INVALID_REQUEST"


def test_variations_are_premium_only(client, make_user, photo_provider):
    make_user("free")
    make_user("vip", premium=True)
    image_url = _upload(client, "vip")

    r = client.post("/api/generate-variations", json={"image_url": image_url}, headers=auth("free"))
    assert r.status_code == 403
    assert photo_provider.calls == []

    r = client.post("/api/generate-variations", json={"image_url": image_url}, headers=auth("vip"))
    assert r.status_code == 200
    variations = r.json()["variations"]
    assert [v["style"] for v in variations] == ["realistic", "anime", "cartoon", "cyberpunk"]
    assert all(v["url"].startswith("/media/") for v in variations)


def test_variations_accept_legacy_request_field(client, make_user, photo_provider):
    make_user("vip", premium=True)
    image_url = _upload(client, "vip")
    r = client.post(
        "/api/generate-variations",
        json={"image_url": image_url, "request": {"art_style": "anime"}},
        headers=auth("vip"),
    )
    assert r.status_code == 200
    assert len(r.json()["variations"]) == 4


def test_hashtags_endpoint(client):
    r = client.post("/api/hashtags/generate", json={"art_style": "anime", "gender": "female"})
    assert r.status_code == 200
    tags = r.json()["hashtags"]
    assert tags
    assert len(tags) <= 12
    assert all(t.startswith("#") for t in tags)


def test_enhance_without_enhancer_returns_prompt(client):
    r = client.post("/api/prompt/enhance", json={"prompt": "a fox"}, headers=auth("u1"))
    assert r.status_code == 200
    assert r.json() == {"enhanced_prompt": "a fox"}


def test_health(client):
    body = client.get("/health").json()
    assert body["ok"] is True
    assert body["service"]
    assert body["providers"]


# ---------------------------------------------------------------------------
# Background removal
# ---------------------------------------------------------------------------


def test_remove_background_stores_cutout(settings):
    cutout = png_bytes(color=(0, 0, 0))
    cutter = FakeProvider("cutter", text=False, image_input=True, background=cutout)
    app = create_app(settings, providers=ProviderSet(photo_chain=[cutter]))
    app.state.store.create_user("u1")
    client = TestClient(app)
    image_url = _upload(client)

    r = client.post("/api/remove-background", json={"image_url": image_url}, headers=auth("u1"))

    assert r.status_code == 200
    url = r.json()["image_url"]
    assert url.startswith("/media/")
    assert url != image_url
    assert client.get(url).content == cutout
    assert cutter.calls[0]["source"].startswith("data:image/png;base64,")


def test_remove_background_without_capable_adapter_is_503(client, make_user, photo_provider):
    make_user("u1")
    image_url = _upload(client)
    r = client.post("/api/remove-background", json={"image_url": image_url}, headers=auth("u1"))
    assert r.status_code == 503
    assert r.json()["code"] == "GENERATION_UNAVAILABLE"
    assert photo_provider.calls == []


def test_remove_background_validates_input(client, make_user):
    make_user("u1")
    r = client.post(
        "/api/remove-background",
        json={"image_url": "/media/does-not-exist.png"},
        headers=auth("u1"),
    )
    assert r.status_code == 400
    assert r.json()["code"] == "INVALID_REQUEST"

    r = client.post("/api/remove-background", json={"image_url": "https://x/y.png"}, headers=auth("ghost"))
    assert r.status_code == 404
