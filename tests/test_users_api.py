"""
Accounts, referrals and API key enforcement.
"""
import pytest
from fastapi.testclient import TestClient

from aura.main import create_app

from conftest import auth


def test_signup_is_idempotent(client):
    r = client.post("/api/users", json={"display_name": " Ada ", "email": "ada@example.com"}, headers=auth("ada"))
    assert r.status_code == 200
    first = r.json()
    assert first["credits"] == 3
    assert first["display_name"] == "Ada"
    assert first["premium"] is False
    assert len(first["referral_code"]) == 8

    again = client.post("/api/users", json={"display_name": "Someone else"}, headers=auth("ada")).json()
    assert again == first


def test_signup_with_referral_code_rewards_referrer(client, app):
    alice = client.post("/api/users", json={"display_name": "Alice"}, headers=auth("alice")).json()
    bob = client.post(
        "/api/users",
        json={"display_name": "Bob", "referral_code": alice["referral_code"]},
        headers=auth("bob"),
    ).json()

    assert bob["referred_by"] == "alice"
    assert bob["credits"] == 3
    assert app.state.store.get_user("alice").credits == 8


def test_signup_ignores_unknown_referral_code(client):
    r = client.post("/api/users", json={"referral_code": "BADCODE1"}, headers=auth("carol"))
    assert r.status_code == 200
    assert r.json()["referred_by"] is None


def test_me_and_profile_access(client, make_user):
    make_user("u1", name="One")
    make_user("u2")

    assert client.get("/api/users/me", headers=auth("u1")).json()["display_name"] == "One"
    assert client.get("/api/user/u1", headers=auth("u1")).status_code == 200

    r = client.get("/api/user/u1", headers=auth("u2"))
    assert r.status_code == 403
    assert r.json()["code"] == "FORBIDDEN"

    r = client.get("/api/users/me", headers=auth("ghost"))
    assert r.status_code == 404
    assert r.json()["code"] == "NOT_FOUND_USER"


def test_profile_update_cannot_touch_credits(client, make_user):
    make_user("u1", credits=1)
    r = client.patch(
        "/api/user/u1",
        json={"display_name": "New name", "credits": 999, "premium": True},
        headers=auth("u1"),
    )
    assert r.status_code == 200
    body = r.json()
    assert body["display_name"] == "New name"
    assert body["credits"] == 1
    assert body["premium"] is False

    assert client.patch("/api/user/u1", json={"display_name": "x"}, headers=auth("u2")).status_code == 403


def test_upgrade(client, make_user):
    make_user("u1", credits=0)
    r = client.post("/api/user/u1/upgrade", headers=auth("u1"))
    assert r.status_code == 200
    assert r.json()["premium"] is True
    assert client.post("/api/user/u1/upgrade", headers=auth("u2")).status_code == 403


def test_configured_admin_is_promoted_on_signup(settings, providers):
    admin_settings = settings.model_copy(update={"ADMIN_USER_IDS": "boss, ops"})
    app = create_app(admin_settings, providers=providers)
    client = TestClient(app)
    app.state.store.create_user("ops")

    assert client.post("/api/users", json={}, headers=auth("boss")).json()["role"] == "admin"
    assert client.post("/api/users", json={}, headers=auth("ops")).json()["role"] == "admin"
    assert client.post("/api/users", json={}, headers=auth("pleb")).json()["role"] == "user"
    assert app.state.store.get_user("boss").role == "admin"


# ---------------------------------------------------------------------------
# Referrals
# ---------------------------------------------------------------------------


def test_apply_and_list_referrals(client, app, make_user):
    alice = make_user("alice")
    make_user("bob")

    r = client.post("/api/referrals/apply", json={"code": alice.referral_code}, headers=auth("bob"))
    assert r.status_code == 200
    body = r.json()
    assert body["success"] is True
    assert body["credits_awarded"] == 5
    assert body["referral"]["referred_user_id"] == "bob"

    listed = client.get("/api/referrals/user/alice", headers=auth("alice")).json()
    assert [ref["referred_user_id"] for ref in listed] == ["bob"]
    assert client.get("/api/referrals/user/alice", headers=auth("bob")).status_code == 403

    r = client.post("/api/referrals/apply", json={"code": alice.referral_code}, headers=auth("bob"))
    assert r.status_code == 400
    assert app.state.store.get_user("alice").credits == 8


def test_self_referral_is_forbidden(client, make_user):
    me = make_user("me")
    r = client.post("/api/referrals/apply", json={"code": me.referral_code}, headers=auth("me"))
    assert r.status_code == 403
    assert r.json()["code"] == "FORBIDDEN"


# ---------------------------------------------------------------------------
# API key
# ---------------------------------------------------------------------------


@pytest.fixture()
def keyed_client(settings, providers):
    keyed = settings.model_copy(update={"API_KEY": "s3cret"})
    return TestClient(create_app(keyed, providers=providers))


def test_api_key_guards_api_routes(keyed_client):
    r = keyed_client.get("/api/stats")
    assert r.status_code == 401
    assert r.json()["code"] == "UNAUTHENTICATED"

    assert keyed_client.get("/api/stats", headers={"X-API-Key": "wrong"}).status_code == 401
    assert keyed_client.get("/api/stats", headers={"X-API-Key": "s3cret"}).status_code == 200
    # health stays open without the key
    assert keyed_client.get("/health").status_code == 200
