"""
SQLite store: idempotent likes, atomic counters, snapshot reads.
"""
from concurrent.futures import ThreadPoolExecutor

import pytest

from aura.models import ArtifactDraft, Variation


def _draft(user_id="owner", **kw):
    data = dict(
        user_id=user_id,
        user_name="Owner",
        prompt="a portrait",
        provider="fake",
        urls={"normal": "/media/a.png", "thumbnail": "/media/a.png"},
        variations=[Variation(style="anime", url="/media/v.png")],
        hashtags=["#AIAvatar"],
        request={"art_style": "anime"},
    )
    data.update(kw)
    return ArtifactDraft(**data)


@pytest.fixture()
def owner(store):
    return store.create_user("owner", display_name="Owner", credits=3)


def test_create_user_is_idempotent(store):
    first = store.create_user("u", display_name="U", credits=3)
    second = store.create_user("u", display_name="Other", credits=99)
    assert second == first
    assert first.credits == 3
    assert len(first.referral_code) == 8


def test_update_profile_only_touches_given_fields(store):
    store.create_user("u", display_name="Old", photo_url="/p.png")
    user = store.update_user_profile("u", display_name="New")
    assert user.display_name == "New"
    assert user.photo_url == "/p.png"
    assert store.update_user_profile("ghost", display_name="x") is None


def test_artifact_round_trip(store, owner):
    art = store.create_artifact(_draft())
    loaded = store.get_artifact(art.id)
    assert loaded == art
    assert loaded.variations[0].style == "anime"
    assert loaded.request == {"art_style": "anime"}
    assert loaded.likes == 0 and loaded.liked_by == []
    assert store.get_user("owner").total_avatars == 1


def test_like_is_idempotent(store, owner):
    art = store.create_artifact(_draft())

    changed, a = store.like(art.id, "fan")
    assert changed is True and a.likes == 1 and a.liked_by == ["fan"]
    changed, a = store.like(art.id, "fan")
    assert changed is False and a.likes == 1
    assert store.get_user("owner").total_likes == 1

    changed, a = store.unlike(art.id, "fan")
    assert changed is True and a.likes == 0 and a.liked_by == []
    changed, a = store.unlike(art.id, "fan")
    assert changed is False and a.likes == 0
    assert store.get_user("owner").total_likes == 0


def test_like_missing_artifact(store):
    assert store.like("nope", "fan") is None
    assert store.unlike("nope", "fan") is None
    assert store.share("nope", "fan") is None


def test_concurrent_likes_keep_set_and_counter_in_step(store, owner):
    art = store.create_artifact(_draft())
    fans = [f"fan{i}" for i in range(20)]
    with ThreadPoolExecutor(max_workers=8) as pool:
        # every fan likes twice, concurrently
        list(pool.map(lambda uid: store.like(art.id, uid), fans + fans))

    a = store.get_artifact(art.id)
    assert a.likes == 20
    assert sorted(a.liked_by) == sorted(fans)
    assert store.get_user("owner").total_likes == 20

    with ThreadPoolExecutor(max_workers=8) as pool:
        list(pool.map(lambda uid: store.unlike(art.id, uid), fans[:5] + fans[:5]))
    a = store.get_artifact(art.id)
    assert a.likes == len(a.liked_by) == 15


def test_share_increments_artifact_and_owner(store, owner):
    art = store.create_artifact(_draft())
    store.share(art.id, "fan")
    a = store.share(art.id, "fan")
    assert a.shares == 2
    assert store.get_user("owner").total_shares == 2


def test_comments_are_counted(store, owner):
    art = store.create_artifact(_draft())
    c1 = store.create_comment(art.id, "fan", "nice", user_name="Fan")
    store.create_comment(art.id, "fan2", "great")
    assert store.get_artifact(art.id).comments == 2
    comments = store.list_comments(art.id)
    assert [c.text for c in comments] == ["nice", "great"]
    assert comments[0].id == c1.id
    assert store.create_comment("missing", "fan", "hello") is None


def test_delete_artifact_reverses_owner_counters(store, owner):
    art = store.create_artifact(_draft())
    store.like(art.id, "fan")
    store.share(art.id, "fan")
    assert store.delete_artifact(art.id) is True
    user = store.get_user("owner")
    assert (user.total_avatars, user.total_likes, user.total_shares) == (0, 0, 0)
    assert store.get_artifact(art.id) is None
    assert store.delete_artifact(art.id) is False


def test_listings_respect_visibility_and_featuring(store, owner):
    public = store.create_artifact(_draft(), created_at=100.0)
    private = store.create_artifact(_draft(), created_at=200.0)
    newest = store.create_artifact(_draft(), created_at=300.0)
    store.update_artifact_flags(private.id, is_public=False)
    store.update_artifact_flags(public.id, is_featured=True)

    assert [a.id for a in store.list_public(10)] == [newest.id, public.id]
    assert [a.id for a in store.list_public(None)] == [newest.id, public.id]
    assert [a.id for a in store.list_public(1)] == [newest.id]
    assert [a.id for a in store.list_featured(10)] == [public.id]
    assert {a.id for a in store.list_by_user("owner")} == {public.id, private.id, newest.id}


def test_snapshot(store, owner):
    store.create_user("vip")
    store.upgrade_user("vip")
    store.create_artifact(_draft())
    users, artifacts = store.snapshot()
    assert [u.id for u in users] == ["owner", "vip"]
    assert len(artifacts) == 1

