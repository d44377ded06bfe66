"""
Engagement ranking: trending avatars, creator leaderboard, platform stats.

Read-only.  Ranking functions are pure over records read from the store so
they can be tested without a database.
"""

from __future__ import annotations

from typing import Iterable, List, Optional, Sequence

from fastapi import APIRouter, Depends, Query

from .auth import optional_user_id
from .deps import get_store
from .errors import ArtifactNotFound
from .models import Artifact, LeaderboardEntry, PlatformStats, UserAccount
from .storage import BaseStore

LIKE_WEIGHT = 2
SHARE_WEIGHT = 3


def trending_score(artifact: Artifact) -> int:
    return artifact.likes * LIKE_WEIGHT + artifact.shares * SHARE_WEIGHT


def rank_trending(artifacts: Iterable[Artifact], limit: Optional[int] = None) -> List[Artifact]:
    """Highest score first; equal scores put the newest avatar first."""
    ranked = sorted(artifacts, key=lambda a: (trending_score(a), a.created_at), reverse=True)
    return ranked if limit is None else ranked[:limit]


def build_leaderboard(users: Sequence[UserAccount], limit: Optional[int] = None) -> List[LeaderboardEntry]:
    """
    Users by ``total_likes``, descending, ranked from 1.

    ``sorted`` is stable (also with ``reverse=True``), so ties keep the
    input order; callers pass users ordered by ``(created_at, id)``.
    """
    ranked = sorted(users, key=lambda u: u.total_likes, reverse=True)
    if limit is not None:
        ranked = ranked[:limit]
    return [
        LeaderboardEntry(
            rank=i,
            user_id=u.id,
            display_name=u.display_name,
            photo_url=u.photo_url,
            total_likes=u.total_likes,
            total_shares=u.total_shares,
            total_avatars=u.total_avatars,
        )
        for i, u in enumerate(ranked, start=1)
    ]


def platform_stats(users: Sequence[UserAccount], artifacts: Sequence[Artifact]) -> PlatformStats:
    return PlatformStats(
        total_users=len(users),
        total_avatars=len(artifacts),
        total_premium_users=sum(1 for u in users if u.premium),
    )


def visible_artifact(store: BaseStore, avatar_id: str, viewer_id: Optional[str]) -> Artifact:
    """Load an avatar; private ones only exist for their owner."""
    artifact = store.get_artifact(avatar_id)
    if artifact is None or (not artifact.is_public and artifact.user_id != viewer_id):
        raise ArtifactNotFound()
    return artifact


# ------------------------------------------------------------------
# Routes
# ------------------------------------------------------------------

router = APIRouter(prefix="/api", tags=["ranking"])


@router.get("/avatars", response_model=List[Artifact])
def list_public_avatars(
    limit: int = Query(20, ge=1, le=100),
    store: BaseStore = Depends(get_store),
) -> List[Artifact]:
    return store.list_public(limit)


# Fixed paths are declared before /avatars/{avatar_id}
@router.get("/avatars/trending", response_model=List[Artifact])
def trending(
    limit: int = Query(20, ge=1, le=100),
    store: BaseStore = Depends(get_store),
) -> List[Artifact]:
    return rank_trending(store.list_public(None), limit)


@router.get("/avatars/featured", response_model=List[Artifact])
def featured(
    limit: int = Query(10, ge=1, le=100),
    store: BaseStore = Depends(get_store),
) -> List[Artifact]:
    return store.list_featured(limit)


@router.get("/avatars/user/{user_id}", response_model=List[Artifact])
def user_avatars(
    user_id: str,
    viewer_id: Optional[str] = Depends(optional_user_id),
    store: BaseStore = Depends(get_store),
) -> List[Artifact]:
    """All of a user's avatars for the owner; only public ones for everyone else."""
    avatars = store.list_by_user(user_id)
    if viewer_id == user_id:
        return avatars
    return [a for a in avatars if a.is_public]


@router.get("/avatars/{avatar_id}", response_model=Artifact)
def get_avatar(
    avatar_id: str,
    viewer_id: Optional[str] = Depends(optional_user_id),
    store: BaseStore = Depends(get_store),
) -> Artifact:
    return visible_artifact(store, avatar_id, viewer_id)


@router.get("/leaderboard", response_model=List[LeaderboardEntry])
def leaderboard(
    limit: int = Query(10, ge=1, le=100),
    store: BaseStore = Depends(get_store),
) -> List[LeaderboardEntry]:
    users, _ = store.snapshot()
    return build_leaderboard(users, limit)


@router.get("/stats", response_model=PlatformStats)
def stats(store: BaseStore = Depends(get_store)) -> PlatformStats:
    users, artifacts = store.snapshot()
    return platform_stats(users, artifacts)
