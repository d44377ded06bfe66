"""
Engagement: likes, shares, comments, visibility and featuring.

Counter changes are delegated to the store's atomic primitives; nothing
here reads a counter and writes it back.
"""

from __future__ import annotations

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends

from .auth import current_user_id, optional_user_id
from .avatar.audit import audit_event
from .deps import get_store
from .errors import ArtifactNotFound, Forbidden, InvalidRequest, UserNotFound
from .models import (
    DERIVATIVE_KEYS,
    Artifact,
    Comment,
    CommentCreate,
    DownloadBundle,
    EngagementResponse,
    FeatureUpdate,
    VisibilityUpdate,
)
from .ranking import visible_artifact
from .storage import BaseStore

logger = logging.getLogger(__name__)

MAX_COMMENT_CHARS = 500

router = APIRouter(prefix="/api", tags=["social"])


def _engagement(status: str, artifact: Artifact, user_id: str) -> EngagementResponse:
    return EngagementResponse(
        success=True,
        status=status,
        likes=artifact.likes,
        shares=artifact.shares,
        liked=user_id in artifact.liked_by,
    )


# ------------------------------------------------------------------
# Likes / shares
# ------------------------------------------------------------------


@router.post("/avatars/{avatar_id}/like", response_model=EngagementResponse)
def like_avatar(
    avatar_id: str,
    user_id: str = Depends(current_user_id),
    store: BaseStore = Depends(get_store),
) -> EngagementResponse:
    visible_artifact(store, avatar_id, user_id)
    outcome = store.like(avatar_id, user_id)
    if outcome is None:
        raise ArtifactNotFound()
    changed, artifact = outcome
    return _engagement("liked" if changed else "already_liked", artifact, user_id)


@router.post("/avatars/{avatar_id}/unlike", response_model=EngagementResponse)
def unlike_avatar(
    avatar_id: str,
    user_id: str = Depends(current_user_id),
    store: BaseStore = Depends(get_store),
) -> EngagementResponse:
    visible_artifact(store, avatar_id, user_id)
    outcome = store.unlike(avatar_id, user_id)
    if outcome is None:
        raise ArtifactNotFound()
    changed, artifact = outcome
    return _engagement("unliked" if changed else "not_liked", artifact, user_id)


@router.post("/avatars/{avatar_id}/share", response_model=EngagementResponse)
def share_avatar(
    avatar_id: str,
    user_id: str = Depends(current_user_id),
    store: BaseStore = Depends(get_store),
) -> EngagementResponse:
    visible_artifact(store, avatar_id, user_id)
    artifact = store.share(avatar_id, user_id)
    if artifact is None:
        raise ArtifactNotFound()
    return _engagement("shared", artifact, user_id)


# ------------------------------------------------------------------
# Comments
# ------------------------------------------------------------------


@router.get("/avatars/{avatar_id}/comments", response_model=List[Comment])
def list_comments(
    avatar_id: str,
    viewer_id: Optional[str] = Depends(optional_user_id),
    store: BaseStore = Depends(get_store),
) -> List[Comment]:
    visible_artifact(store, avatar_id, viewer_id)
    return store.list_comments(avatar_id)


@router.post("/avatars/{avatar_id}/comments", response_model=Comment)
def add_comment(
    avatar_id: str,
    body: CommentCreate,
    user_id: str = Depends(current_user_id),
    store: BaseStore = Depends(get_store),
) -> Comment:
    text = body.text.strip()
    if not text:
        raise InvalidRequest("Comment text is required.")
    if len(text) > MAX_COMMENT_CHARS:
        raise InvalidRequest(f"Comments are limited to {MAX_COMMENT_CHARS} characters.")

    user = store.get_user(user_id)
    if user is None:
        raise UserNotFound()
    visible_artifact(store, avatar_id, user_id)

    comment = store.create_comment(
        avatar_id,
        user_id,
        text,
        user_name=user.display_name or "Anonymous",
        user_photo=user.photo_url,
    )
    if comment is None:
        raise ArtifactNotFound()
    return comment


# ------------------------------------------------------------------
# Visibility / featuring / download
# ------------------------------------------------------------------


@router.patch("/avatars/{avatar_id}", response_model=Artifact)
def set_visibility(
    avatar_id: str,
    body: VisibilityUpdate,
    user_id: str = Depends(current_user_id),
    store: BaseStore = Depends(get_store),
) -> Artifact:
    artifact = visible_artifact(store, avatar_id, user_id)
    if artifact.user_id != user_id:
        raise Forbidden("Only the owner can change an avatar's visibility.")
    updated = store.update_artifact_flags(avatar_id, is_public=body.is_public)
    if updated is None:
        raise ArtifactNotFound()
    return updated


@router.post("/avatars/{avatar_id}/feature", response_model=Artifact)
def feature_avatar(
    avatar_id: str,
    body: FeatureUpdate,
    user_id: str = Depends(current_user_id),
    store: BaseStore = Depends(get_store),
) -> Artifact:
    user = store.get_user(user_id)
    if user is None or user.role != "admin":
        raise Forbidden("Only admins can feature avatars.")
    updated = store.update_artifact_flags(avatar_id, is_featured=body.is_featured)
    if updated is None:
        raise ArtifactNotFound()
    audit_event("feature", avatar_id=avatar_id, admin_id=user_id, featured=body.is_featured)
    return updated


@router.get("/avatars/{avatar_id}/download-all", response_model=DownloadBundle)
def download_all(
    avatar_id: str,
    viewer_id: Optional[str] = Depends(optional_user_id),
    store: BaseStore = Depends(get_store),
) -> DownloadBundle:
    artifact = visible_artifact(store, avatar_id, viewer_id)
    urls = {
        "normal": artifact.urls.get("normal"),
        "thumbnail": artifact.urls.get("thumbnail"),
    }
    for key in DERIVATIVE_KEYS:
        urls[key] = artifact.urls.get(key)
    return DownloadBundle(urls=urls, filename=f"aura-avatar-{artifact.id}")
