"""
User accounts: sign-up, profile, premium upgrade and referrals.

Users may only read and change their own account.
"""

from __future__ import annotations

import logging
from typing import List

from fastapi import APIRouter, Depends

from .auth import current_user_id
from .avatar.audit import audit_event
from .config import Settings
from .credits import CreditLedger
from .deps import get_ledger, get_settings_dep, get_store
from .errors import AuraError, Forbidden, UserNotFound
from .models import (
    Referral,
    ReferralApplyRequest,
    ReferralApplyResponse,
    SignupRequest,
    UserAccount,
    UserUpdateRequest,
)
from .storage import BaseStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["users"])


def _require_self(user_id: str, auth_id: str) -> None:
    if user_id != auth_id:
        raise Forbidden("You can only access your own account.")


def _load(store: BaseStore, user_id: str) -> UserAccount:
    user = store.get_user(user_id)
    if user is None:
        raise UserNotFound()
    return user


def _grant_admin(store: BaseStore, user: UserAccount, settings: Settings) -> UserAccount:
    if user.role == "admin" or user.id not in settings.admin_user_ids:
        return user
    promoted = store.set_role(user.id, "admin")
    audit_event("admin_granted", user_id=user.id)
    return promoted or user


@router.post("/users", response_model=UserAccount)
def signup(
    body: SignupRequest,
    user_id: str = Depends(current_user_id),
    store: BaseStore = Depends(get_store),
    ledger: CreditLedger = Depends(get_ledger),
    settings: Settings = Depends(get_settings_dep),
) -> UserAccount:
    """
    Ensure an account exists for the authenticated identity.

    Repeating the call returns the existing account unchanged.  A referral
    code is only honoured when the account is created by this call.  Ids
    listed in ``ADMIN_USER_IDS`` are given the admin role.
    """
    existing = store.get_user(user_id)
    if existing is not None:
        return _grant_admin(store, existing, settings)

    user = store.create_user(
        user_id,
        display_name=body.display_name.strip(),
        email=body.email.strip(),
        photo_url=body.photo_url,
        credits=settings.DEFAULT_CREDITS,
    )
    audit_event("signup", user_id=user.id)

    if body.referral_code:
        try:
            ledger.award_referral(user, body.referral_code)
        except AuraError as exc:
            # A bad code must not block sign-up
            logger.info("Referral code ignored for %s: %s", user.id, exc.message)
        user = _load(store, user.id)
    return _grant_admin(store, user, settings)


@router.get("/users/me", response_model=UserAccount)
def me(
    user_id: str = Depends(current_user_id),
    store: BaseStore = Depends(get_store),
) -> UserAccount:
    return _load(store, user_id)


@router.get("/user/{user_id}", response_model=UserAccount)
def get_user(
    user_id: str,
    auth_id: str = Depends(current_user_id),
    store: BaseStore = Depends(get_store),
) -> UserAccount:
    _require_self(user_id, auth_id)
    return _load(store, user_id)


@router.patch("/user/{user_id}", response_model=UserAccount)
def update_user(
    user_id: str,
    body: UserUpdateRequest,
    auth_id: str = Depends(current_user_id),
    store: BaseStore = Depends(get_store),
) -> UserAccount:
    """Only display name and photo can be changed; credits and premium cannot."""
    _require_self(user_id, auth_id)
    user = store.update_user_profile(
        user_id,
        display_name=body.display_name.strip() if body.display_name is not None else None,
        photo_url=body.photo_url,
    )
    if user is None:
        raise UserNotFound()
    return user


@router.post("/user/{user_id}/upgrade", response_model=UserAccount)
def upgrade_user(
    user_id: str,
    auth_id: str = Depends(current_user_id),
    ledger: CreditLedger = Depends(get_ledger),
) -> UserAccount:
    _require_self(user_id, auth_id)
    return ledger.upgrade(user_id)


# ------------------------------------------------------------------
# Referrals
# ------------------------------------------------------------------


@router.post("/referrals/apply", response_model=ReferralApplyResponse)
def apply_referral(
    body: ReferralApplyRequest,
    user_id: str = Depends(current_user_id),
    store: BaseStore = Depends(get_store),
    ledger: CreditLedger = Depends(get_ledger),
) -> ReferralApplyResponse:
    user = _load(store, user_id)
    referral = ledger.award_referral(user, body.code)
    return ReferralApplyResponse(referral=referral, credits_awarded=referral.credits_awarded)


@router.get("/referrals/user/{user_id}", response_model=List[Referral])
def list_referrals(
    user_id: str,
    auth_id: str = Depends(current_user_id),
    store: BaseStore = Depends(get_store),
) -> List[Referral]:
    _require_self(user_id, auth_id)
    return store.list_referrals(user_id)
