"""
Credit ledger.

Entitlement is checked before any generation work; the charge is taken
only after the avatar has been stored, with an atomic
decrement-if-positive so concurrent requests can never overspend.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from .avatar.audit import audit_event
from .avatar.schemas import AvatarRequest
from .errors import Forbidden, InvalidRequest, NoCredits, SizeRequiresPremium, UserNotFound
from .models import Referral, UserAccount
from .storage import BaseStore

logger = logging.getLogger(__name__)

NO_CREDITS = "NO_CREDITS"
SIZE_REQUIRES_PREMIUM = "SIZE_REQUIRES_PREMIUM"


@dataclass(frozen=True)
class Decision:
    allowed: bool
    reason: Optional[str] = None

    @classmethod
    def allow(cls) -> "Decision":
        return cls(True)

    @classmethod
    def deny(cls, reason: str) -> "Decision":
        return cls(False, reason)


class CreditLedger:
    def __init__(self, store: BaseStore, *, free_max_size: int = 512, referral_credits: int = 5):
        self.store = store
        self.free_max_size = free_max_size
        self.referral_credits = referral_credits

    def check_entitlement(self, user: UserAccount, req: AvatarRequest) -> Decision:
        if user.premium:
            return Decision.allow()
        if user.credits <= 0:
            return Decision.deny(NO_CREDITS)
        if req.size_pixels > self.free_max_size:
            return Decision.deny(SIZE_REQUIRES_PREMIUM)
        return Decision.allow()

    def enforce(self, user: UserAccount, req: AvatarRequest) -> None:
        """Raise the typed error for a denied request."""
        decision = self.check_entitlement(user, req)
        if decision.allowed:
            return
        audit_event("entitlement_denied", user_id=user.id, reason=decision.reason, size=req.size)
        if decision.reason == SIZE_REQUIRES_PREMIUM:
            raise SizeRequiresPremium()
        raise NoCredits()

    def commit(self, user: UserAccount) -> Optional[int]:
        """
        Charge one credit for a stored avatar.

        Returns the remaining balance, or None for premium (unlimited).

        Raises:
            NoCredits: a concurrent request spent the last credit first
        """
        if user.premium:
            return None
        remaining = self.store.spend_credit(user.id)
        if remaining is None:
            raise NoCredits()
        return remaining

    def upgrade(self, user_id: str) -> UserAccount:
        """One-way premium upgrade; repeating it changes nothing."""
        user = self.store.upgrade_user(user_id)
        if user is None:
            raise UserNotFound()
        audit_event("upgrade", user_id=user_id)
        return user

    def award_referral(self, referred: UserAccount, code: str) -> Referral:
        """Credit the owner of ``code`` for referring ``referred``."""
        referrer = self.store.get_user_by_referral_code(code)
        if referrer is None:
            raise InvalidRequest("Unknown referral code.")
        if referrer.id == referred.id:
            raise Forbidden("You cannot use your own referral code.")
        if referred.referred_by:
            raise InvalidRequest("A referral code has already been applied to this account.")
        referral = self.store.create_referral(
            referrer.id, referred.id, referrer.referral_code, self.referral_credits
        )
        if referral is None:
            raise InvalidRequest("A referral code has already been applied to this account.")
        audit_event("referral", referrer_id=referrer.id, referred_id=referred.id, credits=self.referral_credits)
        return referral
