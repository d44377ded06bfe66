"""
Aura avatars — audit logging for generation traceability.
"""

from __future__ import annotations

import logging

logger = logging.getLogger("aura.audit")


def audit_event(event: str, **kwargs: object) -> None:
    """Log a structured audit event."""
    logger.info("avatar_event=%s %s", event, kwargs)
