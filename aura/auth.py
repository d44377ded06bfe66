"""
Request identity.

An upstream gateway authenticates users and forwards the verified id in
``X-User-Id``; this service trusts it.  An optional shared ``API_KEY``
guards the whole API.
"""

from __future__ import annotations

from fastapi import Header, Request

from .errors import Unauthenticated


def require_api_key(
    request: Request,
    x_api_key: str | None = Header(default=None, alias="X-API-Key"),
):
    api_key = request.app.state.settings.API_KEY
    if not api_key:
        return True
    if not x_api_key or x_api_key.strip() != api_key:
        raise Unauthenticated("Invalid API key")
    return True


def current_user_id(x_user_id: str | None = Header(default=None, alias="X-User-Id")) -> str:
    if not x_user_id or not x_user_id.strip():
        raise Unauthenticated()
    return x_user_id.strip()


def optional_user_id(x_user_id: str | None = Header(default=None, alias="X-User-Id")) -> str | None:
    if not x_user_id or not x_user_id.strip():
        return None
    return x_user_id.strip()
