"""
FastAPI dependencies resolving the per-app collaborators from ``app.state``.
"""

from __future__ import annotations

from fastapi import Request

from .avatar.orchestrator import GenerationOrchestrator
from .avatar.service import AvatarService
from .config import Settings
from .credits import CreditLedger
from .storage import BaseStore


def get_settings_dep(request: Request) -> Settings:
    return request.app.state.settings


def get_store(request: Request) -> BaseStore:
    return request.app.state.store


def get_ledger(request: Request) -> CreditLedger:
    return request.app.state.ledger


def get_orchestrator(request: Request) -> GenerationOrchestrator:
    return request.app.state.orchestrator


def get_avatar_service(request: Request) -> AvatarService:
    return request.app.state.avatar_service
