"""
Shared FastAPI dependencies.

Dispatch, scoring-settings cache and outbound HTTP client are dependencies
so handlers stay free of Celery and Redis details (and tests can override them).
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from typing import Annotated, Protocol
from uuid import UUID

import httpx
from fastapi import Depends

from app.core.redis import CacheManager, RedisClient
from app.engines.base import SignalName
from app.services.scoring_settings import ScoringSettingsCache


class SignalDispatcher(Protocol):
    def __call__(self, audit_id: UUID, signal: SignalName, website_url: str | None = None) -> None: ...


def celery_dispatch(audit_id: UUID, signal: SignalName, website_url: str | None = None) -> None:
    """Enqueue a signal run; the outcome is only visible by re-reading the audit."""
    from app.workers.signal_tasks import run_signal_task

    run_signal_task.apply_async(args=[str(audit_id), signal.value, website_url])


def get_dispatcher() -> SignalDispatcher:
    return celery_dispatch


async def get_scoring_cache(redis: RedisClient) -> ScoringSettingsCache:
    return ScoringSettingsCache(CacheManager(redis))


async def get_signal_client() -> AsyncGenerator[httpx.AsyncClient | None, None]:
    """Outbound client for in-request runs. None lets each engine build its own."""
    yield None


Dispatcher = Annotated[SignalDispatcher, Depends(get_dispatcher)]
ScoringCache = Annotated[ScoringSettingsCache, Depends(get_scoring_cache)]
SignalClient = Annotated[httpx.AsyncClient | None, Depends(get_signal_client)]
