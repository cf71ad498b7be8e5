"""
Signal Tasks - Celery task definitions for fire-and-forget signal runs.

Flow:
1. run_signal_task()               → Runs one fetcher against one audit, persists the outcome
2. recalculate_overall_task()      → Recomputes one audit's overall score (design score edits)
3. recalculate_all_audits_task()   → Recomputes many audits after a settings change

Error handling:
- Fetcher failures are persisted as the signal's error state, never retried here
- Only infrastructure failures (database, broker) retry, up to CELERY_MAX_RETRIES;
  the last failure leaves the signal in error
- The outcome is observable only by re-reading the audit
"""

from __future__ import annotations

import asyncio
import uuid

import structlog
from celery.exceptions import SoftTimeLimitExceeded
from sqlalchemy.exc import SQLAlchemyError

from app.core.config import get_settings
from app.core.database import AsyncSessionLocal, engine
from app.core.redis import CacheManager, task_redis
from app.engines.base import SignalName
from app.engines.scoring.engine import recalculate_all_audits, recalculate_overall
from app.services.scoring_settings import ScoringSettingsCache
from app.services.signal_runner import AuditNotFoundError, run_signal
from app.services.signal_status import mark_error
from app.workers.celery_app import celery_app

logger = structlog.get_logger(__name__)
settings = get_settings()


def run_async(coro):
    """Run an async coroutine in a Celery (sync) task context."""
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


# ─────────────────────────────────────────────
# Task: Run Signal
# ─────────────────────────────────────────────

@celery_app.task(
    name="app.workers.signal_tasks.run_signal_task",
    bind=True,
    queue="signals_queue",
    soft_time_limit=settings.CELERY_TASK_SOFT_TIME_LIMIT,
    time_limit=settings.CELERY_TASK_TIME_LIMIT,
    max_retries=settings.CELERY_MAX_RETRIES,
    acks_late=True,
)
def run_signal_task(self, audit_id: str, signal: str, website_url: str | None = None) -> dict:
    """Run one signal fetcher. Returns the advisory {success, score?, grade?, error?} payload."""
    logger.info("Signal task received", audit_id=audit_id, signal=signal)

    try:
        return run_async(_run_signal(audit_id, signal, website_url))

    except AuditNotFoundError:
        logger.warning("Signal task skipped, audit not found", audit_id=audit_id, signal=signal)
        return {"success": False, "error": "Audit not found"}

    except SoftTimeLimitExceeded:
        logger.error("Signal task timed out", audit_id=audit_id, signal=signal)
        _give_up(audit_id, signal, "Signal run timed out")
        raise

    except SQLAlchemyError as exc:
        logger.error("Signal task failed", audit_id=audit_id, signal=signal, error=str(exc), exc_info=True)
        if self.request.retries >= self.max_retries:
            _give_up(audit_id, signal, f"Signal run failed after retries: {exc}")
            raise
        raise self.retry(exc=exc, countdown=30 * (self.request.retries + 1))


def _give_up(audit_id: str, signal: str, message: str) -> None:
    """Leave the signal in error rather than fetching; the database may still be down."""
    try:
        run_async(_mark_error(audit_id, signal, message))
    except (SQLAlchemyError, OSError) as exc:
        logger.error("Could not record signal error", audit_id=audit_id, signal=signal, error=str(exc))


# ─────────────────────────────────────────────
# Task: Recalculate Overall
# ─────────────────────────────────────────────

@celery_app.task(
    name="app.workers.signal_tasks.recalculate_overall_task",
    bind=True,
    queue="scoring_queue",
    max_retries=settings.CELERY_MAX_RETRIES,
)
def recalculate_overall_task(self, audit_id: str) -> dict:
    try:
        overall = run_async(_recalculate_overall(audit_id))
    except SQLAlchemyError as exc:
        logger.error("Recalculation failed", audit_id=audit_id, error=str(exc))
        raise self.retry(exc=exc, countdown=30)
    if overall is None:
        return {"success": False, "error": "Audit not found"}
    return {"success": True, "score": overall.score, "grade": overall.grade}


@celery_app.task(
    name="app.workers.signal_tasks.recalculate_all_audits_task",
    bind=True,
    queue="scoring_queue",
    soft_time_limit=1800,
    time_limit=2400,
)
def recalculate_all_audits_task(self, since_days: int | None = None) -> dict:
    count = run_async(_recalculate_all(since_days))
    return {"success": True, "count": count}


# ─────────────────────────────────────────────
# Async bodies
# ─────────────────────────────────────────────

async def _run_signal(audit_id: str, signal: str, website_url: str | None) -> dict:
    try:
        async with task_redis() as redis, AsyncSessionLocal() as session:
            scoring_cache = ScoringSettingsCache(CacheManager(redis))
            result = await run_signal(
                session,
                uuid.UUID(audit_id),
                SignalName(signal),
                scoring_cache=scoring_cache,
                website_url=website_url,
            )
    finally:
        # pooled connections are bound to this task's event loop
        await engine.dispose()

    if result.succeeded:
        return {"success": True, "score": result.score, "grade": result.grade}
    return {"success": False, "error": result.error_message}


async def _mark_error(audit_id: str, signal: str, message: str) -> None:
    try:
        async with AsyncSessionLocal() as session:
            await mark_error(session, uuid.UUID(audit_id), SignalName(signal), message)
    finally:
        await engine.dispose()


async def _recalculate_overall(audit_id: str):
    try:
        async with task_redis() as redis, AsyncSessionLocal() as session:
            profile = await ScoringSettingsCache(CacheManager(redis)).get(session)
            return await recalculate_overall(session, uuid.UUID(audit_id), profile)
    finally:
        await engine.dispose()


async def _recalculate_all(since_days: int | None) -> int:
    try:
        async with task_redis() as redis, AsyncSessionLocal() as session:
            profile = await ScoringSettingsCache(CacheManager(redis)).get(session)
            return await recalculate_all_audits(session, profile, since_days=since_days)
    finally:
        await engine.dispose()
