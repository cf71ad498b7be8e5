"""
Signal runner - one end-to-end signal run against one audit.

mark fetching -> engine.execute() -> mark success + recompute overall
                                  -> or mark error + error log entry
"""

from __future__ import annotations

from uuid import UUID

import httpx
import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.logging import bind_signal_context
from app.engines.accessibility.engine import AccessibilityEngine
from app.engines.ai_visibility.engine import AIVisibilityEngine
from app.engines.base import ScoringProfile, SignalEngine, SignalName, SignalRequest, SignalResult
from app.engines.performance.engine import PerformanceEngine
from app.engines.scoring.engine import recalculate_overall
from app.engines.validator.engine import ValidatorEngine
from app.models.models import Audit
from app.services.error_log import record_error
from app.services.scoring_settings import ScoringSettingsCache
from app.services.signal_status import mark_error, mark_fetching, mark_success, truncate_error

logger = structlog.get_logger(__name__)


# ─────────────────────────────────────────────
# Engine Registry
# ─────────────────────────────────────────────

ENGINE_REGISTRY: dict[SignalName, type[SignalEngine]] = {
    SignalName.W3C: ValidatorEngine,
    SignalName.PSI: PerformanceEngine,
    SignalName.WAVE: AccessibilityEngine,
    SignalName.AI: AIVisibilityEngine,
}


class AuditNotFoundError(LookupError):
    pass


def build_engine(signal: SignalName, client: httpx.AsyncClient | None = None) -> SignalEngine:
    return ENGINE_REGISTRY[signal](client=client)


async def run_signal(
    db: AsyncSession,
    audit_id: UUID,
    signal: SignalName,
    *,
    scoring_cache: ScoringSettingsCache,
    website_url: str | None = None,
    client: httpx.AsyncClient | None = None,
) -> SignalResult:
    """
    Run one signal and persist its outcome.
    Raises AuditNotFoundError for unknown or deleted audits. Fetcher failures
    end in the signal's error state and are returned, not raised; a database
    failure while storing a result is raised after the error state is written.
    """
    bind_signal_context(str(audit_id), signal.value)

    audit = await db.get(Audit, audit_id)
    if audit is None or audit.is_deleted:
        raise AuditNotFoundError(str(audit_id))
    url = website_url or audit.website_url or ""

    profile = await scoring_cache.get(db)
    await mark_fetching(db, audit_id, signal)

    engine = build_engine(signal, client)
    result = await engine.execute(SignalRequest(audit_id=audit_id, website_url=url, scoring=profile))

    if result.succeeded:
        await _persist_success(db, audit_id, result, profile)
    else:
        result.error_message = truncate_error(result.error_message)
        await mark_error(db, audit_id, signal, result.error_message)
        await record_error(
            db,
            source=f"{signal.value}-fetcher",
            action=f"run-{signal.value}",
            message=result.error_message,
            extra_data={"audit_id": str(audit_id), "website_url": url},
        )

    return result


async def _persist_success(
    db: AsyncSession,
    audit_id: UUID,
    result: SignalResult,
    profile: ScoringProfile,
) -> None:
    """
    Write a successful result, then the overall score.
    A failed result write leaves the signal in error (best-effort) and re-raises;
    a failed recompute keeps the stored result and is logged for a later recalculation.
    """
    try:
        await mark_success(db, audit_id, result)
    except SQLAlchemyError as exc:
        await db.rollback()
        await mark_error_quietly(db, audit_id, result.signal, f"Could not store result: {exc}")
        raise

    try:
        await recalculate_overall(db, audit_id, profile)
    except SQLAlchemyError as exc:
        await db.rollback()
        logger.error("Overall recompute failed", audit_id=str(audit_id), error=str(exc))
        await record_error(
            db,
            source="scoring",
            action="recalculate-overall",
            message=truncate_error(str(exc)),
            extra_data={"audit_id": str(audit_id), "signal": result.signal.value},
        )


async def mark_error_quietly(db: AsyncSession, audit_id: UUID, signal: SignalName, message: str) -> None:
    """mark_error that logs instead of raising when the database is unavailable."""
    try:
        await mark_error(db, audit_id, signal, message)
    except SQLAlchemyError as exc:
        await db.rollback()
        logger.error("Could not record signal error", audit_id=str(audit_id), signal=signal.value, error=str(exc))
