"""
Signal Status Machine - the shared fetching/success/error lifecycle.

Each signal owns six columns on Audit, named <signal>_status, _last_error,
_fetched_at, _score, _grade and _details.

    idle ──► fetching ──► success
               ▲   │
               │   └────► error
      retry ───┘ (from idle, success or error)

Every transition is a single UPDATE statement. There is no lease or version
check: two concurrent runs of the same signal both write, and the last write
wins. A failed run never touches score, grade or details, so an earlier
success stays readable next to the new error message.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any
from uuid import UUID

import structlog
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import get_settings
from app.engines.base import SignalName, SignalResult, SignalStatus
from app.models.models import Audit

logger = structlog.get_logger(__name__)

UNKNOWN_ERROR = "Unknown error"


def signal_values(signal: SignalName, **values: Any) -> dict[str, Any]:
    """Map generic column names to the signal's prefixed columns."""
    return {f"{signal.value}_{name}": value for name, value in values.items()}


def truncate_error(message: str | None, limit: int | None = None) -> str:
    limit = limit if limit is not None else get_settings().SIGNAL_ERROR_MAX_LENGTH
    text = (message or "").strip() or UNKNOWN_ERROR
    return text[:limit]


async def _apply(db: AsyncSession, audit_id: UUID, values: dict[str, Any]) -> bool:
    result = await db.execute(
        update(Audit)
        .where(Audit.id == audit_id, Audit.is_deleted.is_(False))
        .values(**values)
    )
    await db.commit()
    return result.rowcount > 0


async def mark_fetching(db: AsyncSession, audit_id: UUID, signal: SignalName) -> bool:
    """Enter fetching, clearing the previous error and timestamp. False if the audit is gone."""
    updated = await _apply(db, audit_id, signal_values(
        signal,
        status=SignalStatus.FETCHING.value,
        last_error=None,
        fetched_at=None,
    ))
    logger.info("Signal fetching", audit_id=str(audit_id), signal=signal.value, updated=updated)
    return updated


async def mark_success(db: AsyncSession, audit_id: UUID, result: SignalResult) -> bool:
    """Persist the full result together with the status flip."""
    signal = SignalName(result.signal)
    updated = await _apply(db, audit_id, signal_values(
        signal,
        status=SignalStatus.SUCCESS.value,
        score=result.score,
        grade=result.grade,
        details=result.details,
        fetched_at=datetime.now(timezone.utc),
        last_error=None,
    ))
    logger.info(
        "Signal success",
        audit_id=str(audit_id),
        signal=signal.value,
        score=result.score,
        grade=result.grade,
        updated=updated,
    )
    return updated


async def mark_error(db: AsyncSession, audit_id: UUID, signal: SignalName, message: str | None) -> bool:
    """Record the failure; any previous score, grade and details are left in place."""
    error = truncate_error(message)
    updated = await _apply(db, audit_id, signal_values(
        signal,
        status=SignalStatus.ERROR.value,
        last_error=error,
    ))
    logger.warning("Signal error", audit_id=str(audit_id), signal=signal.value, error=error, updated=updated)
    return updated
