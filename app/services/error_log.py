"""Operator-facing error log. Writing is best-effort and never masks the original failure."""

from __future__ import annotations

from typing import Any

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.models import ErrorLog

logger = structlog.get_logger(__name__)


async def record_error(
    db: AsyncSession,
    *,
    source: str,
    action: str,
    message: str,
    severity: str = "error",
    extra_data: dict[str, Any] | None = None,
) -> None:
    try:
        db.add(ErrorLog(
            severity=severity,
            source=source,
            action=action,
            message=message,
            extra_data=extra_data,
        ))
        await db.commit()
    except SQLAlchemyError as exc:
        await db.rollback()
        logger.warning("Failed to write error log", action=action, error=str(exc))
