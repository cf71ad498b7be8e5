"""
Scoring Engine - Aggregates every signal on an audit into one overall score.

Scoring Model:
- Each signal contributes a 0-100 score, or 0 unless its status is success
- W3C is re-derived from the stored issue count with the *current* penalty
- WAVE is stored on the 0-10 AIM scale and multiplied by 10 here
- The manual design score contributes as entered (0 when missing)
- overall = round(sum(score x weight)); grade from the active thresholds

Recomputation only reads persisted state, so it is idempotent and does not
depend on the order in which signals complete.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any
from uuid import UUID

import structlog
from pydantic import BaseModel
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.engines.base import ScoringProfile, SignalEngine, SignalStatus
from app.models.models import Audit

logger = structlog.get_logger(__name__)

ACCESSIBILITY_SCALE = 10


class OverallScore(BaseModel):
    score: int
    grade: str
    contributions: dict[str, float]
    w3c_score: float | None = None
    w3c_grade: str | None = None


# ─────────────────────────────────────────────
# Pure scoring
# ─────────────────────────────────────────────

def _succeeded(audit: Audit, prefix: str) -> bool:
    return getattr(audit, f"{prefix}_status") == SignalStatus.SUCCESS.value


def w3c_score_for(audit: Audit, profile: ScoringProfile) -> float | None:
    """Validator score re-derived from the stored issue count, or None when unavailable."""
    if not _succeeded(audit, "w3c"):
        return None
    issue_count = (audit.w3c_details or {}).get("issue_count")
    if isinstance(issue_count, (int, float)) and not isinstance(issue_count, bool):
        return round(SignalEngine.clamp_score(100 - issue_count * profile.w3c_issue_penalty), 2)
    return audit.w3c_score


def signal_contributions(audit: Audit, profile: ScoringProfile) -> dict[str, float]:
    """0-100 value per weighted input."""
    psi = audit.psi_score if _succeeded(audit, "psi") else None
    wave = audit.wave_score if _succeeded(audit, "wave") else None
    ai = audit.ai_score if _succeeded(audit, "ai") else None

    return {
        "w3c": w3c_score_for(audit, profile) or 0.0,
        "psi_mobile": psi or 0.0,
        "accessibility": (wave or 0.0) * ACCESSIBILITY_SCALE,
        "design": audit.design_score or 0.0,
        "ai": ai or 0.0,
    }


def compute_overall(audit: Audit, profile: ScoringProfile) -> OverallScore:
    contributions = signal_contributions(audit, profile)
    weights = {
        "w3c": profile.weight_w3c,
        "psi_mobile": profile.weight_psi_mobile,
        "accessibility": profile.weight_accessibility,
        "design": profile.weight_design,
        "ai": profile.weight_ai,
    }
    score = round(sum(contributions[k] * weights[k] for k in weights))

    w3c_score = w3c_score_for(audit, profile)
    return OverallScore(
        score=score,
        grade=profile.grade_for(score),
        contributions=contributions,
        w3c_score=w3c_score,
        w3c_grade=profile.grade_for(w3c_score) if w3c_score is not None else None,
    )


# ─────────────────────────────────────────────
# Persistence
# ─────────────────────────────────────────────

async def recalculate_overall(
    db: AsyncSession,
    audit_id: UUID,
    profile: ScoringProfile,
) -> OverallScore | None:
    """Recompute and store one audit's overall score. Returns None for unknown/deleted audits."""
    audit = await db.scalar(
        select(Audit)
        .where(Audit.id == audit_id, Audit.is_deleted.is_(False))
        .execution_options(populate_existing=True)
    )
    if audit is None:
        logger.warning("Recalculation skipped, audit not found", audit_id=str(audit_id))
        return None

    overall = compute_overall(audit, profile)
    values: dict[str, Any] = {
        "overall_score": overall.score,
        "overall_grade": overall.grade,
    }
    if overall.w3c_score is not None:
        values["w3c_score"] = overall.w3c_score
        values["w3c_grade"] = overall.w3c_grade

    await db.execute(update(Audit).where(Audit.id == audit_id).values(**values))
    await db.commit()

    logger.info(
        "Overall score recalculated",
        audit_id=str(audit_id),
        score=overall.score,
        grade=overall.grade,
    )
    return overall


async def recalculate_all_audits(
    db: AsyncSession,
    profile: ScoringProfile,
    since_days: int | None = None,
) -> int:
    """Recompute every non-deleted audit, optionally only those created in the last since_days."""
    query = select(Audit.id).where(Audit.is_deleted.is_(False))
    if since_days is not None:
        cutoff = datetime.now(timezone.utc) - timedelta(days=since_days)
        query = query.where(Audit.created_at >= cutoff)

    audit_ids = list((await db.scalars(query.order_by(Audit.created_at))).all())
    count = 0
    for audit_id in audit_ids:
        if await recalculate_overall(db, audit_id, profile) is not None:
            count += 1

    logger.info("Bulk recalculation complete", count=count, since_days=since_days)
    return count
