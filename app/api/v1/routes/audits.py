"""
Audit API Routes

No business logic lives here.
Routes validate input, call services, return responses.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any
from uuid import UUID

import structlog
from fastapi import APIRouter, HTTPException, Response, status
from pydantic import BaseModel, Field, field_validator
from sqlalchemy import select

from app.api.deps import Dispatcher, ScoringCache
from app.core.database import DBSession
from app.core.exceptions import InvalidURLError
from app.engines.base import SignalName
from app.engines.scoring.engine import recalculate_overall
from app.engines.urls import normalize_url
from app.models.models import Audit
from app.services.signal_status import mark_fetching

logger = structlog.get_logger(__name__)
router = APIRouter()


# ─────────────────────────────────────────────
# Request / Response Schemas
# ─────────────────────────────────────────────

class CreateAuditRequest(BaseModel):
    website_url: str
    company_name: str | None = Field(None, max_length=255)
    design_score: float | None = Field(None, ge=0, le=100)

    @field_validator("website_url")
    @classmethod
    def validate_website_url(cls, v: str) -> str:
        try:
            return normalize_url(v)
        except InvalidURLError as exc:
            raise ValueError(str(exc)) from exc


class UpdateAuditRequest(BaseModel):
    company_name: str | None = Field(None, max_length=255)
    design_score: float | None = Field(None, ge=0, le=100)


class SignalStateResponse(BaseModel):
    status: str
    last_error: str | None
    fetched_at: datetime | None
    score: float | None
    grade: str | None
    details: dict[str, Any] | None


class AuditDetailResponse(BaseModel):
    id: UUID
    website_url: str | None
    company_name: str | None
    design_score: float | None
    overall_score: float | None
    overall_grade: str | None
    signals: dict[str, SignalStateResponse]
    created_at: datetime
    updated_at: datetime


def to_detail(audit: Audit) -> AuditDetailResponse:
    return AuditDetailResponse(
        id=audit.id,
        website_url=audit.website_url,
        company_name=audit.company_name,
        design_score=audit.design_score,
        overall_score=audit.overall_score,
        overall_grade=audit.overall_grade,
        signals={
            signal.value: SignalStateResponse(
                status=getattr(audit, f"{signal.value}_status"),
                last_error=getattr(audit, f"{signal.value}_last_error"),
                fetched_at=getattr(audit, f"{signal.value}_fetched_at"),
                score=getattr(audit, f"{signal.value}_score"),
                grade=getattr(audit, f"{signal.value}_grade"),
                details=getattr(audit, f"{signal.value}_details"),
            )
            for signal in SignalName
        },
        created_at=audit.created_at,
        updated_at=audit.updated_at,
    )


async def load_audit(db: DBSession, audit_id: UUID) -> Audit:
    audit = await db.scalar(
        select(Audit)
        .where(Audit.id == audit_id, Audit.is_deleted.is_(False))
        .execution_options(populate_existing=True)
    )
    if not audit:
        raise HTTPException(status_code=404, detail="Audit not found")
    return audit


# ─────────────────────────────────────────────
# Routes
# ─────────────────────────────────────────────

@router.post(
    "",
    response_model=AuditDetailResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Create an audit and start every signal",
    description="Creates the audit record and enqueues all signal fetchers. Poll GET /api/v1/audits/{id} for progress.",
)
async def create_audit(
    request: CreateAuditRequest,
    db: DBSession,
    dispatch: Dispatcher,
    scoring_cache: ScoringCache,
) -> AuditDetailResponse:
    audit = Audit(
        website_url=request.website_url,
        company_name=request.company_name,
        design_score=request.design_score,
    )
    db.add(audit)
    await db.commit()
    await db.refresh(audit)

    if request.design_score is not None:
        await recalculate_overall(db, audit.id, await scoring_cache.get(db))

    for signal in SignalName:
        await mark_fetching(db, audit.id, signal)
        dispatch(audit.id, signal, audit.website_url)

    logger.info("Audit created", audit_id=str(audit.id), website_url=audit.website_url)
    return to_detail(await load_audit(db, audit.id))


@router.get(
    "/{audit_id}",
    response_model=AuditDetailResponse,
    summary="Get an audit with every signal's state",
)
async def get_audit(audit_id: UUID, db: DBSession) -> AuditDetailResponse:
    return to_detail(await load_audit(db, audit_id))


@router.patch(
    "/{audit_id}",
    response_model=AuditDetailResponse,
    summary="Update company name or the manual design score",
)
async def update_audit(
    audit_id: UUID,
    request: UpdateAuditRequest,
    db: DBSession,
    scoring_cache: ScoringCache,
) -> AuditDetailResponse:
    audit = await load_audit(db, audit_id)
    changes = request.model_dump(exclude_unset=True)
    for field, value in changes.items():
        setattr(audit, field, value)
    await db.commit()

    if "design_score" in changes:
        await recalculate_overall(db, audit_id, await scoring_cache.get(db))

    logger.info("Audit updated", audit_id=str(audit_id), fields=sorted(changes))
    return to_detail(await load_audit(db, audit_id))


@router.delete(
    "/{audit_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Soft-delete an audit",
)
async def delete_audit(audit_id: UUID, db: DBSession) -> Response:
    audit = await load_audit(db, audit_id)
    audit.is_deleted = True
    audit.deleted_at = datetime.now(timezone.utc)
    await db.commit()

    logger.info("Audit deleted", audit_id=str(audit_id))
    return Response(status_code=status.HTTP_204_NO_CONTENT)
