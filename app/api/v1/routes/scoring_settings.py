"""Scoring settings: read, replace, and bulk recomputation of overall scores."""

from __future__ import annotations

from datetime import datetime

import structlog
from fastapi import APIRouter, Query
from pydantic import BaseModel, ConfigDict, Field, model_validator

from app.api.deps import ScoringCache
from app.core.database import DBSession
from app.engines.base import ScoringProfile
from app.engines.scoring.engine import recalculate_all_audits
from app.services.scoring_settings import get_active_settings, save_settings

logger = structlog.get_logger(__name__)
router = APIRouter()

WEIGHT_SUM_TOLERANCE = 0.01


# ─────────────────────────────────────────────
# Schemas
# ─────────────────────────────────────────────

class ScoringSettingsUpdate(BaseModel):
    weight_w3c: float = Field(ge=0, le=1)
    weight_psi_mobile: float = Field(ge=0, le=1)
    weight_accessibility: float = Field(ge=0, le=1)
    weight_design: float = Field(ge=0, le=1)
    weight_ai: float = Field(ge=0, le=1)
    w3c_issue_penalty: float = Field(ge=0)
    grade_a_min: int = Field(ge=0, le=100)
    grade_b_min: int = Field(ge=0, le=100)
    grade_c_min: int = Field(ge=0, le=100)
    grade_d_min: int = Field(ge=0, le=100)
    updated_by: str | None = Field(None, max_length=255)

    @model_validator(mode="after")
    def validate_consistency(self) -> ScoringSettingsUpdate:
        total = self.weight_w3c + self.weight_psi_mobile + self.weight_accessibility + self.weight_design + self.weight_ai
        if abs(total - 1.0) > WEIGHT_SUM_TOLERANCE:
            raise ValueError(f"Weights must sum to 1.00 (got {total:.2f})")
        if not self.grade_a_min > self.grade_b_min > self.grade_c_min > self.grade_d_min:
            raise ValueError("Grade thresholds must be strictly decreasing: A > B > C > D")
        return self

    def to_profile(self) -> ScoringProfile:
        return ScoringProfile(**self.model_dump(exclude={"updated_by"}))


class ScoringSettingsResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    weight_w3c: float
    weight_psi_mobile: float
    weight_accessibility: float
    weight_design: float
    weight_ai: float
    w3c_issue_penalty: float
    grade_a_min: int
    grade_b_min: int
    grade_c_min: int
    grade_d_min: int
    updated_by: str | None
    updated_at: datetime


class RecalculateResponse(BaseModel):
    success: bool = True
    count: int


# ─────────────────────────────────────────────
# Routes
# ─────────────────────────────────────────────

@router.get("", response_model=ScoringSettingsResponse, summary="Get the active scoring settings")
async def get_scoring_settings(db: DBSession) -> ScoringSettingsResponse:
    return ScoringSettingsResponse.model_validate(await get_active_settings(db))


@router.put("", response_model=ScoringSettingsResponse, summary="Replace the active scoring settings")
async def update_scoring_settings(
    request: ScoringSettingsUpdate,
    db: DBSession,
    scoring_cache: ScoringCache,
) -> ScoringSettingsResponse:
    row = await save_settings(db, request.to_profile(), updated_by=request.updated_by)
    await scoring_cache.invalidate()
    return ScoringSettingsResponse.model_validate(row)


@router.post(
    "/recalculate",
    response_model=RecalculateResponse,
    summary="Recompute overall scores with the active settings",
)
async def recalculate_scores(
    db: DBSession,
    scoring_cache: ScoringCache,
    since_days: int | None = Query(None, ge=1, description="Only audits created in the last N days"),
) -> RecalculateResponse:
    profile = await scoring_cache.get(db)
    count = await recalculate_all_audits(db, profile, since_days=since_days)
    return RecalculateResponse(count=count)
