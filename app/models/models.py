"""
Database Models - audit records, scoring configuration and the error log.

Design decisions:
- UUID primary keys (no sequential int exposure)
- Each signal owns a fixed group of columns on the audit row:
  <prefix>_status, _last_error, _fetched_at, _score, _grade, _details
- Soft deletes via is_deleted/deleted_at; audits are never partially deleted
"""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import (
    Boolean,
    DateTime,
    Float,
    Index,
    Integer,
    String,
    Text,
    Uuid,
    false,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database import Base, JSONType


# ─────────────────────────────────────────────
# Mixins
# ─────────────────────────────────────────────

class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)


class UUIDPrimaryKeyMixin:
    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4, nullable=False)


# ─────────────────────────────────────────────
# Audits
# ─────────────────────────────────────────────

class Audit(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    """One record per site under review, holding every signal's sub-state."""
    __tablename__ = "audit"

    website_url: Mapped[str | None] = mapped_column(String(2000), nullable=True)
    company_name: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Manually entered design score (0-100) and the computed aggregate
    design_score: Mapped[float | None] = mapped_column(Float, nullable=True)
    overall_score: Mapped[float | None] = mapped_column(Float, nullable=True)
    overall_grade: Mapped[str | None] = mapped_column(String(2), nullable=True)

    # Structural validator (W3C)
    w3c_status: Mapped[str] = mapped_column(String(20), default="idle", server_default="idle", nullable=False)
    w3c_last_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    w3c_fetched_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    w3c_score: Mapped[float | None] = mapped_column(Float, nullable=True)
    w3c_grade: Mapped[str | None] = mapped_column(String(2), nullable=True)
    w3c_details: Mapped[dict | None] = mapped_column(JSONType, nullable=True)

    # Performance scanner (PageSpeed Insights, mobile)
    psi_status: Mapped[str] = mapped_column(String(20), default="idle", server_default="idle", nullable=False)
    psi_last_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    psi_fetched_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    psi_score: Mapped[float | None] = mapped_column(Float, nullable=True)
    psi_grade: Mapped[str | None] = mapped_column(String(2), nullable=True)
    psi_details: Mapped[dict | None] = mapped_column(JSONType, nullable=True)

    # Accessibility scanner (WAVE). Score is stored on the 0-10 AIM scale.
    wave_status: Mapped[str] = mapped_column(String(20), default="idle", server_default="idle", nullable=False)
    wave_last_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    wave_fetched_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    wave_score: Mapped[float | None] = mapped_column(Float, nullable=True)
    wave_grade: Mapped[str | None] = mapped_column(String(2), nullable=True)
    wave_details: Mapped[dict | None] = mapped_column(JSONType, nullable=True)

    # AI visibility analyzer
    ai_status: Mapped[str] = mapped_column(String(20), default="idle", server_default="idle", nullable=False)
    ai_last_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    ai_fetched_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    ai_score: Mapped[float | None] = mapped_column(Float, nullable=True)
    ai_grade: Mapped[str | None] = mapped_column(String(2), nullable=True)
    ai_details: Mapped[dict | None] = mapped_column(JSONType, nullable=True)

    is_deleted: Mapped[bool] = mapped_column(Boolean, default=False, server_default=false(), nullable=False)
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("ix_audit_created_at", "created_at"),
        Index("ix_audit_is_deleted", "is_deleted"),
    )


# ─────────────────────────────────────────────
# Scoring Settings
# ─────────────────────────────────────────────

class ScoringSettings(Base, UUIDPrimaryKeyMixin):
    """
    Weights and grade thresholds used by the aggregate scorer.
    Exactly one row is active; the weights-sum rule is enforced by the API.
    """
    __tablename__ = "scoring_settings"

    weight_w3c: Mapped[float] = mapped_column(Float, nullable=False)
    weight_psi_mobile: Mapped[float] = mapped_column(Float, nullable=False)
    weight_accessibility: Mapped[float] = mapped_column(Float, nullable=False)
    weight_design: Mapped[float] = mapped_column(Float, nullable=False)
    weight_ai: Mapped[float] = mapped_column(Float, nullable=False)
    w3c_issue_penalty: Mapped[float] = mapped_column(Float, nullable=False)
    grade_a_min: Mapped[int] = mapped_column(Integer, nullable=False)
    grade_b_min: Mapped[int] = mapped_column(Integer, nullable=False)
    grade_c_min: Mapped[int] = mapped_column(Integer, nullable=False)
    grade_d_min: Mapped[int] = mapped_column(Integer, nullable=False)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    updated_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    __table_args__ = (
        Index("ix_scoring_settings_is_active", "is_active"),
    )


# ─────────────────────────────────────────────
# Error Log
# ─────────────────────────────────────────────

class ErrorLog(Base, UUIDPrimaryKeyMixin):
    """Operator-facing record of fetcher failures."""
    __tablename__ = "error_logs"

    severity: Mapped[str] = mapped_column(String(20), default="error", nullable=False)
    source: Mapped[str] = mapped_column(String(100), nullable=False)
    action: Mapped[str] = mapped_column(String(100), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    extra_data: Mapped[dict | None] = mapped_column(JSONType, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (
        Index("ix_error_logs_created_at", "created_at"),
        Index("ix_error_logs_action", "action"),
    )
