"""
Tests for the aggregate scorer.
"""

import uuid

import pytest

from app.engines.base import ScoringProfile
from app.engines.scoring.engine import (
    compute_overall,
    recalculate_all_audits,
    recalculate_overall,
    signal_contributions,
)
from app.models.models import Audit


def audit(**values) -> Audit:
    defaults = {f"{p}_status": "idle" for p in ("w3c", "psi", "wave", "ai")}
    defaults.update(values)
    return Audit(id=uuid.uuid4(), website_url="https://example.com", is_deleted=False, **defaults)


def full_audit() -> Audit:
    return audit(
        w3c_status="success", w3c_score=90.0, w3c_details={"issue_count": 20},
        psi_status="success", psi_score=80.0,
        wave_status="success", wave_score=7.5,
        ai_status="success", ai_score=60.0,
        design_score=70.0,
    )


class TestComputeOverall:

    def test_weighted_sum(self):
        overall = compute_overall(full_audit(), ScoringProfile.defaults())
        # 90*.27 + 80*.27 + 75*.18 + 70*.18 + 60*.10 = 24.3 + 21.6 + 13.5 + 12.6 + 6
        assert overall.score == 78
        assert overall.grade == "C"
        assert overall.contributions["accessibility"] == 75.0

    def test_non_success_signals_contribute_zero(self):
        record = full_audit()
        record.psi_status = "error"
        record.wave_status = "fetching"
        record.ai_status = "idle"
        contributions = signal_contributions(record, ScoringProfile.defaults())
        assert contributions["psi_mobile"] == 0
        assert contributions["accessibility"] == 0
        assert contributions["ai"] == 0
        assert contributions["w3c"] == 90.0

    def test_w3c_rederived_with_current_penalty(self):
        profile = ScoringProfile.defaults().model_copy(update={"w3c_issue_penalty": 2.0})
        overall = compute_overall(full_audit(), profile)
        assert overall.w3c_score == 60.0
        assert overall.w3c_grade == "D"

    def test_missing_design_score_counts_as_zero(self):
        record = full_audit()
        record.design_score = None
        assert signal_contributions(record, ScoringProfile.defaults())["design"] == 0

    def test_thresholds_from_profile(self):
        profile = ScoringProfile.defaults().model_copy(update={"grade_a_min": 95, "grade_b_min": 85,
                                                               "grade_c_min": 75, "grade_d_min": 50})
        assert compute_overall(full_audit(), profile).grade == "C"


class TestRecalculate:

    @pytest.mark.asyncio
    async def test_persists_overall_and_w3c(self, db_session):
        record = full_audit()
        db_session.add(record)
        await db_session.commit()

        overall = await recalculate_overall(db_session, record.id, ScoringProfile.defaults())
        again = await recalculate_overall(db_session, record.id, ScoringProfile.defaults())

        refreshed = await db_session.get(Audit, record.id, populate_existing=True)
        assert overall.score == again.score == 78
        assert refreshed.overall_score == 78
        assert refreshed.overall_grade == "C"
        assert refreshed.w3c_score == 90.0

    @pytest.mark.asyncio
    async def test_unknown_audit(self, db_session):
        assert await recalculate_overall(db_session, uuid.uuid4(), ScoringProfile.defaults()) is None

    @pytest.mark.asyncio
    async def test_recalculate_all_skips_deleted(self, db_session):
        live = full_audit()
        deleted = full_audit()
        deleted.is_deleted = True
        db_session.add_all([live, deleted])
        await db_session.commit()

        count = await recalculate_all_audits(db_session, ScoringProfile.defaults())

        assert count == 1
        assert (await db_session.get(Audit, deleted.id, populate_existing=True)).overall_score is None
