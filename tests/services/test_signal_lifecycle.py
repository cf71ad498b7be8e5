"""
Tests for the signal status machine, the signal runner and the scoring settings cache.
"""

import uuid

import httpx
import pytest
from sqlalchemy import select
from sqlalchemy.exc import OperationalError

from app.engines.base import EngineStatus, ScoringProfile, SignalName, SignalResult
from app.models.models import Audit, ErrorLog, ScoringSettings
from app.services import signal_runner
from app.services.scoring_settings import ScoringSettingsCache, get_active_settings, save_settings
from app.services.signal_runner import AuditNotFoundError, run_signal
from app.services.signal_status import mark_error, mark_fetching, mark_success, truncate_error

CONTENT_PAGE = (
    "<html><head><title>Acme Plumbing Services</title></head><body><h1>Acme</h1>"
    "<p>Call (555) 123-4567</p></body></html>"
)


def homepage_only(request: httpx.Request) -> httpx.Response:
    if request.url.path in ("/", ""):
        return httpx.Response(200, text=CONTENT_PAGE)
    return httpx.Response(404)


async def create_audit(db, **values) -> Audit:
    record = Audit(website_url="https://example.com", **values)
    db.add(record)
    await db.commit()
    return record


async def reload(db, audit_id) -> Audit:
    return await db.get(Audit, audit_id, populate_existing=True)


def success_result(audit_id, score=72.0) -> SignalResult:
    return SignalResult(
        signal=SignalName.AI,
        audit_id=audit_id,
        status=EngineStatus.SUCCESS,
        score=score,
        grade="C",
        details={"version": "1.0"},
    )


# ─────────────────────────────────────────────
# Status Machine
# ─────────────────────────────────────────────

class TestStatusMachine:

    @pytest.mark.asyncio
    async def test_new_audit_is_idle(self, db_session):
        record = await create_audit(db_session)
        assert (await reload(db_session, record.id)).ai_status == "idle"

    @pytest.mark.asyncio
    async def test_success_writes_everything_together(self, db_session):
        record = await create_audit(db_session)
        await mark_fetching(db_session, record.id, SignalName.AI)
        await mark_success(db_session, record.id, success_result(record.id))

        row = await reload(db_session, record.id)
        assert row.ai_status == "success"
        assert row.ai_score == 72.0
        assert row.ai_grade == "C"
        assert row.ai_fetched_at is not None
        assert row.ai_details == {"version": "1.0"}
        assert row.ai_last_error is None

    @pytest.mark.asyncio
    async def test_error_keeps_previous_success_payload(self, db_session):
        record = await create_audit(db_session)
        await mark_success(db_session, record.id, success_result(record.id))
        await mark_fetching(db_session, record.id, SignalName.AI)
        await mark_error(db_session, record.id, SignalName.AI, "x" * 900)

        row = await reload(db_session, record.id)
        assert row.ai_status == "error"
        assert len(row.ai_last_error) == 500
        assert row.ai_score == 72.0
        assert row.ai_details == {"version": "1.0"}
        assert row.ai_fetched_at is None

    @pytest.mark.asyncio
    async def test_retry_clears_error(self, db_session):
        record = await create_audit(db_session)
        await mark_error(db_session, record.id, SignalName.PSI, "boom")
        await mark_fetching(db_session, record.id, SignalName.PSI)

        row = await reload(db_session, record.id)
        assert row.psi_status == "fetching"
        assert row.psi_last_error is None

    @pytest.mark.asyncio
    async def test_signals_are_independent(self, db_session):
        record = await create_audit(db_session)
        await mark_error(db_session, record.id, SignalName.WAVE, "boom")

        row = await reload(db_session, record.id)
        assert row.wave_status == "error"
        assert row.w3c_status == row.psi_status == row.ai_status == "idle"

    @pytest.mark.asyncio
    async def test_deleted_audit_is_not_updated(self, db_session):
        record = await create_audit(db_session, is_deleted=True)
        assert await mark_fetching(db_session, record.id, SignalName.AI) is False

    def test_empty_error_message(self):
        assert truncate_error(None) == "Unknown error"
        assert truncate_error("   ") == "Unknown error"


# ─────────────────────────────────────────────
# Signal Runner
# ─────────────────────────────────────────────

class TestRunSignal:

    @pytest.mark.asyncio
    async def test_success_recomputes_overall(self, db_session, mock_client):
        record = await create_audit(db_session, design_score=50.0)

        async with mock_client(homepage_only) as client:
            result = await run_signal(
                db_session, record.id, SignalName.AI,
                scoring_cache=ScoringSettingsCache(), client=client,
            )

        row = await reload(db_session, record.id)
        assert result.succeeded
        assert row.ai_status == "success"
        assert row.ai_score == result.score
        assert row.ai_grade == result.grade
        assert row.ai_fetched_at is not None
        assert row.overall_score == round(result.score * 0.10 + 50.0 * 0.18)

    @pytest.mark.asyncio
    async def test_failure_is_persisted_and_logged(self, db_session, mock_client):
        record = await create_audit(db_session)

        async with mock_client(lambda request: httpx.Response(500, text="validator down")) as client:
            result = await run_signal(
                db_session, record.id, SignalName.W3C,
                scoring_cache=ScoringSettingsCache(), client=client,
            )

        row = await reload(db_session, record.id)
        assert not result.succeeded
        assert row.w3c_status == "error"
        assert row.w3c_last_error.startswith("Attempt 1:")
        assert row.w3c_score is None

        entries = (await db_session.scalars(select(ErrorLog))).all()
        assert [(e.source, e.action) for e in entries] == [("w3c-fetcher", "run-w3c")]
        assert entries[0].extra_data["audit_id"] == str(record.id)

    @pytest.mark.asyncio
    async def test_website_url_override(self, db_session, mock_client):
        record = await create_audit(db_session)
        hosts: set[str] = set()

        def handler(request: httpx.Request) -> httpx.Response:
            hosts.add(request.url.host)
            return httpx.Response(404)

        async with mock_client(handler) as client:
            await run_signal(
                db_session, record.id, SignalName.AI,
                scoring_cache=ScoringSettingsCache(), website_url="other.example.org", client=client,
            )

        assert hosts == {"other.example.org"}

    @pytest.mark.asyncio
    async def test_unknown_audit(self, db_session):
        with pytest.raises(AuditNotFoundError):
            await run_signal(db_session, uuid.uuid4(), SignalName.AI, scoring_cache=ScoringSettingsCache())

    @pytest.mark.asyncio
    async def test_store_failure_leaves_signal_in_error(self, db_session, mock_client, monkeypatch):
        record = await create_audit(db_session)

        async def store_fails(db, audit_id, result):
            raise OperationalError("UPDATE audits", {}, Exception("disk I/O error"))

        monkeypatch.setattr(signal_runner, "mark_success", store_fails)
        async with mock_client(homepage_only) as client:
            with pytest.raises(OperationalError):
                await run_signal(
                    db_session, record.id, SignalName.AI,
                    scoring_cache=ScoringSettingsCache(), client=client,
                )

        row = await reload(db_session, record.id)
        assert row.ai_status == "error"
        assert row.ai_last_error.startswith("Could not store result")

    @pytest.mark.asyncio
    async def test_recompute_failure_keeps_result(self, db_session, mock_client, monkeypatch):
        record = await create_audit(db_session, design_score=50.0)

        async def recompute_fails(db, audit_id, profile):
            raise OperationalError("UPDATE audits", {}, Exception("database is locked"))

        monkeypatch.setattr(signal_runner, "recalculate_overall", recompute_fails)
        async with mock_client(homepage_only) as client:
            result = await run_signal(
                db_session, record.id, SignalName.AI,
                scoring_cache=ScoringSettingsCache(), client=client,
            )

        row = await reload(db_session, record.id)
        assert result.succeeded
        assert row.ai_status == "success"
        assert row.overall_score is None
        entries = (await db_session.scalars(select(ErrorLog))).all()
        assert [(e.source, e.action) for e in entries] == [("scoring", "recalculate-overall")]


# ─────────────────────────────────────────────
# Scoring Settings
# ─────────────────────────────────────────────

class TestScoringSettings:

    @pytest.mark.asyncio
    async def test_defaults_are_seeded_once(self, db_session):
        first = await get_active_settings(db_session)
        second = await get_active_settings(db_session)
        assert first.id == second.id
        assert first.weight_w3c == 0.27
        assert first.grade_a_min == 90

    @pytest.mark.asyncio
    async def test_save_deactivates_previous(self, db_session):
        await get_active_settings(db_session)
        profile = ScoringProfile.defaults().model_copy(update={"w3c_issue_penalty": 1.0})
        saved = await save_settings(db_session, profile, updated_by="admin@example.com")

        rows = (await db_session.scalars(select(ScoringSettings))).all()
        assert len(rows) == 2
        assert [r.id for r in rows if r.is_active] == [saved.id]

    @pytest.mark.asyncio
    async def test_cache_reads_once_until_invalidated(self, db_session):
        cache = ScoringSettingsCache()
        assert (await cache.get(db_session)).w3c_issue_penalty == 0.5

        await save_settings(
            db_session, ScoringProfile.defaults().model_copy(update={"w3c_issue_penalty": 1.5}),
        )
        assert (await cache.get(db_session)).w3c_issue_penalty == 0.5

        await cache.invalidate()
        assert (await cache.get(db_session)).w3c_issue_penalty == 1.5
