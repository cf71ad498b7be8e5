"""
Tests for the Celery task wrappers. Task bodies are called directly (no broker).
"""

import uuid

import pytest
from sqlalchemy.exc import OperationalError

from app.services.signal_runner import AuditNotFoundError
from app.workers import signal_tasks
from app.workers.celery_app import celery_app


class TestRunSignalTask:

    def test_missing_audit_is_not_retried(self, monkeypatch):
        async def missing(audit_id, signal, website_url):
            raise AuditNotFoundError(audit_id)

        monkeypatch.setattr(signal_tasks, "_run_signal", missing)
        outcome = signal_tasks.run_signal_task(str(uuid.uuid4()), "ai")
        assert outcome == {"success": False, "error": "Audit not found"}

    def test_returns_advisory_payload(self, monkeypatch):
        async def succeed(audit_id, signal, website_url):
            return {"success": True, "score": 88, "grade": "B"}

        monkeypatch.setattr(signal_tasks, "_run_signal", succeed)
        assert signal_tasks.run_signal_task(str(uuid.uuid4()), "psi") == {"success": True, "score": 88, "grade": "B"}

    def test_routing(self):
        routes = celery_app.conf.task_routes
        assert routes["app.workers.signal_tasks.run_signal_task"] == {"queue": "signals_queue"}
        assert "app.workers.signal_tasks.recalculate_overall_task" in celery_app.tasks

    def test_exhausted_retries_leave_signal_in_error(self, monkeypatch):
        marked = []

        async def database_down(audit_id, signal, website_url):
            raise OperationalError("UPDATE audits", {}, Exception("connection lost"))

        async def record_mark(audit_id, signal, message):
            marked.append((signal, message))

        monkeypatch.setattr(signal_tasks, "_run_signal", database_down)
        monkeypatch.setattr(signal_tasks, "_mark_error", record_mark)
        monkeypatch.setattr(signal_tasks.run_signal_task, "max_retries", 0)

        with pytest.raises(OperationalError):
            signal_tasks.run_signal_task(str(uuid.uuid4()), "wave")

        assert len(marked) == 1
        assert marked[0][0] == "wave"
        assert marked[0][1].startswith("Signal run failed after retries")
