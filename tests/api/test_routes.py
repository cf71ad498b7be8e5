"""
HTTP API tests.

Requests go through httpx's ASGI transport (no lifespan, so no Postgres or
Redis). The database, task dispatch, settings cache and outbound HTTP client
are replaced through FastAPI dependency overrides.
"""

import uuid

import httpx
import pytest

from app.api.deps import get_dispatcher, get_scoring_cache, get_signal_client
from app.core.database import get_db
from app.main import app
from app.services.scoring_settings import ScoringSettingsCache

VALID_SETTINGS = {
    "weight_w3c": 0.2,
    "weight_psi_mobile": 0.2,
    "weight_accessibility": 0.2,
    "weight_design": 0.2,
    "weight_ai": 0.2,
    "w3c_issue_penalty": 1.0,
    "grade_a_min": 85,
    "grade_b_min": 75,
    "grade_c_min": 65,
    "grade_d_min": 50,
    "updated_by": "ops@example.com",
}


@pytest.fixture
def dispatched():
    return []


@pytest.fixture
async def api(session_factory, dispatched):
    async def override_get_db():
        async with session_factory() as session:
            yield session
            await session.commit()

    def record_dispatch(audit_id, signal, website_url=None):
        dispatched.append((audit_id, signal.value, website_url))

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_dispatcher] = lambda: record_dispatch
    app.dependency_overrides[get_scoring_cache] = lambda: ScoringSettingsCache()

    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


async def create(api, **body) -> dict:
    response = await api.post("/api/v1/audits", json={"website_url": "example.com", **body})
    assert response.status_code == 202
    return response.json()


# ─────────────────────────────────────────────
# Audits
# ─────────────────────────────────────────────

class TestAuditRoutes:

    @pytest.mark.asyncio
    async def test_create_starts_every_signal(self, api, dispatched):
        audit = await create(api, company_name="Acme", design_score=80)

        assert audit["website_url"] == "https://example.com"
        assert {name: s["status"] for name, s in audit["signals"].items()} == {
            "w3c": "fetching", "psi": "fetching", "wave": "fetching", "ai": "fetching",
        }
        assert sorted(signal for _, signal, _ in dispatched) == ["ai", "psi", "w3c", "wave"]
        assert audit["overall_score"] == 14

    @pytest.mark.asyncio
    async def test_create_rejects_invalid_url(self, api):
        response = await api.post("/api/v1/audits", json={"website_url": "   "})
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_create_rejects_out_of_range_design_score(self, api):
        response = await api.post("/api/v1/audits", json={"website_url": "example.com", "design_score": 120})
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_get_unknown_audit(self, api):
        response = await api.get(f"/api/v1/audits/{uuid.uuid4()}")
        assert response.status_code == 404
        assert response.json()["detail"] == "Audit not found"

    @pytest.mark.asyncio
    async def test_design_score_update_recomputes(self, api):
        audit = await create(api)
        assert audit["overall_score"] is None

        response = await api.patch(f"/api/v1/audits/{audit['id']}", json={"design_score": 50})

        assert response.status_code == 200
        assert response.json()["design_score"] == 50
        assert response.json()["overall_score"] == 9
        assert response.json()["overall_grade"] == "F"

    @pytest.mark.asyncio
    async def test_soft_delete(self, api):
        audit = await create(api)

        assert (await api.delete(f"/api/v1/audits/{audit['id']}")).status_code == 204
        assert (await api.get(f"/api/v1/audits/{audit['id']}")).status_code == 404


# ─────────────────────────────────────────────
# Signal trigger
# ─────────────────────────────────────────────

class TestSignalTrigger:

    @pytest.mark.asyncio
    async def test_fire_and_forget(self, api, dispatched):
        audit = await create(api)
        dispatched.clear()

        response = await api.post(
            f"/api/v1/audits/{audit['id']}/signals/ai/run",
            json={"website_url": "https://staging.example.com"},
        )

        assert response.status_code == 202
        assert response.json() == {"success": True}
        assert dispatched == [(uuid.UUID(audit["id"]), "ai", "https://staging.example.com")]

    @pytest.mark.asyncio
    async def test_defaults_to_audit_url(self, api, dispatched):
        audit = await create(api)
        dispatched.clear()

        response = await api.post(f"/api/v1/audits/{audit['id']}/signals/w3c/run")

        assert response.status_code == 202
        assert dispatched[0][2] == "https://example.com"

    @pytest.mark.asyncio
    async def test_unknown_signal(self, api):
        audit = await create(api)
        response = await api.post(f"/api/v1/audits/{audit['id']}/signals/lighthouse/run")
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_unknown_audit(self, api):
        response = await api.post(f"/api/v1/audits/{uuid.uuid4()}/signals/ai/run")
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_wait_returns_outcome(self, api, mock_client):
        audit = await create(api)

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"lighthouseResult": {"categories": {"performance": {"score": 0.91}}}})

        async with mock_client(handler) as client:
            app.dependency_overrides[get_signal_client] = lambda: client
            response = await api.post(f"/api/v1/audits/{audit['id']}/signals/psi/run?wait=true")

        assert response.status_code == 200
        assert response.json() == {"success": True, "score": 91.0, "grade": "A"}

        signals = (await api.get(f"/api/v1/audits/{audit['id']}")).json()["signals"]
        assert signals["psi"]["status"] == "success"
        assert signals["psi"]["fetched_at"] is not None

    @pytest.mark.asyncio
    async def test_wait_reports_error(self, api, mock_client):
        audit = await create(api)

        async with mock_client(lambda request: httpx.Response(400, text="Bad key")) as client:
            app.dependency_overrides[get_signal_client] = lambda: client
            response = await api.post(f"/api/v1/audits/{audit['id']}/signals/wave/run?wait=true")

        assert response.status_code == 200
        assert response.json() == {"success": False, "error": "WAVE API error 400: Bad key"}

        signals = (await api.get(f"/api/v1/audits/{audit['id']}")).json()["signals"]
        assert signals["wave"]["status"] == "error"
        assert signals["wave"]["last_error"] == "WAVE API error 400: Bad key"


# ─────────────────────────────────────────────
# Scoring settings
# ─────────────────────────────────────────────

class TestScoringSettingsRoutes:

    @pytest.mark.asyncio
    async def test_get_seeds_defaults(self, api):
        response = await api.get("/api/v1/scoring-settings")
        assert response.status_code == 200
        assert response.json()["weight_w3c"] == 0.27
        assert response.json()["grade_d_min"] == 60

    @pytest.mark.asyncio
    async def test_put_replaces_settings(self, api):
        response = await api.put("/api/v1/scoring-settings", json=VALID_SETTINGS)
        assert response.status_code == 200
        assert response.json()["grade_a_min"] == 85
        assert response.json()["updated_by"] == "ops@example.com"
        assert (await api.get("/api/v1/scoring-settings")).json()["w3c_issue_penalty"] == 1.0

    @pytest.mark.asyncio
    async def test_weights_must_sum_to_one(self, api):
        response = await api.put("/api/v1/scoring-settings", json={**VALID_SETTINGS, "weight_ai": 0.25})
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_weight_tolerance(self, api):
        response = await api.put("/api/v1/scoring-settings", json={**VALID_SETTINGS, "weight_ai": 0.205})
        assert response.status_code == 200

    @pytest.mark.asyncio
    async def test_thresholds_must_decrease(self, api):
        response = await api.put("/api/v1/scoring-settings", json={**VALID_SETTINGS, "grade_b_min": 85})
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_recalculate(self, api):
        first = await create(api, design_score=100)
        await create(api)
        await api.put("/api/v1/scoring-settings", json=VALID_SETTINGS)

        response = await api.post("/api/v1/scoring-settings/recalculate")

        assert response.json() == {"success": True, "count": 2}
        assert (await api.get(f"/api/v1/audits/{first['id']}")).json()["overall_score"] == 20


# ─────────────────────────────────────────────
# Health
# ─────────────────────────────────────────────

class TestHealth:

    @pytest.mark.asyncio
    async def test_liveness(self, api):
        assert (await api.get("/health/live")).json() == {"alive": True}

    @pytest.mark.asyncio
    async def test_readiness(self, api):
        assert (await api.get("/health/ready")).json() == {"ready": True}
