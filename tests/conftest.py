"""
Shared fixtures.

Settings are read from the environment at import time, so the required
variables are set before any app module is imported. Each test gets a fresh
SQLite file database; no Postgres, Redis or Celery broker is needed.
"""

import os
import tempfile
import uuid
from collections.abc import Callable

os.environ.setdefault("SECRET_KEY", "test-secret-key-that-is-at-least-32-characters")
os.environ.setdefault("POSTGRES_DSN", f"sqlite+aiosqlite:///{tempfile.mktemp(suffix='.db')}")
os.environ.setdefault("REDIS_DSN", "redis://localhost:6379/0")
os.environ.setdefault("CELERY_BROKER_URL", "redis://localhost:6379/1")
os.environ.setdefault("CELERY_RESULT_BACKEND", "redis://localhost:6379/2")
os.environ.setdefault("PSI_API_KEY", "test-psi-key")
os.environ.setdefault("WAVE_API_KEY", "test-wave-key")

import httpx
import pytest
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from app.core.database import Base
from app.engines.base import ScoringProfile, SignalRequest
from app.models import models  # noqa: F401


# ─────────────────────────────────────────────
# Database
# ─────────────────────────────────────────────

@pytest.fixture
async def db_engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", poolclass=NullPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return async_sessionmaker(db_engine, expire_on_commit=False, autoflush=False)


@pytest.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


# ─────────────────────────────────────────────
# HTTP
# ─────────────────────────────────────────────

@pytest.fixture
def mock_client() -> Callable[[Callable[[httpx.Request], httpx.Response]], httpx.AsyncClient]:
    """Build an AsyncClient whose every request is answered by handler."""
    def factory(handler):
        return httpx.AsyncClient(transport=httpx.MockTransport(handler))

    return factory


@pytest.fixture
def signal_request() -> Callable[..., SignalRequest]:
    def factory(website_url: str = "https://example.com", **scoring) -> SignalRequest:
        profile = ScoringProfile.defaults().model_copy(update=scoring)
        return SignalRequest(audit_id=uuid.uuid4(), website_url=website_url, scoring=profile)

    return factory
