"""
Scoring settings: the single active row, its read-through cache, and updates.

The cache object is created by whoever needs it (request handler, task) and
passed down explicitly. Saving settings invalidates it.
"""

from __future__ import annotations

import structlog
from redis.exceptions import RedisError
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import get_settings
from app.core.redis import CacheManager
from app.engines.base import ScoringProfile
from app.models.models import ScoringSettings

logger = structlog.get_logger(__name__)

CACHE_KEY = "scoring_settings:active"


async def get_active_settings(db: AsyncSession) -> ScoringSettings:
    """The active row, seeded from configuration defaults when none exists."""
    row = await db.scalar(
        select(ScoringSettings)
        .where(ScoringSettings.is_active.is_(True))
        .order_by(ScoringSettings.updated_at.desc())
        .limit(1)
    )
    if row is not None:
        return row

    row = ScoringSettings(**ScoringProfile.defaults().model_dump(), is_active=True, updated_by="system")
    db.add(row)
    await db.commit()
    await db.refresh(row)
    logger.info("Default scoring settings seeded")
    return row


async def save_settings(db: AsyncSession, profile: ScoringProfile, updated_by: str | None = None) -> ScoringSettings:
    """Replace the active row. Earlier rows are kept, deactivated, as history."""
    await db.execute(
        update(ScoringSettings).where(ScoringSettings.is_active.is_(True)).values(is_active=False)
    )
    row = ScoringSettings(**profile.model_dump(), is_active=True, updated_by=updated_by)
    db.add(row)
    await db.commit()
    await db.refresh(row)
    logger.info("Scoring settings updated", updated_by=updated_by)
    return row


class ScoringSettingsCache:
    """
    Lazily populated read-through cache of the active ScoringProfile.

    Lookup order: this instance, then Redis (when a CacheManager is given),
    then the database. Redis failures fall back to the database.
    """

    def __init__(self, cache: CacheManager | None = None, ttl: int | None = None):
        self.cache = cache
        self.ttl = ttl if ttl is not None else get_settings().SCORING_SETTINGS_CACHE_TTL
        self._profile: ScoringProfile | None = None

    async def get(self, db: AsyncSession) -> ScoringProfile:
        if self._profile is not None:
            return self._profile

        cached = await self._read_shared()
        if cached is not None:
            self._profile = cached
            return cached

        row = await get_active_settings(db)
        self._profile = ScoringProfile.model_validate(row)
        await self._write_shared(self._profile)
        return self._profile

    async def invalidate(self) -> None:
        self._profile = None
        if self.cache is None:
            return
        try:
            await self.cache.delete(CACHE_KEY)
        except RedisError as exc:
            logger.warning("Scoring settings cache invalidation failed", error=str(exc))

    async def _read_shared(self) -> ScoringProfile | None:
        if self.cache is None:
            return None
        try:
            raw = await self.cache.get(CACHE_KEY)
        except RedisError as exc:
            logger.warning("Scoring settings cache read failed", error=str(exc))
            return None
        return ScoringProfile.model_validate_json(raw) if raw else None

    async def _write_shared(self, profile: ScoringProfile) -> None:
        if self.cache is None:
            return
        try:
            await self.cache.set(CACHE_KEY, profile.model_dump_json(), ttl=self.ttl)
        except RedisError as exc:
            logger.warning("Scoring settings cache write failed", error=str(exc))
