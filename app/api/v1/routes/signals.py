"""
Signal trigger route.

By default the run is fire-and-forget: the signal flips to fetching, a task is
enqueued, and the caller re-reads the audit for the outcome. ?wait=true runs
the fetcher inside the request instead.
"""

from __future__ import annotations

from uuid import UUID

import structlog
from fastapi import APIRouter, Body, HTTPException, Query, Response, status
from pydantic import BaseModel

from app.api.deps import Dispatcher, ScoringCache, SignalClient
from app.api.v1.routes.audits import load_audit
from app.core.database import DBSession
from app.engines.base import SignalName
from app.services.signal_runner import AuditNotFoundError, run_signal
from app.services.signal_status import mark_fetching

logger = structlog.get_logger(__name__)
router = APIRouter()


class RunSignalRequest(BaseModel):
    website_url: str | None = None


class RunSignalResponse(BaseModel):
    success: bool
    score: float | None = None
    grade: str | None = None
    error: str | None = None


@router.post(
    "/{audit_id}/signals/{signal}/run",
    response_model=RunSignalResponse,
    response_model_exclude_none=True,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Run (or re-run) one signal fetcher",
)
async def trigger_signal(
    audit_id: UUID,
    signal: SignalName,
    db: DBSession,
    dispatch: Dispatcher,
    scoring_cache: ScoringCache,
    client: SignalClient,
    response: Response,
    request: RunSignalRequest | None = Body(None),
    wait: bool = Query(False, description="Run in-request and return the outcome"),
) -> RunSignalResponse:
    audit = await load_audit(db, audit_id)
    website_url = (request.website_url if request else None) or audit.website_url

    if not wait:
        await mark_fetching(db, audit_id, signal)
        dispatch(audit_id, signal, website_url)
        logger.info("Signal enqueued", audit_id=str(audit_id), signal=signal.value)
        return RunSignalResponse(success=True)

    try:
        result = await run_signal(
            db,
            audit_id,
            signal,
            scoring_cache=scoring_cache,
            website_url=website_url,
            client=client,
        )
    except AuditNotFoundError:
        raise HTTPException(status_code=404, detail="Audit not found")

    response.status_code = status.HTTP_200_OK
    if result.succeeded:
        return RunSignalResponse(success=True, score=result.score, grade=result.grade)
    return RunSignalResponse(success=False, error=result.error_message)
