"""
Performance Engine - mobile performance score from the PageSpeed Insights API.

One automatic retry for transport failures (connect errors, timeouts); an
HTTP error status from the API is final.
"""

from __future__ import annotations

from urllib.parse import quote

import httpx

from app.core.config import get_settings
from app.core.exceptions import SignalConfigurationError, UpstreamError
from app.core.rule_engine import get_nested_value
from app.engines.base import (
    EngineStatus,
    SignalEngine,
    SignalName,
    SignalRequest,
    SignalResult,
)
from app.engines.fetching import send_with_retry
from app.engines.urls import normalize_url

REPORT_URL = "https://pagespeed.web.dev/report?url={}"


class PerformanceEngine(SignalEngine):
    SIGNAL = SignalName.PSI
    STRATEGY = "mobile"

    def __init__(self, client: httpx.AsyncClient | None = None):
        super().__init__(client)
        self.settings = get_settings()

    async def run(self, request: SignalRequest, client: httpx.AsyncClient) -> SignalResult:
        if not self.settings.PSI_API_KEY:
            raise SignalConfigurationError("PSI_API_KEY not configured")

        url = normalize_url(request.website_url)

        try:
            response = await send_with_retry(
                client,
                "GET",
                self.settings.PSI_API_URL,
                attempts=self.settings.SIGNAL_MAX_ATTEMPTS,
                timeout=self.settings.PSI_TIMEOUT,
                params={
                    "url": url,
                    "strategy": self.STRATEGY,
                    "category": "performance",
                    "key": self.settings.PSI_API_KEY,
                },
            )
        except httpx.TimeoutException as exc:
            raise UpstreamError("PSI API timed out") from exc
        except httpx.TransportError as exc:
            raise UpstreamError(f"Fetch failed: {str(exc) or exc.__class__.__name__}") from exc

        if not response.is_success:
            raise UpstreamError(
                f"PSI API error {response.status_code}: {response.text[:200]}",
                response.status_code,
            )

        try:
            data = response.json()
        except ValueError as exc:
            raise UpstreamError("PSI API returned invalid JSON") from exc

        raw_score = get_nested_value(data, "lighthouseResult.categories.performance.score")
        if not isinstance(raw_score, (int, float)) or isinstance(raw_score, bool):
            raise UpstreamError("Could not extract performance score from PSI response")

        score = round(raw_score * 100)
        return SignalResult(
            signal=self.SIGNAL,
            audit_id=request.audit_id,
            status=EngineStatus.SUCCESS,
            score=score,
            grade=request.scoring.grade_for(score),
            details={
                "strategy": self.STRATEGY,
                "raw_score": raw_score,
                "report_url": REPORT_URL.format(quote(url, safe="")),
            },
        )
