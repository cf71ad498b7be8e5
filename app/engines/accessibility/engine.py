"""
Accessibility Engine - WebAIM WAVE API.

The score is kept on WAVE's own 0-10 AIM scale. When the API does not return
statistics.AIMscore, an estimate is derived from the category counts:

    density = errors / max(1, structure elements)
    impact  = errors*3 + alerts + contrast*2 + density*1000
    score   = 10 - log1p(impact) / log1p(200) * 9      (clamped to 1..10)

Grades are computed on the score normalised to 0-100.
"""

from __future__ import annotations

import math
from typing import Any
from urllib.parse import quote

import httpx

from app.core.config import get_settings
from app.core.exceptions import SignalConfigurationError, UpstreamError
from app.engines.base import (
    EngineStatus,
    SignalEngine,
    SignalName,
    SignalRequest,
    SignalResult,
)
from app.engines.fetching import send_with_retry
from app.engines.urls import normalize_url

REPORT_URL = "https://wave.webaim.org/report#/{}"
AIM_MIN = 1.0
AIM_MAX = 10.0


def _one_decimal(value: float) -> float:
    # half-up, not banker's rounding
    return math.floor(value * 10 + 0.5) / 10


def _category_count(categories: dict[str, Any], name: str, default: int = 0) -> int:
    entry = categories.get(name)
    if isinstance(entry, dict) and isinstance(entry.get("count"), (int, float)):
        return int(entry["count"])
    return default


def official_aim_score(raw: Any) -> float | None:
    if isinstance(raw, bool) or not isinstance(raw, (int, float)) or raw < 0:
        return None
    return _one_decimal(max(AIM_MIN, min(AIM_MAX, raw)))


def estimated_aim_score(errors: int, alerts: int, contrast: int, structure: int) -> float:
    density = errors / max(1, structure)
    impact = errors * 3 + alerts + contrast * 2 + density * 1000
    raw = 10 - (math.log1p(impact) / math.log1p(200)) * 9
    return _one_decimal(max(AIM_MIN, min(AIM_MAX, raw)))


class AccessibilityEngine(SignalEngine):
    SIGNAL = SignalName.WAVE

    def __init__(self, client: httpx.AsyncClient | None = None):
        super().__init__(client)
        self.settings = get_settings()

    async def run(self, request: SignalRequest, client: httpx.AsyncClient) -> SignalResult:
        if not self.settings.WAVE_API_KEY:
            raise SignalConfigurationError("WAVE_API_KEY not configured")

        url = normalize_url(request.website_url)

        try:
            response = await send_with_retry(
                client,
                "GET",
                self.settings.WAVE_API_URL,
                attempts=self.settings.SIGNAL_MAX_ATTEMPTS,
                timeout=self.settings.WAVE_TIMEOUT,
                params={
                    "key": self.settings.WAVE_API_KEY,
                    "url": url,
                    "reporttype": 1,
                    "format": "json",
                },
            )
        except httpx.TransportError as exc:
            raise UpstreamError(f"WAVE fetch failed: {str(exc) or exc.__class__.__name__}") from exc

        if not response.is_success:
            raise UpstreamError(
                f"WAVE API error {response.status_code}: {response.text[:200]}",
                response.status_code,
            )

        try:
            data = response.json()
        except ValueError as exc:
            raise UpstreamError("WAVE API returned invalid JSON") from exc

        categories = data.get("categories") if isinstance(data, dict) else None
        if not isinstance(categories, dict):
            raise UpstreamError("Could not extract categories from WAVE response")

        errors = _category_count(categories, "error")
        alerts = _category_count(categories, "alert")
        contrast = _category_count(categories, "contrast")
        structure = _category_count(categories, "structure", default=1)

        statistics = data.get("statistics")
        raw_aim = statistics.get("AIMscore") if isinstance(statistics, dict) else None
        score = official_aim_score(raw_aim)
        if score is not None:
            source = "statistics.AIMscore"
        else:
            score = estimated_aim_score(errors, alerts, contrast, structure)
            source = "fallback"
            self.logger.warning("AIM score fallback used", raw_aim=raw_aim, computed=score)

        return SignalResult(
            signal=self.SIGNAL,
            audit_id=request.audit_id,
            status=EngineStatus.SUCCESS,
            score=score,
            grade=request.scoring.grade_for(score * 10),
            details={
                "errors": errors,
                "alerts": alerts,
                "contrast": contrast,
                "structure": structure,
                "aim_source": source,
                "raw_aim": raw_aim if source == "statistics.AIMscore" else None,
                "scale": "0-10",
                "report_url": REPORT_URL.format(quote(url, safe="")),
            },
        )
