"""
Structural Validator Engine - markup validity via the W3C Nu validator.

Two strategies, tried in order:
1. Ask the validator to fetch the page itself (GET ?doc=<url>&out=json)
2. Fetch the HTML here and POST it (some sites block the validator's fetcher)

Score = 100 - issues x penalty, clamped to [0, 100]; the penalty comes from
the active scoring settings so recomputation can re-derive it later.
"""

from __future__ import annotations

from typing import Any

import httpx

from app.core.config import get_settings
from app.core.exceptions import UpstreamError
from app.engines.base import (
    EngineStatus,
    SignalEngine,
    SignalName,
    SignalRequest,
    SignalResult,
)
from app.engines.urls import normalize_url

ATTEMPT_ERROR_CHARS = 120


def count_issues(messages: list[dict[str, Any]]) -> tuple[int, int]:
    """(errors, warnings) from validator messages. Warnings are info messages with subType warning."""
    errors = sum(1 for m in messages if m.get("type") == "error")
    warnings = sum(1 for m in messages if m.get("type") == "info" and m.get("subType") == "warning")
    return errors, warnings


def _messages_from(response: httpx.Response, label: str) -> list[dict[str, Any]]:
    if not response.is_success:
        raise UpstreamError(f"{label} returned {response.status_code}: {response.text[:200]}", response.status_code)
    try:
        data = response.json()
    except ValueError as exc:
        raise UpstreamError(f"Unexpected {label} response format") from exc
    messages = data.get("messages") if isinstance(data, dict) else None
    if not isinstance(messages, list):
        raise UpstreamError(f"Unexpected {label} response format")
    return [m for m in messages if isinstance(m, dict)]


class ValidatorEngine(SignalEngine):
    SIGNAL = SignalName.W3C

    def __init__(self, client: httpx.AsyncClient | None = None):
        super().__init__(client)
        self.settings = get_settings()

    async def run(self, request: SignalRequest, client: httpx.AsyncClient) -> SignalResult:
        url = normalize_url(request.website_url)

        try:
            messages = await self._validate_by_reference(client, url)
            attempt = 1
        except (httpx.HTTPError, UpstreamError) as e1:
            self.logger.info("Validator attempt 1 failed", url=url, error=str(e1))
            try:
                messages = await self._validate_by_upload(client, url)
                attempt = 2
            except (httpx.HTTPError, UpstreamError) as e2:
                self.logger.info("Validator attempt 2 failed", url=url, error=str(e2))
                raise UpstreamError(
                    f"Attempt 1: {self._describe(e1)[:ATTEMPT_ERROR_CHARS]}. "
                    f"Attempt 2: {self._describe(e2)[:ATTEMPT_ERROR_CHARS]}"
                ) from e2

        errors, warnings = count_issues(messages)
        issue_count = errors + warnings
        score = round(self.clamp_score(100 - issue_count * request.scoring.w3c_issue_penalty), 2)

        return SignalResult(
            signal=self.SIGNAL,
            audit_id=request.audit_id,
            status=EngineStatus.SUCCESS,
            score=score,
            grade=request.scoring.grade_for(score),
            details={
                "issue_count": issue_count,
                "error_count": errors,
                "warning_count": warnings,
                "attempt": attempt,
                "report_url": str(httpx.URL(self.settings.W3C_VALIDATOR_URL, params={"doc": url})),
            },
        )

    async def _validate_by_reference(self, client: httpx.AsyncClient, url: str) -> list[dict[str, Any]]:
        response = await client.get(
            self.settings.W3C_VALIDATOR_URL,
            params={"doc": url, "out": "json"},
            headers={"User-Agent": self.settings.SIGNAL_USER_AGENT, "Accept": "application/json"},
            timeout=self.settings.W3C_TIMEOUT,
        )
        return _messages_from(response, "W3C API")

    async def _validate_by_upload(self, client: httpx.AsyncClient, url: str) -> list[dict[str, Any]]:
        try:
            page = await client.get(
                url,
                headers={"User-Agent": self.settings.SIGNAL_USER_AGENT},
                timeout=self.settings.W3C_TIMEOUT,
                follow_redirects=True,
            )
        except httpx.HTTPError as exc:
            raise UpstreamError(f"Failed to fetch website HTML: {self._describe(exc)}") from exc

        response = await client.post(
            self.settings.W3C_VALIDATOR_URL,
            params={"out": "json"},
            content=page.text.encode("utf-8"),
            headers={
                "Content-Type": "text/html; charset=utf-8",
                "User-Agent": self.settings.SIGNAL_USER_AGENT,
            },
            timeout=self.settings.W3C_TIMEOUT,
        )
        return _messages_from(response, "W3C POST")

    @staticmethod
    def _describe(exc: Exception) -> str:
        return str(exc) or exc.__class__.__name__
