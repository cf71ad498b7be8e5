"""
Fetch-viability probing.

Each probe page is requested once per client identity. An attempt succeeds
when the response is neither a blocking status nor a challenge interstitial.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field

import httpx
import structlog

from app.engines.fetching import fetch_text

logger = structlog.get_logger(__name__)

VIABILITY_MAX = 15
CHALLENGE_STATUSES = frozenset({403, 429, 503})
CHALLENGE_MARKERS = (
    "captcha",
    "cloudflare",
    "attention required",
    "verify you are human",
    "enable javascript",
    "just a moment",
)


@dataclass
class ProbeAttempt:
    url: str
    user_agent: str
    status_code: int
    challenged: bool
    chars: int

    @property
    def succeeded(self) -> bool:
        # status 0 means the fetch itself failed
        return self.status_code != 0 and not self.challenged


@dataclass
class ViabilityResult:
    attempts: list[ProbeAttempt] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.attempts)

    @property
    def successful(self) -> int:
        return sum(1 for a in self.attempts if a.succeeded)

    @property
    def score(self) -> int:
        if not self.attempts:
            return 0
        return round(VIABILITY_MAX * self.successful / self.total)


def is_challenge(body: str, status_code: int) -> bool:
    if status_code in CHALLENGE_STATUSES:
        return True
    lowered = body.lower()
    return any(marker in lowered for marker in CHALLENGE_MARKERS)


async def probe_viability(
    client: httpx.AsyncClient,
    pages: list[str],
    user_agents: list[str],
    *,
    max_pages: int,
    timeout: float,
    max_chars: int,
    concurrency: int,
) -> ViabilityResult:
    """
    Probe the first max_pages pages under every identity.
    Attempts run concurrently; results are ordered url-major, identity-minor.
    """
    semaphore = asyncio.Semaphore(max(1, concurrency))

    async def attempt(url: str, user_agent: str) -> ProbeAttempt:
        async with semaphore:
            fetched = await fetch_text(
                client, url, timeout=timeout, max_chars=max_chars, user_agent=user_agent,
            )
        if fetched.status_code == 0:
            return ProbeAttempt(url=url, user_agent=user_agent, status_code=0, challenged=False, chars=0)
        return ProbeAttempt(
            url=url,
            user_agent=user_agent,
            status_code=fetched.status_code,
            challenged=is_challenge(fetched.text, fetched.status_code),
            chars=len(fetched.text),
        )

    attempts = await asyncio.gather(*[
        attempt(url, ua)
        for url in pages[:max_pages]
        for ua in user_agents
    ])
    result = ViabilityResult(attempts=list(attempts))
    logger.debug("Viability probed", successful=result.successful, total=result.total, score=result.score)
    return result
