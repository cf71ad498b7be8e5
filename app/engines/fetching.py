"""
Bounded HTTP fetches shared by the signal engines.

Every outbound request is capped twice: by its own wall-clock timeout and by the
number of characters read from the body. Transport failures are returned as a
status-0 result rather than raised, so callers decide whether a failure is fatal.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass

import httpx
import structlog

logger = structlog.get_logger(__name__)


@dataclass
class FetchedText:
    """Outcome of a single bounded GET."""
    url: str
    status_code: int
    text: str = ""
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.status_code == 200


async def _read_capped(
    client: httpx.AsyncClient,
    url: str,
    headers: dict[str, str] | None,
    timeout: float,
    max_chars: int | None,
) -> FetchedText:
    async with client.stream("GET", url, headers=headers, timeout=timeout, follow_redirects=True) as response:
        chunks: list[str] = []
        size = 0
        async for chunk in response.aiter_text():
            chunks.append(chunk)
            size += len(chunk)
            if max_chars is not None and size >= max_chars:
                break
        text = "".join(chunks)
        if max_chars is not None:
            text = text[:max_chars]
        return FetchedText(url=url, status_code=response.status_code, text=text)


async def fetch_text(
    client: httpx.AsyncClient,
    url: str,
    *,
    timeout: float,
    max_chars: int | None = None,
    user_agent: str | None = None,
) -> FetchedText:
    """
    GET a URL, reading at most max_chars characters, within timeout seconds.

    Never raises for network-level problems: DNS failures, refused connections,
    timeouts and malformed redirect targets all yield status_code=0.
    """
    headers = {"User-Agent": user_agent} if user_agent else None
    try:
        return await asyncio.wait_for(
            _read_capped(client, url, headers, timeout, max_chars),
            timeout=timeout,
        )
    except (httpx.HTTPError, httpx.InvalidURL, asyncio.TimeoutError) as exc:
        logger.debug("Bounded fetch failed", url=url, error=str(exc) or exc.__class__.__name__)
        return FetchedText(url=url, status_code=0, error=str(exc) or exc.__class__.__name__)


async def send_with_retry(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    *,
    attempts: int,
    timeout: float,
    **kwargs,
) -> httpx.Response:
    """
    Issue a request, retrying transport failures (connect errors, timeouts)
    up to attempts times in total. HTTP error statuses are returned, not retried.
    """
    for attempt in range(1, max(1, attempts)):
        try:
            return await client.request(method, url, timeout=timeout, **kwargs)
        except httpx.TransportError as exc:
            logger.warning(
                "Transport failure, retrying",
                url=url,
                attempt=attempt,
                error=str(exc) or exc.__class__.__name__,
            )
    return await client.request(method, url, timeout=timeout, **kwargs)
