"""Sitemap discovery: the first candidate that yields URLs wins."""

from __future__ import annotations

from dataclasses import dataclass, field

import httpx
import structlog
from bs4 import BeautifulSoup

from app.engines.fetching import fetch_text

logger = structlog.get_logger(__name__)


@dataclass
class SitemapResult:
    reachable: bool = False      # some candidate answered 200
    parseable: bool = False      # some candidate yielded at least one URL
    urls: list[str] = field(default_factory=list)
    source: str | None = None


def sitemap_candidates(origin: str, directives: list[str]) -> list[str]:
    """<origin>/sitemap.xml first, then robots directives, deduplicated in order."""
    return list(dict.fromkeys([f"{origin}/sitemap.xml", *directives]))


def parse_sitemap_urls(xml: str) -> list[str]:
    """Every <loc> value that looks like an absolute http(s) URL."""
    if not xml.strip():
        return []
    soup = BeautifulSoup(xml, "xml")
    urls = []
    for loc in soup.find_all("loc"):
        value = loc.get_text(strip=True)
        if value.startswith("http"):
            urls.append(value)
    return urls


async def resolve_sitemap(
    client: httpx.AsyncClient,
    origin: str,
    directives: list[str],
    *,
    timeout: float,
    user_agent: str,
) -> SitemapResult:
    """Try each candidate in order and stop at the first one with URLs. Never raises."""
    result = SitemapResult()

    for candidate in sitemap_candidates(origin, directives):
        fetched = await fetch_text(client, candidate, timeout=timeout, user_agent=user_agent)
        if not fetched.ok:
            continue

        result.reachable = True
        urls = parse_sitemap_urls(fetched.text)
        if urls:
            result.parseable = True
            result.urls = urls
            result.source = candidate
            break

    logger.debug(
        "Sitemap resolved",
        origin=origin,
        reachable=result.reachable,
        parseable=result.parseable,
        url_count=len(result.urls),
    )
    return result
