"""
Robots directive analysis.

Only the rules that matter for AI crawlers are interpreted: a blanket
"Disallow: /" for the wildcard agent, the same rule for three named
AI agents, and every Sitemap directive. Anything else in the file is ignored.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field

import httpx
import structlog

from app.engines.fetching import fetch_text

logger = structlog.get_logger(__name__)

RAW_SNIPPET_CHARS = 500

USER_AGENT_RE = re.compile(r"^User-agent:\s*(.+)", re.IGNORECASE)
DISALLOW_RE = re.compile(r"^Disallow:\s*(.+)", re.IGNORECASE)
SITEMAP_RE = re.compile(r"^Sitemap:\s*(.+)", re.IGNORECASE)

# lower-cased agent token -> flag on RobotsAnalysis
NAMED_AGENT_FLAGS = {
    "gptbot": "gptbot_blocked",
    "oai-searchbot": "oai_searchbot_blocked",
    "chatgpt-user": "chatgpt_user_blocked",
}


@dataclass
class RobotsAnalysis:
    reachable: bool = False
    status_code: int = 0
    disallow_all: bool = False
    gptbot_blocked: bool = False
    oai_searchbot_blocked: bool = False
    chatgpt_user_blocked: bool = False
    sitemap_directives: list[str] = field(default_factory=list)
    raw_snippet: str = ""


def parse_robots(text: str, status_code: int) -> RobotsAnalysis:
    """Interpret a robots file body. A non-200 status leaves every flag permissive."""
    analysis = RobotsAnalysis(reachable=status_code == 200, status_code=status_code)
    if not analysis.reachable:
        return analysis

    analysis.raw_snippet = text[:RAW_SNIPPET_CHARS]
    current_agent = ""

    for raw_line in text.splitlines():
        line = raw_line.strip()

        agent_match = USER_AGENT_RE.match(line)
        if agent_match:
            current_agent = agent_match.group(1).strip().lower()
            continue

        sitemap_match = SITEMAP_RE.match(line)
        if sitemap_match:
            analysis.sitemap_directives.append(sitemap_match.group(1).strip())
            continue

        disallow_match = DISALLOW_RE.match(line)
        if disallow_match and disallow_match.group(1).strip() == "/":
            if current_agent == "*":
                analysis.disallow_all = True
            flag = NAMED_AGENT_FLAGS.get(current_agent)
            if flag:
                setattr(analysis, flag, True)

    return analysis


async def fetch_robots(
    client: httpx.AsyncClient,
    origin: str,
    *,
    timeout: float,
    user_agent: str,
) -> RobotsAnalysis:
    """Fetch and parse <origin>/robots.txt. Never raises; failures give status 0."""
    fetched = await fetch_text(client, f"{origin}/robots.txt", timeout=timeout, user_agent=user_agent)
    analysis = parse_robots(fetched.text, fetched.status_code)
    logger.debug(
        "Robots analyzed",
        origin=origin,
        status_code=analysis.status_code,
        disallow_all=analysis.disallow_all,
        sitemaps=len(analysis.sitemap_directives),
    )
    return analysis
