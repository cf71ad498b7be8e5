"""
Sub-score calculators.

Four pure functions, one per dimension, each returning a SubScore whose
details dict is persisted verbatim:

| Sub-score          | Max | Components                                       |
|--------------------|-----|--------------------------------------------------|
| access_permission  | 30  | robots reachable 5, AI agent rules 10, viability 15 |
| extractability     | 40  | raw content 20, structural clarity 10, JS shell 10 |
| entity_clarity     | 20  | JSON-LD 10, business facts 10                    |
| ai_affordances     | 10  | sitemap 5, llms.txt 5                            |
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any

import httpx

from app.engines.ai_visibility.content import PageSample
from app.engines.ai_visibility.probe import VIABILITY_MAX, ViabilityResult
from app.engines.ai_visibility.robots import RobotsAnalysis
from app.engines.ai_visibility.sitemap import SitemapResult
from app.engines.fetching import fetch_text

PHONE_RE = re.compile(r"(\+?1[-.\s]?)?\(?\d{3}\)?[-.\s]?\d{3}[-.\s]?\d{4}")
EMAIL_RE = re.compile(r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}")
ADDRESS_RE = re.compile(
    r"\d{2,5}\s+[\w\s]+(?:street|st|avenue|ave|boulevard|blvd|road|rd|drive|dr|lane|ln|way|court|ct|place|pl)",
    re.IGNORECASE,
)
HOURS_RE = re.compile(
    r"(?:mon|tue|wed|thu|fri|sat|sun|monday|tuesday|wednesday|thursday|friday|saturday|sunday)"
    r"[\s\-–]+(?:fri|sun|sat|monday|friday|saturday|sunday)?[\s:]*\d{1,2}",
    re.IGNORECASE,
)

# (pattern name, regex, points)
BUSINESS_FACTS = (
    ("phone", PHONE_RE, 3),
    ("email", EMAIL_RE, 2),
    ("address", ADDRESS_RE, 3),
    ("hours", HOURS_RE, 2),
)

RAW_CONTENT_PAGES = 5
STRUCTURE_PAGES = 4
ENTITY_PAGES = 4
GUIDANCE_PATHS = ("/llms.txt", "/.well-known/llms.txt")
GUIDANCE_FULL_LENGTH = 200


@dataclass
class SubScore:
    score: int
    max: int
    details: dict[str, Any] = field(default_factory=dict)

    def as_dict(self) -> dict[str, Any]:
        return {"score": self.score, "max": self.max, "details": self.details}


@dataclass
class GuidanceCheck:
    score: int = 0
    path: str | None = None


# ─────────────────────────────────────────────
# Access & Permission (30)
# ─────────────────────────────────────────────

def ai_agent_rules_score(robots: RobotsAnalysis) -> int:
    if robots.disallow_all:
        return 0
    score = 10
    if robots.gptbot_blocked:
        score -= 3
    if robots.oai_searchbot_blocked:
        score -= 3
    if robots.chatgpt_user_blocked:
        score -= 2
    return max(0, score)


def access_permission(robots: RobotsAnalysis, viability: ViabilityResult) -> SubScore:
    reachable_pts = 5 if robots.reachable else 0
    agent_pts = ai_agent_rules_score(robots)
    viability_pts = viability.score

    return SubScore(
        score=reachable_pts + agent_pts + viability_pts,
        max=30,
        details={
            "robots_reachable": {"score": reachable_pts, "max": 5, "status_code": robots.status_code},
            "ai_agent_rules": {
                "score": agent_pts,
                "max": 10,
                "disallow_all": robots.disallow_all,
                "gptbot_blocked": robots.gptbot_blocked,
                "oai_searchbot_blocked": robots.oai_searchbot_blocked,
                "chatgpt_user_blocked": robots.chatgpt_user_blocked,
            },
            "fetch_viability": {
                "score": viability_pts,
                "max": VIABILITY_MAX,
                "successful": viability.successful,
                "total": viability.total,
            },
        },
    )


# ─────────────────────────────────────────────
# Extractability (40)
# ─────────────────────────────────────────────

def raw_content_points(text_len: int) -> int:
    if text_len >= 2000:
        return 4
    elif text_len >= 1000:
        return 3
    elif text_len >= 400:
        return 2
    elif text_len >= 100:
        return 1
    return 0


def structure_points(sample: PageSample) -> int:
    pts = 0
    if 10 <= sample.title_len <= 70:
        pts += 1
    if sample.h1_count == 1:
        pts += 1
    if sample.heading_count >= 2:
        pts += 1
    return pts


def extractability(samples: list[PageSample]) -> SubScore:
    raw_pages = [
        {"url": s.url, "text_len": s.text_len, "pts": raw_content_points(s.text_len)}
        for s in samples[:RAW_CONTENT_PAGES]
    ]
    raw_pts = sum(p["pts"] for p in raw_pages)

    structure_pages = [
        {
            "url": s.url,
            "title_len": s.title_len,
            "h1_count": s.h1_count,
            "heading_count": s.heading_count,
            "pts": structure_points(s),
        }
        for s in samples[:STRUCTURE_PAGES]
    ]
    structure_pts = min(10, sum(p["pts"] for p in structure_pages))

    # every sampled page counts toward shell risk, not just the first few
    flagged = [s.url for s in samples if s.js_shell]
    shell_pts = max(0, 10 - 2 * len(flagged))

    return SubScore(
        score=raw_pts + structure_pts + shell_pts,
        max=40,
        details={
            "raw_content": {"score": raw_pts, "max": 20, "pages": raw_pages},
            "structural_clarity": {"score": structure_pts, "max": 10, "pages": structure_pages},
            "js_shell_risk": {"score": shell_pts, "max": 10, "flagged_pages": flagged},
        },
    )


# ─────────────────────────────────────────────
# Entity Clarity (20)
# ─────────────────────────────────────────────

def detect_business_facts(text: str) -> dict[str, bool]:
    return {name: bool(pattern.search(text)) for name, pattern, _ in BUSINESS_FACTS}


def entity_clarity(samples: list[PageSample]) -> SubScore:
    pages = samples[:ENTITY_PAGES]

    valid_blocks = sum(s.valid_blocks for s in pages)
    types = list(dict.fromkeys(
        t for s in pages for block in s.structured_data if block.valid for t in block.types
    ))
    if valid_blocks >= 2:
        json_ld_pts = 10
    elif valid_blocks == 1:
        json_ld_pts = 6
    else:
        json_ld_pts = 0

    found = detect_business_facts(" ".join(s.text for s in pages))
    facts_pts = min(10, sum(points for name, _, points in BUSINESS_FACTS if found[name]))

    return SubScore(
        score=json_ld_pts + facts_pts,
        max=20,
        details={
            "json_ld": {"score": json_ld_pts, "max": 10, "valid_blocks": valid_blocks, "types": types},
            "business_facts": {"score": facts_pts, "max": 10, "found": found},
        },
    )


# ─────────────────────────────────────────────
# AI Affordances (10)
# ─────────────────────────────────────────────

async def check_guidance_file(
    client: httpx.AsyncClient,
    origin: str,
    *,
    timeout: float,
    user_agent: str,
) -> GuidanceCheck:
    """
    Look for llms.txt at the root, then under .well-known.
    A full file (>= 200 chars) scores 5 and ends the search; a stub scores 2.
    """
    check = GuidanceCheck()
    for path in GUIDANCE_PATHS:
        fetched = await fetch_text(client, f"{origin}{path}", timeout=timeout, user_agent=user_agent)
        body = fetched.text.strip()
        if not fetched.ok or not body:
            continue
        check.path = path
        if len(body) >= GUIDANCE_FULL_LENGTH:
            check.score = 5
            break
        check.score = 2
    return check


def ai_affordances(sitemap: SitemapResult, guidance: GuidanceCheck) -> SubScore:
    if sitemap.parseable:
        sitemap_pts = 5
    elif sitemap.reachable:
        sitemap_pts = 2
    else:
        sitemap_pts = 0

    return SubScore(
        score=sitemap_pts + guidance.score,
        max=10,
        details={
            "sitemap": {
                "score": sitemap_pts,
                "max": 5,
                "reachable": sitemap.reachable,
                "parseable": sitemap.parseable,
            },
            "llms_txt": {"score": guidance.score, "max": 5, "path": guidance.path},
        },
    )


def total_score(subscores: list[SubScore]) -> int:
    return min(100, sum(s.score for s in subscores))
