"""
AI Visibility Engine - how well non-rendering AI crawlers can access, read
and understand a site.

Flow:
1. Normalize the site URL (the only run-terminal failure)
2. Homepage + robots.txt, then sitemap discovery
3. Sample up to 8 pages (sitemap first, homepage links as fallback) + homepage
4. Viability probes, per-page content analysis and the llms.txt check
5. Four sub-scores, total, grade and ordered findings
"""

from __future__ import annotations

import asyncio
from typing import Any

import httpx
from pydantic import BaseModel, Field

from app.core.config import get_settings
from app.core.rule_engine import RuleRegistry
from app.engines.ai_visibility.content import PageSample, analyze_markup, fetch_page_sample
from app.engines.ai_visibility.findings import build_context, generate_findings
from app.engines.ai_visibility.probe import probe_viability
from app.engines.ai_visibility.robots import fetch_robots
from app.engines.ai_visibility.sampler import (
    sample_from_homepage,
    sample_from_sitemap,
    select_pages,
)
from app.engines.ai_visibility.sitemap import resolve_sitemap
from app.engines.ai_visibility.subscores import (
    access_permission,
    ai_affordances,
    check_guidance_file,
    entity_clarity,
    extractability,
    total_score,
)
from app.engines.base import (
    EngineStatus,
    Finding,
    SignalEngine,
    SignalName,
    SignalRequest,
    SignalResult,
)
from app.engines.fetching import fetch_text
from app.engines.urls import normalize_url, origin_of

RESULT_VERSION = "1.0"
MAX_PAGE_SUMMARIES = 6


class AnalyzerResult(BaseModel):
    """Snapshot persisted as ai_details. Replaced wholesale on every successful run."""
    version: str = RESULT_VERSION
    website_url: str
    score: int = Field(ge=0, le=100)
    grade: str
    subscores: dict[str, dict[str, Any]]
    findings: list[Finding] = Field(default_factory=list, max_length=8)
    page_samples: list[dict[str, Any]] = Field(default_factory=list, max_length=MAX_PAGE_SUMMARIES)


class AIVisibilityEngine(SignalEngine):
    """
    Bespoke, bounded crawl of one site. Every fetch is individually timed out
    and size-capped; robots, sitemap, page and probe failures only lower
    sub-scores and never end the run in error.
    """

    SIGNAL = SignalName.AI

    def __init__(self, client: httpx.AsyncClient | None = None, rules: RuleRegistry | None = None):
        super().__init__(client)
        self.settings = get_settings()
        self.rules = rules or RuleRegistry()

    def build_client(self) -> httpx.AsyncClient:
        concurrency = self.settings.ANALYZER_CONCURRENCY
        return httpx.AsyncClient(
            follow_redirects=True,
            headers={"User-Agent": self.settings.ANALYZER_USER_AGENT},
            limits=httpx.Limits(max_connections=concurrency * 3, max_keepalive_connections=concurrency),
        )

    async def run(self, request: SignalRequest, client: httpx.AsyncClient) -> SignalResult:
        s = self.settings
        ua = s.ANALYZER_USER_AGENT

        base_url = normalize_url(request.website_url)
        origin = origin_of(base_url)

        # Step 1: homepage and robots.txt are independent
        homepage, robots = await asyncio.gather(
            fetch_text(client, base_url, timeout=s.ANALYZER_HOMEPAGE_TIMEOUT,
                       max_chars=s.ANALYZER_PAGE_MAX_CHARS, user_agent=ua),
            fetch_robots(client, origin, timeout=s.ANALYZER_FETCH_TIMEOUT, user_agent=ua),
        )

        # Step 2: sitemap candidates depend on robots directives
        sitemap = await resolve_sitemap(
            client, origin, robots.sitemap_directives,
            timeout=s.ANALYZER_FETCH_TIMEOUT, user_agent=ua,
        )

        # Step 3: page selection
        if sitemap.urls:
            samples = sample_from_sitemap(sitemap.urls, s.ANALYZER_MAX_SAMPLE_PAGES)
        else:
            samples = sample_from_homepage(homepage.text, origin, s.ANALYZER_MAX_SAMPLE_PAGES)
        pages = select_pages(base_url, samples, s.ANALYZER_MAX_SAMPLE_PAGES)
        self.logger.info(
            "Pages selected",
            source="sitemap" if sitemap.urls else "homepage",
            page_count=len(pages),
            robots_status=robots.status_code,
        )

        # Step 4: per-page stages
        viability, page_samples, guidance = await asyncio.gather(
            probe_viability(
                client,
                pages,
                [ua, *s.ANALYZER_PROBE_USER_AGENTS],
                max_pages=s.ANALYZER_MAX_PROBE_PAGES,
                timeout=s.ANALYZER_PROBE_TIMEOUT,
                max_chars=s.ANALYZER_PROBE_MAX_CHARS,
                concurrency=s.ANALYZER_CONCURRENCY,
            ),
            self._sample_pages(client, pages, homepage_status=homepage.status_code, homepage_html=homepage.text),
            check_guidance_file(client, origin, timeout=s.ANALYZER_GUIDANCE_TIMEOUT, user_agent=ua),
        )

        # Step 5: scoring and findings
        access = access_permission(robots, viability)
        extract = extractability(page_samples)
        entity = entity_clarity(page_samples)
        affordances = ai_affordances(sitemap, guidance)

        score = total_score([access, extract, entity, affordances])
        grade = self.calculate_grade(score)

        context = build_context(robots, viability, page_samples, entity, sitemap, guidance)
        findings = generate_findings(context, self.rules)

        result = AnalyzerResult(
            website_url=base_url,
            score=score,
            grade=grade,
            subscores={
                "access_permission": access.as_dict(),
                "extractability": extract.as_dict(),
                "entity_clarity": entity.as_dict(),
                "ai_affordances": affordances.as_dict(),
            },
            findings=findings,
            page_samples=[p.summary() for p in page_samples[:MAX_PAGE_SUMMARIES]],
        )

        return SignalResult(
            signal=self.SIGNAL,
            audit_id=request.audit_id,
            status=EngineStatus.SUCCESS,
            score=score,
            grade=grade,
            details=result.model_dump(mode="json"),
        )

    async def _sample_pages(
        self,
        client: httpx.AsyncClient,
        pages: list[str],
        homepage_status: int,
        homepage_html: str,
    ) -> list[PageSample]:
        """Analyze every selected page, reusing the homepage fetch. Order follows pages."""
        s = self.settings
        semaphore = asyncio.Semaphore(max(1, s.ANALYZER_CONCURRENCY))

        async def sample(url: str) -> PageSample:
            if url == pages[0] and homepage_status:
                return analyze_markup(url, homepage_status, homepage_html)
            async with semaphore:
                return await fetch_page_sample(
                    client, url,
                    timeout=s.ANALYZER_FETCH_TIMEOUT,
                    max_chars=s.ANALYZER_PAGE_MAX_CHARS,
                    user_agent=s.ANALYZER_USER_AGENT,
                )

        return list(await asyncio.gather(*[sample(url) for url in pages]))
