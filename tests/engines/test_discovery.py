"""
Tests for URL normalization, robots analysis, sitemap discovery and page sampling.
Uses httpx MockTransport to avoid real network calls.
"""

import httpx
import pytest

from app.core.exceptions import InvalidURLError
from app.engines.ai_visibility.robots import fetch_robots, parse_robots
from app.engines.ai_visibility.sampler import (
    sample_from_homepage,
    sample_from_sitemap,
    select_pages,
)
from app.engines.ai_visibility.sitemap import (
    parse_sitemap_urls,
    resolve_sitemap,
    sitemap_candidates,
)
from app.engines.urls import normalize_url, origin_of

UA = "TestBot/1.0"


def urlset(*urls: str) -> str:
    locs = "".join(f"<url><loc>{u}</loc></url>" for u in urls)
    return f'<?xml version="1.0"?><urlset xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">{locs}</urlset>'


# ─────────────────────────────────────────────
# URL Normalizer Tests
# ─────────────────────────────────────────────

class TestNormalizeURL:

    def test_adds_https_scheme(self):
        assert normalize_url("example.com") == "https://example.com"

    def test_preserves_given_scheme(self):
        assert normalize_url("http://example.com/") == "http://example.com"

    def test_strips_whitespace_and_trailing_slashes(self):
        assert normalize_url("  https://example.com/about//  ") == "https://example.com/about"

    def test_keeps_path_and_query(self):
        assert normalize_url("example.com/shop?x=1") == "https://example.com/shop?x=1"

    @pytest.mark.parametrize("raw", ["", "   ", "https://", "http:///path", "exa mple.com"])
    def test_rejects_unusable_input(self, raw):
        with pytest.raises(InvalidURLError):
            normalize_url(raw)

    def test_origin_drops_path(self):
        assert origin_of("https://example.com:8443/a/b?c=d") == "https://example.com:8443"


# ─────────────────────────────────────────────
# Robots Tests
# ─────────────────────────────────────────────

class TestParseRobots:

    def test_wildcard_disallow_all(self):
        analysis = parse_robots("User-agent: *\nDisallow: /\n", 200)
        assert analysis.reachable
        assert analysis.disallow_all
        assert not analysis.gptbot_blocked

    def test_partial_disallow_is_not_blocking(self):
        analysis = parse_robots("User-agent: *\nDisallow: /admin\n", 200)
        assert not analysis.disallow_all

    def test_named_agents_are_case_insensitive(self):
        text = (
            "User-agent: GPTBot\nDisallow: /\n\n"
            "user-agent: OAI-SearchBot\ndisallow: /\n\n"
            "User-Agent: ChatGPT-User\nDisallow: /\n"
        )
        analysis = parse_robots(text, 200)
        assert analysis.gptbot_blocked
        assert analysis.oai_searchbot_blocked
        assert analysis.chatgpt_user_blocked
        assert not analysis.disallow_all

    def test_collects_sitemap_directives_in_order(self):
        text = "Sitemap: https://example.com/a.xml\nUser-agent: *\nAllow: /\nSITEMAP: https://example.com/b.xml\n"
        analysis = parse_robots(text, 200)
        assert analysis.sitemap_directives == ["https://example.com/a.xml", "https://example.com/b.xml"]

    def test_non_200_is_permissive(self):
        analysis = parse_robots("User-agent: *\nDisallow: /\n", 404)
        assert not analysis.reachable
        assert not analysis.disallow_all
        assert analysis.sitemap_directives == []
        assert analysis.raw_snippet == ""

    def test_snippet_is_capped(self):
        analysis = parse_robots("# " + "x" * 2000, 200)
        assert len(analysis.raw_snippet) == 500

    @pytest.mark.asyncio
    async def test_fetch_failure_gives_status_zero(self, mock_client):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        async with mock_client(handler) as client:
            analysis = await fetch_robots(client, "https://example.com", timeout=1, user_agent=UA)

        assert analysis.status_code == 0
        assert not analysis.reachable
        assert not analysis.disallow_all


# ─────────────────────────────────────────────
# Sitemap Tests
# ─────────────────────────────────────────────

class TestSitemap:

    def test_candidates_default_first_and_deduplicated(self):
        candidates = sitemap_candidates(
            "https://example.com",
            ["https://example.com/sitemap.xml", "https://example.com/posts.xml"],
        )
        assert candidates == ["https://example.com/sitemap.xml", "https://example.com/posts.xml"]

    def test_parse_keeps_only_http_locs(self):
        xml = urlset("https://example.com/a", "/relative", "ftp://example.com/b", "http://example.com/c")
        assert parse_sitemap_urls(xml) == ["https://example.com/a", "http://example.com/c"]

    def test_parse_empty_body(self):
        assert parse_sitemap_urls("") == []

    @pytest.mark.asyncio
    async def test_falls_back_to_robots_directive(self, mock_client):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/sitemap.xml":
                return httpx.Response(404)
            if request.url.path == "/sitemap_index.xml":
                return httpx.Response(200, text=urlset("https://example.com/about"))
            return httpx.Response(404)

        async with mock_client(handler) as client:
            result = await resolve_sitemap(
                client, "https://example.com", ["https://example.com/sitemap_index.xml"],
                timeout=1, user_agent=UA,
            )

        assert result.reachable
        assert result.parseable
        assert result.urls == ["https://example.com/about"]
        assert result.source == "https://example.com/sitemap_index.xml"

    @pytest.mark.asyncio
    async def test_reachable_but_empty(self, mock_client):
        async with mock_client(lambda request: httpx.Response(200, text="")) as client:
            result = await resolve_sitemap(client, "https://example.com", [], timeout=1, user_agent=UA)

        assert result.reachable
        assert not result.parseable
        assert result.urls == []

    @pytest.mark.asyncio
    async def test_unreachable(self, mock_client):
        async with mock_client(lambda request: httpx.Response(500)) as client:
            result = await resolve_sitemap(client, "https://example.com", [], timeout=1, user_agent=UA)

        assert not result.reachable
        assert not result.parseable


# ─────────────────────────────────────────────
# Page Sampler Tests
# ─────────────────────────────────────────────

class TestSampler:

    def test_sitemap_keyword_urls_first(self):
        urls = [
            "https://example.com/blog/1",
            "https://example.com/contact",
            "https://example.com/search?q=x",
            "https://example.com/about-us",
            "https://example.com/blog/2",
        ]
        assert sample_from_sitemap(urls, limit=3) == [
            "https://example.com/contact",
            "https://example.com/about-us",
            "https://example.com/blog/1",
        ]

    def test_homepage_links_same_origin_only(self):
        html = """
        <a href="/services/">Services</a>
        <a href="/blog/post">Post</a>
        <a href="https://other.com/about">External</a>
        <a href="/services">Duplicate</a>
        <a href="/shop?page=2">Query</a>
        <a href="mailto:hi@example.com">Mail</a>
        <a href="#top">Top</a>
        <a href="/">Home</a>
        """
        assert sample_from_homepage(html, "https://example.com") == [
            "https://example.com/services",
            "https://example.com/blog/post",
        ]

    def test_homepage_keyword_match_ignores_host(self):
        html = '<a href="/pricing">Pricing</a><a href="/faq">FAQ</a>'
        assert sample_from_homepage(html, "https://contact-example.com") == [
            "https://contact-example.com/faq",
            "https://contact-example.com/pricing",
        ]

    def test_select_pages_puts_homepage_first(self):
        pages = select_pages(
            "https://example.com",
            ["https://example.com", "https://example.com/a", "https://example.com/b"],
            limit=1,
        )
        assert pages == ["https://example.com", "https://example.com/a"]

    def test_select_pages_treats_trailing_slash_as_same_page(self):
        samples = sample_from_sitemap([
            "https://example.com/",
            "https://example.com/about",
            "https://example.com/x",
            "https://example.com/about/",
        ])
        assert select_pages("https://example.com", samples) == [
            "https://example.com",
            "https://example.com/about",
            "https://example.com/x",
        ]

    def test_sitemap_keyword_match_ignores_host(self):
        urls = [
            "https://faqplumbing.com/blog",
            "https://faqplumbing.com/contact",
            "https://faqplumbing.com/pricing",
        ]
        assert sample_from_sitemap(urls) == [
            "https://faqplumbing.com/contact",
            "https://faqplumbing.com/blog",
            "https://faqplumbing.com/pricing",
        ]
