"""
Page sampling: a bounded, keyword-first selection of pages to examine.

Sources, in order of preference:
1. URLs from the resolved sitemap
2. Same-origin anchors on the homepage (one hop, no traversal)
"""

from __future__ import annotations

from urllib.parse import urljoin, urlparse

from bs4 import BeautifulSoup

PAGE_KEYWORDS = ("about", "services", "contact", "locations", "service-area", "faq")
MAX_SAMPLE_PAGES = 8

SKIPPED_HREF_PREFIXES = ("mailto:", "tel:", "javascript:")


def _is_keyword_url(value: str) -> bool:
    lowered = value.lower()
    return any(keyword in lowered for keyword in PAGE_KEYWORDS)


def sample_from_sitemap(urls: list[str], limit: int = MAX_SAMPLE_PAGES) -> list[str]:
    """Query-free sitemap URLs, keyword paths first, original order kept within each group."""
    clean = [u for u in urls if "?" not in u]
    keyword_urls = [u for u in clean if _is_keyword_url(urlparse(u).path)]
    other_urls = [u for u in clean if not _is_keyword_url(urlparse(u).path)]
    return (keyword_urls + other_urls)[:limit]


def sample_from_homepage(html: str, origin: str, limit: int = MAX_SAMPLE_PAGES) -> list[str]:
    """Same-origin, query-free anchor targets from homepage markup, deduplicated by path."""
    if not html:
        return []

    soup = BeautifulSoup(html, "lxml")
    seen: set[str] = set()
    keyword_links: list[str] = []
    other_links: list[str] = []

    for anchor in soup.find_all("a", href=True):
        href = anchor["href"].strip()
        if not href or href.startswith("#") or href.lower().startswith(SKIPPED_HREF_PREFIXES):
            continue

        try:
            parsed = urlparse(urljoin(origin + "/", href))
        except ValueError:
            continue
        if f"{parsed.scheme}://{parsed.netloc}".lower() != origin.lower() or parsed.query:
            continue

        key = parsed.path.rstrip("/")
        if not key or key in seen:
            continue
        seen.add(key)
        # keyword match on the path only, so the host name never counts
        if _is_keyword_url(key):
            keyword_links.append(origin + key)
        else:
            other_links.append(origin + key)

    return (keyword_links + other_links)[:limit]


def select_pages(base_url: str, samples: list[str], limit: int = MAX_SAMPLE_PAGES) -> list[str]:
    """Homepage first, then the samples, deduplicated ignoring a trailing slash; at most limit + 1 URLs."""
    pages = [base_url]
    seen = {base_url.rstrip("/")}
    for url in samples:
        key = url.rstrip("/")
        if key not in seen:
            seen.add(key)
            pages.append(url)
    return pages[: limit + 1]
