"""
Page Content Analyzer - structural and textual signals from raw server markup.

No JavaScript is executed: what is measured here is exactly what a
non-rendering AI crawler receives.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from typing import Any

import httpx
import structlog
from bs4 import BeautifulSoup

from app.engines.fetching import fetch_text

logger = structlog.get_logger(__name__)

JS_SHELL_MAX_TEXT = 200
JS_SHELL_MIN_SCRIPTS = 10
NON_CONTENT_TAGS = ["script", "style", "noscript", "nav", "footer", "header"]
WHITESPACE_RE = re.compile(r"\s+")


# ─────────────────────────────────────────────
# Data Structures
# ─────────────────────────────────────────────

@dataclass
class StructuredDataBlock:
    valid: bool
    types: list[str] = field(default_factory=list)


@dataclass
class PageSample:
    url: str
    status: int = 0
    text: str = ""
    title_len: int = 0
    h1_count: int = 0
    h2_count: int = 0
    h3_count: int = 0
    script_count: int = 0
    structured_data: list[StructuredDataBlock] = field(default_factory=list)

    @property
    def text_len(self) -> int:
        return len(self.text)

    @property
    def heading_count(self) -> int:
        return self.h2_count + self.h3_count

    @property
    def js_shell(self) -> bool:
        return self.text_len < JS_SHELL_MAX_TEXT and self.script_count > JS_SHELL_MIN_SCRIPTS

    @property
    def valid_blocks(self) -> int:
        return sum(1 for block in self.structured_data if block.valid)

    def summary(self) -> dict[str, Any]:
        """Shape persisted under page_samples."""
        return {
            "url": self.url,
            "status": self.status,
            "text_len": self.text_len,
            "title_len": self.title_len,
            "h1_count": self.h1_count,
            "heading_count": self.heading_count,
            "script_count": self.script_count,
            "js_shell": self.js_shell,
            "structured_data_blocks": len(self.structured_data),
        }


# ─────────────────────────────────────────────
# Structured data
# ─────────────────────────────────────────────

def _declared_types(entity: Any) -> list[str]:
    if not isinstance(entity, dict):
        return []
    declared = entity.get("@type")
    if declared is None:
        return []
    if isinstance(declared, list):
        return [str(t) for t in declared]
    return [str(declared)]


def parse_structured_data(raw: str) -> StructuredDataBlock:
    """Parse one JSON-LD block, recording @type values including one level of @graph."""
    try:
        data = json.loads(raw)
    except (ValueError, TypeError, RecursionError):
        return StructuredDataBlock(valid=False)

    entities = data if isinstance(data, list) else [data]
    types: list[str] = []
    for entity in entities:
        types.extend(_declared_types(entity))
        graph = entity.get("@graph") if isinstance(entity, dict) else None
        if isinstance(graph, list):
            for node in graph:
                types.extend(_declared_types(node))
    return StructuredDataBlock(valid=True, types=types)


def _is_json_ld(value: str | None) -> bool:
    return bool(value) and value.strip().lower() == "application/ld+json"


# ─────────────────────────────────────────────
# Markup analysis
# ─────────────────────────────────────────────

def extract_text(soup: BeautifulSoup) -> str:
    """Visible body text with non-content regions removed. Mutates soup."""
    for tag in soup(NON_CONTENT_TAGS):
        tag.decompose()
    return WHITESPACE_RE.sub(" ", soup.get_text(separator=" ")).strip()


def analyze_markup(url: str, status: int, html: str) -> PageSample:
    """Measure one page's markup. Malformed input degrades to a zero-valued sample."""
    sample = PageSample(url=url, status=status)
    if not html:
        return sample

    try:
        soup = BeautifulSoup(html, "lxml")

        title = soup.find("title")
        sample.title_len = len(title.get_text().strip()) if title else 0
        sample.h1_count = len(soup.find_all("h1"))
        sample.h2_count = len(soup.find_all("h2"))
        sample.h3_count = len(soup.find_all("h3"))

        scripts = soup.find_all("script")
        sample.script_count = len(scripts)
        sample.structured_data = [
            parse_structured_data(script.get_text())
            for script in scripts
            if _is_json_ld(script.get("type"))
        ]

        sample.text = extract_text(soup)

    except Exception as e:
        logger.warning("HTML parse error", url=url, error=str(e))
        return PageSample(url=url, status=status)

    return sample


async def fetch_page_sample(
    client: httpx.AsyncClient,
    url: str,
    *,
    timeout: float,
    max_chars: int,
    user_agent: str,
) -> PageSample:
    """Download (bounded) and analyze one page. Fetch failure gives a status-0 sample."""
    fetched = await fetch_text(client, url, timeout=timeout, max_chars=max_chars, user_agent=user_agent)
    if fetched.status_code == 0:
        return PageSample(url=url)
    return analyze_markup(url, fetched.status_code, fetched.text)
