"""URL canonicalization shared by every engine and the API."""

from __future__ import annotations

from urllib.parse import urlparse

from app.core.exceptions import InvalidURLError


def normalize_url(raw: str) -> str:
    """
    Turn a user-supplied site reference into an absolute URL.

    - "https://" is prefixed when no http(s) scheme is present
    - trailing slashes are removed
    - the result must carry a host, otherwise InvalidURLError is raised

    >>> normalize_url("example.com")
    'https://example.com'
    >>> normalize_url("http://example.com/")
    'http://example.com'
    """
    url = (raw or "").strip()
    if not url:
        raise InvalidURLError(raw)

    if not url.startswith(("http://", "https://")):
        url = f"https://{url}"
    url = url.rstrip("/")

    try:
        parsed = urlparse(url)
        host = parsed.hostname
    except ValueError as exc:
        raise InvalidURLError(raw) from exc
    if not host or any(ch.isspace() for ch in parsed.netloc):
        raise InvalidURLError(raw)
    return url


def origin_of(url: str) -> str:
    """scheme://host[:port] of an absolute URL."""
    parsed = urlparse(url)
    return f"{parsed.scheme}://{parsed.netloc}"
