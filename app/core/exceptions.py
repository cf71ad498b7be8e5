"""
Exception hierarchy for signal fetchers.

Only run-terminal conditions are raised; degraded fetches (robots, sitemap,
guidance file, individual pages) are absorbed where they happen.
"""

from __future__ import annotations


class SignalError(Exception):
    """Base class for failures that end a signal run in the error state."""


class InvalidURLError(SignalError):
    """The supplied site reference cannot be turned into an absolute URL."""

    def __init__(self, raw: str):
        self.raw = raw
        super().__init__(f"Invalid URL: {raw!r}")


class SignalConfigurationError(SignalError):
    """A fetcher is missing configuration it cannot run without (e.g. an API key)."""


class UpstreamError(SignalError):
    """A remote scanner answered with an unusable response."""

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)
