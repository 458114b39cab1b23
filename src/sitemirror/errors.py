"""
Exception types raised by the crawler.
"""
from __future__ import annotations

from typing import Optional


class CrawlerError(Exception):
    """Base class for all crawler errors."""


class InvalidURL(CrawlerError, ValueError):
    """URL text that cannot be parsed into a crawlable http(s) URL."""


class PageFetchError(CrawlerError):
    """A single retrieval attempt failed; the attempt may be retried."""


class FetchFailed(CrawlerError):
    """All retrieval attempts for a URL failed."""

    def __init__(self, url: str, attempts: int, last_error: Optional[BaseException]) -> None:
        super().__init__(f"Failed to fetch {url} after {attempts} attempt(s): {last_error}")
        self.url = url
        self.attempts = attempts
        self.last_error = last_error


class ParseFailure(CrawlerError):
    """A fetched body could not be parsed for links."""


class ConfigError(CrawlerError):
    """Configuration could not be loaded or is invalid."""
