"""Shared fixtures: an in-memory page fetcher standing in for the network."""

from __future__ import annotations

from typing import Dict, List, Optional, Union

import pytest

from sitemirror.fetcher import FetchResult


def html_page(url: str, body: str, status: int = 200) -> FetchResult:
    return FetchResult(
        final_url=url,
        status_code=status,
        content_type="text/html; charset=utf-8",
        body=body.encode("utf-8"),
        encoding="utf-8",
    )


def links_page(url: str, *hrefs: str) -> FetchResult:
    anchors = "".join(f'<a href="{href}">link</a>' for href in hrefs)
    return html_page(url, f"<html><head><title>t</title></head><body>{anchors}</body></html>")


Response = Union[FetchResult, None, List[Optional[FetchResult]]]


class FakePageFetcher:
    """
    Serves canned responses keyed by requested URL and records every call.

    A list value is consumed one response per call. Unknown URLs get a 404.
    """

    def __init__(self, pages: Optional[Dict[str, Response]] = None) -> None:
        self.pages: Dict[str, Response] = dict(pages or {})
        self.calls: List[str] = []
        self.entered = False
        self.closed = False

    def __enter__(self) -> "FakePageFetcher":
        self.entered = True
        return self

    def __exit__(self, *exc_info) -> None:
        self.closed = True

    def fetch(self, url: str) -> Optional[FetchResult]:
        self.calls.append(url)
        if url not in self.pages:
            return html_page(url, "not found", status=404)
        response = self.pages[url]
        if isinstance(response, list):
            return response.pop(0)
        return response


@pytest.fixture
def no_sleep():
    """Sleep replacement that records requested delays."""
    delays: List[float] = []
    def _sleep(seconds: float) -> None:
        delays.append(seconds)
    _sleep.delays = delays
    return _sleep
