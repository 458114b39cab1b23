"""
Page retrieval: the page-fetcher backends and the retrying, paced Fetcher.
"""
from __future__ import annotations

import json
import logging
import random
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Protocol, Sequence

import requests

from sitemirror.config import DEFAULT_USER_AGENT, Settings
from sitemirror.errors import FetchFailed, PageFetchError
from sitemirror.urls import is_pdf_url

logger = logging.getLogger(__name__)

BACKOFF_BASE_S = 1.0
BACKOFF_JITTER_S = 0.5

# Resource types aborted by the browser backend
BLOCKED_RESOURCE_TYPES: frozenset[str] = frozenset(("image", "stylesheet", "font"))


@dataclass(frozen=True, slots=True)
class FetchResult:
    """One fetched resource, as seen by the content dispatcher."""
    final_url: str
    status_code: int
    content_type: str
    body: bytes
    encoding: Optional[str] = None

    @property
    def text(self) -> str:
        """Body decoded with the declared charset, or UTF-8 if it is missing or unknown."""
        try:
            return self.body.decode(self.encoding or "utf-8", errors="replace")
        except LookupError:
            logger.debug("Unknown charset %r for %s, decoding as UTF-8", self.encoding, self.final_url)
            return self.body.decode("utf-8", errors="replace")

    def json(self) -> Any:
        return json.loads(self.text)


class PageFetcher(Protocol):
    """Performs a single navigation. Used as a context manager for the whole run."""

    def __enter__(self) -> "PageFetcher": ...

    def __exit__(self, *exc_info: Any) -> None: ...

    def fetch(self, url: str) -> Optional[FetchResult]: ...


class RequestsPageFetcher:
    """Plain HTTP backend on a single requests.Session."""

    def __init__(
        self,
        user_agent: Optional[str] = None,
        headers: Optional[Dict[str, str]] = None,
        timeout_s: float = 30.0,
        verify: bool = True,
    ) -> None:
        self.timeout_s = timeout_s
        self.session = requests.Session()
        self.session.headers["User-Agent"] = user_agent or DEFAULT_USER_AGENT
        self.session.headers.update(headers or {})
        self.session.verify = verify

    def __enter__(self) -> "RequestsPageFetcher":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.session.close()

    def fetch(self, url: str) -> Optional[FetchResult]:
        try:
            resp = self.session.get(url, timeout=self.timeout_s, allow_redirects=True)
        except requests.RequestException as e:
            raise PageFetchError(f"{type(e).__name__}: {e}") from e
        return FetchResult(
            final_url=resp.url,
            status_code=resp.status_code,
            content_type=resp.headers.get("content-type") or "",
            body=resp.content,
            encoding=resp.encoding,
        )


@dataclass(frozen=True)
class RequestPolicy:
    """Static allow/deny rules for requests issued while a page loads."""
    block_scripts: bool = True
    script_hosts: Sequence[str] = ()


def should_block_request(url: str, resource_type: str, policy: RequestPolicy) -> bool:
    """Decide whether the browser should abort an outgoing request."""
    if is_pdf_url(url):
        return False
    if resource_type == "script":
        if any(url.lower().startswith(prefix.lower()) for prefix in policy.script_hosts):
            return False
        return policy.block_scripts
    return resource_type in BLOCKED_RESOURCE_TYPES


class PlaywrightPageFetcher:
    """
    Headless Chromium backend. Waits for the load event only, and blocks
    images, stylesheets and fonts (and scripts, per policy).

    Playwright is imported lazily so the requests backend works without a
    browser install.
    """

    def __init__(
        self,
        user_agent: Optional[str] = None,
        headers: Optional[Dict[str, str]] = None,
        timeout_s: float = 30.0,
        ignore_https_errors: bool = False,
        policy: RequestPolicy = RequestPolicy(),
    ) -> None:
        self.user_agent = user_agent
        self.headers = headers or {}
        self.timeout_ms = int(timeout_s * 1000)
        self.ignore_https_errors = ignore_https_errors
        self.policy = policy
        self._pw = None
        self._browser = None
        self._context = None
        self._page = None

    def __enter__(self) -> "PlaywrightPageFetcher":
        from playwright.sync_api import sync_playwright

        self._pw = sync_playwright().start()
        try:
            self._browser = self._pw.chromium.launch(headless=True)
            context_args: Dict[str, Any] = {"ignore_https_errors": self.ignore_https_errors}
            if self.user_agent:
                context_args["user_agent"] = self.user_agent
            if self.headers:
                context_args["extra_http_headers"] = self.headers
            self._context = self._browser.new_context(**context_args)
            self._page = self._context.new_page()
            self._page.route("**/*", self._route)
        except Exception:
            self.__exit__(None, None, None)
            raise
        return self

    def __exit__(self, *exc_info: Any) -> None:
        if self._browser is not None:
            self._browser.close()
            self._browser = None
        if self._pw is not None:
            self._pw.stop()
            self._pw = None

    def _route(self, route: Any) -> None:
        request = route.request
        if should_block_request(request.url, request.resource_type, self.policy):
            route.abort()
        else:
            route.continue_()

    def fetch(self, url: str) -> Optional[FetchResult]:
        from playwright.sync_api import Error as PlaywrightError

        try:
            if is_pdf_url(url):
                # Chromium turns PDF navigations into downloads; use the request API
                resp = self._context.request.get(url, timeout=self.timeout_ms)
            else:
                resp = self._page.goto(url, wait_until="load", timeout=self.timeout_ms)
            if resp is None:
                return None
            return FetchResult(
                final_url=resp.url,
                status_code=resp.status,
                content_type=resp.headers.get("content-type", ""),
                body=resp.body(),
            )
        except PlaywrightError as e:
            raise PageFetchError(str(e)) from e


def make_page_fetcher(settings: Settings) -> PageFetcher:
    """Build the page-fetcher backend selected by settings."""
    if settings.browser:
        return PlaywrightPageFetcher(
            user_agent=settings.user_agent,
            headers=settings.headers,
            timeout_s=settings.timeout,
            ignore_https_errors=settings.ignore_https_errors,
            policy=RequestPolicy(settings.block_scripts, settings.script_hosts),
        )
    return RequestsPageFetcher(
        user_agent=settings.user_agent,
        headers=settings.headers,
        timeout_s=settings.timeout,
        verify=not settings.ignore_https_errors,
    )


def backoff_delay(
    attempt: int,
    base_s: float = BACKOFF_BASE_S,
    jitter_s: float = BACKOFF_JITTER_S,
    rng: Optional[random.Random] = None,
) -> float:
    """Delay before retry attempt k (k >= 1): base * 2**k plus uniform jitter."""
    jitter = (rng or random).uniform(0, jitter_s)
    return base_s * 2 ** attempt + jitter


class Fetcher:
    """Wraps a page fetcher with request pacing and exponential backoff retries."""

    def __init__(
        self,
        page_fetcher: PageFetcher,
        delay_s: float = 1.0,
        max_retries: int = 3,
        sleep: Callable[[float], None] = time.sleep,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.page_fetcher = page_fetcher
        self.delay_s = delay_s
        self.max_retries = max_retries
        self.sleep = sleep
        self.rng = rng or random.Random()

    def _attempt(self, url: str) -> FetchResult:
        result = self.page_fetcher.fetch(url)
        if result is None:
            raise PageFetchError(f"Null response from {url}")
        logger.info(
            "Received response for %s: Status %d, Content-Type: %s",
            url, result.status_code, result.content_type or "none",
        )
        if result.status_code >= 400:
            raise PageFetchError(f"HTTP status {result.status_code}")
        return result

    def fetch(self, url: str) -> FetchResult:
        """
        Fetch URL, retrying failed attempts.

        Raises:
            FetchFailed: After 1 + max_retries failed attempts.
        """
        last_error: Optional[PageFetchError] = None
        attempts = 0
        for attempt in range(self.max_retries + 1):
            if attempt > 0:
                wait_s = backoff_delay(attempt, rng=self.rng)
                logger.debug("Waiting %.2f seconds before retrying %s", wait_s, url)
                self.sleep(wait_s)
            if self.delay_s > 0:
                self.sleep(self.delay_s)

            attempts += 1
            try:
                return self._attempt(url)
            except PageFetchError as e:
                last_error = e
                logger.warning("Attempt %d/%d failed for %s: %s",
                               attempts, self.max_retries + 1, url, e)

        raise FetchFailed(url, attempts, last_error)
