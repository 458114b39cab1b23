"""
Content dispatch: decide how a fetched resource is stored and which links it yields.
"""
from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, List, Sequence, Union

from bs4 import BeautifulSoup, SoupStrainer
from bs4.builder import ParserRejectedMarkup

from sitemirror.errors import InvalidURL, ParseFailure
from sitemirror.fetcher import FetchResult
from sitemirror.urls import is_pdf_url, is_same_host, normalize_url, resolve_link, url_to_path

logger = logging.getLogger(__name__)

# SoupStrainer to parse only <a> tags (faster link extraction)
LINK_STRAINER = SoupStrainer("a", href=True)

# Apache/nginx style "Index of /..." pages
DIRECTORY_LISTING_HREF = re.compile(r'<a href="([^"]*)"')


class ResourceKind(Enum):
    HTML = "html"
    PDF = "pdf"
    API = "api"


def classify(url: str, api_patterns: Sequence[str]) -> ResourceKind:
    """Pick the resource kind for URL: PDF, then structured API, else HTML."""
    if is_pdf_url(url):
        return ResourceKind.PDF
    lowered = url.lower()
    if any(pattern.lower() in lowered for pattern in api_patterns):
        return ResourceKind.API
    return ResourceKind.HTML


@dataclass(slots=True)
class DispatchOutcome:
    """What dispatching one resource produced."""
    kind: ResourceKind
    path: Path
    written: bool
    links: List[str] = field(default_factory=list)


def is_directory_listing(html: str) -> bool:
    return "<title>Index of" in html and "<table>" in html


def extract_links(markup: Union[str, bytes]) -> List[str]:
    """
    Extract all href values from <a> tags using optimized parsing.

    Raw bytes are passed straight to the parser so it can detect the
    charset from <meta> itself.

    Raises:
        ParseFailure: If the parser rejects the markup.
    """
    try:
        soup = BeautifulSoup(markup, "lxml", parse_only=LINK_STRAINER)
    except ParserRejectedMarkup as e:
        raise ParseFailure(str(e)) from e
    return [a["href"] for a in soup if a.get("href")]


def extract_listing_links(html: str) -> List[str]:
    """Extract hrefs from a server-generated directory listing."""
    return [href for href in DIRECTORY_LISTING_HREF.findall(html) if href]


def extract_api_links(data: object) -> List[str]:
    """
    Collect entry URLs from a repository-contents style JSON listing.

    Each entry contributes its ``html_url`` and, for files, its
    ``download_url``. Anything not shaped like that is skipped.
    """
    if not isinstance(data, list):
        return []
    links: List[str] = []
    for item in data:
        if not isinstance(item, dict):
            continue
        html_url = item.get("html_url")
        if isinstance(html_url, str) and html_url:
            links.append(html_url)
        download_url = item.get("download_url")
        if item.get("type") == "file" and isinstance(download_url, str) and download_url:
            links.append(download_url)
    return links


def parse_api_body(result: FetchResult) -> object:
    try:
        return result.json()
    except ValueError as e:
        raise ParseFailure(f"Malformed JSON from {result.final_url}: {e}") from e


class ContentDispatcher:
    """
    Stores fetched resources under output_dir and returns their outgoing links.

    HTML links are resolved against the final response URL and restricted
    to the seed host. API links are taken from the listing as-is.
    """

    def __init__(
        self,
        output_dir: Path,
        seed_host: str,
        api_patterns: Sequence[str] = (),
        drop_params: Sequence[str] = (),
    ) -> None:
        self.output_dir = Path(output_dir)
        self.seed_host = seed_host.lower()
        self.api_patterns = tuple(api_patterns)
        self.drop_params = tuple(drop_params)
        self._handlers: Dict[ResourceKind, Callable[[FetchResult, Path], DispatchOutcome]] = {
            ResourceKind.PDF: self._handle_pdf,
            ResourceKind.API: self._handle_api,
            ResourceKind.HTML: self._handle_html,
        }

    def classify(self, url: str) -> ResourceKind:
        return classify(url, self.api_patterns)

    def path_for(self, url: str) -> Path:
        return url_to_path(url, self.output_dir)

    def is_stored(self, url: str) -> bool:
        """True for PDFs already present in the mirror, which need no fetch."""
        return self.classify(url) is ResourceKind.PDF and self.path_for(url).exists()

    def dispatch(self, result: FetchResult) -> DispatchOutcome:
        """Store result and return the links discovered in it."""
        kind = self.classify(result.final_url)
        path = self.path_for(result.final_url)
        path.parent.mkdir(parents=True, exist_ok=True)
        return self._handlers[kind](result, path)

    def _handle_pdf(self, result: FetchResult, path: Path) -> DispatchOutcome:
        if path.exists():
            logger.debug("File already exists, skipping download: %s", path)
            return DispatchOutcome(ResourceKind.PDF, path, written=False)
        path.write_bytes(result.body)
        logger.info("PDF saved at %s (%d bytes)", path, len(result.body))
        return DispatchOutcome(ResourceKind.PDF, path, written=True)

    def _handle_api(self, result: FetchResult, path: Path) -> DispatchOutcome:
        try:
            data = parse_api_body(result)
        except ParseFailure as e:
            logger.warning("%s; saving raw body", e)
            path.write_bytes(result.body)
            return DispatchOutcome(ResourceKind.API, path, written=True)

        path.write_text(json.dumps(data, indent=2, ensure_ascii=False), encoding="utf-8")
        links = extract_api_links(data)
        logger.info("Saved API content: %s (%d entry links)", path, len(links))
        return DispatchOutcome(ResourceKind.API, path, written=True, links=links)

    def _handle_html(self, result: FetchResult, path: Path) -> DispatchOutcome:
        path.write_bytes(result.body)
        logger.debug("Saved HTML content: %s", path)

        html = result.text
        try:
            if is_directory_listing(html):
                raw_links = extract_listing_links(html)
            else:
                raw_links = extract_links(result.body)
        except ParseFailure as e:
            logger.warning("Could not parse links from %s: %s", result.final_url, e)
            raw_links = []

        links = self._filter_links(raw_links, result.final_url)
        return DispatchOutcome(ResourceKind.HTML, path, written=True, links=links)

    def _filter_links(self, hrefs: Sequence[str], base: str) -> List[str]:
        """Resolve, keep same-host, normalize and de-duplicate hrefs."""
        kept: Dict[str, None] = {}
        external = 0
        for href in hrefs:
            absolute = resolve_link(href, base)
            if not absolute:
                continue
            if not is_same_host(absolute, self.seed_host):
                logger.debug("Found external link (skipped): %s", absolute)
                external += 1
                continue
            try:
                kept[normalize_url(absolute, self.drop_params)] = None
            except InvalidURL as e:
                logger.debug("Skipping invalid URL %s: %s", href, e)
        logger.debug("Skipped %d external links; kept %d internal links from %s",
                     external, len(kept), base)
        return list(kept)
