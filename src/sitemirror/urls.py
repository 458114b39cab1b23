"""
URL normalization, exclusion filtering and mirror path mapping.
"""
from __future__ import annotations

import logging
from pathlib import Path, PurePosixPath
from typing import Iterable, Optional, Sequence
from urllib.parse import parse_qsl, urldefrag, urlencode, urljoin, urlsplit, urlunsplit

from sitemirror.errors import InvalidURL

logger = logging.getLogger(__name__)

# Extensions kept verbatim in the mirror; anything else is treated as a directory
KNOWN_EXTENSIONS: frozenset[str] = frozenset((
    ".html", ".htm", ".pdf", ".xml", ".json",
    ".js", ".css", ".txt", ".csv", ".md",
))

DEFAULT_PORTS = {"http": 80, "https": 443}


def normalize_url(url: str, drop_params: Sequence[str] = ()) -> str:
    """
    Canonicalize URL into a de-duplication key.

    - Lowercases scheme and host
    - Removes default ports (:80, :443)
    - Strips trailing slashes from the path
    - Keeps querystrings, minus any names in drop_params
    - Drops fragments (#...)

    Raises:
        InvalidURL: If the text is not an absolute http(s) URL.
    """
    if not url or not url.strip():
        raise InvalidURL("Empty URL")

    try:
        parsed = urlsplit(url.strip())
        port = parsed.port
    except ValueError as e:
        raise InvalidURL(f"Cannot parse URL {url!r}: {e}") from e

    scheme = parsed.scheme.lower()
    if scheme not in DEFAULT_PORTS:
        raise InvalidURL(f"Unsupported scheme in {url!r}")

    hostname = (parsed.hostname or "").lower()
    if not hostname:
        raise InvalidURL(f"Missing host in {url!r}")
    if ":" in hostname:
        hostname = f"[{hostname}]"

    netloc = f"{hostname}:{port}" if port and port != DEFAULT_PORTS[scheme] else hostname

    query = parsed.query
    if drop_params and query:
        drop = set(drop_params)
        kept = [(k, v) for k, v in parse_qsl(query, keep_blank_values=True) if k not in drop]
        query = urlencode(kept)

    normalized = urlunsplit((scheme, netloc, parsed.path.rstrip("/"), query, ""))
    logger.debug("Normalized URL: %s -> %s", url, normalized)
    return normalized


def resolve_link(href: str, base: str) -> Optional[str]:
    """Join a (possibly relative) href against the final response URL, minus fragment."""
    if not href:
        return None
    try:
        joined, _ = urldefrag(urljoin(base, href.strip()))
    except ValueError:
        return None
    return joined or None


def hostname_of(url: str) -> str:
    """Return the lower-cased hostname of URL, or an empty string."""
    try:
        return (urlsplit(url).hostname or "").lower()
    except ValueError:
        return ""


def is_same_host(url: str, host: str) -> bool:
    """Check if URL points at the given host."""
    return hostname_of(url) == host.lower()


def should_exclude(url: str, patterns: Iterable[str]) -> bool:
    """True if any pattern is a substring of the URL path (case-sensitive)."""
    try:
        path = urlsplit(url).path
    except ValueError:
        return False
    return any(pattern in path for pattern in patterns if pattern)


def is_pdf_url(url: str) -> bool:
    try:
        path = urlsplit(url).path
    except ValueError:
        return False
    return path.lower().endswith(".pdf")


def url_to_path(url: str, root: Path) -> Path:
    """
    Map URL to its file in the mirror: root/<host>/<path segments>.

    Directory-like paths (trailing slash, no segments, or no known
    extension) get an ``index.html`` appended.
    """
    parsed = urlsplit(url)
    hostname = (parsed.hostname or "unknown").lower()
    path = parsed.path or "/"

    segments = [s for s in PurePosixPath(path).parts if s not in ("/", ".", "..")]
    if path.endswith("/") or not segments:
        segments.append("index.html")
    elif PurePosixPath(segments[-1]).suffix.lower() not in KNOWN_EXTENSIONS:
        segments.append("index.html")

    return Path(root, hostname, *segments)
