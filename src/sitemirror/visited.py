"""
Persistent set of URLs already processed by earlier or current runs.
"""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, Iterator, Set

logger = logging.getLogger(__name__)


class VisitedStore:
    """Newline-delimited cache of normalized URLs, loaded once and saved once per run."""

    def __init__(self, path: Path, urls: Iterable[str] = ()) -> None:
        self.path = Path(path)
        self._urls: Set[str] = set(urls)

    @classmethod
    def load(cls, path: Path) -> "VisitedStore":
        """Read the cache file. A missing file is an empty store."""
        path = Path(path)
        try:
            data = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            logger.debug("No visited cache at %s, starting empty", path)
            return cls(path)
        urls = [line.strip() for line in data.splitlines() if line.strip()]
        logger.info("Loaded %d visited URLs from %s", len(urls), path)
        return cls(path, urls)

    def save(self) -> None:
        """Overwrite the cache file with the current set."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text("\n".join(sorted(self._urls)), encoding="utf-8")
        logger.info("Saved %d visited URLs to %s", len(self._urls), self.path)

    def add(self, url: str) -> bool:
        """Mark URL visited. Returns False if it already was."""
        if url in self._urls:
            return False
        self._urls.add(url)
        return True

    def __contains__(self, url: object) -> bool:
        return url in self._urls

    def __len__(self) -> int:
        return len(self._urls)

    def __iter__(self) -> Iterator[str]:
        return iter(self._urls)
