"""
Core crawling logic: the breadth-first frontier and the run wrapper.
"""
from __future__ import annotations

import logging
from collections import defaultdict, deque
from dataclasses import dataclass, field
from typing import Deque, Dict, List, Optional, Sequence, Set

from sitemirror.config import Settings
from sitemirror.dispatch import ContentDispatcher
from sitemirror.errors import FetchFailed, InvalidURL
from sitemirror.fetcher import Fetcher, PageFetcher, make_page_fetcher
from sitemirror.urls import hostname_of, normalize_url, should_exclude
from sitemirror.visited import VisitedStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class CrawlTask:
    """A URL waiting in the frontier, with its distance from the seed."""
    url: str
    depth: int


@dataclass(slots=True)
class CrawlStats:
    """Statistics collected during crawl for summary output."""
    pages_fetched: int = 0
    pages_failed: int = 0
    already_stored: int = 0
    skipped_visited: int = 0
    skipped_excluded: int = 0
    links_enqueued: int = 0
    error_counts: Dict[str, int] = field(default_factory=lambda: defaultdict(int))
    processed: List[str] = field(default_factory=list)

    def record_error(self, kind: str) -> None:
        """Record an error by category (HTTP status, connection_error, storage_error)."""
        self.error_counts[kind] += 1


def _error_kind(error: FetchFailed) -> str:
    message = str(error.last_error or "")
    if message.startswith("HTTP status "):
        return message.rsplit(" ", 1)[-1]
    return "connection_error"


class Frontier:
    """
    FIFO crawl queue plus the per-task pipeline.

    A URL is marked visited only once its fetch has resolved, either
    dispatched or failed for good. Enqueue-time de-duplication is kept
    in memory for the run.
    """

    def __init__(
        self,
        fetcher: Fetcher,
        dispatcher: ContentDispatcher,
        visited: VisitedStore,
        exclusion_patterns: Sequence[str] = (),
        drop_params: Sequence[str] = (),
    ) -> None:
        self.fetcher = fetcher
        self.dispatcher = dispatcher
        self.visited = visited
        self.exclusion_patterns = tuple(exclusion_patterns)
        self.drop_params = tuple(drop_params)
        self.stats = CrawlStats()
        self._queue: Deque[CrawlTask] = deque()
        self._queued: Set[str] = set()

    def __len__(self) -> int:
        return len(self._queue)

    def enqueue(self, task: CrawlTask) -> bool:
        """Queue task unless its URL is visited, excluded or already queued."""
        if task.url in self.visited:
            logger.debug("Duplicate link (already visited): %s", task.url)
            return False
        if should_exclude(task.url, self.exclusion_patterns):
            logger.debug("Filtered link (excluded by pattern): %s", task.url)
            return False
        if task.url in self._queued:
            return False
        logger.debug("Enqueuing new link: %s (depth %d)", task.url, task.depth)
        self._queued.add(task.url)
        self._queue.append(task)
        return True

    def dequeue(self) -> Optional[CrawlTask]:
        return self._queue.popleft() if self._queue else None

    def run(self, seed: str, max_depth: Optional[int] = None, force: bool = False) -> CrawlStats:
        """
        Crawl breadth-first from seed until the queue is empty.

        Args:
            seed: Start URL (normalized here).
            max_depth: Links are followed from pages with depth < max_depth.
                None means no limit.
            force: Re-crawl the seed even if it is in the visited cache.

        Returns:
            Crawl statistics.

        Raises:
            InvalidURL: If seed is not a valid http(s) URL.
        """
        seed_url = normalize_url(seed, self.drop_params)

        if seed_url in self.visited and not force:
            logger.info("Seed already visited, nothing to do: %s (use --force to re-crawl)", seed_url)
            return self.stats

        self._queued.add(seed_url)
        self._queue.append(CrawlTask(seed_url, 0))

        while (task := self.dequeue()) is not None:
            forced = force and task.url == seed_url and task.depth == 0
            if task.url in self.visited and not forced:
                logger.debug("Skipping URL (visited): %s", task.url)
                self.stats.skipped_visited += 1
                continue
            if should_exclude(task.url, self.exclusion_patterns):
                logger.debug("Skipping URL (excluded): %s", task.url)
                self.stats.skipped_excluded += 1
                continue

            links = self._process(task)
            if links is None:
                continue

            if max_depth is None or task.depth < max_depth:
                for link in links:
                    try:
                        url = normalize_url(link, self.drop_params)
                    except InvalidURL as e:
                        logger.debug("Dropping invalid link %s: %s", link, e)
                        continue
                    if self.enqueue(CrawlTask(url, task.depth + 1)):
                        self.stats.links_enqueued += 1

        logger.info(
            "Crawl finished: %d fetched, %d failed, %d skipped",
            self.stats.pages_fetched, self.stats.pages_failed,
            self.stats.skipped_visited + self.stats.skipped_excluded,
        )
        return self.stats

    def _process(self, task: CrawlTask) -> Optional[List[str]]:
        """
        Fetch and dispatch one task. Returns discovered links, or None when
        the task could not be stored and stays unvisited.
        """
        logger.debug("Crawling: %s (depth %d)", task.url, task.depth)

        if self.dispatcher.is_stored(task.url):
            logger.info("Already downloaded, skipping: %s", task.url)
            self.stats.already_stored += 1
            self._mark_visited(task.url)
            return []

        try:
            result = self.fetcher.fetch(task.url)
        except FetchFailed as e:
            logger.error("Giving up on %s after %d attempts: %s", task.url, e.attempts, e.last_error)
            self.stats.pages_failed += 1
            self.stats.record_error(_error_kind(e))
            self._mark_visited(task.url)
            return []

        try:
            outcome = self.dispatcher.dispatch(result)
        except OSError as e:
            logger.error("Could not store %s: %s", task.url, e)
            self.stats.record_error("storage_error")
            return None

        self.stats.pages_fetched += 1
        self._mark_visited(task.url)
        return outcome.links

    def _mark_visited(self, url: str) -> None:
        self.visited.add(url)
        self.stats.processed.append(url)


def crawl(settings: Settings, seed: str, page_fetcher: Optional[PageFetcher] = None) -> CrawlStats:
    """
    Run one crawl of seed with the given settings.

    The page fetcher is held for the whole run and the visited cache is
    saved when the run ends, whether it succeeds or fails.

    Args:
        settings: Resolved settings.
        seed: Start URL.
        page_fetcher: Backend override; defaults to the one settings select.

    Returns:
        Crawl statistics.
    """
    seed_url = normalize_url(seed, settings.drop_query_params)
    visited = VisitedStore.load(settings.cache_path)
    dispatcher = ContentDispatcher(
        output_dir=settings.output_dir,
        seed_host=hostname_of(seed_url),
        api_patterns=settings.api_patterns,
        drop_params=settings.drop_query_params,
    )

    try:
        with page_fetcher or make_page_fetcher(settings) as backend:
            fetcher = Fetcher(backend, delay_s=settings.delay, max_retries=settings.max_retries)
            frontier = Frontier(
                fetcher,
                dispatcher,
                visited,
                exclusion_patterns=settings.ignore_patterns,
                drop_params=settings.drop_query_params,
            )
            return frontier.run(seed_url, max_depth=settings.depth, force=settings.force)
    finally:
        visited.save()
