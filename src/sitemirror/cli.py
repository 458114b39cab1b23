"""
Command-line interface for the crawler.
"""
from __future__ import annotations

import argparse
import logging
import sys
from typing import List, Optional

from sitemirror.config import DEFAULT_CONFIG_FILE, load_settings
from sitemirror.core import CrawlStats, crawl
from sitemirror.errors import ConfigError, InvalidURL
from sitemirror.log import LogConfig, configure_logging

logger = logging.getLogger(__name__)


def print_summary(stats: CrawlStats) -> None:
    """Print crawl summary to stderr."""
    sys.stderr.write("=" * 50 + "\n")
    sys.stderr.write("CRAWL SUMMARY\n")
    sys.stderr.write("=" * 50 + "\n\n")

    sys.stderr.write(f"Pages fetched:          {stats.pages_fetched}\n")
    sys.stderr.write(f"Pages failed:           {stats.pages_failed}\n")
    sys.stderr.write(f"Already downloaded:     {stats.already_stored}\n")
    sys.stderr.write(f"Skipped (visited):      {stats.skipped_visited}\n")
    sys.stderr.write(f"Skipped (excluded):     {stats.skipped_excluded}\n")
    sys.stderr.write(f"Links enqueued:         {stats.links_enqueued}\n\n")

    if stats.error_counts:
        sys.stderr.write("Errors by type:\n")
        for error_type, count in sorted(stats.error_counts.items()):
            if error_type == "connection_error":
                label = "Connection errors"
            elif error_type == "storage_error":
                label = "Storage errors"
            else:
                label = f"HTTP {error_type}"
            sys.stderr.write(f"  {label}: {count}\n")
    else:
        sys.stderr.write("No errors encountered.\n")

    sys.stderr.write("\n")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="sitemirror",
        description="Mirror a web site to disk by crawling same-host links breadth-first.",
    )
    parser.add_argument("start_url", help="Start URL (e.g. https://example.com)")
    parser.add_argument("-v", "--verbose", action="store_true", default=None,
                        help="Enable verbose logging")
    parser.add_argument("-f", "--force", action="store_true", default=None,
                        help="Re-crawl the start URL even if it was visited before")
    parser.add_argument("-d", "--depth", type=int, help="Maximum crawl depth (default: unlimited)")
    parser.add_argument("-l", "--delay", type=float, help="Delay between requests in seconds (default: 1)")
    parser.add_argument("-r", "--max-retries", type=int, help="Maximum retries per URL (default: 3)")
    parser.add_argument("-c", "--config", help=f"Config file path (default: {DEFAULT_CONFIG_FILE})")
    parser.add_argument("--output-dir", help="Mirror output directory (default: tmp)")
    parser.add_argument("--cache-file", help="Visited cache file (default: <output-dir>/crawl_cache.txt)")
    parser.add_argument("--ignore-file", help="Ignore pattern file (default: .crawlerignore)")
    parser.add_argument("--browser", action="store_true", default=None,
                        help="Fetch pages with headless Chromium (needs playwright)")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the crawler CLI."""
    args = build_parser().parse_args(argv)

    overrides = {
        "verbose": args.verbose,
        "force": args.force,
        "depth": args.depth,
        "delay": args.delay,
        "max_retries": args.max_retries,
        "output_dir": args.output_dir,
        "cache_file": args.cache_file,
        "ignore_file": args.ignore_file,
        "browser": args.browser,
    }

    try:
        settings = load_settings(args.config, overrides)
    except ConfigError as e:
        configure_logging(LogConfig(verbose=bool(args.verbose)))
        logger.error("Error reading config: %s", e)
        return 2

    configure_logging(LogConfig(verbose=settings.verbose))

    try:
        stats = crawl(settings, args.start_url)
    except InvalidURL as e:
        logger.error("Invalid start URL: %s", e)
        return 2

    print_summary(stats)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
