"""
Web site mirroring crawler: BFS traversal of same-host links from a start URL,
storing each page, PDF and API listing under a mirrored directory tree.
"""
from sitemirror.core import crawl, CrawlStats, CrawlTask, Frontier

__version__ = "1.0.0"
__all__ = ["crawl", "CrawlStats", "CrawlTask", "Frontier"]
