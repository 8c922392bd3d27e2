"""Domain crawler: BFS-crawls the pages in scope of a seed URL through the Scraper."""

import logging
import re
from collections import deque
from typing import Deque, List, Optional, Pattern, Set, Tuple

from ingestly.models.options import CrawlOptions
from ingestly.models.page import Page
from ingestly.models.scrape_result import ScrapeResult
from ingestly.services.browser import BrowserLaunchError
from ingestly.services.extractor import extract_links, extract_text, extract_title
from ingestly.services.normalizer import default_include_pattern, normalize_url
from ingestly.services.scraper import Scraper
from ingestly.services.user_agents import UserAgentRotator

logger = logging.getLogger(__name__)

DEFAULT_EXCLUDE_PATTERNS = [
    # Binary documents and media
    r"\.(jpe?g|png|gif|webp|svg|ico|pdf|docx?|xlsx?|pptx?|zip|rar|gz|tar|mp3|mp4|avi|mov)$",
    # Query strings and fragments
    r"\?",
    r"#",
    # CMS admin, login, API and feed endpoints
    r"/wp-(admin|login|json|content)(/|$|\.php)",
    r"xmlrpc\.php$",
    r"/feed$",
    r"\.(xml|rss|atom)$",
]

_HTML_CONTENT_TYPES = ("text/html", "application/xhtml+xml")


class CrawlFrontier:
    """FIFO queue of ``(url, depth)`` plus the seen/visited bookkeeping.

    A URL is pushed at most once; ``seen`` keeps every URL ever enqueued and
    ``visited`` every URL dequeued for fetching.
    """

    def __init__(self):
        self._queue: Deque[Tuple[str, int]] = deque()
        self.seen: Set[str] = set()
        self.visited: Set[str] = set()

    def __len__(self) -> int:
        return len(self._queue)

    def __bool__(self) -> bool:
        return bool(self._queue)

    def push(self, url: str, depth: int) -> bool:
        if url in self.seen:
            return False
        self.seen.add(url)
        self._queue.append((url, depth))
        return True

    def pop(self) -> Tuple[str, int]:
        url, depth = self._queue.popleft()
        self.visited.add(url)
        return url, depth


class Crawler:
    def __init__(
        self,
        scraper: Optional[Scraper] = None,
        options: Optional[CrawlOptions] = None,
    ):
        self.options = options or CrawlOptions()
        self._owns_scraper = scraper is None
        self.scraper = scraper or Scraper()
        self._desktop_agents = UserAgentRotator()
        self.frontier = CrawlFrontier()
        self.pages_processed = 0
        self._includes: List[Pattern[str]] = []
        self._excludes: List[Pattern[str]] = []

    def _configure(self, seed_url: str) -> None:
        self.frontier = CrawlFrontier()
        self.pages_processed = 0
        self._includes = self.options.compiled_includes() or [
            re.compile(default_include_pattern(seed_url), re.IGNORECASE)
        ]
        if self.options.exclude_patterns is None:
            self._excludes = [re.compile(p, re.IGNORECASE) for p in DEFAULT_EXCLUDE_PATTERNS]
        else:
            self._excludes = self.options.compiled_excludes()

    def _in_scope(self, url: str) -> bool:
        if not any(p.search(url) for p in self._includes):
            return False
        return not any(p.search(url) for p in self._excludes)

    def is_allowed_url(self, url: str) -> bool:
        """True when *url* is unseen, matches an include pattern and no exclude pattern."""
        return url not in self.frontier.seen and self._in_scope(url)

    async def crawl(self, seed_url: str) -> List[Page]:
        """Breadth-first crawl from *seed_url* within the page and depth budgets.

        Per-page failures are logged and skipped, so a partial crawl still
        returns what it gathered.

        Raises:
            ValueError: *seed_url* cannot be normalised.
            BrowserLaunchError: the browser could not be started.
        """
        seed = normalize_url(seed_url)
        self._configure(seed)
        self.frontier.push(seed, 0)
        pages: List[Page] = []
        max_pages = self.options.max_pages
        max_depth = self.options.max_depth

        logger.info(
            "Crawl started",
            extra={"seed": seed, "max_pages": max_pages, "max_depth": max_depth},
        )
        try:
            while self.frontier and self.pages_processed < max_pages:
                url, depth = self.frontier.pop()
                if depth > max_depth:
                    logger.debug("Crawler: %s beyond max depth (%d)", url, depth)
                    continue

                logger.info("Crawling (%d/%d): %s", depth, max_depth, url)
                try:
                    result = await self.scraper.scrape(
                        url,
                        user_agent=self._desktop_agents.get_desktop(),
                        timeout_ms=self.options.timeout_ms,
                    )
                except BrowserLaunchError:
                    raise
                except Exception as exc:
                    logger.warning("Crawler: skipping %s – %s", url, exc)
                    continue

                if result.status >= 400:
                    logger.warning("Crawler: skipping %s – HTTP %d", url, result.status)
                    continue

                self.pages_processed += 1
                page = self._process(url, depth, result)
                if page is not None:
                    pages.append(page)
        finally:
            if self._owns_scraper:
                await self.scraper.close()

        logger.info(
            "Crawl finished",
            extra={"seed": seed, "pages": len(pages), "pages_processed": self.pages_processed},
        )
        return pages

    def _process(self, url: str, depth: int, result: ScrapeResult) -> Optional[Page]:
        content_type = result.content_type.lower()
        if content_type and not content_type.startswith(_HTML_CONTENT_TYPES):
            logger.debug("Crawler: %s is not HTML (%s)", url, content_type)
            return None

        page_url = result.final_url or url
        links: List[str] = []
        for href in extract_links(result.html, page_url):
            try:
                link = normalize_url(href)
            except ValueError:
                continue
            if link in links:
                continue
            if not self._in_scope(link):
                logger.debug("Crawler: %s out of scope", link)
                continue
            links.append(link)
            if depth < self.options.max_depth and self.is_allowed_url(link):
                self.frontier.push(link, depth + 1)

        content = extract_text(result.html)
        if len(content) < self.options.min_content_length:
            logger.debug("Crawler: %s has too little content (%d chars)", url, len(content))
            return None

        return Page(
            url=url,
            title=result.title or extract_title(result.html),
            content=content,
            links=links,
            depth=depth,
        )


async def crawl(
    start_url: str,
    max_pages: int = 50,
    max_depth: int = 3,
    include_patterns: Optional[List[str]] = None,
    exclude_patterns: Optional[List[str]] = None,
    scraper: Optional[Scraper] = None,
) -> List[Page]:
    """Crawl *start_url* with a one-off :class:`Crawler`."""
    options = CrawlOptions(
        max_pages=max_pages,
        max_depth=max_depth,
        include_patterns=include_patterns,
        exclude_patterns=exclude_patterns,
    )
    return await Crawler(scraper=scraper, options=options).crawl(start_url)
