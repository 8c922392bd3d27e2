"""Headless-browser page fetcher with identity rotation, retries and an HTML cache."""

import asyncio
import logging
import time
from typing import Dict, List, Optional, Tuple

from tenacity import AsyncRetrying, RetryCallState, stop_after_attempt, wait_exponential

from ingestly.models.options import ScraperOptions
from ingestly.models.proxy import Proxy
from ingestly.models.scrape_result import ScrapeResult
from ingestly.services.browser import BrowserSession
from ingestly.services.extractor import select_values
from ingestly.services.normalizer import validate_url
from ingestly.services.proxy_manager import ProxyManager
from ingestly.services.user_agents import UserAgentRotator

logger = logging.getLogger(__name__)

_LINKS_SCRIPT = "els => els.map(a => a.href)"


class _HtmlCache:
    """URL-keyed result cache with a single time-to-live."""

    def __init__(self, ttl: float):
        self.ttl = ttl
        self._entries: Dict[str, Tuple[float, ScrapeResult]] = {}

    def get(self, url: str) -> Optional[ScrapeResult]:
        entry = self._entries.get(url)
        if entry is None:
            return None
        stored_at, result = entry
        if time.monotonic() - stored_at >= self.ttl:
            del self._entries[url]
            return None
        return result

    def put(self, url: str, result: ScrapeResult) -> None:
        self._entries[url] = (time.monotonic(), result)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


class Scraper:
    """Fetch pages through a shared :class:`BrowserSession`.

    The session is launched on first use and released by :meth:`close`.  A
    session passed in by the caller is never closed here.
    """

    def __init__(
        self,
        options: Optional[ScraperOptions] = None,
        *,
        proxy_manager: Optional[ProxyManager] = None,
        user_agents: Optional[UserAgentRotator] = None,
        session: Optional[BrowserSession] = None,
    ):
        self.options = options or ScraperOptions()
        self.proxy_manager = proxy_manager or ProxyManager()
        self.user_agents = user_agents or UserAgentRotator()
        self._owns_session = session is None
        self.session = session or BrowserSession(headless=self.options.headless)
        self._cache = _HtmlCache(self.options.cache_ttl)
        logger.info(
            "Scraper initialised",
            extra={
                "headless": self.options.headless,
                "timeout_ms": self.options.timeout_ms,
                "retries": self.options.retries,
            },
        )

    async def start(self) -> None:
        await self.session.start()

    async def close(self) -> None:
        if self._owns_session:
            await self.session.close()

    async def __aenter__(self) -> "Scraper":
        await self.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Cache
    # ------------------------------------------------------------------

    def clear_cache(self) -> None:
        self._cache.clear()
        logger.debug("HTML cache cleared")

    def set_cache_ttl(self, seconds: float) -> None:
        self._cache.ttl = seconds
        logger.debug("HTML cache TTL set to %ss", seconds)

    # ------------------------------------------------------------------
    # Fetching
    # ------------------------------------------------------------------

    async def scrape(self, url: str, **overrides) -> ScrapeResult:
        """Fetch *url*, retrying transient failures with exponential backoff.

        Keyword arguments override fields of :class:`ScraperOptions` for this
        call only.

        Raises:
            ValueError: invalid URL or option override (never retried).
            BrowserLaunchError: Chromium could not be started.
            Exception: the last navigation error once retries are exhausted.
        """
        validate_url(url)
        options = self.options.merged(**overrides)

        if options.cache_html:
            cached = self._cache.get(url)
            if cached is not None:
                logger.debug("Using cached HTML for %s", url)
                return cached.model_copy(update={"from_cache": True})

        # A launch failure is fatal; surface it before entering the retry loop.
        await self.session.start()

        total = options.retries + 1

        def _log_failure(state: RetryCallState) -> None:
            exc = state.outcome.exception()
            logger.warning(
                "Scraping attempt %d/%d failed for %s – %s",
                state.attempt_number,
                total,
                url,
                exc,
                extra={"retries_left": total - state.attempt_number},
            )

        retrying = AsyncRetrying(
            stop=stop_after_attempt(total),
            wait=wait_exponential(multiplier=options.retry_delay, max=30),
            after=_log_failure,
            reraise=True,
        )
        try:
            async for attempt in retrying:
                with attempt:
                    result = await self._scrape_once(url, options)
        except Exception as exc:
            logger.error("Scraping %s failed after %d attempts: %s", url, total, exc)
            raise

        if options.cache_html:
            self._cache.put(url, result)
        return result

    async def _scrape_once(self, url: str, options: ScraperOptions) -> ScrapeResult:
        pooled_proxy: Optional[Proxy] = None
        proxy_string = options.proxy
        if proxy_string is None:
            pooled_proxy = self.proxy_manager.get_next()
            if pooled_proxy is not None:
                proxy_string = ProxyManager.to_connection_string(pooled_proxy)
        user_agent = options.user_agent or self.user_agents.get_random()

        started = time.monotonic()
        try:
            async with self.session.page(
                user_agent=user_agent,
                proxy=proxy_string,
                viewport=options.viewport.model_dump(),
                cookies=options.cookies,
                blocked_resource_types=options.blocked_resource_types,
            ) as page:
                response = await page.goto(
                    url,
                    wait_until=options.wait_until,
                    timeout=options.timeout_ms,
                )
                status = response.status if response is not None else 0
                headers = await response.all_headers() if response is not None else {}
                html = await page.content()
                title = await page.title()
                hrefs = await page.eval_on_selector_all("a[href]", _LINKS_SCRIPT)
                cookies = await page.context.cookies()
                final_url = page.url
        except Exception:
            if pooled_proxy is not None:
                self.proxy_manager.mark_error(pooled_proxy)
            raise

        if pooled_proxy is not None:
            self.proxy_manager.mark_success(pooled_proxy)

        links = []
        for href in hrefs:
            if href and href.startswith(("http://", "https://")) and href not in links:
                links.append(href)

        return ScrapeResult(
            url=url,
            final_url=final_url or url,
            html=html,
            status=status,
            headers=headers,
            cookies=[dict(cookie) for cookie in cookies],
            title=title,
            links=links,
            duration_ms=(time.monotonic() - started) * 1000,
            user_agent=user_agent,
            proxy=proxy_string,
        )

    async def scrape_multiple(self, urls: List[str], **overrides) -> List[ScrapeResult]:
        """Scrape *urls* in batches of ``max_concurrency``.

        A URL that fails (after its retries) yields a result with ``error``
        set; it never aborts the rest of the batch.  Results keep input order.
        """
        options = self.options.merged(**overrides)
        batch_size = options.max_concurrency
        results: List[ScrapeResult] = []

        for start in range(0, len(urls), batch_size):
            batch = urls[start:start + batch_size]
            outcomes = await asyncio.gather(
                *(self.scrape(url, **overrides) for url in batch),
                return_exceptions=True,
            )
            for url, outcome in zip(batch, outcomes):
                if isinstance(outcome, BaseException):
                    if not isinstance(outcome, Exception):
                        raise outcome
                    logger.error("Batch scraping failed for %s: %s", url, outcome)
                    results.append(ScrapeResult(url=url, error=str(outcome) or type(outcome).__name__))
                else:
                    results.append(outcome)
        return results

    @staticmethod
    def extract_data(html: str, selector: str, attribute: Optional[str] = None) -> List[str]:
        return select_values(html, selector, attribute)
