"""Centralised settings for the Ingestly service.

Values are read from ``INGESTLY_*`` environment variables; a ``.env`` file in
the project root is loaded automatically when this module is imported.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

from ingestly.models.options import (
    Backoff,
    ChunkingOptions,
    CrawlOptions,
    QueueOptions,
    ScraperOptions,
)

_env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(_env_path, override=False)


def _env(name: str, default: str) -> str:
    return os.environ.get(f"INGESTLY_{name}", default)


def _env_bool(name: str, default: bool) -> bool:
    return _env(name, "1" if default else "0").strip().lower() in {"1", "true", "yes", "on"}


@dataclass
class Settings:
    log_level: str = field(default_factory=lambda: _env("LOG_LEVEL", "INFO").upper())

    # ------------------------------------------------------------------
    # Browser / scraper
    # ------------------------------------------------------------------
    headless: bool = field(default_factory=lambda: _env_bool("HEADLESS", True))
    navigation_timeout_ms: int = field(
        default_factory=lambda: int(_env("NAVIGATION_TIMEOUT_MS", "30000"))
    )
    scrape_retries: int = field(default_factory=lambda: int(_env("SCRAPE_RETRIES", "3")))
    retry_delay: float = field(default_factory=lambda: float(_env("RETRY_DELAY", "1.0")))
    max_concurrency: int = field(default_factory=lambda: int(_env("MAX_CONCURRENCY", "5")))
    cache_ttl_seconds: float = field(
        default_factory=lambda: float(_env("CACHE_TTL_SECONDS", "3600"))
    )

    # ------------------------------------------------------------------
    # Proxies
    # ------------------------------------------------------------------
    proxy_file: Path | None = field(
        default_factory=lambda: Path(_env("PROXY_FILE", "")) if _env("PROXY_FILE", "") else None
    )
    proxy_rotation_seconds: float = field(
        default_factory=lambda: float(_env("PROXY_ROTATION_SECONDS", "300"))
    )

    # ------------------------------------------------------------------
    # Crawling and chunking
    # ------------------------------------------------------------------
    crawl_max_pages: int = field(default_factory=lambda: int(_env("CRAWL_MAX_PAGES", "50")))
    crawl_max_depth: int = field(default_factory=lambda: int(_env("CRAWL_MAX_DEPTH", "3")))
    chunk_size: int = field(default_factory=lambda: int(_env("CHUNK_SIZE", "1000")))
    chunk_overlap: int = field(default_factory=lambda: int(_env("CHUNK_OVERLAP", "200")))
    min_chunk_size: int = field(default_factory=lambda: int(_env("MIN_CHUNK_SIZE", "100")))

    # ------------------------------------------------------------------
    # Task queue
    # ------------------------------------------------------------------
    enable_queue: bool = field(default_factory=lambda: _env_bool("ENABLE_QUEUE", True))
    queue_db_path: Path = field(
        default_factory=lambda: Path(_env("QUEUE_DB_PATH", "ingestly_queue.db"))
    )
    queue_name: str = field(default_factory=lambda: _env("QUEUE_NAME", "scraping-queue"))
    queue_concurrency: int = field(default_factory=lambda: int(_env("QUEUE_CONCURRENCY", "5")))
    queue_rate_limit_per_second: float = field(
        default_factory=lambda: float(_env("QUEUE_RATE_LIMIT_PER_SECOND", "2"))
    )
    queue_retries: int = field(default_factory=lambda: int(_env("QUEUE_RETRIES", "3")))
    queue_backoff_ms: int = field(default_factory=lambda: int(_env("QUEUE_BACKOFF_MS", "1000")))
    queue_task_timeout_ms: int = field(
        default_factory=lambda: int(_env("QUEUE_TASK_TIMEOUT_MS", "60000"))
    )

    def scraper_options(self) -> ScraperOptions:
        return ScraperOptions(
            headless=self.headless,
            timeout_ms=self.navigation_timeout_ms,
            retries=self.scrape_retries,
            retry_delay=self.retry_delay,
            max_concurrency=self.max_concurrency,
            cache_ttl=self.cache_ttl_seconds,
        )

    def crawl_options(self) -> CrawlOptions:
        return CrawlOptions(
            max_pages=self.crawl_max_pages,
            max_depth=self.crawl_max_depth,
            timeout_ms=self.navigation_timeout_ms,
        )

    def chunking_options(self) -> ChunkingOptions:
        return ChunkingOptions(
            chunk_size=self.chunk_size,
            chunk_overlap=self.chunk_overlap,
            min_chunk_size=self.min_chunk_size,
        )

    def queue_options(self) -> QueueOptions:
        return QueueOptions(
            concurrency=self.queue_concurrency,
            rate_limit_per_second=self.queue_rate_limit_per_second,
            retries=self.queue_retries,
            backoff=Backoff(delay_ms=self.queue_backoff_ms),
            timeout_ms=self.queue_task_timeout_ms,
            queue_name=self.queue_name,
        )


# Module-level singleton:
#   from ingestly.config import settings
settings = Settings()
