"""Validated configuration structs for the scraper, crawler, chunker and queue.

Every component takes one of these instead of a loose option dict; per-call
overrides go through :meth:`ScraperOptions.merged`, which re-runs validation.
"""

import re
from typing import List, Literal, Optional, Pattern

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

WaitUntil = Literal["load", "domcontentloaded", "networkidle", "commit"]


class Viewport(BaseModel):
    model_config = ConfigDict(frozen=True)

    width: int = Field(default=1920, ge=320, le=7680)
    height: int = Field(default=1080, ge=240, le=4320)


class ScraperOptions(BaseModel):
    model_config = ConfigDict(frozen=True)

    headless: bool = True
    timeout_ms: int = Field(
        default=30_000,
        ge=1_000,
        le=300_000,
        description="Navigation timeout per attempt, in milliseconds.",
    )
    wait_until: WaitUntil = "networkidle"
    proxy: Optional[str] = Field(
        default=None,
        description="Explicit proxy connection string; bypasses the proxy pool.",
    )
    user_agent: Optional[str] = Field(
        default=None,
        description="Explicit user agent; bypasses rotation.",
    )
    cookies: List[dict] = Field(default_factory=list)
    viewport: Viewport = Field(default_factory=Viewport)
    retries: int = Field(default=3, ge=0, le=10)
    retry_delay: float = Field(
        default=1.0,
        ge=0,
        le=60,
        description="Base delay in seconds for exponential retry backoff.",
    )
    max_concurrency: int = Field(default=5, ge=1, le=50)
    cache_html: bool = True
    cache_ttl: float = Field(default=3600.0, ge=0, description="Cache lifetime in seconds.")
    block_media: bool = True
    block_fonts: bool = True
    block_images: bool = True
    block_stylesheets: bool = False

    def merged(self, **overrides) -> "ScraperOptions":
        """Return a validated copy with *overrides* applied (``None`` values ignored)."""
        if not overrides:
            return self
        data = self.model_dump()
        data.update({key: value for key, value in overrides.items() if value is not None})
        return ScraperOptions.model_validate(data)

    @property
    def blocked_resource_types(self) -> frozenset:
        blocked = set()
        if self.block_media:
            blocked.add("media")
        if self.block_fonts:
            blocked.add("font")
        if self.block_images:
            blocked.add("image")
        if self.block_stylesheets:
            blocked.add("stylesheet")
        return frozenset(blocked)


class CrawlOptions(BaseModel):
    model_config = ConfigDict(frozen=True)

    max_pages: int = Field(
        default=50,
        ge=1,
        le=1000,
        description="Maximum number of pages to process.",
    )
    max_depth: int = Field(
        default=3,
        ge=0,
        le=10,
        description="Maximum link depth from the seed URL (seed is depth 0).",
    )
    include_patterns: Optional[List[str]] = Field(
        default=None,
        description="Regexes a URL must match at least one of; defaults to the seed's domain.",
    )
    exclude_patterns: Optional[List[str]] = Field(
        default=None,
        description="Regexes that reject a URL; defaults to binary files, queries and fragments.",
    )
    timeout_ms: int = Field(default=30_000, ge=1_000, le=300_000)
    min_content_length: int = Field(default=100, ge=0)

    @field_validator("include_patterns", "exclude_patterns")
    @classmethod
    def _patterns_compile(cls, value: Optional[List[str]]) -> Optional[List[str]]:
        for pattern in value or []:
            try:
                re.compile(pattern)
            except re.error as exc:
                raise ValueError(f"Invalid pattern {pattern!r}: {exc}") from exc
        return value

    def compiled_includes(self) -> List[Pattern[str]]:
        return [re.compile(p, re.IGNORECASE) for p in self.include_patterns or []]

    def compiled_excludes(self) -> List[Pattern[str]]:
        return [re.compile(p, re.IGNORECASE) for p in self.exclude_patterns or []]


class ChunkingOptions(BaseModel):
    model_config = ConfigDict(frozen=True)

    chunk_size: int = Field(default=1000, ge=1)
    chunk_overlap: int = Field(default=200, ge=0)
    min_chunk_size: int = Field(default=100, ge=0)
    separator: str = Field(default="\n", min_length=1)
    preserve_paragraphs: bool = True

    @model_validator(mode="after")
    def _check_sizes(self) -> "ChunkingOptions":
        if self.chunk_overlap >= self.chunk_size:
            raise ValueError("chunk_overlap must be smaller than chunk_size")
        if self.min_chunk_size > self.chunk_size:
            raise ValueError("min_chunk_size must not exceed chunk_size")
        return self


class Backoff(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["exponential", "fixed"] = "exponential"
    delay_ms: int = Field(default=1000, ge=0)


class QueueOptions(BaseModel):
    model_config = ConfigDict(frozen=True)

    concurrency: int = Field(default=5, ge=1, le=100)
    rate_limit_per_second: float = Field(
        default=2.0,
        ge=0,
        description="Task starts allowed per second across all workers (0 disables).",
    )
    retries: int = Field(default=3, ge=0, le=20)
    backoff: Backoff = Field(default_factory=Backoff)
    timeout_ms: int = Field(default=60_000, ge=1)
    queue_name: str = Field(default="scraping-queue", min_length=1)
    keep_completed: int = Field(default=100, ge=0)
    keep_failed: int = Field(default=200, ge=0)
    poll_interval: float = Field(default=0.1, gt=0)
