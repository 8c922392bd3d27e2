from typing import List, Optional

from pydantic import BaseModel, Field, HttpUrl


class CrawlRequest(BaseModel):
    url: HttpUrl
    max_pages: Optional[int] = Field(
        default=None,
        ge=1,
        le=200,
        description="Maximum number of pages to process (1–200). Defaults to the configured crawl limit.",
    )
    max_depth: Optional[int] = Field(
        default=None,
        ge=0,
        le=5,
        description="Maximum link depth from the seed URL; the seed is depth 0. Defaults to the configured crawl depth.",
    )
    include_patterns: Optional[List[str]] = Field(
        default=None,
        description="Regexes a URL must match to be crawled. Defaults to the seed's domain.",
    )
    exclude_patterns: Optional[List[str]] = Field(
        default=None,
        description="Regexes that exclude a URL. Defaults to binary files, query strings and fragments.",
    )
    store: bool = Field(
        default=True,
        description="Chunk the crawled pages and add them to the document store.",
    )
    include_content: bool = True
