from datetime import datetime
from typing import List

from pydantic import BaseModel


class PageResult(BaseModel):
    id: str
    url: str
    title: str
    content: str
    links: List[str]
    depth: int
    fetched_at: datetime
    word_count: int


class CrawlResponse(BaseModel):
    start_url: str
    pages_crawled: int
    pages_processed: int
    chunks_stored: int
    pages: List[PageResult]
    total_word_count: int
