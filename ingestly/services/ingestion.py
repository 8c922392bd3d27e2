"""Crawl → chunk → store pipeline."""

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from ingestly.models.chunk import ChunkDocument, ChunkMetadata
from ingestly.models.options import ChunkingOptions, CrawlOptions
from ingestly.models.page import Page
from ingestly.services.chunker import split_text
from ingestly.services.crawler import Crawler
from ingestly.services.document_store import DocumentStore
from ingestly.services.normalizer import generate_document_id
from ingestly.services.scraper import Scraper

logger = logging.getLogger(__name__)


@dataclass
class IngestionReport:
    start_url: str
    pages: List[Page] = field(default_factory=list)
    pages_processed: int = 0
    chunks_stored: int = 0


def build_chunk_documents(page: Page, options: Optional[ChunkingOptions] = None) -> List[ChunkDocument]:
    """Chunk *page* into storage records.

    Ids derive from the page URL and chunk index, so re-ingesting a page
    overwrites its previous chunks.
    """
    chunks = split_text(page.content, options)
    return [
        ChunkDocument(
            id=generate_document_id(page.url, index),
            text=text,
            metadata=ChunkMetadata(
                page_id=page.id,
                url=page.url,
                title=page.title,
                chunk_index=index,
                total_chunks=len(chunks),
            ),
        )
        for index, text in enumerate(chunks)
    ]


async def ingest_site(
    url: str,
    store: Optional[DocumentStore],
    crawl_options: Optional[CrawlOptions] = None,
    chunking_options: Optional[ChunkingOptions] = None,
    scraper: Optional[Scraper] = None,
) -> IngestionReport:
    """Crawl *url*, chunk every page and upsert the chunks into *store*.

    With no *store* the crawl result is returned without chunking.

    A storage failure for one page is logged and that page's chunks are not
    counted; the remaining pages are still stored.
    """
    crawler = Crawler(scraper=scraper, options=crawl_options)
    pages = await crawler.crawl(url)
    report = IngestionReport(start_url=url, pages=pages, pages_processed=crawler.pages_processed)
    if store is None:
        return report

    for page in pages:
        documents = build_chunk_documents(page, chunking_options)
        if not documents:
            continue
        try:
            stored = await store.upsert(documents)
        except Exception as exc:
            logger.error("Storing chunks for %s failed: %s", page.url, exc)
            continue
        report.chunks_stored += stored

    logger.info(
        "Ingestion finished",
        extra={
            "url": url,
            "pages_processed": report.pages_processed,
            "chunks_stored": report.chunks_stored,
        },
    )
    return report
