"""Tests for the crawl → chunk → store pipeline and the in-memory document store."""

import logging

from ingestly.models.chunk import ChunkDocument, ChunkMetadata, SearchFilter
from ingestly.models.options import ChunkingOptions, CrawlOptions, ScraperOptions
from ingestly.models.page import Page
from ingestly.services.document_store import InMemoryDocumentStore
from ingestly.services.ingestion import build_chunk_documents, ingest_site
from ingestly.services.scraper import Scraper
from tests.fakes import FakeBrowserSession, make_page


def _doc(doc_id: str, text: str, url: str = "https://example.test/a") -> ChunkDocument:
    return ChunkDocument(
        id=doc_id,
        text=text,
        metadata=ChunkMetadata(page_id="p1", url=url, title="T", chunk_index=0, total_chunks=1),
    )


class FailingStore(InMemoryDocumentStore):
    """Rejects every upsert for one URL."""

    def __init__(self, broken_url: str):
        super().__init__()
        self.broken_url = broken_url

    async def upsert(self, documents):
        if any(d.metadata.url == self.broken_url for d in documents):
            raise ConnectionError("vector store unavailable")
        return await super().upsert(documents)


# ---------------------------------------------------------------------------
# build_chunk_documents
# ---------------------------------------------------------------------------


class TestBuildChunkDocuments:
    def test_metadata_and_ids(self):
        paragraph = " ".join(f"word{i}" for i in range(60))
        page = Page(url="https://example.test/docs", title="Docs", content="\n\n".join([paragraph] * 5))

        documents = build_chunk_documents(page, ChunkingOptions(chunk_size=500, chunk_overlap=50))

        assert len(documents) > 1
        assert [d.metadata.chunk_index for d in documents] == list(range(len(documents)))
        assert all(d.metadata.total_chunks == len(documents) for d in documents)
        assert all(d.metadata.page_id == page.id for d in documents)
        assert documents[0].id == "https---example-test-docs-0"
        assert len({d.id for d in documents}) == len(documents)

    def test_empty_page_has_no_documents(self):
        page = Page(url="https://example.test", title="Empty", content="   ")
        assert build_chunk_documents(page) == []


# ---------------------------------------------------------------------------
# ingest_site
# ---------------------------------------------------------------------------


class TestIngestSite:
    async def test_crawls_chunks_and_stores(self, small_site):
        scraper = Scraper(ScraperOptions(retry_delay=0, cache_html=False), session=FakeBrowserSession(small_site))
        store = InMemoryDocumentStore()

        report = await ingest_site(
            "https://example.test",
            store,
            crawl_options=CrawlOptions(max_pages=3, max_depth=1),
            scraper=scraper,
        )

        assert [p.url for p in report.pages] == [
            "https://example.test",
            "https://example.test/about",
            "https://example.test/blog",
        ]
        assert report.pages_processed == 3
        # each fixture page is short enough for a single chunk
        assert report.chunks_stored == 3
        assert len(store) == 3

    async def test_without_store_only_crawls(self, small_site):
        scraper = Scraper(ScraperOptions(retry_delay=0), session=FakeBrowserSession(small_site))
        report = await ingest_site(
            "https://example.test",
            None,
            crawl_options=CrawlOptions(max_pages=2, max_depth=1),
            scraper=scraper,
        )
        assert len(report.pages) == 2
        assert report.chunks_stored == 0

    async def test_reingesting_overwrites_chunks(self, small_site):
        store = InMemoryDocumentStore()
        for _ in range(2):
            scraper = Scraper(ScraperOptions(retry_delay=0, cache_html=False), session=FakeBrowserSession(small_site))
            await ingest_site("https://example.test", store, CrawlOptions(max_pages=3, max_depth=1), scraper=scraper)
        assert len(store) == 3

    async def test_storage_failure_skips_only_that_page(self, caplog):
        site = {
            "https://example.test": make_page("Home", ["/broken"]),
            "https://example.test/broken": make_page("Broken", []),
        }
        scraper = Scraper(ScraperOptions(retry_delay=0), session=FakeBrowserSession(site))
        store = FailingStore("https://example.test/broken")

        with caplog.at_level(logging.ERROR):
            report = await ingest_site("https://example.test", store, CrawlOptions(max_depth=1), scraper=scraper)

        assert len(report.pages) == 2
        assert report.chunks_stored == 1
        assert "vector store unavailable" in caplog.text


# ---------------------------------------------------------------------------
# InMemoryDocumentStore
# ---------------------------------------------------------------------------


class TestInMemoryDocumentStore:
    async def test_ranks_by_term_overlap(self):
        store = InMemoryDocumentStore()
        await store.upsert([
            _doc("a", "python web crawler"),
            _doc("b", "python packaging"),
            _doc("c", "gardening tips"),
        ])

        hits = await store.search("python crawler")

        assert [h.id for h in hits] == ["a", "b"]
        assert hits[0].score == 1.0
        assert hits[1].score == 0.5

    async def test_limit_and_min_score(self):
        store = InMemoryDocumentStore()
        await store.upsert([_doc("a", "alpha beta"), _doc("b", "alpha"), _doc("c", "alpha")])
        assert len(await store.search("alpha", limit=2)) == 2
        assert [h.id for h in await store.search("alpha beta", min_score=0.75)] == ["a"]

    async def test_filter_by_url(self):
        store = InMemoryDocumentStore()
        await store.upsert([
            _doc("a", "shared words", url="https://example.test/a"),
            _doc("b", "shared words", url="https://example.test/b"),
        ])
        hits = await store.search("shared", filter=SearchFilter(url="https://example.test/b"))
        assert [h.id for h in hits] == ["b"]

    async def test_blank_query_matches_nothing(self):
        store = InMemoryDocumentStore()
        await store.upsert([_doc("a", "anything")])
        assert await store.search("  ") == []

    async def test_clear(self):
        store = InMemoryDocumentStore()
        await store.upsert([_doc("a", "x"), _doc("b", "y")])
        assert await store.clear() == 2
        assert len(store) == 0

    async def test_sources_are_distinct_per_url(self):
        store = InMemoryDocumentStore()
        await store.upsert([
            _doc("a-0", "one", url="https://example.test/a"),
            _doc("b-0", "two", url="https://example.test/b"),
            _doc("a-1", "three", url="https://example.test/a"),
        ])

        sources = await store.sources()

        assert [(s.url, s.chunks) for s in sources] == [
            ("https://example.test/a", 2),
            ("https://example.test/b", 1),
        ]
        assert sources[0].title == "T"
        assert sources[0].source == "web"
