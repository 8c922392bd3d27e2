"""Tests for the HTTP API: /scrape, /crawl, /search and /queue.

The shared scraper on ``app.state`` is swapped for one driving the
FakeBrowserSession, and the task queue for an AsyncMock, so the tests run
without a browser or a database.
"""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi.testclient import TestClient
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from ingestly.main import _scrape_task, app
from ingestly.models.options import ScraperOptions
from ingestly.models.task import QueueStats, ScrapingTask
from ingestly.services.document_store import InMemoryDocumentStore
from ingestly.services.scraper import Scraper
from tests.fakes import SMALL_SITE, FakeBrowserSession

client = TestClient(app)


@pytest.fixture(autouse=True)
def reset_rate_limits():
    """Clear the slowapi in-memory counter before every test."""
    app.state.limiter._storage.reset()
    yield


@pytest.fixture(autouse=True)
def fake_app_state():
    """Point app.state at a fake-browser scraper and a fresh document store."""
    saved = (app.state.scraper, app.state.document_store, app.state.task_queue)
    session = FakeBrowserSession(dict(SMALL_SITE))
    app.state.scraper = Scraper(ScraperOptions(retries=0, retry_delay=0), session=session)
    app.state.document_store = InMemoryDocumentStore()
    app.state.task_queue = None
    yield session
    app.state.scraper, app.state.document_store, app.state.task_queue = saved


# ---------------------------------------------------------------------------
# Root
# ---------------------------------------------------------------------------


def test_root():
    response = client.get("/")
    assert response.status_code == 200
    assert response.json() == {"message": "Hello from Ingestly"}


# ---------------------------------------------------------------------------
# POST /scrape
# ---------------------------------------------------------------------------


class TestScrapeEndpoint:
    def test_returns_text_links_and_metadata(self):
        response = client.post("/scrape", json={"url": "https://example.test/about"})
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == 200
        assert data["title"] == "About"
        assert data["content"].startswith("About\n")
        assert "https://example.test/deep" in data["links"]
        assert data["html"] is None
        assert data["from_cache"] is False
        assert data["word_count"] > 10

    def test_include_html_and_selector(self):
        response = client.post(
            "/scrape",
            json={
                "url": "https://example.test/about",
                "include_html": True,
                "selector": "li a",
                "attribute": "href",
            },
        )
        data = response.json()
        assert "<h1>About</h1>" in data["html"]
        assert data["extracted"] == ["/", "/deep"]

    def test_second_request_is_cached(self, fake_app_state):
        client.post("/scrape", json={"url": "https://example.test/about"})
        response = client.post("/scrape", json={"url": "https://example.test/about"})
        assert response.json()["from_cache"] is True
        assert fake_app_state.requests == ["https://example.test/about"]

    def test_use_cache_false_refetches(self, fake_app_state):
        client.post("/scrape", json={"url": "https://example.test/about"})
        client.post("/scrape", json={"url": "https://example.test/about", "use_cache": False})
        assert len(fake_app_state.requests) == 2

    def test_invalid_url_is_rejected(self):
        response = client.post("/scrape", json={"url": "not-a-url"})
        assert response.status_code == 422

    def test_timeout_maps_to_504(self):
        app.state.scraper.scrape = AsyncMock(side_effect=PlaywrightTimeoutError("Timeout 30000ms exceeded"))
        response = client.post("/scrape", json={"url": "https://example.test"})
        assert response.status_code == 504

    def test_navigation_error_maps_to_502(self):
        session = FakeBrowserSession({"https://example.test": RuntimeError("net::ERR_NAME_NOT_RESOLVED")})
        app.state.scraper = Scraper(ScraperOptions(retries=0, retry_delay=0), session=session)
        response = client.post("/scrape", json={"url": "https://example.test"})
        assert response.status_code == 502
        assert "ERR_NAME_NOT_RESOLVED" in response.json()["detail"]

    def test_rate_limit(self):
        for _ in range(10):
            assert client.post("/scrape", json={"url": "https://example.test"}).status_code == 200
        assert client.post("/scrape", json={"url": "https://example.test"}).status_code == 429


# ---------------------------------------------------------------------------
# POST /crawl and /search
# ---------------------------------------------------------------------------


class TestCrawlEndpoint:
    def test_crawls_and_stores(self):
        response = client.post(
            "/crawl",
            json={"url": "https://example.test/", "max_pages": 3, "max_depth": 1},
        )
        assert response.status_code == 200
        data = response.json()
        assert data["pages_crawled"] == 3
        assert data["pages_processed"] == 3
        assert data["chunks_stored"] == 3
        assert [p["url"] for p in data["pages"]] == [
            "https://example.test",
            "https://example.test/about",
            "https://example.test/blog",
        ]
        assert data["total_word_count"] == sum(p["word_count"] for p in data["pages"])
        assert len(app.state.document_store) == 3

    def test_store_false_and_no_content(self):
        response = client.post(
            "/crawl",
            json={
                "url": "https://example.test",
                "max_pages": 1,
                "store": False,
                "include_content": False,
            },
        )
        data = response.json()
        assert data["chunks_stored"] == 0
        assert data["pages"][0]["content"] == ""
        assert data["pages"][0]["word_count"] > 0
        assert len(app.state.document_store) == 0

    def test_invalid_pattern_is_400(self):
        response = client.post(
            "/crawl",
            json={"url": "https://example.test", "include_patterns": ["(unclosed"]},
        )
        assert response.status_code == 400

    def test_browser_failure_is_502(self):
        session = FakeBrowserSession(dict(SMALL_SITE), fail_launch=True)
        app.state.scraper = Scraper(ScraperOptions(retries=0, retry_delay=0), session=session)
        response = client.post("/crawl", json={"url": "https://example.test"})
        assert response.status_code == 502

    def test_limits_are_validated(self):
        response = client.post("/crawl", json={"url": "https://example.test", "max_depth": 9})
        assert response.status_code == 422

    def test_passes_options_to_pipeline(self):
        report = MagicMock(pages=[], pages_processed=0, chunks_stored=0)
        with patch("ingestly.routers.crawl.ingest_site", new=AsyncMock(return_value=report)) as mock_ingest:
            response = client.post(
                "/crawl",
                json={"url": "https://example.test", "max_pages": 7, "exclude_patterns": ["/private"]},
            )
        assert response.status_code == 200
        options = mock_ingest.call_args.kwargs["crawl_options"]
        assert options.max_pages == 7
        assert options.exclude_patterns == ["/private"]

    def test_rate_limit(self):
        statuses = [
            client.post("/crawl", json={"url": "https://example.test", "max_pages": 1}).status_code
            for _ in range(6)
        ]
        assert statuses == [200] * 5 + [429]


class TestSearchEndpoint:
    def test_finds_crawled_content(self):
        client.post("/crawl", json={"url": "https://example.test", "max_pages": 3, "max_depth": 1})
        response = client.post("/search", json={"query": "About deep", "limit": 1})
        assert response.status_code == 200
        hits = response.json()["hits"]
        assert len(hits) == 1
        assert hits[0]["metadata"]["url"] == "https://example.test/about"
        assert hits[0]["score"] == 1.0

    def test_empty_store(self):
        response = client.post("/search", json={"query": "anything"})
        assert response.json() == {"query": "anything", "hits": []}


class TestDocumentEndpoints:
    def test_sources_lists_crawled_pages(self):
        client.post("/crawl", json={"url": "https://example.test", "max_pages": 3, "max_depth": 1})
        response = client.get("/sources")
        assert response.status_code == 200
        sources = response.json()["sources"]
        assert [s["url"] for s in sources] == [
            "https://example.test",
            "https://example.test/about",
            "https://example.test/blog",
        ]
        assert sources[1]["title"] == "About"
        assert all(s["chunks"] == 1 and s["source"] == "web" for s in sources)

    def test_sources_empty_store(self):
        assert client.get("/sources").json() == {"sources": []}

    def test_delete_documents_empties_the_store(self):
        client.post("/crawl", json={"url": "https://example.test", "max_pages": 3, "max_depth": 1})
        response = client.delete("/documents")
        assert response.status_code == 200
        assert response.json() == {"removed": 3}
        assert len(app.state.document_store) == 0
        assert client.get("/sources").json() == {"sources": []}
        assert client.post("/search", json={"query": "About"}).json()["hits"] == []


# ---------------------------------------------------------------------------
# /queue
# ---------------------------------------------------------------------------


def _mock_queue() -> MagicMock:
    queue = MagicMock()
    queue.submit_many = AsyncMock(side_effect=lambda tasks: [t.id for t in tasks])
    queue.stats = AsyncMock(return_value=QueueStats(waiting=2, active=1, completed=5, failed=1))
    queue.clear = AsyncMock(return_value=9)
    return queue


class TestQueueEndpoints:
    def test_unavailable_without_queue(self):
        assert client.get("/queue/stats").status_code == 503

    def test_submit(self):
        app.state.task_queue = _mock_queue()
        response = client.post(
            "/queue/tasks",
            json={
                "tasks": [
                    {"id": "job-1", "url": "https://example.test/a", "priority": 1},
                    {"url": "https://example.test/b", "options": {"wait_until": "load"}},
                ]
            },
        )
        assert response.status_code == 202
        task_ids = response.json()["task_ids"]
        assert task_ids[0] == "job-1"
        assert len(task_ids) == 2

        submitted = app.state.task_queue.submit_many.call_args.args[0]
        assert all(isinstance(t, ScrapingTask) for t in submitted)
        assert submitted[0].priority == 1
        assert submitted[1].options == {"wait_until": "load"}

    def test_empty_batch_is_rejected(self):
        app.state.task_queue = _mock_queue()
        assert client.post("/queue/tasks", json={"tasks": []}).status_code == 422

    def test_stats(self):
        app.state.task_queue = _mock_queue()
        response = client.get("/queue/stats")
        assert response.json() == {"waiting": 2, "active": 1, "completed": 5, "failed": 1, "delayed": 0}

    def test_clear(self):
        app.state.task_queue = _mock_queue()
        response = client.delete("/queue")
        assert response.json() == {"removed": 9}


# ---------------------------------------------------------------------------
# Queue processor
# ---------------------------------------------------------------------------


class TestScrapeTaskProcessor:
    async def test_summarises_scrape(self):
        session = FakeBrowserSession(dict(SMALL_SITE))
        process = _scrape_task(Scraper(ScraperOptions(retry_delay=0), session=session))

        summary = await process(ScrapingTask(url="https://example.test/about", options={"wait_until": "load"}))

        assert summary["status"] == 200
        assert summary["title"] == "About"
        assert summary["links"] >= 2

    async def test_single_attempt_per_queue_try(self):
        session = FakeBrowserSession({"https://example.test": RuntimeError("reset")})
        process = _scrape_task(Scraper(ScraperOptions(retries=5, retry_delay=0), session=session))

        with pytest.raises(RuntimeError):
            await process(ScrapingTask(url="https://example.test"))
        assert session.requests == ["https://example.test"]
