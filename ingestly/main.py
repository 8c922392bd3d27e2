import logging
import logging.config
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from ingestly.config import settings
from ingestly.models.task import ScrapingTask
from ingestly.routers.crawl import router as crawl_router
from ingestly.routers.limits import limiter
from ingestly.routers.queue import router as queue_router
from ingestly.routers.scrape import router as scrape_router
from ingestly.routers.search import router as search_router
from ingestly.services.document_store import InMemoryDocumentStore
from ingestly.services.proxy_manager import ProxyManager
from ingestly.services.scraper import Scraper
from ingestly.services.task_queue import TaskQueue
from ingestly.services.task_store import TaskStore

logging.config.dictConfig(
    {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "json": {
                "format": '{"time": "%(asctime)s", "level": "%(levelname)s", "logger": "%(name)s", "message": "%(message)s"}',
            },
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": "json",
            },
        },
        "root": {"level": settings.log_level, "handlers": ["console"]},
    }
)

logger = logging.getLogger(__name__)


def _scrape_task(scraper: Scraper):
    async def process(task: ScrapingTask) -> dict:
        # retries belong to the queue, so the scraper gets a single attempt
        overrides = {**task.options, "retries": 0}
        result = await scraper.scrape(task.url, **overrides)
        return {
            "url": result.url,
            "final_url": result.final_url,
            "status": result.status,
            "title": result.title,
            "links": len(result.links),
            "from_cache": result.from_cache,
        }

    return process


@asynccontextmanager
async def lifespan(app: FastAPI):
    proxy_manager = app.state.proxy_manager
    if settings.proxy_file is not None:
        proxy_manager.load_from_file(settings.proxy_file)

    task_queue = None
    if settings.enable_queue:
        task_queue = TaskQueue(
            settings.queue_options(),
            store=TaskStore(settings.queue_db_path, settings.queue_name),
        )
        await task_queue.start(_scrape_task(app.state.scraper))
    app.state.task_queue = task_queue
    try:
        yield
    finally:
        if task_queue is not None:
            await task_queue.close()
        await app.state.scraper.close()


app = FastAPI(
    title="Ingestly – Crawling & Ingestion API",
    description="Renders pages in a headless browser, crawls sites, chunks their text and queues scraping work.",
    version="1.0.0",
    lifespan=lifespan,
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

app.state.document_store = InMemoryDocumentStore()
app.state.proxy_manager = ProxyManager(rotation_interval=settings.proxy_rotation_seconds)
app.state.scraper = Scraper(settings.scraper_options(), proxy_manager=app.state.proxy_manager)
app.state.task_queue = None


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled exception for %s", request.url)
    return JSONResponse(status_code=500, content={"detail": "An unexpected error occurred."})


app.include_router(scrape_router)
app.include_router(crawl_router)
app.include_router(search_router)
app.include_router(queue_router)


@app.get("/", summary="Health check")
async def root() -> dict:
    return {"message": "Hello from Ingestly"}
