import logging

from fastapi import APIRouter, HTTPException, Request
from playwright.async_api import Error as PlaywrightError

from ingestly.config import settings
from ingestly.models.crawl_request import CrawlRequest
from ingestly.models.crawl_response import CrawlResponse, PageResult
from ingestly.models.options import CrawlOptions
from ingestly.routers.limits import limiter
from ingestly.services.ingestion import ingest_site

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post(
    "/crawl",
    response_model=CrawlResponse,
    summary="Crawl a site and ingest its pages",
    description=(
        "Starting from *url*, follows in-scope links breadth-first up to "
        "`max_depth` levels deep and processes up to `max_pages` pages.  "
        "Pages are chunked and added to the document store unless `store` is false."
    ),
)
@limiter.limit("5/minute")
async def crawl_endpoint(request: Request, body: CrawlRequest) -> CrawlResponse:
    """BFS-crawl the pages reachable from *url* and store their chunks."""
    url = str(body.url)
    logger.info(
        "Crawl request received",
        extra={"url": url, "max_pages": body.max_pages, "max_depth": body.max_depth},
    )

    try:
        defaults = settings.crawl_options()
        options = CrawlOptions(
            max_pages=defaults.max_pages if body.max_pages is None else body.max_pages,
            max_depth=defaults.max_depth if body.max_depth is None else body.max_depth,
            include_patterns=body.include_patterns,
            exclude_patterns=body.exclude_patterns,
            timeout_ms=defaults.timeout_ms,
        )
        report = await ingest_site(
            url,
            request.app.state.document_store if body.store else None,
            crawl_options=options,
            chunking_options=settings.chunking_options(),
            scraper=request.app.state.scraper,
        )
    except ValueError as exc:
        logger.warning("Invalid crawl request: %s – %s", url, exc)
        raise HTTPException(status_code=400, detail=str(exc))
    except (PlaywrightError, RuntimeError) as exc:
        logger.error("Error crawling URL %s: %s", url, exc)
        raise HTTPException(status_code=502, detail=str(exc))

    pages = []
    total_word_count = 0
    for page in report.pages:
        wc = len(page.content.split())
        pages.append(
            PageResult(
                id=page.id,
                url=page.url,
                title=page.title,
                content=page.content if body.include_content else "",
                links=page.links,
                depth=page.depth,
                fetched_at=page.fetched_at,
                word_count=wc,
            )
        )
        total_word_count += wc

    return CrawlResponse(
        start_url=url,
        pages_crawled=len(pages),
        pages_processed=report.pages_processed,
        chunks_stored=report.chunks_stored,
        pages=pages,
        total_word_count=total_word_count,
    )
