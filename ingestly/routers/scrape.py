import logging

from fastapi import APIRouter, HTTPException, Request
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from ingestly.models.request import ScrapeRequest
from ingestly.models.response import ScrapeResponse
from ingestly.routers.limits import limiter
from ingestly.services.extractor import extract_text

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/scrape", response_model=ScrapeResponse, summary="Render and scrape a single page")
@limiter.limit("10/minute")
async def scrape(request: Request, body: ScrapeRequest) -> ScrapeResponse:
    """Render *url* in the headless browser and return its text, links and metadata.

    Navigation goes through the shared proxy pool and user-agent rotation
    unless ``proxy`` / ``user_agent`` are given.  With ``selector`` set, the
    text (or ``attribute``) of every matching element is returned in
    ``extracted``.
    """
    url = str(body.url)
    logger.info("Scrape request received", extra={"url": url})
    scraper = request.app.state.scraper

    overrides = {
        "wait_until": body.wait_until,
        "timeout_ms": body.timeout_ms,
        "user_agent": body.user_agent,
        "proxy": body.proxy,
        "cookies": body.cookies or None,
        "cache_html": body.use_cache,
    }
    try:
        result = await scraper.scrape(url, **overrides)
    except ValueError as exc:
        logger.warning("Invalid scrape request: %s – %s", url, exc)
        raise HTTPException(status_code=400, detail=str(exc))
    except PlaywrightTimeoutError:
        logger.error("Timeout rendering URL: %s", url)
        raise HTTPException(status_code=504, detail="The target URL timed out.")
    except (PlaywrightError, RuntimeError) as exc:
        logger.error("Browser error for %s: %s", url, exc)
        raise HTTPException(status_code=502, detail=str(exc))

    content = extract_text(result.html)
    extracted = None
    if body.selector:
        extracted = scraper.extract_data(result.html, body.selector, body.attribute)

    return ScrapeResponse(
        url=url,
        final_url=result.final_url or url,
        status=result.status,
        title=result.title,
        content=content,
        links=result.links,
        headers=result.headers,
        html=result.html if body.include_html else None,
        extracted=extracted,
        duration_ms=result.duration_ms,
        from_cache=result.from_cache,
        word_count=len(content.split()),
    )
