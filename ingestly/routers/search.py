import logging

from fastapi import APIRouter, Request

from ingestly.models.search import SearchRequest, SearchResponse, SourcesResponse
from ingestly.routers.limits import limiter

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/search", response_model=SearchResponse, summary="Search ingested content")
@limiter.limit("30/minute")
async def search(request: Request, body: SearchRequest) -> SearchResponse:
    hits = await request.app.state.document_store.search(
        body.query,
        limit=body.limit,
        filter=body.filter,
        min_score=body.min_score,
    )
    logger.info("Search served", extra={"query": body.query, "hits": len(hits)})
    return SearchResponse(query=body.query, hits=hits)


@router.get("/sources", response_model=SourcesResponse, summary="List ingested sources")
async def list_sources(request: Request) -> SourcesResponse:
    sources = await request.app.state.document_store.sources()
    return SourcesResponse(sources=sources)


@router.delete("/documents", summary="Remove every stored chunk")
@limiter.limit("5/minute")
async def clear_documents(request: Request) -> dict:
    removed = await request.app.state.document_store.clear()
    return {"removed": removed}
