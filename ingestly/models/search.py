from typing import List, Optional

from pydantic import BaseModel, Field

from ingestly.models.chunk import SearchFilter, SearchHit, SourceSummary


class SearchRequest(BaseModel):
    query: str = Field(min_length=1)
    limit: int = Field(default=5, ge=1, le=50)
    min_score: float = Field(default=0.0, ge=0, le=1)
    filter: Optional[SearchFilter] = None


class SearchResponse(BaseModel):
    query: str
    hits: List[SearchHit]


class SourcesResponse(BaseModel):
    sources: List[SourceSummary]
