from typing import Optional

from pydantic import BaseModel, Field


class ChunkMetadata(BaseModel):
    page_id: str
    url: str
    title: str
    chunk_index: int = Field(ge=0)
    total_chunks: int = Field(ge=1)
    source: str = "web"


class ChunkDocument(BaseModel):
    """Record handed to the document store: ``{id, text, metadata}``."""

    id: str
    text: str
    metadata: ChunkMetadata


class SearchHit(ChunkDocument):
    score: float


class SearchFilter(BaseModel):
    url: Optional[str] = None
    page_id: Optional[str] = None
    source: Optional[str] = None


class SourceSummary(BaseModel):
    """One ingested source, as listed by ``GET /sources``."""

    url: str
    title: str
    source: str = "web"
    chunks: int = Field(ge=1)
