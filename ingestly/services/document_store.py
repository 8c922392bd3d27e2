"""Storage boundary for chunk documents.

Any backend (vector database, search index) plugs in by implementing
:class:`DocumentStore`.  :class:`InMemoryDocumentStore` scores by query-term
overlap and backs the HTTP service and the tests.
"""

import asyncio
import logging
import re
from typing import Dict, List, Optional, Protocol, Sequence

from ingestly.models.chunk import ChunkDocument, SearchFilter, SearchHit, SourceSummary

logger = logging.getLogger(__name__)

_TOKEN_RE = re.compile(r"\w+", re.UNICODE)


class DocumentStore(Protocol):
    async def upsert(self, documents: Sequence[ChunkDocument]) -> int:
        ...

    async def search(
        self,
        query: str,
        limit: int = 5,
        filter: Optional[SearchFilter] = None,
        min_score: float = 0.0,
    ) -> List[SearchHit]:
        ...

    async def sources(self) -> List[SourceSummary]:
        ...

    async def clear(self) -> int:
        ...


def _tokens(text: str) -> set:
    return {token.lower() for token in _TOKEN_RE.findall(text)}


def _matches(document: ChunkDocument, filter: Optional[SearchFilter]) -> bool:
    if filter is None:
        return True
    metadata = document.metadata
    if filter.url is not None and metadata.url != filter.url:
        return False
    if filter.page_id is not None and metadata.page_id != filter.page_id:
        return False
    if filter.source is not None and metadata.source != filter.source:
        return False
    return True


class InMemoryDocumentStore:
    def __init__(self):
        self._documents: Dict[str, ChunkDocument] = {}
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._documents)

    async def upsert(self, documents: Sequence[ChunkDocument]) -> int:
        async with self._lock:
            for document in documents:
                self._documents[document.id] = document
        logger.debug("Upserted %d documents", len(documents))
        return len(documents)

    async def search(
        self,
        query: str,
        limit: int = 5,
        filter: Optional[SearchFilter] = None,
        min_score: float = 0.0,
    ) -> List[SearchHit]:
        """Rank documents by the share of query terms they contain."""
        terms = _tokens(query)
        if not terms:
            return []
        async with self._lock:
            candidates = [d for d in self._documents.values() if _matches(d, filter)]

        hits = []
        for document in candidates:
            score = len(terms & _tokens(document.text)) / len(terms)
            if score > 0 and score >= min_score:
                hits.append(SearchHit(**document.model_dump(), score=score))
        hits.sort(key=lambda hit: hit.score, reverse=True)
        return hits[:limit]

    async def sources(self) -> List[SourceSummary]:
        """Distinct source URLs in first-ingested order, with their chunk counts."""
        summaries: Dict[str, SourceSummary] = {}
        async with self._lock:
            for document in self._documents.values():
                metadata = document.metadata
                summary = summaries.get(metadata.url)
                if summary is None:
                    summaries[metadata.url] = SourceSummary(
                        url=metadata.url, title=metadata.title, source=metadata.source, chunks=1
                    )
                else:
                    summary.chunks += 1
        return list(summaries.values())

    async def clear(self) -> int:
        async with self._lock:
            removed = len(self._documents)
            self._documents.clear()
        logger.info("Cleared document store – %d documents removed", removed)
        return removed
