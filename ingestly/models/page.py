import uuid
from datetime import datetime, timezone
from typing import List

from pydantic import BaseModel, ConfigDict, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Page(BaseModel):
    """One crawled page, immutable once the crawler emits it."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    url: str  # canonical form
    title: str
    content: str  # plain text from headings, paragraphs and list items
    links: List[str] = Field(default_factory=list)  # in-scope outbound links only
    depth: int = 0
    fetched_at: datetime = Field(default_factory=_utcnow)
