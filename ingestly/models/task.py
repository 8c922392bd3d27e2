import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ScrapingTask(BaseModel):
    """A unit of queued work. ``id`` doubles as the queue's dedup key."""

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    url: str
    priority: int = Field(default=10, description="Lower value runs sooner.")
    options: Dict[str, Any] = Field(default_factory=dict)
    metadata: Dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=_utcnow)


class TaskResult(BaseModel):
    task_id: str
    url: str
    success: bool
    data: Optional[Any] = None
    error: Optional[str] = None
    timestamp: datetime = Field(default_factory=_utcnow)
    duration_ms: float = 0.0
    metadata: Dict[str, Any] = Field(default_factory=dict)


class QueueStats(BaseModel):
    waiting: int = 0
    active: int = 0
    completed: int = 0
    failed: int = 0
    delayed: int = 0
