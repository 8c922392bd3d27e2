from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, HttpUrl


class TaskSubmission(BaseModel):
    id: Optional[str] = Field(default=None, description="Dedup key; generated when omitted.")
    url: HttpUrl
    priority: int = Field(default=10, ge=1, le=1000, description="Lower runs sooner.")
    options: Dict[str, Any] = Field(default_factory=dict)
    metadata: Dict[str, Any] = Field(default_factory=dict)


class SubmitRequest(BaseModel):
    tasks: List[TaskSubmission] = Field(min_length=1, max_length=500)


class SubmitResponse(BaseModel):
    task_ids: List[str]
