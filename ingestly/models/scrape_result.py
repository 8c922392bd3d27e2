from typing import Dict, List, Optional

from pydantic import BaseModel, Field


class ScrapeResult(BaseModel):
    """Outcome of fetching one URL through the headless browser."""

    url: str
    final_url: str = ""
    html: str = ""
    status: int = 0
    headers: Dict[str, str] = Field(default_factory=dict)
    cookies: List[dict] = Field(default_factory=list)
    title: str = ""
    links: List[str] = Field(default_factory=list)
    duration_ms: float = 0.0
    user_agent: Optional[str] = None
    proxy: Optional[str] = None
    error: Optional[str] = None
    from_cache: bool = False

    @property
    def ok(self) -> bool:
        return self.error is None and 0 < self.status < 400

    @property
    def content_type(self) -> str:
        return self.headers.get("content-type", "")
