from typing import Dict, List, Optional

from pydantic import BaseModel


class ScrapeResponse(BaseModel):
    url: str
    final_url: str
    status: int
    title: str
    content: str
    links: List[str]
    headers: Dict[str, str]
    html: Optional[str] = None
    extracted: Optional[List[str]] = None
    duration_ms: float
    from_cache: bool
    word_count: int
