from datetime import datetime
from enum import Enum
from typing import Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field


class ProxyProtocol(str, Enum):
    HTTP = "http"
    HTTPS = "https"
    SOCKS4 = "socks4"
    SOCKS5 = "socks5"


class Proxy(BaseModel):
    """Static description of an egress proxy; identity is ``(host, port)``."""

    model_config = ConfigDict(frozen=True)

    host: str = Field(min_length=1)
    port: int = Field(ge=1, le=65535)
    protocol: ProxyProtocol = ProxyProtocol.HTTP
    username: Optional[str] = None
    password: Optional[str] = None
    country: Optional[str] = None
    city: Optional[str] = None
    tags: Tuple[str, ...] = ()

    @property
    def key(self) -> Tuple[str, int]:
        return (self.host, self.port)


class ProxyStatus(BaseModel):
    """Point-in-time snapshot of a proxy and its usage counters."""

    model_config = ConfigDict(frozen=True)

    proxy: Proxy
    success_count: int = 0
    error_count: int = 0
    last_used: Optional[datetime] = None
    last_tested: Optional[datetime] = None
    response_time_ms: Optional[float] = None
    is_working: Optional[bool] = None  # None until the first outcome is recorded

    @property
    def attempts(self) -> int:
        return self.success_count + self.error_count

    @property
    def success_rate(self) -> float:
        if self.attempts == 0:
            return 0.0
        return self.success_count / self.attempts
