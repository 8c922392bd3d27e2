"""Proxy pool with time-boxed rotation, outcome tracking and health checks.

Usage counters live in a store keyed by ``(host, port)`` and are only mutated
here, under a lock.  Callers receive immutable :class:`Proxy` endpoints and
:class:`ProxyStatus` snapshots.
"""

import logging
import random
import threading
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple, Union
from urllib.parse import quote

import httpx
from pydantic import ValidationError

from ingestly.models.proxy import Proxy, ProxyProtocol, ProxyStatus

logger = logging.getLogger(__name__)

DEFAULT_ROTATION_INTERVAL = 300.0  # seconds
MIN_ATTEMPTS_FOR_HEALTH = 5
MAX_ERROR_RATE = 0.7
HEALTH_CHECK_URL = "https://httpbin.org/ip"

ProxyKey = Tuple[str, int]


@dataclass
class _Counters:
    success_count: int = 0
    error_count: int = 0
    last_used: Optional[datetime] = None
    last_tested: Optional[datetime] = None
    response_time_ms: Optional[float] = None
    is_working: Optional[bool] = None

    def recompute_health(self) -> None:
        attempts = self.success_count + self.error_count
        if attempts >= MIN_ATTEMPTS_FOR_HEALTH and self.error_count / attempts > MAX_ERROR_RATE:
            self.is_working = False
        elif self.success_count:
            self.is_working = True


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _label(proxy: Proxy) -> str:
    return f"{proxy.host}:{proxy.port}"


def parse_proxy_line(line: str) -> Proxy:
    """Parse ``host:port[:username:password[:protocol[:country]]]``.

    Raises:
        ValueError: when the line has fewer than two fields, a non-numeric or
            out-of-range port, or an unknown protocol.
    """
    parts = [part.strip() for part in line.strip().split(":")]
    if len(parts) < 2 or not parts[0]:
        raise ValueError(f"expected host:port, got {line.strip()!r}")

    host, raw_port = parts[0], parts[1]
    try:
        port = int(raw_port)
    except ValueError:
        raise ValueError(f"invalid port {raw_port!r}") from None

    username = parts[2] or None if len(parts) > 2 else None
    password = parts[3] or None if len(parts) > 3 else None
    protocol = ProxyProtocol.HTTP
    if len(parts) > 4 and parts[4]:
        try:
            protocol = ProxyProtocol(parts[4].lower())
        except ValueError:
            raise ValueError(f"unknown protocol {parts[4]!r}") from None
    country = parts[5] or None if len(parts) > 5 else None

    try:
        return Proxy(
            host=host,
            port=port,
            protocol=protocol,
            username=username,
            password=password,
            country=country,
        )
    except ValidationError as exc:
        raise ValueError(str(exc)) from exc


class ProxyManager:
    def __init__(
        self,
        proxies: Optional[Iterable[Proxy]] = None,
        rotation_interval: float = DEFAULT_ROTATION_INTERVAL,
    ):
        self._lock = threading.Lock()
        self._order: List[ProxyKey] = []
        self._proxies: Dict[ProxyKey, Proxy] = {}
        self._counters: Dict[ProxyKey, _Counters] = {}
        self._current_index = -1
        self._last_rotation = 0.0
        self._rotation_interval = rotation_interval

        for proxy in proxies or ():
            self.add(proxy)
        logger.info(
            "ProxyManager initialised",
            extra={"proxy_count": len(self._order), "rotation_interval": rotation_interval},
        )

    def __len__(self) -> int:
        return len(self._order)

    # ------------------------------------------------------------------
    # Pool maintenance
    # ------------------------------------------------------------------

    def add(self, proxy: Proxy) -> None:
        with self._lock:
            if proxy.key not in self._proxies:
                self._order.append(proxy.key)
                self._counters[proxy.key] = _Counters()
            self._proxies[proxy.key] = proxy
        logger.debug("Added proxy %s", _label(proxy), extra={"protocol": proxy.protocol.value})

    def add_many(self, proxies: Iterable[Proxy]) -> int:
        count = 0
        for proxy in proxies:
            self.add(proxy)
            count += 1
        logger.info("Added %d proxies", count)
        return count

    def remove(self, host: str, port: int) -> bool:
        key = (host, port)
        with self._lock:
            if key not in self._proxies:
                return False
            index = self._order.index(key)
            self._order.remove(key)
            del self._proxies[key]
            del self._counters[key]
            if index == self._current_index:
                # the pinned proxy is gone; rotate on the next call
                self._last_rotation = float("-inf")
            if index <= self._current_index:
                self._current_index -= 1
        logger.debug("Removed proxy %s:%s", host, port)
        return True

    def set_rotation_interval(self, seconds: float) -> None:
        self._rotation_interval = seconds
        logger.debug("Updated proxy rotation interval to %ss", seconds)

    # ------------------------------------------------------------------
    # Selection
    # ------------------------------------------------------------------

    def get_next(self) -> Optional[Proxy]:
        """Round-robin, but keep the same proxy for a whole rotation window."""
        with self._lock:
            if not self._order:
                logger.warning("ProxyManager: no proxies available")
                return None
            now = time.monotonic()
            if (
                self._current_index < 0
                or self._current_index >= len(self._order)
                or now - self._last_rotation >= self._rotation_interval
            ):
                self._current_index = (self._current_index + 1) % len(self._order)
                self._last_rotation = now
            key = self._order[self._current_index]
            self._counters[key].last_used = _now()
            return self._proxies[key]

    def get_random(self) -> Optional[Proxy]:
        with self._lock:
            if not self._order:
                logger.warning("ProxyManager: no proxies available")
                return None
            key = random.choice(self._order)
            self._counters[key].last_used = _now()
            return self._proxies[key]

    def get_best(self, min_success_rate: float = 0.7) -> Optional[Proxy]:
        """Highest success rate among proxies with enough history.

        Falls back to :meth:`get_random` when nothing qualifies.
        """
        with self._lock:
            eligible = []
            for key in self._order:
                counters = self._counters[key]
                attempts = counters.success_count + counters.error_count
                if attempts < MIN_ATTEMPTS_FOR_HEALTH:
                    continue
                rate = counters.success_count / attempts
                if rate >= min_success_rate:
                    eligible.append((rate, key))
            if eligible:
                eligible.sort(key=lambda item: item[0], reverse=True)
                key = eligible[0][1]
                self._counters[key].last_used = _now()
                return self._proxies[key]

        if self._order:
            logger.warning("ProxyManager: no proxy meets success rate %.2f – using random", min_success_rate)
        return self.get_random()

    # ------------------------------------------------------------------
    # Outcome tracking
    # ------------------------------------------------------------------

    def _record(self, proxy: Proxy, success: bool) -> None:
        with self._lock:
            counters = self._counters.get(proxy.key)
            if counters is None:
                return
            if success:
                counters.success_count += 1
            else:
                counters.error_count += 1
            counters.recompute_health()
            snapshot = (counters.success_count, counters.error_count, counters.is_working)
        logger.debug(
            "Proxy %s %s",
            _label(proxy),
            "succeeded" if success else "failed",
            extra={"success_count": snapshot[0], "error_count": snapshot[1], "is_working": snapshot[2]},
        )

    def mark_success(self, proxy: Proxy) -> None:
        self._record(proxy, True)

    def mark_error(self, proxy: Proxy) -> None:
        self._record(proxy, False)

    def success_rate(self, proxy: Proxy) -> float:
        status = self.status(proxy)
        return status.success_rate if status else 0.0

    # ------------------------------------------------------------------
    # Snapshots
    # ------------------------------------------------------------------

    def _snapshot(self, key: ProxyKey) -> ProxyStatus:
        counters = self._counters[key]
        return ProxyStatus(
            proxy=self._proxies[key],
            success_count=counters.success_count,
            error_count=counters.error_count,
            last_used=counters.last_used,
            last_tested=counters.last_tested,
            response_time_ms=counters.response_time_ms,
            is_working=counters.is_working,
        )

    def status(self, proxy: Proxy) -> Optional[ProxyStatus]:
        with self._lock:
            if proxy.key not in self._counters:
                return None
            return self._snapshot(proxy.key)

    def all(self) -> List[ProxyStatus]:
        with self._lock:
            return [self._snapshot(key) for key in self._order]

    def working(self) -> List[Proxy]:
        """Proxies not marked as failing (unknown health counts as working)."""
        with self._lock:
            return [
                self._proxies[key]
                for key in self._order
                if self._counters[key].is_working is not False
            ]

    def by_country(self, country: str) -> List[Proxy]:
        wanted = country.lower()
        with self._lock:
            return [
                self._proxies[key]
                for key in self._order
                if (self._proxies[key].country or "").lower() == wanted
            ]

    def by_tag(self, tag: str) -> List[Proxy]:
        with self._lock:
            return [self._proxies[key] for key in self._order if tag in self._proxies[key].tags]

    # ------------------------------------------------------------------
    # Connection strings, files and health checks
    # ------------------------------------------------------------------

    @staticmethod
    def to_connection_string(proxy: Proxy) -> str:
        """Render ``protocol://[user:pass@]host:port``."""
        auth = ""
        if proxy.username and proxy.password:
            auth = f"{quote(proxy.username, safe='')}:{quote(proxy.password, safe='')}@"
        return f"{proxy.protocol.value}://{auth}{proxy.host}:{proxy.port}"

    def load_from_file(self, path: Union[str, Path]) -> int:
        """Add every parseable proxy in *path* and return how many were added.

        Blank lines and ``#`` comments are ignored; malformed lines are logged
        and skipped.

        Raises:
            FileNotFoundError / OSError: when the file cannot be read.
        """
        text = Path(path).read_text(encoding="utf-8")
        loaded: List[Proxy] = []
        for lineno, line in enumerate(text.splitlines(), start=1):
            stripped = line.strip()
            if not stripped or stripped.startswith("#"):
                continue
            try:
                loaded.append(parse_proxy_line(stripped))
            except ValueError as exc:
                logger.warning("ProxyManager: skipping line %d of %s – %s", lineno, path, exc)

        for proxy in loaded:
            self.add(proxy)
        logger.info("Loaded %d proxies from %s", len(loaded), path)
        return len(loaded)

    async def check(
        self,
        proxy: Proxy,
        url: str = HEALTH_CHECK_URL,
        timeout: float = 10.0,
    ) -> bool:
        """Probe *url* through *proxy*, recording latency and the outcome."""
        started = time.monotonic()
        try:
            async with httpx.AsyncClient(
                proxy=self.to_connection_string(proxy),
                timeout=timeout,
                follow_redirects=True,
            ) as client:
                response = await client.get(url)
                response.raise_for_status()
        except httpx.HTTPError as exc:
            logger.warning("Proxy health check failed for %s – %s", _label(proxy), exc)
            ok = False
        else:
            ok = True
        elapsed_ms = (time.monotonic() - started) * 1000

        with self._lock:
            counters = self._counters.get(proxy.key)
            if counters is not None:
                counters.last_tested = _now()
                counters.response_time_ms = elapsed_ms
        if ok:
            self.mark_success(proxy)
        else:
            self.mark_error(proxy)
        return ok
