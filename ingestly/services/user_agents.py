"""User-agent rotation over a pool of realistic browser fingerprints."""

import logging
import random
from collections import Counter
from typing import Dict, List, Optional

from ingestly.models.user_agent import BrowserType, OperatingSystem, UserAgent, UserAgentCategory

logger = logging.getLogger(__name__)

_D = UserAgentCategory.DESKTOP
_M = UserAgentCategory.MOBILE

# (value, category, browser, os, version)
_DEFAULT_AGENTS = (
    # Chrome on Windows
    (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
        _D, BrowserType.CHROME, OperatingSystem.WINDOWS, "120.0.0.0",
    ),
    (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/119.0.0.0 Safari/537.36",
        _D, BrowserType.CHROME, OperatingSystem.WINDOWS, "119.0.0.0",
    ),
    # Chrome on macOS
    (
        "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
        _D, BrowserType.CHROME, OperatingSystem.MACOS, "120.0.0.0",
    ),
    (
        "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/119.0.0.0 Safari/537.36",
        _D, BrowserType.CHROME, OperatingSystem.MACOS, "119.0.0.0",
    ),
    # Firefox
    (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:120.0) Gecko/20100101 Firefox/120.0",
        _D, BrowserType.FIREFOX, OperatingSystem.WINDOWS, "120.0",
    ),
    (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:119.0) Gecko/20100101 Firefox/119.0",
        _D, BrowserType.FIREFOX, OperatingSystem.WINDOWS, "119.0",
    ),
    (
        "Mozilla/5.0 (Macintosh; Intel Mac OS X 10.15; rv:120.0) Gecko/20100101 Firefox/120.0",
        _D, BrowserType.FIREFOX, OperatingSystem.MACOS, "120.0",
    ),
    (
        "Mozilla/5.0 (Macintosh; Intel Mac OS X 10.15; rv:119.0) Gecko/20100101 Firefox/119.0",
        _D, BrowserType.FIREFOX, OperatingSystem.MACOS, "119.0",
    ),
    # Safari on macOS
    (
        "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/17.0 Safari/605.1.15",
        _D, BrowserType.SAFARI, OperatingSystem.MACOS, "17.0",
    ),
    (
        "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/16.6 Safari/605.1.15",
        _D, BrowserType.SAFARI, OperatingSystem.MACOS, "16.6",
    ),
    # Edge on Windows
    (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36 Edg/120.0.0.0",
        _D, BrowserType.EDGE, OperatingSystem.WINDOWS, "120.0.0.0",
    ),
    (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/119.0.0.0 Safari/537.36 Edg/119.0.0.0",
        _D, BrowserType.EDGE, OperatingSystem.WINDOWS, "119.0.0.0",
    ),
    # Chrome on Android
    (
        "Mozilla/5.0 (Linux; Android 14; SM-S918B) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.6099.144 Mobile Safari/537.36",
        _M, BrowserType.CHROME, OperatingSystem.ANDROID, "120.0.6099.144",
    ),
    (
        "Mozilla/5.0 (Linux; Android 13; SM-S908B) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/119.0.6045.163 Mobile Safari/537.36",
        _M, BrowserType.CHROME, OperatingSystem.ANDROID, "119.0.6045.163",
    ),
    # Safari on iOS
    (
        "Mozilla/5.0 (iPhone; CPU iPhone OS 17_1_1 like Mac OS X) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/17.0 Mobile/15E148 Safari/604.1",
        _M, BrowserType.SAFARI, OperatingSystem.IOS, "17.0",
    ),
    (
        "Mozilla/5.0 (iPhone; CPU iPhone OS 16_6_1 like Mac OS X) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/16.6 Mobile/15E148 Safari/604.1",
        _M, BrowserType.SAFARI, OperatingSystem.IOS, "16.6",
    ),
)

DEFAULT_USER_AGENTS: List[UserAgent] = [
    UserAgent(
        value=value,
        category=category,
        browser=browser,
        os=os_,
        version=version,
        mobile=category == UserAgentCategory.MOBILE,
    )
    for value, category, browser, os_, version in _DEFAULT_AGENTS
]

# Returned when the pool has been emptied; rotation never fails the caller.
FALLBACK_USER_AGENT = DEFAULT_USER_AGENTS[0].value


class UserAgentRotator:
    """Hands out user-agent strings, optionally filtered by category, browser or OS.

    Filters that match nothing fall back to :meth:`get_random` with a warning.
    """

    def __init__(self, agents: Optional[List[UserAgent]] = None):
        self._agents: List[UserAgent] = list(DEFAULT_USER_AGENTS if agents is None else agents)
        self._last_used: Optional[str] = None

    @property
    def last_used(self) -> Optional[str]:
        return self._last_used

    def _pick(self, candidates: List[UserAgent]) -> str:
        value = random.choice(candidates).value
        self._last_used = value
        return value

    def get_random(self) -> str:
        if not self._agents:
            logger.warning("UserAgentRotator: pool is empty – using fallback agent")
            self._last_used = FALLBACK_USER_AGENT
            return FALLBACK_USER_AGENT
        return self._pick(self._agents)

    def get_by_category(self, category: UserAgentCategory) -> str:
        candidates = [a for a in self._agents if a.category == category]
        if not candidates:
            logger.warning("UserAgentRotator: no agents for category %s – using random", category.value)
            return self.get_random()
        return self._pick(candidates)

    def get_by_browser(self, browser: BrowserType) -> str:
        candidates = [a for a in self._agents if a.browser == browser]
        if not candidates:
            logger.warning("UserAgentRotator: no agents for browser %s – using random", browser.value)
            return self.get_random()
        return self._pick(candidates)

    def get_by_os(self, os: OperatingSystem) -> str:
        candidates = [a for a in self._agents if a.os == os]
        if not candidates:
            logger.warning("UserAgentRotator: no agents for OS %s – using random", os.value)
            return self.get_random()
        return self._pick(candidates)

    def get_desktop(self) -> str:
        return self.get_by_category(UserAgentCategory.DESKTOP)

    def get_mobile(self) -> str:
        return self.get_by_category(UserAgentCategory.MOBILE)

    def add(self, agent: UserAgent) -> None:
        self._agents.append(agent)
        logger.debug("UserAgentRotator: added agent %s", agent.value)

    def all(self) -> List[UserAgent]:
        """Return a snapshot copy of the pool."""
        return list(self._agents)

    def stats(self) -> Dict[str, int]:
        counts = Counter(a.category.value for a in self._agents)
        return {"total": len(self._agents), **counts}
