"""Shared fixtures built on the fake browser session in tests/fakes.py."""

from typing import Dict

import pytest

from ingestly.models.options import ScraperOptions
from ingestly.services.proxy_manager import ProxyManager
from ingestly.services.scraper import Scraper
from tests.fakes import SMALL_SITE, FakeBrowserSession, SiteEntry


@pytest.fixture
def small_site() -> Dict[str, SiteEntry]:
    return dict(SMALL_SITE)


@pytest.fixture
def fake_session(small_site) -> FakeBrowserSession:
    return FakeBrowserSession(small_site)


@pytest.fixture
def scraper_options() -> ScraperOptions:
    return ScraperOptions(retries=2, retry_delay=0, cache_html=False)


@pytest.fixture
def scraper(fake_session, scraper_options) -> Scraper:
    return Scraper(scraper_options, proxy_manager=ProxyManager(), session=fake_session)
