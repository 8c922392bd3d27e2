"""Plain-text content, title and link extraction from rendered HTML."""

import re
from typing import List, Optional
from urllib.parse import urljoin, urlparse

from bs4 import BeautifulSoup

from ingestly.services.sanitizer import sanitize

_BLOCK_TAGS = ("h1", "h2", "h3", "h4", "h5", "h6", "p", "li")
_WHITESPACE_RE = re.compile(r"\s+")
_SKIP_HREF_PREFIXES = ("#", "javascript:", "mailto:", "tel:", "data:")


def _collapse(text: str) -> str:
    return _WHITESPACE_RE.sub(" ", text).strip()


def extract_title(html: str) -> str:
    soup = BeautifulSoup(html, "lxml")
    h1 = soup.find("h1")
    if h1:
        return _collapse(h1.get_text(" "))
    title_tag = soup.find("title")
    if title_tag:
        return _collapse(title_tag.get_text(" "))
    return ""


def extract_text(html: str) -> str:
    """Return heading, paragraph and list-item text in document order.

    Blocks nested inside another block (``<p>`` inside ``<li>``) are read once,
    as part of the outer block.  One block per line.
    """
    soup = sanitize(html)
    blocks: List[str] = []
    for node in soup.find_all(_BLOCK_TAGS):
        if node.find_parent(_BLOCK_TAGS) is not None:
            continue
        text = _collapse(node.get_text(" "))
        if text:
            blocks.append(text)
    return "\n".join(blocks)


def extract_links(html: str, page_url: str) -> List[str]:
    """Absolute http(s) links found in *html*, de-duplicated in document order.

    Relative hrefs resolve against ``<base href>`` when the page declares one.
    """
    soup = BeautifulSoup(html, "lxml")
    base_url = page_url
    base = soup.find("base", href=True)
    if base:
        base_url = urljoin(page_url, str(base["href"]).strip())

    seen: set = set()
    links: List[str] = []
    for a in soup.find_all("a", href=True):
        href = str(a["href"]).strip()
        if not href or href.lower().startswith(_SKIP_HREF_PREFIXES):
            continue
        abs_url = urljoin(base_url, href)
        if urlparse(abs_url).scheme not in ("http", "https"):
            continue
        if abs_url not in seen:
            seen.add(abs_url)
            links.append(abs_url)
    return links


def select_values(html: str, selector: str, attribute: Optional[str] = None) -> List[str]:
    """Text (or *attribute*) of every element matching *selector*; empties dropped."""
    soup = BeautifulSoup(html, "lxml")
    values: List[str] = []
    for element in soup.select(selector):
        if attribute:
            value = element.get(attribute) or ""
            if isinstance(value, list):
                value = " ".join(value)
        else:
            value = element.get_text(" ", strip=True)
        value = value.strip()
        if value:
            values.append(value)
    return values
