"""Strip everything from rendered HTML that is not readable page content.

The passes run in order over one BeautifulSoup tree:

1. drop non-content elements wholesale (scripts, embeds, media, forms, nav);
2. drop site-level ``<header>``/``<footer>`` chrome; those inside an
   ``<article>`` or ``<section>`` belong to the content and stay;
3. drop HTML comments;
4. drop elements hidden by inline CSS or flagged as noise by class/id,
   except the page wrappers (``html``, ``body``, ``main``, ``article``);
5. remove ``style`` and ``on*`` attributes from what is left.
"""

import re
from typing import Iterable

from bs4 import BeautifulSoup, Comment, Tag

NON_CONTENT_TAGS = frozenset({
    "script", "style", "noscript", "template",
    "iframe", "object", "embed", "canvas", "svg",
    "img", "picture", "video", "audio",
    "link", "meta",
    "nav", "aside", "form", "button", "dialog",
})

CHROME_TAGS = ("header", "footer")
_CONTENT_CONTAINERS = ("article", "section")
# page-level wrappers; their classes describe the layout, not the element
STRUCTURAL_TAGS = frozenset({"html", "body", "main", "article"})

NOISE_MARKERS = (
    "navbar", "navigation", "menu", "sidebar", "side-bar", "breadcrumb",
    "pagination", "cookie", "consent", "gdpr", "banner", "popup", "modal",
    "overlay", "advert", "sponsor", "promo", "newsletter", "subscribe",
    "social", "share", "related", "comments", "widget", "search-form",
    "site-header", "site-footer",
)

_HIDDEN_RE = re.compile(r"display\s*:\s*none|visibility\s*:\s*hidden", re.IGNORECASE)
_SCRIPTING_ATTR_RE = re.compile(r"^(style|on[a-z]+)$", re.IGNORECASE)


def _markers(tag: Tag) -> Iterable[str]:
    element_id = tag.get("id")
    if element_id:
        yield str(element_id).lower()
    for cls in tag.get("class") or ():
        yield cls.lower()


def is_noise(tag: Tag) -> bool:
    """True when the tag's id or one of its classes names a non-content widget."""
    return any(marker in value for value in _markers(tag) for marker in NOISE_MARKERS)


def is_hidden(tag: Tag) -> bool:
    return bool(_HIDDEN_RE.search(tag.get("style") or ""))


def _drop_non_content(soup: BeautifulSoup) -> None:
    for tag in soup.find_all(NON_CONTENT_TAGS):
        tag.decompose()


def _drop_chrome(soup: BeautifulSoup) -> None:
    for tag in soup.find_all(CHROME_TAGS):
        if tag.decomposed:
            continue
        if tag.find_parent(_CONTENT_CONTAINERS) is None:
            tag.decompose()


def _drop_comments(soup: BeautifulSoup) -> None:
    for comment in soup.find_all(string=lambda node: isinstance(node, Comment)):
        comment.extract()


def _drop_noise_and_scrub(soup: BeautifulSoup) -> None:
    for tag in soup.find_all(True):
        # descendants of an element removed earlier in this loop
        if tag.decomposed:
            continue
        if tag.name not in STRUCTURAL_TAGS and (is_noise(tag) or is_hidden(tag)):
            tag.decompose()
            continue
        for attr in [a for a in tag.attrs if _SCRIPTING_ATTR_RE.match(a)]:
            del tag[attr]


def sanitize(html: str) -> BeautifulSoup:
    """Parse *html* with lxml and return the tree with all non-content removed."""
    soup = BeautifulSoup(html, "lxml")
    _drop_non_content(soup)
    _drop_chrome(soup)
    _drop_comments(soup)
    _drop_noise_and_scrub(soup)
    return soup
