"""URL canonicalisation and identifier helpers."""

import re
from typing import Optional
from urllib.parse import urljoin, urlsplit, urlunsplit

ALLOWED_SCHEMES = {"http", "https"}
_DEFAULT_PORTS = {"http": 80, "https": 443}
_DOC_ID_RE = re.compile(r"[^a-zA-Z0-9_-]")


def validate_url(url: str) -> None:
    """Raise ValueError unless *url* is an absolute http(s) URL with a hostname."""
    parsed = urlsplit(url.strip())
    if parsed.scheme.lower() not in ALLOWED_SCHEMES:
        raise ValueError(f"Scheme '{parsed.scheme}' is not allowed. Use http or https.")
    if not parsed.hostname:
        raise ValueError("URL must have a valid hostname.")


def normalize_url(url: str, base: Optional[str] = None) -> str:
    """Return the canonical form of *url*, resolved against *base* if given.

    Scheme and host are lower-cased, default ports and the fragment dropped,
    and the trailing slash stripped from the path (``/docs/`` == ``/docs``;
    the site root becomes the bare origin).  The result is stable under
    repeated application.

    Raises:
        ValueError: for non-http(s) URLs or URLs without a hostname.
    """
    url = url.strip()
    if base:
        url = urljoin(base, url)
    validate_url(url)

    parsed = urlsplit(url)
    scheme = parsed.scheme.lower()
    host = parsed.hostname.lower()
    try:
        port = parsed.port
    except ValueError as exc:
        raise ValueError(f"Invalid port in URL {url!r}") from exc

    netloc = host
    if parsed.username:
        userinfo = parsed.username
        if parsed.password:
            userinfo += f":{parsed.password}"
        netloc = f"{userinfo}@{netloc}"
    if port and port != _DEFAULT_PORTS[scheme]:
        netloc = f"{netloc}:{port}"

    path = parsed.path.rstrip("/")
    return urlunsplit((scheme, netloc, path, parsed.query, ""))


def registrable_host(url: str) -> str:
    """Hostname of *url* without a leading ``www.``."""
    host = (urlsplit(url).hostname or "").lower()
    return host[4:] if host.startswith("www.") else host


def default_include_pattern(seed_url: str) -> str:
    """Regex admitting the seed's domain and any of its subdomains, over http(s)."""
    host = re.escape(registrable_host(seed_url))
    return rf"^https?://([a-z0-9-]+\.)*{host}(:\d+)?(/|$)"


def generate_document_id(source: str, identifier) -> str:
    """Storage-safe id: every character outside ``[A-Za-z0-9_-]`` becomes ``-``."""
    return _DOC_ID_RE.sub("-", f"{source}-{identifier}")
