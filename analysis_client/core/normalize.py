from __future__ import annotations

import logging
import re
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

import httpx

logger = logging.getLogger(__name__)

SHORT_LINK_HOSTS = {"vm.tiktok.com", "vt.tiktok.com"}
KEPT_QUERY_PARAMS = {"lang", "langCode"}
_SCHEME_RE = re.compile(r"^https?://", re.IGNORECASE)


def normalize_handle(handle: str) -> str:
    return handle.strip().removeprefix("@")


def ensure_https(url: str) -> str:
    trimmed = url.strip()
    if _SCHEME_RE.match(trimmed):
        return trimmed
    return f"https://{trimmed}"


def strip_tracking_params(url: str) -> str:
    """Drop every query parameter except the few that change the content."""

    try:
        parts = urlsplit(url)
    except ValueError:
        return url
    query = [(key, value) for key, value in parse_qsl(parts.query, keep_blank_values=True) if key in KEPT_QUERY_PARAMS]
    return urlunsplit((parts.scheme, parts.netloc, parts.path, urlencode(query), parts.fragment))


async def expand_redirect(
    url: str,
    *,
    timeout: float = 4.0,
    http_client: httpx.AsyncClient | None = None,
) -> str | None:
    """Follow redirects from ``url`` and return the final location, or ``None``."""

    client = http_client or httpx.AsyncClient(timeout=timeout, follow_redirects=True)
    try:
        response = await client.get(url, timeout=timeout, follow_redirects=True)
    except httpx.HTTPError as exc:
        logger.debug("Could not expand %s: %s", url, exc)
        return None
    finally:
        if http_client is None:
            await client.aclose()
    final_url = str(response.url).strip()
    return final_url or None


async def normalize_video_url(raw: str, *, http_client: httpx.AsyncClient | None = None) -> str:
    """Canonicalise a TikTok video link, expanding short links when possible."""

    url = ensure_https(raw)
    try:
        host = (urlsplit(url).hostname or "").lower()
    except ValueError:
        return url

    if host in SHORT_LINK_HOSTS:
        expanded = await expand_redirect(url, http_client=http_client)
        return strip_tracking_params(expanded or url)

    if host.endswith("tiktok.com"):
        return strip_tracking_params(url)

    return url
