from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import datetime, timezone

import httpx

from core.errors import NetworkError, TokenNotFoundError

from .codec import LegacyTextCodec

log = logging.getLogger(__name__)

LANDING_PATH = "top.jsp"

# The registry serves different markup to unknown clients; mimic a desktop browser.
BROWSER_HEADERS = {
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,*/*;q=0.8",
    "Accept-Language": "ja,en-US;q=0.7,en;q=0.3",
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/91.0.4472.124 Safari/537.36"
    ),
}

_EXPIRE_KEY_RE = re.compile(
    r'<input[^>]*name="expireKey"[^>]*value="([^"]+)"[^>]*>',
    re.IGNORECASE,
)


@dataclass(slots=True, frozen=True)
class SessionToken:
    value: str
    retrieved_at: datetime


def extract_expire_key(html: str) -> str:
    m = _EXPIRE_KEY_RE.search(html)
    if not m:
        raise TokenNotFoundError("expireKey input not found on landing page")
    return m.group(1)


async def get_text(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    codec: LegacyTextCodec,
    **kwargs,
) -> str:
    """Issue a request and return the legacy-decoded body; transport failures -> NetworkError."""
    try:
        resp = await client.request(method, url, **kwargs)
        resp.raise_for_status()
    except httpx.HTTPStatusError as e:
        raise NetworkError(f"{method} {url} -> HTTP {e.response.status_code}") from e
    except httpx.HTTPError as e:
        raise NetworkError(f"{method} {url} failed: {e!r}") from e
    return codec.decode_body(resp.content)


class SessionTokenFetcher:
    """Fetches a fresh expireKey from the landing page. Tokens are never reused."""

    def __init__(self, codec: LegacyTextCodec | None = None) -> None:
        self._codec = codec or LegacyTextCodec()

    async def fetch(self, client: httpx.AsyncClient) -> SessionToken:
        html = await get_text(
            client, "GET", LANDING_PATH, self._codec, headers=BROWSER_HEADERS
        )
        value = extract_expire_key(html)
        log.debug("expireKey acquired (%d chars)", len(value))
        return SessionToken(value=value, retrieved_at=datetime.now(timezone.utc))
