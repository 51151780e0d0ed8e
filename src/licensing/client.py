from __future__ import annotations

import enum
import logging
import re
from collections.abc import Callable
from dataclasses import dataclass, field

import httpx

from core.errors import ParseError, QueryError

from .codec import LegacyTextCodec
from .era import current_era_year_label, normalize_label
from .token import BROWSER_HEADERS, SessionTokenFetcher, get_text

log = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://licenseif.mhlw.go.jp/search_iyaku/"
SEARCH_PATH = "search.do"

# 1 = male, 2 = female, 3 = unspecified
DEFAULT_CATEGORY_CODE = "3"

_YEAR_MARKER = 'class="REGISTRATION_TD"'
_YEAR_CELL_RE = re.compile(r'<td[^>]*class="REGISTRATION_TD"[^>]*>([^<]*)</td>')


class CheckStatus(str, enum.Enum):
    REGISTERED = "registered"
    NOT_REGISTERED = "not_registered"
    UNKNOWN = "unknown"


@dataclass(slots=True, frozen=True)
class QueryResult:
    years: frozenset[str]

    def contains(self, label: str) -> bool:
        want = normalize_label(label)
        return any(normalize_label(y) == want for y in self.years)


@dataclass(slots=True, frozen=True)
class CheckResult:
    status: CheckStatus
    name: str
    year_label: str
    years: frozenset[str] = field(default_factory=frozenset)
    error: QueryError | None = None

    @property
    def registered(self) -> bool:
        return self.status is CheckStatus.REGISTERED

    @property
    def unknown(self) -> bool:
        return self.status is CheckStatus.UNKNOWN


def extract_years(html: str) -> frozenset[str]:
    """Year labels from REGISTRATION_TD cells; an unreadable marker is a ParseError."""
    if not html.strip():
        raise ParseError("empty search response")
    years = [m.group(1).strip() for m in _YEAR_CELL_RE.finditer(html)]
    if html.count(_YEAR_MARKER) != len(years):
        raise ParseError(
            f"found {html.count(_YEAR_MARKER)} REGISTRATION_TD marker(s) "
            f"but extracted {len(years)} year cell(s)"
        )
    return frozenset(y for y in years if y)


def build_form(codec: LegacyTextCodec, category: str, name: str, token: str) -> str:
    fields = (
        ("seibetu", category),
        ("name", codec.encode_form_field(name)),
        ("expireKey", token),
    )
    return "&".join(f"{k}={v}" for k, v in fields)


class RegistrationQueryClient:
    """
    Emulates the registry's search form: fresh token, cp932 form body,
    regex extraction of registration years.

    Every call opens its own short-lived HTTP client so no token or cookie
    outlives the query it was fetched for.
    """

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        *,
        timeout: float = 20.0,
        category_code: str = DEFAULT_CATEGORY_CODE,
        codec: LegacyTextCodec | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        current_label: Callable[[], str] = current_era_year_label,
    ) -> None:
        self._base_url = base_url if base_url.endswith("/") else base_url + "/"
        self._timeout = timeout
        self._category = category_code
        self._codec = codec or LegacyTextCodec()
        self._tokens = SessionTokenFetcher(self._codec)
        self._transport = transport
        self._current_label = current_label

    def _http(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self._base_url,
            timeout=self._timeout,
            transport=self._transport,
            follow_redirects=True,
        )

    async def fetch_years(self, name: str) -> QueryResult:
        """Run one search; raises QueryError subclasses on any failure."""
        # Unencodable names are rejected before any request is made.
        self._codec.encode(name)
        async with self._http() as client:
            token = await self._tokens.fetch(client)
            form = build_form(self._codec, self._category, name, token.value)
            headers = dict(BROWSER_HEADERS)
            headers["Content-Type"] = self._codec.content_type
            html = await get_text(
                client,
                "POST",
                SEARCH_PATH,
                self._codec,
                headers=headers,
                content=self._codec.encode_body(form),
            )
        return QueryResult(years=extract_years(html))

    async def check(self, name: str, year_label: str | None = None) -> CheckResult:
        label = year_label or self._current_label()
        try:
            result = await self.fetch_years(name)
        except QueryError as e:
            log.warning("Registry check for %r (%s) unresolved: %s: %s", name, label, type(e).__name__, e)
            return CheckResult(CheckStatus.UNKNOWN, name, label, error=e)

        status = CheckStatus.REGISTERED if result.contains(label) else CheckStatus.NOT_REGISTERED
        log.info(
            "Registry check: %r in %s -> %s (years=%s)",
            name,
            label,
            status.value,
            sorted(result.years),
        )
        return CheckResult(status, name, label, years=result.years)
