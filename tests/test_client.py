from __future__ import annotations

import httpx
import pytest

from core.errors import CodecError, NetworkError, ParseError, TokenNotFoundError
from licensing.client import CheckStatus, build_form, extract_years
from licensing.codec import LegacyTextCodec
from licensing.token import SessionTokenFetcher, extract_expire_key

from conftest import LANDING_HTML, search_html

pytestmark = pytest.mark.anyio

NAME = "山田 太郎"


async def test_registered_when_current_label_is_listed(site) -> None:
    site.years[NAME] = ["令和5年", "令和6年"]

    result = await site.client("令和6年").check(NAME)

    assert result.status is CheckStatus.REGISTERED
    assert result.registered
    assert result.years == frozenset({"令和5年", "令和6年"})
    assert result.year_label == "令和6年"


async def test_not_registered_when_current_label_missing(site) -> None:
    site.years[NAME] = ["令和5年"]

    result = await site.client("令和6年").check(NAME)

    assert result.status is CheckStatus.NOT_REGISTERED
    assert result.error is None


async def test_explicit_year_overrides_current_label(site) -> None:
    site.years[NAME] = ["令和5年"]
    client = site.client("令和6年")

    assert (await client.check(NAME, "令和5年")).registered
    assert not (await client.check(NAME, "令和4年")).registered


async def test_full_width_year_label_matches(site) -> None:
    site.years[NAME] = ["令和5年"]
    assert (await site.client().check(NAME, "令和５年")).registered


async def test_form_body_field_order_and_headers(site) -> None:
    site.years[NAME] = []
    await site.client().check(NAME)

    assert len(site.searches) == 1
    search = site.searches[0]
    assert search["raw"].startswith("seibetu=3&name=%")
    assert search["raw"].endswith("&expireKey=KEY-0123456789abcdef")
    assert search["name"] == NAME

    landing, post = site.requests
    assert landing.method == "GET"
    assert landing.url.path == "/search_iyaku/top.jsp"
    assert "Mozilla/5.0" in landing.headers["User-Agent"]
    assert post.method == "POST"
    assert post.url.path == "/search_iyaku/search.do"
    assert post.headers["Content-Type"] == "application/x-www-form-urlencoded; charset=Windows-31J"


async def test_each_check_fetches_a_fresh_token(site) -> None:
    client = site.client()
    await client.check(NAME)
    await client.check(NAME)
    landings = [r for r in site.requests if r.url.path.endswith("/top.jsp")]
    assert len(landings) == 2


@pytest.mark.parametrize(
    ("mode", "error_type"),
    [
        ("network", NetworkError),
        ("timeout", NetworkError),
        ("status", NetworkError),
        ("no_token", TokenNotFoundError),
        ("empty", ParseError),
        ("drift", ParseError),
    ],
)
async def test_failures_resolve_to_unknown_not_negative(site, mode, error_type) -> None:
    site.years[NAME] = ["令和6年"]
    site.mode = mode

    result = await site.client().check(NAME)

    assert result.status is CheckStatus.UNKNOWN
    assert isinstance(result.error, error_type)
    assert not result.registered


async def test_fetch_years_raises_typed_errors(site) -> None:
    site.mode = "no_token"
    with pytest.raises(TokenNotFoundError):
        await site.client().fetch_years(NAME)


async def test_unencodable_name_is_unknown_without_requests(site) -> None:
    result = await site.client().check("山田 太郎😀")
    assert result.status is CheckStatus.UNKNOWN
    assert isinstance(result.error, CodecError)
    assert site.requests == []


async def test_token_fetcher_returns_token(site) -> None:
    async with httpx.AsyncClient(
        base_url="https://registry.test/search_iyaku/", transport=site.transport()
    ) as http:
        token = await SessionTokenFetcher().fetch(http)
    assert token.value == "KEY-0123456789abcdef"
    assert token.retrieved_at.tzinfo is not None


def test_extract_expire_key_is_case_insensitive() -> None:
    html = '<INPUT id="k" NAME="expireKey" class="x" VALUE="v1">'
    assert extract_expire_key(html) == "v1"
    assert extract_expire_key(LANDING_HTML) == "KEY-0123456789abcdef"
    with pytest.raises(TokenNotFoundError):
        extract_expire_key('<input name="other" value="v">')


def test_extract_years_trims_cells() -> None:
    html = '<td class="REGISTRATION_TD"> 令和4年 </td><td class="REGISTRATION_TD">令和5年</td>'
    assert extract_years(html) == frozenset({"令和4年", "令和5年"})


def test_extract_years_without_results_is_empty() -> None:
    assert extract_years(search_html([])) == frozenset()


def test_build_form_is_fixed_order() -> None:
    form = build_form(LegacyTextCodec(), "1", "a b", "tok")
    assert form == "seibetu=1&name=%61%20%62&expireKey=tok"


def test_extract_years_skips_blank_cells() -> None:
    html = '<td class="REGISTRATION_TD">令和6年</td><td class="REGISTRATION_TD"></td>'
    assert extract_years(html) == frozenset({"令和6年"})


async def test_blank_year_cell_does_not_hide_registration(site) -> None:
    site.years[NAME] = ["", "令和6年"]
    result = await site.client("令和6年").check(NAME)
    assert result.status is CheckStatus.REGISTERED
    assert result.years == frozenset({"令和6年"})
