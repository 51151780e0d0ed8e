from __future__ import annotations

import re
import unicodedata
from datetime import date, datetime
from zoneinfo import ZoneInfo

_TZ = ZoneInfo("Asia/Tokyo")

# (era name, first day), newest first.
_ERAS: tuple[tuple[str, date], ...] = (
    ("令和", date(2019, 5, 1)),
    ("平成", date(1989, 1, 8)),
    ("昭和", date(1926, 12, 25)),
    ("大正", date(1912, 7, 30)),
    ("明治", date(1868, 10, 23)),
)

_SUFFIX = "年"
_FIRST_YEAR = "元"

_GANNEN_RE = re.compile(r"元(?=年)")


def era_year_label(day: date) -> str:
    """
    Registry year label for `day`, e.g. date(2024, 4, 1) -> '令和6年'.
    The first year of an era is written '元年' ('令和元年').
    """
    for name, start in _ERAS:
        if day >= start:
            year = day.year - start.year + 1
            num = _FIRST_YEAR if year == 1 else str(year)
            return f"{name}{num}{_SUFFIX}"
    raise ValueError(f"{day.isoformat()} predates the Meiji era")


def current_era_year_label(now: datetime | None = None) -> str:
    """Label for today in Japan. Pass `now` to pin the instant."""
    now = now or datetime.now(_TZ)
    if now.tzinfo is not None:
        now = now.astimezone(_TZ)
    return era_year_label(now.date())


def normalize_label(label: str) -> str:
    """
    Comparison key for year labels: NFKC (full-width digits -> ASCII),
    whitespace removed, '元年' treated as '1年'.
    """
    s = unicodedata.normalize("NFKC", label or "")
    s = re.sub(r"\s+", "", s)
    return _GANNEN_RE.sub("1", s)
