from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Callable

EXCEL_EPOCH = date(1899, 12, 30)

_DIGITS_RE = re.compile(r"^\d+$")


@dataclass(frozen=True)
class ParsedDate:
    date: date | None
    original: str
    format: str

    @property
    def is_invalid(self) -> bool:
        return self.format == "invalid"


def _two_digit_year(value: int) -> int:
    return 2000 + value if value < 50 else 1900 + value


def _month_day_year(match: re.Match) -> date:
    return date(int(match.group(3)), int(match.group(1)), int(match.group(2)))


def _month_day_short_year(match: re.Match) -> date:
    return date(_two_digit_year(int(match.group(3))), int(match.group(1)), int(match.group(2)))


def _year_month_day(match: re.Match) -> date:
    return date(int(match.group(1)), int(match.group(2)), int(match.group(3)))


_FORMATS: tuple[tuple[re.Pattern, Callable[[re.Match], date], str], ...] = (
    (re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{4})$"), _month_day_year, "MM/DD/YYYY"),
    (re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{2})$"), _month_day_short_year, "MM/DD/YY"),
    (re.compile(r"^(\d{4})-(\d{2})-(\d{2})$"), _year_month_day, "YYYY-MM-DD"),
    (re.compile(r"^(\d{1,2})\.(\d{1,2})\.(\d{4})$"), _month_day_year, "M.D.YYYY"),
    (re.compile(r"^(\d{1,2})-(\d{1,2})-(\d{4})$"), _month_day_year, "MM-DD-YYYY"),
    (re.compile(r"^(\d{4})/(\d{1,2})/(\d{1,2})$"), _year_month_day, "YYYY/MM/DD"),
)

_TEXT_FORMATS: tuple[str, ...] = ("%B %d, %Y", "%b %d, %Y", "%d %B %Y", "%d %b %Y")


def _is_excel_serial(value: str | int | float) -> bool:
    if isinstance(value, bool):
        return False
    if isinstance(value, (int, float)):
        return float(value).is_integer() and 1 < value < 100000
    if not _DIGITS_RE.match(value):
        return False
    return 1 < int(value) < 100000


def parse_date(value: str | int | float | date | None) -> ParsedDate:
    if value is None or value == "":
        return ParsedDate(None, "", "empty")
    if isinstance(value, datetime):
        return ParsedDate(value.date(), value.isoformat(), "datetime")
    if isinstance(value, date):
        return ParsedDate(value, value.isoformat(), "date")

    original = str(value).strip()
    if not original:
        return ParsedDate(None, "", "empty")

    candidate = value if isinstance(value, (int, float)) else original
    if _is_excel_serial(candidate):
        return ParsedDate(EXCEL_EPOCH + timedelta(days=int(candidate)), original, "excel-serial")

    for pattern, build, label in _FORMATS:
        match = pattern.match(original)
        if not match:
            continue
        try:
            return ParsedDate(build(match), original, label)
        except ValueError:
            continue

    try:
        return ParsedDate(datetime.fromisoformat(original).date(), original, "iso")
    except ValueError:
        pass

    for text_format in _TEXT_FORMATS:
        try:
            return ParsedDate(datetime.strptime(original, text_format).date(), original, "text")
        except ValueError:
            continue

    return ParsedDate(None, original, "invalid")


def to_iso_date_string(value: date | None) -> str | None:
    if value is None:
        return None
    return value.isoformat()


def to_display_date(value: date | None) -> str:
    if value is None:
        return ""
    return value.strftime("%m/%d/%Y")
