"""
Card Comps — Sale Date Normalization

Upstream sources report sale dates as free text. Everything is normalized to
UTC epoch milliseconds before comparison; unparseable input becomes None.
"""

from __future__ import annotations

import re
from datetime import datetime, timezone

from dateutil import parser

_ISO_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_SLASH_DATE = re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{2,4})$")

MS_PER_DAY = 86_400_000


def _to_ms(dt: datetime) -> int:
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return int(dt.timestamp() * 1000)


def normalize_date(date_str: str | None) -> int | None:
    """
    Parse a sale date into UTC epoch ms.

    YYYY-MM-DD and MM/DD/YYYY (MM/DD/YY means 20YY) are matched directly.
    Anything else goes through dateutil, which covers ISO-8601 timestamps,
    RFC 2822 headers, month-name dates and labels like "Sold Feb 23, 2026".
    Naive results are taken as UTC.

    Examples:
        >>> normalize_date("2026-02-23")
        1771804800000
        >>> normalize_date("not a date") is None
        True
    """
    if not date_str or not date_str.strip():
        return None
    text = date_str.strip()

    if _ISO_DATE.match(text):
        try:
            return _to_ms(datetime.strptime(text, "%Y-%m-%d"))
        except ValueError:
            return None

    slash = _SLASH_DATE.match(text)
    if slash:
        month, day, year = (int(part) for part in slash.groups())
        if year < 100:
            year += 2000
        try:
            return _to_ms(datetime(year, month, day))
        except ValueError:
            return None

    try:
        return _to_ms(parser.parse(text, fuzzy=True))
    except (ValueError, OverflowError, parser.ParserError):
        return None
