"""
Timestamp parsing for the read window.

Two flavours:

- absolute: RFC 3339 with an explicit UTC offset, e.g. 2024-05-01T10:00:00+02:00
- relative: natural language anchored to "now", e.g. "1 hour ago",
  "2 days later", "4 months from now", "in 30 minutes", "3 days" (ahead),
  "yesterday", "last friday", "next monday", "friday 8pm"

Relative expressions that don't match the small grammar below fall back to
dateutil's free-form parser with "now" as the default, so plain dates such as
"2024-05-01 10:00" or a bare "10:30" (today) also work.
"""

from __future__ import annotations

import re
from datetime import datetime, timedelta, timezone
from typing import Dict, Optional

from dateutil import parser as dtparser
from dateutil.relativedelta import FR, MO, SA, SU, TH, TU, WE, relativedelta

from k2cli.errors import InvalidRelativeOffset, InvalidTimestamp

# unit alias → relativedelta keyword
_UNITS: Dict[str, str] = {
    "s": "seconds", "sec": "seconds", "secs": "seconds", "second": "seconds", "seconds": "seconds",
    "m": "minutes", "min": "minutes", "mins": "minutes", "minute": "minutes", "minutes": "minutes",
    "h": "hours", "hr": "hours", "hrs": "hours", "hour": "hours", "hours": "hours",
    "d": "days", "day": "days", "days": "days",
    "w": "weeks", "wk": "weeks", "wks": "weeks", "week": "weeks", "weeks": "weeks",
    "fortnight": "fortnights", "fortnights": "fortnights",
    "mo": "months", "month": "months", "months": "months",
    "y": "years", "yr": "years", "yrs": "years", "year": "years", "years": "years",
}

_WEEKDAYS = {
    "mon": MO, "monday": MO,
    "tue": TU, "tues": TU, "tuesday": TU,
    "wed": WE, "weds": WE, "wednesday": WE,
    "thu": TH, "thur": TH, "thurs": TH, "thursday": TH,
    "fri": FR, "friday": FR,
    "sat": SA, "saturday": SA,
    "sun": SU, "sunday": SU,
}

_PAST = ("ago", "before", "earlier")
_FUTURE = ("later", "after", "from now", "hence")

_AMOUNT = r"(?P<n>\d+|an?)"
_UNIT = r"(?P<unit>[a-z]+)"
_SUFFIXED = re.compile(
    rf"^{_AMOUNT}\s*{_UNIT}\s+(?P<dir>{'|'.join(_PAST + _FUTURE)})$"
)
_PREFIXED = re.compile(rf"^in\s+{_AMOUNT}\s*{_UNIT}$")
_LAST_NEXT = re.compile(rf"^(?P<dir>last|next)\s+{_UNIT}$")
_BARE = re.compile(rf"^{_AMOUNT}\s*{_UNIT}$")
_WEEKDAY = re.compile(
    rf"^(?:(?P<dir>last|next|this)\s+)?(?P<day>{'|'.join(_WEEKDAYS)})(?:\s+(?P<time>.+))?$"
)

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _delta(amount: int, unit: str) -> relativedelta:
    key: Optional[str] = _UNITS.get(unit)
    if key is None:
        raise InvalidRelativeOffset(f"unknown time unit: {unit!r}")
    if key == "fortnights":
        return relativedelta(weeks=2 * amount)
    return relativedelta(**{key: amount})


def _amount(raw: str) -> int:
    return 1 if raw in ("a", "an") else int(raw)


def _on_weekday(direction: Optional[str], name: str, time_text: Optional[str], anchor: datetime) -> datetime:
    """
    "friday" is the coming Friday (today if it is one), "last friday" the one
    strictly before today and "next friday" the one strictly after. The time
    of day is midnight unless given, e.g. "friday 8pm".
    """
    day = anchor.replace(hour=0, minute=0, second=0, microsecond=0)
    weekday = _WEEKDAYS[name]
    if direction == "last":
        day += relativedelta(days=-1, weekday=weekday(-1))
    elif direction == "next":
        day += relativedelta(days=+1, weekday=weekday(+1))
    else:
        day += relativedelta(weekday=weekday(+1))
    if not time_text:
        return day
    try:
        moment: datetime = dtparser.parse(time_text, default=day.replace(tzinfo=None))
    except (ValueError, OverflowError) as exc:
        raise InvalidRelativeOffset(f"invalid time of day {time_text!r}") from exc
    if moment.tzinfo is None:
        return moment.replace(tzinfo=day.tzinfo)
    return moment.astimezone(timezone.utc)


def parse_absolute(text: str) -> datetime:
    """
    Parse an RFC 3339 timestamp into an aware UTC datetime.

    Raises:
        InvalidTimestamp: malformed input, or no UTC offset given.
    """
    try:
        parsed: datetime = dtparser.isoparse(text.strip())
    except (ValueError, OverflowError) as exc:
        raise InvalidTimestamp(f"invalid datetime {text!r}: {exc}") from exc
    if parsed.tzinfo is None or parsed.utcoffset() is None:
        raise InvalidTimestamp(
            f"invalid datetime {text!r}: a UTC offset is required (YYYY-MM-DDTHH:MM:SS+ZZ:ZZ)"
        )
    return parsed.astimezone(timezone.utc)


def parse_relative(text: str, now: Optional[datetime] = None) -> datetime:
    """
    Resolve a natural-language time expression against ``now`` (UTC).

    Raises:
        InvalidRelativeOffset: the expression can't be understood.
    """
    anchor: datetime = now or utc_now()
    expr: str = " ".join(text.strip().lower().split())
    if not expr:
        raise InvalidRelativeOffset("empty time expression")

    if expr == "now":
        return anchor
    if expr == "today":
        return anchor.replace(hour=0, minute=0, second=0, microsecond=0)
    if expr == "yesterday":
        return anchor - relativedelta(days=1)
    if expr == "tomorrow":
        return anchor + relativedelta(days=1)

    m = _SUFFIXED.match(expr)
    if m:
        delta = _delta(_amount(m.group("n")), m.group("unit"))
        return anchor - delta if m.group("dir") in _PAST else anchor + delta

    m = _PREFIXED.match(expr)
    if m:
        return anchor + _delta(_amount(m.group("n")), m.group("unit"))

    m = _WEEKDAY.match(expr)
    if m:
        return _on_weekday(m.group("dir"), m.group("day"), m.group("time"), anchor)

    m = _LAST_NEXT.match(expr)
    if m:
        delta = _delta(1, m.group("unit"))
        return anchor - delta if m.group("dir") == "last" else anchor + delta

    # "3 days" reads as "in 3 days"; "3pm" and friends go to dateutil below
    m = _BARE.match(expr)
    if m and m.group("unit") in _UNITS:
        return anchor + _delta(_amount(m.group("n")), m.group("unit"))

    try:
        parsed: datetime = dtparser.parse(expr, default=anchor.replace(tzinfo=None))
    except (ValueError, OverflowError) as exc:
        raise InvalidRelativeOffset(f"invalid time expression {text!r}") from exc
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def to_millis(moment: datetime) -> int:
    """Epoch milliseconds, computed exactly (no float rounding)."""
    return (moment - EPOCH) // timedelta(milliseconds=1)
