"""Helpers for converting prayer clock times into alert delays."""
from __future__ import annotations

import math
import re
from datetime import datetime, time as time_module, timedelta, timezone
from typing import Tuple

_HHMM_PATTERN = re.compile(r"^(\d{1,2}):(\d{2})$")
_CLOCK_TOKEN = re.compile(r"\d{1,2}:\d{2}")


class ParseError(ValueError):
    """Raised when a clock string is not a valid 24h ``HH:MM`` value."""


def parse_hhmm(text: str) -> Tuple[int, int]:
    """Split a 24h ``HH:MM`` string into ``(hour, minute)``."""
    if not isinstance(text, str):
        raise ParseError(f"Expected HH:MM string, got {type(text).__name__}")
    match = _HHMM_PATTERN.match(text.strip())
    if not match:
        raise ParseError(f"Malformed clock time: {text!r}")
    hour, minute = int(match.group(1)), int(match.group(2))
    if hour >= 24 or minute >= 60:
        raise ParseError(f"Clock time out of range: {text!r}")
    return hour, minute


def to_minutes(hhmm: str) -> int:
    hour, minute = parse_hhmm(hhmm)
    return hour * 60 + minute


def minute_of_day(instant: datetime) -> int:
    return instant.hour * 60 + instant.minute


def clean_time_string(raw: str) -> str:
    """Strip provider decorations such as ``"05:10 (EET)"`` down to ``"05:10"``.

    Returns ``""`` when *raw* holds no clock time, which later fails to parse.
    """
    match = _CLOCK_TOKEN.search(raw or "")
    if not match:
        return ""
    return match.group(0).zfill(5)


def seconds_until(target_hhmm: str, from_instant: datetime, day_offset: int = 0) -> int:
    """Return whole seconds from *from_instant* to *target_hhmm*.

    The target is placed on ``from_instant``'s calendar day (``day_offset=0``) or
    the following day (``day_offset=1``). A target that already passed today
    yields zero or a negative number; callers must discard those.
    """
    if day_offset not in (0, 1):
        raise ValueError(f"day_offset must be 0 or 1, got {day_offset!r}")

    hour, minute = parse_hhmm(target_hhmm)
    target_day = from_instant.date() + timedelta(days=day_offset)
    naive = datetime.combine(target_day, time_module(hour=hour, minute=minute))

    tzinfo = from_instant.tzinfo
    if tzinfo is None:
        target = naive
    elif hasattr(tzinfo, "localize"):
        # pytz zones need localize() to pick the right DST offset
        target = tzinfo.localize(naive)
    else:
        target = naive.replace(tzinfo=tzinfo)

    if tzinfo is not None:
        # same-tzinfo subtraction ignores offset changes, so compare in UTC
        target = target.astimezone(timezone.utc)
        from_instant = from_instant.astimezone(timezone.utc)
    return math.floor((target - from_instant).total_seconds())
