"""
Duration strings.

Durations travel through flags, env vars and config files as Go-style
strings ("300ms", "1h30m", "-1.5s", "1ns") and are held internally as
integer nanoseconds, so the 1ns "exit as soon as possible" sentinel and the
sub-microsecond jitter threshold survive unchanged.
"""

import re
from datetime import timedelta
from typing import Union

from troublemaker.exceptions import DurationParseError

NANOSECOND = 1
MICROSECOND = 1_000 * NANOSECOND
MILLISECOND = 1_000 * MICROSECOND
SECOND = 1_000 * MILLISECOND
MINUTE = 60 * SECOND
HOUR = 60 * MINUTE

_UNITS: dict[str, int] = {
    "ns": NANOSECOND,
    "us": MICROSECOND,
    "µs": MICROSECOND,  # micro sign
    "μs": MICROSECOND,  # greek mu
    "ms": MILLISECOND,
    "s": SECOND,
    "m": MINUTE,
    "h": HOUR,
}

_MAX_DURATION = 2**63 - 1

_COMPONENT = re.compile(r"(\d*)(?:\.(\d*))?([a-zµμ]+)")


def parse_duration(value: str) -> int:
    """
    Parse a duration string into nanoseconds.

    A duration is an optionally signed sequence of decimal numbers, each
    with optional fraction and a unit suffix. "0" is accepted without unit.
    Fractions finer than a nanosecond are truncated.

    Raises:
        DurationParseError: empty input, missing unit, unknown unit or
            overflow of the signed 64-bit range.
    """
    text = value.strip() if isinstance(value, str) else value
    if not isinstance(text, str) or not text:
        raise DurationParseError(str(value))

    sign = 1
    if text[0] in "+-":
        sign = -1 if text[0] == "-" else 1
        text = text[1:]

    if text == "0":
        return 0
    if not text:
        raise DurationParseError(value)

    total = 0
    pos = 0
    while pos < len(text):
        match = _COMPONENT.match(text, pos)
        if match is None:
            raise DurationParseError(value)
        whole, fraction, unit = match.groups()
        if not whole and not fraction:
            raise DurationParseError(value)
        scale = _UNITS.get(unit)
        if scale is None:
            raise DurationParseError(value)

        total += int(whole or "0") * scale
        if fraction:
            total += int(fraction) * scale // 10 ** len(fraction)
        pos = match.end()

    if total > _MAX_DURATION + (1 if sign < 0 else 0):
        raise DurationParseError(value)
    return sign * total


def _with_fraction(whole: int, fraction: int, digits: int) -> str:
    if not fraction:
        return str(whole)
    return f"{whole}." + f"{fraction:0{digits}d}".rstrip("0")


def format_duration(ns: int) -> str:
    """Format nanoseconds the way the duration flags accept them, e.g. "1h2m3.5s"."""
    if ns == 0:
        return "0s"
    prefix = "-" if ns < 0 else ""
    magnitude = abs(ns)

    if magnitude < MICROSECOND:
        return f"{prefix}{magnitude}ns"
    if magnitude < MILLISECOND:
        return prefix + _with_fraction(*divmod(magnitude, MICROSECOND), 3) + "µs"
    if magnitude < SECOND:
        return prefix + _with_fraction(*divmod(magnitude, MILLISECOND), 6) + "ms"

    seconds, fraction = divmod(magnitude, SECOND)
    hours, seconds = divmod(seconds, 3600)
    minutes, seconds = divmod(seconds, 60)

    out = prefix
    if hours:
        out += f"{hours}h"
    if hours or minutes:
        out += f"{minutes}m"
    return out + _with_fraction(seconds, fraction, 9) + "s"


def to_seconds(ns: int) -> float:
    """Nanoseconds as float seconds, for time.sleep and log fields."""
    return ns / SECOND


def coerce_duration(value: Union[str, int, float, timedelta]) -> int:
    """
    Accept a duration in any of the shapes config sources produce.

    Strings are parsed as duration strings, integers are nanoseconds and
    timedeltas are converted (microsecond resolution).
    """
    if isinstance(value, bool):
        raise DurationParseError(str(value))
    if isinstance(value, str):
        return parse_duration(value)
    if isinstance(value, timedelta):
        return (value // timedelta(microseconds=1)) * MICROSECOND
    if isinstance(value, float):
        if not value.is_integer():
            raise DurationParseError(str(value))
        return int(value)
    if isinstance(value, int):
        return value
    raise DurationParseError(str(value))
