from __future__ import annotations

import re


MS_PER_UNIT = {
    "ms": 1,
    "s": 1000,
    "m": 60 * 1000,
    "h": 60 * 60 * 1000,
    "d": 24 * 60 * 60 * 1000,
    "w": 7 * 24 * 60 * 60 * 1000,
    "y": 365 * 24 * 60 * 60 * 1000,
}

UNIT_ALIASES = {
    "": "ms",
    "ms": "ms",
    "msec": "ms",
    "millisecond": "ms",
    "milliseconds": "ms",
    "s": "s",
    "sec": "s",
    "secs": "s",
    "second": "s",
    "seconds": "s",
    "m": "m",
    "min": "m",
    "mins": "m",
    "minute": "m",
    "minutes": "m",
    "h": "h",
    "hr": "h",
    "hrs": "h",
    "hour": "h",
    "hours": "h",
    "d": "d",
    "day": "d",
    "days": "d",
    "w": "w",
    "wk": "w",
    "week": "w",
    "weeks": "w",
    "y": "y",
    "yr": "y",
    "year": "y",
    "years": "y",
}

DURATION_PART_RE = re.compile(r"\s*(\d+(?:\.\d+)?|\.\d+)\s*([a-z]*)\s*")


def parse_duration_ms(text: str) -> int:
    """Parse strings like "7d", "1h30m" or "2 weeks" into milliseconds."""
    value = text.strip().lower()
    if not value:
        raise ValueError("Invalid duration: empty string")

    total = 0.0
    pos = 0
    while pos < len(value):
        match = DURATION_PART_RE.match(value, pos)
        if not match or match.end() == pos:
            raise ValueError(f"Invalid duration: {text}")
        number, unit = match.groups()
        canonical = UNIT_ALIASES.get(unit)
        if canonical is None:
            raise ValueError(f"Invalid duration unit '{unit}' in: {text}")
        total += float(number) * MS_PER_UNIT[canonical]
        pos = match.end()
    return int(round(total))
