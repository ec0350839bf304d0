from __future__ import annotations

import re
from datetime import UTC, datetime

from .errors import InvalidDuration

DURATION_PART_RE = re.compile(r"(\d+)\s*([smhd])", re.IGNORECASE)

UNIT_MS = {
    "s": 1000,
    "m": 60 * 1000,
    "h": 60 * 60 * 1000,
    "d": 24 * 60 * 60 * 1000,
}


def now_ms() -> int:
    return int(datetime.now(tz=UTC).timestamp() * 1000)


def to_datetime(value_ms: int) -> datetime:
    return datetime.fromtimestamp(value_ms / 1000, tz=UTC)


def parse_duration(value: str) -> int:
    """Parse ``"30m"``, ``"1h"``, ``"1d12h"`` style durations into milliseconds."""
    text = (value or "").strip().replace(" ", "")
    if not text:
        raise InvalidDuration("Duration must not be empty.")
    total = 0
    position = 0
    for match in DURATION_PART_RE.finditer(text):
        if match.start() != position:
            break
        total += int(match.group(1)) * UNIT_MS[match.group(2).lower()]
        position = match.end()
    if position != len(text) or total <= 0:
        raise InvalidDuration(
            f"Invalid duration {value!r}. Use a format like 10s, 30m, 1h, 5d or 1h30m."
        )
    return total


def format_duration(duration_ms: int) -> str:
    remaining = max(int(duration_ms) // 1000, 0)
    parts = []
    for unit, seconds in (("d", 86400), ("h", 3600), ("m", 60), ("s", 1)):
        amount, remaining = divmod(remaining, seconds)
        if amount:
            parts.append(f"{amount}{unit}")
    return "".join(parts) or "0s"
