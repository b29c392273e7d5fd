# booths.py - Booth Collect
# Static polling-booth registry (001 .. 188)

from __future__ import annotations

from typing import List

BOOTH_COUNT = 188

BOOTH_NUMBERS: List[str] = [str(i).zfill(3) for i in range(1, BOOTH_COUNT + 1)]
_BOOTH_SET = frozenset(BOOTH_NUMBERS)


def is_valid_booth(value: str) -> bool:
    return (value or "") in _BOOTH_SET


def format_booth(value: str) -> str:
    """
    Pad a numeric booth to three digits ("7" -> "007").
    Values that are not a number in 1..188 come back unchanged.
    """
    raw = (value or "").strip()
    try:
        num = int(raw, 10)
    except ValueError:
        return value
    if num < 1 or num > BOOTH_COUNT:
        return value
    return str(num).zfill(3)
