"""Shared utilities used across the booking assistant."""

import asyncio
import re
from collections import Counter
from contextlib import asynccontextmanager
from typing import AsyncIterator, Hashable

_HHMM_PATTERN = re.compile(r"^([01]?\d|2[0-3]):([0-5]\d)$")


def normalize_phone(value: str) -> str:
    """Normalize a phone number by stripping everything except digits and a leading +.

    Examples:
        >>> normalize_phone("06 12 34 56 78")
        '0612345678'
        >>> normalize_phone("+33 (6) 12-34-56-78")
        '+33612345678'
    """
    value = value.strip()
    if value.startswith("+"):
        return "+" + re.sub(r"[^\d]", "", value[1:])
    return re.sub(r"[^\d]", "", value)


def parse_hhmm(value: str) -> int:
    """Convert a wall-clock ``HH:MM`` string to minutes after midnight.

    Raises:
        ValueError: If the value is not a valid 24h time.
    """
    match = _HHMM_PATTERN.match(value.strip())
    if not match:
        raise ValueError(f"Invalid time {value!r}, expected HH:MM")
    return int(match.group(1)) * 60 + int(match.group(2))


def format_hhmm(minutes: int) -> str:
    """Format minutes after midnight as ``HH:MM``."""
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


class KeyedLocks:
    """Asyncio locks created on demand per key and dropped once unused."""

    def __init__(self) -> None:
        self._locks: dict[Hashable, asyncio.Lock] = {}
        self._holders: Counter = Counter()

    @asynccontextmanager
    async def hold(self, key: Hashable) -> AsyncIterator[None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._holders[key] += 1
        try:
            async with lock:
                yield
        finally:
            self._holders[key] -= 1
            if self._holders[key] <= 0:
                del self._holders[key]
                self._locks.pop(key, None)

    def __len__(self) -> int:
        return len(self._locks)
