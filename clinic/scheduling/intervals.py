"""Half-open ``[start, end)`` interval arithmetic over naive datetimes."""
from collections.abc import Iterable
from datetime import datetime, timedelta
from typing import NamedTuple


class Interval(NamedTuple):
    start: datetime
    end: datetime

    @property
    def minutes(self) -> int:
        return int((self.end - self.start).total_seconds() // 60)

    def overlaps(self, other: "Interval") -> bool:
        # Touching endpoints do not overlap
        return self.start < other.end and other.start < self.end

    def contains(self, other: "Interval") -> bool:
        return self.start <= other.start and other.end <= self.end

    def clip(self, other: "Interval") -> "Interval | None":
        start = max(self.start, other.start)
        end = min(self.end, other.end)
        return Interval(start, end) if start < end else None


def merge(intervals: Iterable[Interval]) -> list[Interval]:
    """Sort and merge overlapping or adjacent intervals into a disjoint list."""
    merged: list[Interval] = []
    for current in sorted(intervals):
        if current.start >= current.end:
            continue
        if merged and current.start <= merged[-1].end:
            last = merged[-1]
            merged[-1] = Interval(last.start, max(last.end, current.end))
        else:
            merged.append(current)
    return merged


def gaps(window: Interval, busy: Iterable[Interval]) -> list[Interval]:
    """Free sub-intervals of ``window`` not covered by ``busy``."""
    free: list[Interval] = []
    cursor = window.start
    for block in merge(busy):
        if block.end <= cursor:
            continue
        if block.start >= window.end:
            break
        if block.start > cursor:
            free.append(Interval(cursor, block.start))
        cursor = max(cursor, block.end)
    if cursor < window.end:
        free.append(Interval(cursor, window.end))
    return free


def split(window: Interval, step: timedelta) -> list[Interval]:
    """Back-to-back pieces of exactly ``step``; a shorter remainder is dropped."""
    if step <= timedelta(0):
        raise ValueError("step must be positive")
    pieces: list[Interval] = []
    cursor = window.start
    while cursor + step <= window.end:
        pieces.append(Interval(cursor, cursor + step))
        cursor += step
    return pieces
