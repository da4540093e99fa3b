"""
beatsmith/governor.py  ·  free-tier admission control

Sliding 60 s window + per-UTC-day counter, checked before any model call.
Counters live in this process only: several workers or instances each keep
their own, so the real ceiling is N × the configured one. Swap in a shared
counter store if that ever matters.
"""
from __future__ import annotations

import logging
import threading
import time
from collections import deque
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional

logger = logging.getLogger(__name__)

WINDOW_SECONDS = 60.0


@dataclass(frozen=True)
class Admission:
    allowed: bool
    reason: Optional[str] = None
    scope: Optional[str] = None          # "minute" | "day"


class InMemoryCounterStore:
    """Timestamps of the last minute plus request counts per UTC date."""

    def __init__(self):
        self.timestamps: deque[float] = deque()
        self.daily: dict[str, int] = {}

    def evict_before(self, cutoff: float) -> None:
        while self.timestamps and self.timestamps[0] < cutoff:
            self.timestamps.popleft()

    def window_size(self) -> int:
        return len(self.timestamps)

    def day_count(self, day: str) -> int:
        return self.daily.get(day, 0)

    def record(self, now: float, day: str) -> None:
        self.timestamps.append(now)
        if day not in self.daily:
            # new day: older buckets can never be read again
            self.daily.clear()
        self.daily[day] = self.daily.get(day, 0) + 1


def utc_day(ts: float) -> str:
    return datetime.fromtimestamp(ts, tz=timezone.utc).date().isoformat()


class RateGovernor:
    def __init__(
        self,
        per_minute: int = 10,
        per_day: int = 200,
        clock: Callable[[], float] = time.time,
        store: Optional[InMemoryCounterStore] = None,
    ):
        self.per_minute = per_minute
        self.per_day = per_day
        self.clock = clock
        self.store = store or InMemoryCounterStore()
        self._lock = threading.Lock()

    def check_and_record(self) -> Admission:
        with self._lock:
            now = self.clock()
            self.store.evict_before(now - WINDOW_SECONDS)

            if self.store.window_size() >= self.per_minute:
                logger.warning("per-minute ceiling hit (%d/min)", self.per_minute)
                return Admission(
                    allowed=False,
                    scope="minute",
                    reason=(
                        f"Rate limit exceeded. Free tier allows {self.per_minute} "
                        "requests per minute. Please wait a moment."
                    ),
                )

            today = utc_day(now)
            if self.store.day_count(today) >= self.per_day:
                logger.warning("daily ceiling hit (%d/day, %s)", self.per_day, today)
                return Admission(
                    allowed=False,
                    scope="day",
                    reason=(
                        f"Daily limit reached. Free tier allows {self.per_day} "
                        "requests per day. Please try again tomorrow."
                    ),
                )

            self.store.record(now, today)
            return Admission(allowed=True)

    def snapshot(self) -> dict:
        with self._lock:
            now = self.clock()
            self.store.evict_before(now - WINDOW_SECONDS)
            return {
                "perMinuteLimit": self.per_minute,
                "perDayLimit": self.per_day,
                "lastMinute": self.store.window_size(),
                "today": self.store.day_count(utc_day(now)),
            }
