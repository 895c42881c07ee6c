"""
Cycle clock: fixed-length wall-clock windows identified by integer ids.
"""

import math
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Dict, Any, Optional


DEFAULT_CYCLE_LENGTH_MS = 5 * 60 * 1000


def _now_ms() -> int:
    return time.time_ns() // 1_000_000


def _iso(ms: int) -> str:
    return datetime.fromtimestamp(ms / 1000, tz=timezone.utc).isoformat(timespec="milliseconds")


@dataclass(frozen=True)
class CycleInfo:
    """Position of a wall-clock instant within its cycle"""

    id: int
    start_ms: int
    end_ms: int
    now_ms: int

    @property
    def time_remaining_ms(self) -> int:
        return self.end_ms - self.now_ms

    def to_dict(self) -> Dict[str, Any]:
        """Timing fields merged into API responses"""
        return {
            "server_time": _iso(self.now_ms),
            "current_cycle": self.id,
            "seconds_until_next": math.ceil(self.time_remaining_ms / 1000),
            "next_distribution_time": _iso(self.end_ms),
            "last_distribution_time": _iso(self.start_ms),
        }


class CycleClock:
    """
    Derives cycle ids and boundaries from wall-clock time.

    cycle id = floor(epoch_ms / cycle_length_ms)
    """

    def __init__(
        self,
        cycle_length_ms: int = DEFAULT_CYCLE_LENGTH_MS,
        time_source: Optional[Callable[[], int]] = None,
    ):
        if cycle_length_ms <= 0:
            raise ValueError(f"Cycle length must be positive, got {cycle_length_ms}")
        self.cycle_length_ms = cycle_length_ms
        self.time_source = time_source or _now_ms

    def current_cycle(self, now_ms: Optional[int] = None) -> CycleInfo:
        if now_ms is None:
            now_ms = self.time_source()
        cycle_id = now_ms // self.cycle_length_ms
        start_ms = cycle_id * self.cycle_length_ms
        return CycleInfo(
            id=cycle_id,
            start_ms=start_ms,
            end_ms=start_ms + self.cycle_length_ms,
            now_ms=now_ms,
        )
