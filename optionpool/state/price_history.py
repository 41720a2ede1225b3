"""
Spot price observations used for settlement and volatility updates.

One observation is retained per UTC day (the first seen that day) plus the
rolling latest observation.
"""

from __future__ import annotations

from bisect import bisect_left, insort
from dataclasses import dataclass
from typing import Dict, List, Optional

from ..core.errors import ValidationError
from ..core.fixed_point import ZERO, Fixed64x64
from ..core.volatility import SECONDS_PER_DAY


@dataclass(frozen=True)
class PriceObservation:
    timestamp: int
    price: Fixed64x64

    def __post_init__(self) -> None:
        if self.timestamp < 0:
            raise ValidationError(f"timestamp must be non-negative: {self.timestamp}")
        if self.price <= ZERO:
            raise ValidationError(f"price must be positive: {self.price}")


def day_start(timestamp: int) -> int:
    return timestamp - timestamp % SECONDS_PER_DAY


class PriceHistory:
    def __init__(self) -> None:
        self._daily: Dict[int, PriceObservation] = {}
        self._days: List[int] = []
        self.latest: Optional[PriceObservation] = None

    def record(self, observation: PriceObservation) -> None:
        if self.latest is not None and observation.timestamp < self.latest.timestamp:
            raise ValidationError(
                f"observation older than latest: {observation.timestamp} < {self.latest.timestamp}"
            )
        day = day_start(observation.timestamp)
        if day not in self._daily:
            self._daily[day] = observation
            insort(self._days, day)
        self.latest = observation

    def price_on_or_after(self, timestamp: int) -> Optional[PriceObservation]:
        """First retained observation at or after `timestamp`'s UTC day."""
        i = bisect_left(self._days, day_start(timestamp))
        if i == len(self._days):
            return None
        return self._daily[self._days[i]]

    def daily(self) -> List[PriceObservation]:
        return [self._daily[d] for d in self._days]

    def copy(self) -> "PriceHistory":
        copied = PriceHistory()
        copied._daily = dict(self._daily)
        copied._days = list(self._days)
        copied.latest = self.latest
        return copied

    def __len__(self) -> int:
        return len(self._days)
