"""
Pool-level aggregate state.
"""

from __future__ import annotations

from dataclasses import dataclass

from ..core.errors import ValidationError
from ..core.fixed_point import ONE, ZERO, Fixed64x64


MAX_DECIMALS = 36


@dataclass(frozen=True)
class PoolState:
    """
    Aggregate pool state, replaced (never mutated) on every liquidity change.

    `total_liquidity` is kept in underlying base units so that conservation
    can be checked exactly; `total_liquidity_64x64` is the 64.64 view.
    """

    total_liquidity: int = 0
    c_level: Fixed64x64 = ONE
    fee_rate: Fixed64x64 = ZERO
    steepness: Fixed64x64 = ONE
    underlying_decimals: int = 18
    base_decimals: int = 18

    def __post_init__(self) -> None:
        if self.total_liquidity < 0:
            raise ValidationError(f"total_liquidity must be non-negative: {self.total_liquidity}")
        if self.c_level <= ZERO:
            raise ValidationError(f"c_level must be positive: {self.c_level}")
        if not (ZERO <= self.fee_rate < ONE):
            raise ValidationError(f"fee_rate must be in [0, 1): {self.fee_rate}")
        if self.steepness <= ZERO:
            raise ValidationError(f"steepness must be positive: {self.steepness}")
        for name, decimals in (
            ("underlying_decimals", self.underlying_decimals),
            ("base_decimals", self.base_decimals),
        ):
            if not (0 <= decimals <= MAX_DECIMALS):
                raise ValidationError(f"{name} must be in [0, {MAX_DECIMALS}]: {decimals}")

    @property
    def total_liquidity_64x64(self) -> Fixed64x64:
        return Fixed64x64.from_decimals(self.total_liquidity, self.underlying_decimals)
