"""C-Level: the pool stress multiplier applied to quoted prices.

    c' = c * exp(-steepness * (S1 - S0) / max(S0, S1))

Withdrawals (S1 < S0) raise the C-Level, deposits lower it. Using the larger
liquidity as denominator keeps the ratio in (-1, 1].
"""

from __future__ import annotations

from .errors import ValidationError
from .fixed_point import ZERO, Fixed64x64, fmax


def calculate_c_level(
    old_c_level: Fixed64x64,
    old_liquidity: Fixed64x64,
    new_liquidity: Fixed64x64,
    steepness: Fixed64x64,
) -> Fixed64x64:
    if old_c_level <= ZERO:
        raise ValidationError(f"c_level must be positive: {old_c_level}")
    if old_liquidity < ZERO or new_liquidity < ZERO:
        raise ValidationError(f"liquidity must be non-negative: {old_liquidity}, {new_liquidity}")
    if old_liquidity == new_liquidity:
        return old_c_level
    ratio = (new_liquidity - old_liquidity) / fmax(old_liquidity, new_liquidity)
    return old_c_level * (-(steepness * ratio)).exp()
