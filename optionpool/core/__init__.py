"""
Core option pricing and liquidity algorithms
"""

from .fixed_point import Fixed64x64, ZERO, ONE, fmax, fmin
from .volatility import VolatilityState, init_volatility_state, decay, rolling_ema, rolling_ema_variance
from .volatility import update as update_volatility
from .black_scholes import normal_cdf, bs_price
from .liquidity_curve import calculate_c_level
from .quote import Quote, quote_price, premium_in_underlying, fee_for
from .encoding import (
    PositionType,
    PositionKey,
    encode_position_id,
    decode_position_id,
    encode_coefficients,
    decode_coefficients,
)

__all__ = [
    "Fixed64x64",
    "ZERO",
    "ONE",
    "fmax",
    "fmin",
    "VolatilityState",
    "init_volatility_state",
    "decay",
    "rolling_ema",
    "rolling_ema_variance",
    "update_volatility",
    "normal_cdf",
    "bs_price",
    "calculate_c_level",
    "Quote",
    "quote_price",
    "premium_in_underlying",
    "fee_for",
    "PositionType",
    "PositionKey",
    "encode_position_id",
    "decode_position_id",
    "encode_coefficients",
    "decode_coefficients",
]
