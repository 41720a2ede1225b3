"""Quote engine: Black-Scholes price adjusted for liquidity stress and slippage.

    delta_ratio   = steepness * (S1 - S0) / S0
    trading_delta = exp(-delta_ratio)
    c_level       = trading_delta * c_old
    slippage      = (1 - trading_delta) / delta_ratio      (1 when delta_ratio == 0)
    price         = bs_price * c_level * slippage

The slippage coefficient is the average of exp(-steepness * u / S0) over the
liquidity path from S0 to S1, i.e. the continuous price impact of the trade.
"""

from __future__ import annotations

from dataclasses import dataclass

from .black_scholes import bs_price
from .errors import ValidationError
from .fixed_point import ONE, ZERO, Fixed64x64


@dataclass(frozen=True)
class Quote:
    price: Fixed64x64
    c_level: Fixed64x64
    slippage_coefficient: Fixed64x64


def quote_price(
    variance: Fixed64x64,
    strike: Fixed64x64,
    spot: Fixed64x64,
    time_to_maturity: Fixed64x64,
    old_c_level: Fixed64x64,
    old_liquidity: Fixed64x64,
    new_liquidity: Fixed64x64,
    steepness: Fixed64x64,
    is_call: bool,
) -> Quote:
    """Price one unit of underlying against a pool moving from S0 to S1."""
    delta_ratio = steepness * (new_liquidity - old_liquidity) / old_liquidity
    trading_delta = (-delta_ratio).exp()

    bsch = bs_price(variance, strike, spot, time_to_maturity, is_call)
    c_level = trading_delta * old_c_level
    if delta_ratio == ZERO:
        slippage = ONE
    else:
        slippage = (ONE - trading_delta) / delta_ratio

    return Quote(price=bsch * c_level * slippage, c_level=c_level, slippage_coefficient=slippage)


def premium_in_underlying(price: Fixed64x64, spot: Fixed64x64, amount: int) -> int:
    """Premium in underlying base units for `amount` contracts.

    `price` is quote currency per unit of underlying; each contract is one base
    unit of underlying collateral, so the premium is `amount * price / spot`.
    """
    if spot <= ZERO:
        raise ValidationError(f"spot must be positive: {spot}")
    if amount < 0:
        raise ValidationError(f"amount must be non-negative: {amount}")
    # The CDF approximation can leave deep out-of-the-money prices a few ulps below zero.
    if price <= ZERO:
        return 0
    per_contract = price / spot
    return (per_contract.raw * amount) >> 64


def fee_for(cost: int, fee_rate: Fixed64x64) -> int:
    """Protocol fee on a premium or settlement value (floored)."""
    if cost < 0:
        raise ValidationError(f"cost must be non-negative: {cost}")
    return (fee_rate.raw * cost) >> 64
