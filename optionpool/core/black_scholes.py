"""Black-Scholes pricing in 64.64 fixed point.

The normal CDF uses Choudhury's closed-form approximation

    N(x) ~= 1 - phi(x) / (0.226 + 0.64|x| + 0.33 sqrt(x^2 + 3))

with the 1/sqrt(2*pi) ~= 0.3989 factor folded into the denominator constants.
The tail value is computed from |x| only, so `N(x) + N(-x) == 1` exactly for
x != 0. At x = 0 both sides take the tail branch and the sum is about 1.00028.
"""

from __future__ import annotations

from .fixed_point import HALF, ONE, ZERO, Fixed64x64


CDF_CONST_0 = Fixed64x64.from_fraction(2260, 3989)
CDF_CONST_1 = Fixed64x64.from_fraction(6400, 3989)
CDF_CONST_2 = Fixed64x64.from_fraction(3300, 3989)

_THREE = Fixed64x64.from_int(3)


def normal_cdf(x: Fixed64x64) -> Fixed64x64:
    """N(x), Choudhury's approximation."""
    x2 = x * x
    value = (-(x2 * HALF)).exp() / (CDF_CONST_0 + CDF_CONST_1 * abs(x) + CDF_CONST_2 * (x2 + _THREE).sqrt())
    return ONE - value if x > ZERO else value


def d1_d2(
    variance: Fixed64x64,
    strike: Fixed64x64,
    spot: Fixed64x64,
    time_to_maturity: Fixed64x64,
) -> tuple[Fixed64x64, Fixed64x64]:
    cum_var = time_to_maturity * variance
    cum_vol = cum_var.sqrt()
    d1 = ((spot / strike).ln() + cum_var * HALF) / cum_vol
    return d1, d1 - cum_vol


def bs_price(
    variance: Fixed64x64,
    strike: Fixed64x64,
    spot: Fixed64x64,
    time_to_maturity: Fixed64x64,
    is_call: bool,
) -> Fixed64x64:
    """European option price in quote currency per unit of underlying.

    Inputs must be strictly positive; a zero variance or maturity surfaces as
    `DivisionByZeroError`, a non-positive spot/strike as a log-domain error.
    """
    d1, d2 = d1_d2(variance, strike, spot, time_to_maturity)
    if is_call:
        return spot * normal_cdf(d1) - strike * normal_cdf(d2)
    return strike * normal_cdf(-d2) - spot * normal_cdf(-d1)
