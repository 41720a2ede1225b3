"""Rolling volatility estimation over unevenly spaced price observations.

The EMA decays toward each new observation by a factor that depends on the
elapsed time rather than on the number of samples:

    omega = 1 - exp(-(t_new - t_old) / period)

The variance update is a Welford-style online estimate adapted to uneven
sampling; squared deviations are divided by the interval length in hours, so
`ema_variance` is a per-hour variance. Annualisation is applied once, when the
state is read (`VolatilityState.ema_variance_annualized`).
"""

from __future__ import annotations

from dataclasses import dataclass, replace

from .errors import ValidationError
from .fixed_point import ONE, ZERO, Fixed64x64


SECONDS_PER_HOUR = 3600
SECONDS_PER_DAY = 86_400
HOURS_PER_YEAR = 24 * 365
DEFAULT_EMA_PERIOD_SECONDS = 7 * SECONDS_PER_DAY


@dataclass(frozen=True)
class VolatilityState:
    """Rolling estimator state; only `update()` produces new instances."""

    ema_log_return: Fixed64x64 = ZERO
    ema_variance: Fixed64x64 = ZERO
    last_update_timestamp: int = 0
    last_price: Fixed64x64 = ZERO

    def __post_init__(self) -> None:
        if self.last_update_timestamp < 0:
            raise ValidationError(f"last_update_timestamp must be non-negative: {self.last_update_timestamp}")
        if self.ema_variance < ZERO:
            raise ValidationError(f"ema_variance must be non-negative: {self.ema_variance}")
        if self.last_price < ZERO:
            raise ValidationError(f"last_price must be non-negative: {self.last_price}")

    @property
    def ema_variance_annualized(self) -> Fixed64x64:
        return self.ema_variance * HOURS_PER_YEAR


def init_volatility_state(initial_variance_annualized: Fixed64x64 = ZERO) -> VolatilityState:
    """Genesis state seeded with an annualised variance (converted to per-hour)."""
    return VolatilityState(ema_variance=initial_variance_annualized / HOURS_PER_YEAR)


def decay(t_old: int, t_new: int, period: int = DEFAULT_EMA_PERIOD_SECONDS) -> Fixed64x64:
    """Exponential decay coefficient for the interval `[t_old, t_new]`."""
    if period <= 0:
        raise ValidationError(f"period must be positive: {period}")
    return ONE - (-Fixed64x64.from_fraction(t_new - t_old, period)).exp()


def _require_advancing(t_old: int, t_new: int) -> None:
    if t_new <= t_old:
        raise ValidationError(f"timestamps must advance: {t_old} -> {t_new}")


def rolling_ema(
    old_ema: Fixed64x64,
    log_return: Fixed64x64,
    t_old: int,
    t_new: int,
    period: int = DEFAULT_EMA_PERIOD_SECONDS,
) -> Fixed64x64:
    _require_advancing(t_old, t_new)
    omega = decay(t_old, t_new, period)
    return log_return * omega + old_ema * (ONE - omega)


def rolling_ema_variance(
    old_ema: Fixed64x64,
    old_variance: Fixed64x64,
    log_return: Fixed64x64,
    t_old: int,
    t_new: int,
    period: int = DEFAULT_EMA_PERIOD_SECONDS,
) -> tuple[Fixed64x64, Fixed64x64]:
    """Return `(new_ema, new_variance)` for one uneven-interval observation."""
    _require_advancing(t_old, t_new)
    delta = Fixed64x64.from_fraction(t_new - t_old, SECONDS_PER_HOUR)
    omega = decay(t_old, t_new, period)
    new_ema = log_return * omega + old_ema * (ONE - omega)
    new_variance = (ONE - omega) * old_variance + omega * (log_return - old_ema) * (log_return - new_ema) / delta
    # Floor rounding of new_ema can overshoot log_return by one ulp.
    if new_variance < ZERO:
        new_variance = ZERO
    return new_ema, new_variance


def update(
    state: VolatilityState,
    price: Fixed64x64,
    timestamp: int,
    period: int = DEFAULT_EMA_PERIOD_SECONDS,
) -> VolatilityState:
    """Fold a new price observation into the rolling estimate.

    The first observation only seeds `last_price`. Observations that do not
    advance the clock refresh `last_price` without touching the estimate.
    """
    if price <= ZERO:
        raise ValidationError(f"price must be positive: {price}")
    if timestamp < state.last_update_timestamp:
        raise ValidationError(
            f"timestamp moved backwards: {timestamp} < {state.last_update_timestamp}"
        )
    if state.last_price == ZERO or timestamp == state.last_update_timestamp:
        return replace(state, last_price=price, last_update_timestamp=timestamp)

    log_return = (price / state.last_price).ln()
    new_ema, new_variance = rolling_ema_variance(
        state.ema_log_return,
        state.ema_variance,
        log_return,
        state.last_update_timestamp,
        timestamp,
        period,
    )
    return VolatilityState(
        ema_log_return=new_ema,
        ema_variance=new_variance,
        last_update_timestamp=timestamp,
        last_price=price,
    )
