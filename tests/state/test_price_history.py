from __future__ import annotations

import pytest

from optionpool.core.errors import ValidationError
from optionpool.core.fixed_point import ZERO, Fixed64x64
from optionpool.state.pool import PoolState
from optionpool.state.price_history import PriceHistory, PriceObservation, day_start


DAY = 86_400
T0 = 1_617_235_200  # UTC midnight


def _obs(ts: int, price: int) -> PriceObservation:
    return PriceObservation(timestamp=ts, price=Fixed64x64.from_int(price))


def test_day_start() -> None:
    assert day_start(T0) == T0
    assert day_start(T0 + 3_600) == T0
    assert day_start(T0 - 1) == T0 - DAY


def test_keeps_first_observation_per_day() -> None:
    h = PriceHistory()
    h.record(_obs(T0 + 60, 100))
    h.record(_obs(T0 + 600, 105))
    h.record(_obs(T0 + DAY + 5, 110))
    assert len(h) == 2
    assert [o.price.to_int() for o in h.daily()] == [100, 110]
    assert h.latest.price.to_int() == 110


def test_price_on_or_after() -> None:
    h = PriceHistory()
    h.record(_obs(T0 + 60, 100))
    h.record(_obs(T0 + 3 * DAY + 60, 130))
    assert h.price_on_or_after(T0).price.to_int() == 100
    assert h.price_on_or_after(T0 + DAY).price.to_int() == 130
    assert h.price_on_or_after(T0 + 4 * DAY) is None


def test_rejects_out_of_order_and_bad_prices() -> None:
    h = PriceHistory()
    h.record(_obs(T0 + 100, 100))
    with pytest.raises(ValidationError):
        h.record(_obs(T0 + 50, 100))
    with pytest.raises(ValidationError):
        PriceObservation(timestamp=T0, price=ZERO)
    with pytest.raises(ValidationError):
        PriceObservation(timestamp=-1, price=Fixed64x64.from_int(1))


def test_copy_is_independent() -> None:
    h = PriceHistory()
    h.record(_obs(T0, 100))
    c = h.copy()
    c.record(_obs(T0 + DAY, 101))
    assert len(h) == 1 and len(c) == 2


def test_pool_state_validation() -> None:
    assert PoolState().total_liquidity == 0
    with pytest.raises(ValidationError):
        PoolState(total_liquidity=-1)
    with pytest.raises(ValidationError):
        PoolState(c_level=ZERO)
    with pytest.raises(ValidationError):
        PoolState(fee_rate=Fixed64x64.from_int(1))
    with pytest.raises(ValidationError):
        PoolState(underlying_decimals=40)
    assert PoolState(total_liquidity=15 * 10**17).total_liquidity_64x64 == Fixed64x64.from_decimal("1.5")
