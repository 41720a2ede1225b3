"""
Spot price feed adapter.

The pool engine is the imperative shell: it calls a user-supplied feed (any
zero-argument callable) and normalises the answer to a positive 64.64 price.
Anything the feed raises, and any non-finite or non-positive answer, surfaces
as `ExternalDependencyError`.
"""

from __future__ import annotations

import math
from decimal import Decimal
from typing import Callable, Union

from ..core.errors import ExternalDependencyError, ValidationError
from ..core.fixed_point import ZERO, Fixed64x64


RawPrice = Union[Fixed64x64, Decimal, int, float, str]
PriceFeed = Callable[[], RawPrice]


def to_spot(value: RawPrice) -> Fixed64x64:
    """Normalise a raw feed answer to a positive 64.64 price."""
    if isinstance(value, bool):
        raise ExternalDependencyError(f"price feed returned a boolean: {value!r}")
    if isinstance(value, float) and not math.isfinite(value):
        raise ExternalDependencyError(f"price feed returned non-finite price: {value!r}")
    if isinstance(value, Fixed64x64):
        spot = value
    else:
        try:
            spot = Fixed64x64.from_decimal(value)
        except (ValidationError, ArithmeticError, TypeError) as exc:
            raise ExternalDependencyError(f"price feed returned unusable price: {value!r}") from exc
    if spot <= ZERO:
        raise ExternalDependencyError(f"price feed returned non-positive price: {value!r}")
    return spot


def read_spot(feed: PriceFeed) -> Fixed64x64:
    try:
        value = feed()
    except ExternalDependencyError:
        raise
    except Exception as exc:
        raise ExternalDependencyError(f"price feed failed: {exc}") from exc
    return to_spot(value)


class StaticPriceFeed:
    """Settable feed for tests and offline tooling."""

    def __init__(self, price: RawPrice) -> None:
        self.price = price

    def set(self, price: RawPrice) -> None:
        self.price = price

    def __call__(self) -> RawPrice:
        return self.price
