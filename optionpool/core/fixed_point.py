"""Signed 64.64 binary fixed-point arithmetic.

A `Fixed64x64` wraps a signed 128-bit integer `raw` representing `raw / 2**64`.
Every operation is integer-only and deterministic:

- multiplication floors (arithmetic shift, rounds toward -inf),
- division truncates toward zero,
- `exp2`/`log2`/`sqrt` use bit-shift algorithms; `exp`/`ln` reduce to them.

No operation saturates. A result outside `[-2**127, 2**127 - 1]` raises
`FixedPointOverflowError` and a zero divisor raises `DivisionByZeroError`.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from math import isqrt
from typing import Union

from .errors import DivisionByZeroError, FixedPointOverflowError, PoolArithmeticError, ValidationError


FRACTION_BITS = 64
ONE_RAW = 1 << FRACTION_BITS
MIN_RAW = -(1 << 127)
MAX_RAW = (1 << 127) - 1
_FRACTION_MASK = ONE_RAW - 1

# exp2 overflows at 2**63 (raw 2**127); anything below -64 underflows to 0.
_EXP2_MAX_INPUT = 64 << FRACTION_BITS


def _check_raw(raw: int) -> int:
    if raw < MIN_RAW or raw > MAX_RAW:
        raise FixedPointOverflowError(f"64.64 value out of range: {raw}")
    return raw


def _div_trunc(numerator: int, denominator: int) -> int:
    """Integer division rounding toward zero."""
    if denominator == 0:
        raise DivisionByZeroError("division by zero")
    q = abs(numerator) // abs(denominator)
    return q if (numerator >= 0) == (denominator > 0) else -q


def _ln2_raw() -> int:
    # ln 2 = sum_{k>=1} 1 / (k * 2**k), evaluated with 96 guard bits.
    guard = 96
    scale = 1 << (FRACTION_BITS + guard)
    acc = 0
    for k in range(1, 200):
        acc += scale // (k << k)
    return acc >> guard


def _exp2_fraction_table() -> tuple[int, ...]:
    # table[i] = 2 ** (2 ** -i) in 64.64, i = 1..64 (index 0 unused).
    table = [ONE_RAW]
    c = isqrt(2 << (2 * FRACTION_BITS))
    for _ in range(FRACTION_BITS):
        table.append(c)
        c = isqrt(c << FRACTION_BITS)
    return tuple(table)


LN2_RAW = _ln2_raw()
LOG2_E_RAW = (1 << (2 * FRACTION_BITS)) // LN2_RAW
_EXP2_FRACTION = _exp2_fraction_table()


Number = Union["Fixed64x64", int]


@dataclass(frozen=True, order=True)
class Fixed64x64:
    """Immutable signed 64.64 fixed-point number."""

    raw: int

    def __post_init__(self) -> None:
        if not isinstance(self.raw, int) or isinstance(self.raw, bool):
            raise TypeError("raw must be an int")
        _check_raw(self.raw)

    # -- Construction -------------------------------------------------------

    @classmethod
    def from_int(cls, value: int) -> "Fixed64x64":
        if not isinstance(value, int) or isinstance(value, bool):
            raise TypeError("value must be an int")
        return cls(_check_raw(value << FRACTION_BITS))

    @classmethod
    def from_fraction(cls, numerator: int, denominator: int) -> "Fixed64x64":
        """Exact `numerator / denominator`, truncated toward zero."""
        return cls(_check_raw(_div_trunc(numerator << FRACTION_BITS, denominator)))

    @classmethod
    def from_decimal(cls, value: Union[str, int, float, Decimal]) -> "Fixed64x64":
        """Convert a decimal literal ("0.8", 55284, 1e-06) without binary float rounding."""
        if isinstance(value, bool):
            raise TypeError("value must be numeric")
        try:
            dec = value if isinstance(value, Decimal) else Decimal(str(value).strip())
        except InvalidOperation as exc:
            raise ValidationError(f"not a decimal number: {value!r}") from exc
        if not dec.is_finite():
            raise ValidationError(f"non-finite value: {value!r}")
        numerator, denominator = dec.as_integer_ratio()
        return cls.from_fraction(numerator, denominator)

    @classmethod
    def from_decimals(cls, amount: int, decimals: int) -> "Fixed64x64":
        """Token amount scaled by `10**decimals` to 64.64."""
        if decimals < 0:
            raise ValidationError(f"decimals must be non-negative: {decimals}")
        return cls.from_fraction(amount, 10**decimals)

    # -- Conversion ---------------------------------------------------------

    def to_int(self) -> int:
        """Floor to an integer."""
        return self.raw >> FRACTION_BITS

    def to_decimals(self, decimals: int) -> int:
        """64.64 value to a token amount scaled by `10**decimals` (floored)."""
        if decimals < 0:
            raise ValidationError(f"decimals must be non-negative: {decimals}")
        return (self.raw * 10**decimals) >> FRACTION_BITS

    def to_float(self) -> float:
        return self.raw / ONE_RAW

    def __float__(self) -> float:
        return self.to_float()

    def __str__(self) -> str:
        return f"{self.to_float():.18g}"

    # -- Arithmetic ---------------------------------------------------------

    def __add__(self, other: Number) -> "Fixed64x64":
        o = _coerce(other)
        if o is None:
            return NotImplemented
        return Fixed64x64(_check_raw(self.raw + o.raw))

    __radd__ = __add__

    def __sub__(self, other: Number) -> "Fixed64x64":
        o = _coerce(other)
        if o is None:
            return NotImplemented
        return Fixed64x64(_check_raw(self.raw - o.raw))

    def __rsub__(self, other: Number) -> "Fixed64x64":
        o = _coerce(other)
        if o is None:
            return NotImplemented
        return o - self

    def __mul__(self, other: Number) -> "Fixed64x64":
        o = _coerce(other)
        if o is None:
            return NotImplemented
        return Fixed64x64(_check_raw((self.raw * o.raw) >> FRACTION_BITS))

    __rmul__ = __mul__

    def __truediv__(self, other: Number) -> "Fixed64x64":
        o = _coerce(other)
        if o is None:
            return NotImplemented
        return Fixed64x64(_check_raw(_div_trunc(self.raw << FRACTION_BITS, o.raw)))

    def __rtruediv__(self, other: Number) -> "Fixed64x64":
        o = _coerce(other)
        if o is None:
            return NotImplemented
        return o / self

    def __neg__(self) -> "Fixed64x64":
        return Fixed64x64(_check_raw(-self.raw))

    def __abs__(self) -> "Fixed64x64":
        return Fixed64x64(_check_raw(abs(self.raw)))

    def __bool__(self) -> bool:
        return self.raw != 0

    def inv(self) -> "Fixed64x64":
        return ONE / self

    def pow(self, exponent: int) -> "Fixed64x64":
        """Integer power by repeated squaring; negative exponents invert."""
        if not isinstance(exponent, int) or isinstance(exponent, bool):
            raise TypeError("exponent must be an int")
        if exponent < 0:
            return self.pow(-exponent).inv()
        result = ONE
        base = self
        while exponent:
            if exponent & 1:
                result = result * base
            exponent >>= 1
            if exponent:
                base = base * base
        return result

    # -- Transcendental -----------------------------------------------------

    def sqrt(self) -> "Fixed64x64":
        if self.raw < 0:
            raise PoolArithmeticError(f"sqrt of negative value: {self}")
        return Fixed64x64(isqrt(self.raw << FRACTION_BITS))

    def log2(self) -> "Fixed64x64":
        if self.raw <= 0:
            raise PoolArithmeticError(f"log of non-positive value: {self}")
        msb = self.raw.bit_length() - 1
        result = (msb - FRACTION_BITS) << FRACTION_BITS
        ux = self.raw << (127 - msb)
        bit = 1 << (FRACTION_BITS - 1)
        while bit:
            ux *= ux
            b = ux >> 255
            ux >>= 127 + b
            result += bit * b
            bit >>= 1
        return Fixed64x64(result)

    def ln(self) -> "Fixed64x64":
        return Fixed64x64((self.log2().raw * LN2_RAW) >> FRACTION_BITS)

    def exp2(self) -> "Fixed64x64":
        if self.raw >= _EXP2_MAX_INPUT:
            raise FixedPointOverflowError(f"exp2 overflow: {self}")
        if self.raw < -_EXP2_MAX_INPUT:
            return ZERO
        whole = self.raw >> FRACTION_BITS
        frac = self.raw & _FRACTION_MASK
        result = ONE_RAW
        for i in range(1, FRACTION_BITS + 1):
            if frac & (1 << (FRACTION_BITS - i)):
                result = (result * _EXP2_FRACTION[i]) >> FRACTION_BITS
        if whole >= 0:
            result <<= whole
        else:
            result >>= -whole
        return Fixed64x64(_check_raw(result))

    def exp(self) -> "Fixed64x64":
        scaled = (self.raw * LOG2_E_RAW) >> FRACTION_BITS
        if scaled < -_EXP2_MAX_INPUT:
            return ZERO
        return Fixed64x64(_check_raw(scaled)).exp2()


def _coerce(value: object) -> Fixed64x64 | None:
    if isinstance(value, Fixed64x64):
        return value
    if isinstance(value, int) and not isinstance(value, bool):
        return Fixed64x64.from_int(value)
    return None


def fmax(a: Fixed64x64, b: Fixed64x64) -> Fixed64x64:
    return a if a >= b else b


def fmin(a: Fixed64x64, b: Fixed64x64) -> Fixed64x64:
    return a if a <= b else b


ZERO = Fixed64x64(0)
ONE = Fixed64x64(ONE_RAW)
TWO = Fixed64x64(2 * ONE_RAW)
HALF = Fixed64x64(ONE_RAW >> 1)
