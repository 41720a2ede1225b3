"""Tests for optionpool/core/fixed_point.py: 64.64 arithmetic and transcendental functions."""

from __future__ import annotations

import math

import hypothesis.strategies as st
import pytest
from hypothesis import given, settings

from optionpool.core.errors import DivisionByZeroError, FixedPointOverflowError, PoolArithmeticError, ValidationError
from optionpool.core.fixed_point import (
    HALF,
    LN2_RAW,
    MAX_RAW,
    MIN_RAW,
    ONE,
    ONE_RAW,
    TWO,
    ZERO,
    Fixed64x64,
    fmax,
    fmin,
)


def fx(value) -> Fixed64x64:
    return Fixed64x64.from_decimal(value)


# ---------------------------------------------------------------------------
# construction / conversion
# ---------------------------------------------------------------------------

class TestConstruction:
    def test_from_int(self):
        assert Fixed64x64.from_int(3).raw == 3 * ONE_RAW
        assert Fixed64x64.from_int(-2).raw == -2 * ONE_RAW

    def test_from_fraction_truncates_toward_zero(self):
        assert Fixed64x64.from_fraction(1, 3).raw == ONE_RAW // 3
        assert Fixed64x64.from_fraction(-1, 3).raw == -(ONE_RAW // 3)

    def test_from_decimal_is_exact_for_dyadic(self):
        assert fx("0.5") == HALF
        assert fx("0.25").raw == ONE_RAW // 4
        assert fx(55284) == Fixed64x64.from_int(55284)

    def test_from_decimal_avoids_float_rounding(self):
        assert fx("0.1") == Fixed64x64.from_fraction(1, 10)

    def test_from_decimal_rejects_garbage(self):
        with pytest.raises(ValidationError):
            fx("not-a-number")
        with pytest.raises(ValidationError):
            fx("nan")
        with pytest.raises(ValidationError):
            fx(float("inf"))

    def test_from_decimals(self):
        assert Fixed64x64.from_decimals(15 * 10**17, 18) == fx("1.5")
        assert fx("1.5").to_decimals(18) == 15 * 10**17

    def test_to_int_floors(self):
        assert fx("2.75").to_int() == 2
        assert fx("-2.25").to_int() == -3

    def test_out_of_range_raw_rejected(self):
        with pytest.raises(FixedPointOverflowError):
            Fixed64x64(MAX_RAW + 1)
        with pytest.raises(FixedPointOverflowError):
            Fixed64x64(MIN_RAW - 1)
        with pytest.raises(TypeError):
            Fixed64x64(True)

    def test_float_conversion(self):
        assert float(fx("1.25")) == 1.25
        assert str(HALF) == "0.5"


# ---------------------------------------------------------------------------
# arithmetic
# ---------------------------------------------------------------------------

class TestArithmetic:
    def test_add_sub_with_int_coercion(self):
        assert ONE + 1 == TWO
        assert 3 - ONE == TWO
        assert TWO - 1 == ONE

    def test_mul_floors(self):
        tiny = Fixed64x64(1)
        assert (tiny * HALF).raw == 0
        assert (-tiny * HALF).raw == -1

    def test_div_truncates_toward_zero(self):
        assert (ONE / 3).raw == ONE_RAW // 3
        assert (-ONE / 3).raw == -(ONE_RAW // 3)
        assert (1 / TWO) == HALF

    def test_division_by_zero(self):
        with pytest.raises(DivisionByZeroError):
            ONE / ZERO
        with pytest.raises(DivisionByZeroError):
            Fixed64x64.from_fraction(1, 0)

    def test_overflow_raises_not_saturates(self):
        big = Fixed64x64(MAX_RAW)
        with pytest.raises(FixedPointOverflowError):
            big + ONE
        with pytest.raises(FixedPointOverflowError):
            big * TWO
        with pytest.raises(FixedPointOverflowError):
            -Fixed64x64(MIN_RAW)

    def test_pow(self):
        assert Fixed64x64.from_int(3).pow(4) == Fixed64x64.from_int(81)
        assert TWO.pow(-2) == fx("0.25")
        assert fx("1.5").pow(0) == ONE

    def test_inv_and_abs(self):
        assert fx("4").inv() == fx("0.25")
        assert abs(fx("-1.5")) == fx("1.5")

    def test_bool(self):
        assert not ZERO
        assert ONE

    def test_fmax_fmin(self):
        assert fmax(ONE, TWO) == TWO
        assert fmin(ONE, TWO) == ONE


# ---------------------------------------------------------------------------
# transcendental
# ---------------------------------------------------------------------------

class TestTranscendental:
    def test_sqrt(self):
        assert Fixed64x64.from_int(9).sqrt() == Fixed64x64.from_int(3)
        assert fx("2").sqrt().to_float() == pytest.approx(math.sqrt(2), rel=1e-15)
        with pytest.raises(PoolArithmeticError):
            (-ONE).sqrt()

    def test_log2_exact_powers(self):
        assert Fixed64x64.from_int(8).log2() == Fixed64x64.from_int(3)
        assert fx("0.25").log2() == Fixed64x64.from_int(-2)
        assert ONE.log2() == ZERO

    def test_ln(self):
        assert TWO.ln().raw == LN2_RAW
        assert fx("10").ln().to_float() == pytest.approx(math.log(10), rel=1e-15)
        with pytest.raises(PoolArithmeticError):
            ZERO.ln()

    def test_ln2_constant(self):
        assert LN2_RAW / ONE_RAW == pytest.approx(math.log(2), rel=1e-15)

    def test_exp2(self):
        assert Fixed64x64.from_int(10).exp2() == Fixed64x64.from_int(1024)
        assert HALF.exp2().to_float() == pytest.approx(math.sqrt(2), rel=1e-15)
        assert Fixed64x64.from_int(-1).exp2() == HALF

    def test_exp(self):
        assert ZERO.exp() == ONE
        assert ONE.exp().to_float() == pytest.approx(math.e, rel=1e-15)
        assert fx("-0.8").exp().to_float() == pytest.approx(0.4493289641, rel=1e-9)

    def test_exp_underflow_is_zero(self):
        assert Fixed64x64.from_int(-100).exp() == ZERO
        assert Fixed64x64.from_int(-65).exp2() == ZERO

    def test_exp_overflow_raises(self):
        with pytest.raises(FixedPointOverflowError):
            Fixed64x64.from_int(64).exp2()
        with pytest.raises(FixedPointOverflowError):
            Fixed64x64.from_int(50).exp()


# ---------------------------------------------------------------------------
# properties
# ---------------------------------------------------------------------------

_raw_small = st.integers(min_value=-(1 << 90), max_value=1 << 90)
_positive = st.integers(min_value=1 << 48, max_value=1 << 100).map(Fixed64x64)


@settings(max_examples=200, deadline=None)
@given(a=_raw_small, b=_raw_small)
def test_add_then_sub_restores_operand(a: int, b: int) -> None:
    x, y = Fixed64x64(a), Fixed64x64(b)
    assert (x + y) - y == x


@settings(max_examples=200, deadline=None)
@given(x=_positive)
def test_exp_of_ln_is_close(x: Fixed64x64) -> None:
    assert x.ln().exp().to_float() == pytest.approx(x.to_float(), rel=1e-12)


@settings(max_examples=200, deadline=None)
@given(x=_positive)
def test_sqrt_squared_does_not_exceed_input(x: Fixed64x64) -> None:
    r = x.sqrt()
    assert r * r <= x
