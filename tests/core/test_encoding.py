"""Tests for optionpool/core/encoding.py: position ids and volatility coefficients."""

from __future__ import annotations

import hypothesis.strategies as st
import pytest
from hypothesis import given, settings

from optionpool.core.encoding import (
    COEFFICIENT_LIMIT,
    FREE_LIQUIDITY_ID,
    RESERVED_LIQUIDITY_ID,
    PositionType,
    decode_coefficients,
    decode_position_id,
    encode_coefficients,
    encode_position_id,
    position_key,
)
from optionpool.core.errors import EncodingRangeError
from optionpool.core.fixed_point import MAX_RAW, MIN_RAW, Fixed64x64


MATURITY = 1_617_235_200


class TestPositionId:
    def test_bit_layout(self):
        strike = Fixed64x64.from_int(50_000)
        token_id = encode_position_id(PositionType.LONG_CALL, MATURITY, strike)
        assert token_id >> 248 == 2
        assert (token_id >> 184) & ((1 << 64) - 1) == MATURITY
        assert token_id & ((1 << 128) - 1) == strike.raw
        assert token_id == (2 << 248) | (MATURITY << 184) | strike.raw

    def test_negative_strike_two_complement(self):
        strike = Fixed64x64.from_int(-3)
        token_id = encode_position_id(PositionType.SHORT_CALL, MATURITY, strike)
        assert token_id & ((1 << 128) - 1) == (1 << 128) + strike.raw
        assert decode_position_id(token_id) == (3, MATURITY, strike)

    def test_liquidity_ids(self):
        assert FREE_LIQUIDITY_ID == 0
        assert RESERVED_LIQUIDITY_ID == 1 << 248
        assert position_key(RESERVED_LIQUIDITY_ID).position_type is PositionType.RESERVED_LIQUIDITY

    def test_position_key(self):
        strike = Fixed64x64.from_decimal("1234.5")
        key = position_key(encode_position_id(PositionType.SHORT_CALL, MATURITY, strike))
        assert key.position_type is PositionType.SHORT_CALL
        assert key.maturity == MATURITY
        assert key.strike == strike

    def test_range_errors(self):
        strike = Fixed64x64.from_int(1)
        with pytest.raises(EncodingRangeError):
            encode_position_id(256, MATURITY, strike)
        with pytest.raises(EncodingRangeError):
            encode_position_id(-1, MATURITY, strike)
        with pytest.raises(EncodingRangeError):
            encode_position_id(PositionType.LONG_CALL, 1 << 64, strike)
        with pytest.raises(EncodingRangeError):
            decode_position_id(1 << 256)
        with pytest.raises(EncodingRangeError):
            position_key(7 << 248)


@settings(max_examples=300, deadline=None)
@given(
    position_type=st.integers(min_value=0, max_value=255),
    maturity=st.integers(min_value=0, max_value=(1 << 64) - 1),
    raw=st.integers(min_value=MIN_RAW, max_value=MAX_RAW),
)
def test_position_id_round_trip(position_type: int, maturity: int, raw: int) -> None:
    strike = Fixed64x64(raw)
    assert decode_position_id(encode_position_id(position_type, maturity, strike)) == (position_type, maturity, strike)


class TestCoefficients:
    def test_big_endian_layout(self):
        word = encode_coefficients([1, 0, 0, 0, 0, 0])
        assert word == 1 << 214
        word = encode_coefficients([0, 0, 0, 0, 0, 1])
        assert word == 1 << 4

    def test_negative_values(self):
        coefficients = [-1, 2, -(COEFFICIENT_LIMIT - 1), COEFFICIENT_LIMIT - 1, 0, -42]
        assert decode_coefficients(encode_coefficients(coefficients)) == coefficients
        assert encode_coefficients([-1, 0, 0, 0, 0, 0]) >> 214 == (1 << 42) - 1

    def test_low_bits_unused(self):
        word = encode_coefficients([COEFFICIENT_LIMIT - 1] * 6)
        assert word & 0xF == 0

    def test_rejects_bad_inputs(self):
        with pytest.raises(EncodingRangeError):
            encode_coefficients([0] * 5)
        with pytest.raises(EncodingRangeError):
            encode_coefficients([COEFFICIENT_LIMIT, 0, 0, 0, 0, 0])
        with pytest.raises(EncodingRangeError):
            encode_coefficients([0, 0, 0, 0, 0, -COEFFICIENT_LIMIT])
        with pytest.raises(EncodingRangeError):
            decode_coefficients(1 << 256)
        with pytest.raises(TypeError):
            encode_coefficients([0.5, 0, 0, 0, 0, 0])


@settings(max_examples=300, deadline=None)
@given(
    coefficients=st.lists(
        st.integers(min_value=-(COEFFICIENT_LIMIT - 1), max_value=COEFFICIENT_LIMIT - 1),
        min_size=6,
        max_size=6,
    )
)
def test_coefficients_round_trip(coefficients: list[int]) -> None:
    assert decode_coefficients(encode_coefficients(coefficients)) == coefficients
