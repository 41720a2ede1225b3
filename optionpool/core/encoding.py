"""Bit-exact integer codecs.

Position ids (256-bit):

    bits 248..255  position type (8 bits)
    bits 184..247  maturity, unix seconds (64 bits)
    bits   0..127  strike, signed 64.64 two's complement (128 bits)

Volatility surface coefficients (256-bit): six signed 42-bit integers packed
big-endian, coefficient 0 in bits 214..255 and coefficient 5 in bits 4..45.
Each must lie strictly inside (-2**41, 2**41).
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum, unique
from typing import Sequence

from .errors import EncodingRangeError
from .fixed_point import MAX_RAW, MIN_RAW, Fixed64x64


WORD_BITS = 256

TYPE_BITS = 8
MATURITY_BITS = 64
STRIKE_BITS = 128
TYPE_SHIFT = WORD_BITS - TYPE_BITS
MATURITY_SHIFT = TYPE_SHIFT - MATURITY_BITS

COEFFICIENT_COUNT = 6
COEFFICIENT_BITS = 42
COEFFICIENT_LIMIT = 1 << (COEFFICIENT_BITS - 1)


def _mask(bits: int) -> int:
    return (1 << bits) - 1


@unique
class PositionType(IntEnum):
    FREE_LIQUIDITY = 0
    RESERVED_LIQUIDITY = 1
    LONG_CALL = 2
    SHORT_CALL = 3


@dataclass(frozen=True)
class PositionKey:
    position_type: PositionType
    maturity: int
    strike: Fixed64x64


# Liquidity balances are not tied to a series; they use maturity 0 / strike 0.
FREE_LIQUIDITY_ID = 0
RESERVED_LIQUIDITY_ID = int(PositionType.RESERVED_LIQUIDITY) << TYPE_SHIFT


def encode_position_id(position_type: int, maturity: int, strike: Fixed64x64) -> int:
    if not (0 <= int(position_type) <= _mask(TYPE_BITS)):
        raise EncodingRangeError(f"position type does not fit {TYPE_BITS} bits: {position_type}")
    if not (0 <= maturity <= _mask(MATURITY_BITS)):
        raise EncodingRangeError(f"maturity does not fit {MATURITY_BITS} bits: {maturity}")
    if not (MIN_RAW <= strike.raw <= MAX_RAW):
        raise EncodingRangeError(f"strike does not fit {STRIKE_BITS} bits: {strike.raw}")
    return (
        (int(position_type) << TYPE_SHIFT)
        | (maturity << MATURITY_SHIFT)
        | (strike.raw & _mask(STRIKE_BITS))
    )


def decode_position_id(token_id: int) -> tuple[int, int, Fixed64x64]:
    """Return `(position_type, maturity, strike)` exactly as encoded."""
    if not (0 <= token_id <= _mask(WORD_BITS)):
        raise EncodingRangeError(f"token id does not fit {WORD_BITS} bits: {token_id}")
    position_type = token_id >> TYPE_SHIFT
    maturity = (token_id >> MATURITY_SHIFT) & _mask(MATURITY_BITS)
    strike_raw = token_id & _mask(STRIKE_BITS)
    if strike_raw >> (STRIKE_BITS - 1):
        strike_raw -= 1 << STRIKE_BITS
    return position_type, maturity, Fixed64x64(strike_raw)


def position_key(token_id: int) -> PositionKey:
    """Decode and type-check a token id."""
    position_type, maturity, strike = decode_position_id(token_id)
    try:
        kind = PositionType(position_type)
    except ValueError as exc:
        raise EncodingRangeError(f"unknown position type: {position_type}") from exc
    return PositionKey(position_type=kind, maturity=maturity, strike=strike)


def encode_coefficients(coefficients: Sequence[int]) -> int:
    if len(coefficients) != COEFFICIENT_COUNT:
        raise EncodingRangeError(f"expected {COEFFICIENT_COUNT} coefficients, got {len(coefficients)}")
    word = 0
    for i, c in enumerate(coefficients):
        if not isinstance(c, int) or isinstance(c, bool):
            raise TypeError(f"coefficient {i} must be an int")
        if not (-COEFFICIENT_LIMIT < c < COEFFICIENT_LIMIT):
            raise EncodingRangeError(f"coefficient {i} out of range (-2^41, 2^41): {c}")
        shift = WORD_BITS - COEFFICIENT_BITS * (i + 1)
        word |= (c & _mask(COEFFICIENT_BITS)) << shift
    return word


def decode_coefficients(word: int) -> list[int]:
    if not (0 <= word <= _mask(WORD_BITS)):
        raise EncodingRangeError(f"word does not fit {WORD_BITS} bits: {word}")
    out: list[int] = []
    for i in range(COEFFICIENT_COUNT):
        shift = WORD_BITS - COEFFICIENT_BITS * (i + 1)
        c = (word >> shift) & _mask(COEFFICIENT_BITS)
        if c >> (COEFFICIENT_BITS - 1):
            c -= 1 << COEFFICIENT_BITS
        out.append(c)
    return out
