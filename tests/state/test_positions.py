from __future__ import annotations

import pytest

from optionpool.state.positions import PositionBalances


def test_mint_burn_and_supply() -> None:
    b = PositionBalances()
    b.mint("alice", 7, 100)
    b.mint("bob", 7, 50)
    assert b.get("alice", 7) == 100
    assert b.total_supply(7) == 150
    b.burn("alice", 7, 40)
    assert b.get("alice", 7) == 60
    assert b.total_supply(7) == 110
    assert b.get("carol", 7) == 0


def test_burn_more_than_balance_rejected() -> None:
    b = PositionBalances()
    b.mint("alice", 1, 5)
    with pytest.raises(ValueError):
        b.burn("alice", 1, 6)
    assert b.get("alice", 1) == 5


def test_negative_amounts_rejected() -> None:
    b = PositionBalances()
    with pytest.raises(ValueError):
        b.mint("alice", 1, -1)
    with pytest.raises(ValueError):
        b.burn("alice", 1, -1)


def test_holder_enumeration_is_insertion_ordered() -> None:
    b = PositionBalances()
    for holder in ("a", "b", "c"):
        b.mint(holder, 9, 10)
    b.mint("a", 9, 5)
    assert b.holders(9) == ["a", "b", "c"]
    # Dropping to zero leaves the enumeration; re-minting appends at the end.
    b.burn("a", 9, 15)
    assert b.holders(9) == ["b", "c"]
    b.mint("a", 9, 1)
    assert b.holders(9) == ["b", "c", "a"]


def test_zero_supply_tokens_disappear() -> None:
    b = PositionBalances()
    b.mint("a", 3, 10)
    b.burn("a", 3, 10)
    assert b.token_ids() == []
    assert b.holders(3) == []
    assert b.total_supply(3) == 0


def test_copy_is_independent() -> None:
    b = PositionBalances()
    b.mint("a", 2, 10)
    c = b.copy()
    c.mint("b", 2, 1)
    c.burn("a", 2, 10)
    assert b.get("a", 2) == 10
    assert b.holders(2) == ["a"]
    assert c.holders(2) == ["b"]
    assert b.verify_non_negative() and c.verify_non_negative()
