"""
Multi-token position balances.

Implements PositionBalances[Address, TokenId] -> Amount, plus per-token total
supply and an ordered holder enumeration used when settling short positions.
"""

from __future__ import annotations

from typing import Dict, Iterator, List, Tuple


# Type aliases
Address = str
TokenId = int
Amount = int  # Non-negative integer in contract-size units


class PositionBalances:
    """
    Balance table mapping (holder, token_id) -> amount.

    Notes:
    - Balances are always non-negative; zero balances are omitted.
    - Each token keeps its holders in insertion order. A holder whose balance
      drops to zero leaves the enumeration and re-enters at the end.
    """

    def __init__(self) -> None:
        self._balances: Dict[Tuple[Address, TokenId], Amount] = {}
        self._supply: Dict[TokenId, Amount] = {}
        self._holders: Dict[TokenId, Dict[Address, None]] = {}

    def get(self, holder: Address, token_id: TokenId) -> Amount:
        """Get balance for (holder, token_id). Returns 0 if not found."""
        return self._balances.get((holder, token_id), 0)

    def total_supply(self, token_id: TokenId) -> Amount:
        return self._supply.get(token_id, 0)

    def holders(self, token_id: TokenId) -> List[Address]:
        """Holders of `token_id` in enumeration order (oldest first)."""
        return list(self._holders.get(token_id, ()))

    def mint(self, holder: Address, token_id: TokenId, amount: Amount) -> None:
        if amount < 0:
            raise ValueError(f"mint amount must be non-negative: {amount}")
        if amount == 0:
            return
        key = (holder, token_id)
        if key not in self._balances:
            self._holders.setdefault(token_id, {})[holder] = None
        self._balances[key] = self._balances.get(key, 0) + amount
        self._supply[token_id] = self._supply.get(token_id, 0) + amount

    def burn(self, holder: Address, token_id: TokenId, amount: Amount) -> None:
        if amount < 0:
            raise ValueError(f"burn amount must be non-negative: {amount}")
        if amount == 0:
            return
        key = (holder, token_id)
        current = self._balances.get(key, 0)
        if amount > current:
            raise ValueError(f"Insufficient balance: {current} - {amount} < 0")
        remaining = current - amount
        if remaining == 0:
            del self._balances[key]
            holders = self._holders[token_id]
            del holders[holder]
            if not holders:
                del self._holders[token_id]
        else:
            self._balances[key] = remaining
        supply = self._supply[token_id] - amount
        if supply == 0:
            del self._supply[token_id]
        else:
            self._supply[token_id] = supply

    def items(self) -> Iterator[Tuple[Tuple[Address, TokenId], Amount]]:
        return iter(list(self._balances.items()))

    def token_ids(self) -> List[TokenId]:
        return list(self._supply)

    def copy(self) -> "PositionBalances":
        copied = PositionBalances()
        copied._balances = dict(self._balances)
        copied._supply = dict(self._supply)
        copied._holders = {token_id: dict(holders) for token_id, holders in self._holders.items()}
        return copied

    def verify_non_negative(self) -> bool:
        """Verify all stored balances are non-negative."""
        return all(amount >= 0 for amount in self._balances.values())

    def __repr__(self) -> str:
        return f"PositionBalances({len(self._balances)} entries)"
