"""Invariant checkers for the liquidity ledger.

Each function returns True when the invariant holds, and `check_all()` returns
the list of violated invariant IDs (empty = all pass). The pool engine runs
`check_all()` on every post-state before committing it.
"""

from __future__ import annotations

from typing import Callable, Dict, Set

from .encoding import FREE_LIQUIDITY_ID, PositionType
from .fixed_point import ZERO
from .ledger import LiquidityLedger


def _series_supply(ledger: LiquidityLedger, position_type: PositionType) -> Dict[int, int]:
    # Maturity and strike bits, without the type byte.
    series_mask = (1 << 248) - 1
    supply: Dict[int, int] = {}
    for token_id in ledger.balances.token_ids():
        if token_id >> 248 == position_type:
            supply[token_id & series_mask] = ledger.balances.total_supply(token_id)
    return supply


def inv_liquidity_conserved(ledger: LiquidityLedger) -> bool:
    held = (
        ledger.total_free_liquidity
        + ledger.total_reserved_liquidity
        + ledger.total_short_exposure()
        + ledger.fees_collected
    )
    return held == ledger.pool.total_liquidity


def inv_balances_nonneg(ledger: LiquidityLedger) -> bool:
    return ledger.balances.verify_non_negative() and ledger.fees_collected >= 0


def inv_queue_matches_free(ledger: LiquidityLedger) -> bool:
    queued: Set[str] = set(ledger.queue)
    return len(queued) == len(ledger.queue) and queued == set(ledger.balances.holders(FREE_LIQUIDITY_ID))


def inv_long_short_parity(ledger: LiquidityLedger) -> bool:
    return _series_supply(ledger, PositionType.LONG_CALL) == _series_supply(ledger, PositionType.SHORT_CALL)


def inv_c_level_positive(ledger: LiquidityLedger) -> bool:
    return ledger.pool.c_level > ZERO


# ---------------------------------------------------------------------------
# Registry + check_all
# ---------------------------------------------------------------------------

INVARIANT_REGISTRY: dict[str, Callable[[LiquidityLedger], bool]] = {
    "inv_liquidity_conserved": inv_liquidity_conserved,
    "inv_balances_nonneg": inv_balances_nonneg,
    "inv_queue_matches_free": inv_queue_matches_free,
    "inv_long_short_parity": inv_long_short_parity,
    "inv_c_level_positive": inv_c_level_positive,
}


def check_all(ledger: LiquidityLedger) -> list[str]:
    """Return list of violated invariant IDs (empty = all pass)."""
    return [
        inv_id
        for inv_id, check_fn in INVARIANT_REGISTRY.items()
        if not check_fn(ledger)
    ]
