"""Underwriter allocation ledger.

Tracks every provider's FREE / RESERVED liquidity and SHORT_CALL exposure, the
queue of underwriters eligible for new exposure, and the pool aggregates.

Accounting unit: one contract is collateralised by one underlying base unit,
so short balances count directly toward `total_liquidity`:

    sum(FREE) + sum(RESERVED) + sum(SHORT) + fees_collected == total_liquidity

Every mutator either completes or raises before touching state it cannot
finish; the pool engine still wraps each call in a snapshot/restore
transaction so that multi-step operations are all-or-nothing.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import List, Optional

from ..state.pool import PoolState
from ..state.positions import Address, PositionBalances
from ..state.underwriter_queue import UnderwriterQueue
from .encoding import (
    FREE_LIQUIDITY_ID,
    RESERVED_LIQUIDITY_ID,
    PositionType,
    encode_position_id,
    position_key,
)
from .errors import ExpiryStateError, InsufficientLiquidityError, ValidationError
from .fixed_point import ZERO, Fixed64x64
from .liquidity_curve import calculate_c_level
from .quote import fee_for
from .volatility import SECONDS_PER_DAY


@dataclass(frozen=True)
class Allocation:
    """One underwriter's share of a purchase or reassignment."""

    underwriter: Address
    exposure: int
    premium: int


@dataclass(frozen=True)
class Divestment:
    """Free liquidity moved to RESERVED because the provider stopped reinvesting."""

    underwriter: Address
    amount: int


@dataclass(frozen=True)
class AllocationResult:
    allocations: tuple[Allocation, ...]
    divestments: tuple[Divestment, ...]


@dataclass(frozen=True)
class Release:
    """Collateral returned to one short holder on exercise."""

    underwriter: Address
    exposure: int
    returned: int
    reserved: bool


@dataclass(frozen=True)
class ExerciseResult:
    holder: Address
    amount: int
    exercise_value: int
    fee: int
    paid: int
    releases: tuple[Release, ...]


@dataclass(frozen=True)
class ReassignResult:
    holder: Address
    amount: int
    premium: int
    fee: int
    paid: int
    allocation: AllocationResult


class LiquidityLedger:
    def __init__(self, pool: PoolState, *, withdrawal_delay: int = SECONDS_PER_DAY) -> None:
        if withdrawal_delay < 0:
            raise ValidationError(f"withdrawal_delay must be non-negative: {withdrawal_delay}")
        self.pool = pool
        self.withdrawal_delay = withdrawal_delay
        self.balances = PositionBalances()
        self.queue = UnderwriterQueue()
        self.deposited_at: dict[Address, int] = {}
        self.divestment_at: dict[Address, int] = {}
        self.fees_collected = 0

    # -- Views ---------------------------------------------------------------

    def free_liquidity(self, provider: Address) -> int:
        return self.balances.get(provider, FREE_LIQUIDITY_ID)

    def reserved_liquidity(self, provider: Address) -> int:
        return self.balances.get(provider, RESERVED_LIQUIDITY_ID)

    @property
    def total_free_liquidity(self) -> int:
        return self.balances.total_supply(FREE_LIQUIDITY_ID)

    @property
    def total_reserved_liquidity(self) -> int:
        return self.balances.total_supply(RESERVED_LIQUIDITY_ID)

    def total_short_exposure(self) -> int:
        total = 0
        for token_id in self.balances.token_ids():
            if token_id >> 248 == PositionType.SHORT_CALL:
                total += self.balances.total_supply(token_id)
        return total

    def is_reinvesting(self, provider: Address, now: int) -> bool:
        divest = self.divestment_at.get(provider, 0)
        return divest == 0 or now < divest

    def to_64x64(self, amount: int) -> Fixed64x64:
        return Fixed64x64.from_decimals(amount, self.pool.underlying_decimals)

    # -- Internal balance moves ---------------------------------------------

    def _credit_free(self, provider: Address, amount: int) -> None:
        self.balances.mint(provider, FREE_LIQUIDITY_ID, amount)
        if amount > 0:
            self.queue.append(provider)

    def _debit_free(self, provider: Address, amount: int) -> None:
        self.balances.burn(provider, FREE_LIQUIDITY_ID, amount)
        if self.free_liquidity(provider) == 0:
            self.queue.remove(provider)

    def _credit_liquidity(self, provider: Address, amount: int, now: int) -> bool:
        """Credit FREE, or RESERVED when the provider no longer reinvests. Returns True if reserved."""
        if self.is_reinvesting(provider, now):
            self._credit_free(provider, amount)
            return False
        self.balances.mint(provider, RESERVED_LIQUIDITY_ID, amount)
        return True

    def _rebase_c_level(self, old_free: int, new_free: int) -> None:
        # An empty pool carries its C-Level over unchanged.
        if old_free == 0 or new_free == 0 or old_free == new_free:
            return
        c_level = calculate_c_level(
            self.pool.c_level,
            self.to_64x64(old_free),
            self.to_64x64(new_free),
            self.pool.steepness,
        )
        self.pool = replace(self.pool, c_level=c_level)

    # -- Deposit / withdraw --------------------------------------------------

    def deposit(self, provider: Address, amount: int, now: int) -> None:
        if amount <= 0:
            raise ValidationError(f"deposit amount must be positive: {amount}")
        old_free = self.total_free_liquidity
        self._credit_free(provider, amount)
        self.deposited_at[provider] = now
        self.pool = replace(self.pool, total_liquidity=self.pool.total_liquidity + amount)
        self._rebase_c_level(old_free, self.total_free_liquidity)

    def withdraw(self, provider: Address, amount: int, now: int) -> tuple[int, int]:
        """Withdraw RESERVED first, then FREE. Returns `(from_reserved, from_free)`."""
        if amount <= 0:
            raise ValidationError(f"withdraw amount must be positive: {amount}")
        reserved = self.reserved_liquidity(provider)
        free = self.free_liquidity(provider)
        if amount > reserved + free:
            raise InsufficientLiquidityError(
                f"withdraw {amount} exceeds balance {reserved + free} of {provider}"
            )
        from_reserved = min(reserved, amount)
        from_free = amount - from_reserved
        if from_free > 0:
            matures_at = self.deposited_at.get(provider, 0) + self.withdrawal_delay
            if now < matures_at:
                raise ValidationError(f"liquidity of {provider} not matured until {matures_at}")

        old_free = self.total_free_liquidity
        self.balances.burn(provider, RESERVED_LIQUIDITY_ID, from_reserved)
        self._debit_free(provider, from_free)
        self.pool = replace(self.pool, total_liquidity=self.pool.total_liquidity - amount)
        self._rebase_c_level(old_free, self.total_free_liquidity)
        return from_reserved, from_free

    def set_divestment_timestamp(self, provider: Address, timestamp: int) -> None:
        """After `timestamp` the provider's liquidity stops being reinvested; 0 cancels."""
        if timestamp < 0:
            raise ValidationError(f"timestamp must be non-negative: {timestamp}")
        if timestamp != 0:
            earliest = self.deposited_at.get(provider, 0) + self.withdrawal_delay
            if timestamp < earliest:
                raise ValidationError(f"divestment timestamp must be >= {earliest}: {timestamp}")
        if timestamp == 0:
            self.divestment_at.pop(provider, None)
        else:
            self.divestment_at[provider] = timestamp

    # -- Allocation ------------------------------------------------------------

    def _allocate(
        self,
        maturity: int,
        strike: Fixed64x64,
        amount: int,
        premium: int,
        now: int,
        skip: Optional[Address] = None,
    ) -> AllocationResult:
        """Convert FREE liquidity into SHORT exposure in queue order.

        Each underwriter takes exposure in proportion to its free liquidity
        inflated by the unallocated premium, and is credited its share of the
        premium against the remaining amount before this step's deduction.
        The last step receives the exact premium remainder.
        """
        if amount <= 0:
            raise ValidationError(f"amount must be positive: {amount}")
        if not (0 <= premium <= amount):
            raise ValidationError(f"premium {premium} must be within [0, {amount}]")
        available = self.total_free_liquidity - (self.free_liquidity(skip) if skip is not None else 0)
        if amount > available:
            raise InsufficientLiquidityError(f"amount {amount} exceeds free liquidity {available}")

        short_id = encode_position_id(PositionType.SHORT_CALL, maturity, strike)
        remaining = amount
        premium_left = premium
        allocations: List[Allocation] = []
        divestments: List[Divestment] = []
        last: Optional[Address] = None

        for underwriter in self.queue.walk():
            if remaining == 0:
                break
            if underwriter == skip:
                continue
            liquidity = self.free_liquidity(underwriter)

            if not self.is_reinvesting(underwriter, now):
                self._debit_free(underwriter, liquidity)
                self.balances.mint(underwriter, RESERVED_LIQUIDITY_ID, liquidity)
                divestments.append(Divestment(underwriter=underwriter, amount=liquidity))
                continue

            interval = min(remaining, liquidity * (remaining + premium_left) // remaining)
            interval_cost = premium_left * interval // remaining
            # Floor rounding can leave the burn one unit above the balance.
            while interval - interval_cost > liquidity:
                interval -= 1
                interval_cost = premium_left * interval // remaining

            self._debit_free(underwriter, interval - interval_cost)
            self.balances.mint(underwriter, short_id, interval)
            allocations.append(Allocation(underwriter=underwriter, exposure=interval, premium=interval_cost))
            remaining -= interval
            premium_left -= interval_cost
            last = underwriter

        if remaining > 0:
            raise InsufficientLiquidityError(f"underwriter queue exhausted with {remaining} unallocated")
        if last is not None and last in self.queue:
            self.queue.set_cursor(last)
        return AllocationResult(allocations=tuple(allocations), divestments=tuple(divestments))

    def purchase(
        self,
        buyer: Address,
        maturity: int,
        strike: Fixed64x64,
        amount: int,
        premium: int,
        fee: int,
        c_level: Fixed64x64,
        now: int,
    ) -> AllocationResult:
        """Underwrite `amount` calls; the buyer pays `premium + fee` into the pool."""
        if fee < 0:
            raise ValidationError(f"fee must be non-negative: {fee}")
        result = self._allocate(maturity, strike, amount, premium, now)
        long_id = encode_position_id(PositionType.LONG_CALL, maturity, strike)
        self.balances.mint(buyer, long_id, amount)
        self.fees_collected += fee
        self.pool = replace(
            self.pool,
            total_liquidity=self.pool.total_liquidity + premium + fee,
            c_level=c_level,
        )
        return result

    # -- Exercise --------------------------------------------------------------

    def exercise(self, holder: Address, long_token_id: int, amount: int, spot: Fixed64x64, now: int) -> ExerciseResult:
        """Settle `amount` long calls at `spot`.

        The holder receives the in-the-money value net of fee. Short holders are
        walked most-recently-added first; each burns up to its balance and gets
        its proportional share of the collateral left after the payout.
        """
        key = position_key(long_token_id)
        if key.position_type != PositionType.LONG_CALL:
            raise ValidationError(f"token {long_token_id:#x} is not a long call")
        if amount <= 0:
            raise ValidationError(f"amount must be positive: {amount}")
        balance = self.balances.get(holder, long_token_id)
        if amount > balance:
            raise InsufficientLiquidityError(f"exercise {amount} exceeds balance {balance} of {holder}")
        if spot <= ZERO:
            raise ValidationError(f"spot must be positive: {spot}")

        exercise_value = 0
        if spot > key.strike:
            exercise_value = (((spot - key.strike) / spot).raw * amount) >> 64
        fee = fee_for(exercise_value, self.pool.fee_rate)

        short_id = encode_position_id(PositionType.SHORT_CALL, key.maturity, key.strike)
        old_free = self.total_free_liquidity
        self.balances.burn(holder, long_token_id, amount)

        remaining = amount
        freed_left = amount - exercise_value
        releases: List[Release] = []
        for underwriter in reversed(self.balances.holders(short_id)):
            if remaining == 0:
                break
            interval = min(self.balances.get(underwriter, short_id), remaining)
            freed = freed_left * interval // remaining
            self.balances.burn(underwriter, short_id, interval)
            reserved = self._credit_liquidity(underwriter, freed, now)
            releases.append(Release(underwriter=underwriter, exposure=interval, returned=freed, reserved=reserved))
            remaining -= interval
            freed_left -= freed
        if remaining > 0:
            raise InsufficientLiquidityError(f"short supply exhausted with {remaining} unsettled")

        paid = exercise_value - fee
        self.fees_collected += fee
        self.pool = replace(self.pool, total_liquidity=self.pool.total_liquidity - paid)
        self._rebase_c_level(old_free, self.total_free_liquidity)
        return ExerciseResult(
            holder=holder,
            amount=amount,
            exercise_value=exercise_value,
            fee=fee,
            paid=paid,
            releases=tuple(releases),
        )

    # -- Cancel ----------------------------------------------------------------

    def cancel(self, holder: Address, maturity: int, strike: Fixed64x64, amount: int, now: int) -> Release:
        """Burn matching long and short calls held by the same underwriter.

        The collateral goes back to FREE, or RESERVED once the holder has
        divested. Total liquidity is unchanged.
        """
        if amount <= 0:
            raise ValidationError(f"amount must be positive: {amount}")
        if now >= maturity:
            raise ExpiryStateError(f"option expired at {maturity}")
        long_id = encode_position_id(PositionType.LONG_CALL, maturity, strike)
        short_id = encode_position_id(PositionType.SHORT_CALL, maturity, strike)
        covered = min(self.balances.get(holder, long_id), self.balances.get(holder, short_id))
        if amount > covered:
            raise InsufficientLiquidityError(f"cancel {amount} exceeds written and held {covered} of {holder}")

        old_free = self.total_free_liquidity
        self.balances.burn(holder, long_id, amount)
        self.balances.burn(holder, short_id, amount)
        reserved = self._credit_liquidity(holder, amount, now)
        self._rebase_c_level(old_free, self.total_free_liquidity)
        return Release(underwriter=holder, exposure=amount, returned=amount, reserved=reserved)

    # -- Reassign --------------------------------------------------------------

    def reassign(
        self,
        holder: Address,
        short_token_id: int,
        amount: int,
        premium: int,
        fee: int,
        c_level: Fixed64x64,
        now: int,
    ) -> ReassignResult:
        """Move `amount` of the holder's short exposure to other underwriters.

        The new underwriters receive `premium`; the holder gets back its
        collateral net of premium and fee.
        """
        key = position_key(short_token_id)
        if key.position_type != PositionType.SHORT_CALL:
            raise ValidationError(f"token {short_token_id:#x} is not a short call")
        if now >= key.maturity:
            raise ExpiryStateError(f"option expired at {key.maturity}")
        if amount <= 0:
            raise ValidationError(f"amount must be positive: {amount}")
        balance = self.balances.get(holder, short_token_id)
        if amount > balance:
            raise InsufficientLiquidityError(f"reassign {amount} exceeds balance {balance} of {holder}")
        if fee < 0 or premium + fee > amount:
            raise ValidationError(f"reassignment cost {premium} + {fee} exceeds collateral {amount}")

        self.balances.burn(holder, short_token_id, amount)
        allocation = self._allocate(key.maturity, key.strike, amount, premium, now, skip=holder)
        paid = amount - premium - fee
        self.fees_collected += fee
        self.pool = replace(self.pool, total_liquidity=self.pool.total_liquidity - paid, c_level=c_level)
        return ReassignResult(
            holder=holder,
            amount=amount,
            premium=premium,
            fee=fee,
            paid=paid,
            allocation=allocation,
        )

    # -- Fees ------------------------------------------------------------------

    def collect_fees(self) -> int:
        collected = self.fees_collected
        self.fees_collected = 0
        self.pool = replace(self.pool, total_liquidity=self.pool.total_liquidity - collected)
        return collected

    def copy(self) -> "LiquidityLedger":
        copied = LiquidityLedger(self.pool, withdrawal_delay=self.withdrawal_delay)
        copied.balances = self.balances.copy()
        copied.queue = self.queue.copy()
        copied.deposited_at = dict(self.deposited_at)
        copied.divestment_at = dict(self.divestment_at)
        copied.fees_collected = self.fees_collected
        return copied
