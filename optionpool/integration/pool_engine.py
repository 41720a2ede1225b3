"""
Option pool execution shell.

`OptionPool` owns one liquidity ledger, the volatility estimate and the spot
price history for a single underlying, and applies every public operation in
a fail-closed way:
- Each operation holds the pool lock for its whole duration.
- State is snapshotted first; any exception (validation, price feed failure,
  post-state invariant violation) restores the snapshot and re-raises.
- Committed operations are logged at INFO, rollbacks at WARNING.

The pure kernels in `optionpool.core` do the arithmetic; this module only
fetches inputs (clock, spot price), validates option series and sequences
the ledger calls.
"""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass
import threading
import time
from typing import Callable, Dict, Iterator, Optional, Sequence, Set, Tuple

from loguru import logger

from ..core.encoding import PositionType, encode_position_id, position_key
from ..core.errors import (
    AuthorizationError,
    ExpiryStateError,
    InsufficientLiquidityError,
    InvariantViolationError,
    SlippageExceededError,
    ValidationError,
)
from ..core.fixed_point import Fixed64x64
from ..core.invariants import check_all
from ..core.ledger import AllocationResult, ExerciseResult, LiquidityLedger, ReassignResult, Release
from ..core.quote import fee_for, premium_in_underlying, quote_price
from ..core.volatility import SECONDS_PER_DAY, VolatilityState, init_volatility_state, update
from ..state.pool import PoolState
from ..state.positions import Address
from ..state.price_history import PriceHistory, PriceObservation
from .config import PoolConfig
from .price_feed import PriceFeed, read_spot


SECONDS_PER_YEAR = 365 * SECONDS_PER_DAY


@dataclass(frozen=True)
class PurchaseQuote:
    """Cost of `amount` calls in underlying base units, plus the pricing inputs."""

    cost: int
    fee: int
    c_level: Fixed64x64
    slippage_coefficient: Fixed64x64
    price: Fixed64x64
    spot: Fixed64x64

    @property
    def total(self) -> int:
        return self.cost + self.fee


@dataclass(frozen=True)
class PurchaseResult:
    token_id: int
    short_token_id: int
    amount: int
    cost: int
    fee: int
    c_level: Fixed64x64
    allocation: AllocationResult


def _system_clock() -> int:
    return int(time.time())


class OptionPool:
    def __init__(
        self,
        price_feed: PriceFeed,
        config: Optional[PoolConfig] = None,
        *,
        name: str = "pool",
        clock: Optional[Callable[[], int]] = None,
    ) -> None:
        self.name = name
        self.config = config or PoolConfig()
        self._price_feed = price_feed
        self._clock = clock or _system_clock
        self._lock = threading.RLock()

        pool = PoolState(
            fee_rate=self.config.fee_rate_64x64,
            steepness=self.config.steepness_64x64,
            underlying_decimals=self.config.underlying_decimals,
            base_decimals=self.config.base_decimals,
        )
        self._ledger = LiquidityLedger(pool, withdrawal_delay=self.config.withdrawal_delay_seconds)
        self._volatility = init_volatility_state(self.config.initial_variance_64x64)
        self._prices = PriceHistory()
        self._approvals: Dict[Address, Set[Address]] = {}

    # -- Views -----------------------------------------------------------------

    @property
    def ledger(self) -> LiquidityLedger:
        return self._ledger

    @property
    def pool_state(self) -> PoolState:
        return self._ledger.pool

    @property
    def volatility(self) -> VolatilityState:
        return self._volatility

    @property
    def price_history(self) -> PriceHistory:
        return self._prices

    @property
    def total_free_liquidity(self) -> int:
        return self._ledger.total_free_liquidity

    @property
    def fees_collected(self) -> int:
        return self._ledger.fees_collected

    def free_liquidity(self, provider: Address) -> int:
        return self._ledger.free_liquidity(provider)

    def reserved_liquidity(self, provider: Address) -> int:
        return self._ledger.reserved_liquidity(provider)

    def balance_of(self, holder: Address, token_id: int) -> int:
        return self._ledger.balances.get(holder, token_id)

    def is_approved_for_all(self, holder: Address, operator: Address) -> bool:
        return operator in self._approvals.get(holder, ())

    def check_invariants(self) -> list[str]:
        with self._lock:
            return check_all(self._ledger)

    # -- Transaction plumbing ------------------------------------------------

    @contextmanager
    def _transaction(self, action: str) -> Iterator[None]:
        with self._lock:
            ledger = self._ledger.copy()
            volatility = self._volatility
            prices = self._prices.copy()
            approvals = {holder: set(ops) for holder, ops in self._approvals.items()}
            try:
                yield
                violations = check_all(self._ledger)
                if violations:
                    raise InvariantViolationError(violations)
            except Exception as exc:
                self._ledger = ledger
                self._volatility = volatility
                self._prices = prices
                self._approvals = approvals
                logger.warning(f"[{self.name}] {action} rolled back: {type(exc).__name__}: {exc}")
                raise

    def _observe_spot(self, now: int) -> Fixed64x64:
        spot = read_spot(self._price_feed)
        self._prices.record(PriceObservation(timestamp=now, price=spot))
        self._volatility = update(self._volatility, spot, now, self.config.ema_period_seconds)
        return spot

    def _settlement_spot(self, maturity: int, now: int) -> Fixed64x64:
        observation = self._prices.price_on_or_after(maturity)
        if observation is None:
            return self._observe_spot(now)
        return observation.price

    def _validate_series(self, maturity: int, strike: Fixed64x64, spot: Fixed64x64, now: int) -> None:
        if maturity % SECONDS_PER_DAY != 0:
            raise ValidationError(f"maturity must be UTC-day aligned: {maturity}")
        earliest = now + self.config.min_maturity_seconds
        latest = now + self.config.max_maturity_seconds
        if not (earliest <= maturity < latest):
            raise ValidationError(f"maturity {maturity} outside [{earliest}, {latest})")
        lo, hi = self.config.strike_bounds
        if not (spot * lo <= strike <= spot * hi):
            raise ValidationError(f"strike {strike} outside [{spot * lo}, {spot * hi}]")

    def _quote(
        self,
        variance: Fixed64x64,
        maturity: int,
        strike: Fixed64x64,
        spot: Fixed64x64,
        amount: int,
        now: int,
        exclude: Optional[Address] = None,
    ) -> PurchaseQuote:
        if amount <= 0:
            raise ValidationError(f"amount must be positive: {amount}")
        if maturity <= now:
            raise ExpiryStateError(f"option expired at {maturity}")
        free = self._ledger.total_free_liquidity
        if exclude is not None:
            free -= self._ledger.free_liquidity(exclude)
        if amount > free:
            raise InsufficientLiquidityError(f"amount {amount} exceeds free liquidity {free}")

        pool = self._ledger.pool
        quote = quote_price(
            variance,
            strike,
            spot,
            Fixed64x64.from_fraction(maturity - now, SECONDS_PER_YEAR),
            pool.c_level,
            self._ledger.to_64x64(free),
            self._ledger.to_64x64(free - amount),
            pool.steepness,
            True,
        )
        cost = premium_in_underlying(quote.price, spot, amount)
        if cost > amount:
            raise InsufficientLiquidityError(f"collateral {amount} cannot cover premium {cost}")
        return PurchaseQuote(
            cost=cost,
            fee=fee_for(cost, pool.fee_rate),
            c_level=quote.c_level,
            slippage_coefficient=quote.slippage_coefficient,
            price=quote.price,
            spot=spot,
        )

    def _log_allocation(self, allocation: AllocationResult) -> None:
        for divestment in allocation.divestments:
            logger.debug(f"[{self.name}] divested {divestment.underwriter}: {divestment.amount} to reserved")
        for step in allocation.allocations:
            logger.debug(
                f"[{self.name}] underwriter {step.underwriter}: exposure={step.exposure} premium={step.premium}"
            )

    # -- Quotes ----------------------------------------------------------------

    def quote(self, maturity: int, strike: Fixed64x64, amount: int) -> PurchaseQuote:
        """Quote a call purchase at the current spot and volatility without mutating state."""
        with self._lock:
            now = self._clock()
            spot = read_spot(self._price_feed)
            self._validate_series(maturity, strike, spot, now)
            return self._quote(self._volatility.ema_variance_annualized, maturity, strike, spot, amount, now)

    def quote_for(
        self,
        variance: Fixed64x64,
        maturity: int,
        strike: Fixed64x64,
        spot: Fixed64x64,
        amount: int,
    ) -> PurchaseQuote:
        """Quote with caller-supplied annualised variance and spot."""
        with self._lock:
            now = self._clock()
            self._validate_series(maturity, strike, spot, now)
            return self._quote(variance, maturity, strike, spot, amount, now)

    # -- Options ---------------------------------------------------------------

    def purchase(
        self,
        buyer: Address,
        maturity: int,
        strike: Fixed64x64,
        amount: int,
        max_cost: int,
    ) -> PurchaseResult:
        with self._transaction("purchase"):
            now = self._clock()
            spot = self._observe_spot(now)
            self._validate_series(maturity, strike, spot, now)
            quote = self._quote(self._volatility.ema_variance_annualized, maturity, strike, spot, amount, now)
            if quote.total > max_cost:
                raise SlippageExceededError(quote.total, max_cost)
            allocation = self._ledger.purchase(
                buyer, maturity, strike, amount, quote.cost, quote.fee, quote.c_level, now
            )
            self._log_allocation(allocation)

        logger.info(
            f"[{self.name}] purchase by {buyer}: amount={amount} cost={quote.cost} fee={quote.fee} "
            f"c_level={quote.c_level}"
        )
        return PurchaseResult(
            token_id=encode_position_id(PositionType.LONG_CALL, maturity, strike),
            short_token_id=encode_position_id(PositionType.SHORT_CALL, maturity, strike),
            amount=amount,
            cost=quote.cost,
            fee=quote.fee,
            c_level=quote.c_level,
            allocation=allocation,
        )

    def exercise(self, holder: Address, token_id: int, amount: int) -> ExerciseResult:
        return self.exercise_from(holder, holder, token_id, amount)

    def exercise_from(self, caller: Address, holder: Address, token_id: int, amount: int) -> ExerciseResult:
        """Exercise the holder's long calls; the caller must be the holder or an approved operator."""
        if caller != holder and not self.is_approved_for_all(holder, caller):
            raise AuthorizationError(f"{caller} is not approved to exercise for {holder}")
        return self._settle("exercise", holder, token_id, amount, expired_only=False)

    def process_expired(self, token_id: int, amount: int, holder: Address) -> ExerciseResult:
        """Settle an expired long position at the maturity-day price. Callable by anyone."""
        return self._settle("process_expired", holder, token_id, amount, expired_only=True)

    def _settle(self, action: str, holder: Address, token_id: int, amount: int, *, expired_only: bool) -> ExerciseResult:
        with self._transaction(action):
            now = self._clock()
            key = position_key(token_id)
            if key.position_type != PositionType.LONG_CALL:
                raise ValidationError(f"token {token_id:#x} is not a long call")
            expired = now >= key.maturity
            if expired_only and not expired:
                raise ExpiryStateError(f"option not expired until {key.maturity}")
            if expired:
                spot = self._settlement_spot(key.maturity, now)
            else:
                spot = self._observe_spot(now)
            result = self._ledger.exercise(holder, token_id, amount, spot, now)
            for release in result.releases:
                logger.debug(
                    f"[{self.name}] released {release.underwriter}: exposure={release.exposure} "
                    f"returned={release.returned} reserved={release.reserved}"
                )

        logger.info(
            f"[{self.name}] {action} for {holder}: amount={amount} value={result.exercise_value} "
            f"fee={result.fee} c_level={self._ledger.pool.c_level}"
        )
        return result

    def reassign(
        self,
        holder: Address,
        token_id: int,
        amount: int,
        max_cost: Optional[int] = None,
    ) -> ReassignResult:
        """Hand `amount` of the holder's short exposure to other underwriters."""
        with self._transaction("reassign"):
            now = self._clock()
            key = position_key(token_id)
            if key.position_type != PositionType.SHORT_CALL:
                raise ValidationError(f"token {token_id:#x} is not a short call")
            if now >= key.maturity:
                raise ExpiryStateError(f"option expired at {key.maturity}")
            spot = self._observe_spot(now)
            quote = self._quote(
                self._volatility.ema_variance_annualized,
                key.maturity,
                key.strike,
                spot,
                amount,
                now,
                exclude=holder,
            )
            if quote.total > amount:
                raise InsufficientLiquidityError(f"collateral {amount} cannot cover reassignment cost {quote.total}")
            if max_cost is not None and quote.total > max_cost:
                raise SlippageExceededError(quote.total, max_cost)
            result = self._ledger.reassign(holder, token_id, amount, quote.cost, quote.fee, quote.c_level, now)
            self._log_allocation(result.allocation)

        logger.info(
            f"[{self.name}] reassign by {holder}: amount={amount} premium={result.premium} fee={result.fee} "
            f"paid={result.paid} c_level={quote.c_level}"
        )
        return result

    def cancel(self, holder: Address, maturity: int, strike: Fixed64x64, amount: int) -> Release:
        """Close out calls the holder both wrote and still holds, returning the collateral."""
        return self.batch_cancel(holder, [(maturity, strike, amount)])[0]

    def batch_cancel(self, holder: Address, orders: Sequence[Tuple[int, Fixed64x64, int]]) -> list[Release]:
        """Cancel several `(maturity, strike, amount)` series; all succeed or none do."""
        if not orders:
            raise ValidationError("no series to cancel")
        with self._transaction("cancel"):
            now = self._clock()
            releases = [
                self._ledger.cancel(holder, maturity, strike, amount, now) for maturity, strike, amount in orders
            ]

        for (maturity, strike, _), release in zip(orders, releases):
            logger.info(
                f"[{self.name}] cancel by {holder}: maturity={maturity} strike={strike} amount={release.exposure} "
                f"reserved={release.reserved} c_level={self._ledger.pool.c_level}"
            )
        return releases

    # -- Liquidity -------------------------------------------------------------

    def deposit(self, provider: Address, amount: int) -> None:
        with self._transaction("deposit"):
            self._ledger.deposit(provider, amount, self._clock())
        logger.info(
            f"[{self.name}] deposit by {provider}: amount={amount} c_level={self._ledger.pool.c_level}"
        )

    def withdraw(self, provider: Address, amount: int) -> tuple[int, int]:
        """Withdraw reserved liquidity first, then free. Returns `(from_reserved, from_free)`."""
        with self._transaction("withdraw"):
            parts = self._ledger.withdraw(provider, amount, self._clock())
        logger.info(
            f"[{self.name}] withdraw by {provider}: reserved={parts[0]} free={parts[1]} "
            f"c_level={self._ledger.pool.c_level}"
        )
        return parts

    def set_divestment_timestamp(self, provider: Address, timestamp: int) -> None:
        with self._transaction("set_divestment_timestamp"):
            self._ledger.set_divestment_timestamp(provider, timestamp)
        logger.info(f"[{self.name}] divestment for {provider} set to {timestamp}")

    def set_approval_for_all(self, holder: Address, operator: Address, approved: bool) -> None:
        if holder == operator:
            raise ValidationError("holder cannot approve itself")
        with self._lock:
            operators = self._approvals.setdefault(holder, set())
            if approved:
                operators.add(operator)
            else:
                operators.discard(operator)
                if not operators:
                    del self._approvals[holder]
        logger.info(f"[{self.name}] approval of {operator} for {holder}: {approved}")

    def collect_fees(self) -> int:
        with self._transaction("collect_fees"):
            collected = self._ledger.collect_fees()
        logger.info(f"[{self.name}] collected fees: {collected}")
        return collected

    def update_volatility(self) -> VolatilityState:
        """Record the current spot price and fold it into the volatility estimate."""
        with self._transaction("update_volatility"):
            self._observe_spot(self._clock())
        logger.info(
            f"[{self.name}] volatility updated: annualized_variance={self._volatility.ema_variance_annualized}"
        )
        return self._volatility
