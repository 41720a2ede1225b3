"""Exception types for the option pool.

Every failure is a synchronous rejection: the pool engine rolls back all state
touched by the failing operation and re-raises one of these.
"""

from __future__ import annotations


class OptionPoolError(Exception):
    """Base class for all option pool failures."""


class ValidationError(OptionPoolError, ValueError):
    """Raised for out-of-bounds maturity/strike/amount or stale/zero inputs."""


class InsufficientLiquidityError(OptionPoolError):
    """Raised when an amount exceeds free liquidity or a single balance."""


class SlippageExceededError(OptionPoolError):
    """Raised when the quoted cost exceeds the caller's stated maximum."""

    def __init__(self, cost: int, max_cost: int) -> None:
        self.cost = cost
        self.max_cost = max_cost
        super().__init__(f"cost {cost} exceeds max_cost {max_cost}")


class AuthorizationError(OptionPoolError):
    """Raised when the caller is neither the holder nor an approved operator."""


class ExpiryStateError(OptionPoolError):
    """Raised when an operation is invalid for the option's expired/unexpired state."""


class PoolArithmeticError(OptionPoolError, ArithmeticError):
    """Base class for fixed-point and encoding failures."""


class FixedPointOverflowError(PoolArithmeticError):
    """Raised when a 64.64 result leaves the signed 128-bit range."""


class DivisionByZeroError(PoolArithmeticError):
    """Raised on 64.64 division by zero."""


class EncodingRangeError(PoolArithmeticError):
    """Raised when a packed field does not fit its bit width."""


class ExternalDependencyError(OptionPoolError):
    """Raised when the price feed fails or returns non-finite data."""


class InvariantViolationError(OptionPoolError):
    """Raised when a post-state violates one or more ledger invariants."""

    def __init__(self, violations: list[str]) -> None:
        self.violations = violations
        super().__init__(f"invariant violations: {', '.join(violations)}")
