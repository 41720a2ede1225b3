"""
optionpool: a pooled market maker for European-style call options.

Liquidity providers deposit underlying into a shared pool; buyers purchase
calls priced by Black-Scholes with an EMA volatility estimate, scaled by a
liquidity-sensitive C-Level and a slippage coefficient.
"""

from .core.errors import OptionPoolError
from .core.fixed_point import Fixed64x64
from .integration.config import PoolConfig, load_pool_config
from .integration.pool_engine import OptionPool, PurchaseQuote, PurchaseResult

__version__ = "0.1.0"

__all__ = [
    "Fixed64x64",
    "OptionPool",
    "OptionPoolError",
    "PoolConfig",
    "PurchaseQuote",
    "PurchaseResult",
    "load_pool_config",
]
