"""
Pool engine, configuration and price feed integration layer
"""

from .config import PoolConfig, load_pool_config
from .price_feed import StaticPriceFeed, read_spot
from .pool_engine import OptionPool, PurchaseQuote, PurchaseResult

__all__ = [
    "PoolConfig",
    "load_pool_config",
    "StaticPriceFeed",
    "read_spot",
    "OptionPool",
    "PurchaseQuote",
    "PurchaseResult",
]
