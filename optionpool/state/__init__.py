"""
State records for the option pool
"""

from .positions import PositionBalances
from .underwriter_queue import UnderwriterQueue
from .pool import PoolState
from .price_history import PriceHistory, PriceObservation

__all__ = [
    "PositionBalances",
    "UnderwriterQueue",
    "PoolState",
    "PriceHistory",
    "PriceObservation",
]
