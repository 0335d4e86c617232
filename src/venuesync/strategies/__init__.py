"""Strategies package initialization"""

from venuesync.strategies.base_strategy import BaseStrategy, StrategyState, TickContext
from venuesync.strategies.spread_strategy import SpreadStrategy

__all__ = [
    'BaseStrategy',
    'SpreadStrategy',
    'StrategyState',
    'TickContext',
]
