"""
venuesync - resilient market data and order flow for prediction-market venues

Use direct imports in your code:
    from venuesync.core.orderbook_cache import OrderbookCache
    from venuesync.strategies.base_strategy import BaseStrategy
"""

__version__ = "1.0.0"
