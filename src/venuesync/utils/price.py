"""
Price helpers for binary prediction markets (prices live in [0, 1]).
"""

from venuesync.config.constants import DEFAULT_TICK_SIZE


def round_to_tick_size(price: float, tick_size: float = DEFAULT_TICK_SIZE) -> float:
    """Round price to the nearest multiple of tick_size."""
    if tick_size <= 0:
        raise ValueError(f"tick_size must be positive, got {tick_size}")
    # round() again to strip float noise such as 0.30000000000000004
    return round(round(price / tick_size) * tick_size, 10)


def clamp_price(price: float, min_price: float = 0.0, max_price: float = 1.0) -> float:
    return max(min_price, min(max_price, price))


def format_price(price: float, decimals: int = 4) -> str:
    return f"{price:.{decimals}f}"


def format_usd(amount: float) -> str:
    return f"${amount:,.2f}"
