"""
Utility functions shared across the exchange implementations.
"""

import time
import uuid
from typing import Any, Dict, Iterable, Optional, Tuple

from src.exchangehub.logging import get_logger

logger = get_logger(__name__)

DEFAULT_QUOTE_ASSETS = ("USDT", "USDC", "BRL", "BUSD", "EUR", "USD")


def generate_id(prefix: str, length: int = 16) -> str:
    """Generate a unique prefixed identifier."""
    return f"{prefix}-{uuid.uuid4().hex[:length]}"


def now_ms(clock=time.time) -> int:
    """Current time in milliseconds since epoch."""
    return int(clock() * 1000)


def split_symbol(symbol: str, quote_assets: Optional[Iterable[str]] = None) -> Tuple[str, str]:
    """Split a symbol like BTCUSDT into (base, quote).

    Known quote suffixes are stripped first. Anything else falls back to a
    fixed 3-character base, which is wrong for longer base assets
    (AVAXETH -> AVA / XETH). The fallback is kept as-is because persisted
    symbol metadata and settlement both rely on the same split.
    """
    symbol = symbol.upper()
    # Longest suffix first so USDT wins over USD
    quotes = sorted(quote_assets or DEFAULT_QUOTE_ASSETS, key=len, reverse=True)
    for quote in quotes:
        quote = quote.upper()
        if symbol.endswith(quote) and len(symbol) > len(quote):
            return symbol[: -len(quote)], quote

    logger.warning(f"No known quote suffix for {symbol}, using 3-character base split")
    return symbol[:3], symbol[3:]


def price_decimals(price: float) -> int:
    """Decimal places used for a synthesized price."""
    if price >= 1000:
        return 2
    if price >= 1:
        return 4
    if price >= 0.0001:
        return 6
    return 8


def round_price(price: float) -> float:
    """Round a price according to its magnitude."""
    return round(price, price_decimals(price))


def filter_nulls(data: Dict[str, Any]) -> Dict[str, Any]:
    """Drop keys whose value is None."""
    return {key: value for key, value in data.items() if value is not None}


def in_time_range(timestamp: int, start_time: Optional[int] = None, end_time: Optional[int] = None) -> bool:
    """Check a millisecond timestamp against optional bounds."""
    if start_time is not None and timestamp < start_time:
        return False
    if end_time is not None and timestamp > end_time:
        return False
    return True
