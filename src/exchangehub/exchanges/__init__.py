"""
REST adapters for real exchanges.
"""

from src.exchangehub.exchanges.binance import BinanceExchange, BinanceNormalizer
from src.exchangehub.exchanges.rest import RestExchange

__all__ = ["RestExchange", "BinanceExchange", "BinanceNormalizer"]
