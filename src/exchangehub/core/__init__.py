"""
Exchange contract and registry.
"""

from src.exchangehub.core.base import Exchange
from src.exchangehub.core.manager import ExchangeManager

__all__ = ["Exchange", "ExchangeManager"]
