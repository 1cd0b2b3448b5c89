"""
Self-contained simulated exchange backed by a local JSON ledger.
"""

from src.exchangehub.simulator.activity_log import ActivityLog
from src.exchangehub.simulator.balances import BalanceBook
from src.exchangehub.simulator.exchange import FakeExchange
from src.exchangehub.simulator.order_matcher import OrderMatcher
from src.exchangehub.simulator.price_engine import PriceEngine

__all__ = ["FakeExchange", "PriceEngine", "OrderMatcher", "BalanceBook", "ActivityLog"]
