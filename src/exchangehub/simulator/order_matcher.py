"""
Resolution of resting orders against the synthesized price, and fill settlement.
"""

import time
from typing import Any, Callable, Dict, List

from src.exchangehub.config import FakeExchangeSettings
from src.exchangehub.logging import get_logger
from src.exchangehub.shared.errors import InsufficientBalanceError
from src.exchangehub.shared.models import Order, OrderSide, OrderStatus, OrderType
from src.exchangehub.shared.utils import generate_id, now_ms, split_symbol
from src.exchangehub.simulator.balances import BalanceBook
from src.exchangehub.simulator.price_engine import PriceEngine
from src.exchangehub.storage.json_storage import Storage

logger = get_logger(__name__)

OPEN_ORDERS_KEY = "trading/open_orders"
ORDER_HISTORY_KEY = "trading/order_history"
TRADE_HISTORY_KEY = "trading/trade_history"


def limit_crossed(side: str, limit_price: float, price: float) -> bool:
    if side == OrderSide.BUY.value:
        return price <= limit_price
    return price >= limit_price


def stop_reached(side: str, stop_price: float, price: float) -> bool:
    if side == OrderSide.BUY.value:
        return price >= stop_price
    return price <= stop_price


class OrderMatcher:
    """Fills resting orders in full when the observed price satisfies them.

    There are no partial fills: an order either fills its whole quantity at
    one observation or stays OPEN.
    """

    def __init__(
        self,
        storage: Storage,
        engine: PriceEngine,
        config: FakeExchangeSettings,
        clock: Callable[[], float] = time.time,
        exchange_name: str = "fake",
    ):
        self.storage = storage
        self.engine = engine
        self.config = config
        self.clock = clock
        self.exchange_name = exchange_name
        self.balances = BalanceBook(storage, exchange_name)

    def check_and_execute(self, symbol: str) -> List[Order]:
        """Observe one price and fill every open order it satisfies."""
        if not self.config.auto_execute_limit_orders:
            return []

        price = self.engine.get_price(symbol)
        open_orders = self.storage.read(OPEN_ORDERS_KEY) or []
        filled = []

        for record in open_orders:
            if record["symbol"] != symbol or record["status"] != OrderStatus.OPEN.value:
                continue

            order_type = record["type"]
            if order_type == OrderType.MARKET.value:
                continue

            if order_type == OrderType.LIMIT.value:
                if limit_crossed(record["side"], record["price"], price):
                    filled.append(self.execute(record, record["price"]))
                continue

            if order_type in (OrderType.STOP_LIMIT.value, OrderType.STOP_MARKET.value):
                if not record.get("stop_triggered"):
                    if stop_reached(record["side"], record["stop_price"], price):
                        # Triggered orders are evaluated from the next observation on
                        self.storage.update(
                            OPEN_ORDERS_KEY,
                            record["id"],
                            {"stop_triggered": True, "updated_at": now_ms(self.clock)},
                        )
                        logger.info(f"Stop triggered for order {record['order_id']} at {price}")
                    continue

                if order_type == OrderType.STOP_MARKET.value:
                    filled.append(self.execute(record, price))
                elif limit_crossed(record["side"], record["price"], price):
                    filled.append(self.execute(record, record["price"]))

        return [order for order in filled if order.is_filled()]

    def execute(self, record: Dict[str, Any], exec_price: float) -> Order:
        """Fill an order completely at exec_price and settle balances.

        Balances are written first, then the trade, then the order move. A
        settlement that would overdraw any bucket rejects the order instead
        and releases its lock.
        """
        base, quote = split_symbol(record["symbol"], self.config.supported_fiats)
        quantity = record["quantity"]
        quote_qty = quantity * exec_price
        fee = quote_qty * self.config.maker_fee
        fee_asset = quote
        locked_asset = record.get("locked_asset") or (quote if record["side"] == OrderSide.BUY.value else base)
        locked_amount = record.get("locked_amount", 0.0)

        if record["side"] == OrderSide.BUY.value:
            quote_free = self.balances.get(quote).free
            if quote_free + locked_amount - quote_qty - fee < 0:
                # Quote left over cannot cover the fee, take it from the bought amount
                fee = fee / exec_price
                fee_asset = base
                changes = {
                    locked_asset: {"locked": -locked_amount, "free": locked_amount - quote_qty},
                    base: {"free": quantity - fee},
                }
            else:
                changes = {
                    locked_asset: {"locked": -locked_amount, "free": locked_amount - quote_qty - fee},
                    base: {"free": quantity},
                }
        else:
            changes = {
                locked_asset: {"locked": -locked_amount, "free": locked_amount - quantity},
                quote: {"free": quote_qty - fee},
            }

        now = now_ms(self.clock)
        try:
            self.balances.apply(changes)
        except InsufficientBalanceError as e:
            logger.warning(f"Rejecting order {record['order_id']} at settlement: {e}")
            self.balances.unlock(locked_asset, locked_amount)
            record = {**record, "status": OrderStatus.REJECTED.value, "locked_amount": 0.0, "updated_at": now}
            self._move_to_history(record)
            return Order(**record)

        trade = {
            "id": generate_id("TRADE"),
            "trade_id": None,
            "order_id": record["order_id"],
            "symbol": record["symbol"],
            "side": record["side"],
            "price": exec_price,
            "quantity": quantity,
            "quote_qty": round(quote_qty, 8),
            "fee": round(fee, 8),
            "fee_asset": fee_asset,
            "is_maker": record["type"] != OrderType.MARKET.value,
            "timestamp": now,
        }
        trade["trade_id"] = trade["id"]
        self.storage.append(TRADE_HISTORY_KEY, trade)

        record = {
            **record,
            "status": OrderStatus.FILLED.value,
            "executed_qty": quantity,
            "avg_price": exec_price,
            "fee": round(fee, 8),
            "fee_asset": fee_asset,
            "locked_amount": 0.0,
            "updated_at": now,
        }
        self._move_to_history(record)

        logger.info(
            f"Filled {record['side']} {quantity} {record['symbol']} @ {exec_price} "
            f"(order {record['order_id']}, fee {fee:.8f} {fee_asset})"
        )
        return Order(**record)

    def _move_to_history(self, record: Dict[str, Any]) -> None:
        self.storage.remove_by_id(OPEN_ORDERS_KEY, record["id"])
        self.storage.append(ORDER_HISTORY_KEY, record)
