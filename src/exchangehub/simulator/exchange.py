"""
Simulated exchange implementing the uniform contract against a local ledger.

No network calls are made. Prices follow a random walk, resting orders are
resolved whenever market data for their symbol is read, and every operation
is recorded in a human-readable activity log next to the ledger.
"""

import functools
import inspect
import random
import time
import uuid
from typing import Any, Callable, Dict, List, Optional, Tuple

from src.exchangehub.config import FakeExchangeSettings, settings
from src.exchangehub.core.base import Exchange
from src.exchangehub.logging import get_logger
from src.exchangehub.shared.errors import (
    ExchangeError,
    InsufficientBalanceError,
    InvalidOrderError,
    InvalidSymbolError,
    OrderNotFoundError,
    WithdrawError,
)
from src.exchangehub.shared.models import (
    Balance,
    Candle,
    Deposit,
    DepositStatus,
    ExchangeInfo,
    ExchangeStatus,
    OCOOrderResult,
    Order,
    OrderBook,
    OrderSide,
    OrderStatus,
    OrderType,
    Ticker,
    TimeInForce,
    Trade,
    Withdraw,
    WithdrawStatus,
)
from src.exchangehub.shared.utils import generate_id, in_time_range, now_ms, split_symbol
from src.exchangehub.simulator.activity_log import ActivityLog
from src.exchangehub.simulator.balances import PRECISION, BalanceBook
from src.exchangehub.simulator.order_matcher import (
    OPEN_ORDERS_KEY,
    ORDER_HISTORY_KEY,
    TRADE_HISTORY_KEY,
    OrderMatcher,
)
from src.exchangehub.simulator.price_engine import PriceEngine
from src.exchangehub.storage.json_storage import JsonStorage, Storage

logger = get_logger(__name__)

SYMBOLS_KEY = "market/symbols"
DEPOSIT_HISTORY_KEY = "account/deposit_history"
WITHDRAW_HISTORY_KEY = "account/withdraw_history"

LIST_KEYS = (
    OPEN_ORDERS_KEY,
    ORDER_HISTORY_KEY,
    TRADE_HISTORY_KEY,
    DEPOSIT_HISTORY_KEY,
    WITHDRAW_HISTORY_KEY,
)

SUPPORTED_ORDER_TYPES = (
    OrderType.MARKET,
    OrderType.LIMIT,
    OrderType.STOP_LIMIT,
    OrderType.STOP_MARKET,
)


def recorded(func: Callable) -> Callable:
    """Record the call, its parameters and its outcome in the activity log."""
    signature = inspect.signature(func)

    @functools.wraps(func)
    def wrapper(self, *args, **kwargs):
        bound = signature.bind(self, *args, **kwargs)
        params = {name: value for name, value in bound.arguments.items() if name != "self"}
        try:
            result = func(self, *args, **kwargs)
        except ExchangeError as e:
            self.activity.error(func.__name__, str(e), params)
            raise
        self.activity.info(func.__name__, params, result)
        return result

    return wrapper


def _fake_tx_id() -> str:
    return "FAKETX" + uuid.uuid4().hex.upper()


class FakeExchange(Exchange):
    """Exchange simulator backed by a JSON ledger.

    The ledger, RNG and clock can be injected; by default the ledger lives
    under config.data_path and the RNG is seeded from config.seed.
    """

    name = "fake"

    def __init__(
        self,
        config: Optional[FakeExchangeSettings] = None,
        storage: Optional[Storage] = None,
        rng: Optional[random.Random] = None,
        clock: Optional[Callable[[], float]] = None,
    ):
        self.config = config or settings.fake
        self.clock = clock or time.time
        self.rng = rng or random.Random(self.config.seed)
        self.storage = storage or JsonStorage(self.config.data_path)
        self.activity = ActivityLog(self.config.data_path)

        self.balances = BalanceBook(self.storage, self.name)
        self.engine = PriceEngine(self.storage, self.config, self.rng, self.clock, self.name)
        self.matcher = OrderMatcher(self.storage, self.engine, self.config, self.clock, self.name)

        self._bootstrap()
        logger.info(f"{self.config.exchange_name} ready with ledger at {self.config.data_path}")

    # Market data

    @recorded
    def ping(self) -> bool:
        return True

    @recorded
    def get_server_time(self) -> int:
        return now_ms(self.clock)

    @recorded
    def get_exchange_info(self) -> ExchangeInfo:
        return ExchangeInfo(
            exchange_name=self.config.exchange_name,
            status=ExchangeStatus.ONLINE,
            symbols=self._symbols(),
            maker_fee=self.config.maker_fee,
            taker_fee=self.config.taker_fee,
            rate_limits=[{"type": "REQUESTS", "limit": 999999, "interval": "1m"}],
            networks=self.config.deposit_networks,
            timestamp=now_ms(self.clock),
        )

    @recorded
    def get_symbols(self) -> List[str]:
        return self._symbols()

    @recorded
    def get_ticker(self, symbol: str) -> Ticker:
        return self._ticker(self._require_symbol(symbol))

    @recorded
    def get_ticker_24h(self, symbol: str) -> Ticker:
        return self._ticker(self._require_symbol(symbol))

    @recorded
    def get_all_tickers(self) -> Dict[str, Ticker]:
        return {symbol: self._ticker(symbol) for symbol in self._symbols()}

    @recorded
    def get_order_book(self, symbol: str, limit: int = 20) -> OrderBook:
        symbol = self._require_symbol(symbol)
        self.matcher.check_and_execute(symbol)
        return self.engine.get_order_book(symbol, limit)

    @recorded
    def get_recent_trades(self, symbol: str, limit: int = 50) -> List[Trade]:
        return self._recent_trades(self._require_symbol(symbol), limit)

    @recorded
    def get_historical_trades(self, symbol: str, limit: int = 100, from_id: Optional[int] = None) -> List[Trade]:
        return self._recent_trades(self._require_symbol(symbol), limit)

    @recorded
    def get_candles(
        self,
        symbol: str,
        interval: str = "1h",
        limit: int = 100,
        start_time: Optional[int] = None,
        end_time: Optional[int] = None,
    ) -> List[Candle]:
        symbol = self._require_symbol(symbol)
        return self.engine.get_candles(symbol, interval, limit, start_time, end_time)

    @recorded
    def get_avg_price(self, symbol: str) -> float:
        return self.engine.get_price(self._require_symbol(symbol))

    # Account

    @recorded
    def get_account_info(self) -> Dict[str, Any]:
        return {
            "exchange": self.config.exchange_name,
            "account_type": "SPOT",
            "can_trade": True,
            "can_withdraw": True,
            "can_deposit": True,
            "maker_fee": self.config.maker_fee,
            "taker_fee": self.config.taker_fee,
            "created_at": now_ms(self.clock),
            "is_fake": True,
        }

    @recorded
    def get_balances(self) -> Dict[str, Balance]:
        return {asset: balance for asset, balance in self.balances.all().items() if balance.total > 0}

    @recorded
    def get_balance(self, asset: str) -> Balance:
        return self.balances.get(asset)

    @recorded
    def get_commission_rates(self) -> Dict[str, float]:
        return {"maker": self.config.maker_fee, "taker": self.config.taker_fee}

    @recorded
    def get_deposit_address(self, asset: str, network: Optional[str] = None) -> Deposit:
        asset = asset.upper()
        network, address = self._resolve_network(asset, network)
        return Deposit(asset=asset, address=address, network=network, exchange=self.name)

    @recorded
    def get_deposit_history(
        self, asset: Optional[str] = None, start_time: Optional[int] = None, end_time: Optional[int] = None
    ) -> List[Deposit]:
        records = self.storage.filter(DEPOSIT_HISTORY_KEY, self._history_filter(asset, start_time, end_time))
        return [Deposit(**record) for record in records]

    @recorded
    def get_withdraw_history(
        self, asset: Optional[str] = None, start_time: Optional[int] = None, end_time: Optional[int] = None
    ) -> List[Withdraw]:
        records = self.storage.filter(WITHDRAW_HISTORY_KEY, self._history_filter(asset, start_time, end_time))
        return [Withdraw(**record) for record in records]

    @recorded
    def withdraw(
        self,
        asset: str,
        address: str,
        amount: float,
        network: Optional[str] = None,
        memo: Optional[str] = None,
    ) -> Withdraw:
        asset = asset.upper()
        fee = self.config.withdraw_fees.get(asset, 0.0)
        net_amount = amount - fee

        free = self.balances.get(asset).free
        if free < amount:
            raise InsufficientBalanceError(asset, amount, free, self.name)
        if net_amount <= 0:
            raise WithdrawError(f"Amount {amount} does not cover the {fee} {asset} fee", self.name)

        self.balances.apply({asset: {"free": -amount}})

        withdraw_id = generate_id("WD")
        record = {
            "id": withdraw_id,
            "withdraw_id": withdraw_id,
            "asset": asset,
            "address": address,
            "memo": memo,
            "network": network or next(iter(self.config.deposit_networks.get(asset, {})), "MAIN"),
            "amount": amount,
            "fee": fee,
            "net_amount": round(net_amount, 8),
            "tx_id": _fake_tx_id(),
            "status": WithdrawStatus.CONFIRMED.value,
            "timestamp": now_ms(self.clock),
            "exchange": self.name,
        }
        self.storage.append(WITHDRAW_HISTORY_KEY, record)

        logger.info(f"Withdrew {amount} {asset} to {address} (fee {fee}, net {net_amount})")
        return Withdraw(**record)

    @recorded
    def simulate_deposit(self, asset: str, amount: float, network: Optional[str] = None) -> Deposit:
        """Credit the free balance as if an on-chain deposit had arrived."""
        asset = asset.upper()
        if amount <= 0:
            raise InvalidOrderError(f"Deposit amount must be positive, got {amount}", self.name)

        networks = self.config.deposit_networks.get(asset, {})
        network = network or next(iter(networks), "MAIN")
        self.balances.apply({asset: {"free": amount}})

        deposit_id = generate_id("DEP")
        record = {
            "id": deposit_id,
            "deposit_id": deposit_id,
            "asset": asset,
            "address": networks.get(network, ""),
            "network": network,
            "amount": amount,
            "tx_id": _fake_tx_id(),
            "status": DepositStatus.CREDITED.value,
            "timestamp": now_ms(self.clock),
            "exchange": self.name,
        }
        self.storage.append(DEPOSIT_HISTORY_KEY, record)

        logger.info(f"Credited deposit of {amount} {asset} via {network}")
        return Deposit(**record)

    # Trading

    @recorded
    def create_order(
        self,
        symbol: str,
        side: str,
        type: str,
        quantity: float,
        price: Optional[float] = None,
        stop_price: Optional[float] = None,
        time_in_force: Optional[str] = "GTC",
        client_order_id: Optional[str] = None,
    ) -> Order:
        symbol = self._require_symbol(symbol)
        order_side, order_type, tif = self._validate_order(type, side, quantity, price, stop_price, time_in_force)
        return self._place_order(symbol, order_side, order_type, quantity, price, stop_price, tif, client_order_id)

    @recorded
    def cancel_order(self, symbol: str, order_id: str) -> Order:
        symbol = symbol.upper()
        record = self._find_open(symbol, order_id)
        return self._cancel(record)

    @recorded
    def cancel_all_orders(self, symbol: str) -> List[Order]:
        symbol = symbol.upper()
        records = self.storage.filter(OPEN_ORDERS_KEY, lambda o: o["symbol"] == symbol)
        return [self._cancel(record) for record in records]

    @recorded
    def get_order(self, symbol: str, order_id: str) -> Order:
        record = self.storage.find_one(OPEN_ORDERS_KEY, "id", order_id) or self.storage.find_one(
            ORDER_HISTORY_KEY, "id", order_id
        )
        if record is None:
            raise OrderNotFoundError(order_id, self.name)
        return Order(**record)

    @recorded
    def get_open_orders(self, symbol: Optional[str] = None) -> List[Order]:
        records = self.storage.read(OPEN_ORDERS_KEY) or []
        if symbol:
            records = [o for o in records if o["symbol"] == symbol.upper()]
        return [Order(**record) for record in records]

    @recorded
    def get_order_history(
        self, symbol: str, limit: int = 100, start_time: Optional[int] = None, end_time: Optional[int] = None
    ) -> List[Order]:
        symbol = symbol.upper()
        records = self.storage.filter(
            ORDER_HISTORY_KEY,
            lambda o: o["symbol"] == symbol and in_time_range(o["created_at"], start_time, end_time),
        )
        return [Order(**record) for record in reversed(records)][:limit]

    @recorded
    def get_my_trades(
        self, symbol: str, limit: int = 100, start_time: Optional[int] = None, end_time: Optional[int] = None
    ) -> List[Trade]:
        symbol = symbol.upper()
        records = self.storage.filter(
            TRADE_HISTORY_KEY,
            lambda t: t["symbol"] == symbol and in_time_range(t["timestamp"], start_time, end_time),
        )
        return [Trade(**record, exchange=self.name) for record in reversed(records)][:limit]

    @recorded
    def edit_order(
        self, symbol: str, order_id: str, price: Optional[float] = None, quantity: Optional[float] = None
    ) -> Order:
        """Cancel the order and place a replacement with a new order id.

        The replacement is validated against free balance plus the old lock
        before anything is cancelled.
        """
        symbol = symbol.upper()
        record = self._find_open(symbol, order_id)

        new_price = price if price is not None else (record["price"] or None)
        new_quantity = quantity if quantity is not None else record["quantity"]
        side, order_type, tif = self._validate_order(
            record["type"], record["side"], new_quantity, new_price, record["stop_price"] or None, record["time_in_force"]
        )

        asset, required = self._requirement(symbol, side, order_type, new_quantity, new_price, record["stop_price"], None)
        available = self.balances.get(asset).free
        if asset == record.get("locked_asset"):
            available = round(available + record.get("locked_amount", 0.0), PRECISION)
        if available < required:
            raise InsufficientBalanceError(asset, required, available, self.name)

        self._cancel(record)
        replacement = self._place_order(
            symbol,
            side,
            order_type,
            new_quantity,
            new_price,
            record["stop_price"] or None,
            tif,
            record["client_order_id"],
            oco_group_id=record.get("oco_group_id"),
        )
        logger.info(f"Order {order_id} replaced by {replacement.order_id}")
        return replacement

    @recorded
    def create_oco_order(
        self,
        symbol: str,
        side: str,
        quantity: float,
        price: float,
        stop_price: float,
        stop_limit_price: float,
    ) -> OCOOrderResult:
        """Place a LIMIT leg and a STOP_LIMIT leg sharing a group id.

        The legs are independent: filling or cancelling one leaves the other
        untouched.
        """
        symbol = self._require_symbol(symbol)
        order_side, _, _ = self._validate_order("LIMIT", side, quantity, price, None, "GTC")
        self._validate_order("STOP_LIMIT", side, quantity, stop_limit_price, stop_price, "GTC")

        limit_asset, limit_required = self._requirement(symbol, order_side, OrderType.LIMIT, quantity, price, None, None)
        stop_asset, stop_required = self._requirement(
            symbol, order_side, OrderType.STOP_LIMIT, quantity, stop_limit_price, stop_price, None
        )
        combined = round(limit_required + stop_required, PRECISION)
        available = self.balances.get(limit_asset).free
        if available < combined:
            raise InsufficientBalanceError(limit_asset, combined, available, self.name)

        group_id = generate_id("OCO", 12)
        limit_order = self._place_order(
            symbol,
            order_side,
            OrderType.LIMIT,
            quantity,
            price,
            None,
            TimeInForce.GTC,
            f"{group_id}-LIMIT",
            oco_group_id=group_id,
        )
        stop_order = self._place_order(
            symbol,
            order_side,
            OrderType.STOP_LIMIT,
            quantity,
            stop_limit_price,
            stop_price,
            TimeInForce.GTC,
            f"{group_id}-STOP",
            oco_group_id=group_id,
        )

        logger.info(f"OCO {group_id} placed: {limit_order.order_id} / {stop_order.order_id}")
        return OCOOrderResult(
            group_id=group_id,
            limit_order=limit_order,
            stop_order=stop_order,
            raw={"oco_group_id": group_id},
        )

    # Staking

    @recorded
    def stake_asset(self, asset: str, amount: float) -> Dict[str, Any]:
        asset = asset.upper()
        if amount <= 0:
            raise InvalidOrderError(f"Stake amount must be positive, got {amount}", self.name)
        self.balances.apply({asset: {"free": -amount, "staked": amount}})
        return {"asset": asset, "staked": amount, "apy": self._apy(), "status": "STAKED"}

    @recorded
    def unstake_asset(self, asset: str, amount: float) -> Dict[str, Any]:
        asset = asset.upper()
        if amount <= 0:
            raise InvalidOrderError(f"Unstake amount must be positive, got {amount}", self.name)
        self.balances.apply({asset: {"staked": -amount, "free": amount}})
        return {"asset": asset, "unstaked": amount, "status": "UNSTAKED"}

    @recorded
    def get_staking_positions(self) -> List[Dict[str, Any]]:
        return [
            {"asset": asset, "amount": balance.staked, "apy": self._apy(), "status": "ACTIVE"}
            for asset, balance in self.balances.all().items()
            if balance.staked > 0
        ]

    # Lifecycle

    @recorded
    def reset(self) -> bool:
        """Wipe the ledger and restore the initial balances."""
        self.storage.clear()
        self._bootstrap()
        logger.info("Ledger reset to initial state")
        return True

    def close(self) -> None:
        self.activity.close()
        self.storage.close()

    # Internals

    def _bootstrap(self) -> None:
        if not self.storage.exists(BalanceBook.KEY):
            self.balances.reset(self.config.initial_balances)

        for key in LIST_KEYS:
            if not self.storage.exists(key):
                self.storage.write(key, [])

        if not self.storage.exists(SYMBOLS_KEY):
            symbols = {}
            for symbol in self.config.base_prices:
                base, quote = split_symbol(symbol, self.config.supported_fiats)
                symbols[symbol] = {"symbol": symbol, "base": base, "quote": quote, "status": "TRADING"}
            self.storage.write(SYMBOLS_KEY, symbols)

    def _symbols(self) -> List[str]:
        return list((self.storage.read(SYMBOLS_KEY) or {}).keys())

    def _require_symbol(self, symbol: str) -> str:
        normalized = symbol.upper()
        if normalized not in (self.storage.read(SYMBOLS_KEY) or {}):
            raise InvalidSymbolError(symbol, self.name)
        return normalized

    def _ticker(self, symbol: str) -> Ticker:
        self.matcher.check_and_execute(symbol)
        return self.engine.get_ticker(symbol)

    def _recent_trades(self, symbol: str, limit: int) -> List[Trade]:
        records = self.storage.filter(TRADE_HISTORY_KEY, lambda t: t["symbol"] == symbol)
        return [Trade(**record, exchange=self.name) for record in reversed(records)][:limit]

    def _resolve_network(self, asset: str, network: Optional[str]) -> Tuple[str, str]:
        networks = self.config.deposit_networks.get(asset, {})
        if not networks:
            raise InvalidOrderError(f"Deposits are not supported for {asset}", self.name)
        if network is None:
            network = next(iter(networks))
        elif network not in networks:
            raise InvalidOrderError(f"Network {network} is not supported for {asset}", self.name)
        return network, networks[network]

    def _history_filter(
        self, asset: Optional[str], start_time: Optional[int], end_time: Optional[int]
    ) -> Callable[[Dict[str, Any]], bool]:
        def predicate(record: Dict[str, Any]) -> bool:
            if asset and record["asset"] != asset.upper():
                return False
            return in_time_range(record["timestamp"], start_time, end_time)

        return predicate

    def _validate_order(
        self,
        type: str,
        side: str,
        quantity: float,
        price: Optional[float],
        stop_price: Optional[float],
        time_in_force: Optional[str],
    ) -> Tuple[OrderSide, OrderType, TimeInForce]:
        try:
            order_side = OrderSide(str(side).upper())
            order_type = OrderType(str(type).upper())
            tif = TimeInForce(str(time_in_force or "GTC").upper())
        except ValueError as e:
            raise InvalidOrderError(str(e), self.name) from e

        if order_type not in SUPPORTED_ORDER_TYPES:
            raise InvalidOrderError(f"Unsupported order type: {order_type.value}", self.name)
        if quantity is None or quantity <= 0:
            raise InvalidOrderError(f"Quantity must be positive, got {quantity}", self.name)
        if order_type.requires_price() and (price is None or price <= 0):
            raise InvalidOrderError(f"{order_type.value} orders require a positive price", self.name)
        if order_type.requires_stop_price() and (stop_price is None or stop_price <= 0):
            raise InvalidOrderError(f"{order_type.value} orders require a positive stop price", self.name)

        return order_side, order_type, tif

    def _requirement(
        self,
        symbol: str,
        side: OrderSide,
        order_type: OrderType,
        quantity: float,
        price: Optional[float],
        stop_price: Optional[float],
        current_price: Optional[float],
    ) -> Tuple[str, float]:
        """Asset and amount, rounded to ledger precision, that must be free (and get locked) for an order."""
        base, quote = split_symbol(symbol, self.config.supported_fiats)
        if side is OrderSide.SELL:
            return base, round(quantity, PRECISION)

        slippage = 1 + self.config.market_buy_slippage
        if order_type is OrderType.MARKET:
            amount = quantity * current_price * slippage
        elif order_type is OrderType.STOP_MARKET:
            reference = price or stop_price or current_price
            amount = quantity * reference * slippage
        else:
            amount = quantity * price
        return quote, round(amount, PRECISION)

    def _place_order(
        self,
        symbol: str,
        side: OrderSide,
        order_type: OrderType,
        quantity: float,
        price: Optional[float],
        stop_price: Optional[float],
        time_in_force: TimeInForce,
        client_order_id: Optional[str],
        oco_group_id: Optional[str] = None,
    ) -> Order:
        current_price = self.engine.get_price(symbol)
        asset, required = self._requirement(symbol, side, order_type, quantity, price, stop_price, current_price)

        available = self.balances.get(asset).free
        if available < required:
            raise InsufficientBalanceError(asset, required, available, self.name)
        self.balances.lock(asset, required)

        order_id = generate_id("ORD")
        now = now_ms(self.clock)
        _, quote = split_symbol(symbol, self.config.supported_fiats)
        record = {
            "id": order_id,
            "order_id": order_id,
            "client_order_id": client_order_id or generate_id("CLI", 8),
            "symbol": symbol,
            "side": side.value,
            "type": order_type.value,
            "status": OrderStatus.OPEN.value,
            "quantity": quantity,
            "executed_qty": 0.0,
            "price": price or 0.0,
            "avg_price": 0.0,
            "stop_price": stop_price or 0.0,
            "time_in_force": time_in_force.value,
            "fee": 0.0,
            "fee_asset": quote,
            "oco_group_id": oco_group_id,
            "stop_triggered": False,
            "created_at": now,
            "updated_at": now,
            "exchange": self.name,
            "locked_asset": asset,
            "locked_amount": required,
        }

        if order_type is OrderType.MARKET:
            return self.matcher.execute(record, current_price)

        self.storage.append(OPEN_ORDERS_KEY, record)
        logger.info(f"Placed {order_type.value} {side.value} {quantity} {symbol} as {order_id}")
        return Order(**record)

    def _find_open(self, symbol: str, order_id: str) -> Dict[str, Any]:
        for record in self.storage.read(OPEN_ORDERS_KEY) or []:
            if record["id"] == order_id and record["symbol"] == symbol:
                return record
        raise OrderNotFoundError(order_id, self.name)

    def _cancel(self, record: Dict[str, Any]) -> Order:
        self.balances.unlock(record["locked_asset"], record["locked_amount"])
        record = {
            **record,
            "status": OrderStatus.CANCELLED.value,
            "locked_amount": 0.0,
            "updated_at": now_ms(self.clock),
        }
        self.storage.remove_by_id(OPEN_ORDERS_KEY, record["id"])
        self.storage.append(ORDER_HISTORY_KEY, record)
        logger.info(f"Cancelled order {record['order_id']} on {record['symbol']}")
        return Order(**record)

    def _apy(self) -> str:
        return f"{self.config.staking_apy:.2f}%"
