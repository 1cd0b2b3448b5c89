"""
Binance spot adapter.
"""

import time
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from src.exchangehub.config import HttpSettings
from src.exchangehub.exchanges.rest import RestExchange
from src.exchangehub.http.client import HttpClient
from src.exchangehub.logging import get_logger
from src.exchangehub.shared.errors import InvalidOrderError
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
    OrderStatus,
    Ticker,
    Trade,
    Withdraw,
    WithdrawStatus,
)
from src.exchangehub.shared.utils import now_ms
from src.exchangehub.signing.models import ApiCredentials
from src.exchangehub.signing.signers import QueryHmacSigner

logger = get_logger(__name__)

BASE_URL = "https://api.binance.com"
TESTNET_URL = "https://testnet.binance.vision"

# Market data
PING = "/api/v3/ping"
TIME = "/api/v3/time"
EXCHANGE_INFO = "/api/v3/exchangeInfo"
TICKER_24H = "/api/v3/ticker/24hr"
DEPTH = "/api/v3/depth"
TRADES = "/api/v3/trades"
HISTORICAL_TRADES = "/api/v3/historicalTrades"
KLINES = "/api/v3/klines"
AVG_PRICE = "/api/v3/avgPrice"

# Account and orders
ACCOUNT = "/api/v3/account"
MY_TRADES = "/api/v3/myTrades"
ORDER = "/api/v3/order"
ORDER_OCO = "/api/v3/order/oco"
OPEN_ORDERS = "/api/v3/openOrders"
ALL_ORDERS = "/api/v3/allOrders"

# Wallet
DEPOSIT_ADDRESS = "/sapi/v1/capital/deposit/address"
DEPOSIT_HISTORY = "/sapi/v1/capital/deposit/hisrec"
WITHDRAW = "/sapi/v1/capital/withdraw/apply"
WITHDRAW_HISTORY = "/sapi/v1/capital/withdraw/history"
TRADE_FEE = "/sapi/v1/asset/tradeFee"

# Staking
STAKING_PRODUCT_LIST = "/sapi/v1/staking/productList"
STAKING_PURCHASE = "/sapi/v1/staking/purchase"
STAKING_REDEEM = "/sapi/v1/staking/redeem"
STAKING_POSITION = "/sapi/v1/staking/position"

ORDER_STATUS_MAP = {
    "NEW": OrderStatus.OPEN,
    "PENDING_CANCEL": OrderStatus.OPEN,
    "PARTIALLY_FILLED": OrderStatus.PARTIALLY_FILLED,
    "FILLED": OrderStatus.FILLED,
    "CANCELED": OrderStatus.CANCELLED,
    "REJECTED": OrderStatus.REJECTED,
    "EXPIRED": OrderStatus.EXPIRED,
    "EXPIRED_IN_MATCH": OrderStatus.EXPIRED,
}

# Contract order type -> Binance order type
ORDER_TYPE_OUT = {
    "STOP_LIMIT": "STOP_LOSS_LIMIT",
    "STOP_MARKET": "STOP_LOSS",
    "STOP": "STOP_LOSS",
}
ORDER_TYPE_IN = {
    "STOP_LOSS_LIMIT": "STOP_LIMIT",
    "STOP_LOSS": "STOP_MARKET",
    "LIMIT_MAKER": "LIMIT",
}
PRICED_TYPES = ("LIMIT", "STOP_LOSS_LIMIT", "TAKE_PROFIT_LIMIT")

DEPOSIT_STATUS_MAP = {0: DepositStatus.PENDING, 1: DepositStatus.CONFIRMED, 6: DepositStatus.CREDITED}
WITHDRAW_STATUS_MAP = {
    0: WithdrawStatus.PENDING,
    1: WithdrawStatus.CANCELLED,
    2: WithdrawStatus.PENDING,
    3: WithdrawStatus.PENDING,
    4: WithdrawStatus.PROCESSING,
    5: WithdrawStatus.FAILED,
    6: WithdrawStatus.CONFIRMED,
}


def _ms(value: Any) -> int:
    return int(value) if value else now_ms()


def _parse_apply_time(value: Optional[str]) -> int:
    if not value:
        return now_ms()
    moment = datetime.strptime(value, "%Y-%m-%d %H:%M:%S").replace(tzinfo=timezone.utc)
    return int(moment.timestamp() * 1000)


class BinanceNormalizer:
    """Maps Binance payloads to the shared models."""

    exchange = "binance"

    def ticker(self, d: Dict[str, Any]) -> Ticker:
        return Ticker(
            symbol=d["symbol"],
            price=float(d.get("lastPrice", d.get("price", 0))),
            bid=float(d.get("bidPrice", 0)),
            ask=float(d.get("askPrice", 0)),
            open_24h=float(d.get("openPrice", 0)),
            high_24h=float(d.get("highPrice", 0)),
            low_24h=float(d.get("lowPrice", 0)),
            volume_24h=float(d.get("volume", 0)),
            quote_volume_24h=float(d.get("quoteVolume", 0)),
            change_24h=float(d.get("priceChange", 0)),
            change_pct_24h=float(d.get("priceChangePercent", 0)),
            timestamp=_ms(d.get("closeTime")),
            exchange=self.exchange,
        )

    def order_book(self, d: Dict[str, Any], symbol: str) -> OrderBook:
        return OrderBook(
            symbol=symbol,
            bids=[[float(price), float(qty)] for price, qty in d.get("bids", [])],
            asks=[[float(price), float(qty)] for price, qty in d.get("asks", [])],
            timestamp=now_ms(),
            exchange=self.exchange,
        )

    def order(self, d: Dict[str, Any]) -> Order:
        executed = float(d.get("executedQty", 0))
        cum_quote = float(d.get("cummulativeQuoteQty", 0))
        avg_price = cum_quote / executed if executed > 0 and cum_quote > 0 else float(d.get("avgPrice", 0))
        fills = d.get("fills") or []

        return Order(
            order_id=str(d.get("orderId", "")),
            client_order_id=d.get("clientOrderId", ""),
            symbol=d["symbol"],
            side=d["side"],
            type=ORDER_TYPE_IN.get(d["type"], d["type"]),
            status=ORDER_STATUS_MAP.get(d["status"], OrderStatus.OPEN),
            quantity=float(d.get("origQty", 0)),
            executed_qty=executed,
            price=float(d.get("price", 0)),
            avg_price=avg_price,
            stop_price=float(d.get("stopPrice", 0)),
            time_in_force=d.get("timeInForce") or "GTC",
            fee=sum(float(f.get("commission", 0)) for f in fills),
            fee_asset=fills[0].get("commissionAsset", "") if fills else "",
            oco_group_id=str(d["orderListId"]) if d.get("orderListId", -1) != -1 else None,
            created_at=_ms(d.get("time") or d.get("transactTime")),
            updated_at=_ms(d.get("updateTime") or d.get("transactTime")),
            exchange=self.exchange,
        )

    def trade(self, d: Dict[str, Any], symbol: str = "") -> Trade:
        if "isBuyer" in d:
            side = "BUY" if d["isBuyer"] else "SELL"
        else:
            # Public trades report the taker side through isBuyerMaker
            side = "SELL" if d.get("isBuyerMaker") else "BUY"

        return Trade(
            trade_id=str(d["id"]),
            order_id=str(d.get("orderId", "")),
            symbol=d.get("symbol", symbol),
            side=side,
            price=float(d["price"]),
            quantity=float(d.get("qty", d.get("quantity", 0))),
            quote_qty=float(d.get("quoteQty", 0)),
            fee=float(d.get("commission", 0)),
            fee_asset=d.get("commissionAsset", ""),
            is_maker=bool(d.get("isMaker", False)),
            timestamp=_ms(d.get("time")),
            exchange=self.exchange,
        )

    def balance(self, d: Dict[str, Any]) -> Balance:
        return Balance(
            asset=d["asset"],
            free=float(d.get("free", 0)),
            locked=float(d.get("locked", 0)),
            exchange=self.exchange,
        )

    def candle(self, symbol: str, interval: str, d: List[Any]) -> Candle:
        return Candle(
            symbol=symbol,
            interval=interval,
            open_time=int(d[0]),
            open=float(d[1]),
            high=float(d[2]),
            low=float(d[3]),
            close=float(d[4]),
            volume=float(d[5]),
            close_time=int(d[6]),
            quote_volume=float(d[7]),
            trades=int(d[8]),
            exchange=self.exchange,
        )

    def deposit_address(self, d: Dict[str, Any]) -> Deposit:
        return Deposit(
            asset=d["coin"],
            address=d["address"],
            memo=d.get("tag") or None,
            network=d.get("network", ""),
            exchange=self.exchange,
        )

    def deposit(self, d: Dict[str, Any]) -> Deposit:
        return Deposit(
            asset=d["coin"],
            address=d.get("address", ""),
            memo=d.get("addressTag") or None,
            network=d.get("network", ""),
            deposit_id=str(d["id"]) if d.get("id") is not None else None,
            amount=float(d.get("amount", 0)),
            tx_id=d.get("txId"),
            status=DEPOSIT_STATUS_MAP.get(d.get("status", 1), DepositStatus.PENDING),
            timestamp=int(d["insertTime"]) if d.get("insertTime") else None,
            exchange=self.exchange,
        )

    def withdraw(self, d: Dict[str, Any]) -> Withdraw:
        amount = float(d.get("amount", 0))
        fee = float(d.get("transactionFee", 0))
        return Withdraw(
            withdraw_id=str(d["id"]),
            asset=d["coin"],
            address=d.get("address", ""),
            memo=d.get("addressTag") or None,
            network=d.get("network", ""),
            amount=amount,
            fee=fee,
            net_amount=amount - fee,
            tx_id=d.get("txId"),
            status=WITHDRAW_STATUS_MAP.get(d.get("status", 0), WithdrawStatus.PENDING),
            timestamp=_parse_apply_time(d.get("applyTime")),
            exchange=self.exchange,
        )

    def exchange_info(self, d: Dict[str, Any]) -> ExchangeInfo:
        return ExchangeInfo(
            exchange_name="Binance",
            status=ExchangeStatus.ONLINE,
            symbols=[s["symbol"] for s in d.get("symbols", []) if s.get("status") == "TRADING"],
            maker_fee=0.001,
            taker_fee=0.001,
            rate_limits=d.get("rateLimits", []),
            timestamp=_ms(d.get("serverTime")),
        )


class BinanceExchange(RestExchange):
    """Binance spot REST adapter.

    Public endpoints work without credentials; account, trading and staking
    endpoints need an API key and secret.
    """

    name = "binance"
    base_url = BASE_URL
    testnet_url = TESTNET_URL

    def __init__(
        self,
        api_key: str = "",
        api_secret: str = "",
        testnet: bool = False,
        http: Optional[HttpClient] = None,
        http_config: Optional[HttpSettings] = None,
        clock: Callable[[], float] = time.time,
    ):
        signer = None
        if api_key and api_secret:
            signer = QueryHmacSigner(ApiCredentials(api_key=api_key, api_secret=api_secret), "X-MBX-APIKEY", self.name, clock)
        super().__init__(signer, testnet, http, http_config)
        self.normalizer = BinanceNormalizer()

    # Market data

    def ping(self) -> bool:
        return self._get(PING) is not None

    def get_server_time(self) -> int:
        return int(self._get(TIME).get("serverTime", now_ms()))

    def get_exchange_info(self) -> ExchangeInfo:
        return self.normalizer.exchange_info(self._get(EXCHANGE_INFO))

    def get_symbols(self) -> List[str]:
        return self.get_exchange_info().symbols

    def get_ticker(self, symbol: str) -> Ticker:
        return self.normalizer.ticker(self._get(TICKER_24H, {"symbol": symbol.upper()}))

    def get_all_tickers(self) -> Dict[str, Ticker]:
        return {t["symbol"]: self.normalizer.ticker(t) for t in self._get(TICKER_24H)}

    def get_order_book(self, symbol: str, limit: int = 20) -> OrderBook:
        symbol = symbol.upper()
        return self.normalizer.order_book(self._get(DEPTH, {"symbol": symbol, "limit": limit}), symbol)

    def get_recent_trades(self, symbol: str, limit: int = 50) -> List[Trade]:
        symbol = symbol.upper()
        return [self.normalizer.trade(t, symbol) for t in self._get(TRADES, {"symbol": symbol, "limit": limit})]

    def get_historical_trades(self, symbol: str, limit: int = 100, from_id: Optional[int] = None) -> List[Trade]:
        symbol = symbol.upper()
        params = {"symbol": symbol, "limit": limit, "fromId": from_id}
        return [self.normalizer.trade(t, symbol) for t in self._get(HISTORICAL_TRADES, params, signed=True)]

    def get_candles(
        self,
        symbol: str,
        interval: str = "1h",
        limit: int = 100,
        start_time: Optional[int] = None,
        end_time: Optional[int] = None,
    ) -> List[Candle]:
        symbol = symbol.upper()
        params = {"symbol": symbol, "interval": interval, "limit": limit, "startTime": start_time, "endTime": end_time}
        return [self.normalizer.candle(symbol, interval, c) for c in self._get(KLINES, params)]

    def get_avg_price(self, symbol: str) -> float:
        return float(self._get(AVG_PRICE, {"symbol": symbol.upper()}).get("price", 0))

    # Account

    def get_account_info(self) -> Dict[str, Any]:
        return self._get(ACCOUNT, signed=True)

    def get_balances(self) -> Dict[str, Balance]:
        balances = (self.normalizer.balance(b) for b in self.get_account_info().get("balances", []))
        return {b.asset: b for b in balances if b.free > 0 or b.locked > 0}

    def get_balance(self, asset: str) -> Balance:
        asset = asset.upper()
        for entry in self.get_account_info().get("balances", []):
            if entry["asset"] == asset:
                return self.normalizer.balance(entry)
        return Balance(asset=asset, exchange=self.name)

    def get_commission_rates(self) -> Dict[str, float]:
        fees = self._get(TRADE_FEE, signed=True)
        if not fees:
            return {"maker": 0.001, "taker": 0.001}
        return {"maker": float(fees[0].get("makerCommission", 0)), "taker": float(fees[0].get("takerCommission", 0))}

    def get_deposit_address(self, asset: str, network: Optional[str] = None) -> Deposit:
        res = self._get(DEPOSIT_ADDRESS, {"coin": asset.upper(), "network": network}, signed=True)
        return self.normalizer.deposit_address(res)

    def get_deposit_history(
        self, asset: Optional[str] = None, start_time: Optional[int] = None, end_time: Optional[int] = None
    ) -> List[Deposit]:
        params = {"coin": asset.upper() if asset else None, "startTime": start_time, "endTime": end_time, "limit": 1000}
        return [self.normalizer.deposit(d) for d in self._get(DEPOSIT_HISTORY, params, signed=True)]

    def get_withdraw_history(
        self, asset: Optional[str] = None, start_time: Optional[int] = None, end_time: Optional[int] = None
    ) -> List[Withdraw]:
        params = {"coin": asset.upper() if asset else None, "startTime": start_time, "endTime": end_time, "limit": 1000}
        return [self.normalizer.withdraw(w) for w in self._get(WITHDRAW_HISTORY, params, signed=True)]

    def withdraw(
        self,
        asset: str,
        address: str,
        amount: float,
        network: Optional[str] = None,
        memo: Optional[str] = None,
    ) -> Withdraw:
        asset = asset.upper()
        params = {"coin": asset, "address": address, "addressTag": memo, "amount": amount, "network": network}
        res = self._post(WITHDRAW, params)
        withdraw_id = str(res.get("id", ""))

        # Binance only returns the id; the full record comes from the history
        for record in self.get_withdraw_history(asset):
            if record.withdraw_id == withdraw_id:
                return record

        return Withdraw(
            withdraw_id=withdraw_id,
            asset=asset,
            address=address,
            memo=memo,
            network=network or "",
            amount=amount,
            fee=0.0,
            net_amount=amount,
            status=WithdrawStatus.PENDING,
            timestamp=now_ms(),
            exchange=self.name,
        )

    # Trading

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
        order_type = type.upper()
        order_type = ORDER_TYPE_OUT.get(order_type, order_type)
        priced = order_type in PRICED_TYPES
        params = {
            "symbol": symbol.upper(),
            "side": side.upper(),
            "type": order_type,
            "quantity": quantity,
            "price": price if priced else None,
            "stopPrice": stop_price,
            "timeInForce": (time_in_force or "GTC") if priced else None,
            "newClientOrderId": client_order_id,
            "newOrderRespType": "FULL",
        }
        return self.normalizer.order(self._post(ORDER, params))

    def cancel_order(self, symbol: str, order_id: str) -> Order:
        return self.normalizer.order(self._delete(ORDER, {"symbol": symbol.upper(), "orderId": order_id}))

    def cancel_all_orders(self, symbol: str) -> List[Order]:
        return [self.normalizer.order(o) for o in self._delete(OPEN_ORDERS, {"symbol": symbol.upper()})]

    def get_order(self, symbol: str, order_id: str) -> Order:
        return self.normalizer.order(self._get(ORDER, {"symbol": symbol.upper(), "orderId": order_id}, signed=True))

    def get_open_orders(self, symbol: Optional[str] = None) -> List[Order]:
        params = {"symbol": symbol.upper() if symbol else None}
        return [self.normalizer.order(o) for o in self._get(OPEN_ORDERS, params, signed=True)]

    def get_order_history(
        self, symbol: str, limit: int = 100, start_time: Optional[int] = None, end_time: Optional[int] = None
    ) -> List[Order]:
        params = {"symbol": symbol.upper(), "limit": limit, "startTime": start_time, "endTime": end_time}
        return [self.normalizer.order(o) for o in self._get(ALL_ORDERS, params, signed=True)]

    def get_my_trades(
        self, symbol: str, limit: int = 100, start_time: Optional[int] = None, end_time: Optional[int] = None
    ) -> List[Trade]:
        symbol = symbol.upper()
        params = {"symbol": symbol, "limit": limit, "startTime": start_time, "endTime": end_time}
        return [self.normalizer.trade(t, symbol) for t in self._get(MY_TRADES, params, signed=True)]

    def edit_order(
        self, symbol: str, order_id: str, price: Optional[float] = None, quantity: Optional[float] = None
    ) -> Order:
        """Cancel the order and recreate it; Binance has no amend endpoint, so the id changes."""
        original = self.get_order(symbol, order_id)
        self.cancel_order(symbol, order_id)
        replacement = self.create_order(
            symbol,
            original.side.value,
            original.type.value,
            quantity if quantity is not None else original.quantity,
            price if price is not None else original.price,
            original.stop_price or None,
            original.time_in_force.value,
        )
        logger.info(f"Binance order {order_id} replaced by {replacement.order_id}")
        return replacement

    def create_oco_order(
        self,
        symbol: str,
        side: str,
        quantity: float,
        price: float,
        stop_price: float,
        stop_limit_price: float,
    ) -> OCOOrderResult:
        symbol = symbol.upper()
        params = {
            "symbol": symbol,
            "side": side.upper(),
            "quantity": quantity,
            "price": price,
            "stopPrice": stop_price,
            "stopLimitPrice": stop_limit_price,
            "stopLimitTimeInForce": "GTC",
        }
        res = self._post(ORDER_OCO, params)
        legs = res.get("orders", [])
        return OCOOrderResult(
            group_id=str(res["orderListId"]) if "orderListId" in res else None,
            limit_order=self.get_order(symbol, str(legs[0]["orderId"])) if len(legs) > 0 else None,
            stop_order=self.get_order(symbol, str(legs[1]["orderId"])) if len(legs) > 1 else None,
            raw=res,
        )

    # Staking

    def stake_asset(self, asset: str, amount: float) -> Dict[str, Any]:
        asset = asset.upper()
        products = self._get(STAKING_PRODUCT_LIST, {"product": "STAKING", "asset": asset}, signed=True)
        product_id = products[0].get("projectId") if products else None
        if not product_id:
            raise InvalidOrderError(f"No staking product found for {asset}", self.name)

        res = self._post(STAKING_PURCHASE, {"product": "STAKING", "productId": product_id, "amount": amount})
        return {"asset": asset, "staked": amount, "position_id": res.get("positionId"), "status": "STAKED"}

    def unstake_asset(self, asset: str, amount: float) -> Dict[str, Any]:
        asset = asset.upper()
        position = next((p for p in self.get_staking_positions() if p.get("asset", "").upper() == asset), None)
        if position is None:
            raise InvalidOrderError(f"No staking position found for {asset}", self.name)

        self._post(
            STAKING_REDEEM,
            {
                "product": "STAKING",
                "productId": position.get("productId"),
                "positionId": position.get("positionId"),
                "amount": amount,
            },
        )
        return {"asset": asset, "unstaked": amount, "status": "UNSTAKED"}

    def get_staking_positions(self) -> List[Dict[str, Any]]:
        return self._get(STAKING_POSITION, {"product": "STAKING"}, signed=True)
