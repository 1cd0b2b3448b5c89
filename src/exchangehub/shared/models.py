"""
Common data models returned by every exchange implementation.
"""

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class OrderSide(str, Enum):
    """Order side."""

    BUY = "BUY"
    SELL = "SELL"

    def opposite(self) -> "OrderSide":
        return OrderSide.SELL if self is OrderSide.BUY else OrderSide.BUY


class OrderType(str, Enum):
    """Order types understood by the uniform contract."""

    MARKET = "MARKET"
    LIMIT = "LIMIT"
    STOP = "STOP"
    STOP_LIMIT = "STOP_LIMIT"
    STOP_MARKET = "STOP_MARKET"
    TAKE_PROFIT = "TAKE_PROFIT"
    TAKE_PROFIT_LIMIT = "TAKE_PROFIT_LIMIT"
    OCO = "OCO"

    def requires_price(self) -> bool:
        return self in (OrderType.LIMIT, OrderType.STOP_LIMIT, OrderType.TAKE_PROFIT_LIMIT)

    def requires_stop_price(self) -> bool:
        return self in (
            OrderType.STOP,
            OrderType.STOP_LIMIT,
            OrderType.STOP_MARKET,
            OrderType.TAKE_PROFIT,
            OrderType.TAKE_PROFIT_LIMIT,
        )


class OrderStatus(str, Enum):
    """Order lifecycle status."""

    OPEN = "OPEN"
    PARTIALLY_FILLED = "PARTIALLY_FILLED"
    FILLED = "FILLED"
    CANCELLED = "CANCELLED"
    REJECTED = "REJECTED"
    EXPIRED = "EXPIRED"

    def is_active(self) -> bool:
        return self in (OrderStatus.OPEN, OrderStatus.PARTIALLY_FILLED)

    def is_final(self) -> bool:
        return not self.is_active()


class TimeInForce(str, Enum):
    """Order lifetime policy."""

    GTC = "GTC"  # Good till cancelled
    IOC = "IOC"  # Immediate or cancel
    FOK = "FOK"  # Fill or kill
    GTD = "GTD"  # Good till date


class CandleInterval(str, Enum):
    """Supported candle intervals."""

    M1 = "1m"
    M3 = "3m"
    M5 = "5m"
    M15 = "15m"
    M30 = "30m"
    H1 = "1h"
    H2 = "2h"
    H4 = "4h"
    H6 = "6h"
    H8 = "8h"
    H12 = "12h"
    D1 = "1d"
    D3 = "3d"
    W1 = "1w"
    MON1 = "1M"

    @property
    def seconds(self) -> int:
        return _INTERVAL_SECONDS[self.value]


_INTERVAL_SECONDS = {
    "1m": 60,
    "3m": 180,
    "5m": 300,
    "15m": 900,
    "30m": 1800,
    "1h": 3600,
    "2h": 7200,
    "4h": 14400,
    "6h": 21600,
    "8h": 28800,
    "12h": 43200,
    "1d": 86400,
    "3d": 259200,
    "1w": 604800,
    "1M": 2592000,
}


class ExchangeStatus(str, Enum):
    """Exchange availability."""

    ONLINE = "ONLINE"
    MAINTENANCE = "MAINTENANCE"
    OFFLINE = "OFFLINE"

    def is_operational(self) -> bool:
        return self is ExchangeStatus.ONLINE


class DepositStatus(str, Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    CREDITED = "CREDITED"
    FAILED = "FAILED"


class WithdrawStatus(str, Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    SENT = "SENT"
    CONFIRMED = "CONFIRMED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"


class Ticker(BaseModel):
    """Best bid/ask, last price and rolling 24h stats for a symbol."""

    symbol: str
    price: float
    bid: float
    ask: float
    open_24h: float
    high_24h: float
    low_24h: float
    volume_24h: float
    quote_volume_24h: float = 0.0
    change_24h: float = 0.0
    change_pct_24h: float = 0.0
    timestamp: int = Field(description="Milliseconds since epoch")
    exchange: str = ""

    @property
    def spread(self) -> float:
        return self.ask - self.bid


class OrderBook(BaseModel):
    """Bid levels (descending) and ask levels (ascending) as [price, qty]."""

    symbol: str
    bids: List[List[float]] = Field(default_factory=list)
    asks: List[List[float]] = Field(default_factory=list)
    timestamp: int
    exchange: str = ""

    @property
    def best_bid(self) -> Optional[float]:
        return self.bids[0][0] if self.bids else None

    @property
    def best_ask(self) -> Optional[float]:
        return self.asks[0][0] if self.asks else None

    @property
    def spread(self) -> Optional[float]:
        if self.best_bid is None or self.best_ask is None:
            return None
        return self.best_ask - self.best_bid


class Order(BaseModel):
    """Order as reported by any exchange."""

    order_id: str
    client_order_id: str = ""
    symbol: str
    side: OrderSide
    type: OrderType
    status: OrderStatus
    quantity: float
    executed_qty: float = 0.0
    price: float = 0.0
    avg_price: float = 0.0
    stop_price: float = 0.0
    time_in_force: TimeInForce = TimeInForce.GTC
    fee: float = 0.0
    fee_asset: str = ""
    oco_group_id: Optional[str] = None
    stop_triggered: bool = False
    created_at: int
    updated_at: int
    exchange: str = ""

    def is_open(self) -> bool:
        return self.status == OrderStatus.OPEN

    def is_filled(self) -> bool:
        return self.status == OrderStatus.FILLED

    def is_cancelled(self) -> bool:
        return self.status == OrderStatus.CANCELLED

    @property
    def remaining_qty(self) -> float:
        return self.quantity - self.executed_qty


class Trade(BaseModel):
    """A single fill."""

    trade_id: str
    order_id: str = ""
    symbol: str
    side: OrderSide
    price: float
    quantity: float
    quote_qty: float
    fee: float = 0.0
    fee_asset: str = ""
    is_maker: bool = False
    timestamp: int
    exchange: str = ""


class Balance(BaseModel):
    """Free, locked and staked amounts of one asset."""

    asset: str
    free: float = 0.0
    locked: float = 0.0
    staked: float = 0.0
    exchange: str = ""

    @property
    def total(self) -> float:
        return self.free + self.locked + self.staked


class Candle(BaseModel):
    """OHLCV candle."""

    symbol: str
    interval: str
    open_time: int
    open: float
    high: float
    low: float
    close: float
    volume: float
    quote_volume: float = 0.0
    trades: int = 0
    close_time: int
    exchange: str = ""


class Deposit(BaseModel):
    """Deposit address or deposit history entry."""

    asset: str
    address: str
    memo: Optional[str] = None
    network: str
    deposit_id: Optional[str] = None  # None for a bare address lookup
    amount: Optional[float] = None
    tx_id: Optional[str] = None
    status: DepositStatus = DepositStatus.CONFIRMED
    timestamp: Optional[int] = None
    exchange: str = ""


class Withdraw(BaseModel):
    """Withdrawal record."""

    withdraw_id: str
    asset: str
    address: str
    memo: Optional[str] = None
    network: str
    amount: float
    fee: float
    net_amount: float
    tx_id: Optional[str] = None
    status: WithdrawStatus
    timestamp: int
    exchange: str = ""


class ExchangeInfo(BaseModel):
    """General exchange information."""

    exchange_name: str
    status: ExchangeStatus
    symbols: List[str] = Field(default_factory=list)
    maker_fee: float
    taker_fee: float
    rate_limits: List[Dict[str, Any]] = Field(default_factory=list)
    networks: Dict[str, Any] = Field(default_factory=dict)
    timestamp: int

    def has_symbol(self, symbol: str) -> bool:
        return symbol.upper() in {s.upper() for s in self.symbols}

    def is_online(self) -> bool:
        return self.status.is_operational()


class OCOOrderResult(BaseModel):
    """Both legs of an OCO placement."""

    group_id: Optional[str] = None
    limit_order: Optional[Order] = None
    stop_order: Optional[Order] = None
    raw: Dict[str, Any] = Field(default_factory=dict)
