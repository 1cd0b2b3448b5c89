"""
Shared models, errors and helpers.
"""

from src.exchangehub.shared.errors import (
    AuthenticationError,
    ExchangeError,
    InsufficientBalanceError,
    InvalidOrderError,
    InvalidSymbolError,
    NetworkError,
    OrderNotFoundError,
    RateLimitError,
    StorageError,
    WithdrawError,
)
from src.exchangehub.shared.models import (
    Balance,
    Candle,
    CandleInterval,
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

__all__ = [
    "ExchangeError",
    "InsufficientBalanceError",
    "InvalidSymbolError",
    "OrderNotFoundError",
    "InvalidOrderError",
    "WithdrawError",
    "AuthenticationError",
    "RateLimitError",
    "NetworkError",
    "StorageError",
    "Ticker",
    "OrderBook",
    "Order",
    "Trade",
    "Balance",
    "Candle",
    "Deposit",
    "Withdraw",
    "ExchangeInfo",
    "OCOOrderResult",
    "OrderSide",
    "OrderType",
    "OrderStatus",
    "TimeInForce",
    "CandleInterval",
    "ExchangeStatus",
    "DepositStatus",
    "WithdrawStatus",
]
