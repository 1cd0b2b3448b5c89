"""
Exchange error taxonomy shared by the simulator, the signers and the adapters.
"""

from datetime import datetime
from typing import Optional


class ExchangeError(Exception):
    """Base exception for every exchange-related failure."""

    def __init__(self, message: str, exchange: str = "", code: int = 0):
        self.exchange = exchange
        self.code = code
        self.detail = message
        self.timestamp = datetime.utcnow()
        super().__init__(f"[{exchange}] {message}" if exchange else message)


class InsufficientBalanceError(ExchangeError):
    """Raised when a balance bucket cannot cover an operation."""

    def __init__(self, asset: str, required: float, available: float, exchange: str = ""):
        self.asset = asset
        self.required = required
        self.available = available
        super().__init__(
            f"Insufficient {asset} balance (Required: {required:.8f}, Available: {available:.8f})",
            exchange,
        )


class InvalidSymbolError(ExchangeError):
    """Raised for an unknown or unsupported trading pair."""

    def __init__(self, symbol: str, exchange: str = ""):
        self.symbol = symbol
        super().__init__(f"Invalid or unsupported symbol: {symbol}", exchange)


class OrderNotFoundError(ExchangeError):
    """Raised when an order id cannot be resolved."""

    def __init__(self, order_id: str, exchange: str = ""):
        self.order_id = order_id
        super().__init__(f"Order not found: {order_id}", exchange)


class InvalidOrderError(ExchangeError):
    """Raised for bad order (or account operation) parameters."""

    def __init__(self, detail: str = "", exchange: str = ""):
        super().__init__(f"Invalid order parameters. {detail}".strip(), exchange)


class WithdrawError(ExchangeError):
    """Raised when a withdrawal cannot be processed."""

    def __init__(self, detail: str = "", exchange: str = ""):
        super().__init__(f"Withdrawal failed. {detail}".strip(), exchange)


class AuthenticationError(ExchangeError):
    """Raised when credentials are rejected by the exchange."""

    def __init__(self, detail: str = "", exchange: str = ""):
        super().__init__(f"Authentication failed. {detail}".strip(), exchange)


class RateLimitError(ExchangeError):
    """Raised on HTTP 429/418. Never retried by the transport."""

    def __init__(self, exchange: str = "", retry_after: int = 0):
        self.retry_after = retry_after
        message = "Rate limit reached"
        if retry_after > 0:
            message += f". Retry in {retry_after}s"
        super().__init__(message, exchange)


class NetworkError(ExchangeError):
    """Raised on transport failures. The only retried error."""

    def __init__(self, detail: str = "", exchange: str = "", cause: Optional[BaseException] = None):
        self.cause = cause
        super().__init__(f"Network error. {detail}".strip(), exchange)


class StorageError(ExchangeError):
    """Raised when the ledger cannot read or write a document."""

    def __init__(self, detail: str, key: Optional[str] = None):
        self.key = key
        super().__init__(detail if key is None else f"{detail} (key: {key})", "storage")
