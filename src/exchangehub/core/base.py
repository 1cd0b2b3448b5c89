"""
Uniform exchange contract implemented by the simulator and the REST adapters.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from src.exchangehub.shared.models import (
    Balance,
    Candle,
    Deposit,
    ExchangeInfo,
    OCOOrderResult,
    Order,
    OrderBook,
    Ticker,
    Trade,
    Withdraw,
)


class Exchange(ABC):
    """Market data, trading, account and staking operations of one exchange."""

    name: str = ""

    # Market data

    @abstractmethod
    def ping(self) -> bool:
        """Test connectivity."""

    @abstractmethod
    def get_server_time(self) -> int:
        """Server time in milliseconds."""

    @abstractmethod
    def get_exchange_info(self) -> ExchangeInfo:
        pass

    @abstractmethod
    def get_symbols(self) -> List[str]:
        pass

    @abstractmethod
    def get_ticker(self, symbol: str) -> Ticker:
        pass

    def get_ticker_24h(self, symbol: str) -> Ticker:
        return self.get_ticker(symbol)

    @abstractmethod
    def get_all_tickers(self) -> Dict[str, Ticker]:
        pass

    @abstractmethod
    def get_order_book(self, symbol: str, limit: int = 20) -> OrderBook:
        pass

    @abstractmethod
    def get_recent_trades(self, symbol: str, limit: int = 50) -> List[Trade]:
        pass

    def get_historical_trades(self, symbol: str, limit: int = 100, from_id: Optional[int] = None) -> List[Trade]:
        return self.get_recent_trades(symbol, limit)

    @abstractmethod
    def get_candles(
        self,
        symbol: str,
        interval: str = "1h",
        limit: int = 100,
        start_time: Optional[int] = None,
        end_time: Optional[int] = None,
    ) -> List[Candle]:
        pass

    @abstractmethod
    def get_avg_price(self, symbol: str) -> float:
        pass

    # Account

    @abstractmethod
    def get_account_info(self) -> Dict[str, Any]:
        pass

    @abstractmethod
    def get_balances(self) -> Dict[str, Balance]:
        """Non-zero balances keyed by asset."""

    @abstractmethod
    def get_balance(self, asset: str) -> Balance:
        """Balance of one asset, zeroed when the account holds none."""

    @abstractmethod
    def get_commission_rates(self) -> Dict[str, float]:
        pass

    @abstractmethod
    def get_deposit_address(self, asset: str, network: Optional[str] = None) -> Deposit:
        pass

    @abstractmethod
    def get_deposit_history(
        self, asset: Optional[str] = None, start_time: Optional[int] = None, end_time: Optional[int] = None
    ) -> List[Deposit]:
        pass

    @abstractmethod
    def get_withdraw_history(
        self, asset: Optional[str] = None, start_time: Optional[int] = None, end_time: Optional[int] = None
    ) -> List[Withdraw]:
        pass

    @abstractmethod
    def withdraw(
        self,
        asset: str,
        address: str,
        amount: float,
        network: Optional[str] = None,
        memo: Optional[str] = None,
    ) -> Withdraw:
        pass

    # Trading

    @abstractmethod
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
        pass

    @abstractmethod
    def cancel_order(self, symbol: str, order_id: str) -> Order:
        pass

    @abstractmethod
    def cancel_all_orders(self, symbol: str) -> List[Order]:
        pass

    @abstractmethod
    def get_order(self, symbol: str, order_id: str) -> Order:
        """Raises OrderNotFoundError when the id is unknown."""

    @abstractmethod
    def get_open_orders(self, symbol: Optional[str] = None) -> List[Order]:
        pass

    @abstractmethod
    def get_order_history(
        self, symbol: str, limit: int = 100, start_time: Optional[int] = None, end_time: Optional[int] = None
    ) -> List[Order]:
        pass

    @abstractmethod
    def get_my_trades(
        self, symbol: str, limit: int = 100, start_time: Optional[int] = None, end_time: Optional[int] = None
    ) -> List[Trade]:
        pass

    @abstractmethod
    def edit_order(
        self, symbol: str, order_id: str, price: Optional[float] = None, quantity: Optional[float] = None
    ) -> Order:
        """Cancel the order and create a replacement.

        This is not an amendment: the returned order carries a new order id.
        """

    @abstractmethod
    def create_oco_order(
        self,
        symbol: str,
        side: str,
        quantity: float,
        price: float,
        stop_price: float,
        stop_limit_price: float,
    ) -> OCOOrderResult:
        pass

    # Staking

    @abstractmethod
    def stake_asset(self, asset: str, amount: float) -> Dict[str, Any]:
        pass

    @abstractmethod
    def unstake_asset(self, asset: str, amount: float) -> Dict[str, Any]:
        pass

    @abstractmethod
    def get_staking_positions(self) -> List[Dict[str, Any]]:
        pass

    def close(self) -> None:
        """Release held resources."""

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
