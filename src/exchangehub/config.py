"""
Centralized configuration management using pydantic-settings.
All modules should import Settings (or one of its sections) from here.
"""

from typing import Dict, List, Optional
from enum import Enum
from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(str, Enum):
    """Environment types."""
    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"
    TESTNET = "testnet"


class HttpSettings(BaseSettings):
    """HTTP transport settings shared by the REST adapters."""
    timeout: float = Field(default=10.0, description="Request timeout in seconds")
    connect_timeout: float = Field(default=5.0, description="Connect timeout in seconds")
    max_retries: int = Field(default=3, ge=1, description="Max attempts for network failures")
    retry_delay: float = Field(default=0.5, ge=0, description="Base delay between retries in seconds")

    model_config = SettingsConfigDict(env_prefix="HTTP_")


class MonitoringSettings(BaseSettings):
    """Logging settings."""
    log_level: str = Field(default="INFO", description="Log level")
    log_format: str = Field(default="text", description="Log format (json or text)")
    log_file: Optional[str] = Field(default=None, description="Log file path")

    model_config = SettingsConfigDict(env_prefix="MONITORING_")


class FakeExchangeSettings(BaseSettings):
    """Tunables of the simulated exchange."""
    exchange_name: str = Field(default="FakeExchange", description="Name reported by exchange info")
    maker_fee: float = Field(default=0.001, description="Maker fee rate (applied to every fill)")
    taker_fee: float = Field(default=0.001, description="Taker fee rate (reported only)")
    price_volatility: float = Field(default=0.005, description="Max relative price move per observation")
    order_book_depth: int = Field(default=20, ge=1, description="Default order book depth")
    order_book_min_qty: float = Field(default=0.01, description="Min synthetic level quantity")
    order_book_max_qty: float = Field(default=5.0, description="Max synthetic level quantity")
    auto_execute_limit_orders: bool = Field(default=True, description="Resolve resting orders on ticker reads")
    data_path: str = Field(default="data/fake_exchange", description="Ledger and activity log directory")
    market_buy_slippage: float = Field(default=0.01, ge=0, description="Extra quote reserved for market buys")
    staking_apy: float = Field(default=5.0, ge=0, description="Cosmetic staking APY in percent")
    candle_series_length: int = Field(default=500, ge=1, description="Candles generated per symbol/interval")
    seed: Optional[int] = Field(default=None, description="Seed for reproducible price paths")

    supported_fiats: List[str] = Field(
        default_factory=lambda: ["USDT", "USDC", "BRL", "BUSD", "EUR", "USD"],
        description="Quote suffixes recognised when splitting symbols",
    )
    initial_balances: Dict[str, float] = Field(
        default_factory=lambda: {
            "USDT": 10000.00,
            "BTC": 1.5,
            "ETH": 10.0,
            "BNB": 50.0,
            "SOL": 100.0,
            "ADA": 5000.0,
            "BRL": 50000.00,
        }
    )
    base_prices: Dict[str, float] = Field(
        default_factory=lambda: {
            "BTCUSDT": 98500.00,
            "ETHUSDT": 3850.00,
            "BNBUSDT": 710.00,
            "SOLUSDT": 185.00,
            "ADAUSDT": 0.92,
            "XRPUSDT": 2.35,
            "DOGEUSDT": 0.38,
            "DOTUSDT": 9.80,
            "MATICUSDT": 1.05,
            "LINKUSDT": 19.50,
            "LTCUSDT": 112.00,
            "UNIUSDT": 14.20,
            "ATOMUSDT": 11.30,
            "AVAXUSDT": 42.50,
            "BTCBRL": 492500.00,
            "ETHBRL": 19250.00,
        }
    )
    deposit_networks: Dict[str, Dict[str, str]] = Field(
        default_factory=lambda: {
            "BTC": {"BTC": "1FakeAddressBTC123456789abc"},
            "ETH": {"ERC20": "0xFakeEthAddress123456789abcdef"},
            "BNB": {"BEP20": "0xFakeBNBAddress123456789abcdef", "BSC": "0xFakeBNBAddress123456789abcdef"},
            "SOL": {"SOL": "FakeSolanaAddress123456789abcdefghij"},
            "USDT": {
                "ERC20": "0xFakeUSDTERC20Address",
                "TRC20": "TFakeUSDTTRC20Address",
                "BEP20": "0xFakeUSDTBEP20Address",
            },
            "BRL": {"PIX": "fake@pix.com.br", "TED": "Ag: 0001 CC: 123456-7"},
        }
    )
    withdraw_fees: Dict[str, float] = Field(
        default_factory=lambda: {
            "BTC": 0.0005,
            "ETH": 0.005,
            "BNB": 0.001,
            "USDT": 1.00,
            "SOL": 0.01,
            "BRL": 3.67,
        }
    )

    model_config = SettingsConfigDict(env_prefix="FAKE_")

    @field_validator("maker_fee", "taker_fee")
    @classmethod
    def _fee_in_range(cls, value: float) -> float:
        if not 0 <= value < 1:
            raise ValueError(f"fee rate must be in [0, 1), got {value}")
        return value

    @field_validator("price_volatility")
    @classmethod
    def _volatility_in_range(cls, value: float) -> float:
        if not 0 < value < 1:
            raise ValueError(f"price_volatility must be in (0, 1), got {value}")
        return value

    @field_validator("base_prices")
    @classmethod
    def _positive_prices(cls, value: Dict[str, float]) -> Dict[str, float]:
        for symbol, price in value.items():
            if price <= 0:
                raise ValueError(f"base price for {symbol} must be positive")
        return {symbol.upper(): price for symbol, price in value.items()}

    @field_validator("initial_balances", "withdraw_fees")
    @classmethod
    def _non_negative_amounts(cls, value: Dict[str, float]) -> Dict[str, float]:
        for asset, amount in value.items():
            if amount < 0:
                raise ValueError(f"amount for {asset} must not be negative")
        return {asset.upper(): amount for asset, amount in value.items()}

    @model_validator(mode="after")
    def _qty_range(self) -> "FakeExchangeSettings":
        if not 0 < self.order_book_min_qty <= self.order_book_max_qty:
            raise ValueError("order book quantity range must satisfy 0 < min <= max")
        return self


class Settings(BaseSettings):
    """Main settings class combining all sections."""
    # Environment
    environment: Environment = Field(default=Environment.DEVELOPMENT, description="Environment")
    service_name: str = Field(default="exchangehub", description="Service name")

    # Sub-settings
    http: HttpSettings = Field(default_factory=HttpSettings)
    monitoring: MonitoringSettings = Field(default_factory=MonitoringSettings)
    fake: FakeExchangeSettings = Field(default_factory=FakeExchangeSettings)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )


# Global settings instance
settings = Settings()
