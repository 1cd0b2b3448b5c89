"""Shared pytest fixtures and configuration."""

from typing import Generator

import pytest

from src.exchangehub.config import FakeExchangeSettings
from src.exchangehub.simulator.exchange import FakeExchange
from src.exchangehub.storage.json_storage import JsonStorage

FIXED_NOW = 1_700_000_000.0


class FrozenClock:
    """Clock returning a settable time in seconds."""

    def __init__(self, now: float = FIXED_NOW):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FrozenClock:
    """Frozen clock starting at a fixed instant."""
    return FrozenClock()


@pytest.fixture
def fake_config(tmp_path) -> FakeExchangeSettings:
    """Seeded simulator settings with the ledger under a temp directory."""
    return FakeExchangeSettings(data_path=str(tmp_path / "ledger"), seed=42)


@pytest.fixture
def storage(fake_config) -> Generator[JsonStorage, None, None]:
    """Ledger storage rooted at the configured data path."""
    store = JsonStorage(fake_config.data_path)
    yield store
    store.close()


@pytest.fixture
def exchange(fake_config, clock) -> Generator[FakeExchange, None, None]:
    """Fresh simulated exchange with the default initial balances."""
    fake = FakeExchange(config=fake_config, clock=clock)
    yield fake
    fake.close()


@pytest.fixture
def pin_price(monkeypatch):
    """Return a setter pinning every price observation of a simulator to a value."""

    def pin(fake: FakeExchange, price: float) -> None:
        engine = fake.engine

        def fixed_price(symbol: str) -> float:
            tickers = fake.storage.read(engine.TICKERS_KEY) or {}
            if symbol not in tickers:
                tickers[symbol] = engine._build_initial_ticker(symbol, price)
            tickers[symbol]["price"] = price
            fake.storage.write(engine.TICKERS_KEY, tickers)
            return price

        monkeypatch.setattr(engine, "get_price", fixed_price)

    return pin
