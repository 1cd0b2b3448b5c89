"""
Unit tests for the exchange registry and factory.
"""

import pytest

from src.exchangehub.core import Exchange, ExchangeManager
from src.exchangehub.exchanges.binance import BinanceExchange
from src.exchangehub.shared.errors import ExchangeError
from src.exchangehub.simulator.exchange import FakeExchange


@pytest.fixture
def manager():
    mgr = ExchangeManager()
    yield mgr
    mgr.flush()


def test_available_lists_builtin_exchanges(manager):
    assert manager.available() == ["binance", "fake"]


def test_make_fake_exchange(manager, fake_config):
    exchange = manager.make("Fake", config=fake_config)

    assert isinstance(exchange, FakeExchange)
    assert exchange.ping() is True


def test_make_reuses_instance_for_same_options(manager, fake_config):
    first = manager.make("fake", config=fake_config)

    assert manager.make("fake", config=fake_config) is first
    standalone = manager.make("fake", singleton=False, config=fake_config)
    assert standalone is not first
    standalone.close()


def test_make_binance_with_credentials(manager):
    exchange = manager.make("binance", api_key="k", api_secret="s")

    assert isinstance(exchange, BinanceExchange)
    assert exchange.signer is not None


def test_unknown_exchange_raises(manager):
    with pytest.raises(ExchangeError) as exc_info:
        manager.make("nowhere")

    assert "binance" in str(exc_info.value)


def test_register_custom_exchange(manager, fake_config):
    class SandboxExchange(FakeExchange):
        name = "sandbox"

    manager.register("Sandbox", SandboxExchange)

    assert "sandbox" in manager.available()
    assert isinstance(manager.make("sandbox", config=fake_config), SandboxExchange)


def test_register_rejects_non_exchanges(manager):
    with pytest.raises(ExchangeError):
        manager.register("bad", object)
    with pytest.raises(ExchangeError):
        manager.register("bad", "src.somewhere:Thing")


def test_flush_closes_cached_instances(manager, fake_config):
    exchange = manager.make("fake", config=fake_config)

    manager.flush()

    assert exchange.storage.closed
    assert manager.make("fake", config=fake_config) is not exchange


def test_exchange_is_abstract():
    with pytest.raises(TypeError):
        Exchange()
