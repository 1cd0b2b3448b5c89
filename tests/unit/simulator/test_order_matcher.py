"""
Unit tests for resting order resolution and settlement.
"""

import pytest

from src.exchangehub.config import FakeExchangeSettings
from src.exchangehub.shared.models import OrderStatus
from src.exchangehub.simulator.exchange import FakeExchange
from src.exchangehub.simulator.order_matcher import (
    OPEN_ORDERS_KEY,
    ORDER_HISTORY_KEY,
    TRADE_HISTORY_KEY,
    limit_crossed,
    stop_reached,
)


class TestTriggerRules:
    """Test the price predicates."""

    @pytest.mark.parametrize(
        "side,limit,price,expected",
        [
            ("BUY", 100.0, 99.0, True),
            ("BUY", 100.0, 100.0, True),
            ("BUY", 100.0, 101.0, False),
            ("SELL", 100.0, 101.0, True),
            ("SELL", 100.0, 100.0, True),
            ("SELL", 100.0, 99.0, False),
        ],
    )
    def test_limit_crossed(self, side, limit, price, expected):
        assert limit_crossed(side, limit, price) is expected

    @pytest.mark.parametrize(
        "side,stop,price,expected",
        [
            ("BUY", 100.0, 101.0, True),
            ("BUY", 100.0, 99.0, False),
            ("SELL", 100.0, 99.0, True),
            ("SELL", 100.0, 101.0, False),
        ],
    )
    def test_stop_reached(self, side, stop, price, expected):
        assert stop_reached(side, stop, price) is expected


class TestLimitOrders:
    """Test LIMIT resolution."""

    def test_buy_limit_fills_at_limit_price(self, exchange, pin_price):
        pin_price(exchange, 98000.0)
        order = exchange.create_order("BTCUSDT", "BUY", "LIMIT", 0.01, price=97000.0)

        assert exchange.matcher.check_and_execute("BTCUSDT") == []

        pin_price(exchange, 96500.0)
        filled = exchange.matcher.check_and_execute("BTCUSDT")

        assert [o.order_id for o in filled] == [order.order_id]
        assert filled[0].status == OrderStatus.FILLED
        assert filled[0].avg_price == 97000.0
        assert filled[0].executed_qty == 0.01

        usdt = exchange.get_balance("USDT")
        assert usdt.locked == 0.0
        assert usdt.free == pytest.approx(10000 - 970.0 - 970.0 * 0.001)
        assert exchange.get_balance("BTC").free == pytest.approx(1.51)

    def test_sell_limit_fills_when_price_rises(self, exchange, pin_price):
        pin_price(exchange, 98000.0)
        exchange.create_order("BTCUSDT", "SELL", "LIMIT", 0.5, price=99000.0)

        pin_price(exchange, 99100.0)
        filled = exchange.matcher.check_and_execute("BTCUSDT")

        assert len(filled) == 1
        btc = exchange.get_balance("BTC")
        assert btc.free == pytest.approx(1.0)
        assert btc.locked == 0.0
        assert exchange.get_balance("USDT").free == pytest.approx(10000 + 49500.0 * 0.999)

    def test_only_matching_symbol_is_resolved(self, exchange, pin_price):
        pin_price(exchange, 3000.0)
        exchange.create_order("ETHUSDT", "BUY", "LIMIT", 1, price=3100.0)

        assert exchange.matcher.check_and_execute("BTCUSDT") == []
        assert len(exchange.get_open_orders("ETHUSDT")) == 1

    def test_disabled_auto_execution_leaves_orders_open(self, tmp_path, clock, pin_price):
        config = FakeExchangeSettings(data_path=str(tmp_path), seed=1, auto_execute_limit_orders=False)
        with FakeExchange(config=config, clock=clock) as fake:
            pin_price(fake, 98000.0)
            fake.create_order("BTCUSDT", "BUY", "LIMIT", 0.01, price=99000.0)

            assert fake.matcher.check_and_execute("BTCUSDT") == []
            assert len(fake.get_open_orders("BTCUSDT")) == 1


class TestStopOrders:
    """Test two-step STOP_LIMIT and STOP_MARKET resolution."""

    def test_stop_limit_triggers_then_fills_on_next_observation(self, exchange, pin_price):
        pin_price(exchange, 98000.0)
        order = exchange.create_order("BTCUSDT", "SELL", "STOP_LIMIT", 0.1, price=96500.0, stop_price=97000.0)

        pin_price(exchange, 96800.0)
        assert exchange.matcher.check_and_execute("BTCUSDT") == []
        triggered = exchange.get_order("BTCUSDT", order.order_id)
        assert triggered.stop_triggered is True
        assert triggered.status == OrderStatus.OPEN

        filled = exchange.matcher.check_and_execute("BTCUSDT")
        assert len(filled) == 1
        assert filled[0].avg_price == 96500.0

    def test_stop_limit_waits_for_limit_after_trigger(self, exchange, pin_price):
        pin_price(exchange, 98000.0)
        exchange.create_order("BTCUSDT", "SELL", "STOP_LIMIT", 0.1, price=96500.0, stop_price=97000.0)

        pin_price(exchange, 96000.0)
        exchange.matcher.check_and_execute("BTCUSDT")
        assert exchange.matcher.check_and_execute("BTCUSDT") == []

        pin_price(exchange, 96600.0)
        assert len(exchange.matcher.check_and_execute("BTCUSDT")) == 1

    def test_stop_market_fills_at_observed_price(self, exchange, pin_price):
        pin_price(exchange, 98000.0)
        order = exchange.create_order("BTCUSDT", "BUY", "STOP_MARKET", 0.001, stop_price=99000.0)

        usdt = exchange.get_balance("USDT")
        assert usdt.locked == pytest.approx(0.001 * 99000.0 * 1.01)

        pin_price(exchange, 99500.0)
        assert exchange.matcher.check_and_execute("BTCUSDT") == []
        filled = exchange.matcher.check_and_execute("BTCUSDT")

        assert [o.order_id for o in filled] == [order.order_id]
        assert filled[0].avg_price == 99500.0
        usdt = exchange.get_balance("USDT")
        assert usdt.locked == 0.0
        assert usdt.free == pytest.approx(10000 - 99.5 - 99.5 * 0.001)


class TestSettlement:
    """Test settlement edge cases."""

    def test_settlement_writes_trade_and_history(self, exchange, pin_price):
        pin_price(exchange, 98000.0)
        order = exchange.create_order("BTCUSDT", "BUY", "LIMIT", 0.01, price=98500.0)
        exchange.matcher.check_and_execute("BTCUSDT")

        trades = exchange.storage.read(TRADE_HISTORY_KEY)
        history = exchange.storage.read(ORDER_HISTORY_KEY)
        assert exchange.storage.read(OPEN_ORDERS_KEY) == []
        assert len(trades) == 1
        assert trades[0]["order_id"] == order.order_id
        assert trades[0]["id"] == trades[0]["trade_id"]
        assert trades[0]["is_maker"] is True
        assert trades[0]["quote_qty"] == pytest.approx(985.0)
        assert trades[0]["fee"] == pytest.approx(0.985)
        assert trades[0]["fee_asset"] == "USDT"
        assert history[0]["status"] == "FILLED"
        assert history[0]["locked_amount"] == 0.0

    def test_buy_fee_taken_in_base_when_quote_is_short(self, tmp_path, clock, pin_price):
        config = FakeExchangeSettings(data_path=str(tmp_path), seed=1, initial_balances={"USDT": 1000.0})
        with FakeExchange(config=config, clock=clock) as fake:
            pin_price(fake, 98000.0)
            fake.create_order("BTCUSDT", "BUY", "LIMIT", 0.01, price=100000.0)
            filled = fake.matcher.check_and_execute("BTCUSDT")

            assert filled[0].fee_asset == "BTC"
            assert filled[0].fee == pytest.approx(0.01 * 0.001)
            assert fake.get_balance("USDT").free == pytest.approx(0.0)
            assert fake.get_balance("BTC").free == pytest.approx(0.01 * 0.999)

    def test_unsettleable_fill_is_rejected_and_released(self, tmp_path, clock, pin_price):
        """A stop-market buy whose fill exceeds the reserved quote is rejected."""
        config = FakeExchangeSettings(data_path=str(tmp_path), seed=1, initial_balances={"USDT": 100.0})
        with FakeExchange(config=config, clock=clock) as fake:
            pin_price(fake, 89000.0)
            order = fake.create_order("BTCUSDT", "BUY", "STOP_MARKET", 0.001, stop_price=90000.0)

            pin_price(fake, 200000.0)
            fake.matcher.check_and_execute("BTCUSDT")
            assert fake.matcher.check_and_execute("BTCUSDT") == []

            rejected = fake.get_order("BTCUSDT", order.order_id)
            assert rejected.status == OrderStatus.REJECTED
            assert fake.get_open_orders("BTCUSDT") == []
            assert fake.get_my_trades("BTCUSDT") == []
            usdt = fake.get_balance("USDT")
            assert usdt.free == pytest.approx(100.0)
            assert usdt.locked == 0.0
