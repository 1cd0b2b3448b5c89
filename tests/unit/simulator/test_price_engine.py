"""
Unit tests for the synthetic price engine.
"""

import random

import pytest

from src.exchangehub.shared.errors import InvalidOrderError
from src.exchangehub.simulator.price_engine import PriceEngine, step_price
from src.exchangehub.storage.json_storage import JsonStorage


@pytest.fixture
def engine(storage, fake_config, clock):
    return PriceEngine(storage, fake_config, random.Random(42), clock)


class TestPrices:
    """Test the random-walk ticker."""

    def test_first_observation_starts_from_base_price(self, engine, fake_config):
        price = engine.get_price("BTCUSDT")
        base = fake_config.base_prices["BTCUSDT"]

        assert abs(price - base) <= base * fake_config.price_volatility + 0.01

    def test_unknown_symbol_starts_at_one(self, engine, fake_config):
        price = engine.get_price("FOOBAR")

        assert abs(price - 1.0) <= fake_config.price_volatility + 0.0001

    def test_walk_is_bounded_per_step(self, engine, fake_config):
        """Each observation moves the price by at most the configured volatility."""
        previous = engine.get_price("ETHUSDT")
        for _ in range(200):
            current = engine.get_price("ETHUSDT")
            assert current > 0
            assert abs(current - previous) <= previous * fake_config.price_volatility + 0.01
            previous = current

    def test_low_priced_walk_stays_within_the_bound(self, storage, fake_config, clock):
        """Ticks of 0.000001 are wider than the allowed move at 0.00012."""
        config = fake_config.model_copy(update={"base_prices": {"PEPEUSDT": 0.00012}})
        engine = PriceEngine(storage, config, random.Random(3), clock)

        previous = engine.get_price("PEPEUSDT")
        for _ in range(200):
            current = engine.get_price("PEPEUSDT")
            assert abs(current - previous) <= previous * config.price_volatility
            assert current == round(current, 6)
            previous = current

    def test_price_never_reaches_zero(self, storage, fake_config, clock):
        config = fake_config.model_copy(update={"price_volatility": 0.99, "base_prices": {"DUSTUSDT": 0.00000002}})
        engine = PriceEngine(storage, config, random.Random(1), clock)

        for _ in range(100):
            assert engine.get_price("DUSTUSDT") >= 0.00000001

    def test_ticker_is_persisted_and_consistent(self, engine, storage, clock):
        ticker = engine.get_ticker("BTCUSDT")

        assert ticker.symbol == "BTCUSDT"
        assert ticker.bid < ticker.price < ticker.ask
        assert ticker.low_24h <= ticker.price <= ticker.high_24h
        assert ticker.open_24h == 98500.00
        assert ticker.timestamp == int(clock() * 1000)
        assert ticker.exchange == "fake"
        assert storage.read(PriceEngine.TICKERS_KEY)["BTCUSDT"]["price"] == ticker.price

    def test_spread_stays_within_bounds(self, engine):
        for _ in range(50):
            ticker = engine.get_ticker("SOLUSDT")
            relative = (ticker.ask - ticker.price) / ticker.price
            assert 0.0005 - 1e-4 <= relative <= 0.0015 + 1e-4

    def test_volume_only_grows(self, engine):
        volumes = [engine.get_ticker("BNBUSDT").volume_24h for _ in range(20)]

        assert volumes == sorted(volumes)

    def test_change_tracks_open(self, engine):
        ticker = engine.get_ticker("LINKUSDT")

        assert ticker.change_24h == pytest.approx(ticker.price - ticker.open_24h, abs=1e-3)

    def test_same_seed_same_path(self, tmp_path, fake_config, clock):
        paths = []
        for run in ("a", "b"):
            engine = PriceEngine(JsonStorage(str(tmp_path / run)), fake_config, random.Random(9), clock)
            paths.append([engine.get_price("ADAUSDT") for _ in range(10)])

        assert paths[0] == paths[1]


class TestOrderBook:
    """Test the synthesized order book."""

    def test_levels_are_sorted_and_uncrossed(self, engine):
        book = engine.get_order_book("BTCUSDT", 10)

        bid_prices = [level[0] for level in book.bids]
        ask_prices = [level[0] for level in book.asks]
        assert len(book.asks) == 10
        assert len(book.bids) == 10
        assert bid_prices == sorted(bid_prices, reverse=True)
        assert ask_prices == sorted(ask_prices)
        assert book.best_bid < book.best_ask

    def test_quantities_within_configured_range(self, engine, fake_config):
        book = engine.get_order_book("ETHUSDT", 20)

        for _, qty in book.bids + book.asks:
            assert fake_config.order_book_min_qty <= qty <= fake_config.order_book_max_qty

    def test_default_depth_from_config(self, engine, fake_config):
        book = engine.get_order_book("ETHUSDT")

        assert len(book.asks) == fake_config.order_book_depth

    def test_deep_book_omits_non_positive_bids(self, engine, monkeypatch):
        monkeypatch.setattr(engine.rng, "uniform", lambda a, b: b)

        book = engine.get_order_book("BTCUSDT", 150)

        assert len(book.asks) == 150
        assert len(book.bids) < 150
        assert all(price > 0 for price, _ in book.bids)

    def test_order_book_is_not_persisted(self, engine, storage):
        engine.get_order_book("BTCUSDT", 5)

        assert set(storage.read(PriceEngine.TICKERS_KEY)) == {"BTCUSDT"}
        assert not storage.exists("market/order_book")


class TestCandles:
    """Test candle generation and caching."""

    def test_series_shape(self, engine, fake_config, clock):
        candles = engine.get_candles("BTCUSDT", "1h", limit=50)

        assert len(candles) == 50
        step = 3600 * 1000
        now = int(clock() * 1000)
        assert candles[-1].open_time == now // step * step
        for candle in candles:
            assert candle.high >= max(candle.open, candle.close)
            assert candle.low <= min(candle.open, candle.close)
            assert candle.low > 0
            assert candle.close_time == candle.open_time + step - 1
        for prev, nxt in zip(candles, candles[1:]):
            assert nxt.open_time - prev.open_time == step
            assert nxt.open == prev.close

    def test_series_is_generated_once(self, engine, storage, fake_config):
        first = engine.get_candles("ETHUSDT", "15m", limit=20)
        for _ in range(5):
            engine.get_price("ETHUSDT")
        second = engine.get_candles("ETHUSDT", "15m", limit=20)

        assert first == second
        stored = storage.read(PriceEngine.candles_key("ETHUSDT", "15m"))
        assert len(stored) == fake_config.candle_series_length

    def test_intervals_are_cached_independently(self, engine, storage):
        engine.get_candles("ETHUSDT", "1m", limit=1)
        engine.get_candles("ETHUSDT", "1d", limit=1)

        assert storage.exists("market/candles_ETHUSDT_1m")
        assert storage.exists("market/candles_ETHUSDT_1d")

    def test_time_filters(self, engine):
        everything = engine.get_candles("SOLUSDT", "1h", limit=0)
        start = everything[10].open_time
        end = everything[19].open_time

        window = engine.get_candles("SOLUSDT", "1h", limit=0, start_time=start, end_time=end)

        assert [c.open_time for c in window] == [c.open_time for c in everything[10:20]]

    def test_limit_keeps_most_recent(self, engine):
        everything = engine.get_candles("SOLUSDT", "4h", limit=0)
        recent = engine.get_candles("SOLUSDT", "4h", limit=3)

        assert recent == everything[-3:]

    def test_seeded_series_is_reproducible(self, engine, fake_config, clock):
        other = PriceEngine(engine.storage, fake_config, random.Random(0), clock)

        assert engine.generate_candles("BTCUSDT", "5m", 10) == other.generate_candles("BTCUSDT", "5m", 10)

    def test_candles_do_not_move_the_ticker(self, engine, storage):
        engine.get_candles("BTCUSDT", "1h")

        assert storage.read(PriceEngine.TICKERS_KEY) is None

    def test_unknown_interval_raises(self, engine):
        with pytest.raises(InvalidOrderError):
            engine.get_candles("BTCUSDT", "7m")


@pytest.mark.parametrize(
    "previous,target,max_move,expected",
    [
        (3850.0, 3861.237, 19.25, 3861.24),
        (2.0, 2.00999996, 0.00999997, 2.0099),
        (0.5, 0.49750049, 0.0024999, 0.497501),
        (0.00012, 0.0001205, 0.0000006, 0.00012),
        (0.00012, 0.0001194, 0.0000006, 0.00012),
        (0.0001209, 0.00012095, 0.00000005, 0.0001209),
    ],
)
def test_step_price_rounds_within_the_allowed_move(previous, target, max_move, expected):
    assert step_price(previous, target, max_move) == expected
