"""
Synthetic ticker, order book and candle generation for the simulated exchange.
"""

import math
import random
import time
from typing import Any, Callable, Dict, List, Optional

from src.exchangehub.config import FakeExchangeSettings
from src.exchangehub.logging import get_logger
from src.exchangehub.shared.errors import InvalidOrderError
from src.exchangehub.shared.models import Candle, CandleInterval, OrderBook, Ticker
from src.exchangehub.shared.utils import now_ms, price_decimals, round_price
from src.exchangehub.storage.json_storage import Storage

logger = get_logger(__name__)

MIN_PRICE = 0.00000001
INITIAL_SPREAD = 0.001  # 0.1%
MIN_SPREAD_BPS = 5
MAX_SPREAD_BPS = 15
MIN_BOOK_STEP = 0.0001  # 0.01%
MAX_BOOK_STEP = 0.01  # 1%


def step_price(previous: float, target: float, max_move: float) -> float:
    """Round target to the precision of its magnitude, moving at most max_move away from previous.

    When the nearest tick lies beyond max_move the tick toward previous is
    used, and previous itself when that one is out of reach too.
    """
    decimals = price_decimals(target)
    scale = 10**decimals
    if target > previous:
        toward = math.floor(target * scale) / scale
    else:
        toward = math.ceil(target * scale) / scale

    for candidate in (round(target, decimals), round(toward, decimals)):
        if candidate >= MIN_PRICE and abs(candidate - previous) <= max_move:
            return candidate
    return previous


class PriceEngine:
    """Random-walk price source backed by the ledger.

    Every get_price() call moves the price, so reads are not idempotent.
    Candle series are generated once per (symbol, interval) and then served
    from the ledger unchanged, unlike tickers.
    """

    TICKERS_KEY = "market/tickers"

    def __init__(
        self,
        storage: Storage,
        config: FakeExchangeSettings,
        rng: Optional[random.Random] = None,
        clock: Callable[[], float] = time.time,
        exchange_name: str = "fake",
    ):
        self.storage = storage
        self.config = config
        self.rng = rng or random.Random(config.seed)
        self.clock = clock
        self.exchange_name = exchange_name

    def get_price(self, symbol: str) -> float:
        """Apply one random-walk step to the symbol's ticker and return the new price."""
        tickers: Dict[str, Dict[str, Any]] = self.storage.read(self.TICKERS_KEY) or {}

        if symbol not in tickers:
            base_price = self.config.base_prices.get(symbol, 1.0)
            tickers[symbol] = self._build_initial_ticker(symbol, base_price)
            logger.debug(f"Seeded ticker for {symbol} at {base_price}")

        ticker = tickers[symbol]
        price = ticker["price"]
        max_move = price * self.config.price_volatility
        target = max(MIN_PRICE, price + self.rng.uniform(-1, 1) * max_move)
        new_price = step_price(price, target, max_move)
        decimals = price_decimals(new_price)

        volume_step = round(self.rng.uniform(0.01, 5.0), 4)
        spread_pct = self.rng.randint(MIN_SPREAD_BPS, MAX_SPREAD_BPS) / 10000
        open_24h = ticker["open_24h"]

        ticker["price"] = new_price
        ticker["high_24h"] = max(ticker["high_24h"], ticker["price"])
        ticker["low_24h"] = min(ticker["low_24h"], ticker["price"])
        ticker["volume_24h"] = round(ticker["volume_24h"] + volume_step, 4)
        ticker["quote_volume_24h"] = round(ticker["quote_volume_24h"] + volume_step * new_price, 2)
        ticker["bid"] = round(new_price * (1 - spread_pct), decimals)
        ticker["ask"] = round(new_price * (1 + spread_pct), decimals)
        ticker["change_24h"] = round(new_price - open_24h, decimals)
        ticker["change_pct_24h"] = round((new_price - open_24h) / open_24h * 100, 4) if open_24h > 0 else 0.0
        ticker["timestamp"] = now_ms(self.clock)

        self.storage.write(self.TICKERS_KEY, tickers)
        return float(ticker["price"])

    def get_ticker(self, symbol: str) -> Ticker:
        """Observe the price once and return the full ticker."""
        self.get_price(symbol)
        tickers = self.storage.read(self.TICKERS_KEY) or {}
        return Ticker(**tickers[symbol], exchange=self.exchange_name)

    def get_order_book(self, symbol: str, depth: Optional[int] = None) -> OrderBook:
        """Synthesize depth levels per side around the current price. Not persisted."""
        depth = max(1, depth or self.config.order_book_depth)
        price = self.get_price(symbol)
        step = self.rng.uniform(MIN_BOOK_STEP, MAX_BOOK_STEP)

        bids: List[List[float]] = []
        asks: List[List[float]] = []
        for i in range(1, depth + 1):
            offset = price * step * i
            bid_price = price - offset
            # Deep books with a wide step would cross zero on the bid side
            if bid_price > 0:
                bids.append([round_price(bid_price), self._level_qty()])
            asks.append([round_price(price + offset), self._level_qty()])

        return OrderBook(
            symbol=symbol,
            bids=bids,
            asks=asks,
            timestamp=now_ms(self.clock),
            exchange=self.exchange_name,
        )

    def generate_candles(self, symbol: str, interval: str, count: int) -> List[Dict[str, Any]]:
        """Generate count consecutive candles ending at the current interval.

        The walk starts from the configured base price and uses its own RNG so
        it does not disturb the ticker's price path.
        """
        step_ms = self.interval_seconds(interval) * 1000
        current_open = now_ms(self.clock) // step_ms * step_ms
        first_open = current_open - (count - 1) * step_ms

        if self.config.seed is not None:
            rng = random.Random(f"{self.config.seed}:{symbol}:{interval}")
        else:
            rng = random.Random()

        volatility = self.config.price_volatility
        price = self.config.base_prices.get(symbol, 1.0)
        candles = []

        for k in range(count):
            open_time = first_open + k * step_ms
            open_ = price
            close = max(MIN_PRICE, open_ + open_ * rng.uniform(-1, 1) * volatility)
            high = max(open_, close) * (1 + rng.uniform(0, volatility / 2))
            low = max(MIN_PRICE, min(open_, close) * (1 - rng.uniform(0, volatility / 2)))
            volume = round(rng.uniform(1, 1000), 4)

            # One precision per candle keeps high >= max(open, close) >= min(open, close) >= low
            decimals = price_decimals(low)
            close = round(close, decimals)
            candles.append(
                {
                    "open_time": open_time,
                    "open": round(open_, decimals),
                    "high": round(high, decimals),
                    "low": round(low, decimals),
                    "close": close,
                    "volume": volume,
                    "quote_volume": round(volume * close, 2),
                    "trades": rng.randint(50, 5000),
                    "close_time": open_time + step_ms - 1,
                }
            )
            price = close

        return candles

    def get_candles(
        self,
        symbol: str,
        interval: str,
        limit: int = 100,
        start_time: Optional[int] = None,
        end_time: Optional[int] = None,
    ) -> List[Candle]:
        """Serve candles from the persisted series, generating it on first use."""
        key = self.candles_key(symbol, interval)
        series = self.storage.read(key)

        if not series:
            series = self.generate_candles(symbol, interval, self.config.candle_series_length)
            self.storage.write(key, series)
            logger.debug(f"Generated {len(series)} {interval} candles for {symbol}")

        if start_time is not None:
            series = [c for c in series if c["open_time"] >= start_time]
        if end_time is not None:
            series = [c for c in series if c["open_time"] <= end_time]
        if limit > 0:
            series = series[-limit:]

        return [
            Candle(symbol=symbol, interval=interval, exchange=self.exchange_name, **candle)
            for candle in series
        ]

    @staticmethod
    def candles_key(symbol: str, interval: str) -> str:
        return f"market/candles_{symbol}_{interval}"

    @staticmethod
    def interval_seconds(interval: str) -> int:
        try:
            return CandleInterval(interval).seconds
        except ValueError:
            raise InvalidOrderError(f"Unsupported candle interval: {interval}", "fake")

    def _level_qty(self) -> float:
        return round(self.rng.uniform(self.config.order_book_min_qty, self.config.order_book_max_qty), 4)

    def _build_initial_ticker(self, symbol: str, price: float) -> Dict[str, Any]:
        decimals = price_decimals(price)
        spread = price * INITIAL_SPREAD
        return {
            "symbol": symbol,
            "price": price,
            "bid": round(price - spread, decimals),
            "ask": round(price + spread, decimals),
            "open_24h": price,
            "high_24h": round(price * 1.02, decimals),
            "low_24h": round(price * 0.98, decimals),
            "volume_24h": round(self.rng.uniform(100, 5000), 2),
            "quote_volume_24h": 0.0,
            "change_24h": 0.0,
            "change_pct_24h": 0.0,
            "timestamp": now_ms(self.clock),
        }
