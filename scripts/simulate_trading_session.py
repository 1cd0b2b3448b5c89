#!/usr/bin/env python3
"""
Run a short trading session against the simulated exchange and print the
resulting balances, orders and trades.
"""

import argparse
import tempfile

from rich.console import Console
from rich.table import Table

from src.exchangehub.config import FakeExchangeSettings
from src.exchangehub.simulator import FakeExchange


def balances_table(exchange: FakeExchange) -> Table:
    table = Table(title="Balances")
    table.add_column("Asset")
    table.add_column("Free", justify="right")
    table.add_column("Locked", justify="right")
    table.add_column("Staked", justify="right")
    for asset, balance in sorted(exchange.get_balances().items()):
        table.add_row(asset, f"{balance.free:,.8f}", f"{balance.locked:,.8f}", f"{balance.staked:,.8f}")
    return table


def orders_table(exchange: FakeExchange, symbol: str) -> Table:
    table = Table(title=f"{symbol} orders")
    for column in ("Order", "Type", "Side", "Qty", "Price", "Status"):
        table.add_column(column)
    for order in exchange.get_open_orders(symbol) + exchange.get_order_history(symbol):
        table.add_row(
            order.order_id,
            order.type.value,
            order.side.value,
            f"{order.quantity}",
            f"{order.avg_price or order.price:,.4f}",
            order.status.value,
        )
    return table


def main():
    parser = argparse.ArgumentParser(description="Simulated exchange trading session")
    parser.add_argument("--symbol", default="BTCUSDT")
    parser.add_argument("--ticks", type=int, default=50, help="Ticker reads after placing orders")
    parser.add_argument("--seed", type=int, default=42)
    parser.add_argument("--data-path", default=None, help="Ledger directory (temporary by default)")
    args = parser.parse_args()

    console = Console()
    data_path = args.data_path or tempfile.mkdtemp(prefix="fake_exchange_")
    config = FakeExchangeSettings(data_path=data_path, seed=args.seed, price_volatility=0.01)

    with FakeExchange(config=config) as exchange:
        ticker = exchange.get_ticker(args.symbol)
        console.print(f"[bold]{args.symbol}[/bold] starts at {ticker.price:,.2f} (ledger: {data_path})")

        exchange.create_order(args.symbol, "BUY", "MARKET", 0.01)
        exchange.create_order(args.symbol, "BUY", "LIMIT", 0.01, price=round(ticker.price * 0.99, 2))
        exchange.create_order(args.symbol, "SELL", "LIMIT", 0.01, price=round(ticker.price * 1.01, 2))
        exchange.create_oco_order(
            args.symbol,
            "SELL",
            0.005,
            price=round(ticker.price * 1.02, 2),
            stop_price=round(ticker.price * 0.98, 2),
            stop_limit_price=round(ticker.price * 0.975, 2),
        )

        for _ in range(args.ticks):
            ticker = exchange.get_ticker(args.symbol)
        console.print(f"{args.symbol} ends at {ticker.price:,.2f}")

        console.print(balances_table(exchange))
        console.print(orders_table(exchange, args.symbol))
        console.print(f"Trades: {len(exchange.get_my_trades(args.symbol))}")


if __name__ == "__main__":
    main()
