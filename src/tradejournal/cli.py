"""CLI entry point for the trade journal.

Commands:
  - migrate: Run database migrations
  - stats: Print an owner's position summary and monthly P&L
  - refresh-prices: Re-mark an owner's open positions and pending focus stocks
  - token: Issue a session token for a user
  - serve: Run the HTTP API
"""

from __future__ import annotations

import argparse
import logging
from pathlib import Path

from tradejournal.config import load_config
from tradejournal.models.position import Owner
from tradejournal.registry.db import Database
from tradejournal.registry.queries import Registry


def setup_logging(verbose: bool = False) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)-8s %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def _owner(args: argparse.Namespace) -> Owner:
    return Owner.team(args.team) if args.team is not None else Owner.user(args.owner)


def cmd_migrate(args: argparse.Namespace) -> None:
    """Run database migrations."""
    config = load_config()
    migrations_dir = Path(__file__).parent / "registry" / "migrations"
    with Database(config.db_dsn) as db:
        db.run_migrations(str(migrations_dir))
    logging.info("Migrations complete")


def cmd_stats(args: argparse.Namespace) -> None:
    """Print position summary and monthly breakdown for one owner."""
    from tradejournal.ledger.positions import PositionBook
    from tradejournal.ledger.reporting import monthly_breakdown, summarize

    config = load_config()
    owner = _owner(args)
    with Database(config.db_dsn) as db:
        book = PositionBook(Registry(db), max_symbol_length=config.max_symbol_length)
        positions = book.list(owner)

    s = summarize(positions)
    print(f"Owner: {owner.kind}:{owner.id}")
    print(f"Positions: {s.total_positions} ({s.open_positions} open, {s.closed_positions} closed)")
    print(f"Invested: {s.total_investment:,.2f}")
    print(f"Realized P&L: {s.realized_pnl:,.2f}")
    print(f"Unrealized P&L: {s.unrealized_pnl:,.2f}")
    print(f"Win rate: {s.win_rate:.1f}% ({s.winning_trades}/{s.closed_positions})")

    buckets = monthly_breakdown(positions, year=args.year)
    if buckets:
        print("\nMonthly realized P&L:")
        for b in buckets:
            print(
                f"  {b.month:<9s} {b.year}  "
                f"trades={b.trade_count:<3d} pnl={b.total_pnl:>12,.2f} "
                f"avg={b.avg_pnl_percentage:.2f}%"
            )


def cmd_refresh_prices(args: argparse.Namespace) -> None:
    """Pull quotes and re-mark open positions and pending focus stocks."""
    from tradejournal.data.quotes import QuoteProvider
    from tradejournal.ledger.focus import FocusStockService
    from tradejournal.ledger.positions import PositionBook
    from tradejournal.models.lifecycle import PositionStatus

    config = load_config()
    owner = _owner(args)
    quotes = QuoteProvider(cache_seconds=config.quote_cache_seconds)
    with Database(config.db_dsn) as db:
        registry = Registry(db)
        book = PositionBook(registry, max_symbol_length=config.max_symbol_length)
        focus = FocusStockService(registry, max_symbol_length=config.max_symbol_length)

        symbols = {p.symbol for p in book.list(owner, status=PositionStatus.OPEN)}
        symbols.update(s.symbol for s in focus.pending(owner))
        prices = quotes.get_prices(symbols)
        positions = book.mark_prices(owner, prices)
        stocks = focus.mark_prices(owner, prices)

    print(f"Quoted {len(prices)}/{len(symbols)} symbols")
    print(f"Updated {len(positions)} positions, {len(stocks)} focus stocks")


def cmd_token(args: argparse.Namespace) -> None:
    """Print a signed session token for a user."""
    from tradejournal.api.auth import create_token

    config = load_config()
    if not config.auth_secret_key:
        logging.error("AUTH_SECRET_KEY is not set; the API runs without auth")
        raise SystemExit(1)
    hours = args.hours or config.auth_token_expiry_hours
    print(create_token(config.auth_secret_key, hours, args.user))


def cmd_serve(args: argparse.Namespace) -> None:
    """Run the HTTP API with uvicorn."""
    import uvicorn

    from tradejournal.api.app import create_app

    uvicorn.run(create_app(use_lifespan=True), host=args.host, port=args.port)


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(
        prog="tradejournal",
        description="Trading journal: positions, focus stocks and team trades",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Verbose output")

    subs = parser.add_subparsers(dest="command", required=True)

    # migrate
    subs.add_parser("migrate", help="Run database migrations")

    # stats
    p_stats = subs.add_parser("stats", help="Show position summary and monthly P&L")
    p_stats.add_argument("--owner", default="local", help="User id")
    p_stats.add_argument("--team", type=int, default=None, help="Team id (overrides --owner)")
    p_stats.add_argument("--year", type=int, default=None, help="Limit monthly breakdown to a year")

    # refresh-prices
    p_refresh = subs.add_parser("refresh-prices", help="Re-mark open positions from live quotes")
    p_refresh.add_argument("--owner", default="local", help="User id")
    p_refresh.add_argument("--team", type=int, default=None, help="Team id (overrides --owner)")

    # token
    p_token = subs.add_parser("token", help="Issue a session token")
    p_token.add_argument("user", help="User id to put in the token")
    p_token.add_argument("--hours", type=int, default=None, help="Expiry in hours")

    # serve
    p_serve = subs.add_parser("serve", help="Run the HTTP API")
    p_serve.add_argument("--host", default="0.0.0.0")
    p_serve.add_argument("--port", type=int, default=8000)

    args = parser.parse_args(argv)
    setup_logging(args.verbose)

    commands = {
        "migrate": cmd_migrate,
        "stats": cmd_stats,
        "refresh-prices": cmd_refresh_prices,
        "token": cmd_token,
        "serve": cmd_serve,
    }
    commands[args.command](args)


if __name__ == "__main__":
    main()
