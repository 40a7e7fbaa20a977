"""Command-line entrypoint: one subcommand per feed, flags layered over environment settings."""

import argparse
from collections.abc import Callable, Sequence
from typing import Any

from pydantic import ValidationError

from oanda_cli.core.config import Settings, get_settings
from oanda_cli.core.time_utils import parse_duration_s, parse_timestamp_ns
from oanda_cli.services.candles import main as candles_service
from oanda_cli.services.pricing import main as pricing_service
from oanda_cli.services.runner import describe_validation_error
from oanda_cli.services.transactions import main as transactions_service


def _duration(value: str) -> float:
    try:
        return parse_duration_s(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(str(exc)) from None


def _timestamp(value: str) -> str:
    try:
        parse_timestamp_ns(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(str(exc)) from None
    return value


def _add_heartbeat_flags(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--heartbeat",
        dest="PRINT_HEARTBEATS",
        action="store_true",
        default=None,
        help="also print HEARTBEAT lines",
    )
    parser.add_argument(
        "-t",
        "--heartbeat-timeout",
        "--heartbeat-timeout-sec",
        dest="HEARTBEAT_TIMEOUT_S",
        type=_duration,
        metavar="DURATION",
        help="exit with status 2 if no heartbeat arrives within DURATION, e.g. 30s or 500ms (0 disables)",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="oanda", description="oanda v20 cli")
    subparsers = parser.add_subparsers(dest="command", required=True)

    pricing = subparsers.add_parser("pricing", aliases=["p"], help="Get pricing stream")
    pricing.add_argument(
        "-i", "--instruments", dest="INSTRUMENTS", metavar="CSV", help="list of instruments (CSV)"
    )
    pricing.add_argument(
        "-a",
        "--all-instruments",
        dest="ALL_INSTRUMENTS",
        action="store_true",
        default=None,
        help="stream every instrument tradeable on the account",
    )
    _add_heartbeat_flags(pricing)
    pricing.set_defaults(handler=pricing_service.main)

    transactions = subparsers.add_parser(
        "transactions", aliases=["t"], help="Get transaction stream"
    )
    _add_heartbeat_flags(transactions)
    transactions.set_defaults(handler=transactions_service.main)

    candles = subparsers.add_parser("candles", aliases=["c"], help="Poll candlesticks")
    candles.add_argument("-i", "--instrument", dest="INSTRUMENTS", help="instrument, e.g. EUR_USD")
    candles.add_argument(
        "-g", "--granularity", dest="CANDLE_GRANULARITY", help="candle granularity, e.g. S5, M1, H1"
    )
    candles.add_argument(
        "--completed-only",
        dest="COMPLETED_ONLY",
        action="store_true",
        default=None,
        help="only print complete candles",
    )
    candles.add_argument(
        "--interval",
        dest="POLLING_INTERVAL_S",
        type=_duration,
        metavar="DURATION",
        help="delay between polls, e.g. 5s",
    )
    candles.add_argument(
        "--from",
        dest="WINDOW_START",
        type=_timestamp,
        metavar="TIMESTAMP",
        help="first window start (RFC3339 or UNIX seconds); defaults to now",
    )
    candles.add_argument("--count", dest="CANDLE_COUNT", type=int, help="maximum candles per request")
    candles.set_defaults(handler=candles_service.main)

    return parser


def apply_overrides(settings: Settings, args: argparse.Namespace) -> Settings:
    """Return a copy of ``settings`` with every flag the user actually passed applied."""

    overrides: dict[str, Any] = {
        key: value
        for key, value in vars(args).items()
        if key.isupper() and value is not None
    }
    if not overrides:
        return settings
    return settings.model_copy(update=overrides)


def main(argv: Sequence[str] | None = None) -> int:
    """Parse flags and run the selected feed."""

    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        base = get_settings()
    except ValidationError as exc:
        parser.error("invalid settings: " + "; ".join(describe_validation_error(exc)))
    settings = apply_overrides(base, args)
    handler: Callable[[Settings], int] = args.handler
    return handler(settings)


if __name__ == "__main__":
    raise SystemExit(main())
