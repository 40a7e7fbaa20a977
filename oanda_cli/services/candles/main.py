"""Candle polling service that prints new and amended bars as compact JSON lines."""

import asyncio
import logging

from oanda_cli.core.candles import CandlePoller
from oanda_cli.core.client import OandaClient
from oanda_cli.core.config import Settings
from oanda_cli.core.credentials import resolve_credentials
from oanda_cli.core.errors import OandaCliError
from oanda_cli.core.time_utils import format_timestamp, parse_timestamp_ns, utc_now
from oanda_cli.core.types import Candlestick
from oanda_cli.services.runner import run_service
from oanda_cli.services.shutdown import install_signal_handlers


def _window_start(settings: Settings) -> str:
    window_start = settings.WINDOW_START.strip()
    if not window_start:
        return format_timestamp(utc_now())
    parse_timestamp_ns(window_start)
    return window_start


async def _run(settings: Settings) -> int:
    logger = logging.getLogger(__name__)
    shutdown_event = asyncio.Event()

    instruments = settings.instruments()
    if len(instruments) != 1:
        logger.error("candles_invalid_instrument", extra={"instruments": list(instruments)})
        return 1
    instrument = instruments[0]

    try:
        window_start = _window_start(settings)
    except ValueError as exc:
        logger.error("candles_invalid_window_start", extra={"error": str(exc)})
        return 1

    install_signal_handlers(shutdown_event, logger)

    try:
        credentials = resolve_credentials(settings)
        logger.info(
            "candles_startup",
            extra={
                "instrument": instrument,
                "granularity": settings.CANDLE_GRANULARITY,
                "count": settings.candle_count(),
                "window_start": window_start,
                "completed_only": settings.COMPLETED_ONLY,
                "polling_interval_s": settings.POLLING_INTERVAL_S,
            },
        )
        async with OandaClient(settings, credentials) as client:

            async def fetch(from_time: str) -> list[Candlestick]:
                return await client.get_candles(
                    instrument,
                    settings.CANDLE_GRANULARITY,
                    from_time,
                    settings.candle_count(),
                    settings.CANDLE_PRICE,
                )

            poller = CandlePoller(
                fetch,
                window_start,
                completed_only=settings.COMPLETED_ONLY,
                polling_interval_s=settings.POLLING_INTERVAL_S,
            )
            emitted = await poller.run(shutdown_event)
    except OandaCliError as exc:
        logger.error(
            "candles_failed",
            extra={"error": str(exc), "error_type": type(exc).__name__},
        )
        return exc.exit_code

    logger.info("candles_shutdown", extra={"candles_emitted": emitted})
    return 0


def main(settings: Settings | None = None) -> int:
    """Poll candles until a request fails or the process is interrupted."""

    return run_service(_run, settings)


if __name__ == "__main__":
    raise SystemExit(main())
