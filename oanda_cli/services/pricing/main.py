"""Pricing stream service that echoes PRICE lines to stdout until the stream ends."""

import asyncio
import logging

from oanda_cli.core.client import OandaClient
from oanda_cli.core.config import Settings
from oanda_cli.core.credentials import resolve_credentials
from oanda_cli.core.errors import LivenessFailure, OandaCliError
from oanda_cli.core.stream import classify_pricing, consume_stream
from oanda_cli.services.runner import run_service
from oanda_cli.services.shutdown import install_signal_handlers, run_until_shutdown


async def _stream_prices(
    settings: Settings, logger: logging.Logger, shutdown_event: asyncio.Event
) -> int:
    credentials = resolve_credentials(settings)

    async with OandaClient(settings, credentials) as client:
        if settings.ALL_INSTRUMENTS:
            instruments = await client.list_instruments()
        else:
            instruments = settings.instruments()
        if not instruments:
            logger.error("pricing_invalid_instruments")
            return 1

        logger.info(
            "pricing_startup",
            extra={
                "account_id": credentials.account_id,
                "instruments": list(instruments),
                "heartbeat_timeout_s": settings.HEARTBEAT_TIMEOUT_S,
                "print_heartbeats": settings.PRINT_HEARTBEATS,
            },
        )

        async with client.stream_pricing(instruments) as lines:
            emitted = await run_until_shutdown(
                consume_stream(
                    lines,
                    classify_pricing,
                    print_heartbeats=settings.PRINT_HEARTBEATS,
                    heartbeat_timeout_s=settings.HEARTBEAT_TIMEOUT_S,
                ),
                shutdown_event,
            )

    if emitted is None:
        logger.info("pricing_shutdown")
    else:
        logger.info("pricing_stream_ended", extra={"lines_emitted": emitted})
    return 0


async def _run(settings: Settings) -> int:
    logger = logging.getLogger(__name__)
    shutdown_event = asyncio.Event()
    install_signal_handlers(shutdown_event, logger)

    try:
        return await _stream_prices(settings, logger, shutdown_event)
    except LivenessFailure as exc:
        logger.error("pricing_liveness_failure", extra={"timeout_s": exc.timeout_s})
        return exc.exit_code
    except OandaCliError as exc:
        logger.error(
            "pricing_failed",
            extra={"error": str(exc), "error_type": type(exc).__name__},
        )
        return exc.exit_code


def main(settings: Settings | None = None) -> int:
    """Stream prices until the connection closes or the process is interrupted."""

    return run_service(_run, settings)


if __name__ == "__main__":
    raise SystemExit(main())
