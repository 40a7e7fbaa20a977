"""Transaction stream service that echoes every account transaction to stdout."""

import asyncio
import logging

from oanda_cli.core.client import OandaClient
from oanda_cli.core.config import Settings
from oanda_cli.core.credentials import resolve_credentials
from oanda_cli.core.errors import LivenessFailure, OandaCliError
from oanda_cli.core.stream import classify_transaction, consume_stream
from oanda_cli.services.runner import run_service
from oanda_cli.services.shutdown import install_signal_handlers, run_until_shutdown


async def _run(settings: Settings) -> int:
    logger = logging.getLogger(__name__)
    shutdown_event = asyncio.Event()
    install_signal_handlers(shutdown_event, logger)

    try:
        credentials = resolve_credentials(settings)
        logger.info(
            "transactions_startup",
            extra={
                "account_id": credentials.account_id,
                "heartbeat_timeout_s": settings.HEARTBEAT_TIMEOUT_S,
                "print_heartbeats": settings.PRINT_HEARTBEATS,
            },
        )
        async with OandaClient(settings, credentials) as client:
            async with client.stream_transactions() as lines:
                emitted = await run_until_shutdown(
                    consume_stream(
                        lines,
                        classify_transaction,
                        print_heartbeats=settings.PRINT_HEARTBEATS,
                        heartbeat_timeout_s=settings.HEARTBEAT_TIMEOUT_S,
                    ),
                    shutdown_event,
                )
    except LivenessFailure as exc:
        logger.error("transactions_liveness_failure", extra={"timeout_s": exc.timeout_s})
        return exc.exit_code
    except OandaCliError as exc:
        logger.error(
            "transactions_failed",
            extra={"error": str(exc), "error_type": type(exc).__name__},
        )
        return exc.exit_code

    if emitted is None:
        logger.info("transactions_shutdown")
    else:
        logger.info("transactions_stream_ended", extra={"lines_emitted": emitted})
    return 0


def main(settings: Settings | None = None) -> int:
    """Stream transactions until the connection closes or the process is interrupted."""

    return run_service(_run, settings)


if __name__ == "__main__":
    raise SystemExit(main())
