"""Signal-driven shutdown shared by every feed service."""

import asyncio
import logging
import signal
from collections.abc import Coroutine
from typing import Any, TypeVar

_T = TypeVar("_T")


def _request_shutdown(
    shutdown_event: asyncio.Event, logger: logging.Logger, signal_name: str
) -> None:
    if shutdown_event.is_set():
        return
    logger.info("shutdown_signal", extra={"signal": signal_name})
    shutdown_event.set()


def install_signal_handlers(shutdown_event: asyncio.Event, logger: logging.Logger) -> None:
    loop = asyncio.get_running_loop()

    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(
                sig,
                _request_shutdown,
                shutdown_event,
                logger,
                sig.name,
            )
        except NotImplementedError:
            signal_name = sig.name
            signal.signal(
                sig,
                lambda *_, signal_name=signal_name: _request_shutdown(
                    shutdown_event, logger, signal_name
                ),
            )


async def run_until_shutdown(
    work: Coroutine[Any, Any, _T], shutdown_event: asyncio.Event
) -> _T | None:
    """Run ``work`` and cancel it once ``shutdown_event`` is set; returns None when cancelled."""

    work_task = asyncio.ensure_future(work)
    shutdown_task = asyncio.ensure_future(shutdown_event.wait())
    try:
        await asyncio.wait({work_task, shutdown_task}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        for task in (work_task, shutdown_task):
            if not task.done():
                task.cancel()
        await asyncio.gather(work_task, shutdown_task, return_exceptions=True)

    if work_task.cancelled():
        return None
    return work_task.result()
