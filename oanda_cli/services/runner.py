"""Process entry shared by the feed services: settings, logging and the event loop."""

import asyncio
import logging
from collections.abc import Callable, Coroutine
from typing import Any

from pydantic import ValidationError

from oanda_cli.core.config import Settings, get_settings
from oanda_cli.core.logging import configure_logging

ServiceRun = Callable[[Settings], Coroutine[Any, Any, int]]


def describe_validation_error(exc: ValidationError) -> list[str]:
    """Flatten pydantic errors into ``FIELD: message`` strings."""

    return [
        f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}"
        for error in exc.errors()
    ]


def run_service(run: ServiceRun, settings: Settings | None = None) -> int:
    """Run one feed coroutine to completion and return its exit code."""

    if settings is None:
        try:
            settings = get_settings()
        except ValidationError as exc:
            configure_logging()
            logging.getLogger(__name__).error(
                "settings_invalid", extra={"errors": describe_validation_error(exc)}
            )
            return 1

    configure_logging(settings.LOG_LEVEL)
    try:
        return asyncio.run(run(settings))
    except KeyboardInterrupt:
        return 0
