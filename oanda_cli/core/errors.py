"""Exception taxonomy for feed ingestion failures; nothing here is retried."""


class OandaCliError(Exception):
    """Base class for every failure surfaced by the feed engine."""

    exit_code = 1


class CredentialsError(OandaCliError):
    """Credentials file is missing, unreadable or incomplete."""


class FeedConnectionError(OandaCliError):
    """Non-success status or transport failure on a feed or poll request."""

    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


class DecodeError(OandaCliError):
    """A stream line or response body could not be parsed."""


class LivenessFailure(OandaCliError):
    """No heartbeat arrived within the configured timeout."""

    exit_code = 2

    def __init__(self, timeout_s: float) -> None:
        super().__init__(f"no heartbeat received within {timeout_s:g}s")
        self.timeout_s = timeout_s
