"""Environment-driven settings shared by all feeds; CLI flags layer on top of these."""

from functools import lru_cache
from typing import Callable

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_MAX_CANDLE_COUNT = 5000
_HOSTS = {
    "practice": ("https://stream-fxpractice.oanda.com", "https://api-fxpractice.oanda.com"),
    "live": ("https://stream-fxtrade.oanda.com", "https://api-fxtrade.oanda.com"),
}


class Settings(BaseSettings):
    """Simple application settings loaded from environment variables or a local .env file."""

    APP_NAME: str = "oanda-cli"
    VERSION: str = "0.1.0"
    LOG_LEVEL: str = "INFO"
    ENVIRONMENT: str = "practice"
    STREAM_BASE_URL: str = ""
    API_BASE_URL: str = ""
    CREDENTIALS_PATH: str = "~/.config/oanda/credentials.yaml"
    CREDENTIALS_PROFILE: str = "default"
    ACCOUNT_ID: str = ""
    API_TOKEN: str = ""
    REQUEST_TIMEOUT_S: float = 10.0
    INSTRUMENTS: str = "EUR_USD"
    ALL_INSTRUMENTS: bool = False
    PRINT_HEARTBEATS: bool = False
    HEARTBEAT_TIMEOUT_S: float = 0.0
    CANDLE_GRANULARITY: str = "S5"
    CANDLE_COUNT: int = 500
    CANDLE_PRICE: str = "MBA"
    COMPLETED_ONLY: bool = False
    POLLING_INTERVAL_S: float = 5.0
    WINDOW_START: str = ""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @field_validator("ENVIRONMENT", mode="before")
    @classmethod
    def normalize_environment(cls, value: object) -> str:
        environment = str(value).strip().lower()
        if environment not in _HOSTS:
            raise ValueError(f"unknown ENVIRONMENT {value!r}, expected practice or live")
        return environment

    def instruments(self) -> tuple[str, ...]:
        """Return normalized instrument list from INSTRUMENTS."""

        return self._split_csv(self.INSTRUMENTS, transform=str.upper)

    def stream_base_url(self) -> str:
        """Return the streaming host, honoring an explicit override."""

        if self.STREAM_BASE_URL.strip():
            return self.STREAM_BASE_URL.strip().rstrip("/")
        return _HOSTS[self.ENVIRONMENT][0]

    def api_base_url(self) -> str:
        """Return the REST host, honoring an explicit override."""

        if self.API_BASE_URL.strip():
            return self.API_BASE_URL.strip().rstrip("/")
        return _HOSTS[self.ENVIRONMENT][1]

    def candle_count(self) -> int:
        """Clamp the requested batch size to what the candles endpoint accepts."""

        return min(max(1, self.CANDLE_COUNT), _MAX_CANDLE_COUNT)

    @staticmethod
    def _split_csv(value: str, transform: Callable[[str], str]) -> tuple[str, ...]:
        """Split comma-separated values while removing empty entries and duplicates."""

        items: list[str] = []
        seen: set[str] = set()

        for raw in value.split(","):
            item = transform(raw.strip())
            if not item or item in seen:
                continue
            seen.add(item)
            items.append(item)

        return tuple(items)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings to avoid repeated environment parsing."""

    return Settings()
