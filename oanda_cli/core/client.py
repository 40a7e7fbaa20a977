"""Async v20 REST/streaming client built on a single aiohttp session."""

import asyncio
import json
import logging
from collections.abc import AsyncIterator
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from typing import Any

import aiohttp

from oanda_cli.core.candles import parse_candles_response
from oanda_cli.core.config import Settings
from oanda_cli.core.errors import DecodeError, FeedConnectionError
from oanda_cli.core.types import Candlestick, Credentials

LineStream = AbstractAsyncContextManager[AsyncIterator[bytes]]

logger = logging.getLogger(__name__)


async def _iter_lines(response: aiohttp.ClientResponse) -> AsyncIterator[bytes]:
    try:
        async for line in response.content:
            yield line
    except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
        raise FeedConnectionError(f"stream read failed: {exc}") from exc


async def _raise_for_status(response: aiohttp.ClientResponse) -> None:
    if response.status == 200:
        return
    try:
        body = await response.text()
    except aiohttp.ClientError:
        body = ""
    logger.error(
        "oanda_request_rejected",
        extra={"status": response.status, "reason": response.reason, "url": str(response.url)},
    )
    raise FeedConnectionError(
        body or f"HTTP {response.status} {response.reason}", status=response.status
    )


class OandaClient:
    """Thin wrapper over the pricing, transaction and instrument endpoints.

    Use as an async context manager; the session is closed on exit.
    """

    def __init__(self, settings: Settings, credentials: Credentials) -> None:
        self.settings = settings
        self.credentials = credentials
        self.stream_base_url = settings.stream_base_url()
        self.api_base_url = settings.api_base_url()
        self.session: aiohttp.ClientSession | None = None

    async def __aenter__(self) -> "OandaClient":
        self.session = aiohttp.ClientSession(
            headers={
                "Authorization": f"Bearer {self.credentials.token}",
                "Content-Type": "application/json",
                "Accept-Datetime-Format": "RFC3339",
            },
            # Streams never finish, so only the connect phase is bounded here.
            timeout=aiohttp.ClientTimeout(
                total=None,
                sock_connect=self.settings.REQUEST_TIMEOUT_S,
            ),
        )
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        if self.session is not None:
            await self.session.close()
            self.session = None

    def _session(self) -> aiohttp.ClientSession:
        if self.session is None:
            raise RuntimeError("client is not open; use 'async with OandaClient(...)'")
        return self.session

    @asynccontextmanager
    async def _open_stream(
        self, path: str, params: dict[str, str] | None = None
    ) -> AsyncIterator[AsyncIterator[bytes]]:
        url = f"{self.stream_base_url}{path}"
        try:
            response = await self._session().get(url, params=params)
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            raise FeedConnectionError(f"cannot open stream {url}: {exc}") from exc

        try:
            await _raise_for_status(response)
            logger.info("oanda_stream_connected", extra={"url": url})
            yield _iter_lines(response)
        finally:
            response.close()

    def stream_pricing(self, instruments: tuple[str, ...]) -> LineStream:
        """Open the pricing stream for ``instruments``; yields the raw line iterator."""

        path = f"/v3/accounts/{self.credentials.account_id}/pricing/stream"
        return self._open_stream(path, params={"instruments": ",".join(instruments)})

    def stream_transactions(self) -> LineStream:
        """Open the account transaction stream; yields the raw line iterator."""

        return self._open_stream(f"/v3/accounts/{self.credentials.account_id}/transactions/stream")

    async def _get_json(self, path: str, params: dict[str, str] | None = None) -> Any:
        url = f"{self.api_base_url}{path}"
        timeout = aiohttp.ClientTimeout(total=self.settings.REQUEST_TIMEOUT_S)
        try:
            async with self._session().get(url, params=params, timeout=timeout) as response:
                await _raise_for_status(response)
                body = await response.text()
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            raise FeedConnectionError(f"request to {url} failed: {exc}") from exc

        try:
            return json.loads(body)
        except json.JSONDecodeError as exc:
            raise DecodeError(f"response from {url} is not valid JSON: {exc}") from exc

    async def get_candles(
        self,
        instrument: str,
        granularity: str,
        from_time: str,
        count: int,
        price: str = "MBA",
    ) -> list[Candlestick]:
        """Fetch up to ``count`` candles starting at ``from_time``."""

        payload = await self._get_json(
            f"/v3/instruments/{instrument}/candles",
            params={
                "price": price,
                "granularity": granularity,
                "from": from_time,
                "count": str(count),
            },
        )
        return parse_candles_response(payload)

    async def list_instruments(self) -> tuple[str, ...]:
        """Return the names of every instrument tradeable on the account."""

        payload = await self._get_json(f"/v3/accounts/{self.credentials.account_id}/instruments")
        instruments = payload.get("instruments") if isinstance(payload, dict) else None
        if not isinstance(instruments, list):
            raise DecodeError("instruments response has no 'instruments' array")

        names: list[str] = []
        for entry in instruments:
            name = entry.get("name") if isinstance(entry, dict) else None
            if not isinstance(name, str) or not name:
                raise DecodeError("instrument entry has no 'name'")
            names.append(name)
        return tuple(names)
