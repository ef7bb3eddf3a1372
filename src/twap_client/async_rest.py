"""Async HTTP client used by price feeds running inside an event loop."""

from __future__ import annotations

import asyncio
import logging

import aiohttp

from twap_client.rest import RestError, RetryPolicy, TransientApiError, raise_for_status

LOGGER = logging.getLogger("twap_bot.client.async_rest")


class AsyncHttpClient:
    """aiohttp counterpart of HttpClient sharing its retry policy.

    Each request is bounded by ``aiohttp.ClientTimeout``; callers may also
    cancel the awaiting task.
    """

    def __init__(
        self,
        timeout: float = 10.0,
        max_retries: int = 2,
        backoff_factor: float = 0.5,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        self.timeout = timeout
        self.retry_policy = RetryPolicy(max_retries, backoff_factor)
        self._session = session
        self._owns_session = session is None

    async def get(self, url: str) -> str:
        attempt = 0
        while True:
            try:
                return await self._get_once(url)
            except RestError as exc:
                attempt += 1
                delay = self.retry_policy.delay(exc, attempt)
                if delay is None:
                    raise
                LOGGER.info("%s; retry %d in %.2fs", exc, attempt, delay)
                await asyncio.sleep(delay)

    async def _get_once(self, url: str) -> str:
        session = await self._ensure_session()
        try:
            async with session.request(
                "GET",
                url,
                headers={"Accept": "application/json"},
                timeout=aiohttp.ClientTimeout(total=self.timeout),
            ) as response:
                body = await response.text()
                raise_for_status(
                    url, response.status, body, response.headers.get("Retry-After")
                )
                return body
        except aiohttp.ClientError as exc:
            raise TransientApiError(f"Network error while requesting {url}") from exc
        except asyncio.TimeoutError as exc:
            raise TransientApiError(f"Timed out requesting {url}") from exc

    async def close(self) -> None:
        if self._session is not None and self._owns_session:
            await self._session.close()
            self._session = None

    async def _ensure_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        return self._session
