"""Blocking HTTP client used by price feeds."""

from __future__ import annotations

import logging
import random
import ssl
import time
from dataclasses import dataclass
from typing import Callable, Mapping
from urllib.error import HTTPError, URLError
from urllib.request import Request, urlopen

LOGGER = logging.getLogger("twap_bot.client.rest")

TRANSIENT_STATUSES = frozenset({500, 502, 503, 504})


class RestError(Exception):
    """Base exception for REST client errors."""


class RateLimitError(RestError):
    """Raised when the remote indicates that the rate limit has been exceeded."""

    def __init__(self, message: str, retry_after: float | None = None) -> None:
        super().__init__(message)
        self.retry_after = retry_after


class TransientApiError(RestError):
    """Raised for transient errors that may succeed on retry."""


def parse_retry_after(header_value: str | None) -> float | None:
    if header_value is None:
        return None
    try:
        return float(header_value)
    except ValueError:
        return None


def raise_for_status(url: str, status: int, body: str, retry_after: str | None) -> None:
    """Map an HTTP status onto the client error hierarchy."""
    if status == 429:
        raise RateLimitError(
            f"Rate limit exceeded for {url}", retry_after=parse_retry_after(retry_after)
        )
    if status in TRANSIENT_STATUSES:
        raise TransientApiError(f"Transient HTTP error {status} for {url}")
    if status >= 400:
        raise RestError(f"HTTP error {status}: {body}" if body else f"HTTP error {status}")


@dataclass(frozen=True)
class RetryPolicy:
    """How many times to retry a GET and how long to wait in between.

    Rate-limit responses honour ``Retry-After``; everything else backs off
    exponentially with full jitter on top of the base delay.
    """

    max_retries: int = 2
    backoff_factor: float = 0.5

    def delay(self, exc: RestError, attempt: int) -> float | None:
        """Seconds to wait before ``attempt``, or None when the error is final."""
        if not isinstance(exc, (RateLimitError, TransientApiError)):
            return None
        if attempt > self.max_retries:
            return None
        if isinstance(exc, RateLimitError) and exc.retry_after:
            return exc.retry_after
        base = self.backoff_factor * (2 ** (attempt - 1))
        return base + random.uniform(0, base)


class HttpClient:
    """GET client with a hard per-request timeout and retries."""

    def __init__(
        self,
        timeout: float = 10.0,
        max_retries: int = 2,
        backoff_factor: float = 0.5,
        headers: Mapping[str, str] | None = None,
        verify_ssl: bool = True,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.timeout = timeout
        self.retry_policy = RetryPolicy(max_retries, backoff_factor)
        self.headers = {"Accept": "application/json", **dict(headers or {})}
        self._sleep = sleep
        if verify_ssl:
            self._ssl_context = ssl.create_default_context()
        else:
            self._ssl_context = ssl._create_unverified_context()
            LOGGER.warning("SSL certificate verification is DISABLED for price requests.")

    @property
    def max_retries(self) -> int:
        return self.retry_policy.max_retries

    def get(self, url: str) -> str:
        attempt = 0
        while True:
            try:
                return self._get_once(url)
            except RestError as exc:
                attempt += 1
                delay = self.retry_policy.delay(exc, attempt)
                if delay is None:
                    raise
                LOGGER.info("%s; retry %d in %.2fs", exc, attempt, delay)
                self._sleep(delay)

    def _get_once(self, url: str) -> str:
        request = Request(url=url, method="GET", headers=self.headers)
        try:
            with urlopen(request, timeout=self.timeout, context=self._ssl_context) as resp:
                return resp.read().decode("utf8")
        except HTTPError as exc:
            body = exc.read().decode("utf8") if exc.fp else ""
            raise_for_status(url, exc.code, body, exc.headers.get("Retry-After"))
            raise RestError(f"HTTP error {exc.code}") from exc
        except (URLError, TimeoutError) as exc:
            raise TransientApiError(f"Network error while requesting {url}") from exc
