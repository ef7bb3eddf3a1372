"""Price feed implementations used to anchor sell levels."""

from __future__ import annotations

import json
import logging
from decimal import Decimal, InvalidOperation
from typing import Any, Mapping, Protocol

from twap_client.async_rest import AsyncHttpClient
from twap_client.rest import HttpClient, RestError

LOGGER = logging.getLogger("twap_bot.client.price_feed")


class PriceFeedError(RuntimeError):
    """Raised when a price source is unavailable or returns an unusable price."""


class PriceFeed(Protocol):
    def get_price(self) -> Decimal:
        """Return the current reference price."""


class AsyncPriceFeed(Protocol):
    async def get_price(self) -> Decimal:
        """Return the current reference price."""


class TextGetter(Protocol):
    def get(self, url: str) -> str:
        """Return the response body for a GET request."""


def extract_json_value(payload: Any, json_path: str) -> Any:
    """Walk a dotted path (``data.prices.0.last``) through decoded JSON."""
    current = payload
    for part in json_path.split("."):
        if part == "":
            raise KeyError(f"empty segment in json path '{json_path}'")
        if isinstance(current, Mapping):
            if part not in current:
                raise KeyError(f"'{part}' not found (path '{json_path}')")
            current = current[part]
        elif isinstance(current, list):
            try:
                current = current[int(part)]
            except (ValueError, IndexError) as exc:
                raise KeyError(
                    f"invalid list index '{part}' (path '{json_path}')"
                ) from exc
        else:
            raise KeyError(f"cannot descend into scalar at '{part}' (path '{json_path}')")
    return current


def parse_price(raw: Any) -> Decimal:
    if isinstance(raw, bool) or raw is None:
        raise ValueError(f"not a price: {raw!r}")
    try:
        price = Decimal(str(raw).strip())
    except InvalidOperation as exc:
        raise ValueError(f"not a price: {raw!r}") from exc
    if not price.is_finite() or price <= 0:
        raise ValueError(f"price must be positive and finite, got {price}")
    return price


class FixedPriceFeed:
    """Always returns the configured price."""

    def __init__(self, value: Decimal | str) -> None:
        try:
            self.value = parse_price(value)
        except ValueError as exc:
            raise PriceFeedError(f"fixed price feed error: {exc}") from exc

    def get_price(self) -> Decimal:
        return self.value

    def __repr__(self) -> str:
        return f"FixedPriceFeed({self.value})"


class UrlPriceFeed:
    """Fetches a URL whose body is a bare number."""

    def __init__(self, url: str, http_client: TextGetter | None = None) -> None:
        self.url = url
        self.http_client = http_client or HttpClient()

    def get_price(self) -> Decimal:
        try:
            body = self.http_client.get(self.url)
            return parse_price(body)
        except (RestError, ValueError) as exc:
            raise PriceFeedError(f"url price feed error: {exc}") from exc

    def __repr__(self) -> str:
        return f"UrlPriceFeed({self.url})"


class GenericPriceFeed:
    """Fetches JSON from a URL and reads the price at a dotted path."""

    def __init__(
        self, url: str, json_path: str, http_client: TextGetter | None = None
    ) -> None:
        self.url = url
        self.json_path = json_path
        self.http_client = http_client or HttpClient()

    def get_price(self) -> Decimal:
        try:
            body = self.http_client.get(self.url)
            raw_price = extract_json_value(json.loads(body), self.json_path)
            price = parse_price(raw_price)
        except (RestError, ValueError, KeyError) as exc:
            raise PriceFeedError(f"generic price feed error: {exc}") from exc
        LOGGER.debug("Fetched price %s from %s (%s)", price, self.url, self.json_path)
        return price

    def __repr__(self) -> str:
        return f"GenericPriceFeed({self.url}, {self.json_path})"


class AsyncGenericPriceFeed:
    """Async counterpart of GenericPriceFeed and UrlPriceFeed.

    Without a ``json_path`` the response body itself must be the price.
    """

    def __init__(
        self,
        url: str,
        json_path: str | None = None,
        http_client: AsyncHttpClient | None = None,
    ) -> None:
        self.url = url
        self.json_path = json_path
        self.http_client = http_client or AsyncHttpClient()

    async def get_price(self) -> Decimal:
        try:
            body = await self.http_client.get(self.url)
            if self.json_path is None:
                return parse_price(body)
            raw_price = extract_json_value(json.loads(body), self.json_path)
            return parse_price(raw_price)
        except (RestError, ValueError, KeyError) as exc:
            raise PriceFeedError(f"generic price feed error: {exc}") from exc

    async def close(self) -> None:
        await self.http_client.close()

    def __repr__(self) -> str:
        return f"AsyncGenericPriceFeed({self.url}, {self.json_path})"


def make_price_feed(
    config: Mapping[str, Any],
    http_client: TextGetter | None = None,
    *,
    use_asyncio: bool = False,
) -> PriceFeed | AsyncPriceFeed:
    """Build a price feed from a ``price_feed`` config mapping.

    With ``use_asyncio`` the url and json feeds are backed by aiohttp;
    a fixed feed needs no I/O and is returned as is.
    """
    feed_type = str(config.get("type", "")).strip().lower()
    timeout = float(config.get("timeout_sec", 10.0))
    retries = int(config.get("retries", 2))
    backoff = float(config.get("backoff_factor", 0.5))
    if feed_type == "fixed":
        return FixedPriceFeed(str(config.get("value", "")))
    if feed_type not in {"url", "json"}:
        raise ValueError(
            f"Unsupported price feed type '{feed_type}'. Expected fixed, url or json."
        )
    json_path = str(config["json_path"]) if feed_type == "json" else None
    if use_asyncio:
        return AsyncGenericPriceFeed(
            str(config["url"]),
            json_path,
            AsyncHttpClient(timeout=timeout, max_retries=retries, backoff_factor=backoff),
        )
    if http_client is None:
        http_client = HttpClient(
            timeout=timeout, max_retries=retries, backoff_factor=backoff
        )
    if json_path is None:
        return UrlPriceFeed(str(config["url"]), http_client)
    return GenericPriceFeed(str(config["url"]), json_path, http_client)
