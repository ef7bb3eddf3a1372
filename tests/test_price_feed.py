"""Tests for price feed implementations."""

from __future__ import annotations

import json
from decimal import Decimal
from typing import Any

import pytest

from twap_client.async_rest import AsyncHttpClient
from twap_client.price_feed import (
    AsyncGenericPriceFeed,
    FixedPriceFeed,
    GenericPriceFeed,
    PriceFeedError,
    UrlPriceFeed,
    extract_json_value,
    make_price_feed,
)
from twap_client.rest import HttpClient, TransientApiError


class FakeGetter:
    def __init__(self, body: str | Exception) -> None:
        self.body = body
        self.urls: list[str] = []

    def get(self, url: str) -> str:
        self.urls.append(url)
        if isinstance(self.body, Exception):
            raise self.body
        return self.body


class FakeResponse:
    def __init__(self, status: int, payload: Any, headers: dict[str, str] | None = None):
        self.status = status
        self._payload = payload
        self.headers = headers or {}

    async def text(self) -> str:
        return json.dumps(self._payload)

    async def __aenter__(self) -> "FakeResponse":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        return False


class FakeSession:
    def __init__(self, responses: list[FakeResponse]) -> None:
        self.responses = responses
        self.requests: list[dict[str, Any]] = []

    def request(self, method: str, url: str, headers=None, timeout=None) -> FakeResponse:
        self.requests.append({"method": method, "url": url, "timeout": timeout})
        return self.responses.pop(0)

    async def close(self) -> None:
        return None


def test_extract_json_value_walks_mappings_and_lists():
    payload = {"data": {"tickers": [{"last": "0.1"}, {"last": "0.2"}]}}

    assert extract_json_value(payload, "data.tickers.1.last") == "0.2"
    with pytest.raises(KeyError):
        extract_json_value(payload, "data.missing")
    with pytest.raises(KeyError):
        extract_json_value(payload, "data.tickers.7.last")


def test_fixed_price_feed():
    assert FixedPriceFeed("0.25").get_price() == Decimal("0.25")
    with pytest.raises(PriceFeedError):
        FixedPriceFeed("0")


def test_url_price_feed_parses_bare_number():
    getter = FakeGetter(" 1.2345\n")
    feed = UrlPriceFeed("https://prices.example/xlm", getter)

    assert feed.get_price() == Decimal("1.2345")
    assert getter.urls == ["https://prices.example/xlm"]


def test_generic_price_feed_reads_json_path():
    getter = FakeGetter(json.dumps({"data": {"price": 0.1234}}))
    feed = GenericPriceFeed("https://prices.example/ticker", "data.price", getter)

    assert feed.get_price() == Decimal("0.1234")


@pytest.mark.parametrize(
    "body",
    [
        "not json",
        json.dumps({"data": {}}),
        json.dumps({"data": {"price": "-1"}}),
        json.dumps({"data": {"price": None}}),
        TransientApiError("down"),
    ],
)
def test_generic_price_feed_wraps_failures(body):
    feed = GenericPriceFeed("https://prices.example/ticker", "data.price", FakeGetter(body))

    with pytest.raises(PriceFeedError, match="generic price feed error"):
        feed.get_price()


def test_make_price_feed_builds_each_type():
    fixed = make_price_feed({"type": "fixed", "value": "2"})
    url_feed = make_price_feed({"type": "url", "url": "https://p.example/x"})
    json_feed = make_price_feed(
        {
            "type": "json",
            "url": "https://p.example/x",
            "json_path": "data.last",
            "timeout_sec": 3,
            "retries": 5,
        }
    )

    assert isinstance(fixed, FixedPriceFeed)
    assert isinstance(url_feed, UrlPriceFeed)
    assert isinstance(json_feed, GenericPriceFeed)
    assert isinstance(json_feed.http_client, HttpClient)
    assert json_feed.http_client.timeout == 3.0
    assert json_feed.http_client.max_retries == 5
    with pytest.raises(ValueError):
        make_price_feed({"type": "exchange"})


@pytest.mark.asyncio
async def test_async_generic_price_feed_reads_json_path():
    session = FakeSession([FakeResponse(200, {"result": [{"price": "0.5"}]})])
    feed = AsyncGenericPriceFeed(
        "https://prices.example/ticker",
        "result.0.price",
        AsyncHttpClient(session=session),
    )

    assert await feed.get_price() == Decimal("0.5")
    assert session.requests[0]["method"] == "GET"
    await feed.close()


@pytest.mark.asyncio
async def test_async_client_retries_rate_limit():
    session = FakeSession(
        [
            FakeResponse(429, {"error": "slow down"}, headers={"Retry-After": "0"}),
            FakeResponse(200, {"price": "0.7"}),
        ]
    )
    client = AsyncHttpClient(max_retries=1, backoff_factor=0, session=session)
    feed = AsyncGenericPriceFeed("https://prices.example/ticker", "price", client)

    assert await feed.get_price() == Decimal("0.7")
    assert len(session.requests) == 2


@pytest.mark.asyncio
async def test_async_price_feed_wraps_http_errors():
    session = FakeSession([FakeResponse(404, {"error": "unknown"})])
    feed = AsyncGenericPriceFeed(
        "https://prices.example/ticker", "price", AsyncHttpClient(session=session)
    )

    with pytest.raises(PriceFeedError, match="HTTP error 404"):
        await feed.get_price()


def test_make_price_feed_uses_aiohttp_when_asked():
    json_feed = make_price_feed(
        {
            "type": "json",
            "url": "https://p.example/x",
            "json_path": "data.last",
            "timeout_sec": 3,
            "retries": 4,
        },
        use_asyncio=True,
    )
    url_feed = make_price_feed(
        {"type": "url", "url": "https://p.example/x"}, use_asyncio=True
    )
    fixed = make_price_feed({"type": "fixed", "value": "2"}, use_asyncio=True)

    assert isinstance(json_feed, AsyncGenericPriceFeed)
    assert json_feed.json_path == "data.last"
    assert isinstance(json_feed.http_client, AsyncHttpClient)
    assert json_feed.http_client.timeout == 3.0
    assert json_feed.http_client.retry_policy.max_retries == 4
    assert isinstance(url_feed, AsyncGenericPriceFeed)
    assert url_feed.json_path is None
    assert isinstance(fixed, FixedPriceFeed)


@pytest.mark.asyncio
async def test_async_url_feed_parses_bare_number():
    session = FakeSession([FakeResponse(200, 1.5)])
    feed = AsyncGenericPriceFeed(
        "https://prices.example/xlm", http_client=AsyncHttpClient(session=session)
    )

    assert await feed.get_price() == Decimal("1.5")
