"""Tests for the blocking HTTP client."""

from __future__ import annotations

from typing import Literal
from unittest.mock import patch
from urllib.error import HTTPError, URLError

import pytest

from twap_client.rest import HttpClient, RateLimitError, RestError, TransientApiError


class FakeResponse:
    def __init__(self, body: str) -> None:
        self._body = body

    def read(self) -> bytes:
        return self._body.encode("utf8")

    def __enter__(self) -> "FakeResponse":
        return self

    def __exit__(self, exc_type, exc, tb) -> Literal[False]:
        return False


def http_error(code: int, headers: dict[str, str] | None = None) -> HTTPError:
    return HTTPError("https://prices.example", code, "error", headers or {}, None)


def test_get_returns_body_and_passes_timeout():
    captured = {}

    def fake_urlopen(request, timeout=10.0, context=None):
        captured["request"] = request
        captured["timeout"] = timeout
        return FakeResponse('{"price": "1"}')

    client = HttpClient(timeout=2.5)
    with patch("twap_client.rest.urlopen", side_effect=fake_urlopen):
        body = client.get("https://prices.example/ticker")

    assert body == '{"price": "1"}'
    assert captured["timeout"] == 2.5
    assert captured["request"].get_method() == "GET"


def test_rate_limit_is_retried_after_header_delay():
    sleeps: list[float] = []
    responses = [http_error(429, {"Retry-After": "3"}), FakeResponse("1.5")]

    def fake_urlopen(request, timeout=10.0, context=None):
        response = responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    client = HttpClient(max_retries=2, sleep=sleeps.append)
    with patch("twap_client.rest.urlopen", side_effect=fake_urlopen):
        assert client.get("https://prices.example/ticker") == "1.5"

    assert sleeps == [3.0]


def test_transient_errors_exhaust_retries():
    sleeps: list[float] = []
    client = HttpClient(max_retries=2, backoff_factor=0.1, sleep=sleeps.append)

    with patch("twap_client.rest.urlopen", side_effect=http_error(503)):
        with pytest.raises(TransientApiError):
            client.get("https://prices.example/ticker")

    assert len(sleeps) == 2


def test_network_errors_are_transient():
    client = HttpClient(max_retries=0)

    with patch("twap_client.rest.urlopen", side_effect=URLError("unreachable")):
        with pytest.raises(TransientApiError):
            client.get("https://prices.example/ticker")


def test_client_errors_are_not_retried():
    sleeps: list[float] = []
    client = HttpClient(max_retries=3, sleep=sleeps.append)

    with patch("twap_client.rest.urlopen", side_effect=http_error(404)):
        with pytest.raises(RestError) as excinfo:
            client.get("https://prices.example/ticker")

    assert not isinstance(excinfo.value, (RateLimitError, TransientApiError))
    assert "HTTP error 404" in str(excinfo.value)
    assert sleeps == []
