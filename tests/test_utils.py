import os
import sys
import requests
import time
import json

import pytest

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from utils import (
    format_currency,
    format_number,
    get_bitcoin_price,
    parse_formatted_number,
    price_fetch_allowed,
)


def _session_returning(payload):
    class MockResponse:
        def raise_for_status(self):
            pass

        def json(self):
            return payload

    class MockSession:
        def __enter__(self):
            return self

        def __exit__(self, exc_type, exc, tb):
            pass

        def get(self, *args, **kwargs):
            return MockResponse()

    return MockSession


def test_format_number_uses_thousands_separators():
    assert format_number(1234567) == "1,234,567"
    assert format_number(3.2, 2) == "3.20"
    assert format_currency(150000) == "\\$150,000"


def test_parse_formatted_number_strips_separators_and_symbols():
    assert parse_formatted_number("1,234,567") == 1234567.0
    assert parse_formatted_number(" $150,000.50 ") == 150000.5
    assert parse_formatted_number("8%") == 8.0


@pytest.mark.parametrize("text", ["", "   ", "abc", "1.2.3", None])
def test_parse_formatted_number_rejects_junk(text):
    with pytest.raises(ValueError):
        parse_formatted_number(text)


def test_price_fetch_allowed_respects_cooldown():
    assert price_fetch_allowed(None)
    assert not price_fetch_allowed(1000.0, now=1030.0, cooldown=60)
    assert price_fetch_allowed(1000.0, now=1060.0, cooldown=60)


def test_get_bitcoin_price_exponential_backoff(monkeypatch):
    session_instances = []

    class MockSession:
        def __init__(self):
            session_instances.append(self)

        def __enter__(self):
            return self

        def __exit__(self, exc_type, exc, tb):
            pass

        def get(self, *args, **kwargs):
            raise requests.exceptions.RequestException("boom")

    monkeypatch.setattr(requests, "Session", MockSession)

    sleep_calls = []

    def mock_sleep(duration):
        sleep_calls.append(duration)

    monkeypatch.setattr(time, "sleep", mock_sleep)

    price, warnings = get_bitcoin_price(max_attempts=3, base_delay=2)

    assert price == 100000
    assert len(warnings) == 4
    assert sleep_calls == [2, 4]
    assert len(session_instances) == 1


def test_get_bitcoin_price_malformed_json(monkeypatch):
    class MockResponse:
        def raise_for_status(self):
            pass

        def json(self):
            raise json.JSONDecodeError("Expecting value", "", 0)

    class MockSession:
        def __enter__(self):
            return self

        def __exit__(self, exc_type, exc, tb):
            pass

        def get(self, *args, **kwargs):
            return MockResponse()

    monkeypatch.setattr(requests, "Session", MockSession)

    price, warnings = get_bitcoin_price(max_attempts=1)

    assert price == 100000
    assert len(warnings) == 2


@pytest.mark.parametrize(
    "payload",
    [{}, {"bitcoin": {}}, {"bitcoin": None}, {"bitcoin": {"usd": 0}}],
)
def test_get_bitcoin_price_missing_or_invalid_usd(monkeypatch, payload):
    monkeypatch.setattr(requests, "Session", _session_returning(payload))

    price, warnings = get_bitcoin_price(max_attempts=1)

    assert price == 100000
    assert len(warnings) == 2


def test_get_bitcoin_price_success(monkeypatch):
    monkeypatch.setattr(
        requests, "Session", _session_returning({"bitcoin": {"usd": 12345.67}})
    )

    price, warnings = get_bitcoin_price(max_attempts=1)

    assert price == 12345.67
    assert warnings == []


def test_get_bitcoin_price_quick_fail(monkeypatch):
    request_calls = []

    class MockSession:
        def __enter__(self):
            return self

        def __exit__(self, exc_type, exc, tb):
            pass

        def get(self, *args, **kwargs):
            request_calls.append(1)
            raise requests.exceptions.RequestException("boom")

    monkeypatch.setattr(requests, "Session", MockSession)

    sleep_calls = []

    def mock_sleep(duration):
        sleep_calls.append(duration)

    monkeypatch.setattr(time, "sleep", mock_sleep)

    price, warnings = get_bitcoin_price(max_attempts=5, base_delay=1, quick_fail=True)

    assert price == 100000
    assert len(warnings) == 2
    assert len(request_calls) == 1
    assert sleep_calls == []


def test_get_bitcoin_price_cooldown_skips_request(monkeypatch):
    def fail_session():
        raise AssertionError("no request expected during cooldown")

    monkeypatch.setattr(requests, "Session", fail_session)

    price, warnings = get_bitcoin_price(
        fallback_price=95000, last_fetch_at=time.time(), cooldown=60
    )

    assert price == 95000
    assert len(warnings) == 1
    assert "rate limited" in warnings[0]


def test_get_bitcoin_price_after_cooldown_fetches(monkeypatch):
    monkeypatch.setattr(
        requests, "Session", _session_returning({"bitcoin": {"usd": 70000}})
    )

    price, warnings = get_bitcoin_price(
        max_attempts=1, last_fetch_at=time.time() - 120, cooldown=60
    )

    assert price == 70000.0
    assert warnings == []
