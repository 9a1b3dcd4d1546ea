"""Tests for submission-time currency conversion."""
from __future__ import annotations

from decimal import Decimal

import pytest
import requests

from expenseflow.services import currency_service


class FakeResponse:
    def __init__(self, payload, status_code=200):
        self.payload = payload
        self.status_code = status_code

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")

    def json(self):
        return self.payload


def test_same_currency_is_identity(app_ctx) -> None:
    result = currency_service.convert_for_submission("99.999", "inr", "INR")

    assert result.amount == Decimal("100.00")
    assert result.rate == Decimal(1)
    assert result.low_confidence is False


def test_configured_rate_rounds_half_up(app_ctx) -> None:
    result = currency_service.convert_for_submission("10.005", "USD", "INR")

    assert result.rate == Decimal("85.0")
    assert result.amount == Decimal("850.43")
    assert result.low_confidence is False


def test_unknown_pair_stores_identity_with_low_confidence(app_ctx, caplog) -> None:
    result = currency_service.convert_for_submission(Decimal("42.50"), "XYZ", "INR")

    assert result.amount == Decimal("42.50")
    assert result.rate == Decimal(1)
    assert result.low_confidence is True
    assert "No rate for XYZ->INR" in caplog.text


def test_remote_rates_are_used_when_configured(app_ctx, monkeypatch) -> None:
    app_ctx.config["EXCHANGE_API_URL"] = "https://rates.example/latest/{base}"
    calls = []

    def fake_get(url, timeout):
        calls.append(url)
        return FakeResponse({"base": "GBP", "rates": {"INR": 110.25}})

    monkeypatch.setattr(currency_service.requests, "get", fake_get)

    result = currency_service.convert_for_submission("2", "GBP", "INR")

    assert calls == ["https://rates.example/latest/GBP"]
    assert result.amount == Decimal("220.50")
    assert result.low_confidence is False


def test_configured_rate_wins_over_remote(app_ctx, monkeypatch) -> None:
    app_ctx.config["EXCHANGE_API_URL"] = "https://rates.example/latest/{base}"

    def fail_get(*args, **kwargs):
        raise AssertionError("remote lookup should not happen")

    monkeypatch.setattr(currency_service.requests, "get", fail_get)

    assert currency_service.resolve_rate("EUR", "INR") == Decimal("90.0")


@pytest.mark.parametrize(
    "outcome",
    [
        requests.ConnectionError("unreachable"),
        FakeResponse({}, status_code=503),
        FakeResponse({"rates": {"USD": 1.2}}),
        FakeResponse(["not", "a", "rates", "object"]),
        FakeResponse({"rates": "unavailable"}),
        FakeResponse({"rates": {"INR": "n/a"}}),
        FakeResponse({"rates": {"INR": 0}}),
    ],
)
def test_remote_failures_fall_back_to_low_confidence(app_ctx, monkeypatch, outcome) -> None:
    app_ctx.config["EXCHANGE_API_URL"] = "https://rates.example/latest/{base}"

    def fake_get(url, timeout):
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    monkeypatch.setattr(currency_service.requests, "get", fake_get)

    result = currency_service.convert_for_submission("5", "GBP", "INR")

    assert result.low_confidence is True
    assert result.amount == Decimal("5.00")


def test_invalid_amount_raises_value_error(app_ctx) -> None:
    with pytest.raises(ValueError):
        currency_service.convert_for_submission("ten", "USD", "INR")
