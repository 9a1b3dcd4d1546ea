"""Currency conversion helpers."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Dict, Mapping, Optional

import requests
from flask import current_app

logger = logging.getLogger(__name__)

CENTS = Decimal("0.01")


@dataclass(frozen=True)
class ConversionResult:
    amount: Decimal
    rate: Decimal
    low_confidence: bool = False


def to_decimal(value: Decimal | float | int | str) -> Decimal:
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError) as exc:
        raise ValueError(f"Invalid amount '{value}'.") from exc


def round_money(amount: Decimal) -> Decimal:
    return amount.quantize(CENTS, rounding=ROUND_HALF_UP)


def fetch_exchange_rates(base_currency: str) -> Dict[str, float]:
    """Fetch exchange rates for the given base currency."""
    url_template = current_app.config.get("EXCHANGE_API_URL")
    if not url_template:
        return {}
    try:
        response = requests.get(
            url_template.format(base=base_currency.upper()),
            timeout=current_app.config.get("EXCHANGE_API_TIMEOUT", 10),
        )
        response.raise_for_status()
        payload = response.json()
    except (requests.RequestException, ValueError) as exc:
        logger.warning("Exchange rate lookup for %s failed: %s", base_currency, exc)
        return {}

    rates = payload.get("rates") if isinstance(payload, dict) else None
    if not isinstance(rates, dict):
        logger.warning("Exchange rate response for %s has no rates table", base_currency)
        return {}
    return rates


def resolve_rate(source_currency: str, target_currency: str) -> Optional[Decimal]:
    """Return the rate from source to target, or ``None`` when unknown."""
    source = source_currency.upper()
    target = target_currency.upper()
    if source == target:
        return Decimal(1)

    overrides: Mapping[str, Mapping[str, float]] = current_app.config.get("CURRENCY_RATES") or {}
    rate = (overrides.get(source) or {}).get(target)
    if rate is None:
        rate = fetch_exchange_rates(source).get(target)
    if rate is None or isinstance(rate, bool):
        return None
    try:
        value = Decimal(str(rate))
    except InvalidOperation:
        logger.warning("Ignoring non-numeric rate %r for %s->%s", rate, source, target)
        return None
    if not value.is_finite() or value <= 0:
        return None
    return value


def convert_for_submission(
    amount: Decimal | float | str,
    source_currency: str,
    target_currency: str,
) -> ConversionResult:
    """Convert a submitted amount into the company currency.

    An unknown currency pair converts at rate 1 and is flagged
    ``low_confidence`` instead of failing the submission.
    """
    value = to_decimal(amount)
    rate = resolve_rate(source_currency, target_currency)
    if rate is None:
        logger.warning(
            "No rate for %s->%s; storing identity conversion",
            source_currency.upper(),
            target_currency.upper(),
        )
        return ConversionResult(amount=round_money(value), rate=Decimal(1), low_confidence=True)
    return ConversionResult(amount=round_money(value * rate), rate=rate)
