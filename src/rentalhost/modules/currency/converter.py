"""Exchange-rate lookups against CurrencyFreaks with an in-memory cache."""

from __future__ import annotations

import logging
import time

import httpx

from rentalhost.config import get_env, section
from rentalhost.exceptions import RentalHostError

logger = logging.getLogger(__name__)

_cfg = section("currency")

# USD-based, approximate; used when the API is unavailable
FALLBACK_RATES: dict[str, float] = {
    "USD": 1.0,
    "EUR": 0.92,
    "GBP": 0.79,
    "AUD": 1.52,
    "CAD": 1.35,
    "JPY": 149.5,
    "CHF": 0.88,
    "CNY": 7.24,
    "INR": 83.1,
    "BRL": 4.95,
    "MXN": 17.1,
    "ZAR": 18.7,
    "NZD": 1.64,
    "SGD": 1.34,
    "HKD": 7.82,
    "SEK": 10.5,
    "NOK": 10.7,
    "DKK": 6.87,
    "PLN": 4.02,
    "TRY": 30.2,
    "RUB": 91.5,
}


class CurrencyConverter:
    """Converts amounts through USD using the latest CurrencyFreaks rates."""

    def __init__(self, client: httpx.Client | None = None, api_key: str | None = None) -> None:
        self._client = client or httpx.Client(timeout=_cfg.get("timeout_seconds", 5))
        self._api_key = api_key if api_key is not None else get_env("CURRENCYFREAKS_API_KEY")
        self._cache_ttl = _cfg.get("cache_ttl_seconds", 3600)
        self._cached: dict[str, float] | None = None
        self._cached_at = 0.0

    def _fetch(self) -> dict[str, float]:
        response = self._client.get(
            _cfg.get("api_url", "https://api.currencyfreaks.com/v2.0/rates/latest"),
            params={"apikey": self._api_key},
        )
        response.raise_for_status()
        rates = {code.upper(): float(rate) for code, rate in response.json().get("rates", {}).items()}
        rates["USD"] = 1.0
        return rates

    def get_rates(self, strict: bool = False) -> dict[str, float]:
        """Current USD-based rates.

        Served from cache within the TTL. On API failure the last cached rates
        are used, then the static table. With ``strict`` a missing key or
        failed fetch raises instead.
        """
        if not self._api_key:
            if strict:
                raise RentalHostError("CurrencyFreaks API key not found")
            logger.warning("CurrencyFreaks API key not found. Using fallback rates.")
            return dict(FALLBACK_RATES)

        now = time.monotonic()
        if self._cached and now - self._cached_at < self._cache_ttl:
            return self._cached

        try:
            self._cached = self._fetch()
            self._cached_at = now
            return self._cached
        except (httpx.HTTPError, ValueError) as exc:
            if strict:
                raise RentalHostError("Failed to convert currency", {"details": str(exc)}) from exc
            logger.error("Error fetching exchange rates: %s", exc)
            if self._cached:
                logger.warning("Using cached exchange rates due to API error")
                return self._cached
            logger.warning("Using fallback exchange rates")
            return dict(FALLBACK_RATES)

    def convert(self, amount: float, from_currency: str, to_currency: str) -> float:
        if amount == 0:
            return 0.0
        if from_currency.upper() == to_currency.upper():
            return amount
        rates = self.get_rates()
        from_rate = rates.get(from_currency.upper()) or 1
        to_rate = rates.get(to_currency.upper()) or 1
        return amount / from_rate * to_rate

    def convert_multiple(
        self, amounts_by_currency: dict[str, float], target_currency: str, strict: bool = False
    ) -> float:
        """Total of per-currency amounts in ``target_currency``.

        Amounts already in the target currency are added without conversion,
        so rates are not fetched at all when every amount is in the target.
        """
        target = target_currency.upper()
        nonzero: dict[str, float] = {}
        for code, amount in amounts_by_currency.items():
            if amount:
                nonzero[code.upper()] = nonzero.get(code.upper(), 0) + amount
        if not nonzero:
            return 0.0

        total = sum(amount for code, amount in nonzero.items() if code == target)
        others = {code: amount for code, amount in nonzero.items() if code != target}
        if not others:
            return total

        rates = self.get_rates(strict=strict)
        in_usd = sum(amount / (rates.get(code) or 1) for code, amount in others.items())
        return total + in_usd * (rates.get(target) or 1)

    def get_exchange_rate(self, from_currency: str, to_currency: str) -> float:
        if from_currency.upper() == to_currency.upper():
            return 1.0
        rates = self.get_rates()
        return (rates.get(to_currency.upper()) or 1) / (rates.get(from_currency.upper()) or 1)
