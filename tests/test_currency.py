"""Tests for currency conversion."""

from unittest.mock import MagicMock, patch

import httpx
import pytest

from rentalhost.exceptions import RentalHostError
from rentalhost.modules.currency import FALLBACK_RATES, CurrencyConverter

RATES = {"date": "2030-01-01", "base": "USD", "rates": {"EUR": "0.5", "AUD": "2.0", "usd": "1"}}


def _client(payload=RATES):
    client = MagicMock()
    response = MagicMock()
    response.json.return_value = payload
    client.get.return_value = response
    return client


def test_get_rates_from_api():
    client = _client()
    rates = CurrencyConverter(client=client, api_key="key").get_rates()

    assert rates == {"EUR": 0.5, "AUD": 2.0, "USD": 1.0}
    assert client.get.call_args.kwargs["params"] == {"apikey": "key"}


def test_rates_are_cached():
    client = _client()
    converter = CurrencyConverter(client=client, api_key="key")
    converter.get_rates()
    converter.get_rates()
    assert client.get.call_count == 1


def test_cache_expires():
    client = _client()
    converter = CurrencyConverter(client=client, api_key="key")
    with patch("rentalhost.modules.currency.converter.time.monotonic", side_effect=[1000.0, 1000.0 + 3601]):
        converter.get_rates()
        converter.get_rates()
    assert client.get.call_count == 2


def test_no_api_key_uses_fallback():
    converter = CurrencyConverter(client=_client(), api_key="")
    assert converter.get_rates() == FALLBACK_RATES
    with pytest.raises(RentalHostError, match="API key not found"):
        converter.get_rates(strict=True)


def test_api_failure_uses_cached_then_fallback():
    client = _client()
    converter = CurrencyConverter(client=client, api_key="key")
    client.get.side_effect = httpx.ConnectError("down")
    assert converter.get_rates() == FALLBACK_RATES

    client.get.side_effect = None
    cached = converter.get_rates()
    converter._cached_at = 0.0
    client.get.side_effect = httpx.ConnectError("down")
    with patch("rentalhost.modules.currency.converter.time.monotonic", return_value=10_000.0):
        assert converter.get_rates() == cached


def test_api_failure_strict_raises():
    client = _client()
    client.get.return_value.raise_for_status.side_effect = httpx.HTTPStatusError(
        "401", request=MagicMock(), response=MagicMock()
    )
    with pytest.raises(RentalHostError, match="Failed to convert currency"):
        CurrencyConverter(client=client, api_key="key").get_rates(strict=True)


def test_convert():
    converter = CurrencyConverter(client=_client(), api_key="key")
    assert converter.convert(100, "EUR", "AUD") == pytest.approx(400.0)
    assert converter.convert(100, "usd", "USD") == 100
    assert converter.convert(0, "EUR", "AUD") == 0.0


def test_convert_multiple():
    converter = CurrencyConverter(client=_client(), api_key="key")
    total = converter.convert_multiple({"EUR": 50, "usd": 10, "AUD": 0}, "AUD")
    assert total == pytest.approx(220.0)
    assert converter.convert_multiple({}, "USD") == 0.0


def test_convert_multiple_same_currency_skips_fetch():
    client = _client()
    converter = CurrencyConverter(client=client, api_key="")
    assert converter.convert_multiple({"usd": 15, "EUR": 0}, "USD", strict=True) == 15
    client.get.assert_not_called()


def test_exchange_rate():
    converter = CurrencyConverter(client=_client(), api_key="key")
    assert converter.get_exchange_rate("EUR", "AUD") == pytest.approx(4.0)
    assert converter.get_exchange_rate("GBP", "gbp") == 1.0


def test_convert_multiple_sums_case_variant_codes():
    client = _client()
    converter = CurrencyConverter(client=client, api_key="key")
    assert converter.convert_multiple({"eur": 100.0, "EUR": 50.0}, "EUR") == 150.0
    client.get.assert_not_called()
    assert converter.convert_multiple({"aud": 100.0, "AUD": 100.0}, "EUR") == pytest.approx(50.0)
