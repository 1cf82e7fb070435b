from rentalhost.modules.currency.converter import FALLBACK_RATES, CurrencyConverter

__all__ = ["FALLBACK_RATES", "CurrencyConverter"]
