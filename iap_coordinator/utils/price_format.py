"""Price formatting for products shown in the store UI."""

from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

CURRENCY_SYMBOLS = {
    "USD": "$",
    "EUR": "€",
    "GBP": "£",
    "JPY": "¥",
    "CAD": "CA$",
    "AUD": "A$",
    "CHF": "CHF ",
    "INR": "₹",
    "BRL": "R$",
}

# ISO 4217 currencies without minor units
ZERO_DECIMAL_CURRENCIES = {"JPY", "KRW", "VND", "CLP", "ISK"}

# Locales that put the symbol after the amount and use a decimal comma
SUFFIX_LOCALE_LANGUAGES = {"de", "fr", "es", "it", "pt", "nl", "pl", "sv", "fi"}


def micros_to_decimal(price_micros: int) -> Decimal:
    """Convert a price in micros to a decimal amount."""
    return Decimal(price_micros) / Decimal(1_000_000)


def format_price(price_micros: int, currency: str, locale: str = "en_US") -> Optional[str]:
    """Format a price with its currency for display.

    Args:
        price_micros: Price in micros (1,000,000 = 1.00)
        currency: ISO 4217 currency code
        locale: Price locale, e.g. en_US or de_DE

    Returns:
        Formatted price, or None if the currency code is not a 3-letter code
    """
    if not currency or len(currency) != 3 or not currency.isalpha():
        return None

    currency = currency.upper()
    places = Decimal(1) if currency in ZERO_DECIMAL_CURRENCIES else Decimal("0.01")
    amount = micros_to_decimal(price_micros).quantize(places, rounding=ROUND_HALF_UP)
    symbol = CURRENCY_SYMBOLS.get(currency)

    language = locale.replace("-", "_").split("_")[0].lower()
    if language in SUFFIX_LOCALE_LANGUAGES:
        grouped = f"{amount:,}".replace(",", " ").replace(".", ",")
        return f"{grouped} {symbol.strip() if symbol else currency}"

    grouped = f"{amount:,}"
    if symbol is None:
        return f"{currency} {grouped}"
    return f"{symbol}{grouped}"
