"""
Currency Display

Display-only formatting. Amounts are never converted between currencies;
the configured code only decides the symbol and the number of decimals.
"""

from decimal import ROUND_HALF_UP, Decimal
from typing import NamedTuple, Union


class Currency(NamedTuple):
    code: str
    symbol: str
    name: str


CURRENCIES: dict[str, Currency] = {
    c.code: c
    for c in (
        Currency("USD", "$", "US Dollar"),
        Currency("EUR", "€", "Euro"),
        Currency("GBP", "£", "British Pound"),
        Currency("JPY", "¥", "Japanese Yen"),
        Currency("INR", "₹", "Indian Rupee"),
        Currency("AUD", "A$", "Australian Dollar"),
        Currency("CAD", "C$", "Canadian Dollar"),
        Currency("CHF", "CHF", "Swiss Franc"),
        Currency("CNY", "¥", "Chinese Yuan"),
        Currency("SGD", "S$", "Singapore Dollar"),
    )
}

DEFAULT_CURRENCY = "USD"

# Currencies without minor units
ZERO_DECIMAL = {"JPY"}


def format_currency(amount: Union[Decimal, int, float], code: str = DEFAULT_CURRENCY) -> str:
    """
    Format an amount for display, e.g. $1,234.50 or 1,234.50 CHF.

    Unknown codes fall back to USD. Negative amounts keep their sign.
    """
    currency = CURRENCIES.get(code.upper(), CURRENCIES[DEFAULT_CURRENCY])
    decimals = 0 if currency.code in ZERO_DECIMAL else 2

    value = Decimal(str(amount)).quantize(Decimal(1).scaleb(-decimals), rounding=ROUND_HALF_UP)
    sign = "-" if value < 0 else ""
    number = f"{abs(value):,.{decimals}f}"

    # Code-as-symbol currencies are written after the number
    if currency.symbol == currency.code:
        return f"{sign}{number} {currency.symbol}"
    return f"{sign}{currency.symbol}{number}"
