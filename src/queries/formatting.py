"""
Currency Display Formatting

German-style separators everywhere: dot for thousands, comma for decimals.

    10000 -> "10.000,00 RON"

Amounts are never converted between currencies; the code is only a label.
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Optional, Union


CURRENCY_SYMBOLS = {
    "RON": "lei",
    "EUR": "€",
    "USD": "$",
    "GBP": "£",
    "CHF": "CHF",
    "CAD": "C$",
    "AUD": "A$",
    "CNY": "¥",
    "INR": "₹",
    "RUB": "₽",
}

_TO_GERMAN = str.maketrans({",": ".", ".": ","})

Number = Union[Decimal, int, float, str]


def _to_decimal(amount: Number) -> Decimal:
    if isinstance(amount, Decimal):
        return amount
    return Decimal(str(amount))


def format_amount(amount: Number) -> str:
    """10000 -> '10.000,00'"""
    value = _to_decimal(amount).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    return f"{value:,.2f}".translate(_TO_GERMAN)


def format_money(amount: Number, currency_code: str) -> str:
    """10000, 'EUR' -> '10.000,00 EUR'"""
    return f"{format_amount(amount)} {currency_code}"


def format_compact(amount: Number, currency_code: str) -> str:
    """Short form for cards: '1.5K RON', '2.3M EUR', full format below 1000."""
    value = _to_decimal(amount)
    if value >= 1_000_000:
        return f"{value / 1_000_000:.1f}M {currency_code}"
    if value >= 1_000:
        return f"{value / 1_000:.1f}K {currency_code}"
    return format_money(value, currency_code)


def symbol_for(currency_code: str) -> str:
    """Display symbol, falling back to the code itself."""
    return CURRENCY_SYMBOLS.get(currency_code.upper(), currency_code)


def format_with_symbol(amount: Number, currency_code: str) -> str:
    """RON puts its symbol after the amount, every other currency before."""
    symbol = symbol_for(currency_code)
    if currency_code.upper() == "RON":
        return f"{format_amount(amount)} {symbol}"
    return f"{symbol}{format_amount(amount)}"


def parse_amount(text: str) -> Optional[Decimal]:
    """
    Parse user input with either separator convention.

    Accepts 10000, 10000.00, 10000,00, 10.000,00 and 10,000.00. When both
    separators appear, the last one is the decimal separator. A single comma
    is a decimal separator; repeated commas or dots are thousands separators.

    Returns None when the input is not a number.
    """
    normalized = text.replace(" ", "")
    commas = normalized.count(",")
    dots = normalized.count(".")

    if commas and dots:
        if normalized.rfind(",") > normalized.rfind("."):
            normalized = normalized.replace(".", "").replace(",", ".")
        else:
            normalized = normalized.replace(",", "")
    elif commas:
        if commas == 1:
            normalized = normalized.replace(",", ".")
        else:
            normalized = normalized.replace(",", "")
    elif dots > 1:
        normalized = normalized.replace(".", "")

    try:
        value = Decimal(normalized)
    except InvalidOperation:
        return None
    return value if value.is_finite() else None
