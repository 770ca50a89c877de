"""Card and currency helpers for the checkout form."""

import re
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

CURRENCY_SYMBOLS = {
    "USD": "$",
    "CAD": "CA$",
    "AUD": "A$",
    "EUR": "€",
    "GBP": "£",
    "JPY": "¥",
    "INR": "₹",
    "NGN": "NGN",
}

ZERO_DECIMAL_CURRENCIES = {"JPY", "KRW"}


def format_card_number(value: str) -> str:
    """Groups the first 16 digits in blocks of four; fewer than 4 digits pass through."""
    digits = re.sub(r"[^0-9]", "", value)
    match = re.search(r"\d{4,16}", digits)
    if not match:
        return digits
    number = match.group(0)
    return " ".join(number[i : i + 4] for i in range(0, len(number), 4))


def get_card_brand(card_number: str) -> str:
    number = re.sub(r"\s", "", card_number)

    if re.match(r"^4", number):
        return "visa"
    if re.match(r"^5[1-5]", number) or re.match(r"^2[2-7]", number):
        return "mastercard"
    if re.match(r"^3[47]", number):
        return "amex"
    if re.match(r"^6(?:011|5)", number):
        return "discover"
    return "unknown"


def validate_card_number(card_number: str) -> bool:
    """Luhn checksum; whitespace is ignored, anything else non-numeric fails."""
    number = re.sub(r"\s", "", card_number)
    if not re.fullmatch(r"[0-9]+", number):
        return False

    total = 0
    for position, char in enumerate(reversed(number)):
        digit = int(char)
        if position % 2 == 1:
            digit *= 2
            if digit > 9:
                digit -= 9
        total += digit

    return total % 10 == 0


def validate_expiry_date(month: str, year: str, today: Optional[date] = None) -> bool:
    """Checks a MM/YY expiry is not before the current month"""
    try:
        exp_month = int(month)
        exp_year = int(year)
    except ValueError:
        return False
    if not 1 <= exp_month <= 12:
        return False

    today = today or date.today()
    current_year = today.year % 100

    if exp_year < current_year:
        return False
    if exp_year == current_year and exp_month < today.month:
        return False
    return True


def format_currency(amount: float, currency: str) -> str:
    """Formats an amount en-US style, e.g. ``$1,234.50``."""
    code = currency.upper()
    places = 0 if code in ZERO_DECIMAL_CURRENCIES else 2
    quantum = Decimal(1).scaleb(-places)
    value = Decimal(str(amount)).quantize(quantum, rounding=ROUND_HALF_UP)

    sign = "-" if value < 0 else ""
    number = f"{abs(value):,.{places}f}"

    symbol = CURRENCY_SYMBOLS.get(code)
    if symbol is None or symbol == code:
        return f"{sign}{code} {number}"
    return f"{sign}{symbol}{number}"
