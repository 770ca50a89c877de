"""Numerology numbers for the My Journey dashboard."""

from datetime import date
from typing import Optional

MASTER_NUMBERS = (11, 22, 33)

# Pythagorean letter values
LETTER_VALUES = {
    letter: (index % 9) + 1
    for index, letter in enumerate("ABCDEFGHIJKLMNOPQRSTUVWXYZ")
}

VOWELS = "AEIOU"

NUMBER_ELEMENTS = {
    1: "Fire",
    2: "Water",
    3: "Fire",
    4: "Earth",
    5: "Air",
    6: "Earth",
    7: "Water",
    8: "Earth",
    9: "Fire",
    11: "Air",
    22: "Earth",
    33: "Fire",
}

NUMBER_COLORS = {
    1: "#FF6B6B",
    2: "#4ECDC4",
    3: "#45B7D1",
    4: "#96CEB4",
    5: "#FFEAA7",
    6: "#DDA0DD",
    7: "#98D8C8",
    8: "#F7DC6F",
    9: "#BB8FCE",
    11: "#85C1E9",
    22: "#F8C471",
    33: "#82E0AA",
}


def _digit_sum(num: int) -> int:
    return sum(int(d) for d in str(abs(num)))


def reduce_to_single_digit(num: int) -> int:
    while num > 9:
        num = _digit_sum(num)
    return num


def reduce_master_numbers(num: int) -> int:
    """Reduces to a single digit, stopping at 11, 22 or 33."""
    while num > 9 and num not in MASTER_NUMBERS:
        num = _digit_sum(num)
    return num


def _clean_name(full_name: str) -> str:
    return "".join(c for c in full_name.upper() if "A" <= c <= "Z")


def calculate_life_path_number(birth_date: date) -> int:
    """
    Life path number: day, month and year are each reduced to one digit,
    then their sum is reduced keeping master numbers.

    >>> calculate_life_path_number(date(1990, 7, 16))
    6
    """
    total = (
        reduce_to_single_digit(birth_date.day)
        + reduce_to_single_digit(birth_date.month)
        + reduce_to_single_digit(birth_date.year)
    )
    return reduce_master_numbers(total)


def calculate_destiny_number(full_name: str) -> int:
    total = sum(LETTER_VALUES[c] for c in _clean_name(full_name))
    return reduce_master_numbers(total)


def calculate_soul_urge_number(full_name: str) -> int:
    total = sum(LETTER_VALUES[c] for c in _clean_name(full_name) if c in VOWELS)
    return reduce_master_numbers(total)


def calculate_personality_number(full_name: str) -> int:
    total = sum(LETTER_VALUES[c] for c in _clean_name(full_name) if c not in VOWELS)
    return reduce_master_numbers(total)


def calculate_birthday_number(birth_date: date) -> int:
    return reduce_master_numbers(birth_date.day)


def calculate_personal_year(birth_date: date, current_year: Optional[int] = None) -> int:
    year = current_year if current_year is not None else date.today().year
    total = (
        reduce_to_single_digit(birth_date.day)
        + reduce_to_single_digit(birth_date.month)
        + reduce_to_single_digit(year)
    )
    return reduce_master_numbers(total)


def calculate_personal_month(
    birth_date: date,
    current_year: Optional[int] = None,
    current_month: Optional[int] = None,
) -> int:
    month = current_month if current_month is not None else date.today().month
    return reduce_master_numbers(calculate_personal_year(birth_date, current_year) + month)


def calculate_personal_day(birth_date: date, target_date: Optional[date] = None) -> int:
    target = target_date or date.today()
    personal_month = calculate_personal_month(birth_date, target.year, target.month)
    return reduce_master_numbers(personal_month + target.day)


def get_number_element(number: int) -> str:
    return NUMBER_ELEMENTS.get(number, "Unknown")


def get_number_color(number: int) -> str:
    return NUMBER_COLORS.get(number, "#A0A0A0")
