"""English rendering of monetary amounts for printed invoices.

``to_words(1234567.5)`` gives ``"one million two hundred thirty four
thousand five hundred sixty seven and five fils"``.  No currency name is
added; the caller owns that context.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation

_ONES = ("", "one", "two", "three", "four", "five", "six", "seven", "eight", "nine")
_TEENS = (
    "ten",
    "eleven",
    "twelve",
    "thirteen",
    "fourteen",
    "fifteen",
    "sixteen",
    "seventeen",
    "eighteen",
    "nineteen",
)
_TENS = ("", "", "twenty", "thirty", "forty", "fifty", "sixty", "seventy", "eighty", "ninety")

# Short-scale groups, largest first.
_SCALES = (
    (1_000_000_000, "billion"),
    (1_000_000, "million"),
    (1_000, "thousand"),
)


def _chunk_to_words(num: int) -> list[str]:
    """Words for ``0 <= num < 1000``; zero gives no words."""
    words: list[str] = []
    if num >= 100:
        words += [_ONES[num // 100], "hundred"]
        num %= 100
    if 10 <= num < 20:
        words.append(_TEENS[num - 10])
        return words
    if num >= 20:
        words.append(_TENS[num // 10])
        num %= 10
    if num > 0:
        words.append(_ONES[num])
    return words


def integer_to_words(num: int) -> str:
    """Render a non-negative integer; zero renders as an empty string."""
    words: list[str] = []
    for scale, name in _SCALES:
        if num >= scale:
            words += _integer_words(num // scale) + [name]
            num %= scale
    words += _chunk_to_words(num)
    return " ".join(words)


def _integer_words(num: int) -> list[str]:
    # Groups above a billion nest, e.g. "one thousand billion".
    return integer_to_words(num).split() if num >= 1000 else _chunk_to_words(num)


def to_words(amount: float | int | Decimal) -> str:
    """Convert *amount* to lowercase English words.

    The fractional digits, when non-zero, are read as a whole number of
    fils: ``105.5`` ends with ``"and five fils"`` and ``105.05`` with
    ``"and five fils"`` too.  Exactly zero renders as ``"zero"``.
    """
    try:
        value = Decimal(str(amount))
    except InvalidOperation:
        value = Decimal(0)
    if not value.is_finite() or value == 0:
        return "zero"

    sign = "minus " if value < 0 else ""
    integer_part, _, fraction_part = format(abs(value), "f").partition(".")

    words = integer_to_words(int(integer_part))
    fils = int(fraction_part) if fraction_part else 0
    if fils > 0:
        words = f"{words} and {integer_to_words(fils)} fils".strip()
    return f"{sign}{words}"
