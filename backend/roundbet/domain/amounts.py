"""Checked integer arithmetic for token amounts and prices."""

from __future__ import annotations

from fractions import Fraction

from roundbet.errors import ArithmeticOverflowError, InvalidRequestError

MAX_AMOUNT = 2**128 - 1
MAX_PRICE = 2**127 - 1
MIN_PRICE = -(2**127)

# Gaming fee rates are expressed in parts per ten-thousand.
FEE_DENOMINATOR = 10_000


def ensure_amount(value: int) -> int:
    if value < 0 or value > MAX_AMOUNT:
        raise ArithmeticOverflowError(f"Amount {value} outside the 128-bit unsigned range")
    return value


def ensure_price(value: int) -> int:
    if value < MIN_PRICE or value > MAX_PRICE:
        raise ArithmeticOverflowError(f"Price {value} outside the 128-bit signed range")
    return value


def checked_add(left: int, right: int) -> int:
    return ensure_amount(left + right)


def checked_sub(left: int, right: int) -> int:
    if right > left:
        raise ArithmeticOverflowError(f"Cannot subtract {right} from {left}")
    return left - right


def multiply_ratio(value: int, numerator: int, denominator: int) -> int:
    """Return ``floor(value * numerator / denominator)`` with an exact intermediate."""

    if denominator == 0:
        raise ArithmeticOverflowError("Division by zero")
    return ensure_amount((value * numerator) // denominator)


def mul_floor(value: int, ratio: Fraction) -> int:
    return multiply_ratio(value, ratio.numerator, ratio.denominator)


def parse_ratio(raw: object) -> Fraction:
    """Parse a decimal ratio (``"0.25"``, ``Decimal``, ``Fraction``) exactly."""

    if isinstance(raw, float):
        raw = repr(raw)
    try:
        ratio = Fraction(str(raw)) if not isinstance(raw, Fraction) else raw
    except (TypeError, ValueError, ZeroDivisionError) as exc:
        raise InvalidRequestError(f"Invalid ratio {raw!r}") from exc
    if ratio < 0:
        raise InvalidRequestError(f"Ratio {raw!r} must not be negative")
    return ratio


def format_ratio(ratio: Fraction) -> str:
    """Render a ratio as a terminating decimal string when possible."""

    if ratio.denominator == 1:
        return str(ratio.numerator)
    denominator = ratio.denominator
    twos = fives = 0
    while denominator % 2 == 0:
        denominator //= 2
        twos += 1
    while denominator % 5 == 0:
        denominator //= 5
        fives += 1
    if denominator != 1:
        return f"{ratio.numerator}/{ratio.denominator}"
    places = max(twos, fives)
    scaled = ratio.numerator * 10**places // ratio.denominator
    sign = "-" if scaled < 0 else ""
    digits = str(abs(scaled)).rjust(places + 1, "0")
    return f"{sign}{digits[:-places]}.{digits[-places:]}".rstrip("0").rstrip(".")
