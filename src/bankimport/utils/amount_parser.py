"""Amount parsing utilities."""

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
import re

DEBIT_MARKER = re.compile(r"\bDR\b", re.IGNORECASE)
CREDIT_MARKER = re.compile(r"\bCR\b", re.IGNORECASE)
CURRENCY = re.compile(r"€|EUR", re.IGNORECASE)
DIGITS = re.compile(r"^\d+$")
SHORT_DECIMALS = re.compile(r"^\d{1,2}$")


@dataclass(frozen=True)
class ParsedCents:
    """Integer cents plus a success flag."""

    cents: int
    ok: bool


FAILED = ParsedCents(cents=0, ok=False)


def parse_amount_to_cents(raw: str) -> ParsedCents:
    """Parse a bank-formatted amount string into integer cents.

    Handles various formats:
    - "1.234,56" and "1,234.56" (the rightmost separator is the decimal one)
    - "1234,56", "1234.56", "1 234,56" (space or NBSP thousands)
    - "2.000" and "2,000" (three digits after a lone separator mean thousands)
    - "(1.234,56)", "-1.234,00", "1.234,00-" (negative)
    - "€ 1.050,75", "1.234,56 EUR"
    - "DR 123,45" (negative) and "CR 123,45" (positive)

    Args:
        raw: Amount string

    Returns:
        ParsedCents; ``ok`` is False and ``cents`` is 0 when the string is
        not an amount
    """
    if raw is None:
        return FAILED
    text = str(raw)

    negative = False
    if DEBIT_MARKER.search(text):
        negative = True
        text = DEBIT_MARKER.sub("", text)
    elif CREDIT_MARKER.search(text):
        text = CREDIT_MARKER.sub("", text)

    # Whitespace (str.split also covers NBSP) and currency markers
    cleaned = CURRENCY.sub("", "".join(text.split()))
    if not cleaned:
        return FAILED

    if cleaned.startswith("+"):
        cleaned = cleaned[1:]
    if cleaned.startswith("(") and cleaned.endswith(")"):
        negative = True
    if cleaned.startswith("-"):
        negative = True
    if cleaned.endswith("-"):
        negative = True

    body = cleaned.replace("(", "").replace(")", "")
    body = re.sub(r"^-|-$", "", body)
    body = re.sub(r"[a-zA-Z]", "", body)
    if not body:
        return FAILED

    number = _split_separators(body)
    if number is None:
        return FAILED

    try:
        value = Decimal(number)
    except InvalidOperation:
        return FAILED

    cents = int((value * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    if negative:
        cents = -cents
    return ParsedCents(cents=cents, ok=True)


def _split_separators(body: str) -> str | None:
    """Return a plain ``integer.decimal`` string, or None when invalid."""
    last_dot = body.rfind(".")
    last_comma = body.rfind(",")

    if last_dot > -1 and last_comma > -1:
        decimal_index = max(last_dot, last_comma)
        integer_part = re.sub(r"[.,]", "", body[:decimal_index])
        decimal_part = body[decimal_index + 1:]
        if not DIGITS.match(integer_part) or not DIGITS.match(decimal_part):
            return None
        return f"{integer_part}.{decimal_part}"

    separator_index = last_comma if last_comma > -1 else last_dot
    if separator_index > -1:
        separator = body[separator_index]
        after = body[separator_index + 1:]
        if 1 <= len(after) <= 2:
            integer_part = body[:separator_index].replace(separator, "")
            if not DIGITS.match(integer_part) or not SHORT_DECIMALS.match(after):
                return None
            return f"{integer_part}.{after}"
        whole = body.replace(separator, "")
        return whole if DIGITS.match(whole) else None

    return body if DIGITS.match(body) else None


def parse_amount(amount_str: str) -> Decimal:
    """Parse an amount string into a Decimal of euros.

    Args:
        amount_str: Amount string in any format ``parse_amount_to_cents`` accepts

    Returns:
        Decimal amount with two decimal places

    Raises:
        ValueError: If amount string cannot be parsed
    """
    if not amount_str or not str(amount_str).strip():
        raise ValueError("Empty amount string")

    parsed = parse_amount_to_cents(amount_str)
    if not parsed.ok:
        raise ValueError(f"Could not parse amount '{amount_str}'")
    return cents_to_decimal(parsed.cents)


def cents_to_decimal(cents: int) -> Decimal:
    """Convert integer cents to a two-place Decimal."""
    return (Decimal(cents) / 100).quantize(Decimal("0.01"))
