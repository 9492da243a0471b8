"""Number locale detection and locale-bound amount parsing."""

from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable
import re

from bankimport.domain.entities import NumberLocale, ParsedAmount
from bankimport.utils.amount_parser import (
    CREDIT_MARKER,
    CURRENCY,
    DEBIT_MARKER,
    cents_to_decimal,
    parse_amount_to_cents,
)

SPANISH_LOCALE = NumberLocale(decimal_sep=",", thousand_sep=".", confidence=0.6)
MIN_LOCALE_SCORE = 0.2
LOCALE_CONFIDENCE_BOOST = 0.4
MAX_LOCALE_CONFIDENCE = 0.95

BASE_PARSE_CONFIDENCE = 0.6
TWO_DECIMALS_BONUS = 0.2
GROUPING_BONUS = 0.15
MAX_PARSE_CONFIDENCE = 0.95
FALLBACK_PARSE_CONFIDENCE = 0.55

NUMBER_LIKE = re.compile(r"^-?[\d.,\s]+$")
COMMA_DECIMAL = re.compile(r",\d{1,2}$")
DOT_DECIMAL = re.compile(r"\.\d{1,2}$")
SPACE_THOUSANDS = re.compile(r"\d\s\d")


def is_number_like(text: str) -> bool:
    return bool(NUMBER_LIKE.match(text)) and any(ch.isdigit() for ch in text)


def detect_number_locale(samples: Iterable[str]) -> NumberLocale:
    """Detect the decimal and thousands separators used by a set of numbers.

    Args:
        samples: Raw cell values, typically from the numeric columns of a file

    Returns:
        The winning locale, or the Spanish default at 0.6 when the evidence
        is too weak to decide
    """
    eligible = [str(sample).strip() for sample in samples if sample is not None]
    eligible = [sample for sample in eligible if sample and is_number_like(sample)]
    if not eligible:
        return SPANISH_LOCALE

    comma_decimal = dot_decimal = dot_thousands = comma_thousands = space_thousands = 0
    for sample in eligible:
        last_dot = sample.rfind(".")
        last_comma = sample.rfind(",")
        if COMMA_DECIMAL.search(sample):
            comma_decimal += 1
        if DOT_DECIMAL.search(sample):
            dot_decimal += 1
        if sample.count(".") > 1 or -1 < last_dot < last_comma:
            dot_thousands += 1
        if sample.count(",") > 1 or -1 < last_comma < last_dot:
            comma_thousands += 1
        if SPACE_THOUSANDS.search(sample):
            space_thousands += 1

    total = len(eligible)
    spanish_score = (0.5 * comma_decimal + 0.3 * dot_thousands + 0.2 * space_thousands) / total
    anglo_score = (0.5 * dot_decimal + 0.3 * comma_thousands) / total

    if spanish_score > anglo_score and spanish_score > MIN_LOCALE_SCORE:
        thousand_sep = " " if space_thousands > dot_thousands else "."
        return NumberLocale(
            decimal_sep=",",
            thousand_sep=thousand_sep,
            confidence=min(spanish_score + LOCALE_CONFIDENCE_BOOST, MAX_LOCALE_CONFIDENCE),
            samples=tuple(eligible[:5]),
        )
    if anglo_score > spanish_score and anglo_score > MIN_LOCALE_SCORE:
        return NumberLocale(
            decimal_sep=".",
            thousand_sep=",",
            confidence=min(anglo_score + LOCALE_CONFIDENCE_BOOST, MAX_LOCALE_CONFIDENCE),
            samples=tuple(eligible[:5]),
        )
    return SPANISH_LOCALE


def _failed(text: str) -> ParsedAmount:
    return ParsedAmount(value=Decimal("0.00"), confidence=0.0, original_text=text)


def _fallback(text: str) -> ParsedAmount:
    parsed = parse_amount_to_cents(text)
    if not parsed.ok:
        return _failed(text)
    return ParsedAmount(
        value=cents_to_decimal(parsed.cents),
        confidence=FALLBACK_PARSE_CONFIDENCE,
        original_text=text,
    )


def parse_with_locale(text: str, locale: NumberLocale) -> ParsedAmount:
    """Parse one amount cell under a fixed locale.

    The locale's decimal separator decides how the number is read. Cells that
    do not fit the locale (for instance "1.234,56" under an English locale)
    are handed to the locale-free parser with a lower confidence.

    Args:
        text: Raw cell text
        locale: Locale detected for the whole file

    Returns:
        ParsedAmount; confidence 0 means the cell is not an amount
    """
    original = "" if text is None else str(text)
    raw = original.strip()
    if not raw:
        return _failed(original)

    negative = False
    working = raw
    if DEBIT_MARKER.search(working):
        negative = True
        working = DEBIT_MARKER.sub("", working)
    elif CREDIT_MARKER.search(working):
        working = CREDIT_MARKER.sub("", working)

    working = CURRENCY.sub("", "".join(working.split()))
    if working.startswith("+"):
        working = working[1:]
    if working.startswith("(") and working.endswith(")"):
        negative = True
        working = working[1:-1]
    if working.startswith("-"):
        negative = True
        working = working[1:]
    if working.endswith("-"):
        negative = True
        working = working[:-1]
    if not working:
        return _failed(original)

    decimal_sep = locale.decimal_sep
    thousand_sep = locale.thousand_sep.strip()
    if working.count(decimal_sep) > 1:
        return _fallback(original)

    if decimal_sep in working:
        integer_part, decimal_part = working.split(decimal_sep)
    else:
        integer_part, decimal_part = working, ""

    if decimal_part and not decimal_part.isdigit():
        return _fallback(original)

    grouped = False
    if thousand_sep and thousand_sep in integer_part:
        if not re.match(rf"^\d{{1,3}}({re.escape(thousand_sep)}\d{{3}})+$", integer_part):
            return _fallback(original)
        grouped = True
        integer_part = integer_part.replace(thousand_sep, "")

    if not integer_part.isdigit():
        return _fallback(original)

    number = Decimal(f"{integer_part}.{decimal_part}" if decimal_part else integer_part)
    value = number.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    if negative:
        value = -value

    confidence = BASE_PARSE_CONFIDENCE
    if len(decimal_part) == 2:
        confidence += TWO_DECIMALS_BONUS
    if grouped:
        confidence += GROUPING_BONUS
    return ParsedAmount(value=value, confidence=min(confidence, MAX_PARSE_CONFIDENCE), original_text=original)
