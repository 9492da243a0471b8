"""Tests for number locale detection and locale-bound parsing."""

from decimal import Decimal

import pytest

from bankimport.domain.entities import NumberLocale
from bankimport.domain.locale import SPANISH_LOCALE, detect_number_locale, parse_with_locale

ENGLISH = NumberLocale(decimal_sep=".", thousand_sep=",", confidence=0.9)


def test_detects_spanish_locale():
    locale = detect_number_locale(["1.234,56", "45,30", "-80,15"])
    assert locale.decimal_sep == ","
    assert locale.thousand_sep == "."
    assert locale.family == "EU"
    assert locale.confidence == pytest.approx(0.95)


def test_detects_english_locale():
    locale = detect_number_locale(["1,234.56", "45.30", "80.15"])
    assert locale.decimal_sep == "."
    assert locale.thousand_sep == ","
    assert locale.family == "EN"


def test_detects_space_thousands():
    locale = detect_number_locale(["1 234,56", "2 500,00"])
    assert locale.decimal_sep == ","
    assert locale.thousand_sep == " "


@pytest.mark.parametrize("samples", [[], ["100", "200"], ["abc", "n/a"]])
def test_insufficient_evidence_defaults_to_spanish(samples):
    assert detect_number_locale(samples) == SPANISH_LOCALE


def test_parse_grouped_two_decimals_has_highest_confidence():
    parsed = parse_with_locale("1.234,56", SPANISH_LOCALE)
    assert parsed.value == Decimal("1234.56")
    assert parsed.confidence == pytest.approx(0.95)


def test_parse_single_decimal():
    parsed = parse_with_locale("45,3", SPANISH_LOCALE)
    assert parsed.value == Decimal("45.30")
    assert parsed.confidence == pytest.approx(0.6)


@pytest.mark.parametrize("text", ["-80,15", "(80,15)", "80,15-", "DR 80,15"])
def test_parse_negative_forms(text):
    assert parse_with_locale(text, SPANISH_LOCALE).value == Decimal("-80.15")


def test_parse_english_locale():
    parsed = parse_with_locale("1,234.56", ENGLISH)
    assert parsed.value == Decimal("1234.56")
    assert parsed.confidence == pytest.approx(0.95)


def test_locale_mismatch_falls_back_with_lower_confidence():
    parsed = parse_with_locale("1.234,56", ENGLISH)
    assert parsed.value == Decimal("1234.56")
    assert parsed.confidence == pytest.approx(0.55)


def test_bad_grouping_falls_back():
    parsed = parse_with_locale("12.34,00", SPANISH_LOCALE)
    assert parsed.value == Decimal("1234.00")
    assert parsed.confidence == pytest.approx(0.55)


@pytest.mark.parametrize("text", ["", "   ", "abc", None])
def test_unparseable_cells_have_zero_confidence(text):
    parsed = parse_with_locale(text, SPANISH_LOCALE)
    assert parsed.confidence == 0.0
    assert parsed.value == Decimal("0.00")
