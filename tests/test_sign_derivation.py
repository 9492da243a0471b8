"""Tests for sign derivation from debit, credit and amount columns."""

from decimal import Decimal

import pytest

from bankimport.domain.locale import SPANISH_LOCALE
from bankimport.domain.sign_derivation import (
    AMOUNT_ONLY,
    DEBIT_CREDIT,
    SIGNED_AMOUNT,
    SignDerivationResult,
    derive_signed_amount,
    validate_sign_derivation,
)


def test_debit_column_is_negative():
    result = derive_signed_amount({"debit": "32,18", "credit": ""}, SPANISH_LOCALE)
    assert result.amount == Decimal("-32.18")
    assert result.method == DEBIT_CREDIT
    assert result.confidence == pytest.approx(0.95)


def test_credit_column_is_positive():
    result = derive_signed_amount({"debit": "", "credit": "32,18"}, SPANISH_LOCALE)
    assert result.amount == Decimal("32.18")


def test_debit_sign_ignores_cell_sign():
    assert derive_signed_amount({"debit": "-32,18"}, SPANISH_LOCALE).amount == Decimal("-32.18")
    assert derive_signed_amount({"credit": "-32,18"}, SPANISH_LOCALE).amount == Decimal("32.18")


@pytest.mark.parametrize(
    "values, expected",
    [
        ({"cargo": "10,00"}, Decimal("-10.00")),
        ({"debe": "10,00"}, Decimal("-10.00")),
        ({"débito": "10,00"}, Decimal("-10.00")),
        ({"abono": "10,00"}, Decimal("10.00")),
        ({"haber": "10,00"}, Decimal("10.00")),
        ({"crédito": "10,00"}, Decimal("10.00")),
        ({"importe": "-10,00"}, Decimal("-10.00")),
    ],
)
def test_spanish_synonyms(values, expected):
    assert derive_signed_amount(values, SPANISH_LOCALE).amount == expected


def test_both_sides_larger_wins_with_penalty():
    result = derive_signed_amount({"debit": "100,00", "credit": "30,00"}, SPANISH_LOCALE)
    assert result.amount == Decimal("-100.00")
    assert result.confidence == pytest.approx(0.95 * 0.6)

    result = derive_signed_amount({"debit": "30,00", "credit": "100,00"}, SPANISH_LOCALE)
    assert result.amount == Decimal("100.00")


def test_unparseable_side_penalizes_confidence():
    result = derive_signed_amount({"debit": "n/a", "credit": "30,00"}, SPANISH_LOCALE)
    assert result.amount == Decimal("30.00")
    assert result.confidence == pytest.approx(0.95 * 0.8)


def test_zero_sides():
    result = derive_signed_amount({"debit": "0,00", "credit": "0,00"}, SPANISH_LOCALE)
    assert result.amount == 0
    assert result.confidence == pytest.approx(0.1)


def test_debit_credit_take_priority_over_amount():
    result = derive_signed_amount({"debit": "5,00", "amount": "99,00"}, SPANISH_LOCALE)
    assert result.amount == Decimal("-5.00")


def test_signed_amount_keeps_sign_and_caps_confidence():
    result = derive_signed_amount({"amount": "1.234,56"}, SPANISH_LOCALE)
    assert result.amount == Decimal("1234.56")
    assert result.method == SIGNED_AMOUNT
    assert result.confidence == pytest.approx(0.9)


def test_no_amount_cells():
    result = derive_signed_amount({"debit": "", "credit": None, "amount": " "}, SPANISH_LOCALE)
    assert result.method == AMOUNT_ONLY
    assert result.confidence == 0.0


def test_description_never_changes_the_sign():
    values = {"debit": "45,30", "credit": ""}
    baseline = derive_signed_amount(values, SPANISH_LOCALE)
    for description in ["Abono nómina", "Devolución ingreso", "CREDIT refund", "haber"]:
        result = derive_signed_amount({**values, "description": description}, SPANISH_LOCALE)
        assert result.amount == baseline.amount


def test_validate_sign_derivation_warnings():
    warnings = validate_sign_derivation(
        SignDerivationResult(
            Decimal("-2000000.00"), 0.4, DEBIT_CREDIT,
            {"debit": Decimal("2000000.00"), "credit": Decimal("1.00")},
        )
    )
    assert "Low confidence in amount parsing" in warnings
    assert "Very large amount detected, please verify" in warnings
    assert "Both debit and credit values present" in warnings

    assert validate_sign_derivation(SignDerivationResult(Decimal("0.00"), 0.9, SIGNED_AMOUNT)) == [
        "Zero amount detected"
    ]
