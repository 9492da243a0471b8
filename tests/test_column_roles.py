"""Tests for column role detection."""

from datetime import date

import pytest

from bankimport.domain.column_roles import (
    ColumnDetection,
    combine_detections,
    detect_from_content,
    detect_from_header,
    detect_header_row,
    detect_schema,
    match_header,
    normalize_header,
    validate_schema,
)
from bankimport.domain.entities import ColumnRole, RawTable

TODAY = date(2024, 6, 30)


def test_normalize_header():
    assert normalize_header("  Importe (€)  ") == "importe €"
    assert normalize_header("Descripción   Ampliada") == "descripcion ampliada"


@pytest.mark.parametrize(
    "header, role",
    [
        ("Fecha", ColumnRole.DATE),
        ("Fecha Operación", ColumnRole.DATE),
        ("F. Valor", ColumnRole.VALUE_DATE),
        ("Fecha Valor", ColumnRole.VALUE_DATE),
        ("Concepto", ColumnRole.DESCRIPTION),
        ("Beneficiario", ColumnRole.COUNTERPARTY),
        ("Cargo", ColumnRole.DEBIT),
        ("Abono", ColumnRole.CREDIT),
        ("Importe EUR", ColumnRole.AMOUNT),
        ("Saldo disponible", ColumnRole.BALANCE),
        ("Referencia", ColumnRole.REFERENCE),
        ("Booking date", ColumnRole.DATE),
        ("Paid out", ColumnRole.DEBIT),
    ],
)
def test_match_header(header, role):
    assert match_header(header)[0] == role


def test_short_keywords_need_word_boundaries():
    # "id" must not match inside a longer word
    assert match_header("Providencia") is None
    assert match_header("ID") == (ColumnRole.REFERENCE, "id")


def test_detect_from_header_unknown():
    detection = detect_from_header("Notas internas")
    assert detection.role == ColumnRole.UNKNOWN
    assert detection.confidence == pytest.approx(0.2)


def test_content_dates():
    detection = detect_from_content(["01/03/2024", "02/03/2024", "05/03/2024"], TODAY)
    assert detection.role == ColumnRole.DATE
    assert detection.confidence == pytest.approx(0.95)


def test_content_running_balance():
    detection = detect_from_content(["3.500,00", "3.454,70", "3.374,55", "3.524,55"], TODAY)
    assert detection.role == ColumnRole.BALANCE


def test_content_mixed_signs_is_amount():
    detection = detect_from_content(["2.500,00", "-45,30", "-80,15", "150,00"], TODAY)
    assert detection.role == ColumnRole.AMOUNT


def test_content_all_positive_is_credit():
    detection = detect_from_content(["45,30", "1.200,00"], TODAY)
    assert detection.role == ColumnRole.CREDIT


def test_content_iban_is_reference():
    detection = detect_from_content(["ES9121000418450200051332", "ES7921000813610123456789"], TODAY)
    assert detection.role == ColumnRole.REFERENCE


def test_content_long_unique_text_is_description():
    detection = detect_from_content(
        ["Compra supermercado Mercadona centro", "Recibo luz Iberdrola marzo 2024"], TODAY
    )
    assert detection.role == ColumnRole.DESCRIPTION


def test_content_without_samples():
    detection = detect_from_content([], TODAY)
    assert detection.role == ColumnRole.UNKNOWN


def test_combine_agreement_boosts_confidence():
    header = ColumnDetection(ColumnRole.AMOUNT, 0.9, "header")
    content = ColumnDetection(ColumnRole.AMOUNT, 0.8, "content")
    combined = combine_detections(header, content)
    assert combined.role == ColumnRole.AMOUNT
    assert combined.confidence == pytest.approx(0.95)


def test_combine_prefers_content_for_financial_roles():
    header = ColumnDetection(ColumnRole.DESCRIPTION, 0.9, "header")
    content = ColumnDetection(ColumnRole.AMOUNT, 0.9, "content")
    assert combine_detections(header, content).role == ColumnRole.AMOUNT


def test_combine_prefers_header_for_text_roles():
    header = ColumnDetection(ColumnRole.REFERENCE, 0.9, "header")
    content = ColumnDetection(ColumnRole.DESCRIPTION, 0.8, "content")
    assert combine_detections(header, content).role == ColumnRole.REFERENCE


def test_combine_keeps_header_within_numeric_family():
    """A debit column whose values are all positive stays a debit column."""
    header = ColumnDetection(ColumnRole.DEBIT, 0.9, "header")
    content = ColumnDetection(ColumnRole.CREDIT, 0.8, "content")
    assert combine_detections(header, content).role == ColumnRole.DEBIT


def test_validate_schema_conflicts():
    columns = {
        0: ColumnDetection(ColumnRole.DATE, 0.9, ""),
        1: ColumnDetection(ColumnRole.DATE, 0.9, ""),
        2: ColumnDetection(ColumnRole.BALANCE, 0.9, ""),
        3: ColumnDetection(ColumnRole.BALANCE, 0.9, ""),
    }
    conflicts = validate_schema(columns)
    assert "No amount column detected" in conflicts
    assert "Multiple date columns detected" in conflicts
    assert "Multiple balance columns detected" in conflicts
    assert validate_schema({}) == ["No date column detected", "No amount column detected"]


def test_detect_schema_spanish_statement():
    table = RawTable(
        rows=[
            ["Fecha", "Concepto", "Importe", "Saldo"],
            ["01/03/2024", "Nómina Empresa SA marzo", "2.500,00", "3.500,00"],
            ["02/03/2024", "Compra supermercado Mercadona", "-45,30", "3.454,70"],
            ["05/03/2024", "Recibo luz Iberdrola", "-80,15", "3.374,55"],
            ["10/03/2024", "Transferencia recibida Juan", "150,00", "3.524,55"],
        ],
        header_row_index=0,
    )
    result = detect_schema(table, TODAY)
    assert not result.needs_manual_mapping
    assert result.overall_confidence >= 0.8
    assert result.roles() == {
        0: ColumnRole.DATE,
        1: ColumnRole.DESCRIPTION,
        2: ColumnRole.AMOUNT,
        3: ColumnRole.BALANCE,
    }
    mapping = result.to_mapping()
    assert mapping.amount_column == 2
    assert mapping.validate() == []


def test_detect_schema_without_amounts_needs_manual_mapping():
    table = RawTable(rows=[["Ana", "Madrid"], ["Luis", "Sevilla"]], header_row_index=None)
    result = detect_schema(table, TODAY)
    assert result.needs_manual_mapping
    assert "No date column detected" in result.ambiguities


def test_detect_schema_without_data():
    result = detect_schema(RawTable(rows=[["Fecha", "Importe"]], header_row_index=0), TODAY)
    assert result.needs_manual_mapping
    assert result.ambiguities == ["No data available for analysis"]


def test_detect_header_row_skips_preamble():
    rows = [
        ["Extracto de movimientos"],
        ["Cuenta", "ES91 2100 0418 4502 0005 1332"],
        [],
        ["Fecha", "Concepto", "Importe"],
        ["01/03/2024", "Compra", "-10,00"],
    ]
    assert detect_header_row(rows) == 3


def test_detect_header_row_headerless():
    assert detect_header_row([["01/03/2024", "Compra", "-10,00"]]) is None


def test_detect_header_row_prefers_row_naming_most_roles():
    rows = [
        ["Entidad", "Banco Santander"],
        ["Titular", "Juan Perez"],
        ["Fecha", "Concepto", "Importe", "Saldo"],
        ["01/03/2024", "Compra", "-10,00", "90,00"],
    ]
    assert detect_header_row(rows) == 2


def test_detect_header_row_stops_at_first_data_row():
    rows = [
        ["01/03/2024", "Compra", "-10,00"],
        ["Fecha", "Concepto", "Importe"],
    ]
    assert detect_header_row(rows) is None
