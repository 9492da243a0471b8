"""Sign derivation for bank movements.

The sign of a movement comes only from the structure of the columns that
hold it: a debit column means money out, a credit column means money in,
and a single amount column keeps the sign it was written with. Description
text is never consulted.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Mapping, Optional

from bankimport.domain.entities import NumberLocale
from bankimport.domain.locale import parse_with_locale

DEBIT_CREDIT = "debit_credit"
SIGNED_AMOUNT = "signed_amount"
AMOUNT_ONLY = "amount_only"

DEBIT_KEYS = ("debit", "debe", "cargo", "debito", "débito")
CREDIT_KEYS = ("credit", "haber", "abono", "credito", "crédito")
AMOUNT_KEYS = ("amount", "importe")

DEBIT_CREDIT_CONFIDENCE = 0.95
PARSE_FAILURE_PENALTY = 0.8
BOTH_SIDES_PENALTY = 0.6
EMPTY_SIDES_CONFIDENCE = 0.1
SIGNED_AMOUNT_MAX_CONFIDENCE = 0.9
MIN_PARSE_CONFIDENCE = 0.5
LOW_CONFIDENCE_WARNING = 0.5
LARGE_AMOUNT = Decimal("1000000")

ZERO = Decimal("0.00")


@dataclass(frozen=True)
class SignDerivationResult:
    """Signed amount with the method that produced it."""

    amount: Decimal
    confidence: float
    method: str
    original_values: dict[str, Decimal] = field(default_factory=dict)


def _present(value: Optional[str]) -> bool:
    return value is not None and str(value).strip() != ""


def _first_present(values: Mapping[str, Optional[str]], keys: tuple[str, ...]) -> Optional[str]:
    for key in keys:
        value = values.get(key)
        if _present(value):
            return str(value).strip()
    return None


def _derive_from_debit_credit(debit: Optional[str], credit: Optional[str], locale: NumberLocale) -> SignDerivationResult:
    confidence = DEBIT_CREDIT_CONFIDENCE
    debit_value = ZERO
    credit_value = ZERO

    if debit is not None:
        parsed = parse_with_locale(debit, locale)
        if parsed.confidence > MIN_PARSE_CONFIDENCE:
            debit_value = abs(parsed.value)
        else:
            confidence *= PARSE_FAILURE_PENALTY
    if credit is not None:
        parsed = parse_with_locale(credit, locale)
        if parsed.confidence > MIN_PARSE_CONFIDENCE:
            credit_value = abs(parsed.value)
        else:
            confidence *= PARSE_FAILURE_PENALTY

    has_debit = debit_value > 0
    has_credit = credit_value > 0
    if has_debit and has_credit:
        confidence *= BOTH_SIDES_PENALTY
        amount = -debit_value if debit_value >= credit_value else credit_value
        return SignDerivationResult(amount, confidence, DEBIT_CREDIT, {"debit": debit_value, "credit": credit_value})
    if has_debit:
        return SignDerivationResult(-debit_value, confidence, DEBIT_CREDIT, {"debit": debit_value})
    if has_credit:
        return SignDerivationResult(credit_value, confidence, DEBIT_CREDIT, {"credit": credit_value})
    return SignDerivationResult(ZERO, EMPTY_SIDES_CONFIDENCE, DEBIT_CREDIT, {"debit": ZERO, "credit": ZERO})


def derive_signed_amount(values: Mapping[str, Optional[str]], locale: NumberLocale) -> SignDerivationResult:
    """Derive the signed amount of one row from its amount-bearing cells.

    Debit and credit columns take priority over a single amount column. A
    debit is always negative and a credit always positive, whatever sign the
    cell carries; when both sides hold a value the larger one wins with
    reduced confidence.

    Args:
        values: Cell text keyed by role name. Debit accepts debit, debe,
            cargo, debito and débito; credit accepts credit, haber, abono,
            credito and crédito; the signed column accepts amount and importe.
        locale: Number locale of the file

    Returns:
        SignDerivationResult
    """
    debit = _first_present(values, DEBIT_KEYS)
    credit = _first_present(values, CREDIT_KEYS)
    if debit is not None or credit is not None:
        return _derive_from_debit_credit(debit, credit, locale)

    amount = _first_present(values, AMOUNT_KEYS)
    if amount is not None:
        parsed = parse_with_locale(amount, locale)
        return SignDerivationResult(
            parsed.value,
            min(parsed.confidence, SIGNED_AMOUNT_MAX_CONFIDENCE),
            SIGNED_AMOUNT,
            {"amount": parsed.value},
        )

    return SignDerivationResult(ZERO, 0.0, AMOUNT_ONLY)


def validate_sign_derivation(result: SignDerivationResult) -> list[str]:
    """Return warnings about a derived amount (empty when nothing looks off)."""
    warnings = []
    if result.confidence < LOW_CONFIDENCE_WARNING:
        warnings.append("Low confidence in amount parsing")
    if result.amount == 0:
        warnings.append("Zero amount detected")
    if abs(result.amount) > LARGE_AMOUNT:
        warnings.append("Very large amount detected, please verify")
    if "debit" in result.original_values and "credit" in result.original_values:
        if result.original_values["debit"] > 0 and result.original_values["credit"] > 0:
            warnings.append("Both debit and credit values present")
    return warnings
