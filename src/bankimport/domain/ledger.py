"""Ledger validation: balance progression, summaries and the golden rule.

Every function takes movements in any order and works on a copy sorted by
date (stable, so same-day movements keep their file order).
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Optional, Sequence

from bankimport.domain.entities import LedgerSummary, NormalizedMovement

DEFAULT_TOLERANCE = Decimal("0.01")
RECONSTRUCT_ABOVE_RATE = 0.2
BUSY_DAY_MOVEMENTS = 10
LARGE_MOVEMENT = Decimal("100000")

ACCEPT = "accept"
RECONSTRUCT = "reconstruct"
MANUAL_REVIEW = "manual_review"

ZERO = Decimal("0.00")
CENT = Decimal("0.01")


@dataclass(frozen=True)
class LedgerValidationResult:
    """Outcome of checking that every balance equals the previous one plus the amount."""

    is_consistent: bool
    tolerance: Decimal
    total_inconsistencies: int
    recommendation: str
    inconsistent_rows: list[int] = field(default_factory=list)


def _sorted(movements: Sequence[NormalizedMovement]) -> list[NormalizedMovement]:
    return sorted(movements, key=lambda m: m.date)


def validate_ledger(
    movements: Sequence[NormalizedMovement], tolerance: Decimal = DEFAULT_TOLERANCE
) -> LedgerValidationResult:
    """Check balance progression between consecutive movements.

    A pair is only checked when both movements carry a balance.

    Args:
        movements: Movements to check
        tolerance: Largest accepted difference between expected and actual balance

    Returns:
        LedgerValidationResult with the source rows that break the progression
        and a recommendation: accept (no violations), reconstruct (more than
        20% of pairs broken) or manual_review
    """
    if not movements:
        return LedgerValidationResult(True, tolerance, 0, ACCEPT)

    ordered = _sorted(movements)
    inconsistent_rows = []
    for previous, current in zip(ordered, ordered[1:]):
        if previous.balance is None or current.balance is None:
            continue
        expected = previous.balance + current.amount
        if abs(current.balance - expected) > tolerance:
            inconsistent_rows.append(current.source_row_index)

    violations = len(inconsistent_rows)
    rate = violations / max(len(ordered) - 1, 1)
    if violations == 0:
        recommendation = ACCEPT
    elif rate > RECONSTRUCT_ABOVE_RATE:
        recommendation = RECONSTRUCT
    else:
        recommendation = MANUAL_REVIEW

    return LedgerValidationResult(
        is_consistent=violations == 0,
        tolerance=tolerance,
        total_inconsistencies=violations,
        recommendation=recommendation,
        inconsistent_rows=inconsistent_rows,
    )


def reconstruct_balances(
    movements: Sequence[NormalizedMovement], opening_balance: Optional[Decimal] = None
) -> list[Decimal]:
    """Recompute running balances in date order.

    The starting point is the given opening balance, else the first known
    balance minus its own amount, else zero.
    """
    if not movements:
        return []

    ordered = _sorted(movements)
    if opening_balance is not None:
        running = opening_balance
    else:
        first_with_balance = next((m for m in ordered if m.balance is not None), None)
        running = first_with_balance.balance - first_with_balance.amount if first_with_balance else ZERO

    balances = []
    for movement in ordered:
        running += movement.amount
        balances.append(running.quantize(CENT))
    return balances


def calculate_ledger_summary(
    movements: Sequence[NormalizedMovement], opening_balance: Optional[Decimal] = None
) -> LedgerSummary:
    """Summarize inflows, outflows and the opening and closing balances.

    When the last movement carries a balance it is the closing balance, and
    a missing opening balance is derived from the first movement. Otherwise
    the closing balance is computed from the opening balance, if known.
    """
    if not movements:
        return LedgerSummary(
            total_inflows=ZERO,
            total_outflows=ZERO,
            net_movement=ZERO,
            movement_count=0,
            opening_balance=opening_balance,
            closing_balance=opening_balance,
        )

    ordered = _sorted(movements)
    inflows = sum((m.amount for m in ordered if m.amount > 0), ZERO)
    outflows = sum((abs(m.amount) for m in ordered if m.amount <= 0), ZERO)
    net = inflows - outflows

    first, last = ordered[0], ordered[-1]
    opening = opening_balance
    closing = None
    if last.balance is not None:
        closing = last.balance
        if opening is None and first.balance is not None:
            opening = first.balance - first.amount
    elif opening is not None:
        closing = opening + net

    return LedgerSummary(
        total_inflows=inflows.quantize(CENT),
        total_outflows=outflows.quantize(CENT),
        net_movement=net.quantize(CENT),
        movement_count=len(ordered),
        period_start=first.date,
        period_end=last.date,
        opening_balance=opening,
        closing_balance=closing,
    )


def validate_ledger_summary(
    summary: LedgerSummary, tolerance: Decimal = DEFAULT_TOLERANCE
) -> tuple[bool, Optional[str]]:
    """Check that closing balance equals opening balance plus net movement.

    Returns:
        Tuple of (is_valid, error message). A summary without both balances
        cannot be checked and is reported valid.
    """
    if summary.opening_balance is None or summary.closing_balance is None:
        return True, None

    expected = summary.opening_balance + summary.net_movement
    difference = abs(summary.closing_balance - expected)
    if difference <= tolerance:
        return True, None
    return False, (
        f"Balance mismatch: Expected {expected:.2f}, got {summary.closing_balance:.2f} "
        f"(diff: {difference:.2f})"
    )


def detect_ledger_issues(movements: Sequence[NormalizedMovement]) -> tuple[list[str], list[str]]:
    """Look for busy days, very large movements and rows out of date order.

    Returns:
        Tuple of (issues, suggestions)
    """
    issues: list[str] = []
    suggestions: list[str] = []

    per_day: dict = {}
    for movement in movements:
        per_day[movement.date] = per_day.get(movement.date, 0) + 1
    for day, count in sorted(per_day.items()):
        if count > BUSY_DAY_MOVEMENTS:
            issues.append(f"High activity on {day.isoformat()}: {count} movements")
            suggestions.append("Review for potential duplicates or batch processing")

    for movement in movements:
        if abs(movement.amount) > LARGE_MOVEMENT:
            issues.append(f"Large amount detected: {movement.amount:.2f} on {movement.date.isoformat()}")
            suggestions.append("Verify large transactions for accuracy")

    out_of_order = sum(1 for previous, current in zip(movements, movements[1:]) if current.date < previous.date)
    if out_of_order:
        issues.append(f"{out_of_order} movements are out of chronological order")
        suggestions.append("Sort movements by date for proper balance progression")

    return issues, suggestions


def generate_monthly_summaries(movements: Sequence[NormalizedMovement]) -> dict[str, LedgerSummary]:
    """Summarize each calendar month, chaining each opening balance to the previous closing."""
    by_month: dict[str, list[NormalizedMovement]] = {}
    for movement in movements:
        by_month.setdefault(movement.date.strftime("%Y-%m"), []).append(movement)

    summaries: dict[str, LedgerSummary] = {}
    previous_closing: Optional[Decimal] = None
    for month in sorted(by_month):
        summary = calculate_ledger_summary(by_month[month], previous_closing)
        summaries[month] = summary
        previous_closing = summary.closing_balance
    return summaries
