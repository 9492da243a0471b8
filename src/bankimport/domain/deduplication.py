"""Stable hash deduplication of bank movements.

A movement's identity is its account, date, signed amount, normalized
description and optional reference. The same movement exported twice, even
with different spacing, accents or punctuation in its description, hashes
to the same value.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Callable, Iterable, Optional, Union
import hashlib
import re
import time
import unicodedata

HASH_SEPARATOR = "|"

DMY = re.compile(r"^(\d{1,2})[/\-](\d{1,2})[/\-](\d{4})$")
YMD = re.compile(r"^(\d{4})[/\-](\d{1,2})[/\-](\d{1,2})$")
PUNCTUATION = re.compile(r"[^\w\s]")


@dataclass(frozen=True)
class MovementForDeduplication:
    """The fields of a movement that define its identity."""

    account_id: Union[int, str]
    date: Union[date, str]
    amount: Union[Decimal, int, float]
    description: str
    reference: Optional[str] = None
    counterparty: Optional[str] = None


@dataclass(frozen=True)
class HashComponents:
    account_id: str
    date_iso: str
    amount: str
    description: str
    reference: str

    def joined(self) -> str:
        return HASH_SEPARATOR.join(
            [self.account_id, self.date_iso, self.amount, self.description, self.reference]
        )


@dataclass(frozen=True)
class DeduplicationResult:
    """Outcome of one deduplication pass."""

    original_count: int
    unique_count: int
    duplicate_count: int
    unique_movements: list = field(default_factory=list)
    duplicate_hashes: list[str] = field(default_factory=list)
    processing_time_ms: float = 0.0


def normalize_date_iso(value: Union[date, str]) -> str:
    """Return ``YYYY-MM-DD`` for a date or a date string."""
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()

    text = str(value).strip()
    try:
        return date.fromisoformat(text[:10]).isoformat()
    except ValueError:
        pass
    match = DMY.match(text)
    if match:
        day, month, year = match.groups()
        return f"{year}-{month.zfill(2)}-{day.zfill(2)}"
    match = YMD.match(text)
    if match:
        year, month, day = match.groups()
        return f"{year}-{month.zfill(2)}-{day.zfill(2)}"
    return text


def normalize_amount(value: Union[Decimal, int, float]) -> str:
    """Return the amount with exactly two decimals."""
    amount = value if isinstance(value, Decimal) else Decimal(str(value))
    return str(amount.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def normalize_description(text: str) -> str:
    """Lowercase, strip accents and punctuation, and collapse whitespace."""
    lowered = (text or "").strip().lower()
    decomposed = unicodedata.normalize("NFKD", lowered)
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    stripped = PUNCTUATION.sub("", stripped)
    return " ".join(stripped.split())


def normalize_reference(reference: Optional[str]) -> str:
    if not reference:
        return ""
    return "".join(str(reference).upper().split())


def extract_hash_components(movement: MovementForDeduplication) -> HashComponents:
    return HashComponents(
        account_id=str(movement.account_id).strip(),
        date_iso=normalize_date_iso(movement.date),
        amount=normalize_amount(movement.amount),
        description=normalize_description(movement.description),
        reference=normalize_reference(movement.reference),
    )


def simple_hash(text: str) -> str:
    """Deterministic 32-bit string hash as eight hex digits."""
    value = 0
    for ch in text:
        value = ((value << 5) - value + ord(ch)) & 0xFFFFFFFF
    if value & 0x80000000:
        value -= 1 << 32
    return format(abs(value), "08x")


def compute_hash(text: str) -> str:
    """SHA-1 hex digest of a string, or ``simple_hash`` where SHA-1 is unavailable."""
    try:
        digest = hashlib.new("sha1", usedforsecurity=False)
    except ValueError:
        return simple_hash(text)
    digest.update(text.encode("utf-8"))
    return digest.hexdigest()


def generate_movement_hash(movement: MovementForDeduplication) -> str:
    """Return the stable identity hash of a movement."""
    return compute_hash(extract_hash_components(movement).joined())


def deduplicate_movements(
    movements: Iterable, hash_of: Optional[Callable[[object], str]] = None
) -> DeduplicationResult:
    """Drop repeated movements, keeping the first occurrence of each hash.

    Args:
        movements: Movements in file order
        hash_of: Returns the hash of one movement (defaults to
            ``generate_movement_hash`` for ``MovementForDeduplication`` items)

    Returns:
        DeduplicationResult with the unique movements in their original order
    """
    hash_of = hash_of or generate_movement_hash
    started = time.perf_counter()
    seen: set[str] = set()
    unique = []
    duplicate_hashes = []
    total = 0
    for movement in movements:
        total += 1
        movement_hash = hash_of(movement)
        if movement_hash in seen:
            duplicate_hashes.append(movement_hash)
            continue
        seen.add(movement_hash)
        unique.append(movement)

    return DeduplicationResult(
        original_count=total,
        unique_count=len(unique),
        duplicate_count=len(duplicate_hashes),
        unique_movements=unique,
        duplicate_hashes=duplicate_hashes,
        processing_time_ms=(time.perf_counter() - started) * 1000,
    )


def is_duplicate(movement: MovementForDeduplication, existing_hashes: set[str]) -> bool:
    return generate_movement_hash(movement) in existing_hashes


def hash_breakdown(movement: MovementForDeduplication) -> dict[str, str]:
    """Show every normalized component of a movement's hash, for debugging."""
    components = extract_hash_components(movement)
    return {
        "account_id": components.account_id,
        "date_iso": components.date_iso,
        "amount": components.amount,
        "description": components.description,
        "reference": components.reference,
        "hash_input": components.joined(),
        "hash": compute_hash(components.joined()),
    }


def validate_hash_components(movement: MovementForDeduplication) -> list[str]:
    """Return the problems that would make a movement's hash unreliable."""
    problems = []
    if not str(movement.account_id).strip():
        problems.append("Missing account id")
    if not re.match(r"^\d{4}-\d{2}-\d{2}$", normalize_date_iso(movement.date)):
        problems.append(f"Date '{movement.date}' could not be normalized to ISO format")
    if not normalize_description(movement.description):
        problems.append("Description is empty after normalization")
    try:
        normalize_amount(movement.amount)
    except (ArithmeticError, ValueError):
        problems.append(f"Amount '{movement.amount}' is not a number")
    return problems
