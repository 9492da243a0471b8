"""Mapper functions to convert between domain models and stored representations.

Profiles travel as plain dicts: the same document is stored in the
``bank_profiles`` table and written by profile export, so both go through
``profile_to_dict`` and ``profile_from_dict``.
"""

from datetime import datetime, UTC
from typing import Any

from bankimport.domain import entities as domain
from bankimport.domain.errors import ValidationError
from bankimport.database.models import (
    BankProfileRecord as ORMBankProfile,
    Movement as ORMMovement,
)


def movement_to_domain(orm_movement: ORMMovement) -> domain.StoredMovement:
    """Convert SQLAlchemy Movement model to domain StoredMovement entity."""
    return domain.StoredMovement(
        id=orm_movement.id,
        account_id=orm_movement.account_id,
        date=orm_movement.date,
        amount=orm_movement.amount,
        description=orm_movement.description,
        counterparty=orm_movement.counterparty,
        reference=orm_movement.reference,
        balance=orm_movement.balance,
        deduplication_hash=orm_movement.deduplication_hash,
        imported_at=orm_movement.imported_at,
    )


def movement_to_orm(account_id: str, movement: domain.NormalizedMovement) -> ORMMovement:
    """Build a SQLAlchemy Movement row from a normalized movement."""
    return ORMMovement(
        account_id=account_id,
        date=movement.date,
        value_date=movement.value_date,
        amount=movement.amount,
        description=movement.description,
        counterparty=movement.counterparty,
        reference=movement.reference,
        balance=movement.balance,
        deduplication_hash=movement.deduplication_hash,
    )


def profile_to_domain(orm_profile: ORMBankProfile) -> domain.BankMappingProfile:
    """Convert SQLAlchemy BankProfileRecord model to domain BankMappingProfile entity."""
    return profile_from_dict(orm_profile.payload)


def _parse_timestamp(value: str) -> datetime:
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def profile_to_dict(profile: domain.BankMappingProfile) -> dict[str, Any]:
    """Convert a profile to its JSON-compatible document."""
    locale = profile.mapping.locale
    metadata = profile.metadata
    return {
        "id": profile.id,
        "name": profile.name,
        "signature": {
            "headers_ordered": list(profile.signature.headers_ordered),
            "sample_hash": profile.signature.sample_hash,
        },
        "mapping": {
            "columns": profile.mapping.columns.to_dict(),
            "locale": {
                "decimal_sep": locale.decimal_sep,
                "thousand_sep": locale.thousand_sep,
                "confidence": locale.confidence,
            },
            "date_format": profile.mapping.date_format,
        },
        "metadata": {
            "created_at": metadata.created_at.isoformat(),
            "updated_at": metadata.updated_at.isoformat(),
            "last_used": metadata.last_used.isoformat(),
            "usage_count": metadata.usage_count,
            "confidence": metadata.confidence,
            "file_patterns": list(metadata.file_patterns),
        },
    }


def profile_from_dict(data: dict[str, Any]) -> domain.BankMappingProfile:
    """Build a profile from its document.

    Raises:
        ValidationError: If the document is missing fields or holds bad values
    """
    try:
        signature = data["signature"]
        mapping = data["mapping"]
        locale = mapping["locale"]
        metadata = data["metadata"]
        return domain.BankMappingProfile(
            id=str(data["id"]),
            name=data.get("name"),
            signature=domain.ProfileSignature(
                headers_ordered=tuple(signature["headers_ordered"]),
                sample_hash=signature["sample_hash"],
            ),
            mapping=domain.ProfileMapping(
                columns=domain.ColumnMapping(**mapping["columns"]),
                locale=domain.NumberLocale(
                    decimal_sep=locale["decimal_sep"],
                    thousand_sep=locale["thousand_sep"],
                    confidence=float(locale["confidence"]),
                ),
                date_format=mapping["date_format"],
            ),
            metadata=domain.ProfileMetadata(
                created_at=_parse_timestamp(metadata["created_at"]),
                updated_at=_parse_timestamp(metadata["updated_at"]),
                last_used=_parse_timestamp(metadata["last_used"]),
                usage_count=int(metadata.get("usage_count", 1)),
                confidence=float(metadata.get("confidence", 0.8)),
                file_patterns=tuple(metadata.get("file_patterns", ())),
            ),
        )
    except (KeyError, TypeError, ValueError) as e:
        raise ValidationError(f"Invalid bank profile document: {e}") from e
