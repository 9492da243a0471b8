"""In-memory profile and ledger stores."""

from contextlib import AbstractContextManager
from datetime import datetime, UTC
from typing import Optional
import threading

from bankimport.database.base import LedgerStore, ProfileStore
from bankimport.domain.entities import BankMappingProfile, NormalizedMovement, StoredMovement


class InMemoryProfileStore(ProfileStore):
    """Profile store kept in a dict, for embedding and tests."""

    def __init__(self):
        self._profiles: dict[str, BankMappingProfile] = {}
        self._lock = threading.RLock()

    def get_profile(self, profile_id: str) -> Optional[BankMappingProfile]:
        return self._profiles.get(profile_id)

    def save_profile(self, profile: BankMappingProfile) -> None:
        self._profiles[profile.id] = profile

    def list_profiles(self) -> list[BankMappingProfile]:
        return list(self._profiles.values())

    def delete_profile(self, profile_id: str) -> bool:
        return self._profiles.pop(profile_id, None) is not None

    def lock(self) -> AbstractContextManager:
        return self._lock


class InMemoryLedgerStore(LedgerStore):
    """Ledger store kept in a dict keyed by account."""

    def __init__(self):
        self._movements: dict[str, list[StoredMovement]] = {}
        self._next_id = 1

    def existing_hashes(self, account_id: str) -> set[str]:
        return {m.deduplication_hash for m in self._movements.get(account_id, [])}

    def save_movements(self, account_id: str, movements: list[NormalizedMovement]) -> int:
        known = self.existing_hashes(account_id)
        stored = self._movements.setdefault(account_id, [])
        count = 0
        for movement in movements:
            if movement.deduplication_hash in known:
                continue
            known.add(movement.deduplication_hash)
            stored.append(
                StoredMovement(
                    id=self._next_id,
                    account_id=account_id,
                    date=movement.date,
                    amount=movement.amount,
                    description=movement.description,
                    counterparty=movement.counterparty,
                    reference=movement.reference,
                    balance=movement.balance,
                    deduplication_hash=movement.deduplication_hash,
                    imported_at=datetime.now(UTC),
                )
            )
            self._next_id += 1
            count += 1
        return count

    def list_movements(self, account_id: str) -> list[StoredMovement]:
        return sorted(self._movements.get(account_id, []), key=lambda m: (m.date, m.id))
