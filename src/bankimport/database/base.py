"""Abstract storage interfaces."""

from abc import ABC, abstractmethod
from contextlib import AbstractContextManager
from typing import Optional

# Import entities directly to avoid circular import through domain/__init__.py
from bankimport.domain.entities import BankMappingProfile, NormalizedMovement, StoredMovement


class ProfileStore(ABC):
    """Key-value store for bank mapping profiles.

    Implementations raise ``ProfileStoreError`` when their backend fails.
    """

    @abstractmethod
    def get_profile(self, profile_id: str) -> Optional[BankMappingProfile]:
        """Get profile by ID."""
        pass

    @abstractmethod
    def save_profile(self, profile: BankMappingProfile) -> None:
        """Insert or replace a profile."""
        pass

    @abstractmethod
    def list_profiles(self) -> list[BankMappingProfile]:
        """List all profiles."""
        pass

    @abstractmethod
    def delete_profile(self, profile_id: str) -> bool:
        """Delete a profile. Returns False if it did not exist."""
        pass

    @abstractmethod
    def lock(self) -> AbstractContextManager:
        """Lock serializing read-modify-write cycles on the store."""
        pass


class LedgerStore(ABC):
    """Store of imported movements, used for cross-batch deduplication.

    Implementations raise ``LedgerStoreError`` when their backend fails.
    """

    @abstractmethod
    def existing_hashes(self, account_id: str) -> set[str]:
        """Deduplication hashes already stored for an account."""
        pass

    @abstractmethod
    def save_movements(self, account_id: str, movements: list[NormalizedMovement]) -> int:
        """Store movements, skipping hashes already present. Returns number stored."""
        pass

    @abstractmethod
    def list_movements(self, account_id: str) -> list[StoredMovement]:
        """List stored movements of an account ordered by date."""
        pass


class Database(ProfileStore, LedgerStore):
    """Abstract database interface for bankimport."""

    @abstractmethod
    def connect(self) -> None:
        """Connect to the database."""
        pass

    @abstractmethod
    def disconnect(self) -> None:
        """Disconnect from the database."""
        pass

    @abstractmethod
    def initialize_schema(self) -> None:
        """Initialize database schema (create tables)."""
        pass
