"""Bank profile service: learned column layouts reused on repeat imports."""

from dataclasses import dataclass, replace
from datetime import datetime, UTC
from typing import Callable, Optional
import json
import logging
import re
import uuid

from bankimport.database.base import ProfileStore
from bankimport.database.mappers import profile_from_dict, profile_to_dict
from bankimport.domain.column_roles import normalize_header
from bankimport.domain.deduplication import simple_hash
from bankimport.domain.entities import (
    BankMappingProfile,
    ProfileMapping,
    ProfileMetadata,
    ProfileSignature,
)
from bankimport.domain.errors import NotFoundError, ValidationError, profile_not_found

logger = logging.getLogger(__name__)

MAX_PROFILES = 50
EXACT_MATCH_CONFIDENCE = 0.95
SAMPLE_HASH_CONFIDENCE = 0.90
FUZZY_THRESHOLD = 0.9
PARTIAL_HEADER_MATCH = 0.8
SAMPLE_HASH_ROWS = 3
INITIAL_PROFILE_CONFIDENCE = 0.8
USAGE_WEIGHT = 0.6
RECENCY_WEIGHT = 0.4


@dataclass(frozen=True)
class ProfileMatch:
    """A stored profile that fits an incoming file."""

    profile: BankMappingProfile
    confidence: float
    match_type: str
    reason: str


def normalize_headers(headers: list[str]) -> tuple[str, ...]:
    return tuple(normalize_header(header) for header in headers)


def sample_hash(sample_rows: list[list[str]]) -> str:
    """Hash the first rows of a file, for recognizing headerless layouts."""
    if not sample_rows:
        return ""
    joined = "||".join(
        "|".join(str(cell or "").strip().lower() for cell in row)
        for row in sample_rows[:SAMPLE_HASH_ROWS]
    )
    return simple_hash(joined)


def _similar_headers(first: str, second: str) -> bool:
    clean_first = re.sub(r"\s+", "", re.sub(r"[().,]", "", first))
    clean_second = re.sub(r"\s+", "", re.sub(r"[().,]", "", second))
    if not clean_first or not clean_second:
        return False
    return clean_first in clean_second or clean_second in clean_first


def header_similarity(first: tuple[str, ...], second: tuple[str, ...]) -> float:
    """Positional similarity of two header lists, between 0 and 1."""
    longest = max(len(first), len(second))
    if longest == 0:
        return 1.0
    matches = 0.0
    for left, right in zip(first, second):
        if left == right:
            matches += 1
        elif _similar_headers(left, right):
            matches += PARTIAL_HEADER_MATCH
    return matches / longest


class BankProfileService:
    """Service for finding, creating and maintaining bank profiles."""

    def __init__(
        self,
        store: ProfileStore,
        max_profiles: int = MAX_PROFILES,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """Initialize bank profile service.

        Args:
            store: Profile store
            max_profiles: Number of profiles kept after eviction
            clock: Returns the current time (defaults to UTC now)
        """
        self.store = store
        self.max_profiles = max_profiles
        self.clock = clock or (lambda: datetime.now(UTC))

    def _score(self, profile: BankMappingProfile, now: datetime) -> float:
        days = max((now - profile.metadata.last_used).total_seconds() / 86400, 0.0)
        recency = 1 / (1 + days)
        return profile.metadata.usage_count * USAGE_WEIGHT + recency * RECENCY_WEIGHT

    def list_profiles(self) -> list[BankMappingProfile]:
        """List profiles, most used and most recent first."""
        now = self.clock()
        return sorted(self.store.list_profiles(), key=lambda p: self._score(p, now), reverse=True)

    def get_profile(self, profile_id: str) -> Optional[BankMappingProfile]:
        return self.store.get_profile(profile_id)

    def _exact_match(
        self, profiles: list[BankMappingProfile], normalized: tuple[str, ...], rows_hash: str
    ) -> Optional[ProfileMatch]:
        if any(normalized):
            for profile in profiles:
                if profile.signature.headers_ordered == normalized:
                    return ProfileMatch(profile, EXACT_MATCH_CONFIDENCE, "exact", "Exact header match found")
        if rows_hash:
            for profile in profiles:
                if profile.signature.sample_hash == rows_hash:
                    return ProfileMatch(profile, SAMPLE_HASH_CONFIDENCE, "exact", "Sample data hash match found")
        return None

    def find_matching_profile(
        self, headers: list[str], sample_rows: Optional[list[list[str]]] = None
    ) -> Optional[ProfileMatch]:
        """Find the stored profile that fits a file's headers or first rows.

        Tries, in order: identical normalized headers (0.95), identical hash
        of the first three data rows (0.90), and positional header similarity
        of at least 0.9. Matching does not count as a use; callers that go on
        to import with the profile call ``record_usage``.

        Args:
            headers: Header row of the file (empty strings when headerless)
            sample_rows: First data rows of the file

        Returns:
            ProfileMatch, or None if no profile fits
        """
        normalized = normalize_headers(headers)
        profiles = self.list_profiles()
        match = self._exact_match(profiles, normalized, sample_hash(sample_rows or []))
        if match is None and any(normalized):
            for profile in profiles:
                similarity = header_similarity(normalized, profile.signature.headers_ordered)
                if similarity >= FUZZY_THRESHOLD:
                    match = ProfileMatch(profile, similarity, "fuzzy", f"Headers are {round(similarity * 100)}% similar")
                    break
        if match is not None:
            logger.debug("Matched bank profile %s (%s, %.2f)", match.profile.id, match.match_type, match.confidence)
        return match

    def record_usage(self, profile_id: str) -> BankMappingProfile:
        """Count one more import done with a profile.

        Raises:
            NotFoundError: If the profile doesn't exist
        """
        with self.store.lock():
            profile = self.store.get_profile(profile_id)
            if profile is None:
                raise NotFoundError(profile_not_found(profile_id))
            return self._record_usage(profile)

    def _record_usage(self, profile: BankMappingProfile, **changes) -> BankMappingProfile:
        now = self.clock()
        metadata = replace(
            profile.metadata,
            usage_count=profile.metadata.usage_count + 1,
            last_used=now,
            updated_at=now,
        )
        updated = replace(profile, metadata=metadata, **changes)
        self.store.save_profile(updated)
        return updated

    def learn_profile(
        self,
        headers: list[str],
        sample_rows: list[list[str]],
        mapping: ProfileMapping,
        name: Optional[str] = None,
        file_pattern: Optional[str] = None,
    ) -> tuple[str, bool]:
        """Remember the mapping used for a file.

        A stored profile with the same headers (or, for headerless files,
        the same first rows) is updated with the new mapping instead of
        being duplicated.

        Returns:
            Tuple of (profile ID, True if a new profile was created)

        Raises:
            ValidationError: If the column mapping is invalid
            ProfileStoreError: If the store cannot save the profile
        """
        problems = mapping.columns.validate()
        if problems:
            raise ValidationError(f"Cannot save profile: {'; '.join(problems)}")

        with self.store.lock():
            existing = self._exact_match(
                self.store.list_profiles(), normalize_headers(headers), sample_hash(sample_rows)
            )
            if existing is None:
                return self.create_profile(headers, sample_rows, mapping, name, file_pattern), True

            profile = existing.profile
            patterns = profile.metadata.file_patterns
            if file_pattern and file_pattern not in patterns:
                profile = replace(profile, metadata=replace(profile.metadata, file_patterns=patterns + (file_pattern,)))
            updated = self._record_usage(profile, mapping=mapping, name=name or profile.name)
        logger.info("Updated bank profile %s with a new mapping", updated.id)
        return updated.id, False

    def create_profile(
        self,
        headers: list[str],
        sample_rows: list[list[str]],
        mapping: ProfileMapping,
        name: Optional[str] = None,
        file_pattern: Optional[str] = None,
    ) -> str:
        """Create and store a new bank profile.

        Args:
            headers: Header row of the file the mapping was learned from
            sample_rows: First data rows of that file
            mapping: Column mapping, locale and date format to remember
            name: Optional display name
            file_pattern: Optional file name the profile was learned from

        Returns:
            ID of the created profile

        Raises:
            ValidationError: If the column mapping is invalid
            ProfileStoreError: If the store cannot save the profile
        """
        problems = mapping.columns.validate()
        if problems:
            raise ValidationError(f"Cannot save profile: {'; '.join(problems)}")

        now = self.clock()
        profile = BankMappingProfile(
            id=f"profile_{uuid.uuid4().hex}",
            name=name,
            signature=ProfileSignature(
                headers_ordered=normalize_headers(headers),
                sample_hash=sample_hash(sample_rows),
            ),
            mapping=mapping,
            metadata=ProfileMetadata(
                created_at=now,
                updated_at=now,
                last_used=now,
                usage_count=1,
                confidence=INITIAL_PROFILE_CONFIDENCE,
                file_patterns=(file_pattern,) if file_pattern else (),
            ),
        )
        with self.store.lock():
            self.store.save_profile(profile)
            self.cleanup_profiles()
        logger.info("Created bank profile %s", profile.id)
        return profile.id

    def update_profile(
        self,
        profile_id: str,
        name: Optional[str] = None,
        mapping: Optional[ProfileMapping] = None,
        confidence: Optional[float] = None,
    ) -> BankMappingProfile:
        """Update a profile's name, mapping or confidence.

        Raises:
            NotFoundError: If the profile doesn't exist
        """
        with self.store.lock():
            profile = self.store.get_profile(profile_id)
            if profile is None:
                raise NotFoundError(profile_not_found(profile_id))

            metadata = replace(profile.metadata, updated_at=self.clock())
            if confidence is not None:
                metadata = replace(metadata, confidence=confidence)
            updated = replace(
                profile,
                name=name if name is not None else profile.name,
                mapping=mapping if mapping is not None else profile.mapping,
                metadata=metadata,
            )
            self.store.save_profile(updated)
            return updated

    def delete_profile(self, profile_id: str) -> None:
        """Delete a profile.

        Raises:
            NotFoundError: If the profile doesn't exist
        """
        with self.store.lock():
            if not self.store.delete_profile(profile_id):
                raise NotFoundError(profile_not_found(profile_id))

    def cleanup_profiles(self) -> int:
        """Evict the lowest-ranked profiles beyond ``max_profiles``. Returns number evicted."""
        with self.store.lock():
            profiles = self.list_profiles()
            evicted = profiles[self.max_profiles:]
            for profile in evicted:
                self.store.delete_profile(profile.id)
        if evicted:
            logger.info("Evicted %d bank profiles", len(evicted))
        return len(evicted)

    def export_profiles(self) -> str:
        """Export all profiles as a JSON document."""
        return json.dumps([profile_to_dict(p) for p in self.list_profiles()], indent=2, ensure_ascii=False)

    def import_profiles(self, profiles_json: str, merge: bool = False) -> int:
        """Import profiles from a JSON export.

        Args:
            profiles_json: Document produced by ``export_profiles``
            merge: Keep existing profiles and add only unknown IDs. When False,
                the imported profiles replace the whole store.

        Returns:
            Number of profiles imported

        Raises:
            ValidationError: If the document is not a valid export
        """
        try:
            documents = json.loads(profiles_json)
        except json.JSONDecodeError as e:
            raise ValidationError(f"Invalid profiles JSON: {e}") from e
        if not isinstance(documents, list):
            raise ValidationError("Invalid profiles JSON: expected a list of profiles")
        imported = [profile_from_dict(document) for document in documents]

        with self.store.lock():
            existing_ids = {p.id for p in self.store.list_profiles()}
            if merge:
                imported = [p for p in imported if p.id not in existing_ids]
            else:
                for profile_id in existing_ids:
                    self.store.delete_profile(profile_id)
            for profile in imported:
                self.store.save_profile(profile)
            self.cleanup_profiles()
        return len(imported)
