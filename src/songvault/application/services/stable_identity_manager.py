"""Stable identity assignment and write-once guarding of original metadata."""

import logging
from datetime import datetime

from songvault.domain.entities import CatalogEntry, utc_now
from songvault.domain.exceptions import ImmutableFieldException
from songvault.domain.value_objects.metadata import MergedMetadata
from songvault.domain.value_objects.stable_identity import compute_stable_id

logger = logging.getLogger(__name__)

IDENTITY_FIELDS = (
    "stable_id",
    "original_artist",
    "original_title",
    "original_album",
    "original_file_path",
)


# Hey future me - this is the ONLY place a stable_id is ever computed, and only for NEW rows.
# Every later mutation (refresh, quality replacement, relink, availability flip) goes through
# one of the apply_* methods, which touch current fields only and then re-check the identity
# snapshot. The ORM before_update guard is the second line of defense at the store.
class StableIdentityManager:
    """Creates catalog entries and applies identity-preserving mutations."""

    def create_entry(
        self,
        file_path: str,
        metadata: MergedMetadata,
        file_size: int | None,
        album_cover: str | None = None,
        artist_image: str | None = None,
        is_primary: bool = True,
    ) -> CatalogEntry:
        """Build a new entry; originals come from the FIRST observation (tags first)."""
        return CatalogEntry(
            stable_id=compute_stable_id(
                metadata.original_artist,
                metadata.original_title,
                metadata.original_album,
            ),
            file_path=file_path,
            title=metadata.title,
            artist=metadata.artist,
            album=metadata.album,
            year=metadata.year,
            genre=metadata.genre,
            duration=metadata.duration,
            bitrate=metadata.bitrate,
            file_size=file_size,
            original_artist=metadata.original_artist,
            original_title=metadata.original_title,
            original_album=metadata.original_album,
            original_file_path=file_path,
            album_cover=album_cover,
            artist_image=artist_image,
            is_primary=is_primary,
        )

    def apply_metadata(
        self,
        entry: CatalogEntry,
        metadata: MergedMetadata,
        file_size: int | None = None,
    ) -> None:
        """Overwrite CURRENT working metadata; optional fields keep old values if absent."""
        snapshot = self.snapshot(entry)
        entry.title = metadata.title
        entry.artist = metadata.artist
        entry.album = metadata.album
        entry.year = metadata.year if metadata.year is not None else entry.year
        entry.genre = metadata.genre if metadata.genre is not None else entry.genre
        entry.duration = (
            metadata.duration if metadata.duration is not None else entry.duration
        )
        entry.bitrate = (
            metadata.bitrate if metadata.bitrate is not None else entry.bitrate
        )
        if file_size is not None:
            entry.file_size = file_size
        self.assert_identity_preserved(snapshot, entry)

    def apply_relink(
        self,
        entry: CatalogEntry,
        new_path: str,
        metadata: MergedMetadata | None = None,
        file_size: int | None = None,
        now: datetime | None = None,
    ) -> None:
        """Point an entry at a new file: path, counters, availability, current metadata."""
        snapshot = self.snapshot(entry)
        entry.file_path = new_path
        entry.times_relinked += 1
        entry.last_relinked_at = now or utc_now()
        entry.is_available = True
        if metadata is not None:
            self.apply_metadata(entry, metadata, file_size)
        elif file_size is not None:
            entry.file_size = file_size
        self.assert_identity_preserved(snapshot, entry)

    def apply_replacement(
        self,
        entry: CatalogEntry,
        new_path: str,
        metadata: MergedMetadata,
        file_size: int,
    ) -> None:
        """Quality replacement: the better file takes over the row (no relink counter)."""
        snapshot = self.snapshot(entry)
        entry.file_path = new_path
        entry.is_available = True
        self.apply_metadata(entry, metadata, file_size)
        self.assert_identity_preserved(snapshot, entry)

    @staticmethod
    def snapshot(entry: CatalogEntry) -> dict[str, str]:
        return {name: getattr(entry, name) for name in IDENTITY_FIELDS}

    @staticmethod
    def assert_identity_preserved(before: dict[str, str], entry: CatalogEntry) -> None:
        for name, value in before.items():
            if getattr(entry, name) != value:
                raise ImmutableFieldException(name, entry.id)
