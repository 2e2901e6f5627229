"""Domain ports (interfaces) for dependency inversion."""

from abc import ABC, abstractmethod
from collections.abc import Iterable
from typing import Any

from songvault.domain.entities import (
    CatalogEntry,
    CatalogTombstone,
    Playlist,
    PlaylistTrackRef,
    RelinkConfidence,
    RelinkSuggestion,
    SongHistoryEvent,
)
from songvault.domain.value_objects.metadata import TagMetadata


# Hey future me, IMetadataExtractor is the EXTERNAL COLLABORATOR that reads embedded tags!
# The scanner never touches mutagen directly - it only knows this contract. Implementations
# must raise MetadataExtractionException for unreadable files (recoverable, per-file) and
# return partial TagMetadata when only some tags exist. Tests plug in a dict-backed fake.
class IMetadataExtractor(ABC):
    """Reads structured tag data from an audio file."""

    @abstractmethod
    async def extract(self, file_path: str) -> TagMetadata:
        """Return tag data or raise MetadataExtractionException."""
        pass


class IArtworkResolver(ABC):
    """Resolves artwork for an artist/album and caches it locally.

    Contract: never raises. Any failure becomes None.
    """

    @abstractmethod
    async def resolve_album_art(self, artist: str, album: str) -> str | None:
        """Return a cached local path (or URL) for album art, or None."""
        pass

    @abstractmethod
    async def resolve_artist_image(self, artist: str) -> str | None:
        """Return a cached local path (or URL) for an artist image, or None."""
        pass


# Yo, ICatalogRepository is a PORT for the catalog store. The SQLAlchemy implementation lives in
# infrastructure/persistence/repositories.py. Services depend on this interface so the matcher,
# relink service and reconciler can be tested against the real store or a mock alike.
class ICatalogRepository(ABC):
    """Repository interface for CatalogEntry rows."""

    @abstractmethod
    async def add(self, entry: CatalogEntry) -> CatalogEntry:
        """Insert a new entry; raises DuplicateEntityException on a path collision."""
        pass

    @abstractmethod
    async def update(self, entry: CatalogEntry) -> None:
        """Persist mutable fields of an existing entry."""
        pass

    @abstractmethod
    async def delete(self, entry_id: int) -> CatalogEntry:
        """Delete an entry and return the removed snapshot."""
        pass

    @abstractmethod
    async def get_by_id(self, entry_id: int) -> CatalogEntry | None:
        pass

    @abstractmethod
    async def get_by_path(self, file_path: str) -> CatalogEntry | None:
        pass

    @abstractmethod
    async def get_by_stable_id(self, stable_id: str) -> CatalogEntry | None:
        pass

    @abstractmethod
    async def find_by_artist_title(
        self, artists: Iterable[str], title: str
    ) -> CatalogEntry | None:
        """Exact lower(trim()) equality on title and any of the given artists."""
        pass

    @abstractmethod
    async def find_fuzzy(self, artist: str, title: str) -> CatalogEntry | None:
        """Substring containment on both artist and title, first hit wins."""
        pass

    @abstractmethod
    async def list_all(self) -> list[CatalogEntry]:
        pass


class IRelinkSuggestionRepository(ABC):
    """Repository interface for RelinkSuggestion rows (one per stable_id)."""

    @abstractmethod
    async def upsert(
        self,
        stable_id: str,
        suggested_path: str,
        confidence: RelinkConfidence,
        original_info: dict[str, Any],
    ) -> None:
        pass

    @abstractmethod
    async def get(self, stable_id: str) -> RelinkSuggestion | None:
        pass

    @abstractmethod
    async def delete(self, stable_id: str) -> bool:
        pass

    @abstractmethod
    async def list_all(self) -> list[RelinkSuggestion]:
        pass


class IPlaylistRepository(ABC):
    """Repository interface for playlists and their track references."""

    @abstractmethod
    async def add(self, playlist: Playlist) -> Playlist:
        pass

    @abstractmethod
    async def add_track(self, playlist_id: int, music_id: int) -> PlaylistTrackRef:
        pass

    @abstractmethod
    async def list_dangling_refs(self) -> list[tuple[PlaylistTrackRef, str]]:
        """Refs whose music_id resolves to no catalog row, with playlist name."""
        pass


class ISongHistoryRepository(ABC):
    """Append-only audit trail keyed by stable_id."""

    @abstractmethod
    async def add(self, event: SongHistoryEvent) -> None:
        pass

    @abstractmethod
    async def list_for(self, stable_id: str) -> list[SongHistoryEvent]:
        pass


class ITombstoneRepository(ABC):
    """Snapshots of deleted catalog rows."""

    @abstractmethod
    async def add(self, tombstone: CatalogTombstone) -> None:
        pass

    @abstractmethod
    async def get(self, music_id: int) -> CatalogTombstone | None:
        pass


__all__ = [
    "IArtworkResolver",
    "ICatalogRepository",
    "IMetadataExtractor",
    "IPlaylistRepository",
    "IRelinkSuggestionRepository",
    "ISongHistoryRepository",
    "ITombstoneRepository",
]
