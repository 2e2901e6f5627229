"""Domain entities."""

from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

UNKNOWN_ARTIST = "Unknown Artist"
UNKNOWN_TITLE = "Unknown Title"
UNKNOWN_ALBUM = "Unknown Album"

PLACEHOLDER_VALUES = frozenset({UNKNOWN_ARTIST, UNKNOWN_TITLE, UNKNOWN_ALBUM})


def utc_now() -> datetime:
    """Get current UTC time."""
    return datetime.now(UTC)


class RelinkConfidence(str, Enum):
    """How sure the engine is that a suggested file is the missing song."""

    LOW = "low"
    MEDIUM = "medium"  # folder-rename heuristic (filename match only)
    HIGH = "high"  # normalized artist/title identity match


class MatchBasis(str, Enum):
    """Which matcher stage produced a catalog hit."""

    EXACT_PATH = "exact_path"
    FINGERPRINT = "fingerprint"  # normalized (artist, title) equality
    FUZZY = "fuzzy"  # substring containment on both artist and title


class ScanPhase(str, Enum):
    """State of one scan pass: Idle -> Walking -> Reconciling -> Done."""

    IDLE = "idle"
    WALKING = "walking"
    RECONCILING = "reconciling"
    DONE = "done"


class HistoryAction(str, Enum):
    """Actions recorded in the song history audit trail."""

    ADDED = "added"
    RELINKED = "relinked"
    REPLACED = "replaced"
    FOLDER_RENAMED = "folder_renamed"
    MARKED_UNAVAILABLE = "marked_unavailable"
    MARKED_AVAILABLE = "marked_available"
    DELETED = "deleted"


# Yo, CatalogEntry is the DOMAIN ENTITY for one logical audio file (not the DB model)!
# Two groups of metadata live side by side:
# - title/artist/album/... = CURRENT working metadata (folder inference and edits may change it)
# - original_* + stable_id = IDENTITY, frozen at first insertion and never written again
# Repositories translate between this dataclass and CatalogEntryModel.
@dataclass
class CatalogEntry:
    """One logical audio file currently or previously known to the catalog."""

    stable_id: str
    file_path: str
    title: str
    artist: str
    album: str
    original_artist: str
    original_title: str
    original_album: str
    original_file_path: str
    id: int | None = None
    year: int | None = None
    genre: str | None = None
    duration: int | None = None
    bitrate: int | None = None
    file_size: int | None = None
    album_cover: str | None = None
    artist_image: str | None = None
    is_available: bool = True
    times_relinked: int = 0
    last_relinked_at: datetime | None = None
    last_availability_check: datetime | None = None
    is_primary: bool = True
    added_at: datetime = field(default_factory=utc_now)
    play_count: int = 0
    last_played: datetime | None = None

    @property
    def original_info(self) -> dict[str, str]:
        """Snapshot of the frozen identity fields (used by relink suggestions)."""
        return {
            "artist": self.original_artist,
            "title": self.original_title,
            "album": self.original_album,
            "path": self.original_file_path,
        }


@dataclass
class RelinkSuggestion:
    """A proposed new location for a catalog entry whose file went missing.

    One active suggestion per stable_id - recording a new one overwrites the old.
    """

    stable_id: str
    suggested_path: str
    confidence: RelinkConfidence
    original_info: dict[str, str]
    id: int | None = None
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)


@dataclass
class Playlist:
    """User playlist (only the fields reconciliation needs)."""

    name: str
    id: int | None = None
    description: str | None = None
    created_at: datetime = field(default_factory=utc_now)


@dataclass
class PlaylistTrackRef:
    """One playlist slot pointing at a CatalogEntry by its surrogate id."""

    playlist_id: int
    music_id: int
    position: int
    id: int | None = None
    added_at: datetime = field(default_factory=utc_now)


@dataclass
class CatalogTombstone:
    """Snapshot of a deleted CatalogEntry, kept so playlist slots can be re-matched."""

    music_id: int
    stable_id: str
    title: str
    artist: str
    album: str
    file_path: str
    deleted_at: datetime = field(default_factory=utc_now)


@dataclass
class SongHistoryEvent:
    """Audit trail row for identity-preserving changes."""

    stable_id: str
    action: HistoryAction
    old_file_path: str | None = None
    new_file_path: str | None = None
    notes: str | None = None
    id: int | None = None
    created_at: datetime = field(default_factory=utc_now)


# Hey future me - ScanResult is EPHEMERAL (never persisted as-is). The library_scans
# table stores the headline counts; this dataclass carries everything the trigger
# surfaces want to show (per-file errors, unreachable roots, ...).
@dataclass
class ScanResult:
    """Counts for one scan pass."""

    scanned: int = 0
    added: int = 0
    updated: int = 0
    removed: int = 0
    skipped: int = 0
    errors: int = 0
    relinked: int = 0
    relink_suggestions: int = 0
    folder_renames: int = 0
    marked_unavailable: int = 0
    artwork_updated: int = 0
    cleanup_skipped: bool = False
    unreachable_roots: list[str] = field(default_factory=list)
    skipped_dirs: list[str] = field(default_factory=list)
    error_files: list[dict[str, str]] = field(default_factory=list)
    started_at: datetime = field(default_factory=utc_now)
    completed_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        """Serialize for logs / progress events."""
        data = asdict(self)
        data["started_at"] = self.started_at.isoformat()
        data["completed_at"] = (
            self.completed_at.isoformat() if self.completed_at else None
        )
        return data


__all__ = [
    "PLACEHOLDER_VALUES",
    "UNKNOWN_ALBUM",
    "UNKNOWN_ARTIST",
    "UNKNOWN_TITLE",
    "CatalogEntry",
    "CatalogTombstone",
    "HistoryAction",
    "MatchBasis",
    "Playlist",
    "PlaylistTrackRef",
    "RelinkConfidence",
    "RelinkSuggestion",
    "ScanPhase",
    "ScanResult",
    "SongHistoryEvent",
    "utc_now",
]
