"""Infrastructure persistence layer."""

from .database import Database
from .models import (
    Base,
    CatalogEntryModel,
    CatalogTombstoneModel,
    LibraryScanModel,
    PlaylistModel,
    PlaylistTrackModel,
    RelinkSuggestionModel,
    SongHistoryModel,
)
from .repositories import (
    CatalogRepository,
    LibraryScanRepository,
    PlaylistRepository,
    RelinkSuggestionRepository,
    SongHistoryRepository,
    TombstoneRepository,
)

__all__ = [
    "Base",
    "CatalogEntryModel",
    "CatalogRepository",
    "CatalogTombstoneModel",
    "Database",
    "LibraryScanModel",
    "LibraryScanRepository",
    "PlaylistModel",
    "PlaylistRepository",
    "PlaylistTrackModel",
    "RelinkSuggestionModel",
    "RelinkSuggestionRepository",
    "SongHistoryModel",
    "SongHistoryRepository",
    "TombstoneRepository",
]
