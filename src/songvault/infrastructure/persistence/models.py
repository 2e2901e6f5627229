"""SQLAlchemy ORM models for SongVault."""

from datetime import UTC, datetime
from typing import Any

import sqlalchemy as sa
from sqlalchemy import (
    JSON,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    event,
    inspect,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from songvault.domain.exceptions import ImmutableFieldException


def utc_now() -> datetime:
    """Get current UTC time."""
    return datetime.now(UTC)


# Hey future me - SQLite doesn't preserve timezone info! When we store UTC datetimes, they come
# back as "naive" (no tzinfo). This helper attaches UTC if missing so comparisons with
# datetime.now(UTC) don't blow up with "can't compare offset-naive and offset-aware".
def ensure_utc_aware(dt: datetime | None) -> datetime | None:
    """Ensure datetime is UTC-aware, assuming naive datetimes are UTC."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


# Listen up, CatalogEntryModel is THE catalog row - one per logical audio file!
# - id is an INTEGER surrogate key; playlists reference it. sqlite_autoincrement makes sure a
#   deleted id is never handed out again (plain SQLite rowids get reused after deleting the max
#   row, which would silently re-point dangling playlist refs at an unrelated song!).
# - file_path is the only UNIQUE business key.
# - stable_id is indexed but NOT unique - duplicates (is_primary=False) share their stable_id.
# - stable_id + original_* are WRITE-ONCE, enforced by the before_update guard below.
class CatalogEntryModel(Base):
    """SQLAlchemy model for CatalogEntry."""

    __tablename__ = "music_library"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    stable_id: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    file_path: Mapped[str] = mapped_column(String(1024), nullable=False, unique=True)

    title: Mapped[str] = mapped_column(String(512), nullable=False)
    artist: Mapped[str] = mapped_column(String(512), nullable=False)
    album: Mapped[str] = mapped_column(String(512), nullable=False)
    year: Mapped[int | None] = mapped_column(Integer, nullable=True)
    genre: Mapped[str | None] = mapped_column(String(255), nullable=True)
    duration: Mapped[int | None] = mapped_column(Integer, nullable=True)
    bitrate: Mapped[int | None] = mapped_column(Integer, nullable=True)
    file_size: Mapped[int | None] = mapped_column(sa.BigInteger, nullable=True)

    # Frozen identity snapshot - see IMMUTABLE_COLUMNS
    original_artist: Mapped[str] = mapped_column(String(512), nullable=False)
    original_title: Mapped[str] = mapped_column(String(512), nullable=False)
    original_album: Mapped[str] = mapped_column(String(512), nullable=False)
    original_file_path: Mapped[str] = mapped_column(String(1024), nullable=False)

    album_cover: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    artist_image: Mapped[str | None] = mapped_column(String(1024), nullable=True)

    is_available: Mapped[bool] = mapped_column(
        sa.Boolean(), nullable=False, default=True, server_default="1"
    )
    times_relinked: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_relinked_at: Mapped[datetime | None] = mapped_column(nullable=True)
    last_availability_check: Mapped[datetime | None] = mapped_column(nullable=True)
    is_primary: Mapped[bool] = mapped_column(
        sa.Boolean(), nullable=False, default=True, server_default="1"
    )

    added_at: Mapped[datetime] = mapped_column(default=utc_now, nullable=False)
    play_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_played: Mapped[datetime | None] = mapped_column(nullable=True)

    __table_args__ = (
        Index("ix_music_library_artist_title", "artist", "title"),
        Index("ix_music_library_is_available", "is_available"),
        {"sqlite_autoincrement": True},
    )


IMMUTABLE_COLUMNS = (
    "stable_id",
    "original_artist",
    "original_title",
    "original_album",
    "original_file_path",
)


# Hey future me - this is the store-level write-once guard! It fires on every ORM flush that
# UPDATEs a catalog row. Repositories MUST mutate loaded models (never Core update()) or this
# guard is bypassed. If you hit ImmutableFieldException, fix the caller - don't loosen this!
@event.listens_for(CatalogEntryModel, "before_update")
def _guard_immutable_columns(
    _mapper: Any, _connection: Any, target: CatalogEntryModel
) -> None:
    state = inspect(target)
    for column in IMMUTABLE_COLUMNS:
        history = state.attrs[column].history
        if history.deleted and history.added and history.deleted != history.added:
            raise ImmutableFieldException(column, target.id)


# Yo, one suggestion per stable_id - recording a new one overwrites the old (INSERT ... ON
# CONFLICT(stable_id) DO UPDATE in the repository).
class RelinkSuggestionModel(Base):
    """SQLAlchemy model for RelinkSuggestion."""

    __tablename__ = "relink_suggestions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    stable_id: Mapped[str] = mapped_column(String(32), nullable=False, unique=True)
    suggested_path: Mapped[str] = mapped_column(String(1024), nullable=False)
    confidence: Mapped[str] = mapped_column(String(10), nullable=False)
    original_info: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    created_at: Mapped[datetime] = mapped_column(default=utc_now, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        default=utc_now, onupdate=utc_now, nullable=False
    )


class PlaylistModel(Base):
    """SQLAlchemy model for Playlist."""

    __tablename__ = "playlists"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(default=utc_now, nullable=False)

    playlist_tracks: Mapped[list["PlaylistTrackModel"]] = relationship(
        "PlaylistTrackModel",
        back_populates="playlist",
        cascade="all, delete-orphan",
        order_by="PlaylistTrackModel.position",
    )


# Listen up, music_id is deliberately NOT a foreign key to music_library! Deleting a catalog
# row must leave the playlist slot dangling so PlaylistReconciler can reconnect it to a
# surviving row with the same title/artist. A cascading FK would silently eat the slot.
class PlaylistTrackModel(Base):
    """One playlist slot referencing a catalog row by id."""

    __tablename__ = "playlist_tracks"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    playlist_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("playlists.id", ondelete="CASCADE"), nullable=False
    )
    music_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    added_at: Mapped[datetime] = mapped_column(default=utc_now, nullable=False)

    playlist: Mapped["PlaylistModel"] = relationship(
        "PlaylistModel", back_populates="playlist_tracks"
    )

    __table_args__ = (Index("ix_playlist_tracks_position", "playlist_id", "position"),)


class SongHistoryModel(Base):
    """Audit trail of identity-preserving changes, keyed by stable_id."""

    __tablename__ = "song_history"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    stable_id: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    action: Mapped[str] = mapped_column(String(30), nullable=False)
    old_file_path: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    new_file_path: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(default=utc_now, nullable=False)


# Hey future me - a tombstone is written whenever a catalog row is deleted. The playlist
# reconciler needs the DELETED row's title/artist to find a replacement; the dangling
# playlist ref alone only knows an id.
class CatalogTombstoneModel(Base):
    """Snapshot of a deleted catalog row."""

    __tablename__ = "catalog_tombstones"

    music_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    stable_id: Mapped[str] = mapped_column(String(32), nullable=False)
    title: Mapped[str] = mapped_column(String(512), nullable=False)
    artist: Mapped[str] = mapped_column(String(512), nullable=False)
    album: Mapped[str] = mapped_column(String(512), nullable=False)
    file_path: Mapped[str] = mapped_column(String(1024), nullable=False)
    deleted_at: Mapped[datetime] = mapped_column(default=utc_now, nullable=False)


class LibraryScanModel(Base):
    """SQLAlchemy model for Library Scan tracking."""

    __tablename__ = "library_scans"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    status: Mapped[str] = mapped_column(String(50), nullable=False)
    scan_paths: Mapped[list[str]] = mapped_column(JSON, nullable=False)
    scanned_files: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    new_files: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    updated_files: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    removed_files: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    relinked_files: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    error_files: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    cleanup_skipped: Mapped[bool] = mapped_column(
        sa.Boolean(), nullable=False, default=False
    )
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    started_at: Mapped[datetime] = mapped_column(nullable=False)
    completed_at: Mapped[datetime | None] = mapped_column(nullable=True)

    __table_args__ = (
        Index("ix_library_scans_status", "status"),
        Index("ix_library_scans_started_at", "started_at"),
    )
