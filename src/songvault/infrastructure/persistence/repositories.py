"""Repository implementations for domain entities."""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from songvault.domain.entities import (
    CatalogEntry,
    CatalogTombstone,
    HistoryAction,
    Playlist,
    PlaylistTrackRef,
    RelinkConfidence,
    RelinkSuggestion,
    ScanResult,
    SongHistoryEvent,
    utc_now,
)
from songvault.domain.exceptions import (
    DuplicateEntityException,
    EntityNotFoundException,
)
from songvault.domain.ports import (
    ICatalogRepository,
    IPlaylistRepository,
    IRelinkSuggestionRepository,
    ISongHistoryRepository,
    ITombstoneRepository,
)

from .models import (
    CatalogEntryModel,
    CatalogTombstoneModel,
    LibraryScanModel,
    PlaylistModel,
    PlaylistTrackModel,
    RelinkSuggestionModel,
    SongHistoryModel,
    ensure_utc_aware,
)

# Columns the repository copies from entity to model on update. The write-once identity
# columns are copied TOO - if a caller changed them on the entity, the model's
# before_update guard raises ImmutableFieldException instead of silently dropping the edit.
_CATALOG_COLUMNS = (
    "stable_id",
    "file_path",
    "title",
    "artist",
    "album",
    "year",
    "genre",
    "duration",
    "bitrate",
    "file_size",
    "original_artist",
    "original_title",
    "original_album",
    "original_file_path",
    "album_cover",
    "artist_image",
    "is_available",
    "times_relinked",
    "last_relinked_at",
    "last_availability_check",
    "is_primary",
    "play_count",
    "last_played",
)


def _norm_sql(value: Any) -> Any:
    """lower(trim(x)) - applied to BOTH sides so SQL and Python folding can't disagree."""
    return func.lower(func.trim(value))


class CatalogRepository(ICatalogRepository):
    """SQLAlchemy implementation of the catalog store."""

    # Hey future me, this is the Repository pattern! Each repo gets its own AsyncSession injected
    # by the caller. The session is NOT committed here - that happens in Database.session_scope().
    # add()/update() DO flush inside a SAVEPOINT though: the file_path UNIQUE constraint has to
    # fail right here (and be translated) instead of blowing up the whole pass at commit time.
    def __init__(self, session: AsyncSession) -> None:
        """Initialize repository with session."""
        self.session = session

    @staticmethod
    def _model_to_entity(model: CatalogEntryModel) -> CatalogEntry:
        return CatalogEntry(
            id=model.id,
            stable_id=model.stable_id,
            file_path=model.file_path,
            title=model.title,
            artist=model.artist,
            album=model.album,
            year=model.year,
            genre=model.genre,
            duration=model.duration,
            bitrate=model.bitrate,
            file_size=model.file_size,
            original_artist=model.original_artist,
            original_title=model.original_title,
            original_album=model.original_album,
            original_file_path=model.original_file_path,
            album_cover=model.album_cover,
            artist_image=model.artist_image,
            is_available=model.is_available,
            times_relinked=model.times_relinked,
            last_relinked_at=ensure_utc_aware(model.last_relinked_at),
            last_availability_check=ensure_utc_aware(model.last_availability_check),
            is_primary=model.is_primary,
            added_at=ensure_utc_aware(model.added_at) or utc_now(),
            play_count=model.play_count,
            last_played=ensure_utc_aware(model.last_played),
        )

    async def _get_model(self, entry_id: int) -> CatalogEntryModel | None:
        return await self.session.get(CatalogEntryModel, entry_id)

    async def add(self, entry: CatalogEntry) -> CatalogEntry:
        """Insert a new entry and return it with its id.

        Raises:
            DuplicateEntityException: another row already owns entry.file_path
        """
        model = CatalogEntryModel(
            **{column: getattr(entry, column) for column in _CATALOG_COLUMNS},
            added_at=entry.added_at,
        )
        try:
            async with self.session.begin_nested():
                self.session.add(model)
                await self.session.flush()
        except IntegrityError as e:
            raise DuplicateEntityException("CatalogEntry", entry.file_path) from e

        entry.id = model.id
        return entry

    async def update(self, entry: CatalogEntry) -> None:
        """Persist the entity's fields onto its row.

        Raises:
            EntityNotFoundException: no row with entry.id
            DuplicateEntityException: new file_path is owned by another row
            ImmutableFieldException: stable_id or an original_* field was changed
        """
        if entry.id is None:
            raise EntityNotFoundException("CatalogEntry", None)
        model = await self._get_model(entry.id)
        if model is None:
            raise EntityNotFoundException("CatalogEntry", entry.id)

        try:
            async with self.session.begin_nested():
                for column in _CATALOG_COLUMNS:
                    setattr(model, column, getattr(entry, column))
                await self.session.flush()
        except IntegrityError as e:
            raise DuplicateEntityException("CatalogEntry", entry.file_path) from e

    async def delete(self, entry_id: int) -> CatalogEntry:
        """Delete a row and return the snapshot it had."""
        model = await self._get_model(entry_id)
        if model is None:
            raise EntityNotFoundException("CatalogEntry", entry_id)
        snapshot = self._model_to_entity(model)
        await self.session.delete(model)
        await self.session.flush()
        return snapshot

    async def get_by_id(self, entry_id: int) -> CatalogEntry | None:
        model = await self._get_model(entry_id)
        return self._model_to_entity(model) if model else None

    async def get_by_path(self, file_path: str) -> CatalogEntry | None:
        stmt = select(CatalogEntryModel).where(CatalogEntryModel.file_path == file_path)
        result = await self.session.execute(stmt)
        model = result.scalar_one_or_none()
        return self._model_to_entity(model) if model else None

    async def get_by_stable_id(self, stable_id: str) -> CatalogEntry | None:
        """Primary row for a stable_id (duplicates share it), else the oldest row."""
        stmt = (
            select(CatalogEntryModel)
            .where(CatalogEntryModel.stable_id == stable_id)
            .order_by(CatalogEntryModel.is_primary.desc(), CatalogEntryModel.id)
            .limit(1)
        )
        result = await self.session.execute(stmt)
        model = result.scalar_one_or_none()
        return self._model_to_entity(model) if model else None

    async def list_by_stable_id(self, stable_id: str) -> list[CatalogEntry]:
        stmt = (
            select(CatalogEntryModel)
            .where(CatalogEntryModel.stable_id == stable_id)
            .order_by(CatalogEntryModel.id)
        )
        result = await self.session.execute(stmt)
        return [self._model_to_entity(m) for m in result.scalars().all()]

    async def find_by_artist_title(
        self, artists: Iterable[str], title: str
    ) -> CatalogEntry | None:
        """Exact normalized (artist, title) equality; primary rows first, then oldest."""
        artist_values = [a for a in artists if a and a.strip()]
        if not artist_values or not title.strip():
            return None

        stmt = (
            select(CatalogEntryModel)
            .where(
                _norm_sql(CatalogEntryModel.title) == _norm_sql(title),
                _norm_sql(CatalogEntryModel.artist).in_(
                    [_norm_sql(a) for a in artist_values]
                ),
            )
            .order_by(CatalogEntryModel.is_primary.desc(), CatalogEntryModel.id)
            .limit(1)
        )
        result = await self.session.execute(stmt)
        model = result.scalar_one_or_none()
        return self._model_to_entity(model) if model else None

    # Hey future me - fuzzy fallback for partially corrupted tags! The stored artist/title must
    # CONTAIN the candidate's (case-insensitive). instr() instead of LIKE so "%" or "_" in a
    # song title aren't treated as wildcards. No scoring: first hit wins (primary, then oldest).
    async def find_fuzzy(self, artist: str, title: str) -> CatalogEntry | None:
        """Substring containment on both artist and title."""
        if not artist.strip() or not title.strip():
            return None

        stmt = (
            select(CatalogEntryModel)
            .where(
                func.instr(_norm_sql(CatalogEntryModel.artist), _norm_sql(artist)) > 0,
                func.instr(_norm_sql(CatalogEntryModel.title), _norm_sql(title)) > 0,
            )
            .order_by(CatalogEntryModel.is_primary.desc(), CatalogEntryModel.id)
            .limit(1)
        )
        result = await self.session.execute(stmt)
        model = result.scalar_one_or_none()
        return self._model_to_entity(model) if model else None

    async def find_by_title_artist_excluding(
        self, title: str, artist: str, exclude_ids: Iterable[int] = ()
    ) -> list[CatalogEntry]:
        """All rows with the same normalized (title, artist), oldest first."""
        stmt = select(CatalogEntryModel).where(
            _norm_sql(CatalogEntryModel.title) == _norm_sql(title),
            _norm_sql(CatalogEntryModel.artist) == _norm_sql(artist),
        )
        excluded = list(exclude_ids)
        if excluded:
            stmt = stmt.where(CatalogEntryModel.id.not_in(excluded))
        stmt = stmt.order_by(
            CatalogEntryModel.is_primary.desc(), CatalogEntryModel.id
        )
        result = await self.session.execute(stmt)
        return [self._model_to_entity(m) for m in result.scalars().all()]

    async def list_all(self) -> list[CatalogEntry]:
        stmt = select(CatalogEntryModel).order_by(CatalogEntryModel.id)
        result = await self.session.execute(stmt)
        return [self._model_to_entity(m) for m in result.scalars().all()]

    async def list_unavailable(self) -> list[CatalogEntry]:
        stmt = (
            select(CatalogEntryModel)
            .where(CatalogEntryModel.is_available.is_(False))
            .order_by(CatalogEntryModel.id)
        )
        result = await self.session.execute(stmt)
        return [self._model_to_entity(m) for m in result.scalars().all()]

    async def list_missing_artwork(self) -> list[CatalogEntry]:
        """Available rows lacking an album cover or artist image."""
        stmt = (
            select(CatalogEntryModel)
            .where(
                CatalogEntryModel.is_available.is_(True),
                (CatalogEntryModel.album_cover.is_(None))
                | (CatalogEntryModel.artist_image.is_(None)),
            )
            .order_by(CatalogEntryModel.id)
        )
        result = await self.session.execute(stmt)
        return [self._model_to_entity(m) for m in result.scalars().all()]

    async def get_duplicate_groups(self) -> list[list[CatalogEntry]]:
        """Rows sharing a normalized (artist, title), grouped, oldest first per group."""
        key_artist = _norm_sql(CatalogEntryModel.artist)
        key_title = _norm_sql(CatalogEntryModel.title)
        groups_stmt = (
            select(key_artist.label("artist_key"), key_title.label("title_key"))
            .group_by(key_artist, key_title)
            .having(func.count(CatalogEntryModel.id) > 1)
            .order_by(key_artist, key_title)
        )
        groups = (await self.session.execute(groups_stmt)).all()

        result: list[list[CatalogEntry]] = []
        for artist_key, title_key in groups:
            stmt = (
                select(CatalogEntryModel)
                .where(key_artist == artist_key, key_title == title_key)
                .order_by(CatalogEntryModel.is_primary.desc(), CatalogEntryModel.id)
            )
            rows = (await self.session.execute(stmt)).scalars().all()
            result.append([self._model_to_entity(m) for m in rows])
        return result

    async def count_all(self) -> int:
        stmt = select(func.count(CatalogEntryModel.id))
        result = await self.session.execute(stmt)
        return result.scalar() or 0


class RelinkSuggestionRepository(IRelinkSuggestionRepository):
    """SQLAlchemy implementation of relink suggestions (one per stable_id)."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize repository with session."""
        self.session = session

    @staticmethod
    def _model_to_entity(model: RelinkSuggestionModel) -> RelinkSuggestion:
        return RelinkSuggestion(
            id=model.id,
            stable_id=model.stable_id,
            suggested_path=model.suggested_path,
            confidence=RelinkConfidence(model.confidence),
            original_info=dict(model.original_info),
            created_at=ensure_utc_aware(model.created_at) or utc_now(),
            updated_at=ensure_utc_aware(model.updated_at) or utc_now(),
        )

    # Listen up, this is a real INSERT ... ON CONFLICT(stable_id) DO UPDATE - the store decides,
    # not a read-then-write race. Both SQLite and PostgreSQL dialects expose the same API.
    async def upsert(
        self,
        stable_id: str,
        suggested_path: str,
        confidence: RelinkConfidence,
        original_info: dict[str, Any],
    ) -> None:
        """Record a suggestion, overwriting any earlier one for the same stable_id."""
        dialect = self.session.bind.dialect.name if self.session.bind else "sqlite"
        insert_fn = postgresql.insert if dialect == "postgresql" else sqlite.insert

        now = utc_now()
        stmt = insert_fn(RelinkSuggestionModel).values(
            stable_id=stable_id,
            suggested_path=suggested_path,
            confidence=confidence.value,
            original_info=original_info,
            created_at=now,
            updated_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[RelinkSuggestionModel.stable_id],
            set_={
                "suggested_path": stmt.excluded.suggested_path,
                "confidence": stmt.excluded.confidence,
                "original_info": stmt.excluded.original_info,
                "updated_at": stmt.excluded.updated_at,
            },
        )
        await self.session.execute(stmt)

    async def get(self, stable_id: str) -> RelinkSuggestion | None:
        stmt = select(RelinkSuggestionModel).where(
            RelinkSuggestionModel.stable_id == stable_id
        )
        result = await self.session.execute(stmt)
        model = result.scalar_one_or_none()
        return self._model_to_entity(model) if model else None

    async def delete(self, stable_id: str) -> bool:
        stmt = select(RelinkSuggestionModel).where(
            RelinkSuggestionModel.stable_id == stable_id
        )
        model = (await self.session.execute(stmt)).scalar_one_or_none()
        if model is None:
            return False
        await self.session.delete(model)
        await self.session.flush()
        return True

    async def list_all(self) -> list[RelinkSuggestion]:
        stmt = select(RelinkSuggestionModel).order_by(
            RelinkSuggestionModel.updated_at.desc(), RelinkSuggestionModel.id
        )
        result = await self.session.execute(stmt)
        return [self._model_to_entity(m) for m in result.scalars().all()]


class PlaylistRepository(IPlaylistRepository):
    """SQLAlchemy implementation of playlists and their track references."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize repository with session."""
        self.session = session

    @staticmethod
    def _ref_to_entity(model: PlaylistTrackModel) -> PlaylistTrackRef:
        return PlaylistTrackRef(
            id=model.id,
            playlist_id=model.playlist_id,
            music_id=model.music_id,
            position=model.position,
            added_at=ensure_utc_aware(model.added_at) or utc_now(),
        )

    async def add(self, playlist: Playlist) -> Playlist:
        """Add a new playlist and return it with its id."""
        model = PlaylistModel(
            name=playlist.name,
            description=playlist.description,
            created_at=playlist.created_at,
        )
        self.session.add(model)
        await self.session.flush()
        playlist.id = model.id
        return playlist

    async def get_by_id(self, playlist_id: int) -> Playlist | None:
        model = await self.session.get(PlaylistModel, playlist_id)
        if model is None:
            return None
        return Playlist(
            id=model.id,
            name=model.name,
            description=model.description,
            created_at=ensure_utc_aware(model.created_at) or utc_now(),
        )

    async def add_track(self, playlist_id: int, music_id: int) -> PlaylistTrackRef:
        """Append a catalog row to the end of a playlist."""
        if await self.session.get(PlaylistModel, playlist_id) is None:
            raise EntityNotFoundException("Playlist", playlist_id)

        stmt = select(func.max(PlaylistTrackModel.position)).where(
            PlaylistTrackModel.playlist_id == playlist_id
        )
        max_position = (await self.session.execute(stmt)).scalar()
        position = 0 if max_position is None else max_position + 1

        model = PlaylistTrackModel(
            playlist_id=playlist_id, music_id=music_id, position=position
        )
        self.session.add(model)
        await self.session.flush()
        return self._ref_to_entity(model)

    async def list_tracks(self, playlist_id: int) -> list[PlaylistTrackRef]:
        stmt = (
            select(PlaylistTrackModel)
            .where(PlaylistTrackModel.playlist_id == playlist_id)
            .order_by(PlaylistTrackModel.position, PlaylistTrackModel.id)
        )
        result = await self.session.execute(stmt)
        return [self._ref_to_entity(m) for m in result.scalars().all()]

    # Hey future me - a dangling ref is a playlist slot whose music_id has no catalog row.
    # LEFT OUTER JOIN + IS NULL finds them all in one query; playlist name rides along for
    # the per-playlist counts.
    async def list_dangling_refs(self) -> list[tuple[PlaylistTrackRef, str]]:
        stmt = (
            select(PlaylistTrackModel, PlaylistModel.name)
            .join(PlaylistModel, PlaylistModel.id == PlaylistTrackModel.playlist_id)
            .outerjoin(
                CatalogEntryModel, CatalogEntryModel.id == PlaylistTrackModel.music_id
            )
            .where(CatalogEntryModel.id.is_(None))
            .order_by(PlaylistTrackModel.playlist_id, PlaylistTrackModel.position)
        )
        result = await self.session.execute(stmt)
        return [(self._ref_to_entity(ref), name) for ref, name in result.all()]

    async def rewrite_ref(self, ref_id: int, music_id: int) -> None:
        model = await self.session.get(PlaylistTrackModel, ref_id)
        if model is None:
            raise EntityNotFoundException("PlaylistTrackRef", ref_id)
        model.music_id = music_id
        await self.session.flush()

    async def delete_ref(self, ref_id: int) -> None:
        model = await self.session.get(PlaylistTrackModel, ref_id)
        if model is None:
            raise EntityNotFoundException("PlaylistTrackRef", ref_id)
        await self.session.delete(model)
        await self.session.flush()


class SongHistoryRepository(ISongHistoryRepository):
    """Append-only audit trail of identity-preserving changes."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize repository with session."""
        self.session = session

    async def add(self, event: SongHistoryEvent) -> None:
        self.session.add(
            SongHistoryModel(
                stable_id=event.stable_id,
                action=event.action.value,
                old_file_path=event.old_file_path,
                new_file_path=event.new_file_path,
                notes=event.notes,
                created_at=event.created_at,
            )
        )
        await self.session.flush()

    async def list_for(self, stable_id: str) -> list[SongHistoryEvent]:
        stmt = (
            select(SongHistoryModel)
            .where(SongHistoryModel.stable_id == stable_id)
            .order_by(SongHistoryModel.created_at, SongHistoryModel.id)
        )
        result = await self.session.execute(stmt)
        return [
            SongHistoryEvent(
                id=m.id,
                stable_id=m.stable_id,
                action=HistoryAction(m.action),
                old_file_path=m.old_file_path,
                new_file_path=m.new_file_path,
                notes=m.notes,
                created_at=ensure_utc_aware(m.created_at) or utc_now(),
            )
            for m in result.scalars().all()
        ]


class TombstoneRepository(ITombstoneRepository):
    """Snapshots of deleted catalog rows, keyed by their old id."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize repository with session."""
        self.session = session

    async def add(self, tombstone: CatalogTombstone) -> None:
        await self.session.merge(
            CatalogTombstoneModel(
                music_id=tombstone.music_id,
                stable_id=tombstone.stable_id,
                title=tombstone.title,
                artist=tombstone.artist,
                album=tombstone.album,
                file_path=tombstone.file_path,
                deleted_at=tombstone.deleted_at,
            )
        )
        await self.session.flush()

    async def get(self, music_id: int) -> CatalogTombstone | None:
        model = await self.session.get(CatalogTombstoneModel, music_id)
        if model is None:
            return None
        return CatalogTombstone(
            music_id=model.music_id,
            stable_id=model.stable_id,
            title=model.title,
            artist=model.artist,
            album=model.album,
            file_path=model.file_path,
            deleted_at=ensure_utc_aware(model.deleted_at) or utc_now(),
        )


class LibraryScanRepository:
    """One library_scans row per pass (running -> completed | failed)."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize repository with session."""
        self.session = session

    async def start(self, scan_paths: list[str], result: ScanResult) -> int:
        model = LibraryScanModel(
            status="running",
            scan_paths=scan_paths,
            started_at=result.started_at,
        )
        self.session.add(model)
        await self.session.flush()
        return model.id

    async def finish(
        self,
        scan_id: int,
        result: ScanResult,
        status: str = "completed",
        error_message: str | None = None,
    ) -> None:
        model = await self.session.get(LibraryScanModel, scan_id)
        if model is None:
            raise EntityNotFoundException("LibraryScan", scan_id)
        model.status = status
        model.scanned_files = result.scanned
        model.new_files = result.added
        model.updated_files = result.updated
        model.removed_files = result.removed
        model.relinked_files = result.relinked
        model.error_files = result.errors
        model.cleanup_skipped = result.cleanup_skipped
        model.error_message = error_message
        model.completed_at = result.completed_at or utc_now()
        await self.session.flush()

    async def get_latest(self) -> dict[str, Any] | None:
        stmt = (
            select(LibraryScanModel)
            .order_by(LibraryScanModel.started_at.desc(), LibraryScanModel.id.desc())
            .limit(1)
        )
        model = (await self.session.execute(stmt)).scalar_one_or_none()
        if model is None:
            return None
        return {
            "id": model.id,
            "status": model.status,
            "scan_paths": list(model.scan_paths),
            "scanned_files": model.scanned_files,
            "new_files": model.new_files,
            "updated_files": model.updated_files,
            "removed_files": model.removed_files,
            "relinked_files": model.relinked_files,
            "error_files": model.error_files,
            "cleanup_skipped": model.cleanup_skipped,
            "error_message": model.error_message,
            "started_at": ensure_utc_aware(model.started_at),
            "completed_at": ensure_utc_aware(model.completed_at),
        }
