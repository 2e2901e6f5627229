"""Library maintenance service for explicit admin operations.

Hey future me - this service handles DESTRUCTIVE operations!
Every delete goes through delete_entry(), which snapshots the row into catalog_tombstones
first. The playlist reconciler needs that snapshot to reconnect playlist slots later - a
row deleted any other way leaves its playlist slots unrecoverable.
"""

import logging
import os
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from songvault.domain.entities import (
    CatalogEntry,
    CatalogTombstone,
    HistoryAction,
    SongHistoryEvent,
    utc_now,
)
from songvault.domain.exceptions import EntityNotFoundException
from songvault.infrastructure.persistence.repositories import (
    CatalogRepository,
    SongHistoryRepository,
    TombstoneRepository,
)

logger = logging.getLogger(__name__)


class LibraryMaintenanceService:
    """Deletes, duplicate management and play statistics."""

    def __init__(self, session: AsyncSession):
        """Initialize maintenance service.

        Args:
            session: Database session
        """
        self._session = session
        self.catalog = CatalogRepository(session)
        self.history = SongHistoryRepository(session)
        self.tombstones = TombstoneRepository(session)

    async def delete_entry(self, entry_id: int, reason: str | None = None) -> CatalogEntry:
        """Delete one catalog row, leaving a tombstone and a history event.

        Raises:
            EntityNotFoundException: no row with that id
        """
        snapshot = await self.catalog.delete(entry_id)
        await self.tombstones.add(
            CatalogTombstone(
                music_id=entry_id,
                stable_id=snapshot.stable_id,
                title=snapshot.title,
                artist=snapshot.artist,
                album=snapshot.album,
                file_path=snapshot.file_path,
            )
        )
        await self.history.add(
            SongHistoryEvent(
                stable_id=snapshot.stable_id,
                action=HistoryAction.DELETED,
                old_file_path=snapshot.file_path,
                notes=reason,
            )
        )
        logger.info(
            f"Deleted catalog entry {entry_id} ({snapshot.artist} - {snapshot.title})"
            + (f": {reason}" if reason else "")
        )
        return snapshot

    async def cleanup_invalid_paths(self) -> int:
        """Delete every row whose file no longer exists. Returns the number deleted."""
        removed = 0
        for entry in await self.catalog.list_all():
            if os.path.exists(entry.file_path):
                continue
            try:
                async with self._session.begin_nested():
                    await self.delete_entry(entry.id, reason="file no longer exists")
                removed += 1
            except Exception as e:
                logger.warning(f"Could not remove entry {entry.id} ({entry.file_path}): {e}")

        logger.info(f"Invalid path cleanup removed {removed} entries")
        return removed

    async def get_duplicate_groups(self) -> list[dict[str, Any]]:
        """Groups of rows sharing a normalized (artist, title)."""
        return [
            {
                "artist": group[0].artist,
                "title": group[0].title,
                "count": len(group),
                "entries": group,
            }
            for group in await self.catalog.get_duplicate_groups()
        ]

    async def mark_as_primary(self, entry_id: int) -> CatalogEntry:
        """Make one row the primary of its duplicate group; siblings lose the flag.

        Raises:
            EntityNotFoundException: no row with that id
        """
        entry = await self.catalog.get_by_id(entry_id)
        if entry is None:
            raise EntityNotFoundException("CatalogEntry", entry_id)

        siblings = await self.catalog.find_by_title_artist_excluding(
            entry.title, entry.artist, exclude_ids=[entry_id]
        )
        for sibling in siblings:
            if sibling.is_primary:
                sibling.is_primary = False
                await self.catalog.update(sibling)

        entry.is_primary = True
        await self.catalog.update(entry)
        logger.info(
            f"Marked entry {entry_id} as primary ({len(siblings)} duplicate(s) demoted)"
        )
        return entry

    async def remove_duplicates(self) -> int:
        """Keep the primary row of each group (else the oldest) and delete the rest."""
        removed = 0
        for group in await self.catalog.get_duplicate_groups():
            keep = next((e for e in group if e.is_primary), group[0])
            for entry in group:
                if entry.id == keep.id:
                    continue
                await self.delete_entry(entry.id, reason=f"duplicate of entry {keep.id}")
                removed += 1

        logger.info(f"Duplicate removal deleted {removed} entries")
        return removed

    async def record_play(self, entry_id: int) -> CatalogEntry:
        """Bump play_count and last_played.

        Raises:
            EntityNotFoundException: no row with that id
        """
        entry = await self.catalog.get_by_id(entry_id)
        if entry is None:
            raise EntityNotFoundException("CatalogEntry", entry_id)
        entry.play_count += 1
        entry.last_played = utc_now()
        await self.catalog.update(entry)
        return entry
