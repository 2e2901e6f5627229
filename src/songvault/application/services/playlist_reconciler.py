"""Playlist reconciler - repairs playlist slots whose catalog row was deleted.

Hey future me - this runs purely against the store, never the filesystem! A playlist slot
references a catalog row by its surrogate id (music_id). When that row is deleted (force
cleanup, admin delete, duplicate removal) the slot dangles. The deleted row's title/artist
survive in catalog_tombstones, so we look for another live row with the same normalized
(title, artist):
- found     → rewrite music_id (reconnect)
- not found → delete the slot (unrecoverable)
- no tombstone at all (row deleted outside the engine) → also unrecoverable

Each slot gets its own SAVEPOINT - one broken slot never blocks the others.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from songvault.domain.entities import PlaylistTrackRef
from songvault.infrastructure.persistence.repositories import (
    CatalogRepository,
    PlaylistRepository,
    TombstoneRepository,
)

logger = logging.getLogger(__name__)


@dataclass
class ReconcileReport:
    """Aggregate counts of one reconciliation run, also grouped by playlist name."""

    reconnected: int = 0
    removed: int = 0
    failed: int = 0
    by_playlist: dict[str, dict[str, int]] = field(default_factory=dict)

    def count(self, playlist_name: str, outcome: str) -> None:
        bucket = self.by_playlist.setdefault(
            playlist_name, {"reconnected": 0, "removed": 0, "failed": 0}
        )
        bucket[outcome] += 1
        setattr(self, outcome, getattr(self, outcome) + 1)

    def to_dict(self) -> dict[str, Any]:
        return {
            "reconnected": self.reconnected,
            "removed": self.removed,
            "failed": self.failed,
            "by_playlist": self.by_playlist,
        }


class PlaylistReconciler:
    """Reconnects or removes dangling playlist references."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize reconciler.

        Args:
            session: Database session (caller commits)
        """
        self._session = session
        self.catalog = CatalogRepository(session)
        self.playlists = PlaylistRepository(session)
        self.tombstones = TombstoneRepository(session)

    async def reconcile(self) -> ReconcileReport:
        """Repair every dangling playlist reference."""
        report = ReconcileReport()
        dangling = await self.playlists.list_dangling_refs()
        if not dangling:
            logger.debug("Playlist reconciliation: no dangling references")
            return report

        for ref, playlist_name in dangling:
            try:
                async with self._session.begin_nested():
                    outcome = await self._repair(ref)
                report.count(playlist_name, outcome)
            except Exception as e:
                logger.warning(
                    f"Failed to repair playlist slot {ref.id} in '{playlist_name}' "
                    f"(music_id={ref.music_id}): {e}"
                )
                report.count(playlist_name, "failed")

        logger.info(
            f"Playlist reconciliation: {report.reconnected} reconnected, "
            f"{report.removed} removed, {report.failed} failed "
            f"across {len(report.by_playlist)} playlist(s)"
        )
        return report

    async def _repair(self, ref: PlaylistTrackRef) -> str:
        tombstone = await self.tombstones.get(ref.music_id)
        if tombstone is not None:
            candidates = await self.catalog.find_by_title_artist_excluding(
                tombstone.title, tombstone.artist, exclude_ids=[ref.music_id]
            )
            if candidates:
                target = candidates[0]
                await self.playlists.rewrite_ref(ref.id, target.id)
                logger.debug(
                    f"Reconnected playlist slot {ref.id}: {ref.music_id} -> {target.id} "
                    f"({tombstone.artist} - {tombstone.title})"
                )
                return "reconnected"

        await self.playlists.delete_ref(ref.id)
        return "removed"

    async def get_orphan_stats(self) -> dict[str, Any]:
        """Dangling reference counts per playlist. Read-only."""
        per_playlist: dict[str, int] = defaultdict(int)
        dangling = await self.playlists.list_dangling_refs()
        for _ref, playlist_name in dangling:
            per_playlist[playlist_name] += 1
        return {"total": len(dangling), "by_playlist": dict(per_playlist)}
