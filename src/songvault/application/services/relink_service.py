"""Orphan and relink subsystem.

Hey future me - "relink" = point an existing catalog row (same stable_id!) at a new file.
Everything here preserves identity: stable_id and original_* never change, only the path,
the current metadata and the relink counters do. Three ways into a relink:

1. Automatic   - scanner found the missing song elsewhere, auto_relink on, manual mode off
2. Suggested   - manual mode: suggest_relink() records a RelinkSuggestion and flags the row
                 unavailable; a human later calls confirm_suggestion()
3. Manual      - admin points a stable_id at a path directly (manual_relink())

Every path change lands in song_history so get_relink_history() can tell the full story.
"""

import logging
import os
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from songvault.application.services.stable_identity_manager import StableIdentityManager
from songvault.domain.entities import (
    CatalogEntry,
    HistoryAction,
    RelinkConfidence,
    RelinkSuggestion,
    SongHistoryEvent,
    utc_now,
)
from songvault.domain.exceptions import (
    EntityNotFoundException,
    InvalidStateException,
    MetadataExtractionException,
    ValidationException,
)
from songvault.domain.ports import IMetadataExtractor
from songvault.domain.value_objects.metadata import MergedMetadata, merge_metadata
from songvault.domain.value_objects.path_identity import PathIdentityInference
from songvault.infrastructure.persistence.repositories import (
    CatalogRepository,
    RelinkSuggestionRepository,
    SongHistoryRepository,
)

logger = logging.getLogger(__name__)


class RelinkService:
    """Relinks, relink suggestions and availability bookkeeping."""

    def __init__(
        self,
        session: AsyncSession,
        identity: StableIdentityManager | None = None,
        extractor: IMetadataExtractor | None = None,
        inference: PathIdentityInference | None = None,
    ) -> None:
        """Initialize relink service.

        Args:
            session: Database session (caller owns the transaction)
            identity: Identity manager used for every mutation
            extractor: Tag reader for metadata refresh on manual relinks (optional)
            inference: Folder inference for metadata refresh (optional)
        """
        self.catalog = CatalogRepository(session)
        self.suggestions = RelinkSuggestionRepository(session)
        self.history = SongHistoryRepository(session)
        self.identity = identity or StableIdentityManager()
        self.extractor = extractor
        self.inference = inference

    # =========================================================================
    # RELINK
    # =========================================================================

    async def relink(
        self,
        entry: CatalogEntry,
        new_path: str,
        metadata: MergedMetadata | None = None,
        file_size: int | None = None,
        action: HistoryAction = HistoryAction.RELINKED,
        notes: str | None = None,
    ) -> CatalogEntry:
        """Rewrite an entry's path to a new file.

        Raises:
            DuplicateEntityException: another row already owns new_path
        """
        old_path = entry.file_path
        self.identity.apply_relink(entry, new_path, metadata, file_size)
        await self.catalog.update(entry)
        await self.history.add(
            SongHistoryEvent(
                stable_id=entry.stable_id,
                action=action,
                old_file_path=old_path,
                new_file_path=new_path,
                notes=notes,
            )
        )
        # A confirmed move makes any pending suggestion for this song obsolete
        await self.suggestions.delete(entry.stable_id)

        logger.info(
            f"Relinked {entry.stable_id} ({entry.original_artist} - "
            f"{entry.original_title}): {old_path} -> {new_path} "
            f"(times_relinked={entry.times_relinked})"
        )
        return entry

    async def suggest_relink(
        self,
        entry: CatalogEntry,
        suggested_path: str,
        confidence: RelinkConfidence = RelinkConfidence.HIGH,
    ) -> None:
        """Record a suggestion (one per stable_id) and flag the entry unavailable.

        The entry's file_path is NOT touched until the suggestion is confirmed.
        """
        await self.suggestions.upsert(
            stable_id=entry.stable_id,
            suggested_path=suggested_path,
            confidence=confidence,
            original_info=entry.original_info,
        )
        await self.mark_unavailable(entry)
        logger.info(
            f"Relink suggestion ({confidence.value}) for {entry.stable_id}: "
            f"{entry.file_path} -> {suggested_path}"
        )

    async def confirm_suggestion(self, stable_id: str) -> CatalogEntry:
        """Promote a suggestion into an actual relink.

        Raises:
            EntityNotFoundException: no suggestion or no entry for stable_id
            InvalidStateException: the suggested file vanished in the meantime
        """
        suggestion = await self.suggestions.get(stable_id)
        if suggestion is None:
            raise EntityNotFoundException("RelinkSuggestion", stable_id)
        if not os.path.exists(suggestion.suggested_path):
            raise InvalidStateException(
                f"Suggested file for {stable_id} no longer exists: "
                f"{suggestion.suggested_path}"
            )
        return await self.manual_relink(
            stable_id,
            suggestion.suggested_path,
            notes=f"Confirmed {suggestion.confidence.value} confidence suggestion",
        )

    async def dismiss_suggestion(self, stable_id: str) -> bool:
        """Drop a suggestion without relinking. Returns False if there was none."""
        removed = await self.suggestions.delete(stable_id)
        if removed:
            logger.info(f"Dismissed relink suggestion for {stable_id}")
        return removed

    async def list_suggestions(self) -> list[RelinkSuggestion]:
        return await self.suggestions.list_all()

    async def manual_relink(
        self,
        stable_id: str,
        new_path: str,
        refresh_metadata: bool = True,
        notes: str | None = None,
    ) -> CatalogEntry:
        """Admin-initiated relink of a stable_id to an explicit path.

        Raises:
            EntityNotFoundException: unknown stable_id
            ValidationException: new_path is not an existing absolute file
            DuplicateEntityException: another row already owns new_path
        """
        if not os.path.isabs(new_path) or not os.path.isfile(new_path):
            raise ValidationException(f"Not an existing absolute file path: {new_path}")

        entry = await self.catalog.get_by_stable_id(stable_id)
        if entry is None:
            raise EntityNotFoundException("CatalogEntry", stable_id)

        metadata = await self._read_metadata(entry, new_path) if refresh_metadata else None
        file_size = os.path.getsize(new_path)

        return await self.relink(
            entry,
            new_path,
            metadata=metadata,
            file_size=file_size,
            notes=notes or f"Manual relink from {entry.file_path} to {new_path}",
        )

    async def _read_metadata(
        self, entry: CatalogEntry, file_path: str
    ) -> MergedMetadata | None:
        # Hey - metadata refresh is best effort; an unreadable file still gets relinked
        if self.extractor is None or self.inference is None:
            return None
        try:
            tags = await self.extractor.extract(file_path)
        except MetadataExtractionException as e:
            logger.warning(f"Could not parse metadata, keeping existing: {e}")
            return None
        return merge_metadata(file_path, tags, self.inference.infer(file_path), entry)

    # =========================================================================
    # AVAILABILITY
    # =========================================================================

    async def mark_unavailable(self, entry: CatalogEntry) -> bool:
        """Flag a missing file. Returns False if the flag was already set."""
        entry.last_availability_check = utc_now()
        if not entry.is_available:
            await self.catalog.update(entry)
            return False
        entry.is_available = False
        await self.catalog.update(entry)
        await self.history.add(
            SongHistoryEvent(
                stable_id=entry.stable_id,
                action=HistoryAction.MARKED_UNAVAILABLE,
                old_file_path=entry.file_path,
            )
        )
        logger.info(
            f"Marked unavailable: {entry.original_artist} - {entry.original_title} "
            f"({entry.stable_id}, last known path {entry.file_path})"
        )
        return True

    async def mark_available(self, entry: CatalogEntry) -> bool:
        """Clear the missing flag. Returns False if the entry was already available."""
        entry.last_availability_check = utc_now()
        if entry.is_available:
            await self.catalog.update(entry)
            return False
        entry.is_available = True
        await self.catalog.update(entry)
        await self.history.add(
            SongHistoryEvent(
                stable_id=entry.stable_id,
                action=HistoryAction.MARKED_AVAILABLE,
                new_file_path=entry.file_path,
            )
        )
        return True

    async def check_availability(self) -> dict[str, int]:
        """Verify every entry's file_path exists and update the flags."""
        stats = {"checked": 0, "available": 0, "unavailable": 0, "changed": 0}
        for entry in await self.catalog.list_all():
            stats["checked"] += 1
            if os.path.exists(entry.file_path):
                stats["available"] += 1
                changed = await self.mark_available(entry)
            else:
                stats["unavailable"] += 1
                changed = await self.mark_unavailable(entry)
            if changed:
                stats["changed"] += 1

        logger.info(
            f"Availability check: {stats['checked']} checked, "
            f"{stats['unavailable']} missing, {stats['changed']} changed"
        )
        return stats

    async def get_relink_history(self, stable_id: str) -> dict[str, Any]:
        """Identity snapshot, current state and the audit trail for one song.

        Raises:
            EntityNotFoundException: unknown stable_id
        """
        entry = await self.catalog.get_by_stable_id(stable_id)
        if entry is None:
            raise EntityNotFoundException("CatalogEntry", stable_id)
        events = await self.history.list_for(stable_id)
        return {
            "stable_id": stable_id,
            "original": entry.original_info,
            "current": {
                "artist": entry.artist,
                "title": entry.title,
                "album": entry.album,
                "path": entry.file_path,
            },
            "times_relinked": entry.times_relinked,
            "last_relinked_at": entry.last_relinked_at,
            "is_available": entry.is_available,
            "events": events,
        }
