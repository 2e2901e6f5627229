"""Library scan orchestrator - one reconciliation pass over all configured roots.

Hey future me - this is the MAIN entry point of the engine! All three triggers (startup,
admin "rescan", streaming rescan) end up in LibraryScanOrchestrator.scan().

A pass is a small state machine:

    IDLE ──► WALKING ──► RECONCILING ──► DONE

WALKING
    Every root is enumerated (blocking walk in a worker thread), then each supported file is
    dispatched ONE AT A TIME, in sorted walk order:
        exact path hit      → refresh (size changed / new local artwork / back from missing)
        identity match      → ReplacementPolicy → relink | suggestion | replace | duplicate | keep
        no match            → DEFERRED (inserted during RECONCILING)
    Each file runs inside its own SAVEPOINT. A broken file is counted and logged, never fatal.

RECONCILING
    Any root unreachable?  → cleanup skipped entirely (an unplugged drive is NOT a mass delete),
                             deferred files are still inserted.
    Otherwise, in this order:
        1. folder-rename heuristic - missing rows of a vanished folder are relinked to a new
           folder holding the same filenames (consumes the matching deferred files)
        2. deferred files are matched once more and inserted
        3. orphans (still missing, not handled this pass) → unavailable, or deleted with
           force_cleanup

Why defer inserts? If new files became rows immediately, a renamed folder's files would
already be "owned" by fresh rows by the time the rename heuristic runs - and the old rows
would lose their history, play counts and playlist slots.
"""

import asyncio
import logging
import os
from collections import defaultdict
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from songvault.application.services.artwork_backfill_service import (
    ArtworkBackfillService,
)
from songvault.application.services.catalog_matcher import CatalogMatcher
from songvault.application.services.directory_walker import (
    DirectoryWalker,
    LocalArtwork,
    find_local_artwork,
)
from songvault.application.services.library_cleanup_service import (
    LibraryMaintenanceService,
)
from songvault.application.services.relink_service import RelinkService
from songvault.application.services.stable_identity_manager import StableIdentityManager
from songvault.config import Settings
from songvault.domain.entities import (
    CatalogEntry,
    HistoryAction,
    RelinkConfidence,
    ScanPhase,
    ScanResult,
    SongHistoryEvent,
    utc_now,
)
from songvault.domain.exceptions import (
    DuplicateEntityException,
    ScanInProgressException,
)
from songvault.domain.ports import IArtworkResolver, IMetadataExtractor
from songvault.domain.value_objects.metadata import (
    MergedMetadata,
    TagMetadata,
    merge_metadata,
)
from songvault.domain.value_objects.path_identity import (
    FolderIdentity,
    PathIdentityInference,
)
from songvault.domain.value_objects.replacement_policy import (
    CandidateFile,
    ReplacementAction,
    ReplacementPolicy,
)
from songvault.infrastructure.observability.logging import set_correlation_id
from songvault.infrastructure.persistence.database import Database
from songvault.infrastructure.persistence.repositories import (
    CatalogRepository,
    LibraryScanRepository,
    SongHistoryRepository,
)

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[float, dict[str, Any]], Awaitable[None]]


@dataclass
class PendingFile:
    """A walked file with no catalog match yet (inserted during reconciling)."""

    file_path: str
    file_size: int
    tags: TagMetadata
    folder: FolderIdentity
    artwork: LocalArtwork

    def metadata(self, existing: CatalogEntry | None = None) -> MergedMetadata:
        return merge_metadata(self.file_path, self.tags, self.folder, existing)


class LibraryScanOrchestrator:
    """Runs scan passes against one catalog store.

    Collaborators are built once and injected; each pass gets its own session.
    """

    def __init__(
        self,
        db: Database,
        settings: Settings,
        extractor: IMetadataExtractor,
        artwork_resolver: IArtworkResolver | None = None,
        walker: DirectoryWalker | None = None,
        inference: PathIdentityInference | None = None,
        identity: StableIdentityManager | None = None,
    ) -> None:
        """Initialize orchestrator.

        Args:
            db: Catalog store (its scan_lock serializes passes)
            settings: Application settings
            extractor: Embedded tag reader
            artwork_resolver: Optional remote artwork lookup for the backfill step
            walker: Directory walker (default: configured extensions)
            inference: Path identity inference (default: configured root names)
            identity: Stable identity manager
        """
        self.db = db
        self.settings = settings
        self.extractor = extractor
        self.artwork_resolver = artwork_resolver

        library = settings.library
        self.walker = walker or DirectoryWalker(library.supported_extensions)
        self.inference = inference or PathIdentityInference.from_root_names(
            library_roots=library.library_root_names,
            staging_roots=library.staging_root_names,
            low_trust_markers=library.low_trust_markers,
            staging_markers=library.staging_markers,
        )
        self.identity = identity or StableIdentityManager()
        self.policy = ReplacementPolicy(
            self.inference,
            auto_relink=library.auto_relink,
            manual_mode=library.manual_mode,
            allow_duplicates=library.allow_duplicates,
        )
        self.phase = ScanPhase.IDLE

    @property
    def is_running(self) -> bool:
        return self.db.scan_lock.locked()

    async def scan(self, progress_callback: ProgressCallback | None = None) -> ScanResult:
        """Run one full pass.

        Args:
            progress_callback: Optional async callback(progress_percent, stats_dict)

        Returns:
            Counts of the pass

        Raises:
            ScanInProgressException: another pass is running against this store
        """
        # Hey future me - fail fast instead of queueing: a second trigger while a pass runs
        # is almost always a double click, and queueing would just scan the same tree twice.
        if self.db.scan_lock.locked():
            raise ScanInProgressException()

        async with self.db.scan_lock:
            correlation_id = set_correlation_id(prefix="scan")
            result = ScanResult()
            roots = [str(path) for path in self.settings.library.scan_paths]
            self.phase = ScanPhase.IDLE

            logger.info(
                "Library scan started\n"
                f"├─ Pass: {correlation_id}\n"
                f"├─ Roots: {', '.join(roots) or '(none configured)'}\n"
                f"├─ Modes: auto_relink={self.settings.library.auto_relink}, "
                f"manual={self.settings.library.manual_mode}, "
                f"duplicates={self.settings.library.allow_duplicates}, "
                f"force_cleanup={self.settings.library.force_cleanup}\n"
                f"└─ Rename threshold: {self.settings.library.folder_rename_threshold}"
            )

            async with self.db.session_scope() as session:
                scan_id = await LibraryScanRepository(session).start(roots, result)

            try:
                async with self.db.session_scope() as session:
                    scan_pass = _ScanPass(self, session, result)
                    self.phase = ScanPhase.WALKING
                    await scan_pass.walk(roots, progress_callback)
                    self.phase = ScanPhase.RECONCILING
                    await scan_pass.reconcile()
            except Exception as e:
                result.completed_at = utc_now()
                self.phase = ScanPhase.DONE
                logger.error(f"Library scan failed: {e}", exc_info=True)
                async with self.db.session_scope() as session:
                    await LibraryScanRepository(session).finish(
                        scan_id, result, status="failed", error_message=str(e)
                    )
                raise

            if self._should_backfill_artwork():
                result.artwork_updated = await self._backfill_artwork()

            result.completed_at = utc_now()
            self.phase = ScanPhase.DONE
            async with self.db.session_scope() as session:
                await LibraryScanRepository(session).finish(scan_id, result)

            logger.info(
                f"Library scan complete: {result.scanned} scanned, {result.added} added, "
                f"{result.updated} updated, {result.removed} removed, "
                f"{result.relinked} relinked, {result.relink_suggestions} suggestions, "
                f"{result.folder_renames} folder renames, "
                f"{result.marked_unavailable} marked unavailable, "
                f"{result.skipped} skipped, {result.errors} errors"
                + (" (cleanup skipped)" if result.cleanup_skipped else "")
            )
            return result

    def _should_backfill_artwork(self) -> bool:
        artwork = self.settings.artwork
        return (
            self.artwork_resolver is not None
            and artwork.enabled
            and artwork.fetch_missing_after_scan
        )

    async def _backfill_artwork(self) -> int:
        # Enrichment only - a failure here must never fail a finished pass
        try:
            async with self.db.session_scope() as session:
                service = ArtworkBackfillService(
                    session, self.artwork_resolver, self.settings.artwork
                )
                return await service.backfill()
        except Exception as e:
            logger.warning(f"Artwork backfill failed: {e}")
            return 0


class _ScanPass:
    """State of ONE pass: found set, handled rows and deferred files."""

    def __init__(
        self,
        orchestrator: LibraryScanOrchestrator,
        session: AsyncSession,
        result: ScanResult,
    ) -> None:
        self.session = session
        self.result = result
        self.settings = orchestrator.settings.library
        self.extractor = orchestrator.extractor
        self.walker = orchestrator.walker
        self.inference = orchestrator.inference
        self.identity = orchestrator.identity
        self.policy = orchestrator.policy

        self.catalog = CatalogRepository(session)
        self.history = SongHistoryRepository(session)
        self.matcher = CatalogMatcher(self.catalog)
        self.relinks = RelinkService(
            session, self.identity, self.extractor, self.inference
        )
        self.maintenance = LibraryMaintenanceService(session)

        self.found: set[str] = set()
        # Row ids relinked or suggested this pass - orphan and rename logic leave them alone
        self.handled: set[int] = set()
        # Directory → basenames of rows relinked AWAY from it during walking
        self.moved_from: dict[str, set[str]] = defaultdict(set)
        self.pending: dict[str, PendingFile] = {}
        # Directories the walker could not list - their rows are unknown, not missing
        self.skipped_dirs: list[str] = []

    def is_shadowed(self, file_path: str) -> bool:
        """True if file_path lives below a directory this pass could not read."""
        return any(
            file_path.startswith(directory.rstrip(os.sep) + os.sep)
            for directory in self.skipped_dirs
        )

    # =========================================================================
    # WALKING
    # =========================================================================

    async def walk(
        self, roots: list[str], progress_callback: ProgressCallback | None
    ) -> None:
        files: list[str] = []
        for root in roots:
            walk = await asyncio.to_thread(self.walker.collect, root)
            if not walk.reachable:
                self.result.unreachable_roots.append(root)
                continue
            logger.info(f"Found {len(walk.files)} audio files below {root}")
            files.extend(walk.files)
            self.skipped_dirs.extend(walk.skipped_dirs)

        if self.skipped_dirs:
            self.result.skipped_dirs = list(self.skipped_dirs)
            logger.warning(
                f"{len(self.skipped_dirs)} unreadable director(ies), their songs are left "
                f"untouched this pass: {', '.join(self.skipped_dirs)}"
            )

        total = len(files)
        for index, file_path in enumerate(files, start=1):
            if file_path in self.found:
                continue  # nested/overlapping roots
            self.found.add(file_path)
            self.result.scanned += 1

            try:
                async with self.session.begin_nested():
                    await self._process_file(file_path)
            except DuplicateEntityException as e:
                self.result.skipped += 1
                logger.debug(f"Skipping {file_path}: {e}")
            except Exception as e:
                self.result.errors += 1
                self.result.error_files.append({"path": file_path, "error": str(e)})
                logger.warning(f"Error scanning {file_path}: {e}", exc_info=False)

            if progress_callback and total > 0:
                await progress_callback(index / total * 100, self.result.to_dict())

    async def _process_file(self, file_path: str) -> None:
        file_size = (await asyncio.to_thread(os.stat, file_path)).st_size

        existing = await self.catalog.get_by_path(file_path)
        if existing is not None:
            await self._refresh(existing, file_size)
            return

        tags = await self.extractor.extract(file_path)
        pending = PendingFile(
            file_path=file_path,
            file_size=file_size,
            tags=tags,
            folder=self.inference.infer(file_path),
            artwork=await asyncio.to_thread(find_local_artwork, file_path),
        )

        match = await self.matcher.match_identity(pending.metadata())
        if not match.found:
            self.pending[file_path] = pending
            logger.debug(f"No catalog match for {file_path}, deferring insert")
            return

        logger.debug(
            f"{file_path} matched entry {match.entry.id} via {match.basis.value}"
        )
        await self._apply_match(match.entry, pending)

    async def _refresh(self, entry: CatalogEntry, file_size: int) -> None:
        """Exact path hit: refresh only what actually changed."""
        changed = False

        if entry.file_size != file_size:
            tags = await self.extractor.extract(entry.file_path)
            metadata = merge_metadata(
                entry.file_path, tags, self.inference.infer(entry.file_path), entry
            )
            self.identity.apply_metadata(entry, metadata, file_size)
            changed = True

        if entry.album_cover is None or entry.artist_image is None:
            artwork = await asyncio.to_thread(find_local_artwork, entry.file_path)
            if entry.album_cover is None and artwork.album_cover:
                entry.album_cover = artwork.album_cover
                changed = True
            if entry.artist_image is None and artwork.artist_image:
                entry.artist_image = artwork.artist_image
                changed = True

        if not entry.is_available:
            # mark_available() persists the other field changes too
            await self.relinks.mark_available(entry)
            # The song is back where it was, so a pending relink suggestion is stale
            await self.relinks.dismiss_suggestion(entry.stable_id)
            changed = True
        elif changed:
            await self.catalog.update(entry)

        if changed:
            self.result.updated += 1
        else:
            self.result.skipped += 1

    async def _apply_match(self, entry: CatalogEntry, pending: PendingFile) -> None:
        exists = self.is_shadowed(entry.file_path) or await asyncio.to_thread(
            os.path.exists, entry.file_path
        )
        metadata = pending.metadata(existing=entry)
        decision = self.policy.decide(
            entry,
            CandidateFile(pending.file_path, metadata, pending.file_size),
            exists,
        )
        logger.debug(
            f"Policy for {pending.file_path} vs entry {entry.id}: "
            f"{decision.action.value} ({decision.reason})"
        )

        if decision.action == ReplacementAction.REPLACE and decision.is_relink:
            old_dir = os.path.dirname(entry.file_path)
            old_name = os.path.basename(entry.file_path)
            if decision.needs_confirmation:
                await self.relinks.suggest_relink(
                    entry, pending.file_path, RelinkConfidence.HIGH
                )
                self.result.relink_suggestions += 1
            else:
                self._fill_artwork(entry, pending.artwork)
                await self.relinks.relink(
                    entry,
                    pending.file_path,
                    metadata=metadata,
                    file_size=pending.file_size,
                    notes=decision.reason,
                )
                self.moved_from[old_dir].add(old_name)
                self.result.relinked += 1
                self.result.updated += 1
            self.handled.add(entry.id)
            return

        if decision.action == ReplacementAction.REPLACE:
            old_path = entry.file_path
            self.identity.apply_replacement(
                entry, pending.file_path, metadata, pending.file_size
            )
            self._fill_artwork(entry, pending.artwork)
            await self.catalog.update(entry)
            await self.history.add(
                SongHistoryEvent(
                    stable_id=entry.stable_id,
                    action=HistoryAction.REPLACED,
                    old_file_path=old_path,
                    new_file_path=pending.file_path,
                    notes=decision.reason,
                )
            )
            logger.info(
                f"Replaced {old_path} with better copy {pending.file_path} "
                f"({decision.reason})"
            )
            self.result.updated += 1
            return

        if decision.action == ReplacementAction.ADD_DUPLICATE:
            await self._insert(pending, is_primary=False)
            return

        self.result.skipped += 1

    async def _insert(self, pending: PendingFile, is_primary: bool = True) -> CatalogEntry:
        entry = self.identity.create_entry(
            pending.file_path,
            pending.metadata(),
            pending.file_size,
            album_cover=pending.artwork.album_cover,
            artist_image=pending.artwork.artist_image,
            is_primary=is_primary,
        )
        await self.catalog.add(entry)
        await self.history.add(
            SongHistoryEvent(
                stable_id=entry.stable_id,
                action=HistoryAction.ADDED,
                new_file_path=entry.file_path,
                notes=None if is_primary else "duplicate",
            )
        )
        self.result.added += 1
        logger.debug(f"Added {entry.file_path} as {entry.stable_id}")
        return entry

    @staticmethod
    def _fill_artwork(entry: CatalogEntry, artwork: LocalArtwork) -> None:
        if artwork.album_cover:
            entry.album_cover = artwork.album_cover
        if artwork.artist_image and entry.artist_image is None:
            entry.artist_image = artwork.artist_image

    # =========================================================================
    # RECONCILING
    # =========================================================================

    async def reconcile(self) -> None:
        if self.result.unreachable_roots:
            self.result.cleanup_skipped = True
            logger.warning(
                "Skipping cleanup: scan root(s) not reachable: "
                f"{', '.join(self.result.unreachable_roots)}. Missing files are NOT "
                "treated as deleted in this pass."
            )
            await self._flush_pending()
            return

        await self._detect_folder_renames()
        await self._flush_pending()
        await self._handle_orphans()

    async def _flush_pending(self) -> None:
        """Second-chance match for deferred files, then insert."""
        for file_path, pending in list(self.pending.items()):
            try:
                async with self.session.begin_nested():
                    match = await self.matcher.match_identity(pending.metadata())
                    if match.found and match.entry.id not in self.handled:
                        await self._apply_match(match.entry, pending)
                    else:
                        await self._insert(pending)
            except DuplicateEntityException as e:
                self.result.skipped += 1
                logger.debug(f"Skipping {file_path}: {e}")
            except Exception as e:
                self.result.errors += 1
                self.result.error_files.append({"path": file_path, "error": str(e)})
                logger.warning(f"Error adding {file_path}: {e}", exc_info=False)
        self.pending.clear()

    async def _detect_folder_renames(self) -> None:
        """Relink rows of a vanished folder to a new folder with the same filenames.

        Hey future me - the rules, all of them must hold:
        - old folder has NO walked files any more, its rows are missing on disk
        - new folder holds exactly as many walked files as the old folder held songs
        - at least folder_rename_threshold of the filenames are shared
        - only same-name files are relinked, and only to paths no row owns yet
        - the old folder is not below a directory this pass could not read
        Each destination folder can absorb one old folder only.
        """
        entries = await self.catalog.list_all()
        owned = {e.file_path for e in entries}

        rows_by_dir: dict[str, list[CatalogEntry]] = defaultdict(list)
        for entry in entries:
            rows_by_dir[os.path.dirname(entry.file_path)].append(entry)

        found_by_dir: dict[str, list[str]] = defaultdict(list)
        for path in sorted(self.found):
            found_by_dir[os.path.dirname(path)].append(path)

        candidate_dirs = sorted(
            directory
            for directory, paths in found_by_dir.items()
            if any(p not in owned for p in paths)
        )
        consumed: set[str] = set()
        threshold = self.settings.folder_rename_threshold

        for old_dir in sorted(rows_by_dir):
            if old_dir in found_by_dir or self.is_shadowed(os.path.join(old_dir, "")):
                continue
            missing = [
                e
                for e in rows_by_dir[old_dir]
                if e.id not in self.handled
                and not await asyncio.to_thread(os.path.exists, e.file_path)
            ]
            if not missing:
                continue

            old_names = {
                os.path.basename(e.file_path) for e in rows_by_dir[old_dir]
            } | self.moved_from.get(old_dir, set())
            song_count = len(old_names)

            for new_dir in candidate_dirs:
                if new_dir in consumed:
                    continue
                new_by_name = {os.path.basename(p): p for p in found_by_dir[new_dir]}
                if len(new_by_name) != song_count:
                    continue
                shared = old_names & new_by_name.keys()
                if not shared or len(shared) < threshold * song_count:
                    continue

                moved = await self._relink_folder(
                    old_dir, new_dir, missing, new_by_name, owned
                )
                if moved:
                    consumed.add(new_dir)
                    self.result.folder_renames += 1
                    logger.info(
                        f"Folder rename detected: {old_dir} -> {new_dir} "
                        f"({moved}/{song_count} songs)"
                    )
                break

    async def _relink_folder(
        self,
        old_dir: str,
        new_dir: str,
        missing: list[CatalogEntry],
        new_by_name: dict[str, str],
        owned: set[str],
    ) -> int:
        moved = 0
        for entry in sorted(missing, key=lambda e: e.file_path):
            new_path = new_by_name.get(os.path.basename(entry.file_path))
            if new_path is None or new_path in owned:
                continue
            pending = self.pending.get(new_path)
            try:
                async with self.session.begin_nested():
                    if self.settings.manual_mode:
                        await self.relinks.suggest_relink(
                            entry, new_path, RelinkConfidence.MEDIUM
                        )
                        self.result.relink_suggestions += 1
                    else:
                        await self.relinks.relink(
                            entry,
                            new_path,
                            metadata=pending.metadata(existing=entry) if pending else None,
                            file_size=pending.file_size if pending else None,
                            action=HistoryAction.FOLDER_RENAMED,
                            notes=f"Folder renamed: {old_dir} -> {new_dir}",
                        )
                        self.result.relinked += 1
                        self.result.updated += 1
            except Exception as e:
                logger.warning(
                    f"Folder rename relink failed for {entry.file_path} -> {new_path}: {e}"
                )
                continue

            self.handled.add(entry.id)
            owned.add(new_path)
            self.pending.pop(new_path, None)
            moved += 1
        return moved

    async def _handle_orphans(self) -> None:
        for entry in await self.catalog.list_all():
            if entry.file_path in self.found or entry.id in self.handled:
                continue
            if self.is_shadowed(entry.file_path):
                logger.debug(f"Not treating {entry.file_path} as missing: folder unreadable")
                continue
            if await asyncio.to_thread(os.path.exists, entry.file_path):
                continue  # outside the scanned roots but still present

            try:
                async with self.session.begin_nested():
                    if self.settings.force_cleanup:
                        await self.maintenance.delete_entry(
                            entry.id, reason="file missing (force cleanup)"
                        )
                        self.result.removed += 1
                    elif await self.relinks.mark_unavailable(entry):
                        self.result.marked_unavailable += 1
            except Exception as e:
                logger.warning(f"Orphan handling failed for {entry.file_path}: {e}")
