# Hey future me - this worker is the ONLY way a scan gets started! Three trigger surfaces,
# one entrypoint (LibraryScanOrchestrator.scan()):
#   start()        - background scan after process start (optional delay)
#   run_scan()     - admin "rescan now", returns the summary
#   stream_scan()  - same as run_scan() but yields progress events while it runs
# After every pass the playlist reconciler runs in its own session (if configured), so
# playlist slots of rows deleted by force cleanup are repaired right away.
"""Library scan worker for startup, manual and streaming scans."""

import asyncio
import contextlib
import logging
from collections.abc import AsyncIterator
from datetime import datetime
from typing import Any

from songvault.application.services.library_scanner_service import (
    LibraryScanOrchestrator,
    ProgressCallback,
)
from songvault.application.services.playlist_reconciler import PlaylistReconciler
from songvault.config import Settings
from songvault.domain.entities import utc_now
from songvault.domain.exceptions import ScanInProgressException
from songvault.infrastructure.persistence.database import Database

logger = logging.getLogger(__name__)


class LibraryScanWorker:
    """Wraps the scan orchestrator with its trigger surfaces."""

    def __init__(
        self,
        db: Database,
        settings: Settings,
        orchestrator: LibraryScanOrchestrator,
    ) -> None:
        """Initialize worker.

        Args:
            db: Database instance for creating sessions
            settings: Application settings
            orchestrator: The one scan entrypoint
        """
        self.db = db
        self.settings = settings
        self.orchestrator = orchestrator
        self._task: asyncio.Task[None] | None = None
        self._background: set[asyncio.Task[None]] = set()
        self._last_run_at: datetime | None = None
        self._last_run_summary: dict[str, Any] | None = None

    async def start(self) -> None:
        """Schedule the startup scan (no-op unless scan_on_startup is set)."""
        if not self.settings.library.scan_on_startup:
            logger.debug("Startup scan disabled")
            return
        if self._task and not self._task.done():
            logger.warning("LibraryScanWorker startup scan already scheduled")
            return

        self._task = asyncio.create_task(self._startup_scan())
        logger.info(
            "LibraryScanWorker started "
            f"(startup delay: {self.settings.library.startup_delay_seconds}s)"
        )

    async def stop(self) -> None:
        """Cancel a startup scan that has not finished yet."""
        if self._task:
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
            self._task = None
        logger.info("LibraryScanWorker stopped")

    def get_status(self) -> dict[str, Any]:
        """Get worker status for monitoring/UI."""
        return {
            "name": "Library Scan Worker",
            "scan_running": self.orchestrator.is_running,
            "phase": self.orchestrator.phase.value,
            "last_run_at": self._last_run_at.isoformat() if self._last_run_at else None,
            "last_run_summary": self._last_run_summary,
        }

    async def _startup_scan(self) -> None:
        delay = self.settings.library.startup_delay_seconds
        if delay > 0:
            # Let the rest of the process finish starting before we hog the single writer
            await asyncio.sleep(delay)
        try:
            await self.run_scan()
        except ScanInProgressException:
            logger.info("Startup scan skipped: a scan is already running")
        except Exception as e:
            logger.error(f"Startup scan failed: {e}", exc_info=True)

    async def run_scan(
        self, progress_callback: ProgressCallback | None = None
    ) -> dict[str, Any]:
        """Run one pass (plus playlist reconciliation) and return the summary.

        Raises:
            ScanInProgressException: a pass is already running
        """
        result = await self.orchestrator.scan(progress_callback)

        playlists: dict[str, Any] | None = None
        if self.settings.library.reconcile_playlists_after_scan:
            playlists = await self._reconcile_playlists()

        summary = {"scan": result.to_dict(), "playlists": playlists}
        self._last_run_at = utc_now()
        self._last_run_summary = summary
        return summary

    async def _reconcile_playlists(self) -> dict[str, Any] | None:
        try:
            async with self.db.session_scope() as session:
                report = await PlaylistReconciler(session).reconcile()
            return report.to_dict()
        except Exception as e:
            logger.warning(f"Playlist reconciliation after scan failed: {e}")
            return None

    async def stream_scan(self) -> AsyncIterator[dict[str, Any]]:
        """Run a pass and yield progress events, ending with "complete" or "error".

        Hey future me - there's no cancellation: if the consumer stops iterating, the pass
        keeps running to completion in the background.
        """
        queue: asyncio.Queue[dict[str, Any] | None] = asyncio.Queue()

        async def on_progress(progress: float, stats: dict[str, Any]) -> None:
            await queue.put(
                {"event": "progress", "progress": round(progress, 1), "stats": stats}
            )

        async def runner() -> None:
            try:
                summary = await self.run_scan(on_progress)
                await queue.put({"event": "complete", **summary})
            except Exception as e:
                logger.warning(f"Streaming scan failed: {e}")
                await queue.put({"event": "error", "error": str(e)})
            finally:
                await queue.put(None)

        task = asyncio.create_task(runner())
        self._background.add(task)
        task.add_done_callback(self._background.discard)

        yield {"event": "started"}
        while (event := await queue.get()) is not None:
            yield event
