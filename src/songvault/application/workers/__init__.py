"""Worker system - scan triggers."""

from songvault.application.workers.library_scan_worker import LibraryScanWorker

__all__ = ["LibraryScanWorker"]
