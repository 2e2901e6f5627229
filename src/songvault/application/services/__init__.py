"""Application services - scan orchestration, relinking and catalog maintenance."""

from songvault.application.services.artwork_backfill_service import (
    ArtworkBackfillService,
)
from songvault.application.services.catalog_matcher import CatalogMatcher, MatchResult
from songvault.application.services.directory_walker import DirectoryWalker, RootWalk
from songvault.application.services.library_cleanup_service import (
    LibraryMaintenanceService,
)

# Hey future me - LibraryScanOrchestrator is THE scan entrypoint. Don't start passes any
# other way (the worker wraps it for startup / manual / streaming triggers).
from songvault.application.services.library_scanner_service import (
    LibraryScanOrchestrator,
)
from songvault.application.services.playlist_reconciler import (
    PlaylistReconciler,
    ReconcileReport,
)
from songvault.application.services.playlist_service import PlaylistService
from songvault.application.services.relink_service import RelinkService
from songvault.application.services.stable_identity_manager import StableIdentityManager

__all__ = [
    "ArtworkBackfillService",
    "CatalogMatcher",
    "DirectoryWalker",
    "LibraryMaintenanceService",
    "LibraryScanOrchestrator",
    "MatchResult",
    "PlaylistReconciler",
    "PlaylistService",
    "ReconcileReport",
    "RelinkService",
    "RootWalk",
    "StableIdentityManager",
]
