"""Process lifecycle: startup wiring and shutdown cleanup.

The lifespan context manager builds every long-lived collaborator ONCE (database, tag
extractor, artwork resolver, orchestrator, worker), hands the worker to the caller and
tears everything down again on exit.
"""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from pathlib import Path

from sqlalchemy.engine import make_url

from songvault.application.services.library_scanner_service import (
    LibraryScanOrchestrator,
)
from songvault.application.workers.library_scan_worker import LibraryScanWorker
from songvault.config import Settings, get_settings
from songvault.infrastructure.integrations import (
    DeezerArtworkResolver,
    MutagenMetadataExtractor,
)
from songvault.infrastructure.observability import configure_logging
from songvault.infrastructure.persistence import Database

logger = logging.getLogger(__name__)


def _sqlite_db_path(settings: Settings) -> Path | None:
    url = make_url(settings.database.url)
    if not url.drivername.startswith("sqlite") or not url.database:
        return None
    if url.database == ":memory:":
        return None
    return Path(url.database)


# Hey future me, this creates the SQLite parent directory BEFORE the engine connects! SQLite
# also writes -journal/-wal files next to the .db, so an unwritable directory fails here with
# a clear message instead of a cryptic OperationalError on the first scan.
def _ensure_sqlite_directory(settings: Settings) -> None:
    db_path = _sqlite_db_path(settings)
    if db_path is None:
        return
    try:
        db_path.parent.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise RuntimeError(
            f"Unable to create SQLite database directory '{db_path.parent}': {exc}. "
            "Update SONGVAULT_DATABASE__URL or adjust directory permissions."
        ) from exc
    logger.debug(f"Ensured SQLite parent directory exists: {db_path.parent}")


@asynccontextmanager
async def lifespan(
    settings: Settings | None = None,
) -> AsyncGenerator[LibraryScanWorker, None]:
    """Start the engine and yield its scan worker.

    Handles:
    - Logging configuration
    - Database initialization (tables are created if missing)
    - Tag extractor / artwork resolver / orchestrator wiring
    - Startup scan scheduling (if enabled)
    - Resource cleanup
    """
    settings = settings or get_settings()
    configure_logging(
        log_level=settings.observability.log_level,
        json_format=settings.observability.log_json_format,
        app_name=settings.app_name,
    )
    logger.info(f"Starting {settings.app_name} ({settings.app_env})")

    _ensure_sqlite_directory(settings)
    db = Database(settings)
    resolver: DeezerArtworkResolver | None = None
    worker: LibraryScanWorker | None = None
    try:
        await db.create_tables()
        logger.info(f"Database initialized: {settings.database.url}")

        if settings.artwork.enabled:
            resolver = DeezerArtworkResolver(settings.artwork)

        orchestrator = LibraryScanOrchestrator(
            db,
            settings,
            MutagenMetadataExtractor(),
            artwork_resolver=resolver,
        )
        worker = LibraryScanWorker(db, settings, orchestrator)
        await worker.start()

        yield worker
    finally:
        logger.info("Shutting down")
        if worker is not None:
            await worker.stop()
        if resolver is not None:
            await resolver.close()
        await db.close()
