"""Shared fixtures.

Hey future me - every test gets its OWN file-backed SQLite database under tmp_path (not
:memory: - the single-connection pool and SAVEPOINT handling should be exercised exactly
like production). Audio files are just bytes on disk; their "tags" come from
FakeMetadataExtractor, keyed by absolute path.
"""

from collections.abc import AsyncGenerator, Callable
from pathlib import Path

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from songvault.application.services.library_scanner_service import (
    LibraryScanOrchestrator,
)
from songvault.config import (
    ArtworkSettings,
    DatabaseSettings,
    LibrarySettings,
    Settings,
)
from songvault.domain.entities import CatalogEntry
from songvault.domain.exceptions import MetadataExtractionException
from songvault.domain.ports import IMetadataExtractor
from songvault.domain.value_objects.metadata import TagMetadata
from songvault.domain.value_objects.stable_identity import compute_stable_id
from songvault.infrastructure.persistence.database import Database


class FakeMetadataExtractor(IMetadataExtractor):
    """In-memory tag source: path -> TagMetadata (or an exception to raise)."""

    def __init__(self) -> None:
        self.tags: dict[str, TagMetadata | Exception] = {}
        self.calls: list[str] = []

    def set(self, path: Path | str, **fields: object) -> None:
        self.tags[str(path)] = TagMetadata.from_raw(**fields)  # type: ignore[arg-type]

    def fail(self, path: Path | str, reason: str = "corrupt header") -> None:
        self.tags[str(path)] = MetadataExtractionException(str(path), reason)

    async def extract(self, file_path: str) -> TagMetadata:
        self.calls.append(file_path)
        value = self.tags.get(file_path, TagMetadata())
        if isinstance(value, Exception):
            raise value
        return value


def write_audio(path: Path, size: int = 1000) -> Path:
    """Create a dummy audio file of the given size (parents included)."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(b"\0" * size)
    return path


def make_entry(
    file_path: Path | str,
    artist: str = "Queen",
    title: str = "Bohemian Rhapsody",
    album: str = "A Night at the Opera",
    **fields: object,
) -> CatalogEntry:
    """Catalog entry built the way a first insertion would build it."""
    return CatalogEntry(
        stable_id=compute_stable_id(artist, title, album),
        file_path=str(file_path),
        title=title,
        artist=artist,
        album=album,
        original_artist=artist,
        original_title=title,
        original_album=album,
        original_file_path=str(file_path),
        **fields,  # type: ignore[arg-type]
    )


@pytest.fixture
def library_root(tmp_path: Path) -> Path:
    root = tmp_path / "Music_lib"
    root.mkdir()
    return root


@pytest.fixture
def make_settings(tmp_path: Path, library_root: Path) -> Callable[..., Settings]:
    def _make(**library: object) -> Settings:
        library.setdefault("scan_paths", [library_root])
        return Settings(
            database=DatabaseSettings(url=f"sqlite+aiosqlite:///{tmp_path / 'catalog.db'}"),
            library=LibrarySettings(**library),
            artwork=ArtworkSettings(enabled=False, cache_path=tmp_path / "artwork"),
        )

    return _make


@pytest.fixture
async def db(make_settings: Callable[..., Settings]) -> AsyncGenerator[Database, None]:
    database = Database(make_settings())
    await database.create_tables()
    yield database
    await database.close()


@pytest.fixture
async def session(db: Database) -> AsyncGenerator[AsyncSession, None]:
    async with db.session_scope() as session:
        yield session


@pytest.fixture
def extractor() -> FakeMetadataExtractor:
    return FakeMetadataExtractor()


@pytest.fixture
def make_orchestrator(
    db: Database,
    make_settings: Callable[..., Settings],
    extractor: FakeMetadataExtractor,
) -> Callable[..., LibraryScanOrchestrator]:
    def _make(**library: object) -> LibraryScanOrchestrator:
        return LibraryScanOrchestrator(db, make_settings(**library), extractor)

    return _make
