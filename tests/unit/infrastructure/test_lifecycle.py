"""Tests for process startup/shutdown wiring."""

import logging
from collections.abc import Callable, Generator
from pathlib import Path

import pytest

from songvault.application.workers.library_scan_worker import LibraryScanWorker
from songvault.config import DatabaseSettings, Settings
from songvault.infrastructure.lifecycle import _sqlite_db_path, lifespan

from conftest import write_audio


@pytest.fixture(autouse=True)
def restore_root_logger() -> Generator[None, None, None]:
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


class TestSqliteDbPath:
    """Tests for _sqlite_db_path()."""

    @pytest.mark.parametrize(
        ("url", "expected"),
        [
            ("sqlite+aiosqlite:///./songvault.db", Path("./songvault.db")),
            ("sqlite+aiosqlite:////data/songvault.db", Path("/data/songvault.db")),
            ("sqlite+aiosqlite:///:memory:", None),
            ("postgresql+asyncpg://u:p@db/songvault", None),
        ],
    )
    def test_paths(self, url: str, expected: Path | None) -> None:
        settings = Settings(database=DatabaseSettings(url=url))
        assert _sqlite_db_path(settings) == expected


class TestLifespan:
    """Tests for lifespan()."""

    async def test_full_pass_through_lifespan(
        self,
        tmp_path: Path,
        library_root: Path,
        make_settings: Callable[..., Settings],
    ) -> None:
        write_audio(library_root / "Queen" / "Jazz" / "Mustapha.wav", 10)
        settings = make_settings()
        db_file = tmp_path / "nested" / "state" / "catalog.db"
        settings.database.url = f"sqlite+aiosqlite:///{db_file}"

        async with lifespan(settings) as worker:
            assert isinstance(worker, LibraryScanWorker)
            summary = await worker.run_scan()

        assert db_file.exists()
        # Ten zero bytes are no WAV: the real extractor reports a per-file error
        assert summary["scan"]["scanned"] == 1
        assert summary["scan"]["errors"] == 1
        assert summary["scan"]["added"] == 0
