"""Tests for RelinkService - relinks, suggestions and availability."""

from pathlib import Path

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from songvault.application.services.relink_service import RelinkService
from songvault.domain.entities import CatalogEntry, HistoryAction, RelinkConfidence
from songvault.domain.exceptions import (
    EntityNotFoundException,
    InvalidStateException,
    ValidationException,
)
from songvault.domain.value_objects.path_identity import PathIdentityInference
from songvault.infrastructure.persistence.repositories import (
    CatalogRepository,
    RelinkSuggestionRepository,
    SongHistoryRepository,
)

from conftest import FakeMetadataExtractor, make_entry, write_audio


@pytest.fixture
def service(session: AsyncSession, extractor: FakeMetadataExtractor) -> RelinkService:
    inference = PathIdentityInference.from_root_names(["Music_lib"], ["organized"])
    return RelinkService(session, extractor=extractor, inference=inference)


@pytest.fixture
async def stored(session: AsyncSession, library_root: Path) -> CatalogEntry:
    path = write_audio(library_root / "Queen" / "A Night at the Opera" / "Bohemian Rhapsody.flac")
    return await CatalogRepository(session).add(make_entry(path, file_size=1000))


@pytest.fixture
def moved_to(library_root: Path) -> Path:
    return write_audio(library_root / "Queen" / "Greatest Hits" / "Bohemian Rhapsody.flac", 2000)


class TestRelink:
    """Tests for relink() and suggestions."""

    async def test_relink_preserves_identity_and_writes_history(
        self,
        session: AsyncSession,
        service: RelinkService,
        stored: CatalogEntry,
        moved_to: Path,
    ) -> None:
        old_path = stored.file_path

        await service.relink(stored, str(moved_to), file_size=2000)

        entry = await CatalogRepository(session).get_by_id(stored.id)
        assert entry.file_path == str(moved_to)
        assert entry.times_relinked == 1
        assert entry.original_file_path == old_path
        events = await SongHistoryRepository(session).list_for(stored.stable_id)
        assert events[-1].action == HistoryAction.RELINKED
        assert events[-1].old_file_path == old_path
        assert events[-1].new_file_path == str(moved_to)

    async def test_suggestion_is_one_per_stable_id(
        self,
        session: AsyncSession,
        service: RelinkService,
        stored: CatalogEntry,
        moved_to: Path,
    ) -> None:
        await service.suggest_relink(stored, "/elsewhere/a.flac", RelinkConfidence.MEDIUM)
        await service.suggest_relink(stored, str(moved_to), RelinkConfidence.HIGH)

        suggestions = await service.list_suggestions()
        assert len(suggestions) == 1
        assert suggestions[0].suggested_path == str(moved_to)
        assert suggestions[0].confidence == RelinkConfidence.HIGH
        entry = await CatalogRepository(session).get_by_id(stored.id)
        assert entry.is_available is False
        assert entry.file_path == stored.file_path

    async def test_relink_clears_pending_suggestion(
        self,
        session: AsyncSession,
        service: RelinkService,
        stored: CatalogEntry,
        moved_to: Path,
    ) -> None:
        await service.suggest_relink(stored, str(moved_to))

        await service.relink(stored, str(moved_to))

        assert await RelinkSuggestionRepository(session).get(stored.stable_id) is None

    async def test_confirm_suggestion(
        self,
        session: AsyncSession,
        service: RelinkService,
        extractor: FakeMetadataExtractor,
        stored: CatalogEntry,
        moved_to: Path,
    ) -> None:
        extractor.set(moved_to, title="Bohemian Rhapsody", artist="Queen", year=1975)
        await service.suggest_relink(stored, str(moved_to))

        entry = await service.confirm_suggestion(stored.stable_id)

        assert entry.file_path == str(moved_to)
        assert entry.album == "Greatest Hits"
        assert entry.year == 1975
        assert entry.file_size == 2000
        assert entry.is_available
        assert await service.list_suggestions() == []

    async def test_confirm_without_suggestion(self, service: RelinkService) -> None:
        with pytest.raises(EntityNotFoundException):
            await service.confirm_suggestion("song_0123abcd")

    async def test_confirm_when_suggested_file_vanished(
        self, service: RelinkService, stored: CatalogEntry, library_root: Path
    ) -> None:
        await service.suggest_relink(stored, str(library_root / "gone.flac"))
        with pytest.raises(InvalidStateException):
            await service.confirm_suggestion(stored.stable_id)

    async def test_dismiss_suggestion(
        self, service: RelinkService, stored: CatalogEntry, moved_to: Path
    ) -> None:
        await service.suggest_relink(stored, str(moved_to))
        assert await service.dismiss_suggestion(stored.stable_id) is True
        assert await service.dismiss_suggestion(stored.stable_id) is False


class TestManualRelink:
    """Tests for manual_relink()."""

    async def test_rejects_relative_path(
        self, service: RelinkService, stored: CatalogEntry
    ) -> None:
        with pytest.raises(ValidationException):
            await service.manual_relink(stored.stable_id, "Queen/x.flac")

    async def test_rejects_missing_file(
        self, service: RelinkService, stored: CatalogEntry, library_root: Path
    ) -> None:
        with pytest.raises(ValidationException):
            await service.manual_relink(stored.stable_id, str(library_root / "nope.flac"))

    async def test_unknown_stable_id(self, service: RelinkService, moved_to: Path) -> None:
        with pytest.raises(EntityNotFoundException):
            await service.manual_relink("song_0123abcd", str(moved_to))

    async def test_unreadable_tags_still_relink(
        self,
        service: RelinkService,
        extractor: FakeMetadataExtractor,
        stored: CatalogEntry,
        moved_to: Path,
    ) -> None:
        extractor.fail(moved_to)

        entry = await service.manual_relink(stored.stable_id, str(moved_to))

        assert entry.file_path == str(moved_to)
        assert entry.album == "A Night at the Opera"
        assert entry.file_size == 2000


class TestAvailability:
    """Tests for availability bookkeeping and the relink history view."""

    async def test_mark_unavailable_is_idempotent(
        self, service: RelinkService, stored: CatalogEntry
    ) -> None:
        assert await service.mark_unavailable(stored) is True
        assert await service.mark_unavailable(stored) is False
        assert stored.last_availability_check is not None

    async def test_check_availability(
        self,
        session: AsyncSession,
        service: RelinkService,
        stored: CatalogEntry,
    ) -> None:
        await CatalogRepository(session).add(make_entry("/gone/x.flac", title="Gone"))

        stats = await service.check_availability()

        assert stats == {"checked": 2, "available": 1, "unavailable": 1, "changed": 1}
        unavailable = await CatalogRepository(session).list_unavailable()
        assert [e.title for e in unavailable] == ["Gone"]

    async def test_relink_history(
        self, service: RelinkService, stored: CatalogEntry, moved_to: Path
    ) -> None:
        await service.mark_unavailable(stored)
        await service.relink(stored, str(moved_to))

        history = await service.get_relink_history(stored.stable_id)

        assert history["original"]["path"] == stored.original_file_path
        assert history["current"]["path"] == str(moved_to)
        assert history["times_relinked"] == 1
        assert history["is_available"] is True
        assert [e.action for e in history["events"]] == [
            HistoryAction.MARKED_UNAVAILABLE,
            HistoryAction.RELINKED,
        ]

    async def test_history_of_unknown_song(self, service: RelinkService) -> None:
        with pytest.raises(EntityNotFoundException):
            await service.get_relink_history("song_0123abcd")
