"""Tests for ArtworkBackfillService."""

from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from songvault.application.services.artwork_backfill_service import (
    ArtworkBackfillService,
)
from songvault.config import ArtworkSettings
from songvault.domain.entities import UNKNOWN_ALBUM, UNKNOWN_ARTIST
from songvault.infrastructure.persistence.repositories import CatalogRepository

from conftest import make_entry


@pytest.fixture
def resolver() -> AsyncMock:
    mock = AsyncMock()
    mock.resolve_album_art.side_effect = lambda artist, album: f"/art/{artist}-{album}.jpg"
    mock.resolve_artist_image.side_effect = lambda artist: f"/art/{artist}.jpg"
    return mock


class TestArtworkBackfill:
    """Tests for backfill()."""

    async def test_one_lookup_per_album_and_artist(
        self, session: AsyncSession, resolver: AsyncMock
    ) -> None:
        catalog = CatalogRepository(session)
        for index in range(3):
            await catalog.add(make_entry(f"/opera/{index}.flac", title=f"Song {index}"))
        await catalog.add(make_entry("/jazz/1.flac", title="Mustapha", album="Jazz"))

        service = ArtworkBackfillService(session, resolver, ArtworkSettings(batch_size=10))
        updated = await service.backfill()

        assert updated == 4
        assert resolver.resolve_album_art.await_count == 2
        resolver.resolve_artist_image.assert_awaited_once_with("Queen")
        entry = await catalog.get_by_path("/jazz/1.flac")
        assert entry.album_cover == "/art/Queen-Jazz.jpg"
        assert entry.artist_image == "/art/Queen.jpg"

    async def test_skips_unknown_artist_and_unknown_album_lookup(
        self, session: AsyncSession, resolver: AsyncMock
    ) -> None:
        catalog = CatalogRepository(session)
        await catalog.add(make_entry("/a/1.flac", artist=UNKNOWN_ARTIST))
        await catalog.add(make_entry("/a/2.flac", album=UNKNOWN_ALBUM))

        updated = await ArtworkBackfillService(session, resolver, ArtworkSettings()).backfill()

        assert updated == 1
        resolver.resolve_album_art.assert_not_awaited()
        entry = await catalog.get_by_path("/a/2.flac")
        assert entry.album_cover is None
        assert entry.artist_image == "/art/Queen.jpg"

    async def test_existing_artwork_is_kept(
        self, session: AsyncSession, resolver: AsyncMock
    ) -> None:
        catalog = CatalogRepository(session)
        await catalog.add(make_entry("/a/1.flac", album_cover="/local/cover.jpg"))

        await ArtworkBackfillService(session, resolver, ArtworkSettings()).backfill()

        entry = await catalog.get_by_path("/a/1.flac")
        assert entry.album_cover == "/local/cover.jpg"
        assert entry.artist_image == "/art/Queen.jpg"
        resolver.resolve_album_art.assert_not_awaited()

    async def test_batches_pause_between_groups(
        self, session: AsyncSession, resolver: AsyncMock
    ) -> None:
        catalog = CatalogRepository(session)
        for album in ("A", "B", "C"):
            await catalog.add(make_entry(f"/{album}/1.flac", album=album))
        settings = ArtworkSettings(batch_size=1, batch_pause_seconds=2.5)

        with patch(
            "songvault.application.services.artwork_backfill_service.asyncio.sleep",
            new_callable=AsyncMock,
        ) as sleep:
            await ArtworkBackfillService(session, resolver, settings).backfill()

        assert sleep.await_count == 2
        sleep.assert_awaited_with(2.5)

    async def test_failed_group_does_not_stop_others(
        self, session: AsyncSession, resolver: AsyncMock
    ) -> None:
        catalog = CatalogRepository(session)
        await catalog.add(make_entry("/a/1.flac", artist="Broken"))
        await catalog.add(make_entry("/b/1.flac"))

        async def album_art(artist: str, album: str) -> str:
            if artist == "Broken":
                raise RuntimeError("boom")
            return "/art/cover.jpg"

        resolver.resolve_album_art.side_effect = album_art

        updated = await ArtworkBackfillService(session, resolver, ArtworkSettings()).backfill()

        assert updated == 1
        assert (await catalog.get_by_path("/b/1.flac")).album_cover == "/art/cover.jpg"

    async def test_unavailable_entries_are_ignored(
        self, session: AsyncSession, resolver: AsyncMock
    ) -> None:
        await CatalogRepository(session).add(make_entry("/a/1.flac", is_available=False))

        assert await ArtworkBackfillService(session, resolver, ArtworkSettings()).backfill() == 0
        resolver.resolve_album_art.assert_not_awaited()
