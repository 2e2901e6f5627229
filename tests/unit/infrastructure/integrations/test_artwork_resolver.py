"""Tests for DeezerArtworkResolver."""

import re
from collections.abc import AsyncGenerator
from pathlib import Path

import pytest
from pytest_httpx import HTTPXMock

from songvault.config import ArtworkSettings
from songvault.infrastructure.integrations.artwork_resolver import (
    DeezerArtworkResolver,
    cache_slug,
)

ALBUM_SEARCH = re.compile(r"https://api\.deezer\.com/search/album\?.*")
ARTIST_SEARCH = re.compile(r"https://api\.deezer\.com/search/artist\?.*")


@pytest.fixture
async def resolver(tmp_path: Path) -> AsyncGenerator[DeezerArtworkResolver, None]:
    settings = ArtworkSettings(cache_path=tmp_path / "artwork")
    resolver = DeezerArtworkResolver(settings)
    yield resolver
    await resolver.close()


class TestCacheSlug:
    """Tests for cache_slug()."""

    def test_readable_and_safe(self) -> None:
        slug = cache_slug("AC/DC", "Back in Black")
        assert slug.startswith("ac-dc-back-in-black-")
        assert "/" not in slug

    def test_case_insensitive_and_distinct(self) -> None:
        assert cache_slug("Queen", "Jazz") == cache_slug("queen", "JAZZ")
        assert cache_slug("Queen", "Jazz") != cache_slug("Queen", "Innuendo")

    def test_empty_names(self) -> None:
        assert cache_slug("", "").startswith("unknown-")


class TestDeezerArtworkResolver:
    """Lookups through a mocked Deezer API."""

    async def test_album_art_downloaded_and_cached(
        self, resolver: DeezerArtworkResolver, httpx_mock: HTTPXMock, tmp_path: Path
    ) -> None:
        httpx_mock.add_response(
            url=ALBUM_SEARCH,
            json={"data": [{"cover_xl": "https://cdn.deezer.test/cover.jpg"}]},
        )
        httpx_mock.add_response(url="https://cdn.deezer.test/cover.jpg", content=b"jpeg")

        first = await resolver.resolve_album_art("Queen", "Jazz")
        second = await resolver.resolve_album_art("Queen", "Jazz")

        assert first is not None
        assert first == second
        assert Path(first).read_bytes() == b"jpeg"
        assert Path(first).is_relative_to(tmp_path / "artwork" / "albums")
        assert len(httpx_mock.get_requests()) == 2

        search = httpx_mock.get_requests()[0]
        assert search.url.params["q"] == 'artist:"Queen" album:"Jazz"'

    async def test_artist_image(
        self, resolver: DeezerArtworkResolver, httpx_mock: HTTPXMock
    ) -> None:
        httpx_mock.add_response(
            url=ARTIST_SEARCH,
            json={"data": [{"picture_big": "https://cdn.deezer.test/queen.jpg"}]},
        )
        httpx_mock.add_response(url="https://cdn.deezer.test/queen.jpg", content=b"img")

        path = await resolver.resolve_artist_image("Queen")

        assert path is not None
        assert "/artists/" in path

    async def test_no_results(
        self, resolver: DeezerArtworkResolver, httpx_mock: HTTPXMock
    ) -> None:
        httpx_mock.add_response(url=ARTIST_SEARCH, json={"data": []})

        assert await resolver.resolve_artist_image("Nobody") is None

    async def test_http_error_is_swallowed(
        self, resolver: DeezerArtworkResolver, httpx_mock: HTTPXMock
    ) -> None:
        httpx_mock.add_response(url=ALBUM_SEARCH, status_code=500)

        assert await resolver.resolve_album_art("Queen", "Jazz") is None

    async def test_failed_download_caches_nothing(
        self, resolver: DeezerArtworkResolver, httpx_mock: HTTPXMock, tmp_path: Path
    ) -> None:
        httpx_mock.add_response(
            url=ALBUM_SEARCH,
            json={"data": [{"cover_xl": "https://cdn.deezer.test/cover.jpg"}]},
        )
        httpx_mock.add_response(url="https://cdn.deezer.test/cover.jpg", status_code=404)

        assert await resolver.resolve_album_art("Queen", "Jazz") is None
        assert not (tmp_path / "artwork" / "albums").exists()
