"""Artwork resolver backed by the public Deezer search API.

Hey future me - Deezer needs NO auth for search and images, so it's the default resolver.
FLOW:
    ArtworkBackfillService
        └─► DeezerArtworkResolver.resolve_album_art(artist, album)
                ├─► cache hit?  artwork_cache/albums/<slug>.jpg → return path
                ├─► GET /search/album?q=artist:"…" album:"…" → data[0].cover_xl
                └─► download → artwork_cache/albums/<slug>.jpg → return path

Contract: NEVER raises. Any network/parse/disk failure is logged and becomes None -
artwork is enrichment, not catalog correctness.
"""

import asyncio
import hashlib
import logging
import re
from pathlib import Path
from typing import Any

import httpx

from songvault.config import ArtworkSettings
from songvault.domain.ports import IArtworkResolver

logger = logging.getLogger(__name__)

_UNSAFE_CHARS = re.compile(r"[^a-z0-9]+")


def cache_slug(*parts: str) -> str:
    """Filesystem-safe, collision-resistant cache file stem for artist/album names."""
    joined = "_".join(p.strip().lower() for p in parts)
    readable = _UNSAFE_CHARS.sub("-", joined).strip("-")[:60] or "unknown"
    digest = hashlib.md5(joined.encode("utf-8"), usedforsecurity=False).hexdigest()[:8]
    return f"{readable}-{digest}"


class DeezerArtworkResolver(IArtworkResolver):
    """Looks up artwork on Deezer and caches it on disk."""

    def __init__(
        self, settings: ArtworkSettings, client: httpx.AsyncClient | None = None
    ) -> None:
        self._settings = settings
        self._client = client
        self._owns_client = client is None
        self._cache_root = Path(settings.cache_path)

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self._settings.deezer_api_base,
                timeout=self._settings.request_timeout,
                follow_redirects=True,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client if this resolver created it."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def resolve_album_art(self, artist: str, album: str) -> str | None:
        target = self._cache_root / "albums" / f"{cache_slug(artist, album)}.jpg"
        if target.exists():
            return str(target)

        try:
            item = await self._search_first(
                "/search/album", f'artist:"{artist}" album:"{album}"'
            )
            url = (item or {}).get("cover_xl") or (item or {}).get("cover_big")
            if not url:
                logger.debug("No Deezer cover for %s - %s", artist, album)
                return None
            return await self._download(url, target)
        except Exception as e:
            logger.warning("Album art lookup failed for %s - %s: %s", artist, album, e)
            return None

    async def resolve_artist_image(self, artist: str) -> str | None:
        target = self._cache_root / "artists" / f"{cache_slug(artist)}.jpg"
        if target.exists():
            return str(target)

        try:
            item = await self._search_first("/search/artist", artist)
            url = (item or {}).get("picture_xl") or (item or {}).get("picture_big")
            if not url:
                logger.debug("No Deezer picture for %s", artist)
                return None
            return await self._download(url, target)
        except Exception as e:
            logger.warning("Artist image lookup failed for %s: %s", artist, e)
            return None

    async def _search_first(self, endpoint: str, query: str) -> dict[str, Any] | None:
        client = await self._get_client()
        response = await client.get(endpoint, params={"q": query, "limit": 1})
        response.raise_for_status()
        data = response.json().get("data") or []
        return data[0] if data else None

    async def _download(self, url: str, target: Path) -> str:
        client = await self._get_client()
        response = await client.get(url)
        response.raise_for_status()

        def _write() -> None:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(response.content)

        await asyncio.to_thread(_write)
        logger.debug("Cached artwork %s -> %s", url, target)
        return str(target)
