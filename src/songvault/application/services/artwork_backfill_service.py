"""Artwork backfill for catalog entries without images.

Hey future me - this runs AFTER a scan pass, in its own session! It's enrichment only:
a failed lookup never touches catalog correctness and never fails the scan.
Entries are grouped by (artist, album) so one album with 14 tracks costs ONE lookup, and
groups are processed in small batches with a pause in between (rate limit courtesy for the
public API behind the resolver).
"""

import asyncio
import logging
from collections import defaultdict

from sqlalchemy.ext.asyncio import AsyncSession

from songvault.config import ArtworkSettings
from songvault.domain.entities import UNKNOWN_ALBUM, UNKNOWN_ARTIST, CatalogEntry
from songvault.domain.ports import IArtworkResolver
from songvault.infrastructure.persistence.repositories import CatalogRepository

logger = logging.getLogger(__name__)


class ArtworkBackfillService:
    """Resolves missing album covers and artist images through an IArtworkResolver."""

    def __init__(
        self,
        session: AsyncSession,
        resolver: IArtworkResolver,
        settings: ArtworkSettings,
    ) -> None:
        self.catalog = CatalogRepository(session)
        self.resolver = resolver
        self.settings = settings

    async def backfill(self) -> int:
        """Fill in missing artwork. Returns the number of entries updated."""
        groups: dict[tuple[str, str], list[CatalogEntry]] = defaultdict(list)
        for entry in await self.catalog.list_missing_artwork():
            if entry.artist == UNKNOWN_ARTIST:
                continue
            groups[(entry.artist, entry.album)].append(entry)

        if not groups:
            return 0

        keys = list(groups)
        batch_size = max(1, self.settings.batch_size)
        artist_cache: dict[str, str | None] = {}
        updated = 0

        logger.info(f"Artwork backfill: {len(keys)} album group(s) to resolve")
        for start in range(0, len(keys), batch_size):
            if start > 0:
                await asyncio.sleep(self.settings.batch_pause_seconds)
            for artist, album in keys[start : start + batch_size]:
                try:
                    updated += await self._fill_group(
                        artist, album, groups[(artist, album)], artist_cache
                    )
                except Exception as e:
                    logger.warning(f"Artwork backfill failed for {artist} - {album}: {e}")

        logger.info(f"Artwork backfill updated {updated} entries")
        return updated

    async def _fill_group(
        self,
        artist: str,
        album: str,
        entries: list[CatalogEntry],
        artist_cache: dict[str, str | None],
    ) -> int:
        cover: str | None = None
        if album != UNKNOWN_ALBUM and any(e.album_cover is None for e in entries):
            cover = await self.resolver.resolve_album_art(artist, album)

        image: str | None = None
        if any(e.artist_image is None for e in entries):
            if artist not in artist_cache:
                artist_cache[artist] = await self.resolver.resolve_artist_image(artist)
            image = artist_cache[artist]

        updated = 0
        for entry in entries:
            changed = False
            if entry.album_cover is None and cover:
                entry.album_cover = cover
                changed = True
            if entry.artist_image is None and image:
                entry.artist_image = image
                changed = True
            if changed:
                await self.catalog.update(entry)
                updated += 1
        return updated
