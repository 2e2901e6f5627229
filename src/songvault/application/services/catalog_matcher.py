"""Catalog matcher: exact path, then normalized artist/title, then fuzzy substring.

Hey future me - no scoring, no ranking! Each stage returns its FIRST hit (primary rows first,
then oldest id) and the stages run in strict priority order. That's a known limitation on
libraries with many similarly named tracks - keep it predictable rather than clever.
"""

import logging
from dataclasses import dataclass

from songvault.domain.entities import CatalogEntry, MatchBasis
from songvault.domain.ports import ICatalogRepository
from songvault.domain.value_objects.metadata import MergedMetadata

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MatchResult:
    """Zero-or-one catalog row plus the stage that found it."""

    entry: CatalogEntry | None = None
    basis: MatchBasis | None = None

    @property
    def found(self) -> bool:
        return self.entry is not None


NO_MATCH = MatchResult()


class CatalogMatcher:
    """Finds the catalog row a discovered file corresponds to."""

    def __init__(self, catalog: ICatalogRepository) -> None:
        self._catalog = catalog

    async def match(self, file_path: str, metadata: MergedMetadata) -> MatchResult:
        """Run all three stages."""
        result = await self.match_path(file_path)
        if result.found:
            return result
        return await self.match_identity(metadata)

    async def match_path(self, file_path: str) -> MatchResult:
        """Stage 1 - exact file_path."""
        entry = await self._catalog.get_by_path(file_path)
        return MatchResult(entry, MatchBasis.EXACT_PATH) if entry else NO_MATCH

    async def match_identity(self, metadata: MergedMetadata) -> MatchResult:
        """Stages 2 and 3 - only when the file has a real title tag and an artist."""
        if not metadata.has_tag_title:
            return NO_MATCH

        # Folder artist and tag artist may differ ("Queen" folder, "Queen & David Bowie" tag)
        artists = list(
            dict.fromkeys(a for a in (metadata.tag_artist, metadata.artist) if a)
        )
        if not artists:
            return NO_MATCH

        entry = await self._catalog.find_by_artist_title(artists, metadata.title)
        if entry is not None:
            return MatchResult(entry, MatchBasis.FINGERPRINT)

        for artist in artists:
            entry = await self._catalog.find_fuzzy(artist, metadata.title)
            if entry is not None:
                logger.debug(
                    f"Fuzzy match for '{artist} - {metadata.title}': "
                    f"{entry.artist} - {entry.title} ({entry.file_path})"
                )
                return MatchResult(entry, MatchBasis.FUZZY)

        return NO_MATCH
