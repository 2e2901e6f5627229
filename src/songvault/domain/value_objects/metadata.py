"""Tag metadata, folder identity and the precedence rule that merges them.

Two explicitly named sources feed every catalog write:

- TagMetadata     - what the Metadata Extractor read from the file's embedded tags
- FolderIdentity  - what PathIdentityInference derived from the folder hierarchy

merge_metadata() is the ONLY place that decides which one wins:

    current artist/album  = folder -> tag -> existing row -> placeholder
    current title         = tag -> filename stem
    original_* fields     = tag -> current (folder/placeholder)

Folder wins for the current values because users organize folders deliberately,
tags win for the originals because they're what the file claimed to be at first sight.
"""

from collections.abc import Iterable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from songvault.domain.entities import (
    PLACEHOLDER_VALUES,
    UNKNOWN_ALBUM,
    UNKNOWN_ARTIST,
    UNKNOWN_TITLE,
    CatalogEntry,
)
from songvault.domain.value_objects.path_identity import FolderIdentity


def _clean(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


@dataclass(frozen=True)
class TagMetadata:
    """Embedded tag data; every field may be missing."""

    title: str | None = None
    artist: str | None = None
    album: str | None = None
    year: int | None = None
    genre: tuple[str, ...] = field(default_factory=tuple)
    duration: int | None = None
    bitrate: int | None = None

    @classmethod
    def from_raw(
        cls,
        title: Any = None,
        artist: Any = None,
        album: Any = None,
        year: Any = None,
        genre: Iterable[Any] | str | None = None,
        duration: Any = None,
        bitrate: Any = None,
    ) -> "TagMetadata":
        """Build from loosely typed extractor output, dropping junk values."""
        if isinstance(genre, str):
            genres: Iterable[Any] = [genre]
        else:
            genres = genre or []
        return cls(
            title=_clean(title),
            artist=_clean(artist),
            album=_clean(album),
            year=_parse_year(year),
            genre=tuple(g for g in (_clean(x) for x in genres) if g),
            duration=_parse_int(duration),
            bitrate=_parse_int(bitrate),
        )

    @property
    def genre_text(self) -> str | None:
        return ", ".join(self.genre) if self.genre else None


def _parse_int(value: Any) -> int | None:
    if value is None or value == "":
        return None
    try:
        number = int(round(float(value)))
    except (TypeError, ValueError):
        return None
    return number if number > 0 else None


def _parse_year(value: Any) -> int | None:
    # Tags carry "1975", "1975-10-31" or 1975 - only the leading 4 digits matter.
    text = _clean(value)
    if text is None or len(text) < 4 or not text[:4].isdigit():
        return None
    year = int(text[:4])
    return year if year > 0 else None


@dataclass(frozen=True)
class MergedMetadata:
    """Result of the precedence rule, ready to be written to a catalog row."""

    title: str
    artist: str
    album: str
    original_title: str
    original_artist: str
    original_album: str
    year: int | None = None
    genre: str | None = None
    duration: int | None = None
    bitrate: int | None = None
    # True when the title came from a real tag (not the filename stem). The matcher
    # only attempts identity stages when it has a real title AND an artist.
    has_tag_title: bool = False
    tag_artist: str | None = None

    def completeness(self) -> int:
        return metadata_completeness(
            title=self.title,
            artist=self.artist,
            album=self.album,
            year=self.year,
            genre=self.genre,
            duration=self.duration,
            bitrate=self.bitrate,
        )


def merge_metadata(
    file_path: str,
    tags: TagMetadata,
    folder: FolderIdentity,
    existing: CatalogEntry | None = None,
) -> MergedMetadata:
    """Apply the documented precedence rule to the two sources."""
    title = tags.title or Path(file_path).stem or UNKNOWN_TITLE
    artist = (
        folder.artist
        or tags.artist
        or (existing.artist if existing else None)
        or UNKNOWN_ARTIST
    )
    album = (
        folder.album
        or tags.album
        or (existing.album if existing else None)
        or UNKNOWN_ALBUM
    )

    return MergedMetadata(
        title=title,
        artist=artist,
        album=album,
        original_title=tags.title or title,
        original_artist=tags.artist or artist,
        original_album=tags.album or album,
        year=tags.year,
        genre=tags.genre_text,
        duration=tags.duration,
        bitrate=tags.bitrate,
        has_tag_title=tags.title is not None,
        tag_artist=tags.artist,
    )


def _is_present(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        stripped = value.strip()
        return bool(stripped) and stripped not in PLACEHOLDER_VALUES
    if isinstance(value, int | float):
        return value > 0
    return True


def metadata_completeness(**fields: Any) -> int:
    """Count present, non-placeholder values among the given metadata fields.

    The replacement policy passes exactly title/artist/album/year/genre/duration/bitrate.
    """
    return sum(1 for value in fields.values() if _is_present(value))


def entry_completeness(entry: CatalogEntry) -> int:
    """Completeness score of an existing catalog row."""
    return metadata_completeness(
        title=entry.title,
        artist=entry.artist,
        album=entry.album,
        year=entry.year,
        genre=entry.genre,
        duration=entry.duration,
        bitrate=entry.bitrate,
    )
