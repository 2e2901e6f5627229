"""Folder-based identity inference and provenance classification.

Hey future me - this derives (artist, album) from WHERE a file lives, not from its tags.
Users physically organize files deliberately, so the folder hierarchy beats embedded tags
for the CURRENT artist/album. Tags still win for the frozen original_* fields (see
metadata.py for the precedence rule).

Recognized layouts (a "root" is a literal path segment name):

    .../<library root>/<Artist>/<Album>/<file>              e.g. /mnt/UNO/Music_lib/Queen/...
    .../<staging root>/<Artist>/<Album>/<file>              e.g. /srv/downloads/organized/Queen/...

The segment right after the root is the artist, the parent of the file is the album
(after clean_album_folder()). Staging roots are checked FIRST - a staging folder
nested inside a music folder belongs to the staging tier.

Layouts are pluggable: anything implementing LayoutConvention can be handed to
PathIdentityInference without touching the matcher or the scanner.

Usage:
    inference = PathIdentityInference.from_root_names(
        library_roots=["Music_lib", "music"], staging_roots=["organized"]
    )
    identity = inference.infer("/mnt/Music_lib/Queen/A Night at the Opera/01.flac")
    identity.artist  # "Queen"
    identity.album   # "A Night at the Opera"
"""

import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from enum import IntEnum
from pathlib import PurePath
from typing import Protocol


class ProvenanceTier(IntEnum):
    """Trust tier of the folder a file was found in. Higher value = more trusted."""

    LOW_TRUST = 0  # auto-import folders (e.g. "YouTube Music Import")
    STAGING = 1  # downloads / organized staging areas
    UNKNOWN = 1  # outside any recognized layout - same weight as staging
    MAIN_LIBRARY = 2  # organized main library


@dataclass(frozen=True)
class FolderIdentity:
    """Artist/album derived from the folder hierarchy (None = not recognized)."""

    artist: str | None = None
    album: str | None = None
    tier: ProvenanceTier = ProvenanceTier.UNKNOWN

    @property
    def is_recognized(self) -> bool:
        return self.artist is not None

    @classmethod
    def unknown(cls) -> "FolderIdentity":
        return cls()


# =============================================================================
# ALBUM FOLDER CLEANUP
# =============================================================================

# Leading year markers: "1975 - Title", "(1975) Title", "[1975] Title", "1975. Title"
LEADING_YEAR_PATTERN = re.compile(
    r"^\s*[\(\[]?(?:19|20)\d{2}[\)\]]?\s*(?:[-–—.:_]\s*)?(?=\S)"
)

# Trailing bracketed/parenthetical release tags: "(Deluxe Edition)", "[WEB] [FLAC]", "(1975)"
TRAILING_TAG_PATTERN = re.compile(r"\s*(?:\([^()]*\)|\[[^\[\]]*\]|\{[^{}]*\})\s*$")


def clean_album_folder(folder_name: str, artist: str | None = None) -> str:
    """Strip redundant decoration from an album folder name.

    Removes, in order: an "Artist - " prefix, a leading year marker, and any number of
    trailing bracketed/parenthetical tags. Falls back to the raw name if cleaning would
    leave nothing.

    Examples:
        >>> clean_album_folder("Queen - A Night at the Opera", "Queen")
        'A Night at the Opera'
        >>> clean_album_folder("1975 - A Night at the Opera")
        'A Night at the Opera'
        >>> clean_album_folder("A Night at the Opera (Deluxe Edition) [WEB] [FLAC]")
        'A Night at the Opera'
    """
    raw = folder_name.strip()
    name = raw

    if artist:
        prefix = f"{artist.strip()} - "
        if name.lower().startswith(prefix.lower()):
            name = name[len(prefix) :]

    name = LEADING_YEAR_PATTERN.sub("", name, count=1)

    previous = None
    while previous != name:
        previous = name
        name = TRAILING_TAG_PATTERN.sub("", name)

    name = name.strip(" -–—_")
    return name or raw


# =============================================================================
# LAYOUT CONVENTIONS
# =============================================================================


class LayoutConvention(Protocol):
    """A library layout that can recognize identity from path segments."""

    def infer(self, parts: Sequence[str]) -> FolderIdentity | None:
        """Return an identity if the layout matches the segments, else None."""
        ...


class RootFolderConvention:
    """<root>/<Artist>/.../<Album>/<file> below a literal root segment name."""

    def __init__(self, root_names: Iterable[str], tier: ProvenanceTier) -> None:
        self._root_names = frozenset(root_names)
        self._tier = tier

    def infer(self, parts: Sequence[str]) -> FolderIdentity | None:
        root_index = next(
            (i for i, part in enumerate(parts) if part in self._root_names), None
        )
        if root_index is None:
            return None

        artist_index = root_index + 1
        file_index = len(parts) - 1
        # Hey - need at least <root>/<Artist>/<file>; the artist segment can't be the file!
        if artist_index >= file_index:
            return None

        artist = parts[artist_index].strip()
        if not artist:
            return None

        album: str | None = None
        album_index = file_index - 1
        # File sitting directly in the artist folder has no album folder.
        if album_index > artist_index:
            album = clean_album_folder(parts[album_index], artist)

        return FolderIdentity(artist=artist, album=album, tier=self._tier)


class PathIdentityInference:
    """Derive (artist, album) and provenance from an absolute file path.

    Pure function over path segments - no filesystem access at all.
    """

    def __init__(
        self,
        conventions: Sequence[LayoutConvention],
        low_trust_markers: Iterable[str] = (),
        staging_markers: Iterable[str] = (),
    ) -> None:
        self._conventions = list(conventions)
        self._low_trust_markers = [m.lower() for m in low_trust_markers]
        self._staging_markers = frozenset(m.lower() for m in staging_markers)

    @classmethod
    def from_root_names(
        cls,
        library_roots: Iterable[str],
        staging_roots: Iterable[str],
        low_trust_markers: Iterable[str] = (),
        staging_markers: Iterable[str] = (),
    ) -> "PathIdentityInference":
        """Build the default staging-first, then main-library layout chain."""
        return cls(
            conventions=[
                RootFolderConvention(staging_roots, ProvenanceTier.STAGING),
                RootFolderConvention(library_roots, ProvenanceTier.MAIN_LIBRARY),
            ],
            low_trust_markers=low_trust_markers,
            staging_markers=staging_markers,
        )

    @staticmethod
    def split(file_path: str) -> list[str]:
        """Split a path into its non-empty segments."""
        return [part for part in PurePath(file_path).parts if part not in ("/", "")]

    def infer(self, file_path: str) -> FolderIdentity:
        """Return the folder identity for a file, or FolderIdentity.unknown()."""
        parts = self.split(file_path)
        for convention in self._conventions:
            identity = convention.infer(parts)
            if identity is not None:
                return identity
        return FolderIdentity.unknown()

    def classify_provenance(self, file_path: str) -> ProvenanceTier:
        """Trust tier of the folder a file lives in.

        Low-trust markers win over everything (an auto-import folder inside the main
        library is still an auto-import), then staging markers, then the layout tier.
        """
        lowered = file_path.lower()
        if any(marker in lowered for marker in self._low_trust_markers):
            return ProvenanceTier.LOW_TRUST

        parts = self.split(file_path)
        if any(part.lower() in self._staging_markers for part in parts[:-1]):
            return ProvenanceTier.STAGING

        return self.infer(file_path).tier
