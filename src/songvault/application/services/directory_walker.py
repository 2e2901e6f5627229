"""Filesystem enumeration for scan passes.

Hey future me - the walk is depth-first with SORTED directory listings, so a pass over an
unchanged tree always visits files in the same order (deterministic add/update outcomes).
Hidden entries (".something") are skipped at every level. Symlinked directories are followed
once; the resolved path set stops symlink loops.

This module does blocking I/O on purpose - the orchestrator runs collect() in a worker thread.
"""

import logging
import os
from collections.abc import Iterable
from dataclasses import dataclass, field
from pathlib import Path

from songvault.domain.value_objects.audio_formats import (
    DEFAULT_SUPPORTED_EXTENSIONS,
    is_album_art_filename,
    is_artist_image_filename,
)

logger = logging.getLogger(__name__)


@dataclass
class RootWalk:
    """Files found below one configured scan root."""

    root: str
    reachable: bool = True
    files: list[str] = field(default_factory=list)
    skipped_dirs: list[str] = field(default_factory=list)


class DirectoryWalker:
    """Enumerates supported audio files below a root."""

    def __init__(self, supported_extensions: Iterable[str] = DEFAULT_SUPPORTED_EXTENSIONS):
        self._extensions = frozenset(e.lower() for e in supported_extensions)

    def is_supported(self, name: str) -> bool:
        return Path(name).suffix.lower() in self._extensions

    def collect(self, root: str | Path) -> RootWalk:
        """Walk one root. An unreadable or missing root is reported, not raised."""
        root_path = Path(root)
        result = RootWalk(root=str(root_path))

        if not root_path.is_dir():
            logger.warning(f"Scan root not reachable: {root_path}")
            result.reachable = False
            return result

        try:
            # List the root itself - an unmounted mount point often exists but can't be listed
            with os.scandir(root_path):
                pass
        except OSError as e:
            logger.warning(f"Scan root not readable: {root_path} ({e})")
            result.reachable = False
            return result

        visited: set[str] = set()
        self._walk(str(root_path), result, visited)
        return result

    def _walk(self, directory: str, result: RootWalk, visited: set[str]) -> None:
        real = os.path.realpath(directory)
        if real in visited:
            return
        visited.add(real)

        try:
            with os.scandir(directory) as it:
                entries = sorted(it, key=lambda e: e.name)
        except OSError as e:
            logger.warning(f"Skipping unreadable directory {directory}: {e}")
            result.skipped_dirs.append(os.path.abspath(directory))
            return

        for entry in entries:
            if entry.name.startswith("."):
                continue
            try:
                if entry.is_dir(follow_symlinks=True):
                    self._walk(entry.path, result, visited)
                elif entry.is_file(follow_symlinks=True) and self.is_supported(entry.name):
                    result.files.append(os.path.abspath(entry.path))
            except OSError as e:
                logger.warning(f"Skipping unreadable entry {entry.path}: {e}")


@dataclass(frozen=True)
class LocalArtwork:
    """Artwork files found next to an audio file."""

    album_cover: str | None = None
    artist_image: str | None = None


def find_local_artwork(file_path: str) -> LocalArtwork:
    """Album art from the file's folder, artist.jpg from the folder above it."""
    album_dir = os.path.dirname(file_path)
    artist_dir = os.path.dirname(album_dir)

    album_cover: str | None = None
    try:
        with os.scandir(album_dir) as it:
            names = sorted(e.name for e in it if e.is_file())
        album_cover = next(
            (os.path.join(album_dir, n) for n in names if is_album_art_filename(n)),
            None,
        )
    except OSError as e:
        logger.debug(f"Local artwork detection failed for {album_dir}: {e}")

    artist_image: str | None = None
    if artist_dir and artist_dir != album_dir:
        try:
            with os.scandir(artist_dir) as it:
                artist_image = next(
                    (
                        e.path
                        for e in sorted(it, key=lambda e: e.name)
                        if e.is_file() and is_artist_image_filename(e.name)
                    ),
                    None,
                )
        except OSError as e:
            logger.debug(f"Local artist image check failed for {artist_dir}: {e}")

    return LocalArtwork(album_cover=album_cover, artist_image=artist_image)
