"""Audio format ranking and artwork filename conventions."""

import re
from pathlib import Path

# Hey future me - this is the quality ORDER, not a bitrate table! Only relative
# ranks matter for the replacement policy: strictly higher rank wins.
#   lossless (4) > m4a/alac-ish high bitrate (3) > mp3/aac (2) > ogg/opus (1) > anything else (0)
LOSSLESS_EXTENSIONS = frozenset(
    {".flac", ".wav", ".aif", ".aiff", ".alac", ".ape", ".wv"}
)

FORMAT_RANK: dict[str, int] = {
    **{ext: 4 for ext in LOSSLESS_EXTENSIONS},
    ".m4a": 3,
    ".mp3": 2,
    ".aac": 2,
    ".ogg": 1,
    ".opus": 1,
}

DEFAULT_SUPPORTED_EXTENSIONS = (".mp3", ".flac", ".wav", ".m4a", ".aac", ".ogg")


def file_extension(file_path: str) -> str:
    """Lowercase dotted extension ("" if none)."""
    return Path(file_path).suffix.lower()


def format_rank(file_path: str) -> int:
    """Quality rank for a file based on its extension."""
    return FORMAT_RANK.get(file_extension(file_path), 0)


# Album folder artwork: cover.jpg, Folder.PNG, front.webp, ...
ALBUM_ART_PATTERN = re.compile(
    r"^(cover|folder|album|artwork|front)\.(jpg|jpeg|png|webp|gif)$", re.IGNORECASE
)
ARTIST_IMAGE_NAME = "artist.jpg"


def is_album_art_filename(name: str) -> bool:
    return ALBUM_ART_PATTERN.match(name) is not None


def is_artist_image_filename(name: str) -> bool:
    return name.lower() == ARTIST_IMAGE_NAME
