"""Metadata extractor backed by mutagen.

Hey future me - mutagen is blocking file I/O, so extract() hops to a worker thread with
asyncio.to_thread(). The scan loop itself stays single-task and deterministic; only the
tag parsing of ONE file at a time leaves the event loop.
"""

import asyncio
import logging
from typing import Any

from mutagen import File as MutagenFile  # type: ignore[attr-defined]
from mutagen import MutagenError

from songvault.domain.exceptions import MetadataExtractionException
from songvault.domain.ports import IMetadataExtractor
from songvault.domain.value_objects.metadata import TagMetadata

logger = logging.getLogger(__name__)

# Tag keys per container format -> our field name
#   ID3 (MP3, WAV, AIFF) / Vorbis comments (FLAC, OGG, OPUS) / MP4 atoms (M4A, AAC)
TAG_MAPPINGS: dict[str, str] = {
    "TIT2": "title",
    "TPE1": "artist",
    "TALB": "album",
    "TDRC": "year",
    "TYER": "year",
    "TCON": "genre",
    "title": "title",
    "artist": "artist",
    "album": "album",
    "date": "year",
    "year": "year",
    "genre": "genre",
    "©nam": "title",
    "©ART": "artist",
    "©alb": "album",
    "©day": "year",
    "©gen": "genre",
}


def _tag_values(value: Any) -> list[str]:
    """Flatten a mutagen tag value (frame, list, MP4 atom) into strings."""
    if hasattr(value, "text"):
        value = value.text
    if not isinstance(value, list | tuple):
        value = [value]
    return [str(v).strip() for v in value if v is not None and str(v).strip()]


class MutagenMetadataExtractor(IMetadataExtractor):
    """Reads tags and stream info with mutagen."""

    async def extract(self, file_path: str) -> TagMetadata:
        return await asyncio.to_thread(self._read_tags, file_path)

    def _read_tags(self, file_path: str) -> TagMetadata:
        try:
            audio = MutagenFile(file_path)
        except (MutagenError, OSError) as e:
            raise MetadataExtractionException(file_path, str(e)) from e

        if audio is None:
            raise MetadataExtractionException(file_path, "unrecognized audio format")

        fields: dict[str, Any] = {}
        genres: list[str] = []

        tags = getattr(audio, "tags", None)
        if tags:
            for tag_key, field_name in TAG_MAPPINGS.items():
                try:
                    if tag_key not in tags:
                        continue
                    values = _tag_values(tags[tag_key])
                except (KeyError, ValueError):
                    # Some tag containers reject keys of the wrong shape (e.g. ID3 with "title")
                    continue
                if not values:
                    continue
                if field_name == "genre":
                    genres.extend(g for g in values if g not in genres)
                else:
                    fields.setdefault(field_name, values[0])
        else:
            logger.debug(f"No tags found in {file_path}")

        info = getattr(audio, "info", None)
        length = getattr(info, "length", None)
        bitrate = getattr(info, "bitrate", None)

        return TagMetadata.from_raw(
            title=fields.get("title"),
            artist=fields.get("artist"),
            album=fields.get("album"),
            year=fields.get("year"),
            genre=genres,
            duration=length,
            # mutagen reports bits per second - catalog stores kbps
            bitrate=(bitrate // 1000) if bitrate else None,
        )
