"""Tests for MutagenMetadataExtractor against real files on disk."""

import wave
from pathlib import Path

import pytest
from mutagen.id3 import TALB, TCON, TDRC, TIT2, TPE1
from mutagen.wave import WAVE

from songvault.domain.exceptions import MetadataExtractionException
from songvault.infrastructure.integrations.mutagen_extractor import (
    MutagenMetadataExtractor,
)


def write_wav(path: Path, seconds: int = 1, rate: int = 8000) -> Path:
    with wave.open(str(path), "wb") as out:
        out.setnchannels(1)
        out.setsampwidth(2)
        out.setframerate(rate)
        out.writeframes(b"\0\0" * rate * seconds)
    return path


class TestMutagenMetadataExtractor:
    """Tests for extract()."""

    async def test_reads_id3_tags_and_stream_info(self, tmp_path: Path) -> None:
        path = write_wav(tmp_path / "Mustapha.wav")
        audio = WAVE(path)
        audio.add_tags()
        audio.tags.add(TIT2(encoding=3, text="Mustapha"))
        audio.tags.add(TPE1(encoding=3, text="Queen"))
        audio.tags.add(TALB(encoding=3, text="Jazz"))
        audio.tags.add(TDRC(encoding=3, text="1978"))
        audio.tags.add(TCON(encoding=3, text=["Rock", "Opera"]))
        audio.save()

        tags = await MutagenMetadataExtractor().extract(str(path))

        assert tags.title == "Mustapha"
        assert tags.artist == "Queen"
        assert tags.album == "Jazz"
        assert tags.year == 1978
        assert tags.genre == ("Rock", "Opera")
        assert tags.duration == 1
        assert tags.bitrate == 128

    async def test_untagged_file_has_stream_info_only(self, tmp_path: Path) -> None:
        path = write_wav(tmp_path / "untagged.wav", seconds=2)

        tags = await MutagenMetadataExtractor().extract(str(path))

        assert tags.title is None
        assert tags.artist is None
        assert tags.duration == 2

    async def test_garbage_file_raises(self, tmp_path: Path) -> None:
        path = tmp_path / "broken.flac"
        path.write_bytes(b"definitely not audio" * 10)

        with pytest.raises(MetadataExtractionException) as exc_info:
            await MutagenMetadataExtractor().extract(str(path))

        assert exc_info.value.file_path == str(path)

    async def test_missing_file_raises(self, tmp_path: Path) -> None:
        with pytest.raises(MetadataExtractionException):
            await MutagenMetadataExtractor().extract(str(tmp_path / "gone.mp3"))
