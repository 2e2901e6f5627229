"""Tests for DirectoryWalker and local artwork detection."""

import os
from pathlib import Path

from songvault.application.services.directory_walker import (
    DirectoryWalker,
    find_local_artwork,
)

from conftest import write_audio


class TestDirectoryWalker:
    """Tests for DirectoryWalker.collect()."""

    def test_sorted_supported_files_only(self, tmp_path: Path) -> None:
        write_audio(tmp_path / "B" / "2.flac")
        write_audio(tmp_path / "A" / "1.MP3")
        write_audio(tmp_path / "A" / "cover.jpg")
        write_audio(tmp_path / "A" / "notes.txt")

        walk = DirectoryWalker().collect(tmp_path)

        assert walk.reachable
        assert walk.files == [
            str(tmp_path / "A" / "1.MP3"),
            str(tmp_path / "B" / "2.flac"),
        ]

    def test_hidden_entries_skipped(self, tmp_path: Path) -> None:
        write_audio(tmp_path / ".cache" / "1.flac")
        write_audio(tmp_path / "A" / ".2.flac")
        write_audio(tmp_path / "A" / "3.flac")

        walk = DirectoryWalker().collect(tmp_path)

        assert walk.files == [str(tmp_path / "A" / "3.flac")]

    def test_custom_extensions(self, tmp_path: Path) -> None:
        write_audio(tmp_path / "1.flac")
        write_audio(tmp_path / "2.opus")

        walk = DirectoryWalker([".opus"]).collect(tmp_path)

        assert walk.files == [str(tmp_path / "2.opus")]

    def test_missing_root_is_unreachable(self, tmp_path: Path) -> None:
        walk = DirectoryWalker().collect(tmp_path / "unplugged")
        assert walk.reachable is False
        assert walk.files == []

    def test_file_as_root_is_unreachable(self, tmp_path: Path) -> None:
        walk = DirectoryWalker().collect(write_audio(tmp_path / "x.flac"))
        assert walk.reachable is False

    def test_symlink_loop_terminates(self, tmp_path: Path) -> None:
        write_audio(tmp_path / "A" / "1.flac")
        os.symlink(tmp_path, tmp_path / "A" / "loop")

        walk = DirectoryWalker().collect(tmp_path)

        assert walk.files == [str(tmp_path / "A" / "1.flac")]


class TestFindLocalArtwork:
    """Tests for find_local_artwork()."""

    def test_album_cover_and_artist_image(self, tmp_path: Path) -> None:
        song = write_audio(tmp_path / "Queen" / "Jazz" / "Mustapha.flac")
        cover = write_audio(tmp_path / "Queen" / "Jazz" / "Folder.png", 1)
        artist = write_audio(tmp_path / "Queen" / "Artist.JPG", 1)

        artwork = find_local_artwork(str(song))

        assert artwork.album_cover == str(cover)
        assert artwork.artist_image == str(artist)

    def test_nothing_found(self, tmp_path: Path) -> None:
        song = write_audio(tmp_path / "Queen" / "Jazz" / "Mustapha.flac")
        write_audio(tmp_path / "Queen" / "Jazz" / "booklet.jpg", 1)

        artwork = find_local_artwork(str(song))

        assert artwork.album_cover is None
        assert artwork.artist_image is None
