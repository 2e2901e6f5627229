"""Playlist service for playlist operations."""

from sqlalchemy.ext.asyncio import AsyncSession

from songvault.domain.entities import Playlist, PlaylistTrackRef
from songvault.domain.exceptions import EntityNotFoundException, ValidationException
from songvault.infrastructure.persistence.repositories import (
    CatalogRepository,
    PlaylistRepository,
)


class PlaylistService:
    """Service for playlist management operations."""

    def __init__(self, session: AsyncSession):
        """Initialize playlist service.

        Args:
            session: Database session
        """
        self.playlists = PlaylistRepository(session)
        self.catalog = CatalogRepository(session)

    async def create_playlist(
        self, name: str, description: str | None = None
    ) -> Playlist:
        """Create an empty playlist.

        Raises:
            ValidationException: blank name
        """
        if not name or not name.strip():
            raise ValidationException("Playlist name must not be empty")
        return await self.playlists.add(
            Playlist(name=name.strip(), description=description)
        )

    async def add_track(self, playlist_id: int, music_id: int) -> PlaylistTrackRef:
        """Append a catalog entry at the end of a playlist.

        Raises:
            EntityNotFoundException: unknown playlist or catalog entry
        """
        if await self.catalog.get_by_id(music_id) is None:
            raise EntityNotFoundException("CatalogEntry", music_id)
        return await self.playlists.add_track(playlist_id, music_id)

    async def list_tracks(self, playlist_id: int) -> list[PlaylistTrackRef]:
        """Slots of a playlist in position order.

        Raises:
            EntityNotFoundException: unknown playlist
        """
        if await self.playlists.get_by_id(playlist_id) is None:
            raise EntityNotFoundException("Playlist", playlist_id)
        return await self.playlists.list_tracks(playlist_id)
