"""Configuration module for SongVault."""

from .settings import (
    ArtworkSettings,
    DatabaseSettings,
    LibrarySettings,
    ObservabilitySettings,
    Settings,
    get_settings,
)

__all__ = [
    "ArtworkSettings",
    "DatabaseSettings",
    "LibrarySettings",
    "ObservabilitySettings",
    "Settings",
    "get_settings",
]
