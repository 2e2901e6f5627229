"""Application settings loaded from environment variables.

Hey future me - every knob of the reconciliation engine lives here!
Settings are grouped like the rest of the app (database / library / artwork /
observability) and read from SONGVAULT_* env vars. Nested groups use "__":

    SONGVAULT_LIBRARY__SCAN_PATHS='["/mnt/UNO/Music_lib", "/srv/downloads/organized"]'
    SONGVAULT_LIBRARY__MANUAL_MODE=true
    SONGVAULT_DATABASE__URL=sqlite+aiosqlite:////data/songvault.db

Components never call get_settings() themselves - the Settings object is built
once at process start and passed in explicitly.
"""

from functools import lru_cache
from pathlib import Path

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseSettings(BaseModel):
    """Catalog store configuration."""

    url: str = "sqlite+aiosqlite:///./songvault.db"
    echo: bool = False
    # Hey future me - SQLite runs with ONE pooled connection (single writer).
    # A second session waits up to pool_timeout seconds before failing.
    pool_timeout: float = 30.0


class LibrarySettings(BaseModel):
    """Scan roots, layout conventions and reconciliation modes."""

    scan_paths: list[Path] = Field(default_factory=list)

    # Path segment names that mark a library root (Artist/Album/File below it).
    library_root_names: list[str] = Field(
        default_factory=lambda: ["Music_lib", "music", "Music", "MusicLibrary"]
    )
    # Segment names of "organized downloads" staging roots. Checked FIRST.
    staging_root_names: list[str] = Field(default_factory=lambda: ["organized"])
    # Path fragments that mark the lowest trust tier (auto-imports).
    low_trust_markers: list[str] = Field(
        default_factory=lambda: ["YouTube Music Import"]
    )
    # Path segments that mark a staging area even without a staging root.
    staging_markers: list[str] = Field(default_factory=lambda: ["downloads"])

    supported_extensions: list[str] = Field(
        default_factory=lambda: [".mp3", ".flac", ".wav", ".m4a", ".aac", ".ogg"]
    )

    # Reconciliation modes
    auto_relink: bool = True
    manual_mode: bool = False
    allow_duplicates: bool = False
    force_cleanup: bool = False

    # Minimum share of shared filenames for the folder-rename heuristic.
    folder_rename_threshold: float = Field(default=0.8, ge=0.0, le=1.0)

    reconcile_playlists_after_scan: bool = True
    scan_on_startup: bool = False
    startup_delay_seconds: float = 0.0

    @field_validator("supported_extensions")
    @classmethod
    def _normalize_extensions(cls, value: list[str]) -> list[str]:
        return [
            ext.lower() if ext.startswith(".") else f".{ext.lower()}" for ext in value
        ]


class ArtworkSettings(BaseModel):
    """Artwork resolution and local cache."""

    enabled: bool = True
    fetch_missing_after_scan: bool = True
    batch_size: int = Field(default=10, ge=1)
    batch_pause_seconds: float = Field(default=1.0, ge=0.0)
    cache_path: Path = Path("./artwork_cache")
    request_timeout: float = 10.0
    deezer_api_base: str = "https://api.deezer.com"


class ObservabilitySettings(BaseModel):
    """Logging configuration."""

    log_level: str = "INFO"
    log_json_format: bool = False


class Settings(BaseSettings):
    """Root settings object."""

    model_config = SettingsConfigDict(
        env_prefix="SONGVAULT_",
        env_nested_delimiter="__",
        env_file=".env",
        extra="ignore",
    )

    app_name: str = "songvault"
    app_env: str = "production"

    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    library: LibrarySettings = Field(default_factory=LibrarySettings)
    artwork: ArtworkSettings = Field(default_factory=ArtworkSettings)
    observability: ObservabilitySettings = Field(default_factory=ObservabilitySettings)


@lru_cache
def get_settings() -> Settings:
    """Build the process-wide settings once (call at startup only)."""
    return Settings()
