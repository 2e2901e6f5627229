"""SongVault - library reconciliation engine for a personal music catalog."""

__version__ = "0.1.0"
