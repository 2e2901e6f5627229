"""Application layer - services and workers."""
