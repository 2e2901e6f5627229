"""External collaborators: tag extraction and artwork lookup."""

from songvault.infrastructure.integrations.artwork_resolver import DeezerArtworkResolver
from songvault.infrastructure.integrations.mutagen_extractor import (
    MutagenMetadataExtractor,
)

__all__ = ["DeezerArtworkResolver", "MutagenMetadataExtractor"]
