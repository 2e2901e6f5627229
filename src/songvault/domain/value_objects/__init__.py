"""Value objects and pure rules (no I/O)."""

from songvault.domain.value_objects.audio_formats import (
    DEFAULT_SUPPORTED_EXTENSIONS,
    format_rank,
)
from songvault.domain.value_objects.metadata import (
    MergedMetadata,
    TagMetadata,
    merge_metadata,
)
from songvault.domain.value_objects.path_identity import (
    FolderIdentity,
    PathIdentityInference,
    ProvenanceTier,
    RootFolderConvention,
    clean_album_folder,
)
from songvault.domain.value_objects.replacement_policy import (
    CandidateFile,
    ReplacementAction,
    ReplacementDecision,
    ReplacementPolicy,
)
from songvault.domain.value_objects.stable_identity import (
    compute_stable_id,
    is_stable_id,
    normalize_identity_text,
)

__all__ = [
    "DEFAULT_SUPPORTED_EXTENSIONS",
    "CandidateFile",
    "FolderIdentity",
    "MergedMetadata",
    "PathIdentityInference",
    "ProvenanceTier",
    "ReplacementAction",
    "ReplacementDecision",
    "ReplacementPolicy",
    "RootFolderConvention",
    "TagMetadata",
    "clean_album_folder",
    "compute_stable_id",
    "format_rank",
    "is_stable_id",
    "merge_metadata",
    "normalize_identity_text",
]
