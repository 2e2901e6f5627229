"""Replacement policy: what to do when a discovered file matches an existing row.

Hey future me - the decision ladder is strict, each rung only runs on a tie:

    0. existing file gone?      -> relink (no quality contest at all)
    1. provenance tier           -> higher tier wins
    2. format rank               -> higher rank wins
    3. file size                 -> larger wins
    4. metadata completeness     -> more complete wins
    5. all equal                 -> keep (or add-duplicate in duplicates mode)

Manual mode never auto-replaces a live row; it only keeps or adds a duplicate.
This module is pure - the caller checks file existence and passes the flag in.
"""

import logging
from dataclasses import dataclass
from enum import Enum

from songvault.domain.entities import CatalogEntry
from songvault.domain.value_objects.audio_formats import format_rank
from songvault.domain.value_objects.metadata import MergedMetadata, entry_completeness
from songvault.domain.value_objects.path_identity import PathIdentityInference

logger = logging.getLogger(__name__)


class ReplacementAction(str, Enum):
    REPLACE = "replace"
    KEEP = "keep"
    ADD_DUPLICATE = "add_duplicate"
    SKIP = "skip"


@dataclass(frozen=True)
class ReplacementDecision:
    """Outcome of the policy plus the rung that produced it."""

    action: ReplacementAction
    reason: str
    # REPLACE because the matched row's file vanished (move), not because of quality.
    is_relink: bool = False
    # Manual mode: the relink must be confirmed by a human first.
    needs_confirmation: bool = False


@dataclass(frozen=True)
class CandidateFile:
    """A newly discovered file competing with an existing row."""

    file_path: str
    metadata: MergedMetadata
    file_size: int


class ReplacementPolicy:
    """Decide replace / keep / add-duplicate / skip for a matched candidate."""

    def __init__(
        self,
        inference: PathIdentityInference,
        auto_relink: bool = True,
        manual_mode: bool = False,
        allow_duplicates: bool = False,
    ) -> None:
        self._inference = inference
        self.auto_relink = auto_relink
        self.manual_mode = manual_mode
        self.allow_duplicates = allow_duplicates

    def decide(
        self,
        existing: CatalogEntry,
        candidate: CandidateFile,
        existing_file_exists: bool,
    ) -> ReplacementDecision:
        if not existing_file_exists:
            return self._decide_missing()

        if self.manual_mode:
            return self._equal_outcome("manual mode never auto-replaces a live file")

        return self.compare(existing, candidate)

    def _decide_missing(self) -> ReplacementDecision:
        if self.manual_mode:
            return ReplacementDecision(
                ReplacementAction.REPLACE,
                "original file missing, relink needs confirmation",
                is_relink=True,
                needs_confirmation=True,
            )
        if self.auto_relink:
            return ReplacementDecision(
                ReplacementAction.REPLACE, "original file missing", is_relink=True
            )
        if self.allow_duplicates:
            return ReplacementDecision(
                ReplacementAction.ADD_DUPLICATE,
                "original file missing, relinking disabled",
            )
        return ReplacementDecision(
            ReplacementAction.SKIP, "original file missing, relinking disabled"
        )

    def compare(
        self, existing: CatalogEntry, candidate: CandidateFile
    ) -> ReplacementDecision:
        """Quality contest between two live files (rungs 1-5)."""
        existing_tier = self._inference.classify_provenance(existing.file_path)
        candidate_tier = self._inference.classify_provenance(candidate.file_path)
        if candidate_tier != existing_tier:
            return self._winner(
                candidate_tier > existing_tier,
                f"provenance {existing_tier.name} vs {candidate_tier.name}",
            )

        existing_rank = format_rank(existing.file_path)
        candidate_rank = format_rank(candidate.file_path)
        if candidate_rank != existing_rank:
            return self._winner(
                candidate_rank > existing_rank,
                f"format rank {existing_rank} vs {candidate_rank}",
            )

        existing_size = existing.file_size or 0
        if candidate.file_size != existing_size:
            return self._winner(
                candidate.file_size > existing_size,
                f"file size {existing_size} vs {candidate.file_size}",
            )

        existing_score = entry_completeness(existing)
        candidate_score = candidate.metadata.completeness()
        if candidate_score != existing_score:
            return self._winner(
                candidate_score > existing_score,
                f"metadata completeness {existing_score} vs {candidate_score}",
            )

        return self._equal_outcome("every criterion tied")

    @staticmethod
    def _winner(candidate_wins: bool, reason: str) -> ReplacementDecision:
        if candidate_wins:
            return ReplacementDecision(ReplacementAction.REPLACE, reason)
        return ReplacementDecision(ReplacementAction.KEEP, reason)

    def _equal_outcome(self, reason: str) -> ReplacementDecision:
        if self.allow_duplicates:
            return ReplacementDecision(ReplacementAction.ADD_DUPLICATE, reason)
        return ReplacementDecision(ReplacementAction.KEEP, reason)
