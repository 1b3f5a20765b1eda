"""Unified-diff editing — parse diffs and apply them to the working tree."""

from .diff_parser import (
    DEV_NULL, UnifiedDiffParser, parse_unified_diff, Patch, FileDiff, Hunk, HunkLine,
)
from .patch_applier import (
    DiffApplier, ApplyResult, FileOutcome, APPLIED, SKIPPED, FAILED,
    apply_hunks, resolve_within,
)

__all__ = [
    "DEV_NULL", "UnifiedDiffParser", "parse_unified_diff",
    "Patch", "FileDiff", "Hunk", "HunkLine",
    "DiffApplier", "ApplyResult", "FileOutcome", "APPLIED", "SKIPPED", "FAILED",
    "apply_hunks", "resolve_within",
]
