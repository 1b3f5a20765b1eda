"""
Exception taxonomy for the change-application pipeline.

Parse errors and security violations are fatal to a request; per-file
application errors are recorded on the apply result so that later files can
still be attempted.
"""

from __future__ import annotations

import builtins


class SelfPatchError(Exception):
    """Base exception for all selfpatch operations."""


class MalformedDiffError(SelfPatchError):
    """Raised when diff text cannot be parsed into a patch."""

    def __init__(self, message: str, line_number: int = 0, line: str = ""):
        self.line_number = line_number
        self.line = line
        if line_number:
            message = f"{message} (line {line_number}: {line!r})"
        super().__init__(message)


class PatchApplicationError(SelfPatchError):
    """Base class for failures while applying one file entry of a patch."""


class PathViolationError(PatchApplicationError):
    """Raised when a path would resolve outside the working root."""


class InvalidDiffEntryError(PatchApplicationError):
    """Raised for a file entry whose old and new paths are both /dev/null."""


class FileAlreadyExistsError(PatchApplicationError, FileExistsError):
    """Raised when a file-creation entry targets an existing file."""


class FileNotFoundError(PatchApplicationError, builtins.FileNotFoundError):
    """Raised when a deletion or modification targets a missing file."""


class HunkApplicationError(PatchApplicationError):
    """Raised when a hunk's context does not match the target file."""

    def __init__(self, path: str, hunk_index: int, detail: str = ""):
        self.path = path
        self.hunk_index = hunk_index
        message = f"Hunk #{hunk_index + 1} does not apply to {path}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class RepositoryStateError(SelfPatchError):
    """Raised when the git backend is missing or in an unusable state."""


class ToolError(SelfPatchError):
    """Base class for coordinator-level tool failures."""


class ToolNotFoundError(ToolError):
    """Raised (or recorded) when a requested tool is not in the registry."""


class ToolUnavailableError(ToolError):
    """Raised (or recorded) when a tool's availability probe fails."""


class ToolExecutionError(ToolError):
    """Raised by built-in tools when their underlying command fails."""


class RollbackIncompleteError(SelfPatchError):
    """Raised when undoing a failed update left some files unrestored.

    The working tree then matches neither the old nor the new state and
    needs manual intervention.
    """

    def __init__(self, outcome, failures: dict[str, str]):
        self.outcome = outcome
        self.failures = dict(failures)
        paths = ", ".join(sorted(self.failures))
        super().__init__(f"Rollback incomplete, manual intervention required for: {paths}")
