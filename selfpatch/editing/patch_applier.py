"""
Patch applier — applies a parsed unified diff to a working tree.

Each file entry is applied on its own: the full file is read, every hunk is
applied in memory, and the result is written once (or not at all).  There is
no transaction across files; callers that need all-or-nothing semantics undo
``ApplyResult.touched_paths`` through the git adapter.
"""

from __future__ import annotations

import logging
import os
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from ..exceptions import (
    FileAlreadyExistsError,
    FileNotFoundError,
    HunkApplicationError,
    InvalidDiffEntryError,
    PatchApplicationError,
    PathViolationError,
)
from .diff_parser import FileDiff, Hunk, Patch, UnifiedDiffParser

logger = logging.getLogger(__name__)

APPLIED = "applied"
SKIPPED = "skipped"
FAILED = "failed"


@dataclass
class FileOutcome:
    """What happened to one file entry of the patch."""
    path: str
    status: str
    action: str = ""
    error: Optional[Exception] = None

    @property
    def reason(self) -> str:
        return str(self.error) if self.error is not None else ""


@dataclass
class ApplyResult:
    """Result of applying a patch."""
    outcomes: list[FileOutcome] = field(default_factory=list)
    touched_paths: list[str] = field(default_factory=list)
    aborted: bool = False

    @property
    def success(self) -> bool:
        """True only if every file entry was applied."""
        return bool(self.outcomes) and all(
            o.status == APPLIED for o in self.outcomes
        )

    @property
    def failures(self) -> list[FileOutcome]:
        return [o for o in self.outcomes if o.status == FAILED]

    @property
    def error(self) -> str:
        return "; ".join(f"{o.path}: {o.reason}" for o in self.failures)

    def summary(self) -> str:
        return "\n".join(
            f"{o.status.upper()} {o.action or '-'} {o.path}"
            + (f" ({o.reason})" if o.reason else "")
            for o in self.outcomes
        )


class DiffApplier:
    """Apply unified-diff patches under a working root."""

    def __init__(self, encoding: str = "utf-8") -> None:
        self._encoding = encoding

    def apply_text(self, diff_text: str, working_root: str | os.PathLike) -> ApplyResult:
        """Parse *diff_text* and apply it. ``MalformedDiffError`` propagates."""
        return self.apply(UnifiedDiffParser().parse(diff_text), working_root)

    def apply(self, patch: Patch, working_root: str | os.PathLike) -> ApplyResult:
        """Apply every file entry of *patch*, in order.

        The first failing entry stops the call: it is recorded as failed and
        the remaining entries as skipped, so entries before it stay mutated
        and entries after it are untouched.
        """
        root = Path(working_root).resolve()
        result = ApplyResult()

        for index, file_diff in enumerate(patch.files):
            if result.aborted:
                result.outcomes.append(FileOutcome(
                    path=file_diff.display_path, status=SKIPPED,
                    action=self._action(file_diff),
                ))
                continue

            try:
                touched = self._apply_file(file_diff, root)
            except PathViolationError as exc:
                logger.error(
                    "[DiffApply] Path violation in entry %d (%s): %s",
                    index + 1, file_diff.display_path, exc,
                )
                result.outcomes.append(FileOutcome(
                    path=file_diff.display_path, status=FAILED,
                    action=self._action(file_diff), error=exc,
                ))
                result.aborted = True
                continue
            except PatchApplicationError as exc:
                logger.warning(
                    "[DiffApply] Failed to apply entry %d (%s): %s",
                    index + 1, file_diff.display_path, exc,
                )
                result.outcomes.append(FileOutcome(
                    path=file_diff.display_path, status=FAILED,
                    action=self._action(file_diff), error=exc,
                ))
                result.aborted = True
                continue

            result.touched_paths.extend(touched)
            result.outcomes.append(FileOutcome(
                path=file_diff.display_path, status=APPLIED,
                action=self._action(file_diff),
            ))
            logger.info(
                "[DiffApply] %s %s", self._action(file_diff), file_diff.display_path
            )

        return result

    # ------------------------------------------------------------------
    # Single-entry application
    # ------------------------------------------------------------------

    def _apply_file(self, file_diff: FileDiff, root: Path) -> list[str]:
        """Apply one entry; returns the relative paths it mutated."""
        if file_diff.is_invalid:
            raise InvalidDiffEntryError(
                "File entry has /dev/null as both old and new path"
            )

        if file_diff.is_creation:
            target = resolve_within(root, file_diff.new_path)
            if target.exists():
                raise FileAlreadyExistsError(
                    f"Cannot create {file_diff.new_path}: file already exists"
                )
            content = self._creation_content(file_diff.hunks)
            target.parent.mkdir(parents=True, exist_ok=True)
            self._safe_write(target, content)
            return [file_diff.new_path]

        if file_diff.is_deletion:
            target = resolve_within(root, file_diff.old_path)
            if not target.is_file():
                raise FileNotFoundError(
                    f"Cannot delete {file_diff.old_path}: file does not exist"
                )
            target.unlink()
            return [file_diff.old_path]

        source = resolve_within(root, file_diff.old_path)
        target = resolve_within(root, file_diff.new_path)
        if not source.is_file():
            raise FileNotFoundError(
                f"Cannot modify {file_diff.old_path}: file does not exist"
            )
        if file_diff.is_rename and target.exists():
            raise FileAlreadyExistsError(
                f"Cannot rename {file_diff.old_path} to {file_diff.new_path}: "
                f"target already exists"
            )

        original = self._read(source, file_diff.old_path)
        patched = apply_hunks(original, file_diff.hunks, file_diff.display_path)

        if file_diff.is_rename:
            target.parent.mkdir(parents=True, exist_ok=True)
            self._safe_write(target, patched, mode_from=source)
            source.unlink()
            return [file_diff.old_path, file_diff.new_path]

        if patched != original:
            self._safe_write(target, patched, mode_from=source)
        return [file_diff.new_path]

    @staticmethod
    def _action(file_diff: FileDiff) -> str:
        if file_diff.is_invalid:
            return "invalid"
        if file_diff.is_creation:
            return "create"
        if file_diff.is_deletion:
            return "delete"
        if file_diff.is_rename:
            return "rename"
        return "modify"

    @staticmethod
    def _creation_content(hunks: list[Hunk]) -> str:
        added = [line for hunk in hunks for line in hunk.added_lines]
        if not added:
            return ""
        content = "\n".join(line.text for line in added)
        if not added[-1].no_newline_at_end:
            content += "\n"
        return content

    def _read(self, path: Path, rel: str) -> str:
        try:
            with open(path, "r", encoding=self._encoding, newline="") as f:
                return f.read()
        except UnicodeDecodeError as exc:
            raise PatchApplicationError(
                f"Cannot patch {rel}: not a {self._encoding} text file ({exc})"
            ) from exc
        except OSError as exc:
            raise PatchApplicationError(f"Cannot read {rel}: {exc}") from exc

    # ------------------------------------------------------------------
    # Atomic file write
    # ------------------------------------------------------------------

    def _safe_write(self, path: Path, content: str,
                    mode_from: Optional[Path] = None) -> None:
        """Write *content* via temp file + rename so readers never see a partial file."""
        tmp_path = path.with_name(path.name + ".selfpatch_tmp")
        try:
            with open(tmp_path, "w", encoding=self._encoding, newline="") as f:
                f.write(content)
            if mode_from is not None and mode_from.exists():
                shutil.copymode(mode_from, tmp_path)
            os.replace(tmp_path, path)
        except OSError as exc:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
            raise PatchApplicationError(f"Cannot write {path.name}: {exc}") from exc


def resolve_within(root: Path, rel_path: str) -> Path:
    """Resolve *rel_path* under *root*, refusing anything that escapes it."""
    if not rel_path or os.path.isabs(rel_path) or rel_path.startswith("\\"):
        raise PathViolationError(f"Path must be relative to the working root: {rel_path!r}")
    target = (root / rel_path).resolve()
    if target == root or not target.is_relative_to(root):
        raise PathViolationError(f"Path escapes the working root: {rel_path!r}")
    if target.relative_to(root).parts[0] == ".git":
        raise PathViolationError(f"Refusing to touch git metadata: {rel_path!r}")
    return target


def split_lines(content: str) -> list[str]:
    """Split *content* into lines keeping their terminators (``\\n`` only)."""
    parts = content.split("\n")
    lines = [p + "\n" for p in parts[:-1]]
    if parts[-1]:
        lines.append(parts[-1])
    return lines


def _strip_eol(line: str) -> str:
    if line.endswith("\r\n"):
        return line[:-2]
    if line.endswith("\n"):
        return line[:-1]
    return line


def apply_hunks(content: str, hunks: list[Hunk], path: str = "") -> str:
    """Apply *hunks* to *content* in memory.

    Each hunk must match exactly (context and removed lines, whitespace
    included) at the position given by its header.  Line terminators of the
    original are kept; added lines use the file's first terminator.
    """
    original = split_lines(content)
    newline = "\r\n" if original and original[0].endswith("\r\n") else "\n"
    output: list[str] = []
    cursor = 0

    for index, hunk in enumerate(hunks):
        expected = hunk.old_lines
        start = hunk.old_start - 1 if hunk.old_count > 0 else hunk.old_start
        if start < cursor:
            raise HunkApplicationError(
                path, index, "hunk overlaps or precedes the previous hunk"
            )
        if start + len(expected) > len(original):
            raise HunkApplicationError(
                path, index,
                f"expected {len(expected)} line(s) at line {start + 1}, "
                f"file has {len(original)}",
            )
        for offset, hunk_line in enumerate(expected):
            actual = _strip_eol(original[start + offset])
            if actual != hunk_line.text:
                raise HunkApplicationError(
                    path, index,
                    f"line {start + offset + 1} is {actual!r}, "
                    f"expected {hunk_line.text!r}",
                )

        output.extend(original[cursor:start])
        source_index = start
        for hunk_line in hunk.lines:
            if hunk_line.is_removed:
                source_index += 1
                continue
            if hunk_line.is_context:
                line = original[source_index]
                source_index += 1
            else:
                line = hunk_line.text + newline
            if hunk_line.no_newline_at_end:
                line = _strip_eol(line)
            output.append(line)
        cursor = start + len(expected)

    output.extend(original[cursor:])

    # Every line but the last needs a terminator
    for i in range(len(output) - 1):
        if not output[i].endswith("\n"):
            output[i] += newline
    return "".join(output)
