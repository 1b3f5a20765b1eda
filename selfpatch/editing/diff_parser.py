"""
Diff parser — parses standard unified-diff text (as produced by ``git diff``,
``diff -u`` or :func:`difflib.unified_diff`) into a structured patch.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Optional

from ..exceptions import MalformedDiffError

logger = logging.getLogger(__name__)

# Sentinel path used by diff generators for "no file"
DEV_NULL = "/dev/null"

_OLD_HEADER = "--- "
_NEW_HEADER = "+++ "
_GIT_HEADER = "diff --git "
_NO_NEWLINE_MARKER = "\\ No newline at end of file"

_HUNK_HEADER = re.compile(
    r"^@@ -(\d+)(?:,(\d+))? \+(\d+)(?:,(\d+))? @@(.*)$"
)

# Lines that may appear between file entries (git extended headers)
_PREAMBLE_PREFIXES = (
    "diff ",
    "index ",
    "new file mode",
    "deleted file mode",
    "old mode",
    "new mode",
    "similarity index",
    "dissimilarity index",
    "rename from",
    "rename to",
    "copy from",
    "copy to",
    "Only in",
)

_BINARY_PREFIXES = ("Binary files", "GIT binary patch")


@dataclass
class HunkLine:
    """One body line of a hunk: kind is ``" "``, ``"-"`` or ``"+"``."""
    kind: str
    text: str
    no_newline_at_end: bool = False

    @property
    def is_context(self) -> bool:
        return self.kind == " "

    @property
    def is_removed(self) -> bool:
        return self.kind == "-"

    @property
    def is_added(self) -> bool:
        return self.kind == "+"


@dataclass
class Hunk:
    """A contiguous block of changes with its old/new line ranges."""
    old_start: int
    old_count: int
    new_start: int
    new_count: int
    lines: list[HunkLine] = field(default_factory=list)
    section: str = ""

    @property
    def old_lines(self) -> list[HunkLine]:
        """Context and removed lines, i.e. what the target must contain."""
        return [l for l in self.lines if not l.is_added]

    @property
    def new_lines(self) -> list[HunkLine]:
        """Context and added lines, i.e. what the target will contain."""
        return [l for l in self.lines if not l.is_removed]

    @property
    def added_lines(self) -> list[HunkLine]:
        return [l for l in self.lines if l.is_added]


@dataclass
class FileDiff:
    """All hunks for one file entry. ``None`` paths mean /dev/null."""
    old_path: Optional[str]
    new_path: Optional[str]
    hunks: list[Hunk] = field(default_factory=list)
    header_line: int = 0

    @property
    def is_creation(self) -> bool:
        return self.old_path is None and self.new_path is not None

    @property
    def is_deletion(self) -> bool:
        return self.new_path is None and self.old_path is not None

    @property
    def is_rename(self) -> bool:
        return (
            self.old_path is not None
            and self.new_path is not None
            and self.old_path != self.new_path
        )

    @property
    def is_invalid(self) -> bool:
        """Both sides are /dev/null: malformed, never a no-op."""
        return self.old_path is None and self.new_path is None

    @property
    def path(self) -> Optional[str]:
        """The path this entry is reported under."""
        return self.new_path if self.new_path is not None else self.old_path

    @property
    def display_path(self) -> str:
        return self.path or DEV_NULL


@dataclass
class Patch:
    """The complete parsed diff, file entries in the order given."""
    files: list[FileDiff] = field(default_factory=list)

    def __iter__(self):
        return iter(self.files)

    def __len__(self) -> int:
        return len(self.files)

    @property
    def paths(self) -> list[str]:
        return [f.display_path for f in self.files]


@dataclass
class _GitHeader:
    """Extended header of one ``diff --git`` block.

    git omits the ``---``/``+++`` lines for pure renames and for creating or
    deleting an empty file, so the entry has to be built from these lines.
    """
    line: str
    line_number: int
    rename_from: Optional[str] = None
    rename_to: Optional[str] = None
    created: bool = False
    deleted: bool = False

    def absorb(self, line: str) -> bool:
        if line.startswith("rename from "):
            self.rename_from = _unquote(line[len("rename from "):])
        elif line.startswith("rename to "):
            self.rename_to = _unquote(line[len("rename to "):])
        elif line.startswith("new file mode"):
            self.created = True
        elif line.startswith("deleted file mode"):
            self.deleted = True
        else:
            return False
        return True

    def to_file_diff(self) -> Optional[FileDiff]:
        """The header-only entry, or ``None`` for a mode-only change."""
        if self.rename_from and self.rename_to:
            return FileDiff(self.rename_from, self.rename_to,
                            header_line=self.line_number)
        if not (self.created or self.deleted):
            return None
        path = self._path()
        if path is None:
            raise MalformedDiffError(
                "Cannot determine the file path of a git header",
                self.line_number, self.line,
            )
        if self.created:
            return FileDiff(None, path, header_line=self.line_number)
        return FileDiff(path, None, header_line=self.line_number)

    def _path(self) -> Optional[str]:
        # Both sides name the same path here: "a/<path> b/<path>"
        rest = self.line[len(_GIT_HEADER):].strip()
        half = len(rest) // 2
        if len(rest) % 2 == 0 or rest[half] != " ":
            return None
        old = UnifiedDiffParser._parse_path(rest[:half], "a/")
        new = UnifiedDiffParser._parse_path(rest[half + 1:], "b/")
        return old if old == new else None


def _unquote(path: str) -> str:
    path = path.rstrip()
    if path.startswith('"') and path.endswith('"') and len(path) >= 2:
        return path[1:-1]
    return path


class UnifiedDiffParser:
    """Parse unified-diff text into a :class:`Patch`."""

    def parse(self, diff_text: str) -> Patch:
        """Parse *diff_text*.

        Raises
        ------
        MalformedDiffError
            When the text has no file entries or any line is out of place.
            The error carries the 1-based offending line number.
        """
        lines = self._split_lines(diff_text)
        patch = Patch()
        git_header: Optional[_GitHeader] = None
        i = 0

        while i < len(lines):
            line = lines[i]

            if line.startswith(_OLD_HEADER):
                git_header = None
                file_diff, i = self._parse_file(lines, i)
                patch.files.append(file_diff)
                continue

            if line.startswith(_GIT_HEADER):
                self._flush_git_header(git_header, patch)
                git_header = _GitHeader(line, i + 1)
                i += 1
                continue
            if git_header is not None and git_header.absorb(line):
                i += 1
                continue
            if line.startswith(_BINARY_PREFIXES):
                raise MalformedDiffError("Binary patches are not supported", i + 1, line)

            if line.startswith(_NEW_HEADER):
                raise MalformedDiffError(
                    "'+++' header without preceding '---' header", i + 1, line
                )
            if line.startswith("@@"):
                raise MalformedDiffError(
                    "Hunk header before any file header", i + 1, line
                )
            if line and not line.startswith(_PREAMBLE_PREFIXES):
                logger.debug("[DiffParse] Skipping preamble line %d: %r", i + 1, line)
            i += 1

        self._flush_git_header(git_header, patch)
        if not patch.files:
            raise MalformedDiffError("No file entries found in diff")

        logger.debug(
            "[DiffParse] Parsed %d file entr%s, %d hunk(s)",
            len(patch.files),
            "y" if len(patch.files) == 1 else "ies",
            sum(len(f.hunks) for f in patch.files),
        )
        return patch

    # ------------------------------------------------------------------
    # Internal parsing
    # ------------------------------------------------------------------

    @staticmethod
    def _flush_git_header(git_header: Optional[_GitHeader], patch: Patch) -> None:
        """Emit the entry of a ``diff --git`` block that had no ``---`` header."""
        if git_header is None:
            return
        file_diff = git_header.to_file_diff()
        if file_diff is not None:
            patch.files.append(file_diff)

    def _parse_file(self, lines: list[str], i: int) -> tuple[FileDiff, int]:
        """Parse one ``---``/``+++`` entry starting at index *i*."""
        old_line = lines[i]
        if i + 1 >= len(lines) or not lines[i + 1].startswith(_NEW_HEADER):
            raise MalformedDiffError(
                "'---' header not followed by '+++' header", i + 1, old_line
            )
        file_diff = FileDiff(
            old_path=self._parse_path(old_line[len(_OLD_HEADER):], "a/"),
            new_path=self._parse_path(lines[i + 1][len(_NEW_HEADER):], "b/"),
            header_line=i + 1,
        )
        i += 2

        while i < len(lines) and lines[i].startswith("@@"):
            hunk, i = self._parse_hunk(lines, i)
            file_diff.hunks.append(hunk)

        return file_diff, i

    def _parse_hunk(self, lines: list[str], i: int) -> tuple[Hunk, int]:
        """Parse one hunk header and its body starting at index *i*."""
        header = lines[i]
        match = _HUNK_HEADER.match(header)
        if not match:
            raise MalformedDiffError("Invalid hunk header", i + 1, header)

        hunk = Hunk(
            old_start=int(match.group(1)),
            old_count=int(match.group(2)) if match.group(2) is not None else 1,
            new_start=int(match.group(3)),
            new_count=int(match.group(4)) if match.group(4) is not None else 1,
            section=match.group(5).strip(),
        )
        i += 1

        old_seen = 0
        new_seen = 0
        while old_seen < hunk.old_count or new_seen < hunk.new_count:
            if i >= len(lines):
                raise MalformedDiffError(
                    f"Hunk ends early: expected -{hunk.old_count} +{hunk.new_count} "
                    f"lines, got -{old_seen} +{new_seen}",
                    i,
                    lines[i - 1],
                )
            line = lines[i]
            if line.startswith(_NO_NEWLINE_MARKER):
                self._mark_no_newline(hunk, lines, i)
                i += 1
                continue

            kind, text = self._split_body_line(line, i)
            if kind == " ":
                old_seen += 1
                new_seen += 1
            elif kind == "-":
                old_seen += 1
            else:
                new_seen += 1
            if old_seen > hunk.old_count or new_seen > hunk.new_count:
                raise MalformedDiffError(
                    "Hunk body longer than its header counts", i + 1, line
                )
            hunk.lines.append(HunkLine(kind=kind, text=text))
            i += 1

        # A trailing marker belongs to the last line of the hunk
        if i < len(lines) and lines[i].startswith(_NO_NEWLINE_MARKER):
            self._mark_no_newline(hunk, lines, i)
            i += 1

        if i < len(lines) and lines[i][:1] in ("+", "-") and not (
            lines[i].startswith(_OLD_HEADER) or lines[i].startswith(_NEW_HEADER)
        ):
            raise MalformedDiffError(
                "Hunk body longer than its header counts", i + 1, lines[i]
            )

        return hunk, i

    @staticmethod
    def _split_lines(text: str) -> list[str]:
        """Split on ``\\n`` only; form feeds and other separators are content."""
        lines = [l[:-1] if l.endswith("\r") else l for l in text.split("\n")]
        if lines and lines[-1] == "":
            lines.pop()
        return lines

    @staticmethod
    def _split_body_line(line: str, i: int) -> tuple[str, str]:
        if line == "":
            # Some generators strip the single space of an empty context line
            return " ", ""
        prefix = line[0]
        if prefix not in (" ", "-", "+"):
            raise MalformedDiffError("Unexpected line in hunk body", i + 1, line)
        return prefix, line[1:]

    @staticmethod
    def _mark_no_newline(hunk: Hunk, lines: list[str], i: int) -> None:
        if not hunk.lines:
            raise MalformedDiffError(
                "'No newline' marker without a preceding line", i + 1, lines[i]
            )
        hunk.lines[-1].no_newline_at_end = True

    @staticmethod
    def _parse_path(raw: str, prefix: str) -> Optional[str]:
        """Strip timestamps and the ``a/``/``b/`` prefix; map /dev/null to None."""
        path = raw.split("\t", 1)[0].rstrip()
        if path.startswith('"') and path.endswith('"') and len(path) >= 2:
            path = path[1:-1]
        if path == DEV_NULL:
            return None
        if path.startswith(prefix):
            path = path[len(prefix):]
        return path


def parse_unified_diff(diff_text: str) -> Patch:
    """Convenience wrapper around :meth:`UnifiedDiffParser.parse`."""
    return UnifiedDiffParser().parse(diff_text)
