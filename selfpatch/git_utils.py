"""
Git integration — stage, commit, revert and list files for the working tree.

Every operation shells out to ``git`` in the repository root.  Failures are
reported as :class:`GitResult` values rather than raised, so callers outside a
repository keep working.
"""

from __future__ import annotations

import logging
import os
import subprocess
from dataclasses import dataclass
from pathlib import Path

from .config import Config
from .exceptions import PathViolationError, RepositoryStateError

logger = logging.getLogger(__name__)

COMMITTED = "committed"
NO_CHANGES = "no_changes"
RESTORED = "restored"
REMOVED = "removed"
STAGED = "staged"
INITIALIZED = "initialized"
NOT_A_REPOSITORY = "not_a_repository"
ERROR = "error"


@dataclass
class GitResult:
    """Outcome of a git adapter operation."""
    ok: bool
    status: str
    message: str = ""
    commit_hash: str | None = None

    def __str__(self) -> str:
        return self.message or self.status


class GitAdapter:
    """Stage/commit/revert/list operations against one git working tree."""

    def __init__(self, repo_root: str | os.PathLike, config: Config | None = None):
        self.repo_root = Path(repo_root).resolve()
        self._config = config or Config()

    # ------------------------------------------------------------------
    # Low-level helpers
    # ------------------------------------------------------------------

    def _run_git(self, *args: str) -> tuple[bool, str]:
        """Run a git command and return ``(success, output)``."""
        cmd = ["git", *args]
        try:
            result = subprocess.run(
                cmd,
                cwd=self.repo_root,
                capture_output=True,
                text=True,
                check=False,
                timeout=self._config.GIT_TIMEOUT_SECONDS,
            )
        except subprocess.TimeoutExpired:
            logger.warning("[Git] Timed out: %s", " ".join(cmd))
            return False, f"git command timed out: {' '.join(cmd)}"
        except OSError as e:
            logger.warning("[Git] Cannot run %s: %s", " ".join(cmd), e)
            return False, str(e)
        output = (result.stdout + result.stderr).strip()
        if result.returncode != 0:
            logger.debug("[Git] %s failed (%d): %s",
                         " ".join(cmd), result.returncode, output)
        return result.returncode == 0, output

    def _status_lines(self) -> tuple[bool, list[str]]:
        ok, output = self._run_git("status", "--porcelain", "--untracked-files=all")
        if not ok:
            return False, []
        return True, [line for line in output.splitlines() if line.strip()]

    def _not_a_repository(self) -> GitResult:
        return GitResult(
            ok=False, status=NOT_A_REPOSITORY,
            message=f"Error: {self.repo_root} is not a Git repository.",
        )

    def _relative(self, relative_path: str) -> str:
        """Normalize *relative_path* to a repo-relative POSIX path."""
        if os.path.isabs(relative_path):
            raise PathViolationError(f"Path must be relative: {relative_path!r}")
        target = (self.repo_root / relative_path).resolve()
        if not target.is_relative_to(self.repo_root):
            raise PathViolationError(f"Path escapes the repository: {relative_path!r}")
        return target.relative_to(self.repo_root).as_posix()

    # ------------------------------------------------------------------
    # Repository state
    # ------------------------------------------------------------------

    def is_repository(self) -> bool:
        """Return ``True`` if the root is a git work tree with its own metadata."""
        if not self.repo_root.is_dir():
            return False
        ok, output = self._run_git("rev-parse", "--show-toplevel")
        return ok and Path(output.strip()).resolve() == self.repo_root

    def require_repository(self) -> None:
        if not self.is_repository():
            raise RepositoryStateError(f"{self.repo_root} is not a Git repository")

    def init_repository(self) -> GitResult:
        """Initialise a repository in the root (no-op when one exists)."""
        if self.is_repository():
            return GitResult(ok=True, status=NO_CHANGES, message="Repository already exists.")
        self.repo_root.mkdir(parents=True, exist_ok=True)
        ok, output = self._run_git("init")
        return GitResult(ok=ok, status=INITIALIZED if ok else ERROR, message=output)

    def head_commit(self) -> str | None:
        """Return the HEAD commit hash, or ``None`` when there are no commits."""
        ok, output = self._run_git("rev-parse", "--verify", "--quiet", "HEAD")
        return output.strip() if ok and output.strip() else None

    def is_repository_clean(self) -> bool:
        """Return ``True`` if there are no pending changes.

        When the root is not a repository or git errors the configured
        fail-open policy decides (default: treat as clean).
        """
        fallback = self._config.FAIL_OPEN_CLEAN_CHECK
        if not self.is_repository():
            logger.warning("[Git] %s is not a repository, clean check -> %s",
                           self.repo_root, fallback)
            return fallback
        ok, lines = self._status_lines()
        if not ok:
            logger.warning("[Git] Status failed in %s, clean check -> %s",
                           self.repo_root, fallback)
            return fallback
        return not lines

    # ------------------------------------------------------------------
    # Commit / undo
    # ------------------------------------------------------------------

    def commit_changes(self, message: str) -> GitResult:
        """Stage all changes and commit them with the bot identity."""
        if not self.is_repository():
            return self._not_a_repository()

        ok, lines = self._status_lines()
        if not ok:
            return GitResult(ok=False, status=ERROR, message="git status failed")
        if not lines:
            return GitResult(ok=True, status=NO_CHANGES, message="No changes to commit.")

        ok, output = self._run_git("add", "-A")
        if not ok:
            return GitResult(ok=False, status=ERROR,
                             message=f"git add failed: {output}")

        # Re-check the index: everything may have been ignored or a no-op
        ok, _ = self._run_git("diff", "--cached", "--quiet")
        if ok and self.head_commit() is not None:
            return GitResult(ok=True, status=NO_CHANGES, message="No changes to commit.")

        name = self._config.AUTHOR_NAME
        email = self._config.AUTHOR_EMAIL
        ok, output = self._run_git(
            "-c", f"user.name={name}",
            "-c", f"user.email={email}",
            "-c", "commit.gpgsign=false",
            "commit", "--no-verify",
            "--author", f"{name} <{email}>",
            "-m", message,
        )
        if not ok:
            logger.error("[Git] Commit failed: %s", output)
            return GitResult(ok=False, status=ERROR,
                             message=f"Git commit failed: {output}")

        commit_hash = self.head_commit()
        logger.info("[Git] Committed %s: %s", commit_hash, message.splitlines()[0] if message else "")
        return GitResult(ok=True, status=COMMITTED,
                         message="Changes committed successfully.",
                         commit_hash=commit_hash)

    def is_tracked(self, relative_path: str) -> bool:
        """Return ``True`` if the path is in the index."""
        rel = self._relative(relative_path)
        ok, output = self._run_git("ls-files", "--cached", "--", rel)
        return ok and bool(output.strip())

    def stage_paths(self, *relative_paths: str) -> GitResult:
        """Stage additions, modifications and removals of the given paths."""
        if not self.is_repository():
            return self._not_a_repository()
        rels = [
            rel for rel in (self._relative(p) for p in relative_paths)
            if (self.repo_root / rel).exists() or self.is_tracked(rel)
        ]
        if not rels:
            return GitResult(ok=True, status=NO_CHANGES, message="Nothing to stage.")
        ok, output = self._run_git("add", "-A", "--", *rels)
        if not ok:
            return GitResult(ok=False, status=ERROR,
                             message=f"git add failed: {output}")
        return GitResult(ok=True, status=STAGED,
                         message=f"Staged: {', '.join(rels)}")

    def _in_head(self, rel: str) -> bool:
        if self.head_commit() is None:
            return False
        ok, _ = self._run_git("cat-file", "-e", f"HEAD:{rel}")
        return ok

    def undo_file_change(self, relative_path: str) -> GitResult:
        """Discard changes to one file.

        A file that does not exist in ``HEAD`` (newly added or untracked) is
        unstaged and deleted; a committed file is restored to its ``HEAD``
        content in both index and working tree.
        """
        rel = self._relative(relative_path)
        if not self.is_repository():
            return self._not_a_repository()

        if not self._in_head(rel):
            target = self.repo_root / rel
            ok, output = self._run_git("ls-files", "--cached", "--", rel)
            staged = ok and bool(output.strip())
            if staged:
                ok, output = self._run_git("rm", "--cached", "--quiet", "-f", "--", rel)
                if not ok:
                    return GitResult(ok=False, status=ERROR,
                                     message=f"Failed to unstage {rel}: {output}")
            if target.is_file() or target.is_symlink():
                try:
                    target.unlink()
                except OSError as e:
                    return GitResult(ok=False, status=ERROR,
                                     message=f"Failed to delete {rel}: {e}")
            elif not staged:
                return GitResult(ok=True, status=NO_CHANGES,
                                 message=f"Nothing to undo for: {rel}")
            logger.info("[Git] Unstaged and deleted new file: %s", rel)
            return GitResult(ok=True, status=REMOVED,
                             message=f"Unstaged and deleted new file: {rel}")

        ok, output = self._run_git("checkout", "HEAD", "--", rel)
        if not ok:
            return GitResult(ok=False, status=ERROR,
                             message=f"Failed to undo changes for file: {rel} - {output}")
        logger.info("[Git] Reverted to last commit: %s", rel)
        return GitResult(ok=True, status=RESTORED,
                         message=f"Reverted to last commit for file: {rel}")

    # ------------------------------------------------------------------
    # Listing
    # ------------------------------------------------------------------

    def list_files(self, relative_path: str = "") -> list[str]:
        """List the immediate entries under *relative_path* in ``HEAD``.

        Directories carry a trailing ``/``.  Missing paths, repositories
        without commits and non-repositories all yield an empty list.
        """
        rel = self._relative(relative_path) if relative_path else ""
        if rel == ".":
            rel = ""
        if not self.is_repository() or self.head_commit() is None:
            return []

        ok, output = self._run_git("cat-file", "-t", f"HEAD:{rel}")
        if not ok:
            return []
        if output.strip() == "blob":
            return [rel]

        spec = f"{rel}/" if rel else "."
        ok, output = self._run_git("ls-tree", "HEAD", "--", spec)
        if not ok:
            return []

        entries: list[str] = []
        for line in output.splitlines():
            # "<mode> <type> <object>\t<path>"
            meta, _, path = line.partition("\t")
            if not path:
                continue
            kind = meta.split()[1] if len(meta.split()) > 1 else "blob"
            entries.append(path + "/" if kind == "tree" else path)
        return entries
