"""Rename a file inside the project and stage the move in git."""

from __future__ import annotations

import logging
import os
import subprocess

from ..exceptions import (
    FileAlreadyExistsError,
    FileNotFoundError,
    ToolExecutionError,
)
from ..git_utils import GitAdapter
from . import Tool, ToolContext

logger = logging.getLogger(__name__)


class RenameFileTool(Tool):
    name = "rename_file"
    description = "Renames a file and stages the change using Git."

    def __init__(self, config=None) -> None:
        self._config = config

    def is_available(self) -> bool:
        try:
            result = subprocess.run(["git", "--version"], capture_output=True,
                                    text=True, check=False, timeout=30)
        except (OSError, subprocess.SubprocessError):
            return False
        return result.returncode == 0

    def execute(self, context: ToolContext) -> str:
        root = context.require_project_root()
        old_rel = context.require_parameter("old_path", str)
        new_rel = context.require_parameter("new_path", str)

        old_path = context.resolve_path(old_rel)
        new_path = context.resolve_path(new_rel)
        if not old_path.exists():
            raise FileNotFoundError(f"Old file path does not exist: {old_rel}")
        if new_path.exists():
            raise FileAlreadyExistsError(f"New file path already exists: {new_rel}")

        new_path.parent.mkdir(parents=True, exist_ok=True)
        os.replace(old_path, new_path)

        git = GitAdapter(root, self._config)
        old_repo_path = old_path.relative_to(root).as_posix()
        new_repo_path = new_path.relative_to(root).as_posix()
        staged = git.stage_paths(old_repo_path, new_repo_path)
        if not staged.ok:
            try:
                os.replace(new_path, old_path)
            except OSError as e:
                logger.error("[Rename] CRITICAL: could not revert move of %s: %s",
                             old_rel, e)
                raise ToolExecutionError(
                    f"Failed to stage rename with Git: {staged.message}. "
                    f"CRITICAL: File move could not be reverted: {e}"
                ) from e
            raise ToolExecutionError(
                f"Failed to stage rename with Git: {staged.message}. File move reverted."
            )

        logger.info("[Rename] %s -> %s", old_repo_path, new_repo_path)
        return f"File {old_rel} renamed to {new_rel} and staged."

    def parse_output(self, raw_output: str):
        return {"message": raw_output}
