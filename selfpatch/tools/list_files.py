"""List the committed files directly under a path."""

from __future__ import annotations

from ..git_utils import GitAdapter
from . import Tool, ToolContext


class ListFilesTool(Tool):
    name = "list_files"
    description = ("Lists files and directories directly under a path in the "
                   "last commit (not recursive).")

    def __init__(self, config=None) -> None:
        self._config = config

    def is_available(self) -> bool:
        return True

    def execute(self, context: ToolContext) -> str:
        root = context.require_project_root()
        path = context.get_parameter("path", str, "")
        entries = GitAdapter(root, self._config).list_files(path)
        if not entries:
            return f"No files found in {path or '.'}"
        return "".join(
            f"[DIR] {e}\n" if e.endswith("/") else f"[FILE] {e}\n"
            for e in entries
        )

    def parse_output(self, raw_output: str):
        if raw_output.startswith("No files found"):
            return []
        entries = []
        for line in raw_output.splitlines():
            kind, _, path = line.partition(" ")
            if kind not in ("[DIR]", "[FILE]") or not path:
                return None
            entries.append(path)
        return entries
