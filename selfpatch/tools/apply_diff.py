"""Apply a unified diff to the project root."""

from __future__ import annotations

import logging

from ..editing.patch_applier import DiffApplier
from ..exceptions import PatchApplicationError
from . import Tool, ToolContext

logger = logging.getLogger(__name__)


class ApplyDiffTool(Tool):
    name = "apply_diff"
    description = ("Applies a code change given in unified diff format "
                   "(create, modify, rename or delete files).")

    def __init__(self, applier: DiffApplier | None = None) -> None:
        self._applier = applier or DiffApplier()

    def is_available(self) -> bool:
        return True

    def execute(self, context: ToolContext) -> str:
        root = context.require_project_root()
        diff = context.require_parameter("diff", str)
        result = self._applier.apply_text(diff, root)
        summary = result.summary()
        if not result.success:
            raise PatchApplicationError(
                f"Diff did not apply cleanly:\n{summary}"
            )
        return summary

    def parse_output(self, raw_output: str):
        entries = []
        for line in raw_output.splitlines():
            parts = line.split(" ", 2)
            if len(parts) != 3:
                return None
            status, action, path = parts
            entries.append({
                "path": path,
                "status": status.lower(),
                "action": action,
            })
        return entries or None
