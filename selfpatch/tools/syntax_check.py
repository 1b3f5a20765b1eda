"""Check files for syntax errors with tree-sitter."""

from __future__ import annotations

import json

from ..exceptions import ToolExecutionError
from ..syntax import check_file
from . import Tool, ToolContext


class SyntaxCheckTool(Tool):
    name = "syntax_check"
    description = ("Parses source files with tree-sitter and reports syntax "
                   "errors. Unsupported file types are skipped.")

    def is_available(self) -> bool:
        return True

    def execute(self, context: ToolContext) -> str:
        paths = context.require_parameter("paths", (list, tuple))
        report: dict[str, str | None] = {}
        for rel in paths:
            path = context.resolve_path(rel)
            if not path.is_file():
                report[str(rel)] = "file not found"
                continue
            report[str(rel)] = check_file(str(path))

        raw = json.dumps(report, indent=2, sort_keys=True)
        if any(report.values()):
            raise ToolExecutionError(f"Syntax errors found:\n{raw}")
        return raw

    def parse_output(self, raw_output: str):
        try:
            data = json.loads(raw_output)
        except ValueError:
            return None
        return data if isinstance(data, dict) else None
