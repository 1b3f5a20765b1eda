"""
Static analysis — runs Semgrep and normalizes its findings into
:class:`StaticAnalysisIssue` records independent of the engine's format.
"""

from __future__ import annotations

import json
import logging
import subprocess
from dataclasses import dataclass
from pathlib import Path

from ..exceptions import ToolExecutionError
from . import Tool, ToolContext

logger = logging.getLogger(__name__)

# Semgrep exits 0 without findings and 1 with findings
_SUCCESS_EXIT_CODES = (0, 1)


@dataclass(frozen=True)
class StaticAnalysisIssue:
    """A single finding reported by a static analysis tool."""
    file_path: str
    start_line: int
    end_line: int
    message: str
    rule_id: str
    severity: str  # e.g. ERROR, WARNING, INFO

    def __str__(self) -> str:
        return (f"[{self.severity}] {self.file_path}:{self.start_line}-{self.end_line}: "
                f"{self.message} ({self.rule_id})")


def parse_semgrep_json(raw_output: str) -> list[StaticAnalysisIssue] | None:
    """Parse ``semgrep --json`` output. Returns ``None`` on malformed input."""
    if not raw_output or not raw_output.strip():
        return []
    try:
        data = json.loads(raw_output)
        issues = []
        for result in data["results"]:
            extra = result.get("extra", {})
            issues.append(StaticAnalysisIssue(
                file_path=result["path"],
                start_line=int(result["start"]["line"]),
                end_line=int(result["end"]["line"]),
                message=extra.get("message", ""),
                rule_id=result.get("check_id", extra.get("rule_id", "")),
                severity=extra.get("severity", "INFO"),
            ))
        return issues
    except (ValueError, KeyError, TypeError) as e:
        logger.warning("[Semgrep] Failed to parse JSON output: %s", e)
        return None


class SemgrepTool(Tool):
    name = "semgrep"
    description = ("Performs static analysis using Semgrep to find code "
                   "patterns and potential issues.")

    def __init__(self, default_config: str = "auto", timeout: float = 600) -> None:
        self._default_config = default_config
        self._timeout = timeout

    def is_available(self) -> bool:
        try:
            result = subprocess.run(
                ["semgrep", "--version"],
                capture_output=True, text=True, check=False, timeout=60,
            )
        except (OSError, subprocess.SubprocessError):
            return False
        return result.returncode == 0

    def execute(self, context: ToolContext) -> str:
        target = context.require_parameter("target_path", (str, Path))
        target_path = context.resolve_path(target)
        semgrep_config = context.get_parameter("semgrep_config", str,
                                               self._default_config)

        cmd = ["semgrep", "scan", "--config", semgrep_config, "--json",
               str(target_path)]
        logger.info("[Semgrep] Running: %s", " ".join(cmd))
        try:
            result = subprocess.run(
                cmd,
                cwd=context.project_root,
                capture_output=True,
                text=True,
                check=False,
                timeout=self._timeout,
            )
        except subprocess.TimeoutExpired as e:
            raise ToolExecutionError(
                f"Semgrep timed out after {self._timeout:.0f}s"
            ) from e

        if result.returncode not in _SUCCESS_EXIT_CODES:
            raise ToolExecutionError(
                f"Semgrep execution failed with exit code {result.returncode}:\n"
                f"{result.stderr.strip()}"
            )
        return result.stdout

    def parse_output(self, raw_output: str):
        return parse_semgrep_json(raw_output)
