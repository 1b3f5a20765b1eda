"""
Validators — decide whether an applied update may be committed.

A validator is any callable ``(working_root: Path) -> ValidationResult | bool``.
"""

from __future__ import annotations

import logging
import os
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable

from .syntax import check_file

logger = logging.getLogger(__name__)


@dataclass
class ValidationResult:
    passed: bool
    details: str = ""

    def __bool__(self) -> bool:
        return self.passed


def _decode_output(data: bytes) -> str:
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError:
        return data.decode("latin-1", errors="replace")


class CommandValidator:
    """Run a shell command (e.g. ``pytest -q``) in the working root.

    Exit code 0 passes.  An empty command passes without running anything.
    """

    def __init__(self, command: str = "", timeout: float = 300):
        self.command = command
        self.timeout = timeout

    def __call__(self, working_root: str | os.PathLike) -> ValidationResult:
        if not self.command.strip():
            logger.info("[Validate] No validation command configured, passing")
            return ValidationResult(True, "no validation command configured")

        logger.info("[Validate] Running: %s", self.command)
        run_env = os.environ.copy()
        run_env.setdefault("NO_COLOR", "1")
        run_env.setdefault("CI", "true")

        proc = subprocess.Popen(
            self.command, shell=True, cwd=str(working_root),
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            env=run_env,
        )
        try:
            stdout_bytes, _ = proc.communicate(timeout=self.timeout or None)
        except subprocess.TimeoutExpired:
            proc.kill()
            stdout_bytes, _ = proc.communicate()
            logger.warning("[Validate] Command timed out after %ss: %s",
                           self.timeout, self.command)
            output = _decode_output(stdout_bytes)
            return ValidationResult(
                False, f"Command timed out after {self.timeout} seconds.\n{output}".strip())

        output = _decode_output(stdout_bytes).strip()
        logger.info("[Validate] Exit code: %d, output=%d chars",
                    proc.returncode, len(output))
        if proc.returncode != 0 and not output:
            output = f"Command `{self.command}` exited with code {proc.returncode}"
        return ValidationResult(proc.returncode == 0, output)


class SyntaxValidator:
    """Tree-sitter parse of a fixed set of files (relative to the working root).

    The pipeline hands the touched paths in via :meth:`for_paths`.
    """

    def __init__(self, paths: Iterable[str] = ()):
        self.paths = list(paths)

    def for_paths(self, paths: Iterable[str]) -> "SyntaxValidator":
        return SyntaxValidator(paths)

    def __call__(self, working_root: str | os.PathLike) -> ValidationResult:
        root = Path(working_root)
        errors = []
        for rel in self.paths:
            path = root / rel
            if not path.is_file():
                continue  # deleted by the update
            error = check_file(str(path))
            if error:
                errors.append(f"{rel}: {error}")
        if errors:
            return ValidationResult(False, "\n".join(errors))
        return ValidationResult(True, f"{len(self.paths)} file(s) parsed cleanly")
