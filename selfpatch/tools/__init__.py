"""
Tool System — uniform capabilities driven by the tool coordinator.

Custom tools subclass :class:`Tool` and are registered via .selfpatch.yaml
(``tools`` list of import paths) or the ``selfpatch.tools`` entry-point group.
"""

from __future__ import annotations

import copy
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional, Union

from ..exceptions import PathViolationError

TOOL_NOT_FOUND = "tool_not_found"
TOOL_UNAVAILABLE = "tool_unavailable"
EXECUTION_ERROR = "execution_error"

_MISSING = object()


class ToolContext:
    """Parameters and optional project root for one tool invocation.

    The caller builds the context; tools only read it.  Accessors hand out
    copies so a tool cannot change what the caller (or a later step) sees.
    """

    def __init__(self, project_root: str | Path | None = None,
                 parameters: dict[str, Any] | None = None):
        self._project_root = Path(project_root).resolve() if project_root else None
        self._parameters: dict[str, Any] = dict(parameters or {})

    @property
    def project_root(self) -> Optional[Path]:
        return self._project_root

    def with_parameter(self, key: str, value: Any) -> "ToolContext":
        """Add a parameter while building the context; returns ``self``."""
        self._parameters[key] = value
        return self

    def get_parameter(self, key: str, type_: type | tuple[type, ...] = object,
                      default: Any = None) -> Any:
        """Return the parameter when it is an instance of *type_*, else *default*."""
        value = self._parameters.get(key, _MISSING)
        if value is _MISSING or not isinstance(value, type_):
            return default
        return copy.deepcopy(value)

    def require_parameter(self, key: str, type_: type | tuple[type, ...] = object) -> Any:
        value = self.get_parameter(key, type_, _MISSING)
        if value is _MISSING:
            raise ValueError(f"Missing or invalid parameter '{key}'")
        return value

    def require_project_root(self) -> Path:
        if self._project_root is None:
            raise ValueError("A project root is required for this tool")
        return self._project_root

    def resolve_path(self, value: str | Path) -> Path:
        """Resolve *value* against the project root, refusing escapes."""
        path = Path(value)
        if self._project_root is None:
            return path.resolve()
        resolved = (self._project_root / path).resolve()
        if not resolved.is_relative_to(self._project_root):
            raise PathViolationError(f"{value} is outside the project root")
        return resolved

    def all_parameters(self) -> dict[str, Any]:
        return copy.deepcopy(self._parameters)

    def __repr__(self) -> str:
        return f"ToolContext(project_root={self._project_root!s}, parameters={sorted(self._parameters)})"


class Tool(ABC):
    """Base class for tools run by the coordinator.

    Example::

        class LintTool(Tool):
            name = "lint"
            description = "Run ruff over the project."

            def is_available(self) -> bool:
                return shutil.which("ruff") is not None

            def execute(self, context: ToolContext) -> str:
                return subprocess.run(["ruff", "check", "."], cwd=context.project_root,
                                      capture_output=True, text=True).stdout
    """

    name: str = ""
    description: str = ""

    @abstractmethod
    def is_available(self) -> bool:
        """Probe the environment; must not have side effects."""

    @abstractmethod
    def execute(self, context: ToolContext) -> str:
        """Perform the action and return its raw textual output."""

    def parse_output(self, raw_output: str) -> Any:
        """Structure *raw_output*; return ``None`` when it cannot be parsed."""
        return None


# ---------------------------------------------------------------------------
# Tagged results recorded by the coordinator
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Structured:
    """Successful step whose output was parsed by the tool."""
    tool_name: str
    value: Any
    ok = True


@dataclass(frozen=True)
class Raw:
    """Successful step whose output could not be structured."""
    tool_name: str
    output: str
    ok = True


@dataclass(frozen=True)
class Failure:
    """Failed step: missing tool, unavailable tool, or execution error."""
    tool_name: str
    reason: str
    error: Exception
    ok = False

    @property
    def message(self) -> str:
        return str(self.error)


ToolResult = Union[Structured, Raw, Failure]


__all__ = [
    "Tool", "ToolContext", "ToolResult", "Structured", "Raw", "Failure",
    "TOOL_NOT_FOUND", "TOOL_UNAVAILABLE", "EXECUTION_ERROR",
]
