"""
Tool coordinator — runs a plan of tool requests in order.

Each request yields exactly one tagged result.  A failure stops the plan
unless the failing request set ``continue_on_error``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, Mapping

from ..exceptions import ToolNotFoundError, ToolUnavailableError
from ..tools import (
    EXECUTION_ERROR,
    TOOL_NOT_FOUND,
    TOOL_UNAVAILABLE,
    Failure,
    Raw,
    Structured,
    Tool,
    ToolContext,
    ToolResult,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ToolExecutionRequest:
    """One step of a plan: which tool, with what context, and the error policy."""
    tool_name: str
    context: ToolContext
    continue_on_error: bool = False

    def __post_init__(self):
        if not isinstance(self.tool_name, str) or not self.tool_name.strip():
            raise ValueError("Tool name cannot be empty.")
        if self.context is None:
            raise ValueError("Tool context cannot be None.")


class ToolCoordinator:
    """Sequential executor for tool plans. No retries, no parallelism."""

    def execute_plan(self, requests: Iterable[ToolExecutionRequest],
                     registry: Mapping[str, Tool]) -> list[ToolResult]:
        if hasattr(registry, "as_mapping"):
            registry = registry.as_mapping()

        results: list[ToolResult] = []
        for request in requests:
            result = self._execute_one(request, registry)
            results.append(result)
            if not result.ok and not request.continue_on_error:
                logger.warning(
                    "[Coordinator] Stopping plan after '%s' failed (%s)",
                    request.tool_name, result.reason,
                )
                break
        return results

    def _execute_one(self, request: ToolExecutionRequest,
                     registry: Mapping[str, Tool]) -> ToolResult:
        name = request.tool_name
        tool = registry.get(name)
        if tool is None:
            logger.error("[Coordinator] Tool not found: %s", name)
            return Failure(name, TOOL_NOT_FOUND,
                           ToolNotFoundError(f"Tool not found: {name}"))

        try:
            available = tool.is_available()
        except Exception as e:
            logger.warning("[Coordinator] Availability probe for %s raised: %s", name, e)
            available = False
        if not available:
            logger.error("[Coordinator] Tool not available: %s", name)
            return Failure(name, TOOL_UNAVAILABLE,
                           ToolUnavailableError(f"Tool not available: {name}"))

        logger.info("[Coordinator] Executing %s with %r", name, request.context)
        try:
            raw = tool.execute(request.context)
        except Exception as e:
            logger.error("[Coordinator] Error executing %s: %s", name, e)
            return Failure(name, EXECUTION_ERROR, e)

        try:
            parsed = tool.parse_output(raw)
        except Exception as e:
            logger.warning("[Coordinator] Could not parse output of %s: %s", name, e)
            parsed = None

        if parsed is not None:
            logger.debug("[Coordinator] %s returned structured output", name)
            return Structured(name, parsed)
        logger.debug("[Coordinator] %s returned raw output", name)
        return Raw(name, raw if isinstance(raw, str) else str(raw))
