"""
Tool Registry — discovers and manages the tools available to the coordinator.
"""

from __future__ import annotations

import importlib
import importlib.metadata
import logging
from typing import Mapping

from . import Tool

logger = logging.getLogger(__name__)

ENTRY_POINT_GROUP = "selfpatch.tools"


class ToolRegistry:
    """Name → tool mapping handed to the coordinator.

    Tools can be registered via:
    1. The built-in set (:meth:`with_builtin_tools`)
    2. Config file (``tools`` list of Python import paths)
    3. Setuptools entry points (``selfpatch.tools`` group)
    """

    def __init__(self):
        self._tools: dict[str, Tool] = {}

    @classmethod
    def with_builtin_tools(cls, config=None) -> "ToolRegistry":
        from .apply_diff import ApplyDiffTool
        from .list_files import ListFilesTool
        from .rename import RenameFileTool
        from .static_analysis import SemgrepTool
        from .syntax_check import SyntaxCheckTool

        registry = cls()
        registry.register(ApplyDiffTool())
        registry.register(SemgrepTool(
            default_config=config.SEMGREP_CONFIG if config else "auto"))
        registry.register(RenameFileTool(config))
        registry.register(ListFilesTool(config))
        registry.register(SyntaxCheckTool())
        return registry

    def register(self, tool: Tool) -> None:
        if not tool.name:
            raise ValueError(f"{type(tool).__name__} has no name")
        if tool.name in self._tools:
            raise ValueError(f"A tool named '{tool.name}' is already registered")
        self._tools[tool.name] = tool
        logger.debug("[ToolRegistry] Registered %s (%s)", tool.name, type(tool).__name__)

    def discover(self, config_tools: list[str] | None = None) -> None:
        """Discover and load tools from config and entry points."""
        # 1. Config-specified tools (Python import paths)
        for path in config_tools or []:
            tool = self._load_from_path(path)
            if tool:
                self._register_discovered(tool, path)

        # 2. Entry points (setuptools-based discovery)
        for ep in importlib.metadata.entry_points(group=ENTRY_POINT_GROUP):
            try:
                cls = ep.load()
            except Exception as e:
                logger.warning("[ToolRegistry] Failed to load entry point '%s': %s",
                               ep.name, e)
                continue
            if isinstance(cls, type) and issubclass(cls, Tool):
                self._register_discovered(cls(), ep.name)
            else:
                logger.warning("[ToolRegistry] Entry point '%s' is not a Tool subclass",
                               ep.name)

        logger.info("[ToolRegistry] %d tool(s) registered", len(self._tools))

    def _register_discovered(self, tool: Tool, origin: str) -> None:
        try:
            self.register(tool)
        except ValueError as e:
            logger.warning("[ToolRegistry] Skipping %s: %s", origin, e)
            return
        logger.info("[ToolRegistry] Loaded tool: %s (name=%s)", origin, tool.name)

    def _load_from_path(self, dotted_path: str) -> Tool | None:
        """Load a tool class from a dotted Python import path.

        Example: ``my_package.tools.LintTool``
        """
        try:
            module_path, cls_name = dotted_path.rsplit(".", 1)
            module = importlib.import_module(module_path)
            cls = getattr(module, cls_name)
        except (ImportError, AttributeError, ValueError) as e:
            logger.warning("[ToolRegistry] Failed to load '%s': %s", dotted_path, e)
            return None
        if isinstance(cls, type) and issubclass(cls, Tool):
            return cls()
        logger.warning("[ToolRegistry] %s is not a Tool subclass", dotted_path)
        return None

    def get(self, name: str) -> Tool | None:
        return self._tools.get(name)

    def as_mapping(self) -> Mapping[str, Tool]:
        return dict(self._tools)

    @property
    def names(self) -> list[str]:
        return list(self._tools)

    def __contains__(self, name: str) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)
