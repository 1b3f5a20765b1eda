"""Tests for ToolRegistry discovery and registration."""

from unittest.mock import MagicMock, patch

import pytest

from selfpatch.tools import Tool
from selfpatch.tools.registry import ENTRY_POINT_GROUP, ToolRegistry


class EchoTool(Tool):
    name = "echo"
    description = "Echo the 'text' parameter."

    def is_available(self) -> bool:
        return True

    def execute(self, context) -> str:
        return context.get_parameter("text", str, "")


class NotATool:
    pass


class TestRegister:
    def test_register_and_get(self):
        registry = ToolRegistry()
        tool = EchoTool()
        registry.register(tool)

        assert registry.get("echo") is tool
        assert registry.get("missing") is None
        assert "echo" in registry
        assert len(registry) == 1
        assert registry.names == ["echo"]

    def test_duplicate_name_rejected(self):
        registry = ToolRegistry()
        registry.register(EchoTool())
        with pytest.raises(ValueError, match="echo"):
            registry.register(EchoTool())

    def test_nameless_tool_rejected(self):
        tool = EchoTool()
        tool.name = ""
        with pytest.raises(ValueError):
            ToolRegistry().register(tool)

    def test_as_mapping_is_a_copy(self):
        registry = ToolRegistry()
        registry.register(EchoTool())
        mapping = registry.as_mapping()
        mapping.pop("echo")
        assert "echo" in registry


class TestBuiltins:
    def test_with_builtin_tools(self, config):
        registry = ToolRegistry.with_builtin_tools(config)
        assert sorted(registry.names) == [
            "apply_diff", "list_files", "rename_file", "semgrep", "syntax_check",
        ]

    def test_builtins_without_config(self):
        assert len(ToolRegistry.with_builtin_tools()) == 5


class TestDiscover:
    def test_load_from_dotted_path(self):
        registry = ToolRegistry()
        with patch("importlib.metadata.entry_points", return_value=[]):
            registry.discover([f"{__name__}.EchoTool"])
        assert isinstance(registry.get("echo"), EchoTool)

    def test_bad_paths_are_skipped(self):
        registry = ToolRegistry()
        with patch("importlib.metadata.entry_points", return_value=[]):
            registry.discover([
                "no_such_module.Tool",
                f"{__name__}.Missing",
                f"{__name__}.NotATool",
                "nodots",
            ])
        assert len(registry) == 0

    def test_entry_points(self):
        ep = MagicMock()
        ep.name = "echo"
        ep.load.return_value = EchoTool
        broken = MagicMock()
        broken.name = "broken"
        broken.load.side_effect = ImportError("missing dependency")

        registry = ToolRegistry()
        with patch("importlib.metadata.entry_points", return_value=[ep, broken]) as eps:
            registry.discover()

        eps.assert_called_once_with(group=ENTRY_POINT_GROUP)
        assert isinstance(registry.get("echo"), EchoTool)
        assert len(registry) == 1

    def test_discovered_duplicate_is_skipped(self):
        registry = ToolRegistry()
        registry.register(EchoTool())
        with patch("importlib.metadata.entry_points", return_value=[]):
            registry.discover([f"{__name__}.EchoTool"])
        assert len(registry) == 1
