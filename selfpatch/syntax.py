"""
Tree-sitter syntax checking for patched source files.

Supports: Python, JavaScript, TypeScript, Java, C, C++, Go, Rust, Ruby, PHP, C#

Uses tree-sitter >= 0.22 API with individual language packages.
"""

from __future__ import annotations

import logging
import os
from typing import Optional

import tree_sitter as ts

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Language mapping
# ---------------------------------------------------------------------------

EXTENSION_TO_LANGUAGE: dict[str, str] = {
    ".py": "python",
    ".js": "javascript",
    ".mjs": "javascript",
    ".cjs": "javascript",
    ".jsx": "javascript",
    ".ts": "typescript",
    ".tsx": "tsx",
    ".java": "java",
    ".c": "c",
    ".h": "c",
    ".cpp": "cpp",
    ".cc": "cpp",
    ".cxx": "cpp",
    ".hpp": "cpp",
    ".hxx": "cpp",
    ".go": "go",
    ".rs": "rust",
    ".rb": "ruby",
    ".php": "php",
    ".cs": "c_sharp",
}


def detect_language(file_path: str) -> Optional[str]:
    """Return the tree-sitter language name for *file_path*, or None if unsupported."""
    ext = os.path.splitext(file_path)[1].lower()
    return EXTENSION_TO_LANGUAGE.get(ext)


def _get_lang_func(language: str):
    """Return the tree-sitter language() function for *language*, or None."""
    if language == "python":
        import tree_sitter_python as m
        return m.language
    elif language == "javascript":
        import tree_sitter_javascript as m
        return m.language
    elif language == "typescript":
        import tree_sitter_typescript as m
        return m.language_typescript
    elif language == "tsx":
        import tree_sitter_typescript as m
        return m.language_tsx
    elif language == "java":
        import tree_sitter_java as m
        return m.language
    elif language == "c":
        import tree_sitter_c as m
        return m.language
    elif language == "cpp":
        import tree_sitter_cpp as m
        return m.language
    elif language == "go":
        import tree_sitter_go as m
        return m.language
    elif language == "rust":
        import tree_sitter_rust as m
        return m.language
    elif language == "ruby":
        import tree_sitter_ruby as m
        return m.language
    elif language == "php":
        import tree_sitter_php as m
        return m.language_php
    elif language == "c_sharp":
        import tree_sitter_c_sharp as m
        return m.language
    return None


# Cache parsers to avoid repeated construction
_PARSER_CACHE: dict[str, ts.Parser] = {}


def get_parser(language: str) -> Optional[ts.Parser]:
    """Return a tree-sitter Parser configured for *language*, or None."""
    if language in _PARSER_CACHE:
        return _PARSER_CACHE[language]
    func = _get_lang_func(language)
    if func is None:
        return None
    parser = ts.Parser(ts.Language(func()))
    _PARSER_CACHE[language] = parser
    return parser


def _first_error(node) -> Optional[object]:
    """Depth-first search for the first ERROR or MISSING node."""
    if node.type == "ERROR" or node.is_missing:
        return node
    if not node.has_error:
        return None
    for child in node.children:
        found = _first_error(child)
        if found is not None:
            return found
    return node


def check_source(source: str | bytes, language: str) -> Optional[str]:
    """Parse *source*; return a description of the first syntax error, or None.

    Unsupported languages are reported as valid.
    """
    parser = get_parser(language)
    if parser is None:
        return None
    data = source.encode("utf-8") if isinstance(source, str) else source
    tree = parser.parse(data)
    if not tree.root_node.has_error:
        return None
    node = _first_error(tree.root_node)
    row, col = node.start_point
    what = f"missing {node.type}" if node.is_missing else "unexpected syntax"
    return f"{what} at line {row + 1}, column {col + 1}"


def check_file(path: str) -> Optional[str]:
    """Syntax-check the file at *path* by extension; None when valid or unsupported."""
    language = detect_language(path)
    if language is None:
        return None
    with open(path, "rb") as f:
        data = f.read()
    error = check_source(data, language)
    if error:
        logger.warning("[Syntax] %s: %s", path, error)
    return error
