from setuptools import setup, find_packages

setup(
    name="selfpatch",
    version="0.1.0",
    packages=find_packages(include=["selfpatch", "selfpatch.*"]),
    python_requires=">=3.10",
    install_requires=[
        "pyyaml",
        "textual",
        # Syntax validation of patched files
        "tree-sitter>=0.22",
        "tree-sitter-python",
        "tree-sitter-javascript",
        "tree-sitter-typescript",
        "tree-sitter-java",
        "tree-sitter-c",
        "tree-sitter-cpp",
        "tree-sitter-go",
        "tree-sitter-rust",
        "tree-sitter-ruby",
        "tree-sitter-php",
        "tree-sitter-c-sharp",
    ],
    extras_require={
        "test": [
            "pytest",
        ],
    },
    entry_points={
        "console_scripts": [
            "selfpatch=selfpatch.orchestrator.cli:main",
        ],
    },
    author="Uday Kanth",
    description="Apply, validate and commit unified-diff self-updates to a git working tree.",
)
