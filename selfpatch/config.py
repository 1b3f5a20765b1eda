"""
Configuration — loads settings from .selfpatch.yaml, environment variables,
and built-in defaults (in that priority order: CLI args > env > YAML > defaults).
"""

import logging
import os

import yaml

logger = logging.getLogger(__name__)


_DEFAULTS = {
    "author_name": "selfpatch-bot",
    "author_email": "selfpatch-bot@localhost",
    "fail_open_clean_check": True,
    "require_clean_tree": True,
    "git_timeout_seconds": 30,
    "validation_command": "",
    "validation_timeout_seconds": 300,
    "confirm_timeout_seconds": 0,
    "semgrep_config": "auto",
    "log_dir": ".selfpatch/logs",
    "tools": [],
}

# Config file search locations
_CONFIG_FILENAMES = [".selfpatch.yaml", ".selfpatch.yml"]


def _find_config_file(explicit_path: str | None = None) -> str | None:
    """Find the config file. Checks explicit path, CWD, then user home."""
    if explicit_path:
        if os.path.isfile(explicit_path):
            return explicit_path
        return None

    # Search CWD first, then home directory
    search_dirs = [os.getcwd(), os.path.expanduser("~")]
    for d in search_dirs:
        for name in _CONFIG_FILENAMES:
            path = os.path.join(d, name)
            if os.path.isfile(path):
                return path
    return None


def _load_yaml(path: str) -> dict:
    """Load YAML file, returns empty dict on failure."""
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
        return data if isinstance(data, dict) else {}
    except (OSError, yaml.YAMLError) as e:
        logger.warning("[Config] Ignoring unreadable config file %s: %s", path, e)
        return {}


def _to_bool(value) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return bool(value)


class Config:
    """Application configuration.

    Settings are resolved in priority order:
    1. CLI arguments (handled by caller)
    2. Environment variables
    3. .selfpatch.yaml config file
    4. Built-in defaults
    """

    def __init__(self, yaml_data: dict | None = None):
        yd = yaml_data or {}

        # Helper: env var > yaml > default
        def _get(env_key: str, yaml_key: str, cast=str):
            env_val = os.getenv(env_key)
            if env_val is not None:
                return cast(env_val)
            yaml_val = yd.get(yaml_key)
            if yaml_val is not None:
                return cast(yaml_val)
            return _DEFAULTS[yaml_key]

        # Bot identity used for commits
        self.AUTHOR_NAME = _get("SELFPATCH_AUTHOR_NAME", "author_name")
        self.AUTHOR_EMAIL = _get("SELFPATCH_AUTHOR_EMAIL", "author_email")

        # Treat "cannot tell" as clean when git is missing or errors
        self.FAIL_OPEN_CLEAN_CHECK = _get("SELFPATCH_FAIL_OPEN",
                                          "fail_open_clean_check", cast=_to_bool)
        self.REQUIRE_CLEAN_TREE = _get("SELFPATCH_REQUIRE_CLEAN",
                                       "require_clean_tree", cast=_to_bool)
        self.GIT_TIMEOUT_SECONDS = _get("SELFPATCH_GIT_TIMEOUT",
                                        "git_timeout_seconds", cast=float)

        # Validation collaborator
        self.VALIDATION_COMMAND = _get("SELFPATCH_VALIDATION_CMD",
                                       "validation_command")
        self.VALIDATION_TIMEOUT_SECONDS = _get("SELFPATCH_VALIDATION_TIMEOUT",
                                               "validation_timeout_seconds",
                                               cast=float)

        # 0 means wait indefinitely for an answer
        self.CONFIRM_TIMEOUT_SECONDS = _get("SELFPATCH_CONFIRM_TIMEOUT",
                                            "confirm_timeout_seconds", cast=float)

        self.SEMGREP_CONFIG = _get("SELFPATCH_SEMGREP_CONFIG", "semgrep_config")
        self.LOG_DIR = _get("SELFPATCH_LOG_DIR", "log_dir")

        # Extra tools (Python import paths)
        self.TOOLS: list[str] = yd.get("tools", _DEFAULTS["tools"])
        if not isinstance(self.TOOLS, list):
            self.TOOLS = []

    @classmethod
    def load(cls, config_path: str | None = None) -> "Config":
        """Load config from YAML file (if found) + env vars + defaults."""
        path = _find_config_file(config_path)
        yaml_data = _load_yaml(path) if path else {}
        return cls(yaml_data)
