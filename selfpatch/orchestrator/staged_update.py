"""Staged update — one proposed change to the running program's own code."""

from __future__ import annotations

import time
from dataclasses import dataclass, field


def _now_millis() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True)
class StagedUpdate:
    file_path: str
    diff_content: str
    commit_message: str
    timestamp: int = field(default_factory=_now_millis)

    def __post_init__(self):
        for name in ("file_path", "diff_content", "commit_message"):
            value = getattr(self, name)
            if not isinstance(value, str) or not value.strip():
                raise ValueError(f"{name} cannot be null or blank")
