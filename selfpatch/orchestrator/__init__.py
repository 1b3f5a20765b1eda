"""
Orchestrator package — tool plans and the self-update lifecycle.
"""

from .coordinator import ToolCoordinator, ToolExecutionRequest
from .staged_update import StagedUpdate
from .pipeline import SelfUpdatePipeline, UpdateOutcome, UpdateState
from .cli import main

__all__ = [
    "ToolCoordinator",
    "ToolExecutionRequest",
    "StagedUpdate",
    "SelfUpdatePipeline",
    "UpdateOutcome",
    "UpdateState",
    "main",
]
