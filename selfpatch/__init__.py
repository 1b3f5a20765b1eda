"""
selfpatch — apply, validate and commit unified-diff updates to a git working
tree, including updates to the running program's own code.
"""

from .config import Config
from .editing import DiffApplier, ApplyResult, UnifiedDiffParser, parse_unified_diff
from .git_utils import GitAdapter, GitResult
from .orchestrator.coordinator import ToolCoordinator, ToolExecutionRequest
from .orchestrator.pipeline import SelfUpdatePipeline, UpdateOutcome, UpdateState
from .orchestrator.staged_update import StagedUpdate
from .tools import Tool, ToolContext, Structured, Raw, Failure
from .tools.registry import ToolRegistry
from .validation import ValidationResult, CommandValidator, SyntaxValidator

__version__ = "0.1.0"

__all__ = [
    "Config",
    "DiffApplier", "ApplyResult", "UnifiedDiffParser", "parse_unified_diff",
    "GitAdapter", "GitResult",
    "ToolCoordinator", "ToolExecutionRequest",
    "SelfUpdatePipeline", "UpdateOutcome", "UpdateState", "StagedUpdate",
    "Tool", "ToolContext", "Structured", "Raw", "Failure", "ToolRegistry",
    "ValidationResult", "CommandValidator", "SyntaxValidator",
]
