"""
`selfpatch` command-line interface.

Commands
--------
selfpatch apply PATCH_FILE -m MSG          -- confirm, apply, validate, commit or roll back
selfpatch apply - -m MSG --yes             -- read the diff from stdin, skip the prompt
selfpatch commit MSG                       -- commit all pending changes
selfpatch undo PATH                        -- discard changes to one file
selfpatch ls [PATH]                        -- list committed entries under PATH
selfpatch status                           -- report whether the tree is clean
selfpatch plan PLAN.yaml                   -- run a tool plan through the coordinator
"""

from __future__ import annotations

import argparse
import functools
import logging
import os
import sys
from typing import Optional

import yaml

from ..cli_display import CLIDisplay, setup_logger
from ..config import Config
from ..confirm import ask_yes_no, auto_approve
from ..editing.diff_parser import parse_unified_diff
from ..exceptions import MalformedDiffError, RepositoryStateError, RollbackIncompleteError
from ..git_utils import GitAdapter
from ..restart import reexec_current_process
from ..tools import ToolContext
from ..tools.registry import ToolRegistry
from ..validation import CommandValidator, SyntaxValidator
from .coordinator import ToolCoordinator, ToolExecutionRequest
from .pipeline import SelfUpdatePipeline
from .staged_update import StagedUpdate

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_ROLLBACK_INCOMPLETE = 2


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _root(args: argparse.Namespace) -> str:
    return os.path.abspath(args.root or os.getcwd())


def _read_text(path: str) -> str:
    if path == "-":
        return sys.stdin.read()
    with open(path, "r", encoding="utf-8", newline="") as f:
        return f.read()


def _git(args: argparse.Namespace, cfg: Config, display: CLIDisplay) -> Optional[GitAdapter]:
    git = GitAdapter(_root(args), cfg)
    try:
        git.require_repository()
    except RepositoryStateError as e:
        display.error(str(e))
        return None
    return git


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

def _cmd_apply(args: argparse.Namespace, cfg: Config, display: CLIDisplay) -> int:
    diff_text = _read_text(args.patch_file)
    target = args.file
    if not target:
        try:
            paths = parse_unified_diff(diff_text).paths
        except MalformedDiffError as e:
            display.error(f"Malformed diff: {e}")
            return EXIT_FAILED
        target = paths[0] if paths else args.patch_file

    try:
        update = StagedUpdate(file_path=target, diff_content=diff_text,
                              commit_message=args.message)
    except ValueError as e:
        display.error(str(e))
        return EXIT_FAILED

    if args.allow_dirty:
        cfg.REQUIRE_CLEAN_TREE = False

    command = args.validate_cmd if args.validate_cmd is not None else cfg.VALIDATION_COMMAND
    if args.syntax_check:
        validator = SyntaxValidator()
    else:
        validator = CommandValidator(command, timeout=cfg.VALIDATION_TIMEOUT_SECONDS)

    if args.yes:
        confirm = auto_approve
    else:
        confirm = functools.partial(ask_yes_no, timeout=cfg.CONFIRM_TIMEOUT_SECONDS)

    root = _root(args)
    pipeline = SelfUpdatePipeline(
        root, GitAdapter(root, cfg), validator,
        confirm=confirm,
        restart=reexec_current_process if args.restart else None,
        config=cfg,
    )
    pipeline.stage_update(update)

    display.header(f"selfpatch — {update.file_path}")
    try:
        outcome = pipeline.process()
    except RollbackIncompleteError as e:
        display.show_outcome(e.outcome)
        display.error(str(e))
        return EXIT_ROLLBACK_INCOMPLETE

    display.show_outcome(outcome)
    return EXIT_OK if outcome.succeeded else EXIT_FAILED


def _cmd_commit(args: argparse.Namespace, cfg: Config, display: CLIDisplay) -> int:
    git = _git(args, cfg, display)
    if git is None:
        return EXIT_FAILED
    result = git.commit_changes(args.message)
    if not result.ok:
        display.error(result.message)
        return EXIT_FAILED
    suffix = f" ({result.commit_hash[:10]})" if result.commit_hash else ""
    display.success(f"{result.message}{suffix}")
    return EXIT_OK


def _cmd_undo(args: argparse.Namespace, cfg: Config, display: CLIDisplay) -> int:
    git = _git(args, cfg, display)
    if git is None:
        return EXIT_FAILED
    result = git.undo_file_change(args.path)
    if not result.ok:
        display.error(result.message)
        return EXIT_FAILED
    display.success(result.message)
    return EXIT_OK


def _cmd_ls(args: argparse.Namespace, cfg: Config, display: CLIDisplay) -> int:
    git = _git(args, cfg, display)
    if git is None:
        return EXIT_FAILED
    entries = git.list_files(args.path)
    if not entries:
        print(f"No files found in {args.path or '.'}")
    for entry in entries:
        print(f"[DIR] {entry}" if entry.endswith("/") else f"[FILE] {entry}")
    return EXIT_OK


def _cmd_status(args: argparse.Namespace, cfg: Config, display: CLIDisplay) -> int:
    git = GitAdapter(_root(args), cfg)
    if not git.is_repository():
        display.warning(f"{git.repo_root} is not a git repository")
    if git.is_repository_clean():
        display.success("Working tree is clean")
        return EXIT_OK
    display.warning("Working tree has uncommitted changes")
    return EXIT_FAILED


def _load_plan(path: str) -> list[dict]:
    data = yaml.safe_load(_read_text(path)) or []
    if isinstance(data, dict):
        data = data.get("steps", [])
    if not isinstance(data, list):
        raise ValueError("Plan must be a list of steps")
    return data


def _cmd_plan(args: argparse.Namespace, cfg: Config, display: CLIDisplay) -> int:
    try:
        steps = _load_plan(args.plan_file)
        requests = []
        for step in steps:
            if not isinstance(step, dict):
                raise ValueError(f"Plan step must be a mapping, got: {step!r}")
            requests.append(ToolExecutionRequest(
                tool_name=str(step.get("tool", "")),
                context=ToolContext(_root(args), step.get("params") or {}),
                continue_on_error=bool(step.get("continue_on_error", False)),
            ))
    except (OSError, ValueError, yaml.YAMLError) as e:
        display.error(f"Invalid plan: {e}")
        return EXIT_FAILED

    registry = ToolRegistry.with_builtin_tools(cfg)
    registry.discover(cfg.TOOLS)
    results = ToolCoordinator().execute_plan(requests, registry)
    display.show_tool_results(results)
    if len(results) < len(requests):
        display.warning(f"Plan stopped after {len(results)} of {len(requests)} step(s)")
    return EXIT_OK if results and all(r.ok for r in results) \
        and len(results) == len(requests) else EXIT_FAILED


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------

def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="selfpatch",
        description="Apply, validate and commit unified-diff self-updates",
    )
    parser.add_argument("--config", default=None,
                        help="Path to .selfpatch.yaml config file")
    parser.add_argument("--root", default=None,
                        help="Working tree root (default: current directory)")
    subparsers = parser.add_subparsers(dest="command", metavar="COMMAND")
    subparsers.required = True

    # --- apply ---
    apply_p = subparsers.add_parser(
        "apply", help="Apply a diff through the self-update pipeline")
    apply_p.add_argument("patch_file", help="Unified diff file ('-' for stdin)")
    apply_p.add_argument("-m", "--message", required=True, help="Commit message")
    apply_p.add_argument("--file", default=None,
                         help="Target file recorded on the update (default: first path in the diff)")
    apply_p.add_argument("--yes", action="store_true",
                         help="Approve without prompting")
    apply_p.add_argument("--validate-cmd", dest="validate_cmd", default=None,
                         help="Shell command that must exit 0 before committing")
    apply_p.add_argument("--syntax-check", dest="syntax_check", action="store_true",
                         help="Validate by parsing the touched files with tree-sitter")
    apply_p.add_argument("--restart", dest="restart", action="store_true",
                         help="Re-exec the current process after a successful commit")
    apply_p.add_argument("--no-restart", dest="restart", action="store_false",
                         help="Do not restart after committing (default)")
    apply_p.add_argument("--allow-dirty", dest="allow_dirty", action="store_true",
                         help="Skip the clean working tree check")
    apply_p.set_defaults(func=_cmd_apply, restart=False)

    # --- commit ---
    commit_p = subparsers.add_parser("commit", help="Commit all pending changes")
    commit_p.add_argument("message", help="Commit message")
    commit_p.set_defaults(func=_cmd_commit)

    # --- undo ---
    undo_p = subparsers.add_parser("undo", help="Discard changes to one file")
    undo_p.add_argument("path", help="Path relative to the root")
    undo_p.set_defaults(func=_cmd_undo)

    # --- ls ---
    ls_p = subparsers.add_parser("ls", help="List committed entries under a path")
    ls_p.add_argument("path", nargs="?", default="", help="Directory (default: root)")
    ls_p.set_defaults(func=_cmd_ls)

    # --- status ---
    status_p = subparsers.add_parser("status", help="Report whether the tree is clean")
    status_p.set_defaults(func=_cmd_status)

    # --- plan ---
    plan_p = subparsers.add_parser(
        "plan", help="Run a YAML tool plan through the coordinator")
    plan_p.add_argument("plan_file", help="YAML list of {tool, params, continue_on_error}")
    plan_p.set_defaults(func=_cmd_plan)

    return parser


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def main(argv: Optional[list[str]] = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    cfg = Config.load(args.config)
    try:
        setup_logger(os.path.join(_root(args), cfg.LOG_DIR)
                     if not os.path.isabs(cfg.LOG_DIR) else cfg.LOG_DIR)
    except OSError as e:
        print(f"  [WARN] Could not create log directory: {e}", file=sys.stderr)

    display = CLIDisplay()
    return args.func(args, cfg, display)
