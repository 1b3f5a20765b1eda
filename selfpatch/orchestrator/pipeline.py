"""
Self-update pipeline — confirm, apply, validate, then commit or roll back.

One staged update is processed end to end before another can start.  The
restart hook runs only after the commit has landed.
"""

from __future__ import annotations

import enum
import logging
import os
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Optional

from ..config import Config
from ..editing.patch_applier import ApplyResult, DiffApplier
from ..exceptions import MalformedDiffError, RollbackIncompleteError
from ..git_utils import COMMITTED, NO_CHANGES, GitAdapter, GitResult
from ..validation import ValidationResult
from .staged_update import StagedUpdate

logger = logging.getLogger(__name__)


class UpdateState(enum.Enum):
    PROPOSED = "proposed"
    APPLYING = "applying"
    VALIDATING = "validating"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"
    REJECTED = "rejected"    # declined or timed out, nothing applied
    ABORTED = "aborted"      # pre-flight failed, nothing applied


@dataclass
class UpdateOutcome:
    """Everything that happened while processing one staged update."""
    update: Optional[StagedUpdate]
    state: UpdateState = UpdateState.PROPOSED
    history: list[UpdateState] = field(default_factory=lambda: [UpdateState.PROPOSED])
    apply_result: Optional[ApplyResult] = None
    validation: Optional[ValidationResult] = None
    commit: Optional[GitResult] = None
    error: Optional[str] = None
    rolled_back_paths: list[str] = field(default_factory=list)
    rollback_failures: dict[str, str] = field(default_factory=dict)
    restart_error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.state is UpdateState.COMMITTED

    def _enter(self, state: UpdateState) -> None:
        self.state = state
        self.history.append(state)


def build_prompt(update: StagedUpdate) -> str:
    return (
        f"A self-update is proposed for file: {update.file_path}\n"
        f"Commit message: {update.commit_message}\n\n"
        f"Diff:\n---\n{update.diff_content}\n---\n\n"
        f"Do you want to apply this update?"
    )


class SelfUpdatePipeline:
    """Drive staged updates through the update state machine.

    *validator* is a callable ``(working_root) -> ValidationResult | bool``;
    when its class defines ``for_paths`` it is first bound to the touched
    paths.  *confirm* is ``(prompt) -> bool`` and *restart* a zero-argument
    callable run after a successful commit.
    """

    def __init__(self, working_root: str | os.PathLike, git: GitAdapter,
                 validator: Callable[[Path], ValidationResult | bool],
                 applier: DiffApplier | None = None,
                 confirm: Callable[[str], bool] | None = None,
                 restart: Callable[[], None] | None = None,
                 config: Config | None = None):
        self.working_root = Path(working_root).resolve()
        self.git = git
        self.validator = validator
        self.applier = applier or DiffApplier()
        self.confirm = confirm
        self.restart = restart
        self.config = config or Config()

        self._lock = threading.Lock()
        self._pending: Optional[StagedUpdate] = None
        self._in_progress = False

    # ------------------------------------------------------------------
    # Pending update
    # ------------------------------------------------------------------

    def stage_update(self, update: StagedUpdate) -> bool:
        with self._lock:
            if self._in_progress:
                logger.warning("[SelfUpdate] Cannot stage %s: another update is in progress",
                               update.file_path)
                return False
            if self._pending is not None:
                logger.info("[SelfUpdate] Pending update for %s replaced by update for %s",
                            self._pending.file_path, update.file_path)
            self._pending = update
            logger.info("[SelfUpdate] Update staged for file: %s", update.file_path)
            return True

    @property
    def pending_update(self) -> Optional[StagedUpdate]:
        with self._lock:
            return self._pending

    def clear_pending_update(self) -> None:
        with self._lock:
            if self._pending is not None:
                logger.info("[SelfUpdate] Clearing pending update for file: %s",
                            self._pending.file_path)
                self._pending = None

    @property
    def update_in_progress(self) -> bool:
        with self._lock:
            return self._in_progress

    # ------------------------------------------------------------------
    # Processing
    # ------------------------------------------------------------------

    def process(self, update: StagedUpdate | None = None,
                approved: bool | None = None) -> UpdateOutcome:
        """Run *update* (or the pending one) through the whole lifecycle.

        Raises :class:`RollbackIncompleteError` when a rollback could not
        restore every touched file.
        """
        with self._lock:
            if self._in_progress:
                logger.warning("[SelfUpdate] Process requested while another update is in progress")
                outcome = UpdateOutcome(update or self._pending)
                outcome.error = "Another update is already in progress."
                outcome._enter(UpdateState.ABORTED)
                return outcome
            from_pending = update is None
            update = update or self._pending
            if update is None:
                raise ValueError("No staged update to process")
            self._in_progress = True

        try:
            return self._run(update, approved)
        finally:
            with self._lock:
                self._in_progress = False
                if from_pending and self._pending is update:
                    self._pending = None

    def _run(self, update: StagedUpdate, approved: bool | None) -> UpdateOutcome:
        outcome = UpdateOutcome(update)

        if not self._is_approved(update, approved):
            logger.info("[SelfUpdate] Update rejected for file: %s", update.file_path)
            outcome.error = "Update was not approved."
            outcome._enter(UpdateState.REJECTED)
            return outcome

        if self.config.REQUIRE_CLEAN_TREE and not self.git.is_repository_clean():
            logger.warning("[SelfUpdate] Working directory not clean, aborting update for %s",
                           update.file_path)
            outcome.error = ("Working directory is not clean. Commit or stash "
                             "your changes before applying a self-update.")
            outcome._enter(UpdateState.ABORTED)
            return outcome

        # Applying
        outcome._enter(UpdateState.APPLYING)
        try:
            result = self.applier.apply_text(update.diff_content, self.working_root)
        except MalformedDiffError as e:
            logger.error("[SelfUpdate] Could not parse diff for %s: %s", update.file_path, e)
            outcome.error = f"Malformed diff: {e}"
            return self._roll_back(outcome, [])
        outcome.apply_result = result
        if not result.success:
            outcome.error = result.error or "Patch did not apply."
            logger.error("[SelfUpdate] Failed to apply diff for %s: %s",
                         update.file_path, outcome.error)
            return self._roll_back(outcome, result.touched_paths)
        logger.info("[SelfUpdate] Diff applied for %s (%d path(s))",
                    update.file_path, len(result.touched_paths))

        # Validating
        outcome._enter(UpdateState.VALIDATING)
        validation = self._validate(result.touched_paths)
        outcome.validation = validation
        if not validation.passed:
            outcome.error = f"Validation failed: {validation.details}".strip()
            logger.error("[SelfUpdate] Validation failed for %s", update.file_path)
            return self._roll_back(outcome, result.touched_paths)

        # Committing
        commit = self.git.commit_changes(update.commit_message)
        outcome.commit = commit
        if commit.status not in (COMMITTED, NO_CHANGES):
            outcome.error = f"Commit failed: {commit.message}"
            logger.error("[SelfUpdate] Commit failed for %s: %s", update.file_path, commit.message)
            return self._roll_back(outcome, result.touched_paths)
        outcome._enter(UpdateState.COMMITTED)
        logger.info("[SelfUpdate] Committed update for %s (%s)", update.file_path,
                    commit.commit_hash or commit.status)

        self._run_restart(outcome)
        return outcome

    def _is_approved(self, update: StagedUpdate, approved: bool | None) -> bool:
        if approved is not None:
            return bool(approved)
        if self.confirm is None:
            return True
        try:
            return bool(self.confirm(build_prompt(update)))
        except Exception as e:
            logger.warning("[SelfUpdate] Confirmation failed, treating as rejected: %s", e)
            return False

    def _validate(self, touched_paths: list[str]) -> ValidationResult:
        validator = self.validator
        bind = getattr(type(validator), "for_paths", None)
        if bind is not None:
            validator = bind(validator, touched_paths)
        try:
            verdict = validator(self.working_root)
        except Exception as e:
            logger.error("[SelfUpdate] Validator raised: %s", e)
            return ValidationResult(False, f"Validator raised: {e}")
        if isinstance(verdict, ValidationResult):
            return verdict
        return ValidationResult(bool(verdict))

    def _roll_back(self, outcome: UpdateOutcome, touched_paths: list[str]) -> UpdateOutcome:
        """Undo every touched path in reverse order of application."""
        outcome._enter(UpdateState.ROLLED_BACK)
        for rel in reversed(touched_paths):
            try:
                undo = self.git.undo_file_change(rel)
            except Exception as e:
                outcome.rollback_failures[rel] = str(e)
                continue
            if undo.ok:
                outcome.rolled_back_paths.append(rel)
            else:
                outcome.rollback_failures[rel] = undo.message or undo.status

        if outcome.rollback_failures:
            for rel, reason in outcome.rollback_failures.items():
                logger.error("[SelfUpdate] CRITICAL: could not restore %s: %s", rel, reason)
            raise RollbackIncompleteError(outcome, outcome.rollback_failures)

        if touched_paths:
            logger.info("[SelfUpdate] Rolled back %d path(s)", len(outcome.rolled_back_paths))
        return outcome

    def _run_restart(self, outcome: UpdateOutcome) -> None:
        if self.restart is None:
            return
        logger.info("[SelfUpdate] Update committed, invoking restart hook")
        try:
            self.restart()
        except Exception as e:
            outcome.restart_error = str(e) or type(e).__name__
            logger.error("[SelfUpdate] Restart failed, please restart manually: %s", e)
