"""Tests for the self-update pipeline state machine."""

import threading
from unittest.mock import MagicMock

import pytest

from selfpatch.exceptions import RollbackIncompleteError
from selfpatch.git_utils import (
    COMMITTED, ERROR, NO_CHANGES, RESTORED, GitAdapter, GitResult,
)
from selfpatch.orchestrator.pipeline import (
    SelfUpdatePipeline, UpdateState, build_prompt,
)
from selfpatch.orchestrator.staged_update import StagedUpdate
from selfpatch.validation import ValidationResult


ORIGINAL = "line one\nline two\n"

ADD_LINE = """\
--- a/foo.txt
+++ b/foo.txt
@@ -1,2 +1,3 @@
 line one
 line two
+line three
"""

TWO_FILES = """\
--- a/foo.txt
+++ b/foo.txt
@@ -1,2 +1,2 @@
-line one
+LINE ONE
 line two
--- /dev/null
+++ b/added.txt
@@ -0,0 +1 @@
+brand new
"""

P = UpdateState.PROPOSED
A = UpdateState.APPLYING
V = UpdateState.VALIDATING


def _update(diff=ADD_LINE, message="Add a third line"):
    return StagedUpdate("foo.txt", diff, message)


def _pipeline(repo, config, validator=None, **kwargs):
    if validator is None:
        validator = MagicMock(return_value=ValidationResult(True, "ok"))
    return SelfUpdatePipeline(repo, GitAdapter(repo, config), validator,
                              config=config, **kwargs)


def _fake_git(clean=True):
    git = MagicMock(spec=GitAdapter)
    git.is_repository_clean.return_value = clean
    git.commit_changes.return_value = GitResult(True, COMMITTED, "ok", "abc123")
    git.undo_file_change.return_value = GitResult(True, RESTORED, "restored")
    return git


class TestEndToEnd:
    def test_commit_path(self, git_repo, config):
        validator = MagicMock(return_value=ValidationResult(True, "all good"))
        pipeline = _pipeline(git_repo, config, validator)
        git = pipeline.git
        head_before = git.head_commit()

        outcome = pipeline.process(_update())

        assert outcome.succeeded
        assert outcome.history == [P, A, V, UpdateState.COMMITTED]
        assert outcome.commit.status == COMMITTED
        assert git.head_commit() != head_before
        assert git.is_repository_clean()
        assert (git_repo / "foo.txt").read_text(encoding="utf-8") == ORIGINAL + "line three\n"
        validator.assert_called_once_with(git_repo.resolve())

    def test_validation_failure_rolls_back(self, git_repo, config):
        validator = MagicMock(return_value=ValidationResult(False, "tests failed"))
        pipeline = _pipeline(git_repo, config, validator)
        head_before = pipeline.git.head_commit()

        outcome = pipeline.process(_update())

        assert outcome.state is UpdateState.ROLLED_BACK
        assert outcome.history == [P, A, V, UpdateState.ROLLED_BACK]
        assert "tests failed" in outcome.error
        assert outcome.rolled_back_paths == ["foo.txt"]
        assert (git_repo / "foo.txt").read_text(encoding="utf-8") == ORIGINAL
        assert pipeline.git.is_repository_clean()
        assert pipeline.git.head_commit() == head_before

    def test_rollback_removes_created_files_in_reverse_order(self, git_repo, config):
        pipeline = _pipeline(git_repo, config, MagicMock(return_value=False))

        outcome = pipeline.process(_update(TWO_FILES))

        assert outcome.state is UpdateState.ROLLED_BACK
        assert outcome.rolled_back_paths == ["added.txt", "foo.txt"]
        assert not (git_repo / "added.txt").exists()
        assert (git_repo / "foo.txt").read_text(encoding="utf-8") == ORIGINAL
        assert pipeline.git.is_repository_clean()

    def test_partial_apply_rolls_back_touched_files(self, git_repo, config):
        diff = TWO_FILES + "--- a/missing.txt\n+++ b/missing.txt\n@@ -1 +1 @@\n-a\n+b\n"
        validator = MagicMock()
        pipeline = _pipeline(git_repo, config, validator)

        outcome = pipeline.process(_update(diff))

        assert outcome.history == [P, A, UpdateState.ROLLED_BACK]
        assert "missing.txt" in outcome.error
        assert outcome.rolled_back_paths == ["added.txt", "foo.txt"]
        assert pipeline.git.is_repository_clean()
        validator.assert_not_called()

    def test_malformed_diff_touches_nothing(self, git_repo, config):
        pipeline = _pipeline(git_repo, config)

        outcome = pipeline.process(_update("--- a/foo.txt\n@@ nonsense\n"))

        assert outcome.history == [P, A, UpdateState.ROLLED_BACK]
        assert outcome.error.startswith("Malformed diff")
        assert outcome.rolled_back_paths == []
        assert outcome.apply_result is None

    def test_dirty_tree_aborts(self, git_repo, config):
        (git_repo / "foo.txt").write_text("uncommitted\n", encoding="utf-8")
        pipeline = _pipeline(git_repo, config)

        outcome = pipeline.process(_update())

        assert outcome.history == [P, UpdateState.ABORTED]
        assert (git_repo / "foo.txt").read_text(encoding="utf-8") == "uncommitted\n"

    def test_dirty_tree_allowed_when_configured(self, git_repo, config):
        (git_repo / "notes.md").write_text("scratch\n", encoding="utf-8")
        config.REQUIRE_CLEAN_TREE = False
        pipeline = _pipeline(git_repo, config)

        assert pipeline.process(_update()).succeeded


class TestConfirmation:
    def test_rejected_never_applies(self):
        git = _fake_git()
        applier = MagicMock()
        confirm = MagicMock(return_value=False)
        pipeline = SelfUpdatePipeline("/tmp", git, MagicMock(), applier=applier,
                                      confirm=confirm)

        outcome = pipeline.process(_update())

        assert outcome.history == [P, UpdateState.REJECTED]
        applier.apply_text.assert_not_called()
        git.is_repository_clean.assert_not_called()
        assert "foo.txt" in confirm.call_args[0][0]

    def test_confirm_raising_counts_as_rejection(self):
        pipeline = SelfUpdatePipeline("/tmp", _fake_git(), MagicMock(), applier=MagicMock(),
                                      confirm=MagicMock(side_effect=TimeoutError()))
        assert pipeline.process(_update()).state is UpdateState.REJECTED

    def test_explicit_approval_skips_prompt(self, git_repo, config):
        confirm = MagicMock(return_value=False)
        pipeline = _pipeline(git_repo, config, confirm=confirm)

        assert pipeline.process(_update(), approved=True).succeeded
        confirm.assert_not_called()

    def test_explicit_rejection(self):
        pipeline = SelfUpdatePipeline("/tmp", _fake_git(), MagicMock())
        assert pipeline.process(_update(), approved=False).state is UpdateState.REJECTED

    def test_prompt_contents(self):
        prompt = build_prompt(_update())
        assert "foo.txt" in prompt
        assert "Add a third line" in prompt
        assert "+line three" in prompt


class TestCommitAndRestart:
    def test_no_changes_counts_as_committed(self, git_repo, config):
        git = _fake_git()
        git.commit_changes.return_value = GitResult(True, NO_CHANGES, "No changes to commit.")
        pipeline = SelfUpdatePipeline(git_repo, git, MagicMock(return_value=True))

        outcome = pipeline.process(_update())

        assert outcome.succeeded
        assert outcome.commit.status == NO_CHANGES

    def test_commit_failure_rolls_back(self, git_repo, config):
        git = _fake_git()
        git.commit_changes.return_value = GitResult(False, ERROR, "hook rejected")
        pipeline = SelfUpdatePipeline(git_repo, git, MagicMock(return_value=True))

        outcome = pipeline.process(_update())

        assert outcome.state is UpdateState.ROLLED_BACK
        assert "hook rejected" in outcome.error
        git.undo_file_change.assert_called_once_with("foo.txt")

    def test_restart_runs_only_after_commit(self, git_repo, config):
        events = []
        git = _fake_git()
        git.commit_changes.side_effect = lambda msg: (
            events.append("commit") or GitResult(True, COMMITTED, "ok", "abc"))
        restart = MagicMock(side_effect=lambda: events.append("restart"))
        pipeline = SelfUpdatePipeline(git_repo, git, MagicMock(return_value=True),
                                      restart=restart)

        outcome = pipeline.process(_update())

        assert outcome.succeeded
        assert events == ["commit", "restart"]

    def test_restart_not_called_on_rollback(self, git_repo, config):
        restart = MagicMock()
        pipeline = SelfUpdatePipeline(git_repo, _fake_git(), MagicMock(return_value=False),
                                      restart=restart)
        pipeline.process(_update())
        restart.assert_not_called()

    def test_restart_failure_is_recorded_not_raised(self, git_repo, config):
        git = _fake_git()
        pipeline = SelfUpdatePipeline(git_repo, git, MagicMock(return_value=True),
                                      restart=MagicMock(side_effect=OSError("exec failed")))

        outcome = pipeline.process(_update())

        assert outcome.succeeded
        assert outcome.restart_error == "exec failed"
        git.undo_file_change.assert_not_called()


class TestRollbackIncomplete:
    def test_undo_failure_raises_with_outcome(self, git_repo):
        git = _fake_git()
        git.undo_file_change.side_effect = lambda rel: (
            GitResult(False, ERROR, "disk full") if rel == "foo.txt"
            else GitResult(True, RESTORED, "ok"))
        pipeline = SelfUpdatePipeline(git_repo, git, MagicMock(return_value=False))

        with pytest.raises(RollbackIncompleteError) as exc_info:
            pipeline.process(_update(TWO_FILES))

        err = exc_info.value
        assert err.failures == {"foo.txt": "disk full"}
        assert err.outcome.state is UpdateState.ROLLED_BACK
        assert err.outcome.rolled_back_paths == ["added.txt"]
        assert "foo.txt" in str(err)
        assert not pipeline.update_in_progress

    def test_validator_exception_rolls_back(self, git_repo, config):
        pipeline = _pipeline(git_repo, config, MagicMock(side_effect=RuntimeError("crash")))

        outcome = pipeline.process(_update())

        assert outcome.state is UpdateState.ROLLED_BACK
        assert "crash" in outcome.validation.details
        assert (git_repo / "foo.txt").read_text(encoding="utf-8") == ORIGINAL


class TestPendingUpdate:
    def test_stage_and_process_pending(self, git_repo, config):
        pipeline = _pipeline(git_repo, config)
        update = _update()

        assert pipeline.stage_update(update)
        assert pipeline.pending_update is update

        outcome = pipeline.process()

        assert outcome.update is update
        assert outcome.succeeded
        assert pipeline.pending_update is None

    def test_restaging_replaces_pending(self):
        pipeline = SelfUpdatePipeline("/tmp", _fake_git(), MagicMock())
        first, second = _update(), _update(message="second")
        pipeline.stage_update(first)
        pipeline.stage_update(second)
        assert pipeline.pending_update is second
        pipeline.clear_pending_update()
        assert pipeline.pending_update is None

    def test_process_without_update(self):
        with pytest.raises(ValueError):
            SelfUpdatePipeline("/tmp", _fake_git(), MagicMock()).process()

    def test_staging_refused_while_in_progress(self, git_repo):
        entered = threading.Event()
        release = threading.Event()
        refused = []

        def slow_validator(root):
            entered.set()
            release.wait(5)
            return True

        pipeline = SelfUpdatePipeline(git_repo, _fake_git(), slow_validator)
        worker = threading.Thread(target=pipeline.process, args=(_update(),))
        worker.start()
        try:
            assert entered.wait(5)
            assert pipeline.update_in_progress
            refused.append(pipeline.stage_update(_update(message="later")))
            concurrent = pipeline.process(_update(message="concurrent"))
        finally:
            release.set()
            worker.join(5)

        assert refused == [False]
        assert concurrent.state is UpdateState.ABORTED
        assert not pipeline.update_in_progress
