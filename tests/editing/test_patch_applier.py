"""Tests for the DiffApplier."""

import os

import pytest

from selfpatch.editing.diff_parser import FileDiff, Patch, parse_unified_diff
from selfpatch.editing.patch_applier import (
    APPLIED, FAILED, SKIPPED, DiffApplier, apply_hunks, resolve_within,
)
from selfpatch.exceptions import (
    FileAlreadyExistsError,
    FileNotFoundError as PatchFileNotFoundError,
    HunkApplicationError,
    InvalidDiffEntryError,
    PathViolationError,
)


SAMPLE_FILE = """\
import os
import sys

def helper():
    return 42
"""

MODIFY_SAMPLE = """\
--- a/sample.py
+++ b/sample.py
@@ -3,3 +3,4 @@

 def helper():
-    return 42
+    value = 42
+    return value
"""


def _write(root, rel, content):
    path = root / rel
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8", newline="") as f:
        f.write(content)
    return path


def _read(root, rel):
    with open(root / rel, "r", encoding="utf-8", newline="") as f:
        return f.read()


class TestModify:
    def test_single_hunk(self, tmp_path):
        _write(tmp_path, "sample.py", SAMPLE_FILE)

        result = DiffApplier().apply_text(MODIFY_SAMPLE, tmp_path)

        assert result.success is True
        assert result.touched_paths == ["sample.py"]
        content = _read(tmp_path, "sample.py")
        assert "    value = 42\n    return value\n" in content
        # Untouched lines preserved
        assert content.startswith("import os\nimport sys\n")

    def test_multiple_hunks_applied_in_order(self, tmp_path):
        _write(tmp_path, "f.txt", "".join(f"line {i}\n" for i in range(1, 11)))
        diff = ("--- a/f.txt\n+++ b/f.txt\n"
                "@@ -1,2 +1,2 @@\n-line 1\n+LINE 1\n line 2\n"
                "@@ -9,2 +9,3 @@\n line 9\n-line 10\n+LINE 10\n+line 11\n")

        result = DiffApplier().apply_text(diff, tmp_path)

        assert result.success
        lines = _read(tmp_path, "f.txt").splitlines()
        assert lines[0] == "LINE 1"
        assert lines[-2:] == ["LINE 10", "line 11"]
        assert len(lines) == 11

    def test_crlf_line_endings_preserved(self, tmp_path):
        _write(tmp_path, "win.txt", "a\r\nb\r\nc\r\n")
        diff = "--- a/win.txt\n+++ b/win.txt\n@@ -1,3 +1,3 @@\n a\n-b\n+B\n c\n"

        assert DiffApplier().apply_text(diff, tmp_path).success
        assert _read(tmp_path, "win.txt") == "a\r\nB\r\nc\r\n"

    def test_no_newline_at_end_is_respected(self, tmp_path):
        _write(tmp_path, "n.txt", "a\nb")
        diff = ("--- a/n.txt\n+++ b/n.txt\n@@ -1,2 +1,2 @@\n a\n-b\n"
                "\\ No newline at end of file\n+c\n")

        assert DiffApplier().apply_text(diff, tmp_path).success
        assert _read(tmp_path, "n.txt") == "a\nc\n"

    def test_context_mismatch_fails_without_writing(self, tmp_path):
        _write(tmp_path, "sample.py", SAMPLE_FILE.replace("42", "43"))

        result = DiffApplier().apply_text(MODIFY_SAMPLE, tmp_path)

        assert not result.success
        assert result.touched_paths == []
        assert isinstance(result.outcomes[0].error, HunkApplicationError)
        assert _read(tmp_path, "sample.py") == SAMPLE_FILE.replace("42", "43")

    def test_missing_file(self, tmp_path):
        result = DiffApplier().apply_text(MODIFY_SAMPLE, tmp_path)
        assert result.outcomes[0].status == FAILED
        assert isinstance(result.outcomes[0].error, PatchFileNotFoundError)
        assert isinstance(result.outcomes[0].error, FileNotFoundError)

    def test_rename_with_changes(self, tmp_path):
        _write(tmp_path, "old/name.txt", "x = 1\n")
        diff = "--- a/old/name.txt\n+++ b/new/name.txt\n@@ -1 +1 @@\n-x = 1\n+x = 2\n"

        result = DiffApplier().apply_text(diff, tmp_path)

        assert result.success
        assert result.outcomes[0].action == "rename"
        assert result.touched_paths == ["old/name.txt", "new/name.txt"]
        assert not (tmp_path / "old" / "name.txt").exists()
        assert _read(tmp_path, "new/name.txt") == "x = 2\n"

    def test_git_pure_rename_then_modify(self, tmp_path):
        _write(tmp_path, "old.txt", "keep me\n")
        _write(tmp_path, "foo.txt", "a\n")
        diff = ("diff --git a/old.txt b/new.txt\n"
                "similarity index 100%\n"
                "rename from old.txt\n"
                "rename to new.txt\n"
                "diff --git a/foo.txt b/foo.txt\n"
                "--- a/foo.txt\n+++ b/foo.txt\n@@ -1 +1 @@\n-a\n+b\n")

        result = DiffApplier().apply_text(diff, tmp_path)

        assert result.success
        assert [(o.path, o.action) for o in result.outcomes] == [
            ("new.txt", "rename"), ("foo.txt", "modify"),
        ]
        assert result.touched_paths == ["old.txt", "new.txt", "foo.txt"]
        assert not (tmp_path / "old.txt").exists()
        assert _read(tmp_path, "new.txt") == "keep me\n"
        assert _read(tmp_path, "foo.txt") == "b\n"


class TestCreateDelete:
    def test_create_file(self, tmp_path):
        diff = "--- /dev/null\n+++ b/pkg/new.py\n@@ -0,0 +1,2 @@\n+def f():\n+    pass\n"

        result = DiffApplier().apply_text(diff, tmp_path)

        assert result.success
        assert result.outcomes[0].action == "create"
        assert _read(tmp_path, "pkg/new.py") == "def f():\n    pass\n"

    def test_create_existing_file_fails(self, tmp_path):
        _write(tmp_path, "exists.txt", "keep\n")
        diff = "--- /dev/null\n+++ b/exists.txt\n@@ -0,0 +1 @@\n+new\n"

        result = DiffApplier().apply_text(diff, tmp_path)

        assert isinstance(result.outcomes[0].error, FileAlreadyExistsError)
        assert _read(tmp_path, "exists.txt") == "keep\n"

    def test_delete_file(self, tmp_path):
        _write(tmp_path, "gone.txt", "bye\n")
        diff = "--- a/gone.txt\n+++ /dev/null\n@@ -1 +0,0 @@\n-bye\n"

        result = DiffApplier().apply_text(diff, tmp_path)

        assert result.success
        assert not (tmp_path / "gone.txt").exists()

    def test_git_empty_file_create_and_delete(self, tmp_path):
        _write(tmp_path, "empty.txt", "")
        diff = ("diff --git a/pkg/__init__.py b/pkg/__init__.py\n"
                "new file mode 100644\n"
                "index 0000000..e69de29\n"
                "diff --git a/empty.txt b/empty.txt\n"
                "deleted file mode 100644\n"
                "index e69de29..0000000\n")

        result = DiffApplier().apply_text(diff, tmp_path)

        assert result.success
        assert [o.action for o in result.outcomes] == ["create", "delete"]
        assert _read(tmp_path, "pkg/__init__.py") == ""
        assert not (tmp_path / "empty.txt").exists()

    def test_delete_missing_file_fails(self, tmp_path):
        diff = "--- a/gone.txt\n+++ /dev/null\n@@ -1 +0,0 @@\n-bye\n"
        result = DiffApplier().apply_text(diff, tmp_path)
        assert isinstance(result.outcomes[0].error, PatchFileNotFoundError)


class TestInvalidEntries:
    def test_both_dev_null_rejected_with_zero_mutation(self, tmp_path):
        _write(tmp_path, "a.txt", "a\n")
        before = sorted(os.listdir(tmp_path))

        result = DiffApplier().apply(Patch([FileDiff(None, None)]), tmp_path)

        assert not result.success
        assert result.outcomes[0].action == "invalid"
        assert isinstance(result.outcomes[0].error, InvalidDiffEntryError)
        assert result.touched_paths == []
        assert sorted(os.listdir(tmp_path)) == before
        assert _read(tmp_path, "a.txt") == "a\n"

    @pytest.mark.parametrize("bad_path", ["../escape.txt", "/etc/passwd", ".git/config"])
    def test_path_violation_aborts_the_rest(self, tmp_path, bad_path):
        _write(tmp_path, "later.txt", "old\n")
        diff = (f"--- a/{bad_path}\n+++ b/{bad_path}\n@@ -1 +1 @@\n-a\n+b\n"
                "--- a/later.txt\n+++ b/later.txt\n@@ -1 +1 @@\n-old\n+new\n")
        if bad_path.startswith("/"):
            diff = diff.replace(f"a/{bad_path}", bad_path).replace(f"b/{bad_path}", bad_path)

        result = DiffApplier().apply_text(diff, tmp_path)

        assert result.aborted
        assert isinstance(result.outcomes[0].error, PathViolationError)
        assert result.outcomes[1].status == SKIPPED
        assert _read(tmp_path, "later.txt") == "old\n"


class TestNoTransaction:
    def test_files_before_failure_are_mutated_files_after_untouched(self, tmp_path):
        _write(tmp_path, "first.txt", "one\n")
        _write(tmp_path, "second.txt", "two\n")
        _write(tmp_path, "third.txt", "three\n")
        diff = ("--- a/first.txt\n+++ b/first.txt\n@@ -1 +1 @@\n-one\n+ONE\n"
                "--- a/second.txt\n+++ b/second.txt\n@@ -1 +1 @@\n-mismatch\n+TWO\n"
                "--- a/third.txt\n+++ b/third.txt\n@@ -1 +1 @@\n-three\n+THREE\n")

        result = DiffApplier().apply_text(diff, tmp_path)

        assert not result.success
        assert result.aborted
        assert [o.status for o in result.outcomes] == [APPLIED, FAILED, SKIPPED]
        assert result.touched_paths == ["first.txt"]
        assert _read(tmp_path, "first.txt") == "ONE\n"
        assert _read(tmp_path, "second.txt") == "two\n"
        assert _read(tmp_path, "third.txt") == "three\n"
        assert "second.txt" in result.error
        assert "FAILED modify second.txt" in result.summary()
        assert "SKIPPED modify third.txt" in result.summary()

    def test_missing_file_stops_later_creations(self, tmp_path):
        diff = ("--- a/gone.txt\n+++ b/gone.txt\n@@ -1 +1 @@\n-a\n+b\n"
                "--- /dev/null\n+++ b/new.txt\n@@ -0,0 +1 @@\n+fresh\n")

        result = DiffApplier().apply_text(diff, tmp_path)

        assert [o.status for o in result.outcomes] == [FAILED, SKIPPED]
        assert not (tmp_path / "new.txt").exists()


class TestHelpers:
    def test_apply_hunks_pure_insertion(self):
        patch = parse_unified_diff("--- a/f\n+++ b/f\n@@ -1,0 +2 @@\n+inserted\n")
        assert apply_hunks("a\nb\n", patch.files[0].hunks) == "a\ninserted\nb\n"

    def test_apply_hunks_out_of_range(self):
        patch = parse_unified_diff("--- a/f\n+++ b/f\n@@ -5 +5 @@\n-x\n+y\n")
        with pytest.raises(HunkApplicationError) as exc_info:
            apply_hunks("a\n", patch.files[0].hunks, "f")
        assert exc_info.value.hunk_index == 0

    def test_resolve_within(self, tmp_path):
        root = tmp_path.resolve()
        assert resolve_within(root, "a/b.txt") == root / "a" / "b.txt"
        with pytest.raises(PathViolationError):
            resolve_within(root, "a/../../x")
        with pytest.raises(PathViolationError):
            resolve_within(root, ".")
