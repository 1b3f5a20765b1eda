"""Shared fixtures: throwaway git repositories in ``tmp_path``."""

import shutil
import subprocess

import pytest

from selfpatch.config import Config
from selfpatch.git_utils import GitAdapter


def _run_git(repo, *args) -> str:
    result = subprocess.run(
        ["git", *args], cwd=str(repo), capture_output=True, text=True, check=True,
    )
    return result.stdout


def _commit_all(repo, message="initial"):
    _run_git(repo, "add", "-A")
    _run_git(repo, "-c", "user.name=Test", "-c", "user.email=test@example.com",
             "-c", "commit.gpgsign=false", "commit", "--no-verify", "-q", "-m", message)


@pytest.fixture
def run_git():
    """``run_git(repo, *args) -> stdout``; raises on a non-zero exit."""
    return _run_git


@pytest.fixture
def commit_all():
    """``commit_all(repo, message)`` stages and commits everything."""
    return _commit_all


@pytest.fixture
def config(monkeypatch):
    for key in ("SELFPATCH_AUTHOR_NAME", "SELFPATCH_AUTHOR_EMAIL", "SELFPATCH_FAIL_OPEN",
                "SELFPATCH_REQUIRE_CLEAN", "SELFPATCH_GIT_TIMEOUT",
                "SELFPATCH_VALIDATION_CMD", "SELFPATCH_SEMGREP_CONFIG"):
        monkeypatch.delenv(key, raising=False)
    return Config()


@pytest.fixture
def git_repo(tmp_path, config):
    """A repository with one committed file, ``foo.txt``."""
    if shutil.which("git") is None:
        pytest.skip("git is not installed")
    repo = tmp_path / "repo"
    repo.mkdir()
    _run_git(repo, "init", "-q")
    (repo / "foo.txt").write_text("line one\nline two\n", encoding="utf-8")
    _commit_all(repo)
    return repo


@pytest.fixture
def git(git_repo, config):
    return GitAdapter(git_repo, config)
