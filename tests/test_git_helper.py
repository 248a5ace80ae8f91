"""Tests for the git helper against a real temporary repository."""

import shutil
import subprocess
from unittest.mock import patch

import pytest

from doctype.git_helper import COMMIT_PREFIX, GitHelper, create_commit_message
from doctype.models import GitOperationResult

requires_git = pytest.mark.skipif(shutil.which("git") is None, reason="git not installed")


def _git(repo, *args):
    return subprocess.run(["git", *args], cwd=repo, capture_output=True, text=True, check=True).stdout


@pytest.fixture
def repo(tmp_path):
    _git(tmp_path, "init", "-q")
    _git(tmp_path, "config", "user.email", "docs@example.com")
    _git(tmp_path, "config", "user.name", "Docs Bot")
    _git(tmp_path, "config", "commit.gpgsign", "false")
    return tmp_path


# ---------------------------------------------------------------------------
# Commit messages
# ---------------------------------------------------------------------------


class TestCommitMessage:
    def test_no_symbols(self):
        assert create_commit_message([]) == COMMIT_PREFIX

    def test_few_symbols(self):
        assert create_commit_message(["login", "logout"]) == f"{COMMIT_PREFIX} for login, logout"

    def test_duplicates_collapsed(self):
        assert create_commit_message(["a", "a", "b"]) == f"{COMMIT_PREFIX} for a, b"

    def test_many_symbols(self):
        assert create_commit_message(["a", "b", "c", "d"]) == f"{COMMIT_PREFIX} for 4 symbols"


# ---------------------------------------------------------------------------
# Repository operations
# ---------------------------------------------------------------------------


@requires_git
class TestGitHelper:
    def test_detects_repository(self, repo):
        assert GitHelper(repo).is_git_repository()

    def test_stage_and_commit(self, repo):
        doc = repo / "docs" / "auth.md"
        doc.parent.mkdir()
        doc.write_text("# Auth\n", encoding="utf-8")
        (repo / "doctype-map.json").write_text("{}\n", encoding="utf-8")

        result = GitHelper(repo).stage_and_commit([doc, repo / "doctype-map.json"], ["login"])

        assert result.success, result.error
        assert result.output == f"{COMMIT_PREFIX} for login"
        assert _git(repo, "log", "-1", "--format=%s").strip() == f"{COMMIT_PREFIX} for login"
        assert GitHelper(repo).status().output == ""

    def test_commit_with_nothing_staged_fails(self, repo):
        (repo / "a.md").write_text("x\n", encoding="utf-8")
        helper = GitHelper(repo)
        helper.stage_and_commit([repo / "a.md"], ["a"])

        result = helper.stage_and_commit([repo / "a.md"], ["a"])

        assert not result.success
        assert result.error

    def test_push_without_remote_fails(self, repo):
        (repo / "a.md").write_text("x\n", encoding="utf-8")
        result = GitHelper(repo).stage_and_commit([repo / "a.md"], ["a"], push=True)
        assert not result.success
        assert _git(repo, "log", "-1", "--format=%s").strip() == f"{COMMIT_PREFIX} for a"

    def test_not_a_repository(self, tmp_path):
        helper = GitHelper(tmp_path)
        with patch.object(GitHelper, "is_git_repository", return_value=False):
            result = helper.stage_and_commit([tmp_path / "x.md"], ["x"])
        assert result == GitOperationResult(success=False, error="Not a git repository")


def test_missing_git_binary(tmp_path):
    with patch("doctype.git_helper.subprocess.run", side_effect=FileNotFoundError("git")):
        result = GitHelper(tmp_path).status()
    assert not result.success
    assert "git" in result.error
