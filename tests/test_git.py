"""Tests for the git helpers against a real repository."""

from pathlib import Path

import pytest

from app.tools import git
from app.tools.shell import run_command


def _commit_file(repo: Path, name: str, message: str) -> None:
    (repo / name).write_text(message, encoding="utf-8")
    run_command(["git", "add", name], cwd=repo)
    run_command(["git", "commit", "-q", "-m", message], cwd=repo)


@pytest.fixture
def repo(tmp_path):
    run_command(["git", "init", "-q"], cwd=tmp_path)
    run_command(["git", "config", "commit.gpgsign", "false"], cwd=tmp_path)
    run_command(["git", "config", "tag.gpgsign", "false"], cwd=tmp_path)
    return tmp_path


class TestStageAndCommit:
    def test_stages_only_listed_paths(self, repo):
        (repo / "a.md").write_text("a", encoding="utf-8")
        (repo / "b.md").write_text("b", encoding="utf-8")

        git.stage(["a.md"], cwd=repo)
        sha = git.commit("docs: add a", cwd=repo)

        assert len(sha) == 40
        assert run_command(["git", "show", "--name-only", "--format=", "HEAD"], cwd=repo) == "a.md"
        assert "?? b.md" in run_command(["git", "status", "--porcelain"], cwd=repo)

    def test_stage_requires_paths(self, repo):
        with pytest.raises(ValueError):
            git.stage([], cwd=repo)

    def test_commit_with_nothing_staged_fails(self, repo):
        _commit_file(repo, "a.md", "chore: init")
        with pytest.raises(git.CommandError):
            git.commit("empty", cwd=repo)


class TestHistory:
    def test_latest_tag_none_without_tags(self, repo):
        _commit_file(repo, "a.md", "chore: init")
        assert git.latest_tag(cwd=repo) is None

    def test_range_since_latest_tag(self, repo):
        _commit_file(repo, "a.md", "chore: init")
        run_command(["git", "tag", "v0.1.0"], cwd=repo)
        _commit_file(repo, "b.md", "feat: add b")
        _commit_file(repo, "c.md", "fix(c): handle empty\n\nBREAKING CHANGE: c is now required")

        tag = git.latest_tag(cwd=repo)
        commits = git.read_commit_range(tag, cwd=repo)

        assert tag == "v0.1.0"
        assert [c.header for c in commits] == ["feat: add b", "fix(c): handle empty"]
        assert "BREAKING CHANGE: c is now required" in commits[1].message
        assert commits[0].author
        assert len(commits[0].sha) == 40

    def test_full_history_without_from_ref(self, repo):
        _commit_file(repo, "a.md", "chore: init")
        _commit_file(repo, "b.md", "feat: add b")
        assert len(git.read_commit_range(None, cwd=repo)) == 2

    def test_empty_range(self, repo):
        _commit_file(repo, "a.md", "chore: init")
        run_command(["git", "tag", "v1.0.0"], cwd=repo)
        assert git.read_commit_range("v1.0.0", cwd=repo) == []

    def test_local_diff(self, repo):
        _commit_file(repo, "a.md", "chore: init")
        (repo / "a.md").write_text("changed\n", encoding="utf-8")
        diff = git.local_diff(cwd=repo)
        assert "+changed" in diff
