"""Tests for the documentation commit executor against a real git checkout."""

from __future__ import annotations

from pathlib import Path

import pytest

from app.core.retry import CancellationToken, RetryPolicy
from app.tools.docs import commit_docs
from app.tools.schemas import validate_tool_call
from app.tools.shell import run_command


def _git(cwd: Path, *args: str) -> str:
    return run_command(["git", *args], cwd=cwd)


@pytest.fixture
def checkout(tmp_path):
    """A working tree with one commit, tracking a bare remote."""
    remote = tmp_path / "remote.git"
    work = tmp_path / "work"
    work.mkdir()
    _git(tmp_path, "init", "-q", "--bare", str(remote))
    _git(work, "init", "-q")
    _git(work, "config", "commit.gpgsign", "false")
    (work / "README.md").write_text("# demo\n", encoding="utf-8")
    _git(work, "add", "README.md")
    _git(work, "commit", "-q", "-m", "chore: init")
    _git(work, "remote", "add", "origin", str(remote))
    _git(work, "push", "-q", "-u", "origin", "HEAD")
    return work


def _command(files, message="document the --dry-run flag"):
    return validate_tool_call("commit_docs", {"files": files, "message": message}).unwrap()


class TestCommitDocs:
    @pytest.mark.asyncio
    async def test_writes_commits_and_pushes(self, checkout, policy):
        (checkout / "scratch.txt").write_text("local notes\n", encoding="utf-8")
        cmd = _command([{"path": "docs/usage.md", "content": "# Usage\n"}])

        result = await commit_docs(cmd, policy, root=checkout)

        assert result.splitlines() == [
            "updated: docs/usage.md",
            "Committed and pushed: [skip ci] docs: document the --dry-run flag",
        ]
        assert (checkout / "docs" / "usage.md").read_text(encoding="utf-8") == "# Usage\n"
        assert _git(checkout, "log", "-1", "--format=%s") == "[skip ci] docs: document the --dry-run flag"
        assert _git(checkout, "show", "--name-only", "--format=", "HEAD") == "docs/usage.md"
        assert _git(checkout, "rev-list", "--count", "@{u}..HEAD") == "0"
        assert "scratch.txt" in _git(checkout, "status", "--porcelain")

    @pytest.mark.asyncio
    async def test_push_failure_halts_and_keeps_files(self, checkout, policy, tmp_path):
        _git(checkout, "remote", "set-url", "origin", str(tmp_path / "missing.git"))
        cmd = _command([{"path": "CHANGELOG.md", "content": "## 1.0.0\n"}])

        result = await commit_docs(cmd, policy, root=checkout)

        assert result.splitlines()[-1].startswith("failed: git:")
        assert "Could not read from remote repository" in result.splitlines()[-1]
        assert "Committed and pushed" not in result
        assert (checkout / "CHANGELOG.md").exists()

    @pytest.mark.asyncio
    async def test_cancelled_after_writing(self, checkout):
        token = CancellationToken()
        token.cancel()
        cmd = _command([{"path": "docs/a.md", "content": "a"}])

        result = await commit_docs(cmd, RetryPolicy(cancel=token), root=checkout)

        assert result.splitlines() == ["updated: docs/a.md", "aborted: operation aborted"]
        assert _git(checkout, "log", "-1", "--format=%s") == "chore: init"

    @pytest.mark.asyncio
    async def test_nothing_written(self, checkout, policy):
        (checkout / "docs").write_text("a file, not a directory", encoding="utf-8")
        cmd = _command([{"path": "docs/a.md", "content": "a"}])

        result = await commit_docs(cmd, policy, root=checkout)

        lines = result.splitlines()
        assert lines[0].startswith("failed: write docs/a.md:")
        assert lines[-1] == "failed: no files were written, nothing to commit"
