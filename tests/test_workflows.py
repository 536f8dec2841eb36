"""Tests for the task workflows: context gathering, tool enablement, release planning."""

from __future__ import annotations

import asyncio
import json

import pytest

from app.core.active_repo import clear_repo_root, set_repo_root
from app.core.workflows import (
    NOTHING_TO_RELEASE,
    current_version,
    read_manifest_version,
    run_doc_sync,
    run_label,
    run_platform_release,
    run_release,
    run_review,
    run_setup,
)
from app.tools.shell import run_command
from infra.backend import Message


class RecordingBackend:
    """Backend that records prompts and answers with a fixed message; the event stream stays silent."""

    def __init__(self, reply: str = "Done.") -> None:
        self.reply = reply
        self.prompts: list[dict] = []
        self.deleted: list[str] = []

    async def create_session(self, title: str = "") -> str:
        return "ses_1"

    async def prompt(self, session_id, model, text, tools=None) -> Message:
        self.prompts.append({"text": text, "tools": tools, "model": str(model)})
        return Message.model_validate({
            "info": {"id": "msg_1", "sessionID": session_id, "role": "assistant",
                     "time": {"created": 1.0, "completed": 2.0}},
            "parts": [{"type": "text", "text": self.reply}],
        })

    async def subscribe(self, connected=None):
        if connected is not None:
            connected.set()
        await asyncio.Event().wait()
        yield

    async def get_message(self, session_id, message_id):
        raise AssertionError("no events are emitted")

    async def reply_tool(self, session_id, call_id, output):
        raise AssertionError("no events are emitted")

    async def delete_session(self, session_id):
        self.deleted.append(session_id)


def _enabled(prompt: dict) -> set[str]:
    return {name for name, on in prompt["tools"].items() if on}


@pytest.fixture
def backend() -> RecordingBackend:
    return RecordingBackend()


@pytest.fixture
def repo(tmp_path):
    """A git checkout registered as the active working tree root."""
    run_command(["git", "init", "-q"], cwd=tmp_path)
    run_command(["git", "config", "commit.gpgsign", "false"], cwd=tmp_path)
    set_repo_root(str(tmp_path))
    yield tmp_path
    clear_repo_root()


def _commit(repo, name: str, message: str) -> None:
    (repo / name).write_text(message, encoding="utf-8")
    run_command(["git", "add", name], cwd=repo)
    run_command(["git", "commit", "-q", "-m", message], cwd=repo)


class TestReviewAndLabel:
    @pytest.mark.asyncio
    async def test_review_prompt_and_tools(self, forge, backend):
        result = await run_review("owner/repo", 7, forge=forge, backend=backend, model="p/m")

        assert result == "Done."
        prompt = backend.prompts[0]
        assert "abcdef1234567" in prompt["text"]
        assert "+print('hi')" in prompt["text"]
        assert _enabled(prompt) == {"submit_review"}
        assert prompt["model"] == "p/m"
        assert backend.deleted == ["ses_1"]

    @pytest.mark.asyncio
    async def test_label_prompt_lists_repository_labels(self, forge, backend):
        forge.issue_labels[12] = ["bug"]
        await run_label("owner/repo", 12, forge=forge, backend=backend, model="p/m")

        text = backend.prompts[0]["text"]
        assert "Crash on start" in text
        assert "- documentation" in text
        assert _enabled(backend.prompts[0]) == {"apply_labels"}


class TestDocSync:
    @pytest.mark.asyncio
    async def test_pull_request_diff(self, forge, backend):
        await run_doc_sync("owner/repo", 7, forge=forge, backend=backend, model="p/m")
        assert _enabled(backend.prompts[0]) == {"commit_docs"}
        assert "Pull request #7: Add feature" in backend.prompts[0]["text"]

    @pytest.mark.asyncio
    async def test_empty_local_diff_skips_session(self, repo, backend):
        _commit(repo, "README.md", "chore: init")
        result = await run_doc_sync("owner/repo", backend=backend, model="p/m")
        assert result == "No changes to document."
        assert backend.prompts == []


class TestRelease:
    @pytest.mark.asyncio
    async def test_nothing_to_release(self, repo, backend):
        _commit(repo, "README.md", "chore: init")
        run_command(["git", "tag", "v1.0.0"], cwd=repo)

        result = await run_release("owner/repo", backend=backend, model="p/m")

        assert result == NOTHING_TO_RELEASE
        assert backend.prompts == []

    @pytest.mark.asyncio
    async def test_plan_is_in_prompt(self, repo, backend):
        (repo / "package.json").write_text(json.dumps({"name": "demo", "version": "1.2.3"}), encoding="utf-8")
        _commit(repo, "README.md", "chore: init")
        run_command(["git", "tag", "v1.2.3"], cwd=repo)
        _commit(repo, "search.md", "feat: add search")

        await run_release("owner/repo", backend=backend, model="p/m")

        text = backend.prompts[0]["text"]
        assert "v1.2.3" in text
        assert "1.3.0" in text
        assert "- feat: add search" in text
        assert _enabled(backend.prompts[0]) == {"bun_release", "github_release"}

    def test_manifest_version(self, tmp_path):
        assert read_manifest_version(tmp_path) is None
        (tmp_path / "package.json").write_text('{"version": "0.4.0"}', encoding="utf-8")
        assert read_manifest_version(tmp_path) == "0.4.0"
        (tmp_path / "package.json").write_text("{not json", encoding="utf-8")
        assert read_manifest_version(tmp_path) is None

    @pytest.mark.asyncio
    async def test_non_semver_tag_starts_from_zero(self, repo, backend):
        _commit(repo, "README.md", "chore: init")
        run_command(["git", "tag", "release-2024"], cwd=repo)
        _commit(repo, "search.md", "feat: add search")

        await run_release("owner/repo", backend=backend, model="p/m")

        text = backend.prompts[0]["text"]
        assert "release-2024" in text
        assert "0.1.0" in text

    def test_current_version_order(self, tmp_path):
        assert current_version("v2.0.0", root=tmp_path) == "2.0.0"
        assert current_version("release-2024", root=tmp_path) == "0.0.0"
        assert current_version(None, root=tmp_path) == "0.0.0"
        (tmp_path / "package.json").write_text('{"version": "1.4.0"}', encoding="utf-8")
        assert current_version("v2.0.0", root=tmp_path) == "1.4.0"
        (tmp_path / "package.json").write_text('{"version": "next"}', encoding="utf-8")
        assert current_version("v2.0.0", root=tmp_path) == "2.0.0"

    @pytest.mark.asyncio
    async def test_platform_release_alone(self, forge):
        result = await run_platform_release("owner/repo", "v1.0.0", ["Fixed crash"], forge=forge)
        assert result.startswith("created: release v1.0.0")
        assert forge.releases[0].title == "v1.0.0"


class TestSetup:
    @pytest.mark.asyncio
    async def test_setup_writes_workflows(self, tmp_path):
        set_repo_root(str(tmp_path))
        try:
            result = await run_setup(["review"])
        finally:
            clear_repo_root()
        assert result.startswith("created: .github/workflows/pr-review.yml")
        assert (tmp_path / ".github" / "workflows" / "pr-review.yml").exists()

    @pytest.mark.asyncio
    async def test_setup_dry_run(self, tmp_path):
        set_repo_root(str(tmp_path))
        try:
            result = await run_setup(["review"], dry_run=True)
        finally:
            clear_repo_root()
        assert result == "dry-run: setup_workflows call is valid; no changes were made."
        assert not (tmp_path / ".github").exists()
