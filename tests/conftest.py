"""Shared fixtures: an in-memory platform client and a zero-delay retry policy."""

from __future__ import annotations

import pytest

from app.core.retry import RetryPolicy
from infra.forge import Comment, ForgeError, Issue, LabelSpec, PullRequest, ReleaseRequest


class FakeForge:
    """In-memory :class:`~infra.forge.ForgeClient`.

    ``fail[method] = exc`` makes every call of *method* raise *exc*;
    ``fail_times[method] = n`` limits that to the first *n* calls.
    """

    def __init__(self) -> None:
        self.comments: dict[int, list[Comment]] = {}
        self.repo_labels: list[str] = ["bug", "enhancement", "documentation"]
        self.issue_labels: dict[int, list[str]] = {}
        self.releases: list[ReleaseRequest] = []
        self.calls: list[str] = []
        self.fail: dict[str, Exception] = {}
        self.fail_times: dict[str, int] = {}
        self._next_id = 1000

    def _record(self, method: str) -> None:
        self.calls.append(method)
        exc = self.fail.get(method)
        if exc is None:
            return
        remaining = self.fail_times.get(method)
        if remaining is not None:
            if remaining <= 0:
                return
            self.fail_times[method] = remaining - 1
        raise exc

    def writes(self) -> list[str]:
        return [c for c in self.calls if c in {"create_comment", "update_comment"}]

    # Issues and pull requests

    def get_issue(self, repo: str, issue_id: int) -> Issue:
        self._record("get_issue")
        return Issue(id=issue_id, title="Crash on start", description="It crashes.",
                     labels=self.issue_labels.get(issue_id, []))

    def get_pull_request(self, repo: str, number: int) -> PullRequest:
        self._record("get_pull_request")
        return PullRequest(number=number, title="Add feature", body="Adds it.", head_sha="abcdef1234567")

    def get_pull_diff(self, repo: str, number: int) -> str:
        self._record("get_pull_diff")
        return "diff --git a/x.py b/x.py\n+print('hi')\n"

    # Comments

    def list_comments(self, repo: str, issue_id: int) -> list[Comment]:
        self._record("list_comments")
        return list(self.comments.get(issue_id, []))

    def create_comment(self, repo: str, issue_id: int, body: str) -> Comment:
        self._record("create_comment")
        self._next_id += 1
        comment = Comment(id=self._next_id, body=body)
        self.comments.setdefault(issue_id, []).append(comment)
        return comment

    def update_comment(self, repo: str, comment_id: int, body: str) -> Comment:
        self._record("update_comment")
        for thread in self.comments.values():
            for index, comment in enumerate(thread):
                if comment.id == comment_id:
                    thread[index] = Comment(id=comment_id, body=body)
                    return thread[index]
        raise ForgeError(f"comment {comment_id} not found", status_code=404)

    # Labels

    def list_labels(self, repo: str) -> list[str]:
        self._record("list_labels")
        return list(self.repo_labels)

    def create_label(self, repo: str, label: LabelSpec) -> None:
        self._record("create_label")
        if label.name in self.repo_labels:
            raise ForgeError('422 {"errors":[{"code":"already_exists"}]}', status_code=422)
        self.repo_labels.append(label.name)

    def add_labels(self, repo: str, issue_id: int, labels: list[str]) -> list[str]:
        self._record("add_labels")
        current = self.issue_labels.setdefault(issue_id, [])
        current.extend(name for name in labels if name not in current)
        return list(current)

    # Releases

    def latest_release_tag(self, repo: str) -> str | None:
        self._record("latest_release_tag")
        return self.releases[-1].tag if self.releases else None

    def create_release(self, repo: str, release: ReleaseRequest) -> str:
        self._record("create_release")
        self.releases.append(release)
        return f"https://github.com/{repo}/releases/tag/{release.tag}"


@pytest.fixture
def forge() -> FakeForge:
    return FakeForge()


@pytest.fixture
def policy() -> RetryPolicy:
    return RetryPolicy(max_attempts=3, base_delay=0.0)
