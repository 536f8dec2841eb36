"""Collaboration-platform interface — abstract protocol and shared data models.

All code that needs to talk to the collaboration platform (issues, pull
requests, comments, labels, releases) goes through a ``ForgeClient``
implementation.  Direct HTTP calls to the platform outside this package are
not allowed.
"""

from __future__ import annotations

from datetime import datetime
from typing import Protocol, runtime_checkable

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Data models
# ---------------------------------------------------------------------------


class Issue(BaseModel):
    """A platform issue."""

    id: int
    title: str
    description: str = ""
    url: str = ""
    labels: list[str] = Field(default_factory=list)
    author: str = ""
    created_at: datetime | None = None


class PullRequest(BaseModel):
    """The subset of pull request metadata the review prompt needs."""

    number: int
    title: str
    body: str = ""
    head_sha: str
    base_branch: str = ""
    head_branch: str = ""


class Comment(BaseModel):
    """An issue / pull request conversation comment."""

    id: int
    body: str = ""


class LabelSpec(BaseModel):
    """A label to create in a repository."""

    name: str
    color: str
    description: str = ""


class ReleaseRequest(BaseModel):
    """Payload for creating a tagged platform release."""

    tag: str
    title: str
    notes: str
    prerelease: bool = False
    draft: bool = False


# ---------------------------------------------------------------------------
# Protocol
# ---------------------------------------------------------------------------


@runtime_checkable
class ForgeClient(Protocol):
    """Platform operations required by the tool executors and workflows.

    All methods are synchronous.  Async callers should run them in a thread
    pool (e.g. ``asyncio.to_thread``).  Every method raises
    :class:`ForgeError` on HTTP or parsing errors.
    """

    # ------------------------------------------------------------------
    # Issues and pull requests
    # ------------------------------------------------------------------

    def get_issue(self, repo: str, issue_id: int) -> Issue:
        """Fetch a single issue by number."""
        ...

    def get_pull_request(self, repo: str, number: int) -> PullRequest:
        """Fetch pull request metadata."""
        ...

    def get_pull_diff(self, repo: str, number: int) -> str:
        """Return the unified diff of a pull request."""
        ...

    # ------------------------------------------------------------------
    # Comments
    # ------------------------------------------------------------------

    def list_comments(self, repo: str, issue_id: int) -> list[Comment]:
        """List every conversation comment on an issue or pull request (all pages)."""
        ...

    def create_comment(self, repo: str, issue_id: int, body: str) -> Comment:
        """Post a new comment and return it."""
        ...

    def update_comment(self, repo: str, comment_id: int, body: str) -> Comment:
        """Replace the body of an existing comment."""
        ...

    # ------------------------------------------------------------------
    # Labels
    # ------------------------------------------------------------------

    def list_labels(self, repo: str) -> list[str]:
        """Return the label names defined in a repository."""
        ...

    def create_label(self, repo: str, label: LabelSpec) -> None:
        """Create a label.  Raises :class:`ForgeError` if it already exists."""
        ...

    def add_labels(self, repo: str, issue_id: int, labels: list[str]) -> list[str]:
        """Add labels to an issue in one call; return the issue's labels afterwards."""
        ...

    # ------------------------------------------------------------------
    # Releases
    # ------------------------------------------------------------------

    def latest_release_tag(self, repo: str) -> str | None:
        """Return the tag of the latest published release, or ``None``."""
        ...

    def create_release(self, repo: str, release: ReleaseRequest) -> str:
        """Create a tagged release and return its URL."""
        ...


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class ForgeError(Exception):
    """Raised for any platform API error (HTTP errors, missing fields, …)."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code

    @property
    def is_conflict(self) -> bool:
        """True when the resource already exists."""
        text = str(self).lower()
        return self.status_code == 409 or "already_exists" in text or "already exists" in text

    def __repr__(self) -> str:  # pragma: no cover
        return f"ForgeError({self.args[0]!r}, status_code={self.status_code})"
