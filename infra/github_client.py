"""GitHub platform client.

Implements :class:`~infra.forge.ForgeClient` against the GitHub REST API v3.
Authentication uses a personal access token (or the Actions ``GITHUB_TOKEN``)
supplied via the ``GITHUB_TOKEN`` environment variable / config key.

Usage::

    from infra.factory import get_github_client
    client = get_github_client()
    comments = client.list_comments("owner/repo", 42)
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any
from urllib.parse import quote

import httpx

from infra.forge import Comment, ForgeError, Issue, LabelSpec, PullRequest, ReleaseRequest

_GITHUB_API = "https://api.github.com"
_PER_PAGE = 100


def _parse_dt(value: str | None) -> datetime | None:
    """Parse an ISO-8601 timestamp returned by GitHub (``2024-01-02T03:04:05Z``)."""
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.rstrip("Z")).replace(tzinfo=timezone.utc)
    except ValueError:
        return None


class GitHubClient:
    """GitHub REST API v3 client.

    Args:
        token: GitHub token.  Pass an empty string to make unauthenticated
               requests (read-only, rate-limited to 60 req/h).
        base_url: API base URL.  Override in tests or for GitHub Enterprise.
        timeout: HTTP timeout in seconds (default 30).
    """

    def __init__(
        self,
        token: str = "",
        base_url: str = _GITHUB_API,
        timeout: float = 30.0,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        headers: dict[str, str] = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
        }
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._client = httpx.Client(headers=headers, timeout=timeout)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        url: str | None = None,
    ) -> httpx.Response:
        target = url or f"{self._base_url}{path}"
        try:
            response = self._client.request(method, target, params=params, json=json, headers=headers)
            response.raise_for_status()
            return response
        except httpx.HTTPStatusError as exc:
            raise ForgeError(
                f"GitHub {method} {path} failed: {exc.response.status_code} {exc.response.text[:200]}",
                status_code=exc.response.status_code,
            ) from exc
        except httpx.RequestError as exc:
            raise ForgeError(
                f"GitHub {method} {path} network error: {type(exc).__name__}: {exc}"
            ) from exc

    def _get(self, path: str, params: dict[str, Any] | None = None) -> Any:
        return self._request("GET", path, params=params).json()

    def _get_paginated(self, path: str, params: dict[str, Any] | None = None) -> list[Any]:
        """Follow ``Link: rel="next"`` headers and concatenate every page."""
        items: list[Any] = []
        response = self._request("GET", path, params={**(params or {}), "per_page": _PER_PAGE})
        items.extend(response.json())
        while "next" in response.links:
            response = self._request("GET", path, url=response.links["next"]["url"])
            items.extend(response.json())
        return items

    def _post(self, path: str, json: dict[str, Any]) -> Any:
        return self._request("POST", path, json=json).json()

    def _patch(self, path: str, json: dict[str, Any]) -> Any:
        return self._request("PATCH", path, json=json).json()

    def _repo_path(self, repo: str) -> str:
        """Return URL-encoded ``/repos/owner/name``."""
        return f"/repos/{quote(repo, safe='/')}"

    def _issue_from_dict(self, data: dict[str, Any]) -> Issue:
        return Issue(
            id=data["number"],
            title=data.get("title", ""),
            description=data.get("body") or "",
            url=data.get("html_url", ""),
            labels=[lbl["name"] for lbl in data.get("labels", [])],
            author=(data.get("user") or {}).get("login", ""),
            created_at=_parse_dt(data.get("created_at")),
        )

    # ------------------------------------------------------------------
    # Issues and pull requests
    # ------------------------------------------------------------------

    def get_issue(self, repo: str, issue_id: int) -> Issue:
        """Fetch a single GitHub issue.

        Args:
            repo:     ``owner/name``.
            issue_id: Issue number.
        """
        data = self._get(f"{self._repo_path(repo)}/issues/{issue_id}")
        return self._issue_from_dict(data)

    def get_pull_request(self, repo: str, number: int) -> PullRequest:
        data = self._get(f"{self._repo_path(repo)}/pulls/{number}")
        try:
            return PullRequest(
                number=data["number"],
                title=data.get("title", ""),
                body=data.get("body") or "",
                head_sha=data["head"]["sha"],
                base_branch=data.get("base", {}).get("ref", ""),
                head_branch=data["head"].get("ref", ""),
            )
        except (KeyError, TypeError) as exc:
            raise ForgeError(f"Unexpected pull request payload for #{number}: missing {exc}") from exc

    def get_pull_diff(self, repo: str, number: int) -> str:
        response = self._request(
            "GET",
            f"{self._repo_path(repo)}/pulls/{number}",
            headers={"Accept": "application/vnd.github.diff"},
        )
        return response.text

    # ------------------------------------------------------------------
    # Comments
    # ------------------------------------------------------------------

    def list_comments(self, repo: str, issue_id: int) -> list[Comment]:
        """List all conversation comments on an issue or PR.

        Args:
            repo:     ``owner/name``.
            issue_id: Issue / PR number.
        """
        data = self._get_paginated(f"{self._repo_path(repo)}/issues/{issue_id}/comments")
        return [Comment(id=item["id"], body=item.get("body") or "") for item in data]

    def create_comment(self, repo: str, issue_id: int, body: str) -> Comment:
        """Post a comment on a GitHub issue or PR."""
        data = self._post(f"{self._repo_path(repo)}/issues/{issue_id}/comments", json={"body": body})
        return Comment(id=data["id"], body=data.get("body") or "")

    def update_comment(self, repo: str, comment_id: int, body: str) -> Comment:
        """Replace the body of comment *comment_id*."""
        data = self._patch(f"{self._repo_path(repo)}/issues/comments/{comment_id}", json={"body": body})
        return Comment(id=data["id"], body=data.get("body") or "")

    # ------------------------------------------------------------------
    # Labels
    # ------------------------------------------------------------------

    def list_labels(self, repo: str) -> list[str]:
        data = self._get_paginated(f"{self._repo_path(repo)}/labels")
        return [item["name"] for item in data]

    def create_label(self, repo: str, label: LabelSpec) -> None:
        """Create a repository label.

        GitHub answers ``422`` with ``already_exists`` for duplicates; the
        resulting :class:`ForgeError` reports ``is_conflict``.
        """
        self._post(
            f"{self._repo_path(repo)}/labels",
            json={"name": label.name, "color": label.color, "description": label.description},
        )

    def add_labels(self, repo: str, issue_id: int, labels: list[str]) -> list[str]:
        data = self._post(f"{self._repo_path(repo)}/issues/{issue_id}/labels", json={"labels": labels})
        return [item["name"] for item in data]

    # ------------------------------------------------------------------
    # Releases
    # ------------------------------------------------------------------

    def latest_release_tag(self, repo: str) -> str | None:
        try:
            data = self._get(f"{self._repo_path(repo)}/releases/latest")
        except ForgeError as exc:
            if exc.status_code == 404:
                return None
            raise
        return data.get("tag_name") or None

    def create_release(self, repo: str, release: ReleaseRequest) -> str:
        """Create a tagged release; returns the release page URL."""
        data = self._post(
            f"{self._repo_path(repo)}/releases",
            json={
                "tag_name": release.tag,
                "name": release.title,
                "body": release.notes,
                "prerelease": release.prerelease,
                "draft": release.draft,
            },
        )
        return data.get("html_url", "")

    def close(self) -> None:
        self._client.close()

    def __repr__(self) -> str:  # pragma: no cover
        return f"GitHubClient(base_url={self._base_url!r})"
