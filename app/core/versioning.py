"""Semantic version bump decision over a commit range.

Pure functions only — reading the commit range from git lives in
:mod:`app.tools.git`.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum

SEMVER_RE = re.compile(r"^v?\d+\.\d+\.\d+(-[\w.]+)?$")

_VERSION_PARTS_RE = re.compile(r"^(v?)(\d+)\.(\d+)\.(\d+)(?:-[\w.]+)?$")
# "type!:" or "type(scope)!:"
_BREAKING_HEADER_RE = re.compile(r"^\w+(\([^)]*\))?!:")
_FEATURE_HEADER_RE = re.compile(r"^feat(\([^)]*\))?:", re.IGNORECASE)
_BREAKING_BODY_MARKERS = ("BREAKING CHANGE", "BREAKING-CHANGE")
# Headers that never make it into release notes.
_EXCLUDED_NOTE_RE = re.compile(r"^(chore|test|ci|docs|release)(\([^)]*\))?!?:|^Merge ", re.IGNORECASE)


class BumpKind(str, Enum):
    MAJOR = "major"
    MINOR = "minor"
    PATCH = "patch"


# Highest priority first.
_PRIORITY = (BumpKind.MAJOR, BumpKind.MINOR, BumpKind.PATCH)


@dataclass(frozen=True)
class Commit:
    sha: str
    message: str
    author: str = ""

    @property
    def header(self) -> str:
        return self.message.strip().split("\n", 1)[0].strip()


@dataclass(frozen=True)
class ReleasePlan:
    """A release decision computed once from a commit-range snapshot."""

    version: str
    bump: BumpKind
    notes: tuple[str, ...]


def classify_commit(commit: Commit) -> BumpKind:
    """Classify a single commit by its conventional-commit message."""
    if any(marker in commit.message for marker in _BREAKING_BODY_MARKERS):
        return BumpKind.MAJOR
    header = commit.header
    if _BREAKING_HEADER_RE.match(header):
        return BumpKind.MAJOR
    if _FEATURE_HEADER_RE.match(header):
        return BumpKind.MINOR
    return BumpKind.PATCH


def decide_bump(commits: list[Commit]) -> BumpKind | None:
    """Aggregate bump class for a commit range.

    Returns ``None`` for an empty range: there is nothing to release, which is
    not the same as a patch release.
    """
    if not commits:
        return None
    kinds = {classify_commit(commit) for commit in commits}
    for kind in _PRIORITY:
        if kind in kinds:
            return kind
    return BumpKind.PATCH


def is_version(text: str) -> bool:
    """True when *text* is ``MAJOR.MINOR.PATCH`` with an optional ``v`` and pre-release suffix."""
    return bool(_VERSION_PARTS_RE.match(text.strip()))


def bump_version(version: str, kind: BumpKind | str) -> str:
    """Return *version* bumped by *kind*.

    A leading ``v`` is preserved; a pre-release suffix is dropped.

    >>> bump_version("1.2.3", "minor")
    '1.3.0'
    """
    match = _VERSION_PARTS_RE.match(version.strip())
    if not match:
        raise ValueError(f"Not a semantic version: {version!r}")
    prefix = match.group(1)
    major, minor, patch = (int(part) for part in match.group(2, 3, 4))
    kind = BumpKind(kind)
    if kind is BumpKind.MAJOR:
        return f"{prefix}{major + 1}.0.0"
    if kind is BumpKind.MINOR:
        return f"{prefix}{major}.{minor + 1}.0"
    return f"{prefix}{major}.{minor}.{patch + 1}"


def release_notes(commits: list[Commit]) -> tuple[str, ...]:
    """Bullet notes for user-facing commits, oldest first."""
    notes: list[str] = []
    for commit in commits:
        header = commit.header
        if not header or _EXCLUDED_NOTE_RE.match(header):
            continue
        notes.append(f"- {header} ({commit.sha[:7]})")
    return tuple(notes)


def plan_release(current_version: str, commits: list[Commit]) -> ReleasePlan | None:
    """Compute the release plan for *commits* on top of *current_version*."""
    kind = decide_bump(commits)
    if kind is None:
        return None
    return ReleasePlan(
        version=bump_version(current_version, kind),
        bump=kind,
        notes=release_notes(commits),
    )
