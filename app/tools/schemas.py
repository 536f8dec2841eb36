"""Typed tool-call contracts and their cross-field invariants.

:func:`validate_tool_call` turns an untyped payload from the model into one of
the frozen command models below, or into a list of field-addressed errors.
Validation runs in two stages — pydantic parses the shape, then the
per-tool invariant checks run on the parsed model — and a payload is only
accepted when both stages pass.  Nothing in this module performs I/O.

Wire names are camelCase (``issueNumber``, ``newLabels``); Python attributes
are snake_case.
"""

from __future__ import annotations

import math
import posixpath
import re
from dataclasses import dataclass
from typing import Any, Callable, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, PositiveInt, ValidationError, field_validator
from pydantic.alias_generators import to_camel

from app.core.errors import FieldError, ToolValidationError
from app.core.versioning import SEMVER_RE

REPOSITORY_PATTERN = r"^[^/]+/[^/]+$"
MAX_LABELS = 3
MIN_EXPLANATION_CHARS = 10
MIN_SUMMARY_CHARS = 20
PLACEHOLDER_SUMMARIES = frozenset({"test", "testing"})
BLOCKING_SEVERITIES = frozenset({"critical", "high", "medium"})
MAX_TITLE_CHARS = 80

Severity = Literal["critical", "high", "medium", "low"]
Verdict = Literal["approve", "request_changes"]
WorkflowName = Literal["review", "label", "doc-sync", "release"]

SUGGESTION_PREFIXES: list[re.Pattern[str]] = [
    re.compile(r"^change to:\s*", re.IGNORECASE),
    re.compile(r"^change it to:\s*", re.IGNORECASE),
    re.compile(r"^replace with:\s*", re.IGNORECASE),
    re.compile(r"^suggestion:\s*", re.IGNORECASE),
    re.compile(r"^add a comment:\s*", re.IGNORECASE),
]
_CODE_FENCE_RE = re.compile(r"```[a-zA-Z0-9_-]*\n([\s\S]*?)```")
_HEX_COLOR_RE = re.compile(r"^[0-9a-fA-F]{6}$")


def collapse_whitespace(text: str) -> str:
    return re.sub(r"\s+", " ", text).strip()


def normalize_suggestion(suggestion: str) -> str:
    """Reduce a suggestion to bare replacement code.

    The first fenced block wins over surrounding prose; conversational
    prefixes such as ``Change to:`` are stripped.
    """
    trimmed = suggestion.strip()
    fenced = _CODE_FENCE_RE.search(trimmed)
    normalized = (fenced.group(1) if fenced else trimmed).strip()
    for prefix in SUGGESTION_PREFIXES:
        normalized = prefix.sub("", normalized).strip()
    return normalized


def clip_title(title: str) -> str:
    """Cut *title* to ``MAX_TITLE_CHARS``, ending in ``...`` when shortened."""
    title = title.strip()
    if len(title) <= MAX_TITLE_CHARS:
        return title
    return title[: MAX_TITLE_CHARS - 3] + "..."


def derive_title(explanation: str, index: int) -> str:
    """Build an issue title from the first sentence of its explanation."""
    trimmed = explanation.strip()
    if not trimmed:
        return f"Issue {index + 1}"
    first_line = trimmed.split("\n")[0].strip()
    first_sentence = first_line.split(". ")[0].strip()
    return clip_title(first_sentence or first_line or f"Issue {index + 1}")


# ---------------------------------------------------------------------------
# Command models
# ---------------------------------------------------------------------------


class ToolArgs(BaseModel):
    """Base for every validated command: frozen, camelCase on the wire."""

    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class NewLabel(ToolArgs):
    name: str = Field(min_length=1, description="Label name")
    color: str = Field(description="Hex color without #")
    description: str = Field(default="", description="Brief description")

    @field_validator("color")
    @classmethod
    def _hex_color(cls, value: str) -> str:
        value = value.strip().lstrip("#")
        if not _HEX_COLOR_RE.match(value):
            raise ValueError("color must be a 6-digit hex value without '#'")
        return value.lower()


class LabelApplication(ToolArgs):
    """Apply labels to a GitHub issue."""

    repository: str = Field(pattern=REPOSITORY_PATTERN, description="GitHub repository in owner/repo format")
    issue_number: PositiveInt = Field(description="Issue number")
    labels: list[str] = Field(description="Existing label names to apply (max 3)")
    new_labels: list[NewLabel] = Field(default_factory=list, description="New labels to create before applying")
    explanation: str = Field(description="Brief explanation of label choices")

    @field_validator("new_labels", mode="before")
    @classmethod
    def _none_is_empty(cls, value: Any) -> Any:
        return [] if value is None else value


class ReviewIssue(ToolArgs):
    file: str = Field(description="File path from the diff")
    line: int = Field(description="Line number on the RIGHT (new) side; 0 if unknown")
    severity: Severity = Field(description="Issue severity")
    title: str = Field(default="", description="Short issue title")
    explanation: str = Field(default="", description="Detailed explanation")
    suggestion: str | None = Field(
        default=None,
        description="Replacement code only (no prose, no code fences, no 'change to' prefix)",
    )

    @field_validator("line", mode="before")
    @classmethod
    def _coerce_line(cls, value: Any) -> int:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ValueError("line must be a number")
        if not math.isfinite(value) or value <= 0:
            return 0
        return math.floor(value)

    @field_validator("title")
    @classmethod
    def _clip_title(cls, value: str) -> str:
        return clip_title(value)

    @field_validator("suggestion")
    @classmethod
    def _normalize_suggestion(cls, value: str | None) -> str | None:
        if value is None:
            return None
        return normalize_suggestion(value) or None


class ReviewSubmission(ToolArgs):
    """Submit a single sticky review comment on a GitHub PR."""

    repository: str = Field(pattern=REPOSITORY_PATTERN, description="GitHub repository in owner/repo format")
    pull_number: PositiveInt = Field(description="Pull request number")
    commit_sha: str = Field(min_length=7, description="Head commit SHA for the pull request")
    summary: str = Field(description="Brief overall assessment of the changes")
    verdict: Verdict = Field(description="Review verdict")
    issues: list[ReviewIssue] = Field(description="List of issues found")

    @field_validator("issues")
    @classmethod
    def _fill_titles(cls, issues: list[ReviewIssue]) -> list[ReviewIssue]:
        normalized = []
        for index, issue in enumerate(issues):
            explanation = issue.explanation.strip()
            normalized.append(issue.model_copy(update={
                "title": issue.title.strip() or derive_title(explanation, index),
                "explanation": explanation or "No explanation provided.",
            }))
        return normalized


class ReleasePublish(ToolArgs):
    """Release a package: bump the version, push with tags, pack and publish."""

    version: str = Field(pattern=SEMVER_RE.pattern, description="Version to release (e.g. v1.2.3 or 1.2.3)")


class GitHubRelease(ToolArgs):
    """Create a GitHub release with release notes."""

    repository: str = Field(pattern=REPOSITORY_PATTERN, description="GitHub repository in owner/repo format")
    tag: str = Field(pattern=SEMVER_RE.pattern, description="Version tag (e.g. v1.2.3 or 1.2.3)")
    notes: list[str] = Field(description="Release notes as bullet points (one string per bullet)")
    title: str | None = Field(default=None, description="Release title (defaults to tag name)")
    prerelease: bool = Field(default=False, description="Mark as prerelease")
    draft: bool = Field(default=False, description="Create as draft release")


class DocFile(ToolArgs):
    path: str = Field(description="File path relative to repo root")
    content: str = Field(description="New file content")


class DocCommit(ToolArgs):
    """Commit documentation updates to the PR branch."""

    files: list[DocFile] = Field(description="Files to update")
    message: str = Field(description="Commit message (will be prefixed with [skip ci] docs:)")


class WorkflowSetup(ToolArgs):
    """Set up GitHub Actions workflows for the agents."""

    workflows: list[WorkflowName] = Field(description="Which workflows to install")


ValidatedCommand = Union[
    LabelApplication, ReviewSubmission, ReleasePublish, GitHubRelease, DocCommit, WorkflowSetup
]


# ---------------------------------------------------------------------------
# Cross-field invariants
# ---------------------------------------------------------------------------


def _check_labels(cmd: LabelApplication) -> list[FieldError]:
    errors: list[FieldError] = []
    count = len(cmd.labels) + len(cmd.new_labels)
    if count == 0:
        errors.append(FieldError("labels", "At least one label or new label must be provided."))
    if count > MAX_LABELS:
        errors.append(FieldError(
            "labels", f"You may apply at most {MAX_LABELS} labels in total (existing plus new).",
        ))
    if len(collapse_whitespace(cmd.explanation)) < MIN_EXPLANATION_CHARS:
        errors.append(FieldError(
            "explanation", "Explanation is too short. Briefly describe why these labels were chosen.",
        ))
    return errors


def _check_review(cmd: ReviewSubmission) -> list[FieldError]:
    errors: list[FieldError] = []
    if cmd.summary.strip().lower() in PLACEHOLDER_SUMMARIES:
        errors.append(FieldError(
            "summary",
            "Summary looks like a placeholder. Only call submit_review with a real review "
            "summary after analyzing the diff.",
        ))
    if cmd.verdict == "request_changes" and not cmd.issues:
        errors.append(FieldError(
            "issues",
            "request_changes verdicts must include at least one issue with file, line, "
            "severity, and explanation.",
        ))
    if cmd.verdict == "approve" and any(i.severity in BLOCKING_SEVERITIES for i in cmd.issues):
        errors.append(FieldError(
            "verdict",
            "Approve verdict is only allowed when there are no critical, high, or medium severity issues.",
        ))
    needs_summary = cmd.verdict == "request_changes" or bool(cmd.issues)
    if needs_summary and len(collapse_whitespace(cmd.summary)) < MIN_SUMMARY_CHARS:
        errors.append(FieldError(
            "summary",
            f"Summary is too short. Provide a meaningful overall assessment (at least "
            f"{MIN_SUMMARY_CHARS} characters).",
        ))
    return errors


def _check_github_release(cmd: GitHubRelease) -> list[FieldError]:
    errors: list[FieldError] = []
    if not cmd.notes:
        errors.append(FieldError("notes", "At least one release note bullet point must be provided."))
    if any(not note.strip() for note in cmd.notes):
        errors.append(FieldError("notes", "Release note bullet points must not be empty."))
    return errors


def escapes_root(path: str) -> bool:
    """True if the relative *path* does not name a file inside the root.

    Lexical only: absolute paths, drive letters and ``..`` segments that
    climb above the root are all escapes.
    """
    candidate = path.strip().replace("\\", "/")
    if not candidate or candidate.startswith("/") or re.match(r"^[A-Za-z]:", candidate):
        return True
    normalized = posixpath.normpath(candidate)
    return normalized in (".", "..") or normalized.startswith("../")


def _check_docs(cmd: DocCommit) -> list[FieldError]:
    errors: list[FieldError] = []
    if not cmd.files:
        errors.append(FieldError(
            "files", "At least one documentation file must be provided when calling commit_docs.",
        ))
    if not collapse_whitespace(cmd.message):
        errors.append(FieldError("message", "Commit message must not be empty."))
    for index, doc in enumerate(cmd.files):
        if escapes_root(doc.path):
            errors.append(FieldError(
                f"files.{index}.path", f"Path {doc.path!r} escapes the repository root.",
            ))
    return errors


def _check_workflows(cmd: WorkflowSetup) -> list[FieldError]:
    if not cmd.workflows:
        return [FieldError("workflows", "You must specify at least one workflow to install.")]
    return []


def _no_invariants(cmd: BaseModel) -> list[FieldError]:
    return []


# tool name -> (command model, invariant check)
TOOL_SCHEMAS: dict[str, tuple[type[ToolArgs], Callable[[Any], list[FieldError]]]] = {
    "apply_labels": (LabelApplication, _check_labels),
    "submit_review": (ReviewSubmission, _check_review),
    "github_release": (GitHubRelease, _check_github_release),
    "bun_release": (ReleasePublish, _no_invariants),
    "commit_docs": (DocCommit, _check_docs),
    "setup_workflows": (WorkflowSetup, _check_workflows),
}


@dataclass(frozen=True)
class ValidationResult:
    """Either a validated command or the reasons the call was rejected."""

    tool: str
    command: ValidatedCommand | None = None
    errors: tuple[FieldError, ...] = ()

    @property
    def ok(self) -> bool:
        return self.command is not None and not self.errors

    def unwrap(self) -> ValidatedCommand:
        """Return the command or raise :class:`ToolValidationError`."""
        if not self.ok:
            raise ToolValidationError(self.tool, list(self.errors))
        assert self.command is not None
        return self.command

    def describe(self) -> str:
        """Line-oriented rejection text suitable for returning to the model."""
        lines = [f"Rejected {self.tool} call:"]
        lines.extend(f"- {err}" for err in self.errors)
        return "\n".join(lines)


def _pydantic_errors(exc: ValidationError) -> list[FieldError]:
    return [
        FieldError(".".join(str(part) for part in err["loc"]), err["msg"])
        for err in exc.errors()
    ]


def validate_tool_call(name: str, payload: Any) -> ValidationResult:
    """Parse and check *payload* for tool *name*.  Never raises for bad input."""
    if name not in TOOL_SCHEMAS:
        known = ", ".join(sorted(TOOL_SCHEMAS))
        return ValidationResult(name, errors=(FieldError("tool", f"Unknown tool {name!r}. Known: {known}"),))
    if not isinstance(payload, dict):
        return ValidationResult(name, errors=(FieldError("", "Tool arguments must be a JSON object."),))

    model, check = TOOL_SCHEMAS[name]
    try:
        command = model.model_validate(payload)
    except ValidationError as exc:
        return ValidationResult(name, errors=tuple(_pydantic_errors(exc)))

    errors = check(command)
    if errors:
        return ValidationResult(name, errors=tuple(errors))
    return ValidationResult(name, command=command)


def tool_parameters(name: str) -> dict[str, Any]:
    """JSON schema of a tool's arguments, using wire (camelCase) names."""
    model, _ = TOOL_SCHEMAS[name]
    return model.model_json_schema(by_alias=True)
