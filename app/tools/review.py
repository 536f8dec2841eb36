"""Sticky review comment — one comment per pull request, updated in place.

The comment is found by :data:`STICKY_MARKER`.  Re-running a review updates
the existing comment instead of stacking a new one, so repeating the same
call leaves exactly one marked comment with the latest body.
"""

from __future__ import annotations

import asyncio
import re

from app.core.errors import AbortError
from app.core.logging import get_logger
from app.core.retry import RetryPolicy
from app.tools.schemas import ReviewIssue, ReviewSubmission, normalize_suggestion
from infra.forge import ForgeClient, ForgeError

logger = get_logger("tools.review")

STICKY_MARKER = "<!-- open-workflows:review-sticky -->"

# Leftovers when a model spills the JSON of its own tool call into the summary.
_SUMMARY_ARTIFACT_RE = re.compile(r'^(.*?)(?:",\s*"?verdict"?|"verdict")', re.DOTALL)


def sanitize_summary(summary: str) -> str:
    trimmed = summary.strip()
    match = _SUMMARY_ARTIFACT_RE.match(trimmed)
    return match.group(1).strip() if match else trimmed


def _format_verdict(verdict: str) -> str:
    return "REQUEST CHANGES" if verdict == "request_changes" else verdict.upper()


def _indent(text: str, prefix: str) -> str:
    return "\n".join(prefix + line for line in text.split("\n"))


def _location(issue: ReviewIssue) -> str:
    if issue.file and issue.line > 0:
        return f"{issue.file}:{issue.line}"
    return issue.file or "unknown"


def _finding(issue: ReviewIssue) -> str:
    lines = [
        f"- **[{issue.severity.upper()}]** `{_location(issue)}` – {issue.title}",
        f"  - {issue.explanation}",
    ]
    suggestion = normalize_suggestion(issue.suggestion) if issue.suggestion else ""
    if suggestion and "\n" in suggestion:
        lines.append("  - **Suggested fix:**\n")
        lines.append(f"    ```\n{_indent(suggestion, '    ')}\n    ```")
    elif suggestion:
        lines.append(f"  - **Suggested fix:** {suggestion}")
    return "\n".join(lines) + "\n"


def build_comment_body(cmd: ReviewSubmission) -> str:
    """Render the sticky comment.  Deterministic for a given command."""
    body = "## AI Review Summary\n\n"
    body += f"**Verdict:** {_format_verdict(cmd.verdict)}\n"
    if cmd.commit_sha:
        body += f"**Commit:** `{cmd.commit_sha[:7]}`\n"
    body += "\n### Findings\n\n"
    if cmd.issues:
        body += "".join(_finding(issue) for issue in cmd.issues) + "\n"
    else:
        body += "No significant issues found.\n\n"
    body += f"### Overall Assessment\n\n{sanitize_summary(cmd.summary)}\n\n"
    return body + STICKY_MARKER


async def submit_review(cmd: ReviewSubmission, forge: ForgeClient, policy: RetryPolicy | None = None) -> str:
    """Create or update the sticky review comment on ``cmd.pull_number``.

    A failure to list existing comments is reported as a warning and the
    write goes ahead as a create: a duplicate comment is preferred over a
    silently missing review.
    """
    policy = policy or RetryPolicy.from_settings()
    repo, number = cmd.repository, cmd.pull_number
    body = build_comment_body(cmd)

    existing_id: int | None = None
    warning = ""
    try:
        comments = await policy.run(
            lambda: asyncio.to_thread(forge.list_comments, repo, number),
            label=f"list comments {repo}#{number}",
        )
        existing = next((c for c in comments if STICKY_MARKER in c.body), None)
        existing_id = existing.id if existing else None
    except AbortError as exc:
        return f"aborted: {exc}"
    except ForgeError as exc:
        logger.warning("review     | listing comments on %s#%d failed, posting new: %s", repo, number, exc)
        warning = f"Warning: {exc}. "

    try:
        if existing_id is not None:
            await policy.run(
                lambda: asyncio.to_thread(forge.update_comment, repo, existing_id, body),
                label=f"update comment {existing_id}",
            )
            logger.info("review     | updated sticky comment %d on %s#%d", existing_id, repo, number)
            return f"{warning}Updated existing review comment"

        await policy.run(
            lambda: asyncio.to_thread(forge.create_comment, repo, number, body),
            label=f"create comment {repo}#{number}",
        )
    except AbortError as exc:
        return f"aborted: {exc}"
    except ForgeError as exc:
        logger.error("review     | writing review comment on %s#%d failed: %s", repo, number, exc)
        return f"{warning}failed: could not write review comment: {exc}"

    logger.info("review     | posted sticky comment on %s#%d", repo, number)
    return f"{warning}Posted new review comment" if warning else "Posted review comment"
