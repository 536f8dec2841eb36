"""Task workflows — gather context, enable the right tools, run one session.

Each workflow builds its own :class:`~app.tools.dispatch.ToolDispatcher` with
only the tools the task needs, so a review session cannot publish a package
and a label session cannot commit files.  ``dry_run`` validates every tool
call but performs no side effects.
"""

from __future__ import annotations

import asyncio
import json
from pathlib import Path

from app.agents.models import load_task_prompt, resolve_model
from app.core.active_repo import get_repo_root
from app.core.config import get_settings
from app.core.logging import get_logger
from app.core.retry import CancellationToken
from app.core.session import SessionOrchestrator, log_message
from app.core.versioning import is_version, plan_release
from app.tools import git
from app.tools.dispatch import ToolCall, ToolDispatcher
from app.tools.release import strip_v
from infra.backend import ModelBackend
from infra.forge import ForgeClient

logger = get_logger("core.workflows")

NOTHING_TO_RELEASE = "No noteworthy changes in this release."


def _forge(forge: ForgeClient | None) -> ForgeClient:
    if forge is not None:
        return forge
    from infra.factory import get_github_client

    return get_github_client()


def _clip(text: str) -> str:
    limit = get_settings().max_output_chars
    if len(text) <= limit:
        return text
    return text[:limit] + f"\n... [diff truncated, {len(text) - limit} more chars]"


async def _run_session(
    prompt: str,
    dispatcher: ToolDispatcher,
    backend: ModelBackend | None,
    model: str,
) -> str:
    model_ref = resolve_model(model)
    if backend is not None:
        return await SessionOrchestrator(backend, dispatcher).run(prompt, model_ref, log_message)

    from infra.factory import get_backend

    owned = get_backend()
    try:
        return await SessionOrchestrator(owned, dispatcher).run(prompt, model_ref, log_message)
    finally:
        await owned.aclose()


# ---------------------------------------------------------------------------
# Review / label / doc sync
# ---------------------------------------------------------------------------


async def run_review(
    repo: str,
    pr_number: int,
    *,
    forge: ForgeClient | None = None,
    backend: ModelBackend | None = None,
    model: str = "",
    dry_run: bool = False,
    cancel: CancellationToken | None = None,
) -> str:
    """Review pull request *pr_number* and upsert the sticky review comment."""
    forge = _forge(forge)
    pr = await asyncio.to_thread(forge.get_pull_request, repo, pr_number)
    diff = await asyncio.to_thread(forge.get_pull_diff, repo, pr_number)
    logger.info("workflow   | review %s#%d @ %s (%d diff chars)", repo, pr_number, pr.head_sha[:7], len(diff))

    prompt = load_task_prompt(
        "review",
        REPOSITORY=repo,
        PR_NUMBER=pr_number,
        PR_TITLE=pr.title,
        PR_BODY=pr.body or "(no description)",
        HEAD_SHA=pr.head_sha,
        DIFF=_clip(diff),
    )
    dispatcher = ToolDispatcher(forge, enabled={"submit_review"}, cancel=cancel, dry_run=dry_run)
    return await _run_session(prompt, dispatcher, backend, model)


async def run_label(
    repo: str,
    issue_number: int,
    *,
    forge: ForgeClient | None = None,
    backend: ModelBackend | None = None,
    model: str = "",
    dry_run: bool = False,
    cancel: CancellationToken | None = None,
) -> str:
    """Label issue *issue_number*."""
    forge = _forge(forge)
    issue = await asyncio.to_thread(forge.get_issue, repo, issue_number)
    available = await asyncio.to_thread(forge.list_labels, repo)
    logger.info("workflow   | label %s#%d (%d labels available)", repo, issue_number, len(available))

    prompt = load_task_prompt(
        "label",
        REPOSITORY=repo,
        ISSUE_NUMBER=issue_number,
        ISSUE_TITLE=issue.title,
        ISSUE_BODY=issue.description or "(no description)",
        EXISTING_LABELS=", ".join(issue.labels) or "(none)",
        AVAILABLE_LABELS="\n".join(f"- {name}" for name in available) or "(none)",
    )
    dispatcher = ToolDispatcher(forge, enabled={"apply_labels"}, cancel=cancel, dry_run=dry_run)
    return await _run_session(prompt, dispatcher, backend, model)


async def run_doc_sync(
    repo: str,
    pr_number: int | None = None,
    *,
    base: str = "HEAD",
    forge: ForgeClient | None = None,
    backend: ModelBackend | None = None,
    model: str = "",
    dry_run: bool = False,
    cancel: CancellationToken | None = None,
) -> str:
    """Update documentation for a pull request, or for the local diff against *base*."""
    if pr_number is not None:
        forge = _forge(forge)
        pr = await asyncio.to_thread(forge.get_pull_request, repo, pr_number)
        diff = await asyncio.to_thread(forge.get_pull_diff, repo, pr_number)
        change = f"Pull request #{pr_number}: {pr.title}\n\n{pr.body}".strip()
    else:
        diff = await asyncio.to_thread(git.local_diff, base)
        change = f"Local changes against {base}"

    if not diff.strip():
        logger.info("workflow   | doc-sync: empty diff, nothing to document")
        return "No changes to document."

    prompt = load_task_prompt("doc_sync", REPOSITORY=repo, CHANGE=change, DIFF=_clip(diff))
    dispatcher = ToolDispatcher(forge, enabled={"commit_docs"}, cancel=cancel, dry_run=dry_run)
    return await _run_session(prompt, dispatcher, backend, model)


# ---------------------------------------------------------------------------
# Release
# ---------------------------------------------------------------------------


def read_manifest_version(root: str | Path | None = None) -> str | None:
    """``version`` from ``package.json`` in the working tree root, if present."""
    manifest = Path(root or get_repo_root()) / "package.json"
    if not manifest.is_file():
        return None
    try:
        version = json.loads(manifest.read_text(encoding="utf-8")).get("version")
    except (OSError, ValueError) as exc:
        logger.warning("workflow   | cannot read %s: %s", manifest, exc)
        return None
    return str(version) if version else None


def current_version(from_ref: str | None, root: str | Path | None = None) -> str:
    """Version the release starts from: the manifest, then the tag, then ``0.0.0``.

    A candidate that is not a semantic version is skipped with a warning.
    """
    candidates = (("package.json", read_manifest_version(root)), ("tag", strip_v(from_ref or "")))
    for source, candidate in candidates:
        if not candidate:
            continue
        if is_version(candidate):
            return candidate
        logger.warning("workflow   | ignoring %s version %r: not a semantic version", source, candidate)
    return "0.0.0"


async def run_release(
    repo: str,
    from_tag: str | None = None,
    to_ref: str = "HEAD",
    *,
    forge: ForgeClient | None = None,
    backend: ModelBackend | None = None,
    model: str = "",
    dry_run: bool = False,
    cancel: CancellationToken | None = None,
) -> str:
    """Plan the release from the commit range, then publish and create the platform release.

    The plan is computed once, before the session starts.  An empty commit
    range ends the workflow without a session.
    """
    from_ref = from_tag or await asyncio.to_thread(git.latest_tag)
    commits = await asyncio.to_thread(git.read_commit_range, from_ref, to_ref)
    current = current_version(from_ref)
    plan = plan_release(current, commits)
    if plan is None:
        logger.info("workflow   | release: no commits since %s", from_ref or "the beginning")
        return NOTHING_TO_RELEASE

    next_version = strip_v(plan.version)
    logger.info("workflow   | release %s: %s -> %s (%s)", repo, current, next_version, plan.bump.value)
    prompt = load_task_prompt(
        "release",
        REPOSITORY=repo,
        FROM_REF=from_ref or "the first commit",
        CURRENT_VERSION=current,
        BUMP=plan.bump.value,
        NEXT_VERSION=next_version,
        COMMITS="\n".join(f"- {c.header} ({c.sha[:7]})" for c in commits),
        NOTES="\n".join(plan.notes) or "(no user-facing changes)",
    )
    dispatcher = ToolDispatcher(
        forge, enabled={"bun_release", "github_release"}, cancel=cancel, dry_run=dry_run,
    )
    return await _run_session(prompt, dispatcher, backend, model)


async def run_platform_release(
    repo: str,
    tag: str,
    notes: list[str],
    *,
    title: str | None = None,
    prerelease: bool = False,
    draft: bool = False,
    forge: ForgeClient | None = None,
    dry_run: bool = False,
) -> str:
    """Create the platform release alone, for a package that is already published."""
    dispatcher = ToolDispatcher(
        forge, enabled={"github_release"}, dry_run=dry_run, allow_standalone_release=True,
    )
    arguments = {
        "repository": repo, "tag": tag, "notes": notes,
        "title": title, "prerelease": prerelease, "draft": draft,
    }
    return await dispatcher.dispatch(ToolCall(name="github_release", arguments=arguments))


async def run_setup(workflows: list[str], *, dry_run: bool = False) -> str:
    """Scaffold CI workflow files in the working tree root."""
    dispatcher = ToolDispatcher(enabled={"setup_workflows"}, dry_run=dry_run)
    return await dispatcher.dispatch(ToolCall(name="setup_workflows", arguments={"workflows": workflows}))
