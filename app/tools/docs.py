"""Documentation commit — write files, stage exactly those paths, commit, push."""

from __future__ import annotations

import asyncio
from pathlib import Path

from app.core.active_repo import get_repo_root
from app.core.errors import AbortError
from app.core.logging import get_logger
from app.core.retry import RetryPolicy
from app.tools import git
from app.tools.schemas import DocCommit
from app.tools.shell import CommandError

logger = get_logger("tools.docs")

COMMIT_PREFIX = "[skip ci] docs: "


def _target(root: Path, relative: str) -> Path:
    target = (root / relative).resolve()
    if not target.is_relative_to(root):
        raise ValueError(f"Path {relative!r} escapes the repository root")
    return target


async def commit_docs(cmd: DocCommit, policy: RetryPolicy | None = None, root: str | Path | None = None) -> str:
    """Write ``cmd.files`` and commit them with the ``[skip ci] docs:`` prefix.

    Any git failure halts the remaining steps.  Files already written stay
    on disk.
    """
    policy = policy or RetryPolicy.from_settings()
    repo_root = Path(root or get_repo_root()).resolve()
    lines: list[str] = []
    written: list[str] = []

    for doc in cmd.files:
        try:
            target = _target(repo_root, doc.path)
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(doc.content, encoding="utf-8")
        except (OSError, ValueError) as exc:
            logger.error("docs       | cannot write %s: %s", doc.path, exc)
            lines.append(f"failed: write {doc.path}: {exc}")
            continue
        written.append(doc.path)
        lines.append(f"updated: {doc.path}")

    if not written:
        lines.append("failed: no files were written, nothing to commit")
        return "\n".join(lines)

    message = COMMIT_PREFIX + cmd.message.strip()
    try:
        policy.check()
        await asyncio.to_thread(git.stage, written, repo_root)
        policy.check()
        await asyncio.to_thread(git.commit, message, repo_root)
        policy.check()
        await policy.run(lambda: asyncio.to_thread(git.push, repo_root), label="git push docs")
    except AbortError as exc:
        lines.append(f"aborted: {exc}")
        return "\n".join(lines)
    except CommandError as exc:
        logger.error("docs       | git failed: %s", exc)
        lines.append(f"failed: git: {exc}")
        return "\n".join(lines)

    logger.info("docs       | committed %d file(s): %s", len(written), message)
    lines.append(f"Committed and pushed: {message}")
    return "\n".join(lines)
