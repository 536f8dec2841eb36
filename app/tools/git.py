"""Source-control boundary — the git operations the executors and workflows need.

Each function runs one git command through :func:`app.tools.shell.run_command`
inside the active working tree root and raises
:class:`~app.tools.shell.CommandError` on failure.  History is never
rewritten: there is no merge, rebase, reset or force push here.
"""

from __future__ import annotations

from pathlib import Path

from app.core.logging import get_logger
from app.core.versioning import Commit
from app.tools.shell import CommandError, run_command

logger = get_logger("tools.git")

# Unit / record separators keep multi-line commit bodies intact.
_FIELD_SEP = "\x1f"
_RECORD_SEP = "\x1e"
_LOG_FORMAT = "--format=%H%x1f%an%x1f%B%x1e"


def _run_git(args: list[str], cwd: str | Path | None = None) -> str:
    logger.info("git_tool   | git %s", " ".join(args))
    return run_command(["git", *args], cwd=cwd)


def stage(paths: list[str], cwd: str | Path | None = None) -> None:
    """Stage exactly *paths*; nothing else in the tree is added."""
    if not paths:
        raise ValueError("stage() needs at least one path")
    _run_git(["add", "--", *paths], cwd)


def commit(message: str, cwd: str | Path | None = None) -> str:
    """Commit the index and return the new HEAD sha."""
    _run_git(["commit", "-m", message], cwd)
    return _run_git(["rev-parse", "HEAD"], cwd)


def push(cwd: str | Path | None = None) -> None:
    _run_git(["push"], cwd)


def push_tags(cwd: str | Path | None = None) -> None:
    _run_git(["push", "--tags"], cwd)


def latest_tag(cwd: str | Path | None = None) -> str | None:
    """Return the most recent tag reachable from HEAD, or ``None`` if there is none."""
    try:
        return _run_git(["describe", "--tags", "--abbrev=0"], cwd) or None
    except CommandError as exc:
        if exc.returncode is not None:
            logger.info("git_tool   | no tags reachable from HEAD")
            return None
        raise


def read_commit_range(from_ref: str | None, to_ref: str = "HEAD", cwd: str | Path | None = None) -> list[Commit]:
    """Commits in ``from_ref..to_ref``, oldest first.

    With no *from_ref* the whole history of *to_ref* is returned.
    """
    rev = f"{from_ref}..{to_ref}" if from_ref else to_ref
    output = _run_git(["log", "--reverse", _LOG_FORMAT, rev], cwd)
    commits: list[Commit] = []
    for record in output.split(_RECORD_SEP):
        record = record.strip("\n")
        if not record.strip():
            continue
        sha, author, message = (record.split(_FIELD_SEP, 2) + ["", ""])[:3]
        commits.append(Commit(sha=sha.strip(), message=message.strip(), author=author))
    return commits


def local_diff(base: str = "HEAD", cwd: str | Path | None = None) -> str:
    """Unified diff of the working tree against *base*."""
    return _run_git(["diff", base], cwd)
