"""Subprocess boundary — runs fixed argv commands inside the working tree root.

Commands are never passed through a shell.  Every command is logged with cwd,
exit code, and truncated output; a non-zero exit raises :class:`CommandError`.
"""

from __future__ import annotations

import asyncio
import os
import subprocess
from pathlib import Path

from app.core.active_repo import get_repo_root
from app.core.config import get_settings
from app.core.logging import get_logger

logger = get_logger("tools.shell")


class CommandError(Exception):
    """A command could not be started, timed out, or exited non-zero.

    The message is always a single line: multi-line output is joined with
    ``" | "`` so it can be embedded in line-oriented status text.
    """

    def __init__(self, args: list[str], message: str, returncode: int | None = None) -> None:
        super().__init__(f"{' '.join(args)}: {_one_line(message)}")
        self.command = list(args)
        self.returncode = returncode


def _one_line(text: str) -> str:
    return " | ".join(line.strip() for line in text.splitlines() if line.strip())


def _truncate(text: str) -> str:
    limit = get_settings().max_output_chars
    if len(text) > limit:
        half = limit // 2
        return text[:half] + f"\n\n... [truncated {len(text) - limit} chars] ...\n\n" + text[-half:]
    return text


def _command_env() -> dict[str, str]:
    settings = get_settings()
    return {
        **os.environ,
        "GIT_AUTHOR_NAME": settings.git_author_name,
        "GIT_AUTHOR_EMAIL": settings.git_author_email,
        "GIT_COMMITTER_NAME": settings.git_author_name,
        "GIT_COMMITTER_EMAIL": settings.git_author_email,
    }


def run_command(args: list[str], cwd: str | Path | None = None, timeout: int | None = None) -> str:
    """Run *args* and return stripped stdout.

    Args:
        args:    argv list, e.g. ``["git", "push", "--tags"]``.
        cwd:     Working directory (default: the active working tree root).
        timeout: Seconds before the process is killed (default from config).

    Raises:
        CommandError: on start failure, timeout, or non-zero exit.  The
            message carries the tail of stderr so transient failures
            (``ETIMEDOUT``, ``503``) stay classifiable by the retry layer.
    """
    settings = get_settings()
    workdir = Path(cwd or get_repo_root()).resolve()
    limit = timeout or settings.command_timeout_seconds

    if not workdir.is_dir():
        raise CommandError(args, f"directory does not exist: {workdir}")

    logger.info("run_cmd    | cwd=%s | cmd=%s", workdir, " ".join(args))
    try:
        result = subprocess.run(
            args,
            shell=False,
            cwd=str(workdir),
            capture_output=True,
            text=True,
            timeout=limit,
            env=_command_env(),
            encoding="utf-8",
            errors="replace",
        )
    except subprocess.TimeoutExpired as exc:
        logger.error("run_cmd    | TIMEOUT after %ss | %s", limit, " ".join(args))
        raise CommandError(args, f"timed out after {limit}s") from exc
    except OSError as exc:
        logger.error("run_cmd    | cannot start %s: %s", args[0], exc)
        raise CommandError(args, f"cannot start: {exc}") from exc

    stdout = _truncate((result.stdout or "").strip())
    stderr = _truncate((result.stderr or "").strip())
    logger.info("run_cmd    | exit=%d | output_len=%d", result.returncode, len(stdout) + len(stderr))

    if result.returncode != 0:
        detail = stderr or stdout or "no output"
        raise CommandError(args, f"exit {result.returncode}: {detail}", returncode=result.returncode)
    return stdout


async def run_command_async(args: list[str], cwd: str | Path | None = None, timeout: int | None = None) -> str:
    """:func:`run_command` in a worker thread, so the event loop keeps running."""
    return await asyncio.to_thread(run_command, args, cwd, timeout)
