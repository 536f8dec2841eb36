"""Two-phase release.

Phase 1 (:func:`publish_package`) bumps the manifest version, pushes the
version commit and tag, packs a tarball and publishes it to the registry.
Phase 2 (:func:`create_platform_release`) creates the tagged platform release
with notes.  The dispatcher only runs phase 2 for a version phase 1 published
in the same task, so a failed publish never leaves a release pointing at
nothing.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Awaitable, Callable

from app.core.config import get_settings
from app.core.errors import AbortError
from app.core.logging import get_logger
from app.core.retry import RetryPolicy
from app.tools import git
from app.tools.schemas import GitHubRelease, ReleasePublish
from app.tools.shell import CommandError, run_command_async
from infra.forge import ForgeClient, ForgeError, ReleaseRequest

logger = get_logger("tools.release")

PACKAGE_MANAGERS = ("npm", "bun")


def strip_v(version: str) -> str:
    return version[1:] if version.startswith("v") else version


def format_release_notes(notes: list[str]) -> str:
    """One bullet per note; notes already starting with ``-`` are kept as-is."""
    lines = []
    for note in notes:
        trimmed = note.strip()
        lines.append(trimmed if trimmed.startswith("-") else f"- {trimmed}")
    return "\n".join(lines)


def _bump_args(package_manager: str, version: str) -> list[str]:
    if package_manager == "bun":
        return ["bun", "pm", "version", version]
    return ["npm", "version", version, "-m", "release: v%s"]


def _pack_args(package_manager: str) -> list[str]:
    if package_manager == "bun":
        return ["bun", "pm", "pack"]
    return ["npm", "pack"]


def _tarball_name(output: str) -> str:
    for line in output.splitlines():
        if line.strip().endswith(".tgz"):
            return line.strip()
    raise CommandError(["pack"], "no tarball name in pack output")


@dataclass
class PublishOutcome:
    """Result of phase 1.  ``published`` is True only when every step succeeded."""

    version: str
    published: bool = False
    lines: list[str] = field(default_factory=list)

    def __str__(self) -> str:
        return "\n".join(self.lines)


async def publish_package(
    cmd: ReleasePublish,
    policy: RetryPolicy | None = None,
    package_manager: str | None = None,
    ci: bool | None = None,
) -> PublishOutcome:
    """Run the phase 1 steps in order; the first failure halts and is named.

    Cancellation is checked between steps, never inside one.
    """
    settings = get_settings()
    policy = policy or RetryPolicy.from_settings()
    manager = package_manager or settings.package_manager
    in_ci = settings.ci if ci is None else ci
    if manager not in PACKAGE_MANAGERS:
        raise ValueError(f"Unsupported package manager {manager!r}; expected one of {PACKAGE_MANAGERS}")

    version = strip_v(cmd.version)
    outcome = PublishOutcome(version=version)
    tarball = ""

    async def bump() -> str:
        await run_command_async(_bump_args(manager, version))
        return f"bumped: version {version}"

    async def push() -> str:
        await policy.run(lambda: asyncio.to_thread(git.push), label="git push")
        return "pushed: version commit"

    async def push_tags() -> str:
        await policy.run(lambda: asyncio.to_thread(git.push_tags), label="git push --tags")
        return "pushed: tags"

    async def pack() -> str:
        nonlocal tarball
        tarball = _tarball_name(await run_command_async(_pack_args(manager)))
        return f"packed: {tarball}"

    async def publish() -> str:
        args = ["npm", "publish", tarball, "--access", "public"]
        if in_ci:
            args.append("--provenance")
        await policy.run(lambda: run_command_async(args), label="publish")
        return f"published: {version} to registry"

    steps: list[tuple[str, Callable[[], Awaitable[str]]]] = [
        ("bump version", bump),
        ("push", push),
        ("push tags", push_tags),
        ("pack", pack),
        ("publish", publish),
    ]
    for name, step in steps:
        try:
            policy.check()
            outcome.lines.append(await step())
        except AbortError as exc:
            logger.warning("release    | aborted before step %r", name)
            outcome.lines.append(f"aborted: before {name}: {exc}")
            return outcome
        except CommandError as exc:
            logger.error("release    | step %r failed: %s", name, exc)
            outcome.lines.append(f"failed: {name}: {exc}")
            return outcome

    outcome.published = True
    outcome.lines.append(f"Release {version} complete")
    logger.info("release    | published %s via %s", version, manager)
    return outcome


async def create_platform_release(
    cmd: GitHubRelease,
    forge: ForgeClient,
    policy: RetryPolicy | None = None,
    after_publish: bool = True,
) -> str:
    """Create the tagged platform release; the title defaults to the tag."""
    policy = policy or RetryPolicy.from_settings()
    request = ReleaseRequest(
        tag=cmd.tag,
        title=cmd.title or cmd.tag,
        notes=format_release_notes(cmd.notes),
        prerelease=cmd.prerelease,
        draft=cmd.draft,
    )
    try:
        policy.check()
        url = await policy.run(
            lambda: asyncio.to_thread(forge.create_release, cmd.repository, request),
            label=f"create release {cmd.tag}",
        )
    except AbortError as exc:
        return f"aborted: {exc}"
    except ForgeError as exc:
        logger.error("release    | creating release %s on %s failed: %s", cmd.tag, cmd.repository, exc)
        if after_publish:
            return (
                f"failed: package published, platform release missing for {cmd.tag}; "
                f"retry phase 2: {exc}"
            )
        return f"failed: could not create release {cmd.tag}: {exc}"

    logger.info("release    | created release %s on %s", cmd.tag, cmd.repository)
    lines = [f"created: release {cmd.tag}"]
    if url:
        lines.append(f"Release URL: {url}")
    return "\n".join(lines)
