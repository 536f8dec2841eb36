"""Label application — create missing labels, then apply the union in one call."""

from __future__ import annotations

import asyncio
from typing import Iterable

from app.core.errors import AbortError, PartialBatchError
from app.core.logging import get_logger
from app.core.retry import RetryPolicy
from app.tools.schemas import MAX_LABELS, LabelApplication, NewLabel
from infra.forge import ForgeClient, ForgeError, LabelSpec

logger = get_logger("tools.labels")


def label_union(cmd: LabelApplication, usable: Iterable[str] | None = None) -> list[str]:
    """Existing names then usable new names, de-duplicated in order, truncated to the label limit.

    *usable* is the set of new label names that exist on the repository
    (created or already present).  ``None`` treats every new label as usable.
    """
    new_names = [label.name for label in cmd.new_labels]
    if usable is not None:
        allowed = set(usable)
        new_names = [name for name in new_names if name in allowed]
    names: list[str] = []
    for name in [*cmd.labels, *new_names]:
        if name not in names:
            names.append(name)
    return names[:MAX_LABELS]


async def _create_label(forge: ForgeClient, repo: str, label: NewLabel, policy: RetryPolicy) -> str:
    request = LabelSpec(name=label.name, color=label.color, description=label.description)
    try:
        await policy.run(lambda: asyncio.to_thread(forge.create_label, repo, request), label=f"create label {label.name}")
    except ForgeError as exc:
        if exc.is_conflict:
            logger.info("labels     | label %r already exists in %s", label.name, repo)
            return f"skipped (already exists): {label.name}"
        raise
    logger.info("labels     | created label %r in %s", label.name, repo)
    return f"created: {label.name}"


async def apply_labels(cmd: LabelApplication, forge: ForgeClient, policy: RetryPolicy | None = None) -> str:
    """Create ``cmd.new_labels`` (duplicates are benign) and apply the label union.

    A label whose creation fails is reported, left out of the applied set,
    and does not stop the batch.
    The final apply is a single call; if it fails the result says so and
    never claims the labels were applied.
    """
    policy = policy or RetryPolicy.from_settings()
    repo, number = cmd.repository, cmd.issue_number
    lines: list[str] = []
    failures: dict[str, str] = {}
    usable: list[str] = []

    try:
        for label in cmd.new_labels:
            policy.check()
            try:
                lines.append(await _create_label(forge, repo, label, policy))
                usable.append(label.name)
            except ForgeError as exc:
                failures[label.name] = str(exc)
                lines.append(f"failed: label {label.name}: {exc}")
    except AbortError as exc:
        lines.append(f"aborted: {exc}")
        return "\n".join(lines)

    if failures:
        logger.warning("labels     | %s", PartialBatchError(failures))

    names = label_union(cmd, usable)
    if not names:
        lines.append("failed: no usable labels to apply")
        return "\n".join(lines)
    label_list = ", ".join(names)
    try:
        policy.check()
        await policy.run(
            lambda: asyncio.to_thread(forge.add_labels, repo, number, names),
            label=f"add labels {repo}#{number}",
        )
    except AbortError as exc:
        lines.append(f"aborted: {exc}")
        return "\n".join(lines)
    except ForgeError as exc:
        logger.error("labels     | applying %s to %s#%d failed: %s", label_list, repo, number, exc)
        lines.append(f"failed: could not apply labels {label_list}: {exc}")
        return "\n".join(lines)

    logger.info("labels     | applied %s to %s#%d", label_list, repo, number)
    lines.append(f"applied: {label_list}")
    lines.append(f"Reason: {cmd.explanation}")
    return "\n".join(lines)
