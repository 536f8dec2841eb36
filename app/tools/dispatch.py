"""Tool dispatch — the single path from a model's tool call to an executor.

Every call goes through :func:`~app.tools.schemas.validate_tool_call` first;
a rejected call never reaches an executor.  Validated commands are routed by
type to their executor, and the executor's status text is what the model sees.

The same surface is exposed as LangChain tools via
:meth:`ToolDispatcher.as_langchain_tools` for LangChain-based callers.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Iterable

from langchain_core.tools import StructuredTool

from app.core.errors import AbortError
from app.core.logging import get_logger
from app.core.retry import CancellationToken, RetryPolicy
from app.tools.docs import commit_docs
from app.tools.labels import apply_labels
from app.tools.release import create_platform_release, publish_package, strip_v
from app.tools.review import submit_review
from app.tools.schemas import (
    TOOL_SCHEMAS,
    DocCommit,
    GitHubRelease,
    LabelApplication,
    ReleasePublish,
    ReviewSubmission,
    ValidatedCommand,
    WorkflowSetup,
    tool_parameters,
    validate_tool_call,
)
from app.tools.workflows import setup_workflows
from infra.forge import ForgeClient

logger = get_logger("tools.dispatch")

TOOL_DESCRIPTIONS: dict[str, str] = {
    "apply_labels": "Apply labels to a GitHub issue (at most 3, existing plus new).",
    "submit_review": "Submit a single sticky review comment on a GitHub PR.",
    "github_release": "Create a GitHub release with release notes.",
    "bun_release": "Release a package: bump the version, push with tags, pack and publish to the registry.",
    "commit_docs": "Commit documentation updates to the PR branch.",
    "setup_workflows": "Set up GitHub Actions workflows for the agents.",
}


@dataclass(frozen=True)
class ToolCall:
    """A tool request from the model: name, untyped arguments, backend call id."""

    name: str
    arguments: Any
    call_id: str = ""


def tool_definitions(names: Iterable[str]) -> list[dict[str, Any]]:
    """``{name, description, parameters}`` entries for *names*, sorted by name."""
    return [
        {"name": name, "description": TOOL_DESCRIPTIONS[name], "parameters": tool_parameters(name)}
        for name in sorted(names)
    ]


class ToolDispatcher:
    """Validates and executes tool calls for one task.

    Args:
        forge:     Platform client.  Created from settings on first use when omitted.
        enabled:   Tool names the model may call.  Defaults to every tool.
        cancel:    Cancellation token shared with all executors.
        dry_run:   Validate calls but perform no side effects.
        allow_standalone_release: Let ``github_release`` run for a version
                   that was not published by ``bun_release`` in this
                   dispatcher (operator retry of phase 2).
    """

    def __init__(
        self,
        forge: ForgeClient | None = None,
        enabled: Iterable[str] | None = None,
        cancel: CancellationToken | None = None,
        dry_run: bool = False,
        allow_standalone_release: bool = False,
    ) -> None:
        unknown = set(enabled or ()) - set(TOOL_SCHEMAS)
        if unknown:
            raise ValueError(f"Unknown tools: {', '.join(sorted(unknown))}")
        self.enabled: frozenset[str] = frozenset(TOOL_SCHEMAS if enabled is None else enabled)
        self.cancel = cancel or CancellationToken()
        self.dry_run = dry_run
        self.allow_standalone_release = allow_standalone_release
        self.published_versions: set[str] = set()
        self._forge = forge
        self._handlers: dict[type, Callable[[Any], Awaitable[str]]] = {
            LabelApplication: self._apply_labels,
            ReviewSubmission: self._submit_review,
            ReleasePublish: self._publish,
            GitHubRelease: self._platform_release,
            DocCommit: self._commit_docs,
            WorkflowSetup: self._setup_workflows,
        }

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    @property
    def forge(self) -> ForgeClient:
        if self._forge is None:
            from infra.factory import get_github_client

            self._forge = get_github_client()
        return self._forge

    def policy(self) -> RetryPolicy:
        return RetryPolicy.from_settings(cancel=self.cancel)

    def tool_flags(self) -> dict[str, bool]:
        """Per-tool on/off map for the backend's prompt call."""
        return {name: name in self.enabled for name in sorted(TOOL_SCHEMAS)}

    async def dispatch(self, call: ToolCall) -> str:
        """Validate *call* and run its executor.  Always returns status text."""
        if call.name in TOOL_SCHEMAS and call.name not in self.enabled:
            logger.warning("dispatch   | %s refused: not enabled for this task", call.name)
            return f"Rejected {call.name} call:\n- tool: {call.name} is not enabled for this task."

        result = validate_tool_call(call.name, call.arguments)
        if not result.ok:
            logger.warning("dispatch   | %s rejected: %s", call.name, "; ".join(map(str, result.errors)))
            return result.describe()

        command = result.unwrap()
        if self.dry_run:
            logger.info("dispatch   | dry-run %s: %r", call.name, command)
            return f"dry-run: {call.name} call is valid; no changes were made."

        logger.info("dispatch   | %s", call.name)
        try:
            return await self.execute(command)
        except AbortError as exc:
            return f"aborted: {exc}"
        except Exception as exc:
            logger.exception("dispatch   | %s crashed", call.name)
            return f"failed: {call.name}: {exc}"

    async def execute(self, command: ValidatedCommand) -> str:
        """Route an already validated command to its executor."""
        handler = self._handlers[type(command)]
        return await handler(command)

    # ------------------------------------------------------------------
    # Executors
    # ------------------------------------------------------------------

    async def _apply_labels(self, cmd: LabelApplication) -> str:
        return await apply_labels(cmd, self.forge, self.policy())

    async def _submit_review(self, cmd: ReviewSubmission) -> str:
        return await submit_review(cmd, self.forge, self.policy())

    async def _publish(self, cmd: ReleasePublish) -> str:
        outcome = await publish_package(cmd, self.policy())
        if outcome.published:
            self.published_versions.add(outcome.version)
        return str(outcome)

    async def _platform_release(self, cmd: GitHubRelease) -> str:
        published = strip_v(cmd.tag) in self.published_versions
        if not published and not self.allow_standalone_release:
            logger.warning("dispatch   | github_release %s refused: version not published", cmd.tag)
            return (
                f"refused: {cmd.tag} has not been published by bun_release in this task; "
                "publish the package first."
            )
        return await create_platform_release(cmd, self.forge, self.policy(), after_publish=published)

    async def _commit_docs(self, cmd: DocCommit) -> str:
        return await commit_docs(cmd, self.policy())

    async def _setup_workflows(self, cmd: WorkflowSetup) -> str:
        return setup_workflows(cmd)

    # ------------------------------------------------------------------
    # Upward tool surface
    # ------------------------------------------------------------------

    def definitions(self) -> list[dict[str, Any]]:
        return tool_definitions(self.enabled)

    def _coroutine_for(self, name: str) -> Callable[..., Awaitable[str]]:
        async def _run(**kwargs: Any) -> str:
            return await self.dispatch(ToolCall(name=name, arguments=kwargs))

        return _run

    def as_langchain_tools(self) -> list[StructuredTool]:
        """The enabled tools as LangChain ``StructuredTool`` objects.

        Arguments are passed through unvalidated so that the dispatcher's own
        validation produces the field-addressed rejection text.
        """
        return [
            StructuredTool.from_function(
                coroutine=self._coroutine_for(name),
                name=name,
                description=TOOL_DESCRIPTIONS[name],
                args_schema=tool_parameters(name),
                infer_schema=False,
            )
            for name in sorted(self.enabled)
        ]
