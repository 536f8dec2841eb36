"""Error taxonomy shared by the tool layer and the session orchestrator.

- :class:`ToolValidationError` — a tool call was rejected before any side
  effect.  Carries the field-addressed error list.
- :class:`TransientError` — retryable by the backoff primitive.
- :class:`FatalError` — surfaced immediately, never retried.
- :class:`AbortError` — the caller cancelled the operation.  Distinct from
  :class:`FatalError` so "the user stopped this" and "this is broken" can be
  told apart.
- :class:`PartialBatchError` — some items of a batch failed while the batch
  continued.  Reported per item, never raised.
"""

from __future__ import annotations

from typing import NamedTuple


class FieldError(NamedTuple):
    """One validation failure, addressed by a dotted field path."""

    path: str
    message: str

    def __str__(self) -> str:
        return f"{self.path}: {self.message}" if self.path else self.message


class ToolValidationError(Exception):
    """Raised when a caller insists on a command from a rejected tool call."""

    def __init__(self, tool: str, errors: list[FieldError]) -> None:
        self.tool = tool
        self.errors = list(errors)
        detail = "; ".join(str(err) for err in self.errors)
        super().__init__(f"Invalid {tool} call: {detail}")


class TransientError(Exception):
    """A failure that is expected to succeed on retry."""


class FatalError(Exception):
    """A failure that must surface immediately."""


class AbortError(Exception):
    """The operation was cancelled through a cancellation token."""

    def __init__(self, message: str = "operation aborted") -> None:
        super().__init__(message)


class PartialBatchError(Exception):
    """Per-item failures of a batch that kept going.

    Args:
        failures: Mapping of item name to the failure reason.
    """

    def __init__(self, failures: dict[str, str]) -> None:
        self.failures = dict(failures)
        items = ", ".join(f"{name} ({reason})" for name, reason in self.failures.items())
        super().__init__(f"{len(self.failures)} item(s) failed: {items}")
