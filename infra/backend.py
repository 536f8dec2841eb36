"""Model backend interface — protocol and wire models.

The backend is an OpenCode-style agent server: sessions are created, a prompt
is sent into a session, and progress is observed on a global event stream.
:class:`~infra.opencode_client.OpenCodeBackend` is the HTTP implementation;
tests substitute an in-memory fake.
"""

from __future__ import annotations

import asyncio
from typing import Any, AsyncIterator, Literal, Protocol, runtime_checkable

from pydantic import BaseModel, ConfigDict, Field


# ---------------------------------------------------------------------------
# Data models
# ---------------------------------------------------------------------------


class ModelRef(BaseModel):
    """A ``provider/model`` pair."""

    provider_id: str
    model_id: str

    def __str__(self) -> str:
        return f"{self.provider_id}/{self.model_id}"

    def to_wire(self) -> dict[str, str]:
        return {"providerID": self.provider_id, "modelID": self.model_id}


def parse_model(value: str) -> ModelRef:
    """Parse ``"provider/model"``.  The model part may itself contain ``/``."""
    provider, sep, model = value.strip().partition("/")
    if not sep or not provider or not model:
        raise ValueError(f"Model must look like 'provider/model', got {value!r}")
    return ModelRef(provider_id=provider, model_id=model)


class MessageTime(BaseModel):
    model_config = ConfigDict(extra="allow")

    created: float | None = None
    completed: float | None = None


class MessageInfo(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    id: str
    session_id: str = Field(default="", alias="sessionID")
    role: Literal["user", "assistant"] = "assistant"
    time: MessageTime = Field(default_factory=MessageTime)

    @property
    def completed(self) -> bool:
        return self.time.completed is not None


class Part(BaseModel):
    """One typed part of a message: ``text``, ``reasoning``, ``tool``, ``step-start`` …

    Unknown part types and fields are kept as-is.
    """

    model_config = ConfigDict(extra="allow")

    type: str
    text: str | None = None
    tool: str | None = None
    state: dict[str, Any] | None = None


class Message(BaseModel):
    """An immutable message snapshot: info plus ordered parts."""

    model_config = ConfigDict(frozen=True)

    info: MessageInfo
    parts: tuple[Part, ...] = ()


class Event(BaseModel):
    """One event from the backend stream."""

    type: str
    properties: dict[str, Any] = Field(default_factory=dict)


# ---------------------------------------------------------------------------
# Protocol
# ---------------------------------------------------------------------------


@runtime_checkable
class ModelBackend(Protocol):
    """Operations the session orchestrator needs from the model backend.

    Every method raises :class:`BackendError` on transport or protocol errors.
    """

    async def create_session(self, title: str = "") -> str:
        """Create a session and return its id."""
        ...

    async def prompt(
        self,
        session_id: str,
        model: ModelRef,
        text: str,
        tools: dict[str, bool] | None = None,
    ) -> Message:
        """Send *text* into the session and wait for the assistant's terminal message."""
        ...

    def subscribe(self, connected: asyncio.Event | None = None) -> AsyncIterator[Event]:
        """Yield events from the backend's global event stream.

        *connected* is set once the stream is established.  Events emitted
        before that point are not seen by this subscriber.
        """
        ...

    async def get_message(self, session_id: str, message_id: str) -> Message:
        """Fetch the full message (info and parts)."""
        ...

    async def reply_tool(self, session_id: str, call_id: str, output: str) -> None:
        """Return a tool result for a ``tool.requested`` event."""
        ...

    async def delete_session(self, session_id: str) -> None:
        """Delete the session on the server."""
        ...


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class BackendError(Exception):
    """Raised for any model backend error (HTTP errors, malformed payloads, …)."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
