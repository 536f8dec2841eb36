"""Session orchestration — drive one model session for one task.

Lifecycle of :meth:`SessionOrchestrator.run`::

    create session ──► start consumer + sink ──► stream open ──► prompt ──► grace window
         │                                                                       │
         └──────────────────── delete session (every exit path) ◄────────────────┘

The consumer subscribes to the backend event stream and the prompt is only
sent once the stream is open.  Newly completed assistant messages of this
session are fetched and put on a bounded queue; tool requests are dispatched
and answered.  The sink drains the queue in order and hands each message to
the caller's callback.  After the prompt returns the consumer gets
``session_grace_seconds`` to deliver in-flight completions, then it is
cancelled and the queue is closed with a sentinel.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable, Union

from pydantic import ValidationError

from app.core.config import get_settings
from app.core.logging import get_logger
from app.tools.dispatch import ToolCall, ToolDispatcher
from infra.backend import BackendError, Event, Message, MessageInfo, ModelBackend, ModelRef, parse_model

logger = get_logger("core.session")

MessageCallback = Callable[[Message], Union[None, Awaitable[None]]]


class SessionState(str, Enum):
    CREATED = "created"
    RUNNING = "running"
    COMPLETED = "completed"
    ERRORED = "errored"


@dataclass
class Session:
    """One backend session as seen by the orchestrator."""

    id: str
    model: ModelRef
    prompt: str
    state: SessionState = SessionState.CREATED
    # Delivered messages, in completion order.
    messages: list[Message] = field(default_factory=list)
    # Ids whose completion has been observed on the event stream.
    completed_ids: set[str] = field(default_factory=set)

    @property
    def delivered_ids(self) -> set[str]:
        return {message.info.id for message in self.messages}


class SessionBusyError(RuntimeError):
    """``run`` was called while a session of the same orchestrator is active."""


def extract_text(message: Message) -> str:
    """Concatenate the ``text`` parts of *message*, in order."""
    return "".join(part.text for part in message.parts if part.type == "text" and part.text)


def log_message(message: Message) -> None:
    """Default callback: log each part of a completed assistant message."""
    for part in message.parts:
        if part.type == "text" and part.text:
            logger.info("assistant  | %s", part.text.strip()[:500])
        elif part.type == "reasoning" and part.text:
            logger.debug("reasoning  | %s", part.text.strip()[:500])
        elif part.type == "tool":
            status = (part.state or {}).get("status", "")
            logger.info("tool       | %s %s", part.tool or "?", status)


class SessionOrchestrator:
    """Runs one session at a time against a :class:`~infra.backend.ModelBackend`.

    Args:
        backend:       Model backend client.
        dispatcher:    Executes tool requests raised by the model.  Without
                       one, every tool request is rejected.
        grace_seconds: Time the consumer keeps running after the prompt returns.
        queue_size:    Bound of the consumer → sink queue.
    """

    def __init__(
        self,
        backend: ModelBackend,
        dispatcher: ToolDispatcher | None = None,
        grace_seconds: float | None = None,
        queue_size: int | None = None,
    ) -> None:
        settings = get_settings()
        self._backend = backend
        self._dispatcher = dispatcher
        self._grace = settings.session_grace_seconds if grace_seconds is None else grace_seconds
        self._queue_size = queue_size or settings.session_queue_size
        self._busy = False
        self.session: Session | None = None

    @property
    def busy(self) -> bool:
        return self._busy

    async def run(
        self,
        prompt: str,
        model: str | ModelRef | None = None,
        on_message: MessageCallback | None = None,
    ) -> str:
        """Run *prompt* to completion and return the final assistant text.

        Raises:
            SessionBusyError: if a session is already active.
            BackendError: if the backend fails; the session is still deleted.
        """
        if self._busy:
            raise SessionBusyError("a session is already running on this orchestrator")
        self._busy = True
        try:
            model_ref = model if isinstance(model, ModelRef) else parse_model(model or get_settings().default_model)
            session_id = await self._backend.create_session()
            session = Session(id=session_id, model=model_ref, prompt=prompt)
            self.session = session
            logger.info("session    | %s | created | model=%s", session.id, model_ref)
            try:
                final = await self._drive(session, on_message)
            except BaseException:
                session.state = SessionState.ERRORED
                logger.error("session    | %s | errored", session.id)
                raise
            finally:
                await self._teardown(session)
            session.state = SessionState.COMPLETED
            logger.info("session    | %s | completed | %d message(s)", session.id, len(session.messages))
            return extract_text(final)
        finally:
            self._busy = False

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _drive(self, session: Session, on_message: MessageCallback | None) -> Message:
        queue: asyncio.Queue[Message | None] = asyncio.Queue(maxsize=self._queue_size)
        session.state = SessionState.RUNNING
        connected = asyncio.Event()
        consumer = asyncio.create_task(self._consume(session, queue, connected), name=f"consumer-{session.id}")
        sink = asyncio.create_task(self._drain(session, queue, on_message), name=f"sink-{session.id}")

        try:
            await connected.wait()
            tools = self._dispatcher.tool_flags() if self._dispatcher else None
            final = await self._backend.prompt(session.id, session.model, session.prompt, tools=tools)
            await asyncio.wait({consumer}, timeout=self._grace)
        finally:
            await self._stop_consumer(session, consumer)
            await self._close_sink(queue, sink)

        if final.info.role == "assistant" and final.info.id not in session.delivered_ids:
            session.completed_ids.add(final.info.id)
            await self._deliver(session, final, on_message)
        return final

    async def _stop_consumer(self, session: Session, consumer: asyncio.Task) -> None:
        if not consumer.done():
            consumer.cancel()
        (result,) = await asyncio.gather(consumer, return_exceptions=True)
        if isinstance(result, Exception):
            logger.warning("session    | %s | event consumer failed: %r", session.id, result)

    async def _close_sink(self, queue: asyncio.Queue[Message | None], sink: asyncio.Task) -> None:
        if not sink.done():
            await queue.put(None)
        await sink

    async def _consume(
        self, session: Session, queue: asyncio.Queue[Message | None], connected: asyncio.Event,
    ) -> None:
        try:
            async for event in self._backend.subscribe(connected):
                if event.type == "message.updated":
                    await self._on_message_updated(session, event, queue)
                elif event.type == "tool.requested":
                    await self._on_tool_requested(session, event)
        except BackendError as exc:
            logger.warning("session    | %s | event stream closed: %s", session.id, exc)
        finally:
            # Unblocks the prompt when the stream never opened.
            connected.set()

    async def _on_message_updated(
        self, session: Session, event: Event, queue: asyncio.Queue[Message | None],
    ) -> None:
        try:
            info = MessageInfo.model_validate(event.properties.get("info") or {})
        except ValidationError:
            logger.debug("session    | ignoring malformed message.updated event")
            return
        if info.session_id != session.id or info.role != "assistant" or not info.completed:
            return
        if info.id in session.completed_ids:
            return
        session.completed_ids.add(info.id)
        try:
            message = await self._backend.get_message(session.id, info.id)
        except BackendError as exc:
            logger.warning("session    | %s | cannot fetch message %s: %s", session.id, info.id, exc)
            return
        await queue.put(message)

    async def _on_tool_requested(self, session: Session, event: Event) -> None:
        props = event.properties
        if props.get("sessionID") != session.id:
            return
        call = ToolCall(name=str(props.get("tool", "")), arguments=props.get("input"), call_id=str(props.get("callID", "")))
        logger.info("session    | %s | tool requested: %s (%s)", session.id, call.name, call.call_id)
        if self._dispatcher is None:
            output = f"Rejected {call.name} call:\n- tool: no tools are enabled for this session."
        else:
            output = await self._dispatcher.dispatch(call)
        try:
            await self._backend.reply_tool(session.id, call.call_id, output)
        except BackendError as exc:
            logger.error("session    | %s | cannot reply to tool call %s: %s", session.id, call.call_id, exc)

    async def _drain(
        self, session: Session, queue: asyncio.Queue[Message | None], on_message: MessageCallback | None,
    ) -> None:
        while True:
            message = await queue.get()
            if message is None:
                return
            await self._deliver(session, message, on_message)

    async def _deliver(self, session: Session, message: Message, on_message: MessageCallback | None) -> None:
        session.messages.append(message)
        if on_message is None:
            return
        result = on_message(message)
        if asyncio.iscoroutine(result):
            await result

    async def _teardown(self, session: Session) -> None:
        try:
            await self._backend.delete_session(session.id)
        except BackendError as exc:
            logger.warning("session    | %s | delete failed: %s", session.id, exc)
