"""OpenCode-style model backend client.

Implements :class:`~infra.backend.ModelBackend` over HTTP with
``httpx.AsyncClient``.  The event stream is Server-Sent Events on ``/event``;
each ``data:`` payload is a JSON object ``{"type": ..., "properties": {...}}``.

Usage::

    from infra.factory import get_backend
    backend = get_backend()
    session_id = await backend.create_session()
"""

from __future__ import annotations

import asyncio
import json
from typing import Any, AsyncIterator
from urllib.parse import quote

import httpx
from pydantic import ValidationError

from app.core.logging import get_logger
from infra.backend import BackendError, Event, Message, ModelRef

logger = get_logger("infra.opencode")

# Seconds allowed to open the event stream; reads on it never time out.
STREAM_CONNECT_TIMEOUT = 30.0


class OpenCodeBackend:
    """HTTP client for an OpenCode-compatible agent server.

    Args:
        base_url: Server root, e.g. ``http://127.0.0.1:4199``.
        timeout:  Timeout in seconds for request/response calls.  The prompt
                  call blocks until the model finishes, so this is long.
        client:   Optional pre-built ``AsyncClient`` (tests, custom transports).
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 600.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._client = client or httpx.AsyncClient(timeout=timeout)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _request(self, method: str, path: str, json_body: dict[str, Any] | None = None) -> Any:
        url = f"{self._base_url}{path}"
        try:
            response = await self._client.request(method, url, json=json_body)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise BackendError(
                f"Backend {method} {path} failed: {exc.response.status_code} {exc.response.text[:200]}",
                status_code=exc.response.status_code,
            ) from exc
        except httpx.RequestError as exc:
            raise BackendError(f"Backend {method} {path} network error: {type(exc).__name__}: {exc}") from exc
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise BackendError(f"Backend {method} {path} returned invalid JSON") from exc

    @staticmethod
    def _session_path(session_id: str) -> str:
        return f"/session/{quote(session_id, safe='')}"

    @staticmethod
    def _message(data: Any, context: str) -> Message:
        try:
            return Message.model_validate(data)
        except ValidationError as exc:
            raise BackendError(f"Malformed message from {context}: {exc.error_count()} error(s)") from exc

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    async def create_session(self, title: str = "") -> str:
        data = await self._request("POST", "/session", {"title": title} if title else {})
        session_id = (data or {}).get("id")
        if not session_id:
            raise BackendError("Backend did not return a session id")
        logger.info("backend    | session created | id=%s", session_id)
        return session_id

    async def prompt(
        self,
        session_id: str,
        model: ModelRef,
        text: str,
        tools: dict[str, bool] | None = None,
    ) -> Message:
        """Send a text prompt and wait for the assistant's terminal message."""
        body: dict[str, Any] = {
            "model": model.to_wire(),
            "parts": [{"type": "text", "text": text}],
        }
        if tools is not None:
            body["tools"] = tools
        logger.info("backend    | prompt | session=%s | model=%s | chars=%d", session_id, model, len(text))
        data = await self._request("POST", f"{self._session_path(session_id)}/message", body)
        return self._message(data, "prompt")

    async def get_message(self, session_id: str, message_id: str) -> Message:
        path = f"{self._session_path(session_id)}/message/{quote(message_id, safe='')}"
        return self._message(await self._request("GET", path), "get_message")

    async def reply_tool(self, session_id: str, call_id: str, output: str) -> None:
        path = f"{self._session_path(session_id)}/tool/{quote(call_id, safe='')}"
        await self._request("POST", path, {"output": output})

    async def delete_session(self, session_id: str) -> None:
        await self._request("DELETE", self._session_path(session_id))
        logger.info("backend    | session deleted | id=%s", session_id)

    # ------------------------------------------------------------------
    # Event stream
    # ------------------------------------------------------------------

    async def subscribe(self, connected: asyncio.Event | None = None) -> AsyncIterator[Event]:
        """Yield events from ``GET /event`` until the server closes the stream.

        *connected* is set as soon as the response headers arrive, before the
        first event is read.

        Multi-line ``data:`` fields are joined per SSE rules; undecodable
        payloads are logged and skipped.
        """
        url = f"{self._base_url}/event"
        try:
            async with self._client.stream(
                "GET", url, headers={"Accept": "text/event-stream"},
                timeout=httpx.Timeout(None, connect=STREAM_CONNECT_TIMEOUT),
            ) as response:
                response.raise_for_status()
                if connected is not None:
                    connected.set()
                data_lines: list[str] = []
                async for line in response.aiter_lines():
                    if line.startswith("data:"):
                        data_lines.append(line[5:].lstrip())
                        continue
                    if line == "" and data_lines:
                        event = _decode_event("\n".join(data_lines))
                        data_lines = []
                        if event is not None:
                            yield event
                if data_lines:
                    event = _decode_event("\n".join(data_lines))
                    if event is not None:
                        yield event
        except httpx.HTTPStatusError as exc:
            raise BackendError(
                f"Backend event stream failed: {exc.response.status_code}",
                status_code=exc.response.status_code,
            ) from exc
        except httpx.RequestError as exc:
            raise BackendError(f"Backend event stream network error: {type(exc).__name__}: {exc}") from exc

    async def aclose(self) -> None:
        await self._client.aclose()

    def __repr__(self) -> str:  # pragma: no cover
        return f"OpenCodeBackend(base_url={self._base_url!r})"


def _decode_event(payload: str) -> Event | None:
    try:
        return Event.model_validate(json.loads(payload))
    except (ValueError, ValidationError):
        logger.warning("backend    | skipping undecodable event: %.200s", payload)
        return None
