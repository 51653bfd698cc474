"""Stream adapters: backend wire events -> ``ResponseEvent`` values.

Every backend answers with a ``ResponseStream``.  The caller pulls one
event at a time with ``receive_next_event()`` (or ``async for``) until
``StreamEnd``.  Overlapping receives on one stream are not supported.
"""

from __future__ import annotations

import abc
import json
import logging
from collections import deque
from typing import Any, AsyncIterator, Iterable

import httpx
from botocore.eventstream import EventStreamBuffer, ParserError

from converse_stream.errors import (
    STREAM_EXCEPTION_STATUS,
    ConverseStreamError,
    ErrorKind,
    classify_error_kind,
)
from converse_stream.types import (
    AssistantResponseMessage,
    AssistantText,
    ResponseEvent,
    StreamEnd,
    ToolUseEvent,
)

from .assembler import ToolUseAssembler, ToolUseBuffer

_logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "x-amzn-requestid"
EVENT_STREAM_CONTENT_TYPE = "application/vnd.amazon.eventstream"


# ---------------------------------------------------------------------------
# Uniform contract
# ---------------------------------------------------------------------------

class ResponseStream(abc.ABC):
    """One streamed response.

    Subclasses implement ``_next_event()``; this base enforces that
    ``StreamEnd`` is terminal and releases the connection when the stream
    ends or fails.
    """

    def __init__(self, model_id: str | None = None) -> None:
        self._model_id = model_id
        self._ended = False
        self._pending: deque[ResponseEvent] = deque()
        self._assembler = ToolUseAssembler()
        self.metadata: list[dict[str, Any]] = []
        self.usage: dict[str, Any] = {}
        self.stop_reason: str | None = None

    @abc.abstractmethod
    def request_id(self) -> str | None:
        """Backend request id, for support and log correlation."""

    @abc.abstractmethod
    async def _next_event(self) -> ResponseEvent:
        ...

    async def aclose(self) -> None:
        """Release the underlying connection."""

    @property
    def ended(self) -> bool:
        return self._ended

    async def receive_next_event(self) -> ResponseEvent | None:
        """Wait for the next event.

        Returns ``StreamEnd`` once, then ``None`` on any further call.
        Raises ``ConverseStreamError`` if the stream fails.
        """
        if self._ended:
            _logger.warning("receive_next_event() called after end of stream")
            return None
        try:
            event = await self._next_event()
        except Exception:
            self._ended = True
            await self.aclose()
            raise
        if isinstance(event, StreamEnd):
            self._ended = True
            await self.aclose()
        return event

    async def __aiter__(self) -> AsyncIterator[ResponseEvent]:
        while True:
            event = await self.receive_next_event()
            if event is None or isinstance(event, StreamEnd):
                return
            yield event

    async def __aenter__(self) -> ResponseStream:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        self._ended = True
        await self.aclose()

    async def collect(self) -> AssistantResponseMessage:
        """Drain the stream into a single assistant message."""
        texts: list[str] = []
        tool_uses = ToolUseBuffer()
        async for event in self:
            if isinstance(event, AssistantText):
                texts.append(event.content)
            elif isinstance(event, ToolUseEvent):
                tool_uses.feed(event)
        return AssistantResponseMessage(
            content="".join(texts),
            tool_uses=tool_uses.finalize() or None,
        )

    # ------------------------------------------------------------------
    # Helpers for subclasses
    # ------------------------------------------------------------------

    def _push_text(self, text: str | None) -> None:
        # Empty fragments carry nothing and are not surfaced
        if text:
            self._pending.append(AssistantText(content=text))

    def _record_metadata(self, kind: str, body: Any) -> None:
        _logger.debug("Metadata event %s: %r", kind, body)
        if not isinstance(body, dict):
            return
        self.metadata.append(body)
        if isinstance(body.get("usage"), dict):
            self.usage = body["usage"]

    def _finish(self) -> StreamEnd:
        dangling = self._assembler.abandon()
        if dangling is not None:
            _logger.warning(
                "Stream ended while tool use %s (%s) was still open",
                dangling.tool_use_id, dangling.name,
            )
        return StreamEnd()


# ---------------------------------------------------------------------------
# Live backends
# ---------------------------------------------------------------------------

class HttpEventStream(ResponseStream):
    """Reads wire events from a streaming HTTP response.

    ``application/vnd.amazon.eventstream`` bodies are decoded as binary
    event-stream frames: the event kind comes from the ``:event-type``
    header and the payload is its JSON body.  Any other content type is
    read as one JSON object per line, each keyed by event kind.
    """

    def __init__(self, response: httpx.Response, model_id: str | None = None) -> None:
        super().__init__(model_id)
        self._response = response
        self._stopped = False
        content_type = response.headers.get("content-type", "")
        self._framed = content_type.split(";", 1)[0].strip() == EVENT_STREAM_CONTENT_TYPE
        if self._framed:
            self._chunks = response.aiter_bytes()
            self._frames = EventStreamBuffer()
        else:
            self._lines = response.aiter_lines()

    def request_id(self) -> str | None:
        return self._response.headers.get(REQUEST_ID_HEADER)

    async def aclose(self) -> None:
        await self._response.aclose()

    @abc.abstractmethod
    def _handle(self, message: dict[str, Any]) -> bool:
        """Translate one wire message; return True at end of message."""

    async def _after_message_stop(self) -> None:
        """Hook run once the logical message has ended."""

    async def _next_event(self) -> ResponseEvent:
        while not self._pending:
            if self._stopped:
                return self._finish()
            message = await self._read_message()
            if message is None:
                _logger.debug("Stream body ended")
                return self._finish()
            if self._handle(message):
                await self._after_message_stop()
                self._stopped = True
        return self._pending.popleft()

    async def _read_message(self) -> dict[str, Any] | None:
        if self._framed:
            return await self._read_frame()
        return await self._read_line()

    async def _next_chunk(self, chunks: AsyncIterator[Any]) -> Any | None:
        try:
            return await anext(chunks)
        except StopAsyncIteration:
            return None
        except (httpx.HTTPError, httpx.StreamError) as e:
            _logger.error("Stream error: %s", e)
            raise ConverseStreamError(
                ErrorKind.API_ERROR,
                f"stream interrupted: {e}",
                reason_code=type(e).__name__,
                request_id=self.request_id(),
                model_id=self._model_id,
            ) from e

    # ------------------------------------------------------------------
    # Line-delimited JSON
    # ------------------------------------------------------------------

    async def _read_line(self) -> dict[str, Any] | None:
        while True:
            line = await self._next_chunk(self._lines)
            if line is None:
                return None
            line = line.strip()
            if line.startswith("data:"):
                line = line[5:].strip()
            if not line:
                continue
            try:
                message = json.loads(line)
            except json.JSONDecodeError as e:
                raise self._malformed(line) from e
            if not isinstance(message, dict):
                raise self._malformed(line)
            return message

    # ------------------------------------------------------------------
    # Binary event-stream frames
    # ------------------------------------------------------------------

    async def _read_frame(self) -> dict[str, Any] | None:
        while True:
            try:
                frame = next(self._frames, None)
            except ParserError as e:
                raise self._malformed(f"undecodable event-stream frame: {e}") from e
            if frame is not None:
                return self._frame_message(frame.headers, frame.payload)
            chunk = await self._next_chunk(self._chunks)
            if chunk is None:
                return None
            self._frames.add_data(chunk)

    def _frame_message(self, headers: dict[str, Any], payload: bytes) -> dict[str, Any]:
        message_type = headers.get(":message-type", "event")
        if message_type == "error":
            code = headers.get(":error-code", "UnknownError")
            self._raise_stream_exception(code, {"message": headers.get(":error-message", code)})

        try:
            body = json.loads(payload) if payload else {}
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise self._malformed(repr(payload[:200])) from e

        if message_type == "exception":
            self._raise_stream_exception(headers.get(":exception-type", "UnknownException"), body)

        kind = headers.get(":event-type")
        if not kind:
            raise self._malformed(f"event-stream frame without :event-type: {headers!r}")
        _logger.debug("Event-stream frame %s", kind)
        return {kind: body}

    # ------------------------------------------------------------------
    # Failures
    # ------------------------------------------------------------------

    def _malformed(self, raw: str) -> ConverseStreamError:
        return ConverseStreamError(
            ErrorKind.API_ERROR,
            f"malformed stream event: {raw[:200]!r}",
            reason_code="MalformedEvent",
            request_id=self.request_id(),
            model_id=self._model_id,
        )

    def _required(self, kind: str, body: Any, *keys: str) -> list[str]:
        """Return the string fields *keys* of *body* or raise MalformedEvent."""
        values = [body.get(key) if isinstance(body, dict) else None for key in keys]
        if not all(isinstance(v, str) and v for v in values):
            raise self._malformed(json.dumps({kind: body}))
        return values

    def _raise_stream_exception(self, kind: str, body: Any) -> None:
        """Classify an exception event delivered inside the stream."""
        raw = json.dumps(body).encode("utf-8") if body is not None else b""
        status = STREAM_EXCEPTION_STATUS.get(kind)
        error_class = classify_error_kind(status, raw, self._model_id, reason_code=kind)
        message = body.get("message", kind) if isinstance(body, dict) else kind
        _logger.error("Stream exception event %s: %s", kind, message)
        raise ConverseStreamError.from_class(
            error_class,
            message,
            status_code=status,
            request_id=self.request_id(),
            model_id=self._model_id,
        )


class ConverseResponseStream(HttpEventStream):
    """Adapter for converse-stream events.

    Text arrives as content-block deltas; tool invocations arrive as a
    block start (id + name), input deltas, and a block stop, all tagged
    with the content block index.
    """

    def _handle(self, message: dict[str, Any]) -> bool:
        message_stopped = False
        for kind, body in message.items():
            if body is not None and not isinstance(body, dict):
                raise self._malformed(json.dumps({kind: body}))
            if kind == "messageStart":
                _logger.debug("messageStart")
            elif kind == "contentBlockStart":
                self._on_block_start(body or {})
            elif kind == "contentBlockDelta":
                self._on_block_delta(body or {})
            elif kind == "contentBlockStop":
                closed = self._assembler.stop((body or {}).get("contentBlockIndex", 0))
                if closed is not None:
                    self._pending.append(closed)
            elif kind == "messageStop":
                self.stop_reason = (body or {}).get("stopReason")
                _logger.debug("messageStop - stream complete (%s)", self.stop_reason)
                message_stopped = True
            elif kind == "metadata":
                self._record_metadata(kind, body)
            elif kind in STREAM_EXCEPTION_STATUS or kind.endswith("Exception"):
                self._raise_stream_exception(kind, body)
            else:
                _logger.debug("Ignoring unknown event type %s", kind)
        return message_stopped

    def _on_block_start(self, body: dict[str, Any]) -> None:
        start = body.get("start") or {}
        tool_use = start.get("toolUse") if isinstance(start, dict) else None
        if not tool_use:
            return
        tool_use_id, name = self._required("contentBlockStart", tool_use, "toolUseId", "name")
        self._pending.append(
            self._assembler.start(body.get("contentBlockIndex", 0), tool_use_id, name),
        )

    def _on_block_delta(self, body: dict[str, Any]) -> None:
        delta = body.get("delta") or {}
        if not isinstance(delta, dict):
            raise self._malformed(json.dumps({"contentBlockDelta": body}))
        if "text" in delta:
            self._push_text(delta["text"])
        elif "toolUse" in delta:
            tool_use = delta["toolUse"] or {}
            fragment = tool_use.get("input", "") if isinstance(tool_use, dict) else None
            if not isinstance(fragment, str):
                raise self._malformed(json.dumps({"contentBlockDelta": body}))
            self._pending.append(
                self._assembler.delta(body.get("contentBlockIndex", 0), fragment),
            )
        else:
            _logger.debug("Ignoring content block delta %s", list(delta))

    async def _after_message_stop(self) -> None:
        # Usage metadata follows messageStop on the wire
        while True:
            message = await self._read_message()
            if message is None:
                return
            for kind, body in message.items():
                if kind == "metadata":
                    self._record_metadata(kind, body)
                else:
                    _logger.debug("Ignoring %s after messageStop", kind)


class LegacyResponseStream(HttpEventStream):
    """Adapter for the legacy assistant-response protocol.

    Tool-use events arrive pre-shaped (id, name, optional input fragment,
    optional stop) and are still run through the assembler so ordering is
    enforced the same way.  The stream ends with the response body.
    """

    def _handle(self, message: dict[str, Any]) -> bool:
        for kind, body in message.items():
            if kind == "assistantResponseEvent":
                content = body.get("content") if isinstance(body, dict) else None
                if content is not None and not isinstance(content, str):
                    raise self._malformed(json.dumps({kind: body}))
                self._push_text(content)
            elif kind == "toolUseEvent":
                tool_use_id, name = self._required(kind, body, "toolUseId", "name")
                fragment = body.get("input")
                if fragment is not None and not isinstance(fragment, str):
                    raise self._malformed(json.dumps({kind: body}))
                self._pending.extend(
                    self._assembler.apply(
                        tool_use_id,
                        name,
                        input=fragment,
                        stop=bool(body.get("stop")),
                    )
                )
            elif kind.endswith("Exception"):
                self._raise_stream_exception(kind, body)
            else:
                self._record_metadata(kind, body)
        return False


# ---------------------------------------------------------------------------
# Deterministic mock
# ---------------------------------------------------------------------------

class MockResponseStream(ResponseStream):
    """Replays pre-seeded events in order without any I/O."""

    def __init__(self, events: Iterable[ResponseEvent]) -> None:
        super().__init__()
        self._events: deque[ResponseEvent] = deque(events)

    def request_id(self) -> str | None:
        return None

    async def _next_event(self) -> ResponseEvent:
        while not self._pending:
            if not self._events:
                return self._finish()
            event = self._events.popleft()
            if isinstance(event, StreamEnd):
                return self._finish()
            if isinstance(event, ToolUseEvent):
                self._pending.extend(
                    self._assembler.apply(
                        event.tool_use_id,
                        event.name,
                        input=event.input,
                        stop=event.stop,
                    )
                )
            else:
                self._push_text(event.content)
        return self._pending.popleft()
