"""Deterministic mock backend for tests and offline runs.

Fixture format: a list of responses, each a list of items.  A string item
becomes one ``AssistantText``; an object ``{tool_use_id, name, args}``
becomes a tool invocation (start, two input halves, stop).

    [["Hello!", " How can I", " assist you today?"],
     [{"tool_use_id": "t1", "name": "read", "args": {"path": "a.txt"}}]]
"""

from __future__ import annotations

import json
import logging
import threading
from collections import deque
from pathlib import Path
from typing import Any, Iterable

from converse_stream.types import (
    AssistantText,
    ConversationState,
    ResponseEvent,
    ToolUseEvent,
)

from .streams import MockResponseStream

_logger = logging.getLogger(__name__)


def split_tool_use_event(item: dict[str, Any]) -> list[ToolUseEvent]:
    """Expand a fixture tool call into start / two input halves / stop."""
    tool_use_id = item["tool_use_id"]
    name = item["name"]
    args = json.dumps(item.get("args", {}), separators=(",", ":"))
    split = len(args) // 2
    return [
        ToolUseEvent(tool_use_id=tool_use_id, name=name),
        ToolUseEvent(tool_use_id=tool_use_id, name=name, input=args[:split]),
        ToolUseEvent(tool_use_id=tool_use_id, name=name, input=args[split:]),
        ToolUseEvent(tool_use_id=tool_use_id, name=name, stop=True),
    ]


def parse_response(items: Iterable[Any]) -> list[ResponseEvent]:
    events: list[ResponseEvent] = []
    for item in items:
        if isinstance(item, str):
            events.append(AssistantText(content=item))
        elif isinstance(item, dict):
            events.extend(split_tool_use_event(item))
        else:
            raise ValueError(f"Unsupported mock response item: {item!r}")
    return events


class MockBackend:
    """Serves queued responses in the order they were added.

    The queue may be filled from another thread while streams are being
    opened, so it is guarded by a lock.
    """

    name = "mock"

    def __init__(self, responses: Iterable[Iterable[ResponseEvent]] = ()) -> None:
        self._lock = threading.Lock()
        self._responses: deque[list[ResponseEvent]] = deque(list(r) for r in responses)
        self.requests: list[ConversationState] = []

    @classmethod
    def from_fixture(cls, value: Any) -> MockBackend:
        if not isinstance(value, list):
            raise ValueError("Mock fixture must be a list of responses")
        return cls(parse_response(items) for items in value)

    @classmethod
    def from_file(cls, path: str | Path) -> MockBackend:
        _logger.info("Loading mock responses from %s", path)
        with open(path, encoding="utf-8") as f:
            return cls.from_fixture(json.load(f))

    def push(self, events: Iterable[ResponseEvent]) -> None:
        with self._lock:
            self._responses.append(list(events))

    @property
    def pending(self) -> int:
        with self._lock:
            return len(self._responses)

    async def open_stream(
        self,
        state: ConversationState,
        *,
        model_id: str,
        include_tools: bool,
    ) -> MockResponseStream:
        with self._lock:
            events = self._responses.popleft() if self._responses else []
            self.requests.append(state)
        if not events:
            _logger.debug("Mock response queue is empty")
        return MockResponseStream(events)

    async def close(self) -> None:
        pass
