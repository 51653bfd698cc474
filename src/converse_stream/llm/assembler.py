"""Tool-use reassembly for streamed responses.

``ToolUseAssembler`` turns block start / delta / stop wire events into
``ToolUseEvent`` values.  It is a two-state machine (idle, or one open
tool invocation) owned by a single stream; nothing here is shared between
streams.  ``ToolUseBuffer`` is the caller-side counterpart that joins the
forwarded input fragments back into complete ``ToolUse`` objects.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Hashable

from converse_stream.errors import ToolUseProtocolError
from converse_stream.types import ToolUse, ToolUseEvent

_logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OpenToolUse:
    """The tool invocation currently being streamed."""

    block: Hashable
    tool_use_id: str
    name: str


class ToolUseAssembler:
    """Tracks the open tool invocation of one stream.

    *block* identifies a content block on the wire: the block index for
    the converse protocol, the tool-use id for protocols that send
    pre-shaped tool-use events.
    """

    def __init__(self) -> None:
        self._open: OpenToolUse | None = None

    @property
    def open_tool_use(self) -> OpenToolUse | None:
        return self._open

    @property
    def is_open(self) -> bool:
        return self._open is not None

    def start(self, block: Hashable, tool_use_id: str, name: str) -> ToolUseEvent:
        if self._open is not None:
            raise ToolUseProtocolError(
                f"Tool use {tool_use_id!r} started while "
                f"{self._open.tool_use_id!r} is still open",
            )
        self._open = OpenToolUse(block=block, tool_use_id=tool_use_id, name=name)
        return ToolUseEvent(tool_use_id=tool_use_id, name=name)

    def delta(self, block: Hashable, fragment: str) -> ToolUseEvent:
        current = self._require_open(block, "input delta")
        return ToolUseEvent(
            tool_use_id=current.tool_use_id,
            name=current.name,
            input=fragment,
        )

    def stop(self, block: Hashable) -> ToolUseEvent | None:
        """Close the open invocation.

        Returns ``None`` for the stop of a non-tool block while idle.
        """
        if self._open is None:
            return None
        current = self._require_open(block, "stop")
        self._open = None
        return ToolUseEvent(
            tool_use_id=current.tool_use_id,
            name=current.name,
            stop=True,
        )

    def apply(
        self,
        tool_use_id: str,
        name: str,
        input: str | None = None,
        stop: bool = False,
    ) -> list[ToolUseEvent]:
        """Feed a pre-shaped tool-use event (keyed by its id).

        The first event for an id opens the invocation even if it already
        carries input or the stop flag.  An event with neither is always
        a start.
        """
        events: list[ToolUseEvent] = []
        if self._open is None or (input is None and not stop):
            events.append(self.start(tool_use_id, tool_use_id, name))
        if input is not None:
            events.append(self.delta(tool_use_id, input))
        if stop:
            stopped = self.stop(tool_use_id)
            if stopped is not None:
                events.append(stopped)
        return events

    def abandon(self) -> OpenToolUse | None:
        """Drop any open invocation at end of stream and return it."""
        current, self._open = self._open, None
        return current

    def _require_open(self, block: Hashable, what: str) -> OpenToolUse:
        if self._open is None:
            raise ToolUseProtocolError(f"Tool use {what} received with no open tool use")
        if self._open.block != block:
            raise ToolUseProtocolError(
                f"Tool use {what} for block {block!r} while block "
                f"{self._open.block!r} ({self._open.tool_use_id!r}) is open",
            )
        return self._open


class ToolUseBuffer:
    """Join streamed ``ToolUseEvent`` fragments into ``ToolUse`` objects."""

    def __init__(self) -> None:
        self._order: list[str] = []
        self._names: dict[str, str] = {}
        self._fragments: dict[str, list[str]] = {}

    def feed(self, event: ToolUseEvent) -> None:
        if event.tool_use_id not in self._names:
            self._order.append(event.tool_use_id)
            self._names[event.tool_use_id] = event.name
            self._fragments[event.tool_use_id] = []
        if event.input is not None:
            self._fragments[event.tool_use_id].append(event.input)

    def has_tool_uses(self) -> bool:
        return bool(self._order)

    def raw_input(self, tool_use_id: str) -> str:
        return "".join(self._fragments.get(tool_use_id, []))

    def finalize(self) -> list[ToolUse]:
        """Parse accumulated fragments into complete ToolUse objects."""
        result: list[ToolUse] = []
        for tool_use_id in self._order:
            raw = self.raw_input(tool_use_id)
            try:
                args = json.loads(raw) if raw else {}
            except json.JSONDecodeError:
                _logger.warning("Tool use %s has malformed input JSON", tool_use_id)
                args = {}
            result.append(
                ToolUse(
                    tool_use_id=tool_use_id,
                    name=self._names[tool_use_id],
                    input=args,
                )
            )
        return result
