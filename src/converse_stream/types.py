"""Shared data types for the conversation adapter.

The conversation model (what the caller hands in) and the response events
(what the caller gets back) are provider-agnostic; every backend encoder
and stream adapter converts to and from these types.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any, Union


# ---------------------------------------------------------------------------
# Tool types
# ---------------------------------------------------------------------------

class ToolResultStatus(str, enum.Enum):
    """Outcome of a tool execution as reported back to the model."""

    SUCCESS = "success"
    ERROR = "error"


@dataclass
class ToolResultText:
    """Plain-text content block inside a tool result."""

    text: str


@dataclass
class ToolResultJson:
    """Structured-document content block inside a tool result."""

    json: Any


ToolResultContentBlock = Union[ToolResultText, ToolResultJson]


@dataclass
class ToolResult:
    """Result of a prior tool invocation, sent back with the next user turn."""

    tool_use_id: str
    content: list[ToolResultContentBlock] = field(default_factory=list)
    status: ToolResultStatus = ToolResultStatus.SUCCESS


@dataclass
class ToolUse:
    """A tool invocation requested by the assistant."""

    tool_use_id: str
    name: str
    input: Any = field(default_factory=dict)


@dataclass
class ToolSpecification:
    """A tool the model may call.

    ``input_schema`` is a JSON-schema document, either already parsed or as
    a JSON string.  A tool whose schema cannot be resolved is never sent.
    """

    name: str
    description: str = ""
    input_schema: dict[str, Any] | str | None = None


# Only one tool variant exists today.
Tool = ToolSpecification


# ---------------------------------------------------------------------------
# Conversation types
# ---------------------------------------------------------------------------

@dataclass
class UserInputMessageContext:
    """Structured payload attached to a user message."""

    tool_results: list[ToolResult] | None = None
    tools: list[ToolSpecification] | None = None


@dataclass
class UserInputMessage:
    """A user turn: free text plus optional tool results and tool specs."""

    content: str = ""
    context: UserInputMessageContext | None = None
    model_id: str | None = None

    @property
    def tool_results(self) -> list[ToolResult]:
        if self.context is None or not self.context.tool_results:
            return []
        return self.context.tool_results

    @property
    def tools(self) -> list[ToolSpecification] | None:
        if self.context is None:
            return None
        return self.context.tools


@dataclass
class AssistantResponseMessage:
    """An assistant turn: free text plus any tool invocations it made."""

    content: str = ""
    tool_uses: list[ToolUse] | None = None
    message_id: str | None = None


ChatMessage = Union[UserInputMessage, AssistantResponseMessage]


@dataclass
class ConversationState:
    """Everything needed to send one turn.

    Built by the caller per turn and consumed once by the client.
    """

    user_input_message: UserInputMessage
    conversation_id: str | None = None
    history: list[ChatMessage] | None = None
    service_tier: str | None = None
    model_system_prompt: str | None = None
    agent_prompt: str | None = None


# ---------------------------------------------------------------------------
# Response events
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class AssistantText:
    """A chunk of assistant text, in arrival order."""

    content: str


@dataclass(frozen=True)
class ToolUseEvent:
    """One step of a tool invocation: start, input fragment, or stop.

    A start event has neither ``input`` nor ``stop``; a delta carries an
    ``input`` fragment; the stop event has ``stop=True``.
    """

    tool_use_id: str
    name: str
    input: str | None = None
    stop: bool = False


@dataclass(frozen=True)
class StreamEnd:
    """Terminal event: nothing follows it."""


ResponseEvent = Union[AssistantText, ToolUseEvent, StreamEnd]


__all__ = [
    "AssistantResponseMessage",
    "AssistantText",
    "ChatMessage",
    "ConversationState",
    "ResponseEvent",
    "StreamEnd",
    "Tool",
    "ToolResult",
    "ToolResultContentBlock",
    "ToolResultJson",
    "ToolResultStatus",
    "ToolResultText",
    "ToolSpecification",
    "ToolUse",
    "ToolUseEvent",
    "UserInputMessage",
    "UserInputMessageContext",
]
