"""Conversation -> conversation-state payload for the legacy backends.

The legacy protocol nests everything under ``conversationState`` and has
no system-prompt slot.  It always needs a current message, so a turn with
no content cannot be sent even when history is present.
"""

from __future__ import annotations

import logging
from typing import Any

from converse_stream.errors import ConverseStreamError, ErrorKind
from converse_stream.types import (
    AssistantResponseMessage,
    ChatMessage,
    ConversationState,
    ToolSpecification,
    UserInputMessage,
)

from .encoder import coerce_document, encode_tool_result_content, has_text, resolve_schema

_logger = logging.getLogger(__name__)


def _legacy_tool_spec(spec: ToolSpecification) -> dict[str, Any] | None:
    schema = resolve_schema(spec.input_schema)
    if schema is None:
        _logger.warning("Dropping tool %r: input schema is missing or invalid", spec.name)
        return None
    return {
        "toolSpecification": {
            "name": spec.name,
            "description": spec.description,
            "inputSchema": {"json": schema},
        }
    }


def _user_input(
    message: UserInputMessage,
    *,
    include_tools: bool,
    model_id: str | None = None,
) -> dict[str, Any] | None:
    context: dict[str, Any] = {}
    if message.tool_results:
        context["toolResults"] = [
            {
                "toolUseId": r.tool_use_id,
                "content": [encode_tool_result_content(b) for b in r.content],
                "status": r.status.value,
            }
            for r in message.tool_results
        ]
    if not has_text(message.content) and not context:
        return None

    if include_tools and message.tools:
        tools = [t for t in (_legacy_tool_spec(s) for s in message.tools) if t]
        if tools:
            context["tools"] = tools

    encoded: dict[str, Any] = {"content": message.content if has_text(message.content) else ""}
    if context:
        encoded["userInputMessageContext"] = context
    if model_id:
        encoded["modelId"] = model_id
    return encoded


def _assistant_response(message: AssistantResponseMessage) -> dict[str, Any] | None:
    tool_uses = [
        {
            "toolUseId": tu.tool_use_id,
            "name": tu.name,
            "input": coerce_document(tu.input),
        }
        for tu in message.tool_uses or []
    ]
    if not has_text(message.content) and not tool_uses:
        return None
    encoded: dict[str, Any] = {"content": message.content if has_text(message.content) else ""}
    if message.message_id:
        encoded["messageId"] = message.message_id
    if tool_uses:
        encoded["toolUses"] = tool_uses
    return encoded


def encode_legacy_message(message: ChatMessage) -> dict[str, Any] | None:
    """Encode a history entry; ``None`` when it carries no usable content."""
    if isinstance(message, AssistantResponseMessage):
        body = _assistant_response(message)
        return {"assistantResponseMessage": body} if body else None
    body = _user_input(message, include_tools=False)
    return {"userInputMessage": body} if body else None


def build_conversation_state_request(
    state: ConversationState,
    *,
    model_id: str,
    include_tools: bool,
    source: str | None = None,
) -> dict[str, Any]:
    """Encode a ``ConversationState`` for a legacy streaming endpoint."""
    current = _user_input(
        state.user_input_message,
        include_tools=include_tools,
        model_id=model_id,
    )
    if current is None:
        raise ConverseStreamError(
            ErrorKind.MESSAGE_CONVERSION,
            "Current turn has no content to send",
            model_id=model_id,
        )

    history: list[dict[str, Any]] = []
    for index, entry in enumerate(state.history or []):
        encoded = encode_legacy_message(entry)
        if encoded is None:
            _logger.debug("Skipping empty history message %d", index)
            continue
        history.append(encoded)

    if state.model_system_prompt or state.agent_prompt:
        _logger.debug("Legacy backend has no system prompt slot, omitting prompts")

    conversation: dict[str, Any] = {
        "currentMessage": {"userInputMessage": current},
        "chatTriggerType": "MANUAL",
    }
    if state.conversation_id:
        conversation["conversationId"] = state.conversation_id
    if history:
        conversation["history"] = history

    payload: dict[str, Any] = {"conversationState": conversation}
    if source:
        payload["source"] = source
    return payload
