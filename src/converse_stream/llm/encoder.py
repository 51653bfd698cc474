"""Conversation -> Converse request payload.

Encoding is permissive: history entries and tools that cannot be encoded
are dropped with a log line, never failing the request.  Only a payload
with no messages at all is an error (``MESSAGE_CONVERSION``).
"""

from __future__ import annotations

import json
import logging
from typing import Any

from converse_stream.errors import ConverseStreamError, ErrorKind
from converse_stream.types import (
    AssistantResponseMessage,
    ChatMessage,
    ConversationState,
    ToolResult,
    ToolResultContentBlock,
    ToolResultJson,
    ToolResultStatus,
    ToolResultText,
    ToolSpecification,
    ToolUse,
    UserInputMessage,
    UserInputMessageContext,
)

_logger = logging.getLogger(__name__)

SERVICE_TIERS = ("flex", "default")


# ---------------------------------------------------------------------------
# Shared helpers
# ---------------------------------------------------------------------------

def has_text(content: str | None) -> bool:
    return bool(content and content.strip())


def resolve_schema(schema: dict[str, Any] | str | None) -> dict[str, Any] | None:
    """Return the tool input schema as a JSON object, or None if unusable."""
    if schema is None:
        return None
    if isinstance(schema, str):
        try:
            schema = json.loads(schema)
        except json.JSONDecodeError:
            return None
    if not isinstance(schema, dict):
        return None
    return schema


def coerce_document(value: Any) -> Any:
    """Tool-use input as a JSON document (parses accumulated JSON text)."""
    if isinstance(value, str):
        if not value.strip():
            return {}
        try:
            return json.loads(value)
        except json.JSONDecodeError:
            _logger.warning("Tool input is not valid JSON, sending as a string field")
            return {"input": value}
    if value is None:
        return {}
    return value


def resolve_service_tier(label: str | None) -> str:
    """Map a requested tier label onto a supported tier (default on miss)."""
    if label in SERVICE_TIERS:
        return label
    if label:
        _logger.debug("Unknown service tier %r, using default", label)
    return "default"


def dump_payload(payload: dict[str, Any]) -> bytes:
    """Serialize a payload; same payload in, same bytes out."""
    return json.dumps(payload, ensure_ascii=False, separators=(",", ":")).encode("utf-8")


# ---------------------------------------------------------------------------
# Tool results
# ---------------------------------------------------------------------------

def encode_tool_result_content(block: ToolResultContentBlock) -> dict[str, Any]:
    if isinstance(block, ToolResultJson):
        return {"json": block.json}
    return {"text": block.text}


def encode_tool_result(result: ToolResult) -> dict[str, Any]:
    return {
        "toolResult": {
            "toolUseId": result.tool_use_id,
            "content": [encode_tool_result_content(b) for b in result.content],
            "status": ToolResultStatus(result.status).value,
        }
    }


def decode_tool_result(block: dict[str, Any]) -> ToolResult:
    """Inverse of ``encode_tool_result``."""
    raw = block.get("toolResult", block)
    content: list[ToolResultContentBlock] = []
    for item in raw.get("content", []):
        if "json" in item:
            content.append(ToolResultJson(json=item["json"]))
        else:
            content.append(ToolResultText(text=item.get("text", "")))
    return ToolResult(
        tool_use_id=raw["toolUseId"],
        content=content,
        status=ToolResultStatus(raw.get("status", "success")),
    )


# ---------------------------------------------------------------------------
# Messages
# ---------------------------------------------------------------------------

def _user_blocks(message: UserInputMessage) -> list[dict[str, Any]]:
    blocks: list[dict[str, Any]] = []
    if has_text(message.content):
        blocks.append({"text": message.content})
    for result in message.tool_results:
        blocks.append(encode_tool_result(result))
    return blocks


def _assistant_blocks(message: AssistantResponseMessage) -> list[dict[str, Any]]:
    blocks: list[dict[str, Any]] = []
    if has_text(message.content):
        blocks.append({"text": message.content})
    for tool_use in message.tool_uses or []:
        blocks.append(
            {
                "toolUse": {
                    "toolUseId": tool_use.tool_use_id,
                    "name": tool_use.name,
                    "input": coerce_document(tool_use.input),
                }
            }
        )
    return blocks


def encode_chat_message(message: ChatMessage) -> dict[str, Any] | None:
    """Encode one message; ``None`` when it carries no usable content."""
    if isinstance(message, AssistantResponseMessage):
        role, blocks = "assistant", _assistant_blocks(message)
    else:
        role, blocks = "user", _user_blocks(message)
    if not blocks:
        return None
    return {"role": role, "content": blocks}


def decode_message(wire: dict[str, Any]) -> ChatMessage:
    """Turn a wire message back into a ``ChatMessage``."""
    texts: list[str] = []
    tool_results: list[ToolResult] = []
    tool_uses: list[ToolUse] = []
    for block in wire.get("content", []):
        if "text" in block:
            texts.append(block["text"])
        elif "toolResult" in block:
            tool_results.append(decode_tool_result(block))
        elif "toolUse" in block:
            raw = block["toolUse"]
            tool_uses.append(
                ToolUse(
                    tool_use_id=raw["toolUseId"],
                    name=raw["name"],
                    input=raw.get("input", {}),
                )
            )
    content = "".join(texts)
    if wire.get("role") == "assistant":
        return AssistantResponseMessage(content=content, tool_uses=tool_uses or None)
    context = UserInputMessageContext(tool_results=tool_results) if tool_results else None
    return UserInputMessage(content=content, context=context)


def encode_messages(
    user_input: UserInputMessage,
    history: list[ChatMessage] | None,
) -> list[dict[str, Any]]:
    """Encode history (in order) followed by the current turn.

    Raises ``ConverseStreamError(MESSAGE_CONVERSION)`` if nothing is left
    to send.
    """
    messages: list[dict[str, Any]] = []

    for index, entry in enumerate(history or []):
        encoded = encode_chat_message(entry)
        if encoded is None:
            _logger.debug("Skipping empty history message %d", index)
            continue
        messages.append(encoded)

    current = encode_chat_message(user_input)
    if current is None:
        _logger.debug("Current turn has no content, omitting it")
    else:
        messages.append(current)

    if not messages:
        raise ConverseStreamError(
            ErrorKind.MESSAGE_CONVERSION,
            "Conversation has no content to send",
        )

    for i, msg in enumerate(messages):
        _logger.debug(
            "Message %d: role=%s, content_blocks=%d",
            i, msg["role"], len(msg["content"]),
        )
    return messages


# ---------------------------------------------------------------------------
# Tools and system prompts
# ---------------------------------------------------------------------------

def encode_tool_spec(spec: ToolSpecification) -> dict[str, Any] | None:
    schema = resolve_schema(spec.input_schema)
    if schema is None:
        _logger.warning("Dropping tool %r: input schema is missing or invalid", spec.name)
        return None
    return {
        "toolSpec": {
            "name": spec.name,
            "description": spec.description,
            "inputSchema": {"json": schema},
        }
    }


def encode_tools(tools: list[ToolSpecification] | None) -> dict[str, Any] | None:
    """Build the tool configuration, or ``None`` when there is nothing to send."""
    if not tools:
        return None
    encoded = [t for t in (encode_tool_spec(spec) for spec in tools) if t is not None]
    if not encoded:
        return None
    return {"tools": encoded}


def encode_system_prompt(
    model_prompt: str | None,
    agent_prompt: str | None,
) -> list[dict[str, Any]] | None:
    """Model-level prompt first, agent-level prompt second."""
    blocks = [{"text": p} for p in (model_prompt, agent_prompt) if p is not None]
    _logger.debug("Total system prompt blocks: %d", len(blocks))
    return blocks or None


# ---------------------------------------------------------------------------
# Full request
# ---------------------------------------------------------------------------

def build_converse_request(
    state: ConversationState,
    *,
    include_tools: bool,
) -> dict[str, Any]:
    """Encode a whole ``ConversationState`` into a converse-stream body.

    The model id travels in the URL, not in the body.
    """
    payload: dict[str, Any] = {
        "messages": encode_messages(state.user_input_message, state.history),
    }

    system = encode_system_prompt(state.model_system_prompt, state.agent_prompt)
    if system:
        payload["system"] = system

    if include_tools:
        tool_config = encode_tools(state.user_input_message.tools)
        if tool_config:
            _logger.debug("Sending %d tools", len(tool_config["tools"]))
            payload["toolConfig"] = tool_config
    else:
        _logger.debug("Model does not support tools, skipping tool config")

    if state.service_tier:
        tier = resolve_service_tier(state.service_tier)
        payload["serviceTier"] = {"type": tier}
        _logger.debug("Using service tier: %s", tier)

    return payload
