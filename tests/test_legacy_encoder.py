"""Tests for the legacy conversation-state encoder."""

from __future__ import annotations

import pytest

from converse_stream.errors import ConverseStreamError, ErrorKind
from converse_stream.llm.legacy_encoder import (
    build_conversation_state_request,
    encode_legacy_message,
)
from converse_stream.types import (
    AssistantResponseMessage,
    ConversationState,
    ToolResult,
    ToolResultStatus,
    ToolResultText,
    ToolSpecification,
    ToolUse,
    UserInputMessage,
    UserInputMessageContext,
)

MODEL = "openai.gpt-oss-20b-1:0"
SCHEMA = {"type": "object"}


class TestBuildConversationStateRequest:
    def test_minimal(self):
        state = ConversationState(UserInputMessage("Hello"), conversation_id="c-1")
        payload = build_conversation_state_request(state, model_id=MODEL, include_tools=True)
        assert payload == {
            "conversationState": {
                "currentMessage": {
                    "userInputMessage": {"content": "Hello", "modelId": MODEL},
                },
                "chatTriggerType": "MANUAL",
                "conversationId": "c-1",
            }
        }

    def test_source(self):
        state = ConversationState(UserInputMessage("Hello"))
        payload = build_conversation_state_request(
            state, model_id=MODEL, include_tools=False, source="CLI",
        )
        assert payload["source"] == "CLI"

    def test_tools_and_results_in_context(self):
        result = ToolResult("t1", [ToolResultText("done")], ToolResultStatus.ERROR)
        spec = ToolSpecification("ls", "list files", SCHEMA)
        state = ConversationState(
            UserInputMessage(
                "",
                context=UserInputMessageContext(tool_results=[result], tools=[spec]),
            )
        )
        payload = build_conversation_state_request(state, model_id=MODEL, include_tools=True)
        current = payload["conversationState"]["currentMessage"]["userInputMessage"]
        context = current["userInputMessageContext"]
        assert context["toolResults"] == [
            {"toolUseId": "t1", "content": [{"text": "done"}], "status": "error"},
        ]
        assert context["tools"] == [
            {
                "toolSpecification": {
                    "name": "ls",
                    "description": "list files",
                    "inputSchema": {"json": SCHEMA},
                }
            }
        ]

    def test_tools_omitted_when_not_supported(self):
        spec = ToolSpecification("ls", "list files", SCHEMA)
        state = ConversationState(
            UserInputMessage("hi", context=UserInputMessageContext(tools=[spec])),
        )
        payload = build_conversation_state_request(state, model_id=MODEL, include_tools=False)
        current = payload["conversationState"]["currentMessage"]["userInputMessage"]
        assert "userInputMessageContext" not in current

    def test_history(self):
        state = ConversationState(
            UserInputMessage("next"),
            history=[
                UserInputMessage("first"),
                AssistantResponseMessage(""),
                AssistantResponseMessage(
                    "calling", tool_uses=[ToolUse("t1", "ls", '{"dir": "."}')], message_id="m1",
                ),
            ],
        )
        payload = build_conversation_state_request(state, model_id=MODEL, include_tools=False)
        history = payload["conversationState"]["history"]
        assert history == [
            {"userInputMessage": {"content": "first"}},
            {
                "assistantResponseMessage": {
                    "content": "calling",
                    "messageId": "m1",
                    "toolUses": [{"toolUseId": "t1", "name": "ls", "input": {"dir": "."}}],
                }
            },
        ]

    def test_system_prompts_omitted(self):
        state = ConversationState(UserInputMessage("hi"), model_system_prompt="sys")
        payload = build_conversation_state_request(state, model_id=MODEL, include_tools=False)
        assert "system" not in str(payload)

    def test_empty_current_turn_fails(self):
        state = ConversationState(UserInputMessage("  "), history=[UserInputMessage("old")])
        with pytest.raises(ConverseStreamError) as exc_info:
            build_conversation_state_request(state, model_id=MODEL, include_tools=False)
        assert exc_info.value.kind is ErrorKind.MESSAGE_CONVERSION


class TestEncodeLegacyMessage:
    def test_empty(self):
        assert encode_legacy_message(UserInputMessage("")) is None
        assert encode_legacy_message(AssistantResponseMessage(" ")) is None
