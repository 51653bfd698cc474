"""Encoding, streaming and dispatch for the supported backends."""

from converse_stream.llm.assembler import ToolUseAssembler, ToolUseBuffer
from converse_stream.llm.backends import ConverseBackend, LegacyBackend, create_backend
from converse_stream.llm.client import ConversationClient
from converse_stream.llm.mock import MockBackend, split_tool_use_event
from converse_stream.llm.streams import ResponseStream
from converse_stream.llm.transport import HttpTransport

__all__ = [
    "ConversationClient",
    "ConverseBackend",
    "HttpTransport",
    "LegacyBackend",
    "MockBackend",
    "ResponseStream",
    "ToolUseAssembler",
    "ToolUseBuffer",
    "create_backend",
    "split_tool_use_event",
]
