"""Backend variants.

Each backend pairs an encoder with its stream adapter and exposes the
same ``open_stream`` / ``close`` pair, so the client never branches on
the protocol.
"""

from __future__ import annotations

import logging
from typing import Protocol
from urllib.parse import quote

import httpx

from converse_stream.config import ClientConfig
from converse_stream.types import ConversationState

from .encoder import build_converse_request
from .legacy_encoder import build_conversation_state_request
from .mock import MockBackend
from .streams import ConverseResponseStream, LegacyResponseStream, ResponseStream
from .transport import HttpTransport

_logger = logging.getLogger(__name__)


class Backend(Protocol):
    name: str

    async def open_stream(
        self,
        state: ConversationState,
        *,
        model_id: str,
        include_tools: bool,
    ) -> ResponseStream:
        ...

    async def close(self) -> None:
        ...


class ConverseBackend:
    """Model-hosting converse-stream API; the model id is part of the path."""

    name = "converse"

    def __init__(self, transport: HttpTransport) -> None:
        self._transport = transport

    async def open_stream(
        self,
        state: ConversationState,
        *,
        model_id: str,
        include_tools: bool,
    ) -> ConverseResponseStream:
        payload = build_converse_request(state, include_tools=include_tools)
        path = f"/model/{quote(model_id, safe='')}/converse-stream"
        resp = await self._transport.open_stream(path, payload, model_id=model_id)
        return ConverseResponseStream(resp, model_id=model_id)

    async def close(self) -> None:
        await self._transport.close()


class LegacyBackend:
    """Conversation-state protocol served at a fixed path on an endpoint."""

    def __init__(
        self,
        transport: HttpTransport,
        *,
        name: str,
        path: str,
        source: str | None = None,
    ) -> None:
        self._transport = transport
        self.name = name
        self.path = path
        self.source = source

    async def open_stream(
        self,
        state: ConversationState,
        *,
        model_id: str,
        include_tools: bool,
    ) -> LegacyResponseStream:
        payload = build_conversation_state_request(
            state,
            model_id=model_id,
            include_tools=include_tools,
            source=self.source,
        )
        resp = await self._transport.open_stream(self.path, payload, model_id=model_id)
        return LegacyResponseStream(resp, model_id=model_id)

    async def close(self) -> None:
        await self._transport.close()


# name -> (path, source)
_LEGACY_ROUTES: dict[str, tuple[str, str | None]] = {
    "generate_assistant_response": ("/generateAssistantResponse", None),
    "send_message": ("/sendMessage", "CLI"),
}


def create_backend(
    config: ClientConfig,
    http_client: httpx.AsyncClient | None = None,
) -> Backend:
    """Build the backend named by ``config.backend``.

    Raises ``ValueError`` for an unknown backend, or for a legacy backend
    configured without an endpoint.
    """
    if config.backend == "mock":
        if config.mock_responses_path:
            return MockBackend.from_file(config.mock_responses_path)
        return MockBackend()

    if config.backend == "converse":
        return ConverseBackend(HttpTransport(config, http_client))

    if config.backend in _LEGACY_ROUTES:
        if not config.endpoint:
            raise ValueError(f"Backend {config.backend!r} requires an endpoint")
        path, source = _LEGACY_ROUTES[config.backend]
        _logger.debug("Using legacy backend %s at %s", config.backend, config.endpoint)
        return LegacyBackend(
            HttpTransport(config, http_client),
            name=config.backend,
            path=path,
            source=source,
        )

    raise ValueError(f"Unknown backend {config.backend!r}")
