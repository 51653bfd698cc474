"""Conversation client: model checks, then dispatch to one backend."""

from __future__ import annotations

import logging

import httpx

from converse_stream.config import ClientConfig, load_config
from converse_stream.models import ModelCatalog
from converse_stream.types import ConversationState

from .backends import Backend, create_backend
from .streams import ResponseStream

_logger = logging.getLogger(__name__)


class ConversationClient:
    """Sends a ``ConversationState`` and returns its ``ResponseStream``.

    Parameters
    ----------
    backend:
        The backend every request is dispatched to.
    catalog:
        Model capability table.  Requests for models outside it fail with
        ``INVALID_MODEL`` before any network call.
    """

    def __init__(self, backend: Backend, catalog: ModelCatalog) -> None:
        self._backend = backend
        self._catalog = catalog

    @classmethod
    def from_config(
        cls,
        config: ClientConfig | None = None,
        *,
        catalog: ModelCatalog | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> ConversationClient:
        """Build a client from configuration (loaded from disk if omitted)."""
        config = config or load_config()
        return cls(
            create_backend(config, http_client),
            catalog or config.catalog(),
        )

    @property
    def backend(self) -> Backend:
        return self._backend

    @property
    def catalog(self) -> ModelCatalog:
        return self._catalog

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def send_message(self, conversation: ConversationState) -> ResponseStream:
        """Open a stream for *conversation*.

        The model comes from the current turn, else the catalog default.
        Tools are attached only if that model supports them.

        Raises
        ------
        ConverseStreamError
            ``INVALID_MODEL`` for an unknown model, ``MESSAGE_CONVERSION``
            when nothing can be encoded, or the classified send failure.
        """
        model_id = (
            conversation.user_input_message.model_id
            or self._catalog.default.model_id
        )
        self._catalog.validate(model_id)
        include_tools = self._catalog.supports_tools(model_id)
        if conversation.user_input_message.tools and not include_tools:
            _logger.debug("Model %s does not support tools, omitting them", model_id)

        _logger.debug(
            "Sending message via %s: model=%s, history=%d",
            self._backend.name, model_id, len(conversation.history or []),
        )
        stream = await self._backend.open_stream(
            conversation,
            model_id=model_id,
            include_tools=include_tools,
        )
        _logger.debug("Stream opened (request id: %s)", stream.request_id())
        return stream

    async def close(self) -> None:
        await self._backend.close()

    async def __aenter__(self) -> ConversationClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()
