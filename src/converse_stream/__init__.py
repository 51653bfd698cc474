"""Streaming conversation client for model-hosting converse APIs."""

from converse_stream.config import ClientConfig, load_config
from converse_stream.errors import ConverseStreamError, ErrorKind, classify_error_kind
from converse_stream.llm.client import ConversationClient
from converse_stream.models import ModelCatalog, ModelInfo, builtin_catalog

__all__ = [
    "ClientConfig",
    "ConversationClient",
    "ConverseStreamError",
    "ErrorKind",
    "ModelCatalog",
    "ModelInfo",
    "builtin_catalog",
    "classify_error_kind",
    "load_config",
]
