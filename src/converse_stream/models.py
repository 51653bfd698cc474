"""Model capability table.

The catalog is an explicit object handed to the client rather than global
state, so tests and deployments can swap in their own model lists.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Iterable

from converse_stream.errors import ConverseStreamError, ErrorKind

_logger = logging.getLogger(__name__)

DEFAULT_CONTEXT_WINDOW = 128_000

# Older names kept working for stored settings
_MODEL_ALIASES = {
    "claude-4-sonnet": "claude-sonnet-4",
}


@dataclass(frozen=True)
class ModelInfo:
    """Capabilities of a single model.

    Attributes:
        model_id: Identifier sent to the backend.
        model_name: Display name, if any.
        description: Short human-readable description.
        context_window_tokens: Maximum context length in tokens.
        supports_tools: Whether tool specifications may be sent.
    """

    model_id: str
    model_name: str | None = None
    description: str | None = None
    context_window_tokens: int = DEFAULT_CONTEXT_WINDOW
    supports_tools: bool = False

    @classmethod
    def from_id(cls, model_id: str) -> ModelInfo:
        """Bare entry for a model known only by id (e.g. from old settings)."""
        return cls(model_id=model_id, context_window_tokens=200_000)

    @property
    def display_name(self) -> str:
        return self.model_name or self.model_id

    @property
    def description_text(self) -> str | None:
        return self.description or None


def normalize_model_name(name: str) -> str:
    return _MODEL_ALIASES.get(name, name)


class ModelCatalog:
    """Allow-list of models plus their capabilities.

    Parameters
    ----------
    models:
        Ordered model entries.  Must not be empty.
    default_model_id:
        Model used when a turn names none.  Defaults to the first entry.
    """

    def __init__(
        self,
        models: Iterable[ModelInfo],
        default_model_id: str | None = None,
    ) -> None:
        self._models: list[ModelInfo] = list(models)
        if not self._models:
            raise ValueError("ModelCatalog requires at least one model")
        self._by_id = {m.model_id: m for m in self._models}
        if default_model_id is not None and default_model_id not in self._by_id:
            _logger.warning(
                "Default model %s is not in the catalog, using %s",
                default_model_id, self._models[0].model_id,
            )
            default_model_id = None
        self._default_id = default_model_id or self._models[0].model_id

    @property
    def models(self) -> list[ModelInfo]:
        return list(self._models)

    @property
    def default(self) -> ModelInfo:
        return self._by_id[self._default_id]

    def get(self, model_id: str) -> ModelInfo | None:
        return self._by_id.get(model_id)

    def __contains__(self, model_id: object) -> bool:
        return model_id in self._by_id

    def validate(self, model_id: str) -> ModelInfo:
        """Return the entry for *model_id* or raise ``INVALID_MODEL``."""
        info = self._by_id.get(model_id)
        if info is None:
            raise ConverseStreamError(
                ErrorKind.INVALID_MODEL,
                f"Model '{model_id}' is not supported in this deployment.",
                model_id=model_id,
            )
        return info

    def supports_tools(self, model_id: str) -> bool:
        info = self._by_id.get(model_id)
        return info.supports_tools if info else False

    def find(self, name: str) -> ModelInfo | None:
        """Case-insensitive lookup by display name or model id."""
        wanted = normalize_model_name(name).lower()
        for info in self._models:
            if info.model_id.lower() == wanted:
                return info
            if info.model_name and info.model_name.lower() == wanted:
                return info
        return None

    @staticmethod
    def context_window_tokens(model_info: ModelInfo | None) -> int:
        if model_info is None:
            return DEFAULT_CONTEXT_WINDOW
        return model_info.context_window_tokens


# ---------------------------------------------------------------------------
# Builtin models
# ---------------------------------------------------------------------------

BUILTIN_MODELS: tuple[ModelInfo, ...] = (
    ModelInfo(
        model_id="openai.gpt-oss-120b-1:0",
        model_name="ChatGPT 120B",
        description="OpenAI GPT 120B model",
        context_window_tokens=128_000,
        supports_tools=True,
    ),
    ModelInfo(
        model_id="openai.gpt-oss-20b-1:0",
        model_name="ChatGPT 20B",
        description="OpenAI GPT 20B model",
        context_window_tokens=128_000,
        supports_tools=True,
    ),
    ModelInfo(
        model_id="us.anthropic.claude-haiku-4-5-20251001-v1:0",
        model_name="Claude Haiku 4.5",
        description="Anthropic Claude Haiku 4.5",
        context_window_tokens=200_000,
        supports_tools=True,
    ),
    ModelInfo(
        model_id="qwen.qwen3-coder-480b-a35b-v1:0",
        model_name="Qwen3 Coder 480B",
        description="Qwen3 Coder 480B model",
        context_window_tokens=130_000,
        supports_tools=False,
    ),
    ModelInfo(
        model_id="meta.llama4-maverick-17b-instruct-v1:0",
        model_name="Llama 4 Maverick 17B",
        description="Meta Llama 4 Maverick 17B",
        context_window_tokens=1_000_000,
        supports_tools=False,
    ),
    ModelInfo(
        model_id="deepseek.v3-v1:0",
        model_name="DeepSeek V3",
        description="DeepSeek V3 model",
        context_window_tokens=163_000,
        supports_tools=False,
    ),
)


def builtin_catalog(default_model_id: str | None = None) -> ModelCatalog:
    return ModelCatalog(BUILTIN_MODELS, default_model_id)


def parse_models(raw: list[dict[str, Any]]) -> list[ModelInfo]:
    """Build ``ModelInfo`` entries from config dictionaries."""
    models: list[ModelInfo] = []
    for entry in raw:
        model_id = entry.get("model_id") or entry.get("id")
        if not model_id:
            _logger.warning("Skipping model entry without an id: %r", entry)
            continue
        models.append(
            ModelInfo(
                model_id=model_id,
                model_name=entry.get("model_name") or entry.get("name"),
                description=entry.get("description"),
                context_window_tokens=int(
                    entry.get("context_window_tokens", DEFAULT_CONTEXT_WINDOW),
                ),
                supports_tools=bool(entry.get("supports_tools", False)),
            )
        )
    return models
