"""Client configuration.

Config discovery (first match wins):
  1. explicit path passed to ``load_config``
  2. ``./converse_stream.yaml``
  3. ``~/.config/converse-stream/config.yaml``
  4. Built-in defaults
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import httpx
import yaml

from converse_stream.models import ModelCatalog, ModelInfo, builtin_catalog, parse_models

_logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_MS = 300_000
DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_MAX_BACKOFF_S = 10.0

BACKENDS = ("converse", "generate_assistant_response", "send_message", "mock")


def _default_region() -> str:
    return os.environ.get("AWS_REGION", "us-east-1")


# ---------------------------------------------------------------------------
# Config data structures
# ---------------------------------------------------------------------------

@dataclass
class ClientConfig:
    """Settings read once when the client is constructed."""

    backend: str = "converse"
    region: str = field(default_factory=_default_region)
    endpoint: str | None = None
    api_key: str | None = field(
        default_factory=lambda: os.environ.get("CONVERSE_STREAM_API_KEY"),
    )

    # Transport
    api_timeout_ms: int = DEFAULT_TIMEOUT_MS
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    backoff_base_s: float = 1.0
    max_backoff_s: float = DEFAULT_MAX_BACKOFF_S

    # Models
    default_model: str | None = None
    models: list[ModelInfo] | None = None

    # Deterministic mock backend
    mock_responses_path: str | None = field(
        default_factory=lambda: os.environ.get("CONVERSE_STREAM_MOCK_CHAT_RESPONSE"),
    )

    @property
    def timeout(self) -> httpx.Timeout:
        """One duration for connect, read, write and pool."""
        return httpx.Timeout(self.api_timeout_ms / 1000)

    @property
    def base_url(self) -> str:
        if self.endpoint:
            return self.endpoint.rstrip("/")
        return f"https://bedrock-runtime.{self.region}.amazonaws.com"

    def backoff_delay(self, attempt: int) -> float:
        """Delay before retrying after 0-based *attempt*, capped."""
        return min(self.backoff_base_s * (2 ** attempt), self.max_backoff_s)

    def catalog(self) -> ModelCatalog:
        if self.models:
            return ModelCatalog(self.models, self.default_model)
        return builtin_catalog(self.default_model)


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------

_SEARCH_PATHS = [
    Path("./converse_stream.yaml"),
    Path.home() / ".config" / "converse-stream" / "config.yaml",
]


def _parse_config(raw: dict[str, Any]) -> ClientConfig:
    cfg = ClientConfig()
    backend = raw.get("backend", cfg.backend)
    if backend not in BACKENDS:
        _logger.warning("Unknown backend %r, using %r", backend, cfg.backend)
        backend = cfg.backend
    cfg.backend = backend
    cfg.region = raw.get("region", cfg.region)
    cfg.endpoint = raw.get("endpoint", cfg.endpoint)
    cfg.api_key = raw.get("api_key", cfg.api_key)
    cfg.api_timeout_ms = int(raw.get("api_timeout_ms", cfg.api_timeout_ms))
    cfg.max_attempts = max(1, int(raw.get("max_attempts", cfg.max_attempts)))
    cfg.backoff_base_s = float(raw.get("backoff_base_s", cfg.backoff_base_s))
    cfg.max_backoff_s = float(raw.get("max_backoff_s", cfg.max_backoff_s))
    cfg.default_model = raw.get("default_model", cfg.default_model)
    cfg.mock_responses_path = raw.get("mock_responses_path", cfg.mock_responses_path)
    if raw.get("models"):
        cfg.models = parse_models(raw["models"]) or None
    return cfg


def load_config(path: str | Path | None = None) -> ClientConfig:
    """Load configuration from YAML.

    Parameters
    ----------
    path:
        Explicit config path.  If *None*, search default locations.

    Returns
    -------
    ClientConfig
    """
    config_path: Path | None = None

    if path is not None:
        config_path = Path(path)
        if not config_path.exists():
            _logger.warning("Config file not found: %s, using defaults", path)
            return ClientConfig()
    else:
        for candidate in _SEARCH_PATHS:
            if candidate.exists():
                config_path = candidate
                break

    if config_path is None:
        _logger.info("No config file found, using defaults")
        return ClientConfig()

    _logger.info("Loading config from %s", config_path)
    with open(config_path) as f:
        raw = yaml.safe_load(f) or {}

    return _parse_config(raw)
