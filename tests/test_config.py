"""Tests for client configuration."""

from pathlib import Path

import httpx
import yaml

from converse_stream.config import ClientConfig, load_config


class TestClientConfig:
    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("AWS_REGION", raising=False)
        monkeypatch.delenv("CONVERSE_STREAM_API_KEY", raising=False)
        monkeypatch.delenv("CONVERSE_STREAM_MOCK_CHAT_RESPONSE", raising=False)
        cfg = ClientConfig()
        assert cfg.backend == "converse"
        assert cfg.region == "us-east-1"
        assert cfg.api_key is None
        assert cfg.api_timeout_ms == 300_000
        assert cfg.max_attempts == 3
        assert cfg.max_backoff_s == 10.0
        assert cfg.mock_responses_path is None

    def test_environment(self, monkeypatch):
        monkeypatch.setenv("AWS_REGION", "eu-west-1")
        monkeypatch.setenv("CONVERSE_STREAM_API_KEY", "secret")
        monkeypatch.setenv("CONVERSE_STREAM_MOCK_CHAT_RESPONSE", "/tmp/mock.json")
        cfg = ClientConfig()
        assert cfg.region == "eu-west-1"
        assert cfg.api_key == "secret"
        assert cfg.mock_responses_path == "/tmp/mock.json"

    def test_base_url(self):
        assert ClientConfig(region="us-west-2").base_url == (
            "https://bedrock-runtime.us-west-2.amazonaws.com"
        )
        assert ClientConfig(endpoint="http://localhost:9000/").base_url == (
            "http://localhost:9000"
        )

    def test_timeout_is_uniform(self):
        timeout = ClientConfig(api_timeout_ms=1500).timeout
        assert isinstance(timeout, httpx.Timeout)
        assert timeout.connect == timeout.read == timeout.write == timeout.pool == 1.5

    def test_backoff_is_capped(self):
        cfg = ClientConfig(backoff_base_s=1.0, max_backoff_s=10.0)
        assert [cfg.backoff_delay(n) for n in range(5)] == [1.0, 2.0, 4.0, 8.0, 10.0]

    def test_catalog_override(self):
        from converse_stream.models import ModelInfo

        cfg = ClientConfig(models=[ModelInfo("x"), ModelInfo("y")], default_model="y")
        assert cfg.catalog().default.model_id == "y"

    def test_builtin_catalog(self):
        assert len(ClientConfig().catalog().models) == 6


class TestLoadConfig:
    def test_missing_explicit_path(self, tmp_path: Path):
        cfg = load_config(tmp_path / "missing.yaml")
        assert cfg.backend == "converse"

    def test_load_from_file(self, tmp_path: Path):
        data = {
            "backend": "send_message",
            "region": "ap-northeast-1",
            "endpoint": "https://q.example.com",
            "api_timeout_ms": 5000,
            "max_attempts": 5,
            "default_model": "m2",
            "models": [
                {"model_id": "m1", "supports_tools": True},
                {"model_id": "m2"},
            ],
        }
        path = tmp_path / "config.yaml"
        path.write_text(yaml.dump(data))

        cfg = load_config(path)
        assert cfg.backend == "send_message"
        assert cfg.region == "ap-northeast-1"
        assert cfg.endpoint == "https://q.example.com"
        assert cfg.api_timeout_ms == 5000
        assert cfg.max_attempts == 5
        assert [m.model_id for m in cfg.models] == ["m1", "m2"]
        assert cfg.catalog().default.model_id == "m2"

    def test_unknown_backend_uses_default(self, tmp_path: Path):
        path = tmp_path / "config.yaml"
        path.write_text(yaml.dump({"backend": "carrier-pigeon", "max_attempts": 0}))
        cfg = load_config(path)
        assert cfg.backend == "converse"
        assert cfg.max_attempts == 1

    def test_empty_file(self, tmp_path: Path):
        path = tmp_path / "config.yaml"
        path.write_text("")
        assert load_config(path).backend == "converse"

    def test_search_path(self, tmp_path: Path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        (tmp_path / "converse_stream.yaml").write_text(yaml.dump({"backend": "mock"}))
        assert load_config().backend == "mock"
