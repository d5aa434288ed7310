"""Tests for HubConfig: defaults, environment loading, validation."""
from __future__ import annotations

import logging
from pathlib import Path

import pytest
from pydantic import ValidationError

from agent_identity_hub.config import HubConfig

_ENV_VARS = (
    "AGENT_HUB_TOKEN_SECRET",
    "JWT_SECRET",
    "AGENT_HUB_DID_METHOD",
    "AGENT_HUB_SERVICE_URL",
    "API_URL",
    "AGENT_HUB_RESOLVER_URL",
    "AGENT_HUB_RESOLVER_TIMEOUT",
    "TRUST_DECAY_RATE",
    "TRUST_BOOST_RATE",
    "ANOMALY_THRESHOLD",
    "LOG_LEVEL",
    "AGENT_HUB_AUDIT_LOG",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)


class TestDefaults:
    def test_defaults(self) -> None:
        config = HubConfig()
        assert config.token_algorithm == "HS256"
        assert config.default_did_method == "key"
        assert config.trust_decay_rate == 0.05
        assert config.trust_boost_rate == 0.1
        assert config.anomaly_threshold == 0.7
        assert config.resolver_url is None
        assert config.audit_log_path is None


class TestFromEnv:
    def test_reads_environment(self, monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
        monkeypatch.setenv("AGENT_HUB_TOKEN_SECRET", "s3cret")
        monkeypatch.setenv("AGENT_HUB_DID_METHOD", "ethr")
        monkeypatch.setenv("AGENT_HUB_RESOLVER_URL", "https://resolver.test")
        monkeypatch.setenv("AGENT_HUB_RESOLVER_TIMEOUT", "2.5")
        monkeypatch.setenv("TRUST_DECAY_RATE", "0.2")
        monkeypatch.setenv("LOG_LEVEL", "debug")
        monkeypatch.setenv("AGENT_HUB_AUDIT_LOG", str(tmp_path / "audit.jsonl"))
        config = HubConfig.from_env()
        assert config.token_secret == "s3cret"
        assert config.default_did_method == "ethr"
        assert config.resolver_url == "https://resolver.test"
        assert config.resolver_timeout_seconds == 2.5
        assert config.trust_decay_rate == 0.2
        assert config.log_level == "DEBUG"
        assert config.audit_log_path == tmp_path / "audit.jsonl"

    def test_fallback_names(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("JWT_SECRET", "legacy")
        monkeypatch.setenv("API_URL", "https://api.example.com")
        config = HubConfig.from_env()
        assert config.token_secret == "legacy"
        assert config.service_base_url == "https://api.example.com"

    def test_overrides_win(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("AGENT_HUB_DID_METHOD", "ethr")
        config = HubConfig.from_env(default_did_method="key", token_secret="x")
        assert config.default_did_method == "key"

    def test_warns_without_secret(self, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level(logging.WARNING, logger="agent_identity_hub.config"):
            HubConfig.from_env()
        assert "AGENT_HUB_TOKEN_SECRET" in caplog.text

    def test_invalid_number_rejected(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("TRUST_BOOST_RATE", "lots")
        with pytest.raises(ValidationError):
            HubConfig.from_env()


class TestValidation:
    @pytest.mark.parametrize(
        "kwargs",
        [
            {"token_secret": ""},
            {"token_algorithm": "RS256"},
            {"default_did_method": "web"},
            {"log_level": "chatty"},
            {"trust_decay_rate": 1.5},
            {"resolver_timeout_seconds": 0},
        ],
    )
    def test_rejects(self, kwargs: dict[str, object]) -> None:
        with pytest.raises(ValidationError):
            HubConfig(**kwargs)  # type: ignore[arg-type]

    def test_with_updates_revalidates(self) -> None:
        config = HubConfig(token_secret="a")
        assert config.with_updates(anomaly_threshold=0.9).anomaly_threshold == 0.9
        assert config.anomaly_threshold == 0.7
        with pytest.raises(ValidationError):
            config.with_updates(default_did_method="sov")

    def test_redacted_masks_secret(self) -> None:
        data = HubConfig(token_secret="do-not-print").redacted()
        assert data["token_secret"] == "***"
        assert "do-not-print" not in str(data)
