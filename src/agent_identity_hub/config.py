"""HubConfig: runtime configuration for the identity hub.

All parameters have development-friendly defaults. Deployments normally
build the configuration with :meth:`HubConfig.from_env`, which reads the
environment variables listed below and applies keyword overrides on top.

Environment variables
---------------------
``AGENT_HUB_TOKEN_SECRET`` (fallback ``JWT_SECRET``)
    HMAC secret used to sign capability tokens.
``AGENT_HUB_DID_METHOD``
    DID method for newly created agents (``key`` or ``ethr``).
``AGENT_HUB_SERVICE_URL`` (fallback ``API_URL``)
    Base URL advertised in the ``#mcp`` service endpoint of agent DIDs.
``AGENT_HUB_RESOLVER_URL`` / ``AGENT_HUB_RESOLVER_TIMEOUT``
    Universal-resolver compatible endpoint for non-local DIDs.
``TRUST_DECAY_RATE`` / ``TRUST_BOOST_RATE`` / ``ANOMALY_THRESHOLD``
    Trust dynamics tuning.
``LOG_LEVEL`` / ``AGENT_HUB_AUDIT_LOG``
    Logging level and optional JSONL activity log path.
"""
from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger(__name__)

_DEV_SECRET: str = "agent-identity-hub-development-secret"

SUPPORTED_DID_METHODS: frozenset[str] = frozenset({"key", "ethr"})


def _env(*names: str, default: str | None = None) -> str | None:
    """Return the first non-empty environment variable among *names*."""
    for name in names:
        value = os.environ.get(name)
        if value:
            return value
    return default


class HubConfig(BaseModel):
    """Validated configuration shared by every hub service.

    Parameters
    ----------
    token_secret:
        Shared HMAC secret for capability tokens. Must not be empty.
    token_algorithm:
        Algorithm label written into the token header. Only ``HS256`` is
        implemented.
    default_did_method:
        DID method used by :class:`~agent_identity_hub.identity.manager.IdentityManager`.
    service_base_url:
        Base URL for the ``#mcp`` service endpoint in agent DID documents.
    resolver_url:
        Optional external resolver base URL. ``None`` disables external
        resolution (non-local DIDs resolve to ``notFound``).
    resolver_timeout_seconds:
        Upper bound on a single external resolution call.
    trust_decay_rate / trust_boost_rate:
        Recency adjustment rates applied by the trust engine.
    anomaly_threshold:
        Confidence at or above which detected anomalies are reported at
        WARNING level.
    default_capability_hours / max_capability_hours:
        Capability lifetime default and upper bound.
    log_level:
        Level passed to :func:`logging.basicConfig` by the CLI.
    audit_log_path:
        Optional JSONL file receiving every activity record.
    """

    token_secret: str = _DEV_SECRET
    token_algorithm: str = "HS256"
    default_did_method: str = "key"
    service_base_url: str = "http://localhost:3000"
    resolver_url: str | None = None
    resolver_timeout_seconds: float = Field(default=5.0, gt=0.0)
    trust_decay_rate: float = Field(default=0.05, ge=0.0, le=1.0)
    trust_boost_rate: float = Field(default=0.1, ge=0.0, le=1.0)
    anomaly_threshold: float = Field(default=0.7, ge=0.0, le=1.0)
    default_capability_hours: float = Field(default=24.0, gt=0.0)
    max_capability_hours: float = Field(default=8760.0, gt=0.0)
    log_level: str = "INFO"
    audit_log_path: Path | None = None

    @field_validator("token_secret")
    @classmethod
    def validate_secret(cls, value: str) -> str:
        """Reject an empty signing secret."""
        if not value:
            raise ValueError("token_secret must not be empty.")
        return value

    @field_validator("token_algorithm")
    @classmethod
    def validate_algorithm(cls, value: str) -> str:
        """Only HMAC-SHA256 tokens are supported."""
        if value != "HS256":
            raise ValueError(f"Unsupported token algorithm {value!r}; only 'HS256' is implemented.")
        return value

    @field_validator("default_did_method")
    @classmethod
    def validate_did_method(cls, value: str) -> str:
        """Restrict the default DID method to the implemented ones."""
        if value not in SUPPORTED_DID_METHODS:
            raise ValueError(
                f"Unsupported DID method {value!r}. Allowed: {sorted(SUPPORTED_DID_METHODS)}"
            )
        return value

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, value: str) -> str:
        """Normalise and validate the logging level name."""
        upper = value.upper()
        if upper not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Invalid log level {value!r}.")
        return upper

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def from_env(cls, **overrides: Any) -> "HubConfig":
        """Build a configuration from environment variables.

        Keyword *overrides* take precedence over the environment.

        Returns
        -------
        HubConfig
            The validated configuration.
        """
        values: dict[str, Any] = {}

        secret = _env("AGENT_HUB_TOKEN_SECRET", "JWT_SECRET")
        if secret is None and "token_secret" not in overrides:
            logger.warning(
                "No AGENT_HUB_TOKEN_SECRET configured; using the development secret. "
                "Do not use this configuration in production."
            )
        elif secret is not None:
            values["token_secret"] = secret

        env_map: dict[str, tuple[str, ...]] = {
            "default_did_method": ("AGENT_HUB_DID_METHOD",),
            "service_base_url": ("AGENT_HUB_SERVICE_URL", "API_URL"),
            "resolver_url": ("AGENT_HUB_RESOLVER_URL",),
            "resolver_timeout_seconds": ("AGENT_HUB_RESOLVER_TIMEOUT",),
            "trust_decay_rate": ("TRUST_DECAY_RATE",),
            "trust_boost_rate": ("TRUST_BOOST_RATE",),
            "anomaly_threshold": ("ANOMALY_THRESHOLD",),
            "log_level": ("LOG_LEVEL",),
            "audit_log_path": ("AGENT_HUB_AUDIT_LOG",),
        }
        for field_name, names in env_map.items():
            raw = _env(*names)
            if raw is not None:
                values[field_name] = raw

        values.update(overrides)
        return cls(**values)

    def with_updates(self, **updates: Any) -> "HubConfig":
        """Return a copy of this configuration with *updates* applied and re-validated."""
        current = self.model_dump()
        current.update(updates)
        return HubConfig(**current)

    def redacted(self) -> dict[str, object]:
        """Return a display-safe dictionary with the token secret masked."""
        data = self.model_dump(mode="json")
        data["token_secret"] = "***"
        return data


__all__ = ["HubConfig", "SUPPORTED_DID_METHODS"]
