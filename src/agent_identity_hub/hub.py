"""IdentityHub: composition root wiring every service around one store.

Embedding applications and the CLI build one hub per process::

    hub = IdentityHub.from_config(HubConfig.from_env())
    agent, identity = hub.identities.create_agent(
        CreateAgentRequest(name="indexer", type=AgentType.WORKER)
    )
    score = hub.trust.calculate_trust_score(agent.id)

All services share the hub's store, config and clock. The DID service
owns the key ring used to sign attestation proofs.
"""
from __future__ import annotations

import logging
from collections.abc import Sequence

from agent_identity_hub.activity_log import ActivitySink, JsonlActivitySink
from agent_identity_hub.attestations import AttestationService
from agent_identity_hub.capabilities import CapabilityIssuer
from agent_identity_hub.clock import Clock, utc_now
from agent_identity_hub.config import HubConfig
from agent_identity_hub.did import DIDResolver, DIDService, HttpDIDResolver
from agent_identity_hub.identity import IdentityManager
from agent_identity_hub.store import IdentityStore, InMemoryIdentityStore
from agent_identity_hub.trust import AnomalyDetector, TrustEngine

logger = logging.getLogger(__name__)


class IdentityHub:
    """Facade exposing ``identities``, ``dids``, ``capabilities``,
    ``attestations``, ``trust`` and ``anomalies``.

    Parameters
    ----------
    config:
        Hub configuration. Defaults to :class:`HubConfig` defaults.
    store:
        Identity store. Defaults to a fresh :class:`InMemoryIdentityStore`.
    resolver:
        Optional external DID resolver.
    sinks:
        Activity sinks receiving every appended activity.
    clock:
        Source of the current UTC time, shared by every service.
    """

    def __init__(
        self,
        config: HubConfig | None = None,
        store: IdentityStore | None = None,
        resolver: DIDResolver | None = None,
        sinks: Sequence[ActivitySink] = (),
        clock: Clock = utc_now,
    ) -> None:
        self.config = config or HubConfig()
        self.store = store or InMemoryIdentityStore()
        self._resolver = resolver
        self.dids = DIDService(self.store, resolver=resolver, clock=clock)
        self.identities = IdentityManager(
            self.store, self.dids, config=self.config, sinks=sinks, clock=clock
        )
        self.capabilities = CapabilityIssuer(
            self.store, self.identities, config=self.config, clock=clock
        )
        self.attestations = AttestationService(
            self.store, self.identities, self.dids, clock=clock
        )
        self.trust = TrustEngine(self.store, self.identities, config=self.config, clock=clock)
        self.anomalies = AnomalyDetector(
            self.store, self.identities, config=self.config, clock=clock
        )

    @classmethod
    def from_config(cls, config: HubConfig, store: IdentityStore | None = None) -> "IdentityHub":
        """Build a hub with the resolver and audit sink the configuration asks for."""
        resolver: DIDResolver | None = None
        if config.resolver_url:
            resolver = HttpDIDResolver(
                config.resolver_url, timeout_seconds=config.resolver_timeout_seconds
            )
            logger.info("External DID resolution enabled: %s", config.resolver_url)
        sinks: list[ActivitySink] = []
        if config.audit_log_path is not None:
            sinks.append(JsonlActivitySink(config.audit_log_path))
            logger.info("Activity audit log: %s", config.audit_log_path)
        return cls(config=config, store=store, resolver=resolver, sinks=sinks)

    def close(self) -> None:
        """Release the external resolver's connections, if any."""
        if self._resolver is not None:
            self._resolver.close()

    def __enter__(self) -> "IdentityHub":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


__all__ = ["IdentityHub"]
