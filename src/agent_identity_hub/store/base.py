"""IdentityStore: abstract persistence contract for the identity hub.

The store is the only durable state in the system. Every single-row
operation must be atomic; multi-row writes are grouped with
:meth:`IdentityStore.transaction`, which either commits every write made
inside the block or none of them.

Implementations return copies of stored records, so mutating a returned
object never changes stored state until it is written back with the
matching ``update_*`` call.
"""
from __future__ import annotations

import datetime
from abc import ABC, abstractmethod
from contextlib import AbstractContextManager
from dataclasses import dataclass

from agent_identity_hub.models import (
    Agent,
    AgentActivity,
    AgentRelationship,
    AgentStatus,
    AgentType,
    AnomalyRecord,
    Attestation,
    AttestationType,
    Capability,
    CapabilityDelegation,
    CapabilityStatus,
    Identity,
    TrustScoreRecord,
)


@dataclass
class AttestationFilter:
    """Filter applied by :meth:`IdentityStore.list_attestations`.

    Parameters
    ----------
    issuer / subject / type:
        Exact-match filters; ``None`` disables the filter.
    valid_only:
        When ``True``, revoked and expired attestations are excluded.
    issued_after / issued_before:
        Inclusive bounds on ``issued_at``.
    valid_at:
        Reference time for the expiry check; defaults to now.
    """

    issuer: str | None = None
    subject: str | None = None
    type: AttestationType | None = None
    valid_only: bool = False
    issued_after: datetime.datetime | None = None
    issued_before: datetime.datetime | None = None
    valid_at: datetime.datetime | None = None


class IdentityStore(ABC):
    """Abstract base class for identity hub persistence backends."""

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    @abstractmethod
    def transaction(self) -> AbstractContextManager[None]:
        """Group writes so that they commit or roll back together.

        Raising inside the ``with`` block rolls back every write made in
        it and re-raises the exception.
        """

    # ------------------------------------------------------------------
    # Agents
    # ------------------------------------------------------------------

    @abstractmethod
    def add_agent(self, agent: Agent) -> None:
        """Insert a new agent. Raises ConflictError on a duplicate id or DID."""

    @abstractmethod
    def get_agent(self, agent_id: str) -> Agent | None: ...

    @abstractmethod
    def get_agent_by_did(self, did: str) -> Agent | None: ...

    @abstractmethod
    def update_agent(self, agent: Agent) -> None:
        """Replace a stored agent. Raises NotFoundError when absent."""

    @abstractmethod
    def delete_agent(self, agent_id: str) -> bool:
        """Delete an agent and cascade to its dependent rows.

        Removes relationships touching the agent, its activities, trust
        score records and anomalies, and capabilities and attestations
        whose subject is the agent's DID. Returns ``False`` if absent.
        """

    @abstractmethod
    def list_agents(
        self,
        status: AgentStatus | None = None,
        agent_type: AgentType | None = None,
        search: str | None = None,
        page: int = 1,
        limit: int = 20,
    ) -> tuple[list[Agent], int]:
        """Return one page of agents (newest first) and the total match count."""

    # ------------------------------------------------------------------
    # Identities
    # ------------------------------------------------------------------

    @abstractmethod
    def add_identity(self, identity: Identity) -> None: ...

    @abstractmethod
    def get_identity(self, did: str) -> Identity | None: ...

    @abstractmethod
    def update_identity(self, identity: Identity) -> None: ...

    @abstractmethod
    def delete_identity(self, did: str) -> bool: ...

    @abstractmethod
    def list_identities(self) -> list[Identity]: ...

    @abstractmethod
    def mark_did_deactivated(self, did: str) -> None:
        """Record *did* as permanently deactivated."""

    @abstractmethod
    def is_did_deactivated(self, did: str) -> bool: ...

    # ------------------------------------------------------------------
    # Capabilities
    # ------------------------------------------------------------------

    @abstractmethod
    def add_capability(self, capability: Capability) -> None: ...

    @abstractmethod
    def get_capability(self, capability_id: str) -> Capability | None: ...

    @abstractmethod
    def update_capability(self, capability: Capability) -> None: ...

    @abstractmethod
    def list_capabilities(
        self,
        subject: str | None = None,
        issuer: str | None = None,
        status: CapabilityStatus | None = None,
    ) -> list[Capability]:
        """Return capabilities matching the stored-status filters, newest first."""

    @abstractmethod
    def add_delegation(self, delegation: CapabilityDelegation) -> None: ...

    @abstractmethod
    def list_delegations(self, capability_id: str | None = None) -> list[CapabilityDelegation]: ...

    # ------------------------------------------------------------------
    # Attestations
    # ------------------------------------------------------------------

    @abstractmethod
    def add_attestation(self, attestation: Attestation) -> None: ...

    @abstractmethod
    def get_attestation(self, attestation_id: str) -> Attestation | None: ...

    @abstractmethod
    def update_attestation(self, attestation: Attestation) -> None: ...

    @abstractmethod
    def list_attestations(
        self,
        attestation_filter: AttestationFilter | None = None,
        page: int = 1,
        limit: int = 20,
    ) -> tuple[list[Attestation], int]:
        """Return one page of attestations (newest first) and the total match count."""

    # ------------------------------------------------------------------
    # Relationships
    # ------------------------------------------------------------------

    @abstractmethod
    def upsert_relationship(self, relationship: AgentRelationship) -> AgentRelationship:
        """Insert a relationship or update the existing one with the same key.

        On update the stored row keeps its ``id`` and ``established_at``
        and takes ``permissions`` and ``metadata`` from *relationship*.
        Returns the stored row.
        """

    @abstractmethod
    def update_relationship(self, relationship: AgentRelationship) -> None: ...

    @abstractmethod
    def list_relationships(
        self, agent_id: str
    ) -> tuple[list[AgentRelationship], list[AgentRelationship]]:
        """Return ``(incoming, outgoing)`` relationships for an agent."""

    # ------------------------------------------------------------------
    # Activities
    # ------------------------------------------------------------------

    @abstractmethod
    def append_activity(self, activity: AgentActivity) -> None: ...

    @abstractmethod
    def list_activities(self, agent_id: str, limit: int | None = None) -> list[AgentActivity]:
        """Return an agent's activities, newest first."""

    # ------------------------------------------------------------------
    # Trust scores and anomalies
    # ------------------------------------------------------------------

    @abstractmethod
    def add_trust_score(self, record: TrustScoreRecord) -> None: ...

    @abstractmethod
    def list_trust_scores(
        self, agent_id: str, since: datetime.datetime | None = None
    ) -> list[TrustScoreRecord]:
        """Return an agent's trust score records, oldest first."""

    @abstractmethod
    def add_anomaly(self, record: AnomalyRecord) -> None: ...

    @abstractmethod
    def get_anomaly(self, anomaly_id: str) -> AnomalyRecord | None: ...

    @abstractmethod
    def update_anomaly(self, record: AnomalyRecord) -> None: ...

    @abstractmethod
    def list_anomalies(
        self, agent_id: str, resolved: bool | None = None
    ) -> list[AnomalyRecord]:
        """Return an agent's anomalies, newest first."""


__all__ = ["AttestationFilter", "IdentityStore"]
