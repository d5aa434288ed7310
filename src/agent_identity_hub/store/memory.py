"""InMemoryIdentityStore: thread-safe in-process implementation of IdentityStore.

All public methods acquire a single re-entrant lock. Records are deep-copied
on the way in and on the way out so callers can never mutate stored state
by accident.

Transactions hold the lock for the duration of the ``with`` block and
snapshot every table on entry; an exception inside the block restores the
snapshot. Nested transactions join the outermost one.
"""
from __future__ import annotations

import copy
import datetime
import logging
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from typing import TypeVar

from agent_identity_hub.clock import utc_now
from agent_identity_hub.errors import ConflictError, NotFoundError
from agent_identity_hub.models import (
    Agent,
    AgentActivity,
    AgentRelationship,
    AgentStatus,
    AgentType,
    AnomalyRecord,
    Attestation,
    Capability,
    CapabilityDelegation,
    CapabilityStatus,
    Identity,
    TrustScoreRecord,
)
from agent_identity_hub.store.base import AttestationFilter, IdentityStore

logger = logging.getLogger(__name__)

_T = TypeVar("_T")


def _paginate(items: list[_T], page: int, limit: int) -> list[_T]:
    page = max(page, 1)
    limit = max(limit, 1)
    start = (page - 1) * limit
    return items[start : start + limit]


class InMemoryIdentityStore(IdentityStore):
    """In-memory identity store suitable for tests, the CLI, and embedding.

    Example
    -------
    ::

        store = InMemoryIdentityStore()
        with store.transaction():
            store.add_agent(agent)
            store.add_identity(identity)
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._agents: dict[str, Agent] = {}
        self._identities: dict[str, Identity] = {}
        self._capabilities: dict[str, Capability] = {}
        self._delegations: dict[str, CapabilityDelegation] = {}
        self._attestations: dict[str, Attestation] = {}
        self._relationships: dict[tuple[str, str, str], AgentRelationship] = {}
        self._activities: list[AgentActivity] = []
        self._trust_scores: list[TrustScoreRecord] = []
        self._anomalies: dict[str, AnomalyRecord] = {}
        self._deactivated_dids: set[str] = set()
        self._tx_depth = 0

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    _TABLES: tuple[str, ...] = (
        "_agents",
        "_identities",
        "_capabilities",
        "_delegations",
        "_attestations",
        "_relationships",
        "_activities",
        "_trust_scores",
        "_anomalies",
        "_deactivated_dids",
    )

    @contextmanager
    def transaction(self) -> Iterator[None]:
        with self._lock:
            outermost = self._tx_depth == 0
            snapshot = (
                {name: copy.deepcopy(getattr(self, name)) for name in self._TABLES}
                if outermost
                else None
            )
            self._tx_depth += 1
            try:
                yield
            except BaseException:
                if snapshot is not None:
                    for name, table in snapshot.items():
                        setattr(self, name, table)
                    logger.debug("Transaction rolled back")
                raise
            finally:
                self._tx_depth -= 1

    # ------------------------------------------------------------------
    # Agents
    # ------------------------------------------------------------------

    def add_agent(self, agent: Agent) -> None:
        with self._lock:
            if agent.id in self._agents:
                raise ConflictError(f"Agent {agent.id!r} already exists.")
            if any(a.did == agent.did for a in self._agents.values()):
                raise ConflictError(f"An agent with DID {agent.did!r} already exists.")
            self._agents[agent.id] = copy.deepcopy(agent)

    def get_agent(self, agent_id: str) -> Agent | None:
        with self._lock:
            agent = self._agents.get(agent_id)
            return copy.deepcopy(agent) if agent is not None else None

    def get_agent_by_did(self, did: str) -> Agent | None:
        with self._lock:
            for agent in self._agents.values():
                if agent.did == did:
                    return copy.deepcopy(agent)
        return None

    def update_agent(self, agent: Agent) -> None:
        with self._lock:
            if agent.id not in self._agents:
                raise NotFoundError("Agent", agent.id)
            self._agents[agent.id] = copy.deepcopy(agent)

    def delete_agent(self, agent_id: str) -> bool:
        with self._lock:
            agent = self._agents.pop(agent_id, None)
            if agent is None:
                return False
            self._relationships = {
                key: rel
                for key, rel in self._relationships.items()
                if agent_id not in (rel.source_agent_id, rel.target_agent_id)
            }
            self._activities = [a for a in self._activities if a.agent_id != agent_id]
            self._trust_scores = [t for t in self._trust_scores if t.agent_id != agent_id]
            self._anomalies = {
                key: rec for key, rec in self._anomalies.items() if rec.agent_id != agent_id
            }
            self._capabilities = {
                key: cap for key, cap in self._capabilities.items() if cap.subject != agent.did
            }
            self._attestations = {
                key: att for key, att in self._attestations.items() if att.subject != agent.did
            }
        return True

    def list_agents(
        self,
        status: AgentStatus | None = None,
        agent_type: AgentType | None = None,
        search: str | None = None,
        page: int = 1,
        limit: int = 20,
    ) -> tuple[list[Agent], int]:
        needle = search.lower() if search else None
        with self._lock:
            matches = [
                agent
                for agent in self._agents.values()
                if (status is None or agent.status == status)
                and (agent_type is None or agent.type == agent_type)
                and (
                    needle is None
                    or needle in agent.name.lower()
                    or needle in (agent.description or "").lower()
                )
            ]
            matches.sort(key=lambda a: a.created_at, reverse=True)
            return copy.deepcopy(_paginate(matches, page, limit)), len(matches)

    # ------------------------------------------------------------------
    # Identities
    # ------------------------------------------------------------------

    def add_identity(self, identity: Identity) -> None:
        with self._lock:
            if identity.did in self._identities:
                raise ConflictError(f"Identity for {identity.did!r} already exists.")
            self._identities[identity.did] = copy.deepcopy(identity)

    def get_identity(self, did: str) -> Identity | None:
        with self._lock:
            identity = self._identities.get(did)
            return copy.deepcopy(identity) if identity is not None else None

    def update_identity(self, identity: Identity) -> None:
        with self._lock:
            if identity.did not in self._identities:
                raise NotFoundError("Identity", identity.did)
            self._identities[identity.did] = copy.deepcopy(identity)

    def delete_identity(self, did: str) -> bool:
        with self._lock:
            return self._identities.pop(did, None) is not None

    def list_identities(self) -> list[Identity]:
        with self._lock:
            return copy.deepcopy(sorted(self._identities.values(), key=lambda i: i.did))

    def mark_did_deactivated(self, did: str) -> None:
        with self._lock:
            self._deactivated_dids.add(did)

    def is_did_deactivated(self, did: str) -> bool:
        with self._lock:
            return did in self._deactivated_dids

    # ------------------------------------------------------------------
    # Capabilities
    # ------------------------------------------------------------------

    def add_capability(self, capability: Capability) -> None:
        with self._lock:
            if capability.id in self._capabilities:
                raise ConflictError(f"Capability {capability.id!r} already exists.")
            self._capabilities[capability.id] = copy.deepcopy(capability)

    def get_capability(self, capability_id: str) -> Capability | None:
        with self._lock:
            capability = self._capabilities.get(capability_id)
            return copy.deepcopy(capability) if capability is not None else None

    def update_capability(self, capability: Capability) -> None:
        with self._lock:
            if capability.id not in self._capabilities:
                raise NotFoundError("Capability", capability.id)
            self._capabilities[capability.id] = copy.deepcopy(capability)

    def list_capabilities(
        self,
        subject: str | None = None,
        issuer: str | None = None,
        status: CapabilityStatus | None = None,
    ) -> list[Capability]:
        with self._lock:
            matches = [
                cap
                for cap in self._capabilities.values()
                if (subject is None or cap.subject == subject)
                and (issuer is None or cap.issuer == issuer)
                and (status is None or cap.status == status)
            ]
            matches.sort(key=lambda c: c.issued_at, reverse=True)
            return copy.deepcopy(matches)

    def add_delegation(self, delegation: CapabilityDelegation) -> None:
        with self._lock:
            self._delegations[delegation.id] = copy.deepcopy(delegation)

    def list_delegations(self, capability_id: str | None = None) -> list[CapabilityDelegation]:
        with self._lock:
            matches = [
                d
                for d in self._delegations.values()
                if capability_id is None or d.capability_id == capability_id
            ]
            matches.sort(key=lambda d: d.delegated_at)
            return copy.deepcopy(matches)

    # ------------------------------------------------------------------
    # Attestations
    # ------------------------------------------------------------------

    def add_attestation(self, attestation: Attestation) -> None:
        with self._lock:
            if attestation.id in self._attestations:
                raise ConflictError(f"Attestation {attestation.id!r} already exists.")
            self._attestations[attestation.id] = copy.deepcopy(attestation)

    def get_attestation(self, attestation_id: str) -> Attestation | None:
        with self._lock:
            attestation = self._attestations.get(attestation_id)
            return copy.deepcopy(attestation) if attestation is not None else None

    def update_attestation(self, attestation: Attestation) -> None:
        with self._lock:
            if attestation.id not in self._attestations:
                raise NotFoundError("Attestation", attestation.id)
            self._attestations[attestation.id] = copy.deepcopy(attestation)

    def list_attestations(
        self,
        attestation_filter: AttestationFilter | None = None,
        page: int = 1,
        limit: int = 20,
    ) -> tuple[list[Attestation], int]:
        flt = attestation_filter or AttestationFilter()
        now = flt.valid_at or utc_now()
        with self._lock:
            matches = [
                att
                for att in self._attestations.values()
                if (flt.issuer is None or att.issuer == flt.issuer)
                and (flt.subject is None or att.subject == flt.subject)
                and (flt.type is None or att.type == flt.type)
                and (not flt.valid_only or att.is_valid(now))
                and (flt.issued_after is None or att.issued_at >= flt.issued_after)
                and (flt.issued_before is None or att.issued_at <= flt.issued_before)
            ]
            matches.sort(key=lambda a: a.issued_at, reverse=True)
            return copy.deepcopy(_paginate(matches, page, limit)), len(matches)

    # ------------------------------------------------------------------
    # Relationships
    # ------------------------------------------------------------------

    def upsert_relationship(self, relationship: AgentRelationship) -> AgentRelationship:
        with self._lock:
            existing = self._relationships.get(relationship.key)
            if existing is None:
                stored = copy.deepcopy(relationship)
            else:
                stored = copy.deepcopy(existing)
                stored.permissions = list(relationship.permissions)
                stored.metadata = dict(relationship.metadata)
            self._relationships[stored.key] = stored
            return copy.deepcopy(stored)

    def update_relationship(self, relationship: AgentRelationship) -> None:
        with self._lock:
            if relationship.key not in self._relationships:
                raise NotFoundError("Relationship", relationship.id)
            self._relationships[relationship.key] = copy.deepcopy(relationship)

    def list_relationships(
        self, agent_id: str
    ) -> tuple[list[AgentRelationship], list[AgentRelationship]]:
        with self._lock:
            incoming = [r for r in self._relationships.values() if r.target_agent_id == agent_id]
            outgoing = [r for r in self._relationships.values() if r.source_agent_id == agent_id]
            return copy.deepcopy(incoming), copy.deepcopy(outgoing)

    # ------------------------------------------------------------------
    # Activities
    # ------------------------------------------------------------------

    def append_activity(self, activity: AgentActivity) -> None:
        with self._lock:
            self._activities.append(copy.deepcopy(activity))

    def list_activities(self, agent_id: str, limit: int | None = None) -> list[AgentActivity]:
        with self._lock:
            matches = [a for a in reversed(self._activities) if a.agent_id == agent_id]
        # Stable sort keeps later-appended rows first among equal timestamps.
        matches.sort(key=lambda a: a.timestamp, reverse=True)
        if limit is not None:
            matches = matches[:limit]
        return copy.deepcopy(matches)

    # ------------------------------------------------------------------
    # Trust scores and anomalies
    # ------------------------------------------------------------------

    def add_trust_score(self, record: TrustScoreRecord) -> None:
        with self._lock:
            self._trust_scores.append(copy.deepcopy(record))

    def list_trust_scores(
        self, agent_id: str, since: datetime.datetime | None = None
    ) -> list[TrustScoreRecord]:
        with self._lock:
            matches = [
                t
                for t in self._trust_scores
                if t.agent_id == agent_id and (since is None or t.calculated_at >= since)
            ]
        matches.sort(key=lambda t: t.calculated_at)
        return copy.deepcopy(matches)

    def add_anomaly(self, record: AnomalyRecord) -> None:
        with self._lock:
            self._anomalies[record.id] = copy.deepcopy(record)

    def get_anomaly(self, anomaly_id: str) -> AnomalyRecord | None:
        with self._lock:
            record = self._anomalies.get(anomaly_id)
            return copy.deepcopy(record) if record is not None else None

    def update_anomaly(self, record: AnomalyRecord) -> None:
        with self._lock:
            if record.id not in self._anomalies:
                raise NotFoundError("Anomaly", record.id)
            self._anomalies[record.id] = copy.deepcopy(record)

    def list_anomalies(
        self, agent_id: str, resolved: bool | None = None
    ) -> list[AnomalyRecord]:
        with self._lock:
            matches = [
                rec
                for rec in self._anomalies.values()
                if rec.agent_id == agent_id
                and (resolved is None or rec.is_resolved == resolved)
            ]
        matches.sort(key=lambda r: r.detected_at, reverse=True)
        return copy.deepcopy(matches)


__all__ = ["InMemoryIdentityStore"]
