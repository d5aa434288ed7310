"""Agent and Identity records.

An :class:`Agent` is the administrative record of an autonomous agent; its
:class:`Identity` row binds the agent to its DID document, which is kept as
opaque JSON so the store never needs to understand the document schema.
"""
from __future__ import annotations

import datetime
from dataclasses import dataclass, field
from enum import Enum

from agent_identity_hub.clock import parse_datetime, utc_now


class AgentType(str, Enum):
    """Role an agent plays in the population."""

    ORCHESTRATOR = "orchestrator"
    WORKER = "worker"
    VALIDATOR = "validator"
    GATEWAY = "gateway"
    SPECIALIST = "specialist"
    USER_PROXY = "user_proxy"


class AgentStatus(str, Enum):
    """Administrative status of an agent.

    Transitions are driven externally; only ``ACTIVE`` agents may issue
    capabilities or attestations.
    """

    ACTIVE = "active"
    INACTIVE = "inactive"
    SUSPENDED = "suspended"
    REVOKED = "revoked"
    PENDING = "pending"


@dataclass
class Agent:
    """The canonical record for a registered agent.

    Parameters
    ----------
    id:
        Opaque agent identifier, unique within a store.
    did:
        The agent's decentralized identifier.
    name:
        Human-readable name.
    type:
        The agent's :class:`AgentType`.
    public_key:
        Hex encoding of the public key bound to the DID.
    description:
        Optional free-text description.
    trust_score:
        Composite trust score in ``[0, 1]``. Only the trust engine writes it.
    reputation:
        Signed reputation counter, mapped onto ``[0, 1]`` by the trust engine.
    status:
        The agent's :class:`AgentStatus`.
    capabilities:
        Declared capability names (advertised, not granted).
    metadata:
        Arbitrary key-value metadata.
    """

    id: str
    did: str
    name: str
    type: AgentType
    public_key: str
    description: str | None = None
    trust_score: float = 0.5
    reputation: int = 0
    status: AgentStatus = AgentStatus.ACTIVE
    capabilities: list[str] = field(default_factory=list)
    metadata: dict[str, object] = field(default_factory=dict)
    created_at: datetime.datetime = field(default_factory=utc_now)
    updated_at: datetime.datetime = field(default_factory=utc_now)
    last_active_at: datetime.datetime = field(default_factory=utc_now)

    @property
    def is_active(self) -> bool:
        return self.status == AgentStatus.ACTIVE

    def to_dict(self) -> dict[str, object]:
        """Serialize to a camelCase dictionary."""
        return {
            "id": self.id,
            "did": self.did,
            "name": self.name,
            "description": self.description,
            "type": self.type.value,
            "publicKey": self.public_key,
            "trustScore": self.trust_score,
            "reputation": self.reputation,
            "status": self.status.value,
            "capabilities": list(self.capabilities),
            "metadata": dict(self.metadata),
            "createdAt": self.created_at.isoformat(),
            "updatedAt": self.updated_at.isoformat(),
            "lastActiveAt": self.last_active_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, object]) -> "Agent":
        """Reconstruct an Agent from :meth:`to_dict` output."""
        now = utc_now()
        return cls(
            id=str(data["id"]),
            did=str(data["did"]),
            name=str(data["name"]),
            description=data.get("description"),  # type: ignore[arg-type]
            type=AgentType(data["type"]),
            public_key=str(data.get("publicKey", "")),
            trust_score=float(data.get("trustScore", 0.5)),  # type: ignore[arg-type]
            reputation=int(data.get("reputation", 0)),  # type: ignore[arg-type]
            status=AgentStatus(data.get("status", AgentStatus.ACTIVE.value)),
            capabilities=[str(c) for c in data.get("capabilities", [])],  # type: ignore[union-attr]
            metadata=dict(data.get("metadata", {})),  # type: ignore[arg-type]
            created_at=parse_datetime(data.get("createdAt")) or now,
            updated_at=parse_datetime(data.get("updatedAt")) or now,
            last_active_at=parse_datetime(data.get("lastActiveAt")) or now,
        )


@dataclass
class Identity:
    """One-to-one binding between an agent and its DID document.

    Parameters
    ----------
    did:
        The DID; unique key of the identity table.
    agent_id:
        Owning agent, or ``None`` for DIDs created outside an agent
        lifecycle.
    document:
        The DID document as a JSON-compatible dictionary.
    """

    did: str
    agent_id: str | None
    document: dict[str, object]
    created_at: datetime.datetime = field(default_factory=utc_now)
    updated_at: datetime.datetime = field(default_factory=utc_now)

    def to_dict(self) -> dict[str, object]:
        """Serialize to a plain dictionary."""
        return {
            "did": self.did,
            "agentId": self.agent_id,
            "document": self.document,
            "createdAt": self.created_at.isoformat(),
            "updatedAt": self.updated_at.isoformat(),
        }


__all__ = ["Agent", "AgentStatus", "AgentType", "Identity"]
