"""AgentActivity: append-only activity log records.

The activity stream drives both the trust engine (positive and negative
interaction counts, recency) and the anomaly detector (bursts, escalation,
behaviour variance).
"""
from __future__ import annotations

import datetime
import uuid
from dataclasses import dataclass, field
from enum import Enum

from agent_identity_hub.clock import parse_datetime, utc_now


class ActivityType(str, Enum):
    """Closed set of activity kinds recorded against an agent."""

    IDENTITY_CREATED = "identity_created"
    IDENTITY_UPDATED = "identity_updated"
    CAPABILITY_GRANTED = "capability_granted"
    CAPABILITY_REVOKED = "capability_revoked"
    ATTESTATION_ISSUED = "attestation_issued"
    ATTESTATION_VERIFIED = "attestation_verified"
    INTERACTION = "interaction"
    ANOMALY_DETECTED = "anomaly_detected"
    TRUST_SCORE_UPDATED = "trust_score_updated"


# Activity kinds counted by the trust engine as positive / negative signals.
POSITIVE_ACTIVITY_TYPES: frozenset[ActivityType] = frozenset(
    {ActivityType.CAPABILITY_GRANTED, ActivityType.ATTESTATION_ISSUED}
)
NEGATIVE_ACTIVITY_TYPES: frozenset[ActivityType] = frozenset(
    {ActivityType.ANOMALY_DETECTED, ActivityType.CAPABILITY_REVOKED}
)


@dataclass
class AgentActivity:
    """A single activity event for an agent.

    Parameters
    ----------
    agent_id:
        The agent the event is recorded against.
    activity_type:
        The :class:`ActivityType` of the event.
    description:
        Human-readable summary.
    metadata:
        Structured event context (capability id, severity, ...).
    related_agent_ids:
        Other agents involved in the event.
    """

    agent_id: str
    activity_type: ActivityType
    description: str
    metadata: dict[str, object] = field(default_factory=dict)
    related_agent_ids: list[str] = field(default_factory=list)
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: datetime.datetime = field(default_factory=utc_now)

    def to_dict(self) -> dict[str, object]:
        """Serialize to a camelCase dictionary suitable for JSON encoding."""
        return {
            "id": self.id,
            "agentId": self.agent_id,
            "activityType": self.activity_type.value,
            "description": self.description,
            "timestamp": self.timestamp.isoformat(),
            "metadata": dict(self.metadata),
            "relatedAgentIds": list(self.related_agent_ids),
        }

    @classmethod
    def from_dict(cls, data: dict[str, object]) -> "AgentActivity":
        """Reconstruct an activity from :meth:`to_dict` output."""
        return cls(
            id=str(data["id"]),
            agent_id=str(data["agentId"]),
            activity_type=ActivityType(data["activityType"]),
            description=str(data.get("description", "")),
            timestamp=parse_datetime(data.get("timestamp")) or utc_now(),
            metadata=dict(data.get("metadata", {})),  # type: ignore[arg-type]
            related_agent_ids=[str(a) for a in data.get("relatedAgentIds", [])],  # type: ignore[union-attr]
        )


__all__ = [
    "ActivityType",
    "AgentActivity",
    "NEGATIVE_ACTIVITY_TYPES",
    "POSITIVE_ACTIVITY_TYPES",
]
