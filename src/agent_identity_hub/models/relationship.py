"""AgentRelationship: directed edges of the agent relationship graph."""
from __future__ import annotations

import datetime
import uuid
from dataclasses import dataclass, field
from enum import Enum

from agent_identity_hub.clock import utc_now


class RelationshipType(str, Enum):
    DELEGATES_TO = "delegates_to"
    VERIFIES = "verifies"
    COMMUNICATES_WITH = "communicates_with"
    SUPERVISES = "supervises"
    DEPENDS_ON = "depends_on"
    REPLACES = "replaces"


@dataclass
class AgentRelationship:
    """A directed relationship from ``source_agent_id`` to ``target_agent_id``.

    Unique on ``(source_agent_id, target_agent_id, relationship_type)``.
    ``trust_level`` lies in ``[0, 1]`` and feeds the trust engine's
    relationship sub-score.
    """

    source_agent_id: str
    target_agent_id: str
    relationship_type: RelationshipType
    trust_level: float = 0.5
    permissions: list[str] = field(default_factory=list)
    metadata: dict[str, object] = field(default_factory=dict)
    interaction_count: int = 0
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    established_at: datetime.datetime = field(default_factory=utc_now)
    last_interaction_at: datetime.datetime = field(default_factory=utc_now)

    @property
    def key(self) -> tuple[str, str, str]:
        return (self.source_agent_id, self.target_agent_id, self.relationship_type.value)

    def to_dict(self) -> dict[str, object]:
        """Serialize to a camelCase dictionary."""
        return {
            "id": self.id,
            "sourceAgentId": self.source_agent_id,
            "targetAgentId": self.target_agent_id,
            "relationshipType": self.relationship_type.value,
            "trustLevel": self.trust_level,
            "permissions": list(self.permissions),
            "establishedAt": self.established_at.isoformat(),
            "lastInteractionAt": self.last_interaction_at.isoformat(),
            "interactionCount": self.interaction_count,
            "metadata": dict(self.metadata),
        }


__all__ = ["AgentRelationship", "RelationshipType"]
