"""Record types persisted by the identity store."""
from __future__ import annotations

from agent_identity_hub.models.activity import (
    NEGATIVE_ACTIVITY_TYPES,
    POSITIVE_ACTIVITY_TYPES,
    ActivityType,
    AgentActivity,
)
from agent_identity_hub.models.agent import Agent, AgentStatus, AgentType, Identity
from agent_identity_hub.models.attestation import (
    Attestation,
    AttestationProof,
    AttestationType,
    BehaviorAttestation,
    BehaviorEvidence,
    BehaviorType,
    Claim,
    Revocation,
)
from agent_identity_hub.models.capability import (
    Capability,
    CapabilityDelegation,
    CapabilityStatus,
    Condition,
    ConditionOperator,
    ConditionType,
)
from agent_identity_hub.models.relationship import AgentRelationship, RelationshipType
from agent_identity_hub.models.trust import (
    AnomalyIndicator,
    AnomalyRecord,
    AnomalySeverity,
    AnomalyType,
    TrustScoreRecord,
)

__all__ = [
    "ActivityType",
    "Agent",
    "AgentActivity",
    "AgentRelationship",
    "AgentStatus",
    "AgentType",
    "AnomalyIndicator",
    "AnomalyRecord",
    "AnomalySeverity",
    "AnomalyType",
    "Attestation",
    "AttestationProof",
    "AttestationType",
    "BehaviorAttestation",
    "BehaviorEvidence",
    "BehaviorType",
    "Capability",
    "CapabilityDelegation",
    "CapabilityStatus",
    "Claim",
    "Condition",
    "ConditionOperator",
    "ConditionType",
    "Identity",
    "NEGATIVE_ACTIVITY_TYPES",
    "POSITIVE_ACTIVITY_TYPES",
    "RelationshipType",
    "Revocation",
    "TrustScoreRecord",
]
