"""Trust score and anomaly records written by the trust engine."""
from __future__ import annotations

import datetime
import uuid
from dataclasses import dataclass, field
from enum import Enum

from agent_identity_hub.clock import to_iso, utc_now


class AnomalyType(str, Enum):
    UNUSUAL_ACCESS_PATTERN = "unusual_access_pattern"
    TRUST_MANIPULATION = "trust_manipulation"
    CAPABILITY_ESCALATION = "capability_escalation"
    IDENTITY_SPOOFING = "identity_spoofing"
    COLLUSION_PATTERN = "collusion_pattern"
    BEHAVIOR_DEVIATION = "behavior_deviation"


class AnomalySeverity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


@dataclass(frozen=True)
class AnomalyIndicator:
    """A measured signal that contributed to an anomaly."""

    type: str
    value: float
    threshold: float
    description: str

    def to_dict(self) -> dict[str, object]:
        return {
            "type": self.type,
            "value": self.value,
            "threshold": self.threshold,
            "description": self.description,
        }


@dataclass
class TrustScoreRecord:
    """One point of an agent's trust score time series."""

    agent_id: str
    score: float
    reason: str
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    calculated_at: datetime.datetime = field(default_factory=utc_now)

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.id,
            "agentId": self.agent_id,
            "score": self.score,
            "reason": self.reason,
            "calculatedAt": self.calculated_at.isoformat(),
        }


@dataclass
class AnomalyRecord:
    """A persisted anomaly. Its trust penalty applies until ``resolved_at`` is set."""

    agent_id: str
    anomaly_type: AnomalyType
    severity: AnomalySeverity
    confidence: float
    indicators: list[AnomalyIndicator] = field(default_factory=list)
    recommended_action: str = ""
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    detected_at: datetime.datetime = field(default_factory=utc_now)
    resolved_at: datetime.datetime | None = None
    resolution: str | None = None

    @property
    def is_resolved(self) -> bool:
        return self.resolved_at is not None

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.id,
            "agentId": self.agent_id,
            "anomalyType": self.anomaly_type.value,
            "severity": self.severity.value,
            "confidence": self.confidence,
            "indicators": [i.to_dict() for i in self.indicators],
            "recommendedAction": self.recommended_action,
            "detectedAt": self.detected_at.isoformat(),
            "resolvedAt": to_iso(self.resolved_at),
            "resolution": self.resolution,
        }


__all__ = [
    "AnomalyIndicator",
    "AnomalyRecord",
    "AnomalySeverity",
    "AnomalyType",
    "TrustScoreRecord",
]
