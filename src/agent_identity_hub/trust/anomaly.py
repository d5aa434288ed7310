"""Heuristic anomaly detection over agent activity and relationships.

Five independent detectors each inspect the same snapshot and report at
most one :class:`AnomalyDetectionResult`. A detector that sees no signal
reports nothing; there are no zero-severity results.

- unusual_access_pattern (high): more than 50 activities in the trailing hour
- trust_manipulation (medium): 3 or more recent ``trust_score_updated`` events
- capability_escalation (high): a ``capability_granted`` mentioning admin
- collusion_pattern (medium): more than 20 distinct related agents
- behavior_deviation (low): per-type activity counts with std-dev above 5

Every detected anomaly is persisted and fed back into the activity log as
``anomaly_detected``, which the trust engine picks up on its next run.
"""
from __future__ import annotations

import datetime
import json
import logging
import statistics
from collections import Counter
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field

from agent_identity_hub.clock import Clock, utc_now
from agent_identity_hub.config import HubConfig
from agent_identity_hub.errors import NotFoundError
from agent_identity_hub.identity.manager import IdentityManager
from agent_identity_hub.models import (
    ActivityType,
    AgentActivity,
    AgentRelationship,
    AnomalyIndicator,
    AnomalyRecord,
    AnomalySeverity,
    AnomalyType,
)
from agent_identity_hub.store import IdentityStore

logger = logging.getLogger(__name__)

ACTIVITY_SAMPLE_SIZE: int = 200

BURST_WINDOW: datetime.timedelta = datetime.timedelta(hours=1)
BURST_THRESHOLD: int = 50
BURST_MINIMUM: int = 5
TRUST_UPDATE_THRESHOLD: int = 3
TRUST_UPDATE_WINDOW: int = 5
CONNECTIVITY_THRESHOLD: int = 20
DEVIATION_MIN_ACTIVITIES: int = 10
DEVIATION_THRESHOLD: float = 5.0


@dataclass
class AnomalySnapshot:
    """Inputs shared by every detector."""

    agent_id: str
    activities: list[AgentActivity]
    incoming: list[AgentRelationship] = field(default_factory=list)
    outgoing: list[AgentRelationship] = field(default_factory=list)


@dataclass
class AnomalyDetectionResult:
    agent_id: str
    anomaly_type: AnomalyType
    severity: AnomalySeverity
    confidence: float
    indicators: list[AnomalyIndicator]
    detected_at: datetime.datetime
    recommended_action: str

    def to_record(self) -> AnomalyRecord:
        return AnomalyRecord(
            agent_id=self.agent_id,
            anomaly_type=self.anomaly_type,
            severity=self.severity,
            confidence=self.confidence,
            indicators=list(self.indicators),
            recommended_action=self.recommended_action,
            detected_at=self.detected_at,
        )

    def to_dict(self) -> dict[str, object]:
        return {
            "agentId": self.agent_id,
            "anomalyType": self.anomaly_type.value,
            "severity": self.severity.value,
            "confidence": self.confidence,
            "indicators": [i.to_dict() for i in self.indicators],
            "detectedAt": self.detected_at.isoformat(),
            "recommendedAction": self.recommended_action,
        }


Detector = Callable[[AnomalySnapshot, datetime.datetime], AnomalyDetectionResult | None]


# ---------------------------------------------------------------------------
# Detectors
# ---------------------------------------------------------------------------


def detect_access_pattern(
    snapshot: AnomalySnapshot, now: datetime.datetime
) -> AnomalyDetectionResult | None:
    recent = [a for a in snapshot.activities if a.timestamp > now - BURST_WINDOW]
    count = len(recent)
    if count < BURST_MINIMUM or count <= BURST_THRESHOLD:
        return None
    return AnomalyDetectionResult(
        agent_id=snapshot.agent_id,
        anomaly_type=AnomalyType.UNUSUAL_ACCESS_PATTERN,
        severity=AnomalySeverity.HIGH,
        confidence=min(count / 100, 1.0),
        indicators=[
            AnomalyIndicator(
                type="activity_burst",
                value=count,
                threshold=BURST_THRESHOLD,
                description=f"Unusual burst of {count} activities in the last hour",
            )
        ],
        detected_at=now,
        recommended_action="Review recent activities and consider temporary suspension",
    )


def detect_trust_manipulation(
    snapshot: AnomalySnapshot, now: datetime.datetime
) -> AnomalyDetectionResult | None:
    updates = [
        a for a in snapshot.activities if a.activity_type is ActivityType.TRUST_SCORE_UPDATED
    ][:TRUST_UPDATE_WINDOW]
    if len(updates) < TRUST_UPDATE_THRESHOLD:
        return None
    return AnomalyDetectionResult(
        agent_id=snapshot.agent_id,
        anomaly_type=AnomalyType.TRUST_MANIPULATION,
        severity=AnomalySeverity.MEDIUM,
        confidence=0.7,
        indicators=[
            AnomalyIndicator(
                type="rapid_trust_changes",
                value=len(updates),
                threshold=TRUST_UPDATE_THRESHOLD,
                description=f"{len(updates)} trust score changes in recent activity",
            )
        ],
        detected_at=now,
        recommended_action="Investigate trust score manipulation attempts",
    )


def detect_capability_escalation(
    snapshot: AnomalySnapshot, now: datetime.datetime
) -> AnomalyDetectionResult | None:
    admin_grants = [
        a
        for a in snapshot.activities
        if a.activity_type is ActivityType.CAPABILITY_GRANTED
        and "admin" in json.dumps(a.metadata, default=str)
    ]
    if not admin_grants:
        return None
    return AnomalyDetectionResult(
        agent_id=snapshot.agent_id,
        anomaly_type=AnomalyType.CAPABILITY_ESCALATION,
        severity=AnomalySeverity.HIGH,
        confidence=0.8,
        indicators=[
            AnomalyIndicator(
                type="admin_capability_grants",
                value=len(admin_grants),
                threshold=0,
                description=f"{len(admin_grants)} admin capability grants detected",
            )
        ],
        detected_at=now,
        recommended_action="Review admin capability grants immediately",
    )


def detect_collusion(
    snapshot: AnomalySnapshot, now: datetime.datetime
) -> AnomalyDetectionResult | None:
    related = {r.source_agent_id for r in snapshot.incoming}
    related.update(r.target_agent_id for r in snapshot.outgoing)
    related.discard(snapshot.agent_id)
    count = len(related)
    if count <= CONNECTIVITY_THRESHOLD:
        return None
    return AnomalyDetectionResult(
        agent_id=snapshot.agent_id,
        anomaly_type=AnomalyType.COLLUSION_PATTERN,
        severity=AnomalySeverity.MEDIUM,
        confidence=min(count / 50, 1.0),
        indicators=[
            AnomalyIndicator(
                type="high_connectivity",
                value=count,
                threshold=CONNECTIVITY_THRESHOLD,
                description=f"Agent connected to {count} other agents",
            )
        ],
        detected_at=now,
        recommended_action="Review agent relationships for potential collusion",
    )


def detect_behavior_deviation(
    snapshot: AnomalySnapshot, now: datetime.datetime
) -> AnomalyDetectionResult | None:
    if len(snapshot.activities) < DEVIATION_MIN_ACTIVITIES:
        return None
    counts = list(Counter(a.activity_type for a in snapshot.activities).values())
    std_dev = statistics.pstdev(counts)
    if std_dev <= DEVIATION_THRESHOLD:
        return None
    return AnomalyDetectionResult(
        agent_id=snapshot.agent_id,
        anomaly_type=AnomalyType.BEHAVIOR_DEVIATION,
        severity=AnomalySeverity.LOW,
        confidence=min(std_dev / 10, 1.0),
        indicators=[
            AnomalyIndicator(
                type="behavior_variance",
                value=std_dev,
                threshold=DEVIATION_THRESHOLD,
                description=f"Unusual behavior variance: {std_dev:.2f}",
            )
        ],
        detected_at=now,
        recommended_action="Monitor agent behavior patterns",
    )


DETECTORS: tuple[Detector, ...] = (
    detect_access_pattern,
    detect_trust_manipulation,
    detect_capability_escalation,
    detect_collusion,
    detect_behavior_deviation,
)


def run_detectors(
    snapshot: AnomalySnapshot,
    now: datetime.datetime,
    detectors: Sequence[Detector] = DETECTORS,
) -> list[AnomalyDetectionResult]:
    """Run every detector over *snapshot*; pure, no persistence."""
    results: list[AnomalyDetectionResult] = []
    for detector in detectors:
        result = detector(snapshot, now)
        if result is not None:
            results.append(result)
    return results


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------


class AnomalyDetector:
    """Runs the detectors for an agent and manages anomaly records.

    Parameters
    ----------
    store:
        The identity store.
    identities:
        Identity manager used for agent lookups and activity logging.
    config:
        Hub configuration; ``anomaly_threshold`` controls which results are
        logged at WARNING level.
    clock:
        Source of the current UTC time.
    """

    def __init__(
        self,
        store: IdentityStore,
        identities: IdentityManager,
        config: HubConfig | None = None,
        clock: Clock = utc_now,
    ) -> None:
        self._store = store
        self._identities = identities
        self._config = config or HubConfig()
        self._clock = clock

    def detect_anomalies(
        self, agent_id: str, now: datetime.datetime | None = None
    ) -> list[AnomalyDetectionResult]:
        """Run all detectors for *agent_id* and persist what they find.

        Raises
        ------
        NotFoundError
            If the agent does not exist.
        """
        agent = self._identities.get_agent(agent_id)
        current = now or self._clock()
        incoming, outgoing = self._store.list_relationships(agent.id)
        snapshot = AnomalySnapshot(
            agent_id=agent.id,
            activities=self._store.list_activities(agent.id, limit=ACTIVITY_SAMPLE_SIZE),
            incoming=incoming,
            outgoing=outgoing,
        )
        results = run_detectors(snapshot, current)
        for result in results:
            self._persist(result)
        return results

    def _persist(self, result: AnomalyDetectionResult) -> AnomalyRecord:
        record = result.to_record()
        with self._store.transaction():
            self._store.add_anomaly(record)
            self._identities.log_activity(
                result.agent_id,
                ActivityType.ANOMALY_DETECTED,
                f"Anomaly detected: {result.anomaly_type.value}",
                metadata={"severity": result.severity.value, "confidence": result.confidence},
            )
        if result.confidence >= self._config.anomaly_threshold:
            logger.warning(
                "Anomaly detected for %s: %s (severity=%s, confidence=%.2f)",
                result.agent_id,
                result.anomaly_type.value,
                result.severity.value,
                result.confidence,
            )
        else:
            logger.info(
                "Anomaly detected for %s: %s (confidence=%.2f)",
                result.agent_id,
                result.anomaly_type.value,
                result.confidence,
            )
        return record

    def get_anomaly_history(
        self, agent_id: str, resolved: bool | None = None
    ) -> list[AnomalyRecord]:
        """Return anomalies for *agent_id*, newest first, optionally filtered by resolution."""
        return self._store.list_anomalies(agent_id, resolved=resolved)

    def resolve_anomaly(self, anomaly_id: str, resolution: str) -> AnomalyRecord:
        """Mark an anomaly resolved; its trust penalty stops applying.

        Raises
        ------
        NotFoundError
            If the anomaly does not exist.
        """
        record = self._store.get_anomaly(anomaly_id)
        if record is None:
            raise NotFoundError("Anomaly", anomaly_id)
        if record.resolved_at is None:
            record.resolved_at = self._clock()
        record.resolution = resolution
        self._store.update_anomaly(record)
        logger.info("Anomaly resolved: %s (%s)", anomaly_id, resolution)
        return record


__all__ = [
    "AnomalyDetectionResult",
    "AnomalyDetector",
    "AnomalySnapshot",
    "DETECTORS",
    "detect_access_pattern",
    "detect_behavior_deviation",
    "detect_capability_escalation",
    "detect_collusion",
    "detect_trust_manipulation",
    "run_detectors",
]
