"""Trust score arithmetic.

:func:`compute_trust_score` is a pure function of a :class:`TrustInputs`
snapshot, the decay/boost rates and a reference time, so identical inputs
always produce identical results.

Composite formula
-----------------
Five sub-scores in ``[0, 1]`` are combined around the 0.5 prior::

    base = 0.5 + sum(weight_k * (sub_k - neutral_k))

Every signal has neutral value 0.5 except age, whose neutral value is 0
(a brand-new agent gains nothing from age). A recency adjustment and the
anomaly penalty are then applied and the result is clamped to ``[0, 1]``.
"""
from __future__ import annotations

import datetime
import statistics
from collections.abc import Sequence
from dataclasses import dataclass, field

from agent_identity_hub.models import (
    NEGATIVE_ACTIVITY_TYPES,
    POSITIVE_ACTIVITY_TYPES,
    AgentActivity,
    AnomalyRecord,
    AnomalySeverity,
    AttestationType,
)
from agent_identity_hub.trust.level import TrustLevel, derive_level

PRIOR: float = 0.5

WEIGHTS: dict[str, float] = {
    "attestation": 0.3,
    "activity": 0.2,
    "relationship": 0.2,
    "age": 0.1,
    "reputation": 0.2,
}

NEUTRAL: dict[str, float] = {
    "attestation": 0.5,
    "activity": 0.5,
    "relationship": 0.5,
    "age": 0.0,
    "reputation": 0.5,
}

SEVERITY_MULTIPLIERS: dict[AnomalySeverity, float] = {
    AnomalySeverity.CRITICAL: 0.3,
    AnomalySeverity.HIGH: 0.2,
    AnomalySeverity.MEDIUM: 0.1,
    AnomalySeverity.LOW: 0.05,
}

MAX_ANOMALY_PENALTY: float = 0.5
RECENCY_HORIZON_HOURS: float = 168.0
ACTIVITY_WINDOW: datetime.timedelta = datetime.timedelta(days=7)
AGE_SATURATION_DAYS: float = 90.0


@dataclass
class TrustInputs:
    """Everything the score depends on, captured at one point in time.

    Parameters
    ----------
    agent_id:
        The agent being scored.
    created_at:
        Agent creation time (drives the age sub-score).
    reputation:
        Agent reputation counter, nominally in ``[-1000, 1000]``.
    attestation_types:
        Types of the currently valid attestations about the agent.
    activities:
        Most recent activities, newest first.
    relationship_trust_levels:
        ``trust_level`` of every incoming and outgoing relationship.
    unresolved_anomalies:
        Anomalies whose penalty still applies.
    """

    agent_id: str
    created_at: datetime.datetime
    reputation: int = 0
    attestation_types: list[AttestationType] = field(default_factory=list)
    activities: list[AgentActivity] = field(default_factory=list)
    relationship_trust_levels: list[float] = field(default_factory=list)
    unresolved_anomalies: list[AnomalyRecord] = field(default_factory=list)


@dataclass
class TrustScoreCalculation:
    """Result of one trust computation, with every intermediate term."""

    agent_id: str
    base_score: float
    attestation_score: float
    activity_score: float
    relationship_score: float
    age_score: float
    reputation_score: float
    attestations: int
    positive_interactions: int
    negative_interactions: int
    recency_weight: float
    anomaly_penalty: float
    final_score: float
    level: TrustLevel
    calculated_at: datetime.datetime

    @property
    def reason(self) -> str:
        return f"Base: {self.base_score:.2f}, Recency: {self.recency_weight:.2f}"

    def to_dict(self) -> dict[str, object]:
        return {
            "agentId": self.agent_id,
            "baseScore": self.base_score,
            "attestationScore": self.attestation_score,
            "activityScore": self.activity_score,
            "relationshipScore": self.relationship_score,
            "ageScore": self.age_score,
            "reputationScore": self.reputation_score,
            "attestations": self.attestations,
            "positiveInteractions": self.positive_interactions,
            "negativeInteractions": self.negative_interactions,
            "recencyWeight": self.recency_weight,
            "anomalyPenalty": self.anomaly_penalty,
            "finalScore": self.final_score,
            "level": self.level.name,
            "calculatedAt": self.calculated_at.isoformat(),
        }


# ---------------------------------------------------------------------------
# Sub-scores
# ---------------------------------------------------------------------------


def _clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return max(low, min(high, value))


def attestation_score(types: Sequence[AttestationType]) -> float:
    if not types:
        return 0.5
    trust = sum(1 for t in types if t is AttestationType.TRUST_ASSERTION)
    identity = sum(1 for t in types if t is AttestationType.IDENTITY_VERIFICATION)
    return min(0.5 + min(trust * 0.1, 0.3) + min(identity * 0.05, 0.2), 1.0)


def activity_score(activities: Sequence[AgentActivity], now: datetime.datetime) -> float:
    if not activities:
        return 0.5
    recent = [a for a in activities if now - a.timestamp < ACTIVITY_WINDOW]
    if not recent:
        return 0.3
    positive = sum(1 for a in recent if a.activity_type in POSITIVE_ACTIVITY_TYPES)
    negative = sum(1 for a in recent if a.activity_type in NEGATIVE_ACTIVITY_TYPES)
    ratio = positive / (positive + negative) if positive + negative else 0.0
    return 0.5 + ratio * 0.5


def relationship_score(trust_levels: Sequence[float]) -> float:
    if not trust_levels:
        return 0.5
    return statistics.fmean(trust_levels)


def age_score(created_at: datetime.datetime, now: datetime.datetime) -> float:
    age_days = max((now - created_at).total_seconds(), 0.0) / 86400.0
    return min(age_days / AGE_SATURATION_DAYS, 1.0)


def reputation_score(reputation: int) -> float:
    return _clamp((reputation + 1000) / 2000)


def recency_weight(activities: Sequence[AgentActivity], now: datetime.datetime) -> float:
    """``1`` for activity right now, falling linearly to ``0`` after a week."""
    if not activities:
        return 0.0
    latest = max(a.timestamp for a in activities)
    hours = (now - latest).total_seconds() / 3600.0
    return max(0.0, 1.0 - hours / RECENCY_HORIZON_HOURS)


def anomaly_penalty(anomalies: Sequence[AnomalyRecord]) -> float:
    penalty = sum(
        SEVERITY_MULTIPLIERS[a.severity] * a.confidence for a in anomalies if not a.is_resolved
    )
    return min(penalty, MAX_ANOMALY_PENALTY)


# ---------------------------------------------------------------------------
# Composite
# ---------------------------------------------------------------------------


def compute_trust_score(
    inputs: TrustInputs,
    now: datetime.datetime,
    decay_rate: float = 0.05,
    boost_rate: float = 0.1,
) -> TrustScoreCalculation:
    """Compute the trust score for *inputs* as of *now*.

    Parameters
    ----------
    inputs:
        Snapshot of the agent's signals.
    now:
        Reference time for age, recency and the activity window.
    decay_rate / boost_rate:
        Recency adjustment rates.

    Returns
    -------
    TrustScoreCalculation
        The final score in ``[0, 1]`` with all intermediate terms.
    """
    subs = {
        "attestation": attestation_score(inputs.attestation_types),
        "activity": activity_score(inputs.activities, now),
        "relationship": relationship_score(inputs.relationship_trust_levels),
        "age": age_score(inputs.created_at, now),
        "reputation": reputation_score(inputs.reputation),
    }
    base = PRIOR + sum(WEIGHTS[k] * (subs[k] - NEUTRAL[k]) for k in WEIGHTS)

    recency = recency_weight(inputs.activities, now)
    final = base
    if recency >= 0.5:
        final += boost_rate * recency
    else:
        final -= decay_rate * (0.5 - recency)
    penalty = anomaly_penalty(inputs.unresolved_anomalies)
    final = _clamp(final - penalty)

    return TrustScoreCalculation(
        agent_id=inputs.agent_id,
        base_score=base,
        attestation_score=subs["attestation"],
        activity_score=subs["activity"],
        relationship_score=subs["relationship"],
        age_score=subs["age"],
        reputation_score=subs["reputation"],
        attestations=len(inputs.attestation_types),
        positive_interactions=sum(
            1 for a in inputs.activities if a.activity_type in POSITIVE_ACTIVITY_TYPES
        ),
        negative_interactions=sum(
            1 for a in inputs.activities if a.activity_type in NEGATIVE_ACTIVITY_TYPES
        ),
        recency_weight=recency,
        anomaly_penalty=penalty,
        final_score=final,
        level=derive_level(final),
        calculated_at=now,
    )


__all__ = [
    "SEVERITY_MULTIPLIERS",
    "TrustInputs",
    "TrustScoreCalculation",
    "WEIGHTS",
    "anomaly_penalty",
    "compute_trust_score",
    "recency_weight",
]
