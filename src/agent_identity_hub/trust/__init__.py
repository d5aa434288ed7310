"""Trust scoring, trust levels and anomaly detection."""
from __future__ import annotations

from agent_identity_hub.trust.anomaly import (
    DETECTORS,
    AnomalyDetectionResult,
    AnomalyDetector,
    AnomalySnapshot,
    run_detectors,
)
from agent_identity_hub.trust.engine import TrustEngine
from agent_identity_hub.trust.level import LEVEL_THRESHOLDS, TrustLevel, derive_level
from agent_identity_hub.trust.scoring import (
    TrustInputs,
    TrustScoreCalculation,
    compute_trust_score,
)

__all__ = [
    "AnomalyDetectionResult",
    "AnomalyDetector",
    "AnomalySnapshot",
    "DETECTORS",
    "LEVEL_THRESHOLDS",
    "TrustEngine",
    "TrustInputs",
    "TrustLevel",
    "TrustScoreCalculation",
    "compute_trust_score",
    "derive_level",
    "run_detectors",
]
