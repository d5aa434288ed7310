"""Signed attestations between agents."""
from __future__ import annotations

from agent_identity_hub.attestations.service import (
    AttestationChain,
    AttestationRequest,
    AttestationService,
    AttestationStats,
    AttestationVerificationResult,
    ClaimInput,
    canonical_json,
    chain_trust_score,
)

__all__ = [
    "AttestationChain",
    "AttestationRequest",
    "AttestationService",
    "AttestationStats",
    "AttestationVerificationResult",
    "ClaimInput",
    "canonical_json",
    "chain_trust_score",
]
