"""Capability tokens: issuance, verification, revocation, delegation."""
from __future__ import annotations

from agent_identity_hub.capabilities.conditions import evaluate_condition, evaluate_conditions
from agent_identity_hub.capabilities.issuer import (
    DEFAULT_ACTIONS,
    DEFAULT_RESOURCE_PREFIXES,
    CapabilityIssuer,
    CapabilityRequest,
    CapabilityToken,
    CapabilityVerificationRequest,
    CapabilityVerificationResult,
    DelegationRestrictions,
    resource_matches,
)
from agent_identity_hub.capabilities.token import (
    CapabilityClaims,
    CapabilityTokenCodec,
    TokenError,
    TokenInvalidError,
    TokenTamperedError,
)

__all__ = [
    "CapabilityClaims",
    "CapabilityIssuer",
    "CapabilityRequest",
    "CapabilityToken",
    "CapabilityTokenCodec",
    "CapabilityVerificationRequest",
    "CapabilityVerificationResult",
    "DEFAULT_ACTIONS",
    "DEFAULT_RESOURCE_PREFIXES",
    "DelegationRestrictions",
    "TokenError",
    "TokenInvalidError",
    "TokenTamperedError",
    "evaluate_condition",
    "evaluate_conditions",
    "resource_matches",
]
