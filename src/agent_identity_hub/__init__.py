"""agent-identity-hub: DIDs, capability tokens, attestations and trust scoring for agents.

Public API
----------
The stable public surface is everything exported from this module.
Anything inside submodules not re-exported here is considered private
and may change without notice.

Example
-------
>>> import agent_identity_hub
>>> agent_identity_hub.__version__
'0.1.0'

Quick start
-----------
::

    from agent_identity_hub import (
        IdentityHub, HubConfig, CreateAgentRequest, AgentType,
        CapabilityRequest, CapabilityVerificationRequest,
    )

    hub = IdentityHub(HubConfig.from_env())
    worker, _ = hub.identities.create_agent(CreateAgentRequest("worker", AgentType.WORKER))
    validator, _ = hub.identities.create_agent(CreateAgentRequest("validator", AgentType.VALIDATOR))
    token = hub.capabilities.issue_capability(
        validator.did, CapabilityRequest(worker.did, ["read"], ["data/*"], expires_in_hours=1)
    )
    result = hub.capabilities.verify_capability(
        CapabilityVerificationRequest(token.token, "read", "data/42")
    )
"""
from __future__ import annotations

__version__: str = "0.1.0"

from agent_identity_hub.activity_log import ActivitySink, JsonlActivitySink
from agent_identity_hub.attestations import (
    AttestationChain,
    AttestationRequest,
    AttestationService,
    AttestationVerificationResult,
    ClaimInput,
)
from agent_identity_hub.capabilities import (
    CapabilityIssuer,
    CapabilityRequest,
    CapabilityToken,
    CapabilityVerificationRequest,
    CapabilityVerificationResult,
    DelegationRestrictions,
)
from agent_identity_hub.config import HubConfig
from agent_identity_hub.did import DIDDocument, DIDResolutionResult, DIDService, HttpDIDResolver
from agent_identity_hub.errors import (
    AttestationError,
    AuthorizationError,
    CapabilityError,
    ConflictError,
    DIDError,
    IdentityHubError,
    NotFoundError,
    StoreError,
    ValidationError,
)
from agent_identity_hub.hub import IdentityHub
from agent_identity_hub.identity import CreateAgentRequest, IdentityManager, UpdateAgentRequest
from agent_identity_hub.models import (
    ActivityType,
    Agent,
    AgentStatus,
    AgentType,
    AttestationType,
    Capability,
    CapabilityStatus,
    Condition,
    ConditionOperator,
    ConditionType,
    RelationshipType,
)
from agent_identity_hub.store import IdentityStore, InMemoryIdentityStore
from agent_identity_hub.trust import AnomalyDetector, TrustEngine, TrustLevel

__all__ = [
    "__version__",
    # Facade and configuration
    "IdentityHub",
    "HubConfig",
    # Identity
    "ActivityType",
    "Agent",
    "AgentStatus",
    "AgentType",
    "CreateAgentRequest",
    "IdentityManager",
    "RelationshipType",
    "UpdateAgentRequest",
    # DID
    "DIDDocument",
    "DIDResolutionResult",
    "DIDService",
    "HttpDIDResolver",
    # Capabilities
    "Capability",
    "CapabilityIssuer",
    "CapabilityRequest",
    "CapabilityStatus",
    "CapabilityToken",
    "CapabilityVerificationRequest",
    "CapabilityVerificationResult",
    "Condition",
    "ConditionOperator",
    "ConditionType",
    "DelegationRestrictions",
    # Attestations
    "AttestationChain",
    "AttestationRequest",
    "AttestationService",
    "AttestationType",
    "AttestationVerificationResult",
    "ClaimInput",
    # Trust
    "AnomalyDetector",
    "TrustEngine",
    "TrustLevel",
    # Storage and audit
    "ActivitySink",
    "IdentityStore",
    "InMemoryIdentityStore",
    "JsonlActivitySink",
    # Errors
    "AttestationError",
    "AuthorizationError",
    "CapabilityError",
    "ConflictError",
    "DIDError",
    "IdentityHubError",
    "NotFoundError",
    "StoreError",
    "ValidationError",
]
