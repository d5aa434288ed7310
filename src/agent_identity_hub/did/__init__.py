"""DID subsystem: key management, documents, resolution, and lifecycle."""
from __future__ import annotations

from agent_identity_hub.did.document import DIDDocument, ServiceEndpoint, VerificationMethod
from agent_identity_hub.did.keys import (
    Ed25519KeyManager,
    KeyManager,
    KeyRing,
    Secp256k1KeyManager,
)
from agent_identity_hub.did.resolver import (
    DIDResolutionResult,
    DIDResolver,
    HttpDIDResolver,
    ResolverError,
)
from agent_identity_hub.did.service import DIDService

__all__ = [
    "DIDDocument",
    "DIDResolutionResult",
    "DIDResolver",
    "DIDService",
    "Ed25519KeyManager",
    "HttpDIDResolver",
    "KeyManager",
    "KeyRing",
    "ResolverError",
    "Secp256k1KeyManager",
    "ServiceEndpoint",
    "VerificationMethod",
]
