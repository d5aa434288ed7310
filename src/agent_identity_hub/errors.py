"""Error taxonomy for the identity hub.

Every error carries a stable machine-readable ``code`` and an HTTP-style
``status_code`` hint so that a transport layer can translate it without
inspecting the message text.

Verification-style operations (capability verification, attestation
verification, DID resolution) do not raise for negative outcomes; they
return structured results. Mutating operations raise one of the classes
below on precondition failure.
"""
from __future__ import annotations


class IdentityHubError(Exception):
    """Base class for all identity hub errors.

    Parameters
    ----------
    message:
        Human-readable description of the failure.
    code:
        Stable machine-readable error code. Defaults to the class-level
        :attr:`default_code`.
    details:
        Optional structured context attached to the error.
    """

    default_code: str = "INTERNAL_ERROR"
    status_code: int = 500

    def __init__(
        self,
        message: str,
        code: str | None = None,
        details: dict[str, object] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.details = details or {}

    def to_dict(self) -> dict[str, object]:
        """Serialize to a plain dictionary suitable for an error response body."""
        payload: dict[str, object] = {
            "code": self.code,
            "message": self.message,
            "statusCode": self.status_code,
        }
        if self.details:
            payload["details"] = dict(self.details)
        return payload


class NotFoundError(IdentityHubError):
    """Raised when an agent, capability, attestation, DID, or anomaly is missing."""

    default_code = "NOT_FOUND"
    status_code = 404

    def __init__(self, resource: str, identifier: str) -> None:
        super().__init__(f"{resource} not found: {identifier}")
        self.resource = resource
        self.identifier = identifier


class ValidationError(IdentityHubError):
    """Raised for malformed requests and rejected argument combinations."""

    default_code = "VALIDATION_ERROR"
    status_code = 400


class AuthorizationError(IdentityHubError):
    """Raised when a principal is inactive or lacks rights for a mutation."""

    default_code = "AUTHORIZATION_ERROR"
    status_code = 403


class ConflictError(IdentityHubError):
    """Raised when a write collides with existing state."""

    default_code = "CONFLICT"
    status_code = 409


class DIDError(IdentityHubError):
    """Raised by the DID service (unsupported method, duplicate service id)."""

    default_code = "DID_ERROR"
    status_code = 400


class CapabilityError(IdentityHubError):
    """Raised by the capability issuer for grant and delegation failures."""

    default_code = "CAPABILITY_ERROR"
    status_code = 403


class AttestationError(IdentityHubError):
    """Raised by the attestation service for issuance and revocation failures."""

    default_code = "ATTESTATION_ERROR"
    status_code = 400


class StoreError(IdentityHubError):
    """Raised when the identity store cannot complete an operation."""

    default_code = "STORE_ERROR"
    status_code = 500


__all__ = [
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
