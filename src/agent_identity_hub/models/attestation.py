"""Attestation records.

An attestation is a signed set of claims made by an issuer DID about a
subject DID. It is immutable once issued except for ``revocation``, which
is set at most once.
"""
from __future__ import annotations

import datetime
import secrets
from dataclasses import dataclass, field
from enum import Enum

from agent_identity_hub.clock import parse_datetime, to_iso, utc_now


class AttestationType(str, Enum):
    IDENTITY_VERIFICATION = "identity_verification"
    CAPABILITY_AUTHORIZATION = "capability_authorization"
    BEHAVIOR_ASSERTION = "behavior_assertion"
    TRUST_ASSERTION = "trust_assertion"
    COMPLETION_CERTIFICATE = "completion_certificate"
    MEMBERSHIP = "membership"
    CUSTOM = "custom"


def new_attestation_id() -> str:
    """Return a fresh ``urn:attest:<hex>`` identifier."""
    return f"urn:attest:{secrets.token_hex(16)}"


@dataclass(frozen=True)
class Claim:
    """A single claim inside an attestation. ``issuer`` always equals the attestation issuer."""

    type: str
    value: object
    issuer: str

    def to_dict(self) -> dict[str, object]:
        return {"type": self.type, "value": self.value, "issuer": self.issuer}


@dataclass(frozen=True)
class AttestationProof:
    """Signature over the canonical attestation payload."""

    type: str
    created: datetime.datetime
    verification_method: str
    proof_value: str
    proof_purpose: str = "assertionMethod"

    def to_dict(self) -> dict[str, object]:
        return {
            "type": self.type,
            "created": self.created.isoformat(),
            "proofPurpose": self.proof_purpose,
            "verificationMethod": self.verification_method,
            "proofValue": self.proof_value,
        }


@dataclass(frozen=True)
class Revocation:
    revoked_at: datetime.datetime
    revoked_by: str
    reason: str | None = None

    def to_dict(self) -> dict[str, object]:
        return {
            "revokedAt": self.revoked_at.isoformat(),
            "reason": self.reason,
            "revokedBy": self.revoked_by,
        }


@dataclass
class Attestation:
    """A stored attestation.

    Parameters
    ----------
    id:
        ``urn:attest:<hex>`` identifier.
    type:
        The :class:`AttestationType`.
    issuer / subject:
        DIDs of the attesting and attested parties.
    claims:
        Claims made by the issuer.
    expires_at:
        Optional expiry; ``None`` means the attestation never expires.
    revocation:
        Set once by the issuer; the attestation is never deleted.
    proof:
        Signature over the canonical payload. ``None`` only for records
        imported from elsewhere.
    """

    type: AttestationType
    issuer: str
    subject: str
    claims: list[Claim] = field(default_factory=list)
    id: str = field(default_factory=new_attestation_id)
    issued_at: datetime.datetime = field(default_factory=utc_now)
    expires_at: datetime.datetime | None = None
    revocation: Revocation | None = None
    proof: AttestationProof | None = None
    metadata: dict[str, object] = field(default_factory=dict)

    @property
    def is_revoked(self) -> bool:
        return self.revocation is not None

    def is_expired(self, now: datetime.datetime | None = None) -> bool:
        if self.expires_at is None:
            return False
        return (now or utc_now()) >= self.expires_at

    def is_valid(self, now: datetime.datetime | None = None) -> bool:
        """Return ``True`` when the attestation is neither revoked nor expired."""
        return not self.is_revoked and not self.is_expired(now)

    def signing_payload(self) -> dict[str, object]:
        """Return the fields covered by the proof signature."""
        return {
            "id": self.id,
            "type": self.type.value,
            "issuer": self.issuer,
            "subject": self.subject,
            "claims": [c.to_dict() for c in self.claims],
            "issuedAt": self.issued_at.isoformat(),
        }

    def to_dict(self) -> dict[str, object]:
        """Serialize to a camelCase dictionary."""
        return {
            "id": self.id,
            "type": self.type.value,
            "issuer": self.issuer,
            "subject": self.subject,
            "claims": [c.to_dict() for c in self.claims],
            "issuedAt": self.issued_at.isoformat(),
            "expiresAt": to_iso(self.expires_at),
            "revocation": self.revocation.to_dict() if self.revocation else None,
            "proof": self.proof.to_dict() if self.proof else None,
            "metadata": dict(self.metadata),
        }

    @classmethod
    def from_dict(cls, data: dict[str, object]) -> "Attestation":
        """Reconstruct an attestation from :meth:`to_dict` output."""
        proof_raw = data.get("proof")
        revocation_raw = data.get("revocation")
        proof = None
        if isinstance(proof_raw, dict):
            proof = AttestationProof(
                type=str(proof_raw["type"]),
                created=parse_datetime(proof_raw.get("created")) or utc_now(),
                proof_purpose=str(proof_raw.get("proofPurpose", "assertionMethod")),
                verification_method=str(proof_raw["verificationMethod"]),
                proof_value=str(proof_raw["proofValue"]),
            )
        revocation = None
        if isinstance(revocation_raw, dict):
            revocation = Revocation(
                revoked_at=parse_datetime(revocation_raw.get("revokedAt")) or utc_now(),
                revoked_by=str(revocation_raw["revokedBy"]),
                reason=revocation_raw.get("reason"),  # type: ignore[arg-type]
            )
        return cls(
            id=str(data["id"]),
            type=AttestationType(data["type"]),
            issuer=str(data["issuer"]),
            subject=str(data["subject"]),
            claims=[
                Claim(type=str(c["type"]), value=c.get("value"), issuer=str(c["issuer"]))
                for c in data.get("claims", [])  # type: ignore[union-attr]
            ],
            issued_at=parse_datetime(data.get("issuedAt")) or utc_now(),
            expires_at=parse_datetime(data.get("expiresAt")),
            revocation=revocation,
            proof=proof,
            metadata=dict(data.get("metadata", {})),  # type: ignore[arg-type]
        )


# ---------------------------------------------------------------------------
# Behaviour attestations
# ---------------------------------------------------------------------------


class BehaviorType(str, Enum):
    NORMAL = "normal"
    SUSPICIOUS = "suspicious"
    MALICIOUS = "malicious"
    EXCEPTIONAL = "exceptional"
    COOPERATIVE = "cooperative"
    UNRELIABLE = "unreliable"


@dataclass(frozen=True)
class BehaviorEvidence:
    """One observation backing a behaviour attestation."""

    type: str
    description: str
    timestamp: datetime.datetime
    data: dict[str, object] | None = None

    def to_dict(self) -> dict[str, object]:
        payload: dict[str, object] = {
            "type": self.type,
            "description": self.description,
            "timestamp": self.timestamp.isoformat(),
        }
        if self.data is not None:
            payload["data"] = dict(self.data)
        return payload


@dataclass
class BehaviorAttestation:
    """An unsigned, observed-behaviour statement about a subject.

    Unlike :class:`Attestation` it carries no issuer or proof and is not
    persisted by the identity store.
    """

    subject: str
    behavior: BehaviorType
    confidence: float
    evidence: list[BehaviorEvidence] = field(default_factory=list)
    id: str = field(default_factory=new_attestation_id)
    attested_at: datetime.datetime = field(default_factory=utc_now)
    expires_at: datetime.datetime | None = None

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.id,
            "subject": self.subject,
            "behavior": self.behavior.value,
            "confidence": self.confidence,
            "evidence": [e.to_dict() for e in self.evidence],
            "attestedAt": self.attested_at.isoformat(),
            "expiresAt": to_iso(self.expires_at),
        }


__all__ = [
    "Attestation",
    "AttestationProof",
    "AttestationType",
    "BehaviorAttestation",
    "BehaviorEvidence",
    "BehaviorType",
    "Claim",
    "Revocation",
    "new_attestation_id",
]
