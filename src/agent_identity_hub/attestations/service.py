"""AttestationService: issue, verify, chain and revoke signed attestations.

Proofs
------
The proof signs the SHA-256 digest of the canonical JSON (sorted keys,
compact separators) of :meth:`Attestation.signing_payload`, using the
issuer's private key held by the :class:`~agent_identity_hub.did.DIDService`
key ring. The proof type follows the issuer's key scheme:
``Ed25519Signature2020`` for ``did:key`` and ``EcdsaSecp256k1Signature2019``
for ``did:ethr``.

Chains
------
:meth:`AttestationService.build_attestation_chain` collects the valid
attestations about a subject and, for every ``trust_assertion``, pulls in
the valid attestations made about others by that assertion's issuer. Only
one hop is followed and every attestation appears at most once, so cyclic
trust assertions always terminate.
"""
from __future__ import annotations

import datetime
import hashlib
import json
import logging
from collections import Counter
from dataclasses import dataclass, field

from agent_identity_hub.clock import Clock, utc_now
from agent_identity_hub.did.keys import MANAGERS_BY_METHOD_TYPE
from agent_identity_hub.did.service import DIDService, public_key_bytes
from agent_identity_hub.errors import (
    AttestationError,
    AuthorizationError,
    DIDError,
    NotFoundError,
    ValidationError,
)
from agent_identity_hub.identity.manager import IdentityManager
from agent_identity_hub.models import (
    ActivityType,
    AgentStatus,
    Attestation,
    AttestationProof,
    AttestationType,
    BehaviorAttestation,
    BehaviorEvidence,
    BehaviorType,
    Claim,
    Revocation,
)
from agent_identity_hub.store import AttestationFilter, IdentityStore

logger = logging.getLogger(__name__)

CHAIN_SUBJECT_LIMIT: int = 100
CHAIN_ISSUER_LIMIT: int = 10

_TYPE_BONUS: dict[AttestationType, float] = {
    AttestationType.TRUST_ASSERTION: 0.3,
    AttestationType.IDENTITY_VERIFICATION: 0.2,
}


def canonical_json(payload: dict[str, object]) -> bytes:
    """Serialize *payload* deterministically for signing."""
    return json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str).encode("utf-8")


# ---------------------------------------------------------------------------
# Request / result types
# ---------------------------------------------------------------------------


@dataclass
class ClaimInput:
    """A claim as submitted by the issuer; the issuer DID is stamped on creation."""

    type: str
    value: object


@dataclass
class AttestationRequest:
    type: AttestationType
    subject: str
    claims: list[ClaimInput] = field(default_factory=list)
    expires_in_hours: float | None = None
    metadata: dict[str, object] = field(default_factory=dict)


@dataclass
class AttestationVerificationResult:
    valid: bool
    attestation: Attestation | None = None
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, object]:
        payload: dict[str, object] = {"valid": self.valid}
        if self.attestation is not None:
            payload["attestation"] = self.attestation.to_dict()
        if self.errors:
            payload["errors"] = list(self.errors)
        if self.warnings:
            payload["warnings"] = list(self.warnings)
        return payload


@dataclass
class AttestationChain:
    attestations: list[Attestation]
    root_issuer: str
    subject: str
    chain_valid: bool
    trust_score: float

    def to_dict(self) -> dict[str, object]:
        return {
            "attestations": [a.to_dict() for a in self.attestations],
            "rootIssuer": self.root_issuer,
            "subject": self.subject,
            "chainValid": self.chain_valid,
            "trustScore": self.trust_score,
        }


@dataclass
class AttestationStats:
    issued: int
    received: int
    verified: int
    revoked: int
    by_type: dict[str, int]

    def to_dict(self) -> dict[str, object]:
        return {
            "issued": self.issued,
            "received": self.received,
            "verified": self.verified,
            "revoked": self.revoked,
            "byType": dict(self.by_type),
        }


def chain_trust_score(chain: list[Attestation]) -> float:
    """Weighted trust score of an attestation chain; ``0.5`` for an empty chain.

    The i-th attestation is weighted ``1/(i+1)`` and contributes ``0.5``
    plus a type bonus plus ``0.05`` per claim (at most ``0.2``).
    """
    if not chain:
        return 0.5
    total = 0.0
    weight = 0.0
    for index, attestation in enumerate(chain):
        w = 1.0 / (index + 1)
        score = 0.5 + _TYPE_BONUS.get(attestation.type, 0.0)
        score += min(len(attestation.claims) * 0.05, 0.2)
        total += score * w
        weight += w
    return min(total / weight, 1.0)


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------


class AttestationService:
    """Issue and verify attestations between agents.

    Parameters
    ----------
    store:
        The identity store.
    identities:
        Identity manager used for agent lookups and activity logging.
    dids:
        DID service holding issuer keys and resolving issuer documents.
    clock:
        Source of the current UTC time.
    """

    def __init__(
        self,
        store: IdentityStore,
        identities: IdentityManager,
        dids: DIDService,
        clock: Clock = utc_now,
    ) -> None:
        self._store = store
        self._identities = identities
        self._dids = dids
        self._clock = clock

    # ------------------------------------------------------------------
    # Issuance
    # ------------------------------------------------------------------

    def create_attestation(self, issuer_did: str, request: AttestationRequest) -> Attestation:
        """Issue and persist a signed attestation.

        Raises
        ------
        NotFoundError
            If the issuer or subject agent does not exist.
        AuthorizationError
            If the issuer is not active.
        ValidationError
            If ``expires_in_hours`` is not positive.
        AttestationError
            If the issuer's signing key is not held by this hub.
        """
        issuer = self._identities.find_agent(issuer_did)
        if issuer is None:
            raise NotFoundError("Agent", issuer_did)
        if issuer.status is not AgentStatus.ACTIVE:
            raise AuthorizationError("Issuer is not active")
        subject = self._identities.find_agent(request.subject)
        if subject is None:
            raise NotFoundError("Agent", request.subject)
        if request.expires_in_hours is not None and request.expires_in_hours <= 0:
            raise ValidationError(
                f"expires_in_hours must be positive, got {request.expires_in_hours}"
            )

        now = self._clock()
        attestation = Attestation(
            type=request.type,
            issuer=issuer_did,
            subject=request.subject,
            claims=[Claim(type=c.type, value=c.value, issuer=issuer_did) for c in request.claims],
            issued_at=now,
            expires_at=(
                now + datetime.timedelta(hours=request.expires_in_hours)
                if request.expires_in_hours is not None
                else None
            ),
            metadata=dict(request.metadata),
        )
        attestation.proof = self._sign(attestation, now)

        with self._store.transaction():
            self._store.add_attestation(attestation)
            self._identities.log_activity(
                subject.id,
                ActivityType.ATTESTATION_ISSUED,
                f"Attestation issued: {request.type.value}",
                metadata={
                    "attestationId": attestation.id,
                    "issuer": issuer_did,
                    "type": request.type.value,
                },
                related_agent_ids=[issuer.id],
            )

        logger.info(
            "Attestation created: %s (type=%s, issuer=%s, subject=%s)",
            attestation.id,
            request.type.value,
            issuer_did,
            request.subject,
        )
        return attestation

    def create_behavior_attestation(
        self,
        subject: str,
        behavior: BehaviorType,
        confidence: float,
        evidence: list[BehaviorEvidence] | None = None,
        expires_in_hours: float | None = None,
    ) -> BehaviorAttestation:
        """Record an observed-behaviour statement about *subject*.

        The result is unsigned and is only logged, not persisted.

        Raises
        ------
        ValidationError
            If *confidence* is outside ``[0, 1]`` or ``expires_in_hours``
            is not positive.
        """
        if not 0.0 <= confidence <= 1.0:
            raise ValidationError(f"confidence must be within [0, 1], got {confidence}")
        if expires_in_hours is not None and expires_in_hours <= 0:
            raise ValidationError(f"expires_in_hours must be positive, got {expires_in_hours}")
        now = self._clock()
        attestation = BehaviorAttestation(
            subject=subject,
            behavior=behavior,
            confidence=confidence,
            evidence=list(evidence or []),
            attested_at=now,
            expires_at=(
                now + datetime.timedelta(hours=expires_in_hours)
                if expires_in_hours is not None
                else None
            ),
        )
        logger.info(
            "Behavior attestation created: %s (subject=%s, behavior=%s, confidence=%.2f)",
            attestation.id,
            subject,
            behavior.value,
            confidence,
        )
        return attestation

    def _sign(self, attestation: Attestation, now: datetime.datetime) -> AttestationProof:
        document = self._dids.get_document(attestation.issuer)
        method = document.primary_verification_method() if document else None
        if method is None:
            raise AttestationError(
                f"Issuer {attestation.issuer} has no resolvable verification method",
                code="ISSUER_KEY_UNAVAILABLE",
            )
        try:
            proof_value = self._dids.sign_message(
                attestation.issuer, canonical_json(attestation.signing_payload())
            )
        except DIDError as exc:
            raise AttestationError(str(exc), code="ISSUER_KEY_UNAVAILABLE") from exc
        return AttestationProof(
            type=MANAGERS_BY_METHOD_TYPE[method.type].proof_type,
            created=now,
            verification_method=method.id,
            proof_value=proof_value,
        )

    # ------------------------------------------------------------------
    # Verification
    # ------------------------------------------------------------------

    def verify_attestation(
        self, attestation_id: str, now: datetime.datetime | None = None
    ) -> AttestationVerificationResult:
        """Check expiry, revocation and the proof signature of an attestation.

        Missing or inactive parties are reported as warnings; they do not
        invalidate the attestation.
        """
        attestation = self._store.get_attestation(attestation_id)
        if attestation is None:
            return AttestationVerificationResult(valid=False, errors=["Attestation not found"])

        current = now or self._clock()
        errors: list[str] = []
        warnings: list[str] = []

        if attestation.is_expired(current):
            errors.append("Attestation has expired")
        if attestation.is_revoked:
            errors.append("Attestation has been revoked")

        issuer = self._identities.find_agent(attestation.issuer)
        if issuer is None:
            warnings.append("Issuer not found")
        elif issuer.status is not AgentStatus.ACTIVE:
            warnings.append("Issuer is no longer active")

        if self._identities.find_agent(attestation.subject) is None:
            warnings.append("Subject not found")

        if attestation.proof is None:
            errors.append("Attestation has no proof")
        else:
            verified = self._check_proof(attestation, attestation.proof)
            if verified is None:
                warnings.append("Issuer key could not be resolved")
            elif not verified:
                errors.append("Attestation proof signature is invalid")

        return AttestationVerificationResult(
            valid=not errors,
            attestation=attestation,
            errors=errors,
            warnings=warnings,
        )

    def _check_proof(self, attestation: Attestation, proof: AttestationProof) -> bool | None:
        """Return the signature check result, or ``None`` when the key is unresolvable."""
        document = self._dids.get_document(attestation.issuer)
        if document is None:
            return None
        method = document.resolve_verification_method(proof.verification_method)
        if method is None:
            return None
        manager = MANAGERS_BY_METHOD_TYPE.get(method.type)
        if manager is None:
            logger.warning("No verifier for verification method type %s", method.type)
            return None
        try:
            key = public_key_bytes(method)
            signature = bytes.fromhex(proof.proof_value)
        except ValueError:
            return False
        digest = hashlib.sha256(canonical_json(attestation.signing_payload())).digest()
        return manager.verify(key, signature, digest)

    # ------------------------------------------------------------------
    # Query
    # ------------------------------------------------------------------

    def get_attestation(self, attestation_id: str) -> Attestation:
        attestation = self._store.get_attestation(attestation_id)
        if attestation is None:
            raise NotFoundError("Attestation", attestation_id)
        return attestation

    def list_attestations(
        self,
        attestation_filter: AttestationFilter | None = None,
        page: int = 1,
        limit: int = 20,
    ) -> tuple[list[Attestation], int]:
        """Return one page of matching attestations, newest first, and the total count."""
        return self._store.list_attestations(attestation_filter, page=page, limit=limit)

    def build_attestation_chain(
        self,
        subject: str,
        attestation_type: AttestationType | None = None,
    ) -> AttestationChain:
        """Assemble the trust chain for *subject*.

        Returns
        -------
        AttestationChain
            The deduplicated attestations, the issuer of the first one as
            ``root_issuer`` (the subject itself when the chain is empty),
            the validity of every member and the chain trust score.
        """
        now = self._clock()
        direct, _ = self._store.list_attestations(
            AttestationFilter(subject=subject, type=attestation_type, valid_only=True, valid_at=now),
            page=1,
            limit=CHAIN_SUBJECT_LIMIT,
        )

        chain: list[Attestation] = []
        visited: set[str] = set()
        for attestation in direct:
            if attestation.id in visited:
                continue
            chain.append(attestation)
            visited.add(attestation.id)
            if attestation.type is not AttestationType.TRUST_ASSERTION:
                continue
            upstream, _ = self._store.list_attestations(
                AttestationFilter(issuer=attestation.issuer, valid_only=True, valid_at=now),
                page=1,
                limit=CHAIN_ISSUER_LIMIT,
            )
            for issued in upstream:
                if issued.id not in visited:
                    chain.append(issued)
                    visited.add(issued.id)

        return AttestationChain(
            attestations=chain,
            root_issuer=chain[0].issuer if chain else subject,
            subject=subject,
            chain_valid=all(a.is_valid(now) for a in chain),
            trust_score=chain_trust_score(chain),
        )

    def get_attestation_stats(self, did: str) -> AttestationStats:
        """Count attestations issued by and about *did*."""
        now = self._clock()
        issued = self._list_all(AttestationFilter(issuer=did))
        received = self._list_all(AttestationFilter(subject=did))
        return AttestationStats(
            issued=len(issued),
            received=len(received),
            verified=sum(1 for a in received if a.is_valid(now)),
            revoked=sum(1 for a in issued if a.is_revoked),
            by_type=dict(Counter(a.type.value for a in received)),
        )

    def _list_all(self, attestation_filter: AttestationFilter) -> list[Attestation]:
        _, total = self._store.list_attestations(attestation_filter, limit=1)
        if total == 0:
            return []
        items, _ = self._store.list_attestations(attestation_filter, limit=total)
        return items

    # ------------------------------------------------------------------
    # Revocation
    # ------------------------------------------------------------------

    def revoke_attestation(
        self,
        attestation_id: str,
        revoked_by: str,
        reason: str | None = None,
    ) -> Attestation:
        """Revoke an attestation. Only its issuer may do so, and only once.

        Raises
        ------
        NotFoundError
            If the attestation does not exist.
        AuthorizationError
            If *revoked_by* is not the issuer.
        AttestationError
            With code ``ALREADY_REVOKED`` on a second revocation.
        """
        attestation = self.get_attestation(attestation_id)
        if revoked_by != attestation.issuer:
            raise AuthorizationError("Not authorized to revoke this attestation")
        if attestation.is_revoked:
            raise AttestationError(
                f"Attestation {attestation_id} is already revoked", code="ALREADY_REVOKED"
            )
        attestation.revocation = Revocation(
            revoked_at=self._clock(), revoked_by=revoked_by, reason=reason
        )
        self._store.update_attestation(attestation)
        logger.info("Attestation revoked: %s (by %s)", attestation_id, revoked_by)
        return attestation


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
