"""Tests for AttestationService: signing, verification, chains, stats, revocation."""
from __future__ import annotations

import datetime

import pytest

from conftest import FakeClock, make_agent

from agent_identity_hub.attestations import (
    AttestationRequest,
    ClaimInput,
    chain_trust_score,
)
from agent_identity_hub.config import HubConfig
from agent_identity_hub.errors import (
    AttestationError,
    AuthorizationError,
    NotFoundError,
    ValidationError,
)
from agent_identity_hub.hub import IdentityHub
from agent_identity_hub.models import (
    ActivityType,
    Agent,
    AgentStatus,
    Attestation,
    AttestationType,
    BehaviorEvidence,
    BehaviorType,
    Claim,
)
from agent_identity_hub.store import AttestationFilter


def attest(
    hub: IdentityHub,
    issuer: Agent,
    subject: Agent,
    attestation_type: AttestationType = AttestationType.TRUST_ASSERTION,
    claims: int = 1,
    expires_in_hours: float | None = None,
) -> Attestation:
    return hub.attestations.create_attestation(
        issuer.did,
        AttestationRequest(
            type=attestation_type,
            subject=subject.did,
            claims=[ClaimInput(type=f"claim-{i}", value=i) for i in range(claims)],
            expires_in_hours=expires_in_hours,
        ),
    )


# ---------------------------------------------------------------------------
# create_attestation()
# ---------------------------------------------------------------------------


class TestCreate:
    def test_ed25519_proof_for_did_key(self, hub: IdentityHub, worker: Agent, validator: Agent) -> None:
        attestation = attest(hub, validator, worker)
        assert attestation.id.startswith("urn:attest:")
        assert attestation.proof is not None
        assert attestation.proof.type == "Ed25519Signature2020"
        assert attestation.proof.verification_method == f"{validator.did}#keys-1"
        assert attestation.claims[0].issuer == validator.did

    def test_secp256k1_proof_for_did_ethr(self, clock: FakeClock) -> None:
        hub = IdentityHub(config=HubConfig(default_did_method="ethr"), clock=clock)
        issuer = make_agent(hub, "ethr-issuer")
        subject = make_agent(hub, "ethr-subject")
        attestation = attest(hub, issuer, subject)
        assert issuer.did.startswith("did:ethr:0x")
        assert attestation.proof is not None
        assert attestation.proof.type == "EcdsaSecp256k1Signature2019"
        assert hub.attestations.verify_attestation(attestation.id).valid is True

    def test_logged_on_subject(self, hub: IdentityHub, worker: Agent, validator: Agent) -> None:
        attestation = attest(hub, validator, worker)
        latest = hub.identities.get_agent_activity(worker.id)[0]
        assert latest.activity_type is ActivityType.ATTESTATION_ISSUED
        assert latest.metadata["attestationId"] == attestation.id

    def test_inactive_issuer_rejected(self, hub: IdentityHub, worker: Agent, validator: Agent) -> None:
        hub.identities.set_status(validator.id, AgentStatus.INACTIVE)
        with pytest.raises(AuthorizationError):
            attest(hub, validator, worker)

    def test_unknown_subject_rejected(self, hub: IdentityHub, validator: Agent) -> None:
        with pytest.raises(NotFoundError):
            hub.attestations.create_attestation(
                validator.did,
                AttestationRequest(type=AttestationType.MEMBERSHIP, subject="did:key:zNobody"),
            )

    def test_non_positive_lifetime_rejected(self, hub: IdentityHub, worker: Agent, validator: Agent) -> None:
        with pytest.raises(ValidationError):
            attest(hub, validator, worker, expires_in_hours=0)

    def test_issuer_without_local_key(self, hub: IdentityHub, worker: Agent, validator: Agent, clock: FakeClock) -> None:
        # Same store, different DID service: the issuer's private key is not held.
        other = IdentityHub(config=hub.config, store=hub.store, clock=clock)
        with pytest.raises(AttestationError) as excinfo:
            attest(other, validator, worker)
        assert excinfo.value.code == "ISSUER_KEY_UNAVAILABLE"


# ---------------------------------------------------------------------------
# verify_attestation()
# ---------------------------------------------------------------------------


class TestVerify:
    def test_fresh_attestation_is_valid(self, hub: IdentityHub, worker: Agent, validator: Agent) -> None:
        attestation = attest(hub, validator, worker)
        result = hub.attestations.verify_attestation(attestation.id)
        assert result.valid is True
        assert result.errors == []
        assert result.warnings == []

    def test_tampered_claims_fail_signature(self, hub: IdentityHub, worker: Agent, validator: Agent) -> None:
        attestation = attest(hub, validator, worker)
        stored = hub.store.get_attestation(attestation.id)
        assert stored is not None
        stored.claims = [Claim(type="claim-0", value="forged", issuer=validator.did)]
        hub.store.update_attestation(stored)
        result = hub.attestations.verify_attestation(attestation.id)
        assert result.valid is False
        assert "Attestation proof signature is invalid" in result.errors

    def test_expired(self, hub: IdentityHub, worker: Agent, validator: Agent, clock: FakeClock) -> None:
        attestation = attest(hub, validator, worker, expires_in_hours=1)
        clock.advance(hours=2)
        result = hub.attestations.verify_attestation(attestation.id)
        assert result.errors == ["Attestation has expired"]

    def test_revoked(self, hub: IdentityHub, worker: Agent, validator: Agent) -> None:
        attestation = attest(hub, validator, worker)
        hub.attestations.revoke_attestation(attestation.id, validator.did, reason="mistake")
        result = hub.attestations.verify_attestation(attestation.id)
        assert result.valid is False
        assert "Attestation has been revoked" in result.errors

    def test_inactive_issuer_only_warns(self, hub: IdentityHub, worker: Agent, validator: Agent) -> None:
        attestation = attest(hub, validator, worker)
        hub.identities.set_status(validator.id, AgentStatus.SUSPENDED)
        result = hub.attestations.verify_attestation(attestation.id)
        assert result.valid is True
        assert result.warnings == ["Issuer is no longer active"]

    def test_deleted_issuer_warns(self, hub: IdentityHub, worker: Agent, validator: Agent) -> None:
        attestation = attest(hub, validator, worker)
        hub.identities.delete_agent(validator.id)
        result = hub.attestations.verify_attestation(attestation.id)
        assert result.valid is True
        assert "Issuer not found" in result.warnings
        assert "Issuer key could not be resolved" in result.warnings

    def test_unknown_attestation(self, hub: IdentityHub) -> None:
        result = hub.attestations.verify_attestation("urn:attest:missing")
        assert result.valid is False
        assert result.errors == ["Attestation not found"]


# ---------------------------------------------------------------------------
# build_attestation_chain()
# ---------------------------------------------------------------------------


class TestChain:
    def test_empty_chain(self, hub: IdentityHub, worker: Agent) -> None:
        chain = hub.attestations.build_attestation_chain(worker.did)
        assert chain.attestations == []
        assert chain.root_issuer == worker.did
        assert chain.chain_valid is True
        assert chain.trust_score == 0.5

    def test_follows_one_hop_from_trust_assertions(self, hub: IdentityHub, worker: Agent, validator: Agent) -> None:
        third = make_agent(hub, "third")
        direct = attest(hub, validator, worker, AttestationType.TRUST_ASSERTION)
        upstream = attest(hub, validator, third, AttestationType.IDENTITY_VERIFICATION)
        chain = hub.attestations.build_attestation_chain(worker.did)
        ids = [a.id for a in chain.attestations]
        assert ids[0] == direct.id
        assert upstream.id in ids
        assert len(ids) == len(set(ids)) == 2
        assert chain.root_issuer == validator.did

    def test_cycle_terminates(self, hub: IdentityHub, worker: Agent, validator: Agent) -> None:
        attest(hub, validator, worker, AttestationType.TRUST_ASSERTION)
        attest(hub, worker, validator, AttestationType.TRUST_ASSERTION)
        chain = hub.attestations.build_attestation_chain(worker.did)
        ids = [a.id for a in chain.attestations]
        assert len(ids) == len(set(ids))
        assert chain.chain_valid is True

    def test_excludes_revoked_and_expired(self, hub: IdentityHub, worker: Agent, validator: Agent, clock: FakeClock) -> None:
        revoked = attest(hub, validator, worker, AttestationType.MEMBERSHIP)
        attest(hub, validator, worker, AttestationType.MEMBERSHIP, expires_in_hours=1)
        hub.attestations.revoke_attestation(revoked.id, validator.did)
        clock.advance(hours=2)
        chain = hub.attestations.build_attestation_chain(worker.did)
        assert chain.attestations == []

    def test_type_filter(self, hub: IdentityHub, worker: Agent, validator: Agent) -> None:
        attest(hub, validator, worker, AttestationType.MEMBERSHIP)
        identity = attest(hub, validator, worker, AttestationType.IDENTITY_VERIFICATION)
        chain = hub.attestations.build_attestation_chain(
            worker.did, attestation_type=AttestationType.IDENTITY_VERIFICATION
        )
        assert [a.id for a in chain.attestations] == [identity.id]

    def test_chain_score(self) -> None:
        single = Attestation(type=AttestationType.TRUST_ASSERTION, issuer="did:key:zA", subject="did:key:zB")
        single.claims = [Claim(type="t", value=1, issuer="did:key:zA")]
        assert chain_trust_score([single]) == pytest.approx(0.85)
        many_claims = Attestation(type=AttestationType.TRUST_ASSERTION, issuer="did:key:zA", subject="did:key:zB")
        many_claims.claims = [Claim(type="t", value=i, issuer="did:key:zA") for i in range(10)]
        assert chain_trust_score([many_claims]) == pytest.approx(1.0)


# ---------------------------------------------------------------------------
# Queries and stats
# ---------------------------------------------------------------------------


class TestQueries:
    def test_list_by_issuer(self, hub: IdentityHub, worker: Agent, validator: Agent) -> None:
        attest(hub, validator, worker)
        attest(hub, worker, validator)
        items, total = hub.attestations.list_attestations(AttestationFilter(issuer=validator.did))
        assert total == 1
        assert items[0].issuer == validator.did

    def test_get_unknown(self, hub: IdentityHub) -> None:
        with pytest.raises(NotFoundError):
            hub.attestations.get_attestation("urn:attest:missing")

    def test_stats(self, hub: IdentityHub, worker: Agent, validator: Agent) -> None:
        first = attest(hub, validator, worker, AttestationType.TRUST_ASSERTION)
        attest(hub, validator, worker, AttestationType.MEMBERSHIP)
        attest(hub, worker, validator, AttestationType.MEMBERSHIP)
        hub.attestations.revoke_attestation(first.id, validator.did)

        issuer_stats = hub.attestations.get_attestation_stats(validator.did)
        assert issuer_stats.issued == 2
        assert issuer_stats.received == 1
        assert issuer_stats.revoked == 1

        subject_stats = hub.attestations.get_attestation_stats(worker.did)
        assert subject_stats.received == 2
        assert subject_stats.verified == 1
        assert subject_stats.by_type == {"trust_assertion": 1, "membership": 1}


# ---------------------------------------------------------------------------
# revoke_attestation()
# ---------------------------------------------------------------------------


class TestRevoke:
    def test_only_issuer_may_revoke(self, hub: IdentityHub, worker: Agent, validator: Agent) -> None:
        attestation = attest(hub, validator, worker)
        with pytest.raises(AuthorizationError):
            hub.attestations.revoke_attestation(attestation.id, worker.did)

    def test_second_revoke_rejected(self, hub: IdentityHub, worker: Agent, validator: Agent) -> None:
        attestation = attest(hub, validator, worker)
        revoked = hub.attestations.revoke_attestation(attestation.id, validator.did, reason="first")
        assert revoked.revocation is not None
        assert revoked.revocation.reason == "first"
        with pytest.raises(AttestationError) as excinfo:
            hub.attestations.revoke_attestation(attestation.id, validator.did)
        assert excinfo.value.code == "ALREADY_REVOKED"
        assert hub.attestations.get_attestation(attestation.id).revocation.reason == "first"  # type: ignore[union-attr]


# ---------------------------------------------------------------------------
# create_behavior_attestation()
# ---------------------------------------------------------------------------


class TestBehaviorAttestation:
    def test_fields_and_expiry(self, hub: IdentityHub, worker: Agent, clock: FakeClock) -> None:
        evidence = BehaviorEvidence(
            type="latency", description="p99 within budget", timestamp=clock.now, data={"p99_ms": 120}
        )
        attestation = hub.attestations.create_behavior_attestation(
            worker.did, BehaviorType.COOPERATIVE, 0.8, [evidence], expires_in_hours=2
        )
        assert attestation.subject == worker.did
        assert attestation.attested_at == clock.now
        assert attestation.expires_at == clock.now + datetime.timedelta(hours=2)
        payload = attestation.to_dict()
        assert payload["behavior"] == "cooperative"
        assert payload["evidence"] == [evidence.to_dict()]

    def test_not_persisted(self, hub: IdentityHub, worker: Agent) -> None:
        hub.attestations.create_behavior_attestation(worker.did, BehaviorType.NORMAL, 0.5)
        _, total = hub.attestations.list_attestations(AttestationFilter(subject=worker.did))
        assert total == 0

    @pytest.mark.parametrize("confidence", [-0.1, 1.5])
    def test_confidence_bounds(self, hub: IdentityHub, worker: Agent, confidence: float) -> None:
        with pytest.raises(ValidationError):
            hub.attestations.create_behavior_attestation(
                worker.did, BehaviorType.SUSPICIOUS, confidence
            )
