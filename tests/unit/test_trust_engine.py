"""Tests for TrustEngine: persistence, sweeps, history and trend."""
from __future__ import annotations

import pytest

from conftest import FakeClock, make_agent

from agent_identity_hub.attestations import AttestationRequest, ClaimInput
from agent_identity_hub.errors import NotFoundError
from agent_identity_hub.hub import IdentityHub
from agent_identity_hub.models import Agent, AgentStatus, AttestationType, RelationshipType
from agent_identity_hub.trust import TrustLevel


class TestCalculate:
    def test_score_persisted_on_agent_and_history(self, hub: IdentityHub, worker: Agent) -> None:
        calculation = hub.trust.calculate_trust_score(worker.id)
        assert hub.identities.get_agent(worker.id).trust_score == calculation.final_score
        history = hub.trust.get_trust_history(worker.id)
        assert len(history) == 1
        assert history[0].score == calculation.final_score
        assert history[0].reason == calculation.reason

    def test_fresh_agent_gets_recency_boost(self, hub: IdentityHub, worker: Agent) -> None:
        # The identity_created activity is brand new.
        calculation = hub.trust.calculate_trust_score(worker.id)
        assert calculation.recency_weight == 1.0
        assert calculation.final_score == pytest.approx(0.6)
        assert calculation.level is TrustLevel.STANDARD

    def test_idle_agent_decays(self, hub: IdentityHub, worker: Agent, clock: FakeClock) -> None:
        clock.advance(days=30)
        calculation = hub.trust.calculate_trust_score(worker.id)
        assert calculation.recency_weight == 0.0
        assert calculation.final_score < 0.6

    def test_accepts_did(self, hub: IdentityHub, worker: Agent) -> None:
        calculation = hub.trust.calculate_trust_score(worker.did)
        assert calculation.agent_id == worker.id

    def test_unknown_agent(self, hub: IdentityHub) -> None:
        with pytest.raises(NotFoundError):
            hub.trust.calculate_trust_score("missing")

    def test_relationships_feed_score(self, hub: IdentityHub, worker: Agent, validator: Agent) -> None:
        baseline = hub.trust.calculate_trust_score(worker.id).final_score
        hub.identities.create_relationship(
            validator.id, worker.id, RelationshipType.VERIFIES, trust_level=1.0
        )
        assert hub.trust.calculate_trust_score(worker.id).final_score > baseline

    def test_snapshot_only_counts_valid_attestations(self, hub: IdentityHub, worker: Agent, validator: Agent, clock: FakeClock) -> None:
        hub.attestations.create_attestation(
            validator.did,
            AttestationRequest(
                type=AttestationType.TRUST_ASSERTION,
                subject=worker.did,
                claims=[ClaimInput(type="reliability", value="high")],
                expires_in_hours=1,
            ),
        )
        assert hub.trust.snapshot(worker.id).attestation_types == [AttestationType.TRUST_ASSERTION]
        clock.advance(hours=2)
        assert hub.trust.snapshot(worker.id).attestation_types == []


class TestRecalculateAll:
    def test_scores_active_agents_only(self, hub: IdentityHub, worker: Agent, validator: Agent) -> None:
        dormant = make_agent(hub, "dormant")
        hub.identities.set_status(dormant.id, AgentStatus.INACTIVE)
        scores = hub.trust.recalculate_all()
        assert set(scores) == {worker.id, validator.id}


class TestHistoryAndTrend:
    def test_history_window(self, hub: IdentityHub, worker: Agent, clock: FakeClock) -> None:
        hub.trust.calculate_trust_score(worker.id)
        clock.advance(days=40)
        hub.trust.calculate_trust_score(worker.id)
        assert len(hub.trust.get_trust_history(worker.id, days=30)) == 1
        assert len(hub.trust.get_trust_history(worker.id, days=60)) == 2

    def test_stable_with_fewer_than_two_records(self, hub: IdentityHub, worker: Agent) -> None:
        assert hub.trust.get_trust_trend(worker.id) == "stable"
        hub.trust.calculate_trust_score(worker.id)
        assert hub.trust.get_trust_trend(worker.id) == "stable"

    def test_declining_when_idle(self, hub: IdentityHub, worker: Agent, clock: FakeClock) -> None:
        hub.trust.calculate_trust_score(worker.id)
        clock.advance(days=10)
        hub.trust.calculate_trust_score(worker.id)
        assert hub.trust.get_trust_trend(worker.id) == "declining"

    def test_improving_with_attestations(self, hub: IdentityHub, worker: Agent, validator: Agent) -> None:
        hub.trust.calculate_trust_score(worker.id)
        for _ in range(3):
            hub.attestations.create_attestation(
                validator.did,
                AttestationRequest(type=AttestationType.TRUST_ASSERTION, subject=worker.did),
            )
        hub.trust.calculate_trust_score(worker.id)
        assert hub.trust.get_trust_trend(worker.id) == "improving"
