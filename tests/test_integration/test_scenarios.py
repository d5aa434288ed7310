"""End-to-end scenarios across identities, capabilities, attestations and trust."""
from __future__ import annotations

import pytest

from conftest import FakeClock, make_agent

from agent_identity_hub.attestations import AttestationRequest, ClaimInput
from agent_identity_hub.capabilities import (
    CapabilityRequest,
    CapabilityVerificationRequest,
    DelegationRestrictions,
)
from agent_identity_hub.hub import IdentityHub
from agent_identity_hub.models import AgentType, AttestationType, CapabilityStatus


def check(hub: IdentityHub, token: str, action: str, resource: str):  # type: ignore[no-untyped-def]
    return hub.capabilities.verify_capability(
        CapabilityVerificationRequest(token=token, action=action, resource=resource)
    )


class TestCapabilityLifecycle:
    def test_grant_use_and_revoke(self, hub: IdentityHub) -> None:
        agent_a = make_agent(hub, "agent-a")
        agent_b = make_agent(hub, "agent-b", AgentType.ORCHESTRATOR)

        issued = hub.capabilities.issue_capability(
            agent_b.did,
            CapabilityRequest(subject=agent_a.did, actions=["read"], resources=["data/*"], expires_in_hours=1),
        )
        assert issued.expires_in == 3600

        granted = check(hub, issued.token, "read", "data/42")
        assert granted.valid is True
        assert granted.subject == agent_a.did
        assert granted.allowed_actions == ["read"]

        denied = check(hub, issued.token, "write", "data/42")
        assert denied.valid is False
        assert denied.errors == ["Action 'write' not permitted"]

        hub.capabilities.revoke_capability(issued.capability.id, agent_b.did, reason="rotation")
        revoked = check(hub, issued.token, "read", "data/42")
        assert revoked.valid is False
        assert revoked.errors == ["Capability has been revoked"]
        assert hub.capabilities.get_capability(issued.capability.id).status is CapabilityStatus.REVOKED

    def test_expiry_after_an_hour(self, hub: IdentityHub, clock: FakeClock) -> None:
        agent_a = make_agent(hub, "agent-a")
        agent_b = make_agent(hub, "agent-b")
        issued = hub.capabilities.issue_capability(
            agent_b.did,
            CapabilityRequest(subject=agent_a.did, actions=["read"], resources=["data/*"], expires_in_hours=1),
        )
        clock.advance(minutes=59)
        assert check(hub, issued.token, "read", "data/1").valid is True
        clock.advance(minutes=2)
        assert check(hub, issued.token, "read", "data/1").errors == ["Capability has expired"]

    def test_delegated_token_is_narrower(self, hub: IdentityHub) -> None:
        owner = make_agent(hub, "owner")
        holder = make_agent(hub, "holder")
        helper = make_agent(hub, "helper")
        parent = hub.capabilities.issue_capability(
            owner.did,
            CapabilityRequest(
                subject=holder.did, actions=["read", "write", "delegate"], resources=["data/*"]
            ),
        )
        delegation = hub.capabilities.delegate_capability(
            parent.capability.id,
            holder.did,
            helper.did,
            DelegationRestrictions(actions=["read"], resources=["data/public/*"]),
        )
        assert delegation.actions == ["read"]
        assert delegation.expires_at == parent.capability.expiration
        # The parent grant is untouched by delegation.
        assert check(hub, parent.token, "write", "data/7").valid is True
        assert hub.capabilities.get_capability(parent.capability.id).actions == ["read", "write", "delegate"]


class TestTrustFromAttestations:
    def test_vouched_agent_outscores_unvouched(self, hub: IdentityHub) -> None:
        agent_c = make_agent(hub, "agent-c", AgentType.SPECIALIST)
        agent_d = make_agent(hub, "agent-d", AgentType.SPECIALIST)
        for i in range(3):
            voucher = make_agent(hub, f"voucher-{i}", AgentType.VALIDATOR)
            hub.attestations.create_attestation(
                voucher.did,
                AttestationRequest(
                    type=AttestationType.TRUST_ASSERTION,
                    subject=agent_c.did,
                    claims=[ClaimInput(type="reliability", value="high")],
                ),
            )

        score_c = hub.trust.calculate_trust_score(agent_c.id)
        score_d = hub.trust.calculate_trust_score(agent_d.id)
        assert score_c.attestations == 3
        assert score_c.final_score > score_d.final_score
        assert score_c.final_score == pytest.approx(0.79)
        assert score_d.final_score == pytest.approx(0.6)
        assert score_c.level > score_d.level
