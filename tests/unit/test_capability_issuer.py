"""Tests for CapabilityIssuer: issuance, verification, revocation, delegation."""
from __future__ import annotations

import datetime

import pytest

from conftest import FakeClock, make_agent

from agent_identity_hub.capabilities import (
    CapabilityRequest,
    CapabilityToken,
    CapabilityVerificationRequest,
    DelegationRestrictions,
    resource_matches,
)
from agent_identity_hub.errors import AuthorizationError, NotFoundError, ValidationError
from agent_identity_hub.hub import IdentityHub
from agent_identity_hub.models import (
    ActivityType,
    Agent,
    AgentStatus,
    CapabilityStatus,
    Condition,
    ConditionOperator,
    ConditionType,
)


def grant(
    hub: IdentityHub,
    issuer: Agent,
    subject: Agent,
    actions: list[str] | None = None,
    resources: list[str] | None = None,
    **kwargs: object,
) -> CapabilityToken:
    request = CapabilityRequest(
        subject=subject.did,
        actions=actions or ["read"],
        resources=resources or ["agents/*"],
        **kwargs,  # type: ignore[arg-type]
    )
    return hub.capabilities.issue_capability(issuer.did, request)


def verify(hub: IdentityHub, token: str, action: str, resource: str, context: dict[str, object] | None = None):
    return hub.capabilities.verify_capability(
        CapabilityVerificationRequest(token=token, action=action, resource=resource, context=context)
    )


# ---------------------------------------------------------------------------
# resource_matches()
# ---------------------------------------------------------------------------


class TestResourceMatches:
    @pytest.mark.parametrize(
        ("granted", "requested", "expected"),
        [
            ("*", "anything/at/all", True),
            ("agents/123", "agents/123", True),
            ("agents/*", "agents/123", True),
            ("agents/", "agents/123", True),
            ("agents/*", "attestations/1", False),
            ("data/42", "data/421", True),
            ("data/42", "data/4", False),
        ],
    )
    def test_matching(self, granted: str, requested: str, expected: bool) -> None:
        assert resource_matches(granted, requested) is expected


# ---------------------------------------------------------------------------
# issue_capability()
# ---------------------------------------------------------------------------


class TestIssue:
    def test_issue_returns_token_and_record(self, hub: IdentityHub, worker: Agent, validator: Agent, clock: FakeClock) -> None:
        issued = grant(hub, validator, worker, expires_in_hours=2)
        assert issued.token.count(".") == 2
        assert issued.expires_in == 7200
        assert issued.capability.id.startswith("urn:cap:")
        assert issued.capability.expiration == clock.now + datetime.timedelta(hours=2)
        assert hub.store.get_capability(issued.capability.id) is not None

    def test_default_lifetime_from_config(self, hub: IdentityHub, worker: Agent, validator: Agent) -> None:
        issued = grant(hub, validator, worker)
        assert issued.expires_in == 24 * 3600

    def test_grant_logged_on_subject(self, hub: IdentityHub, worker: Agent, validator: Agent) -> None:
        issued = grant(hub, validator, worker)
        activity = hub.identities.get_agent_activity(worker.id)[0]
        assert activity.activity_type is ActivityType.CAPABILITY_GRANTED
        assert activity.metadata["capabilityId"] == issued.capability.id
        assert activity.related_agent_ids == [validator.id]

    def test_unknown_subject(self, hub: IdentityHub, validator: Agent) -> None:
        with pytest.raises(NotFoundError):
            hub.capabilities.issue_capability(
                validator.did, CapabilityRequest(subject="did:key:zUnknown", actions=["read"], resources=["*"])
            )

    def test_inactive_issuer_rejected(self, hub: IdentityHub, worker: Agent, validator: Agent) -> None:
        hub.identities.set_status(validator.id, AgentStatus.SUSPENDED)
        with pytest.raises(AuthorizationError):
            grant(hub, validator, worker)

    @pytest.mark.parametrize("hours", [0, -1, 9000])
    def test_lifetime_bounds(self, hub: IdentityHub, worker: Agent, validator: Agent, hours: float) -> None:
        with pytest.raises(ValidationError):
            grant(hub, validator, worker, expires_in_hours=hours)

    def test_empty_actions_rejected(self, hub: IdentityHub, worker: Agent, validator: Agent) -> None:
        with pytest.raises(ValidationError):
            hub.capabilities.issue_capability(
                validator.did, CapabilityRequest(subject=worker.did, actions=[], resources=["*"])
            )


# ---------------------------------------------------------------------------
# verify_capability()
# ---------------------------------------------------------------------------


class TestVerify:
    def test_valid_request(self, hub: IdentityHub, worker: Agent, validator: Agent) -> None:
        issued = grant(hub, validator, worker, actions=["read", "write"])
        result = verify(hub, issued.token, "read", "agents/7")
        assert result.valid is True
        assert result.subject == worker.did
        assert result.allowed_actions == ["read", "write"]
        assert result.errors is None

    @pytest.mark.parametrize("token", ["not-a-token", "\u00e9.\u00e9.\u00e9", "a.b.\u00e9"])
    def test_garbage_token(self, hub: IdentityHub, token: str) -> None:
        result = verify(hub, token, "read", "agents/1")
        assert result.valid is False
        assert result.errors == ["Invalid token"]

    def test_token_signed_with_other_secret(self, hub: IdentityHub, worker: Agent, validator: Agent, clock: FakeClock) -> None:
        issued = grant(hub, validator, worker)
        other = IdentityHub(config=hub.config.with_updates(token_secret="other"), store=hub.store, clock=clock)
        assert verify(other, issued.token, "read", "agents/1").errors == ["Invalid token"]

    def test_unknown_capability(self, hub: IdentityHub, worker: Agent, validator: Agent, clock: FakeClock) -> None:
        issued = grant(hub, validator, worker)
        fresh = IdentityHub(config=hub.config, clock=clock)
        assert verify(fresh, issued.token, "read", "agents/1").errors == ["Capability not found"]

    def test_action_not_permitted(self, hub: IdentityHub, worker: Agent, validator: Agent) -> None:
        issued = grant(hub, validator, worker)
        assert verify(hub, issued.token, "write", "agents/1").errors == ["Action 'write' not permitted"]

    def test_resource_not_accessible(self, hub: IdentityHub, worker: Agent, validator: Agent) -> None:
        issued = grant(hub, validator, worker)
        assert verify(hub, issued.token, "read", "attestations/1").errors == [
            "Resource 'attestations/1' not accessible"
        ]

    def test_action_checked_before_resource(self, hub: IdentityHub, worker: Agent, validator: Agent) -> None:
        issued = grant(hub, validator, worker)
        assert verify(hub, issued.token, "write", "attestations/1").errors == ["Action 'write' not permitted"]

    def test_expired(self, hub: IdentityHub, worker: Agent, validator: Agent, clock: FakeClock) -> None:
        issued = grant(hub, validator, worker, expires_in_hours=1)
        clock.advance(hours=1)
        assert verify(hub, issued.token, "read", "agents/1").errors == ["Capability has expired"]

    def test_explicit_time_before_not_before(self, hub: IdentityHub, worker: Agent, validator: Agent, clock: FakeClock) -> None:
        issued = grant(hub, validator, worker)
        result = hub.capabilities.verify_capability(
            CapabilityVerificationRequest(token=issued.token, action="read", resource="agents/1"),
            now=clock.now - datetime.timedelta(minutes=5),
        )
        assert result.errors == ["Capability is not yet valid"]

    def test_conditions_all_reported(self, hub: IdentityHub, worker: Agent, validator: Agent) -> None:
        conditions = [
            Condition(ConditionType.CONTEXT, "env", ConditionOperator.EQUALS, "prod"),
            Condition(ConditionType.CONTEXT, "priority", ConditionOperator.GREATER_THAN, 5),
        ]
        issued = grant(hub, validator, worker, conditions=conditions)
        result = verify(hub, issued.token, "read", "agents/1", {"env": "dev", "priority": 1})
        assert result.valid is False
        assert result.errors == [
            "Condition failed: env must equal prod",
            "Condition failed: priority must be greater than 5",
        ]
        assert verify(hub, issued.token, "read", "agents/1", {"env": "prod", "priority": 9}).valid

    def test_conditions_fail_without_context(self, hub: IdentityHub, worker: Agent, validator: Agent) -> None:
        conditions = [Condition(ConditionType.CONTEXT, "env", ConditionOperator.EQUALS, "prod")]
        issued = grant(hub, validator, worker, conditions=conditions)
        result = verify(hub, issued.token, "read", "agents/1")
        assert result.errors == ["Condition failed: env is required but missing from context"]

    def test_result_to_dict(self, hub: IdentityHub, worker: Agent, validator: Agent) -> None:
        issued = grant(hub, validator, worker)
        payload = verify(hub, issued.token, "read", "agents/1").to_dict()
        assert payload["valid"] is True
        assert payload["subject"] == worker.did
        assert "errors" not in payload


# ---------------------------------------------------------------------------
# revoke_capability()
# ---------------------------------------------------------------------------


class TestRevoke:
    def test_revoked_capability_fails_verification(self, hub: IdentityHub, worker: Agent, validator: Agent) -> None:
        issued = grant(hub, validator, worker)
        assert verify(hub, issued.token, "read", "agents/1").valid
        hub.capabilities.revoke_capability(issued.capability.id, validator.did, reason="rotated")
        assert verify(hub, issued.token, "read", "agents/1").errors == ["Capability has been revoked"]

    def test_revoke_is_idempotent(self, hub: IdentityHub, worker: Agent, validator: Agent, clock: FakeClock) -> None:
        issued = grant(hub, validator, worker)
        first = hub.capabilities.revoke_capability(issued.capability.id, validator.did, reason="one")
        clock.advance(minutes=10)
        second = hub.capabilities.revoke_capability(issued.capability.id, validator.did, reason="two")
        assert second.revoked_at == first.revoked_at
        assert second.revocation_reason == "one"
        revocations = [
            a for a in hub.identities.get_agent_activity(worker.id)
            if a.activity_type is ActivityType.CAPABILITY_REVOKED
        ]
        assert len(revocations) == 1

    def test_stranger_cannot_revoke(self, hub: IdentityHub, worker: Agent, validator: Agent) -> None:
        issued = grant(hub, validator, worker)
        stranger = make_agent(hub, "stranger")
        with pytest.raises(AuthorizationError):
            hub.capabilities.revoke_capability(issued.capability.id, stranger.did)

    def test_admin_holder_can_revoke(self, hub: IdentityHub, worker: Agent, validator: Agent) -> None:
        issued = grant(hub, validator, worker)
        admin = make_agent(hub, "admin-agent")
        grant(hub, validator, admin, actions=["admin"], resources=["capabilities/*"])
        revoked = hub.capabilities.revoke_capability(issued.capability.id, admin.did)
        assert revoked.status is CapabilityStatus.REVOKED
        assert revoked.revoked_by == admin.did

    def test_unknown_capability(self, hub: IdentityHub, validator: Agent) -> None:
        with pytest.raises(NotFoundError):
            hub.capabilities.revoke_capability("urn:cap:missing", validator.did)


class TestSubjectDeletion:
    def test_deleted_subject_token_stops_verifying(
        self, hub: IdentityHub, worker: Agent, validator: Agent
    ) -> None:
        issued = grant(hub, validator, worker, resources=["data/*"])
        assert verify(hub, issued.token, "read", "data/1").valid

        hub.identities.delete_agent(worker.id)

        assert hub.store.get_capability(issued.capability.id) is None
        result = verify(hub, issued.token, "read", "data/1")
        assert result.valid is False
        assert result.errors == ["Capability not found"]

    def test_other_subjects_unaffected(self, hub: IdentityHub, worker: Agent, validator: Agent) -> None:
        other = make_agent(hub, "other")
        kept = grant(hub, validator, other, resources=["data/*"])
        grant(hub, validator, worker, resources=["data/*"])

        hub.identities.delete_agent(worker.id)

        assert verify(hub, kept.token, "read", "data/1").valid


# ---------------------------------------------------------------------------
# delegate_capability()
# ---------------------------------------------------------------------------


class TestDelegate:
    def test_narrowed_delegation(self, hub: IdentityHub, worker: Agent, validator: Agent) -> None:
        issued = grant(hub, validator, worker, actions=["read", "write", "delegate"], resources=["agents/*"])
        helper = make_agent(hub, "helper")
        delegation = hub.capabilities.delegate_capability(
            issued.capability.id,
            worker.did,
            helper.did,
            restrictions=DelegationRestrictions(actions=["read"], resources=["agents/7"]),
        )
        assert delegation.actions == ["read"]
        assert delegation.resources == ["agents/7"]
        assert delegation.expires_at == issued.capability.expiration
        assert hub.capabilities.list_delegations(issued.capability.id) == [delegation]

    def test_widening_actions_rejected(self, hub: IdentityHub, worker: Agent, validator: Agent) -> None:
        issued = grant(hub, validator, worker, actions=["read", "delegate"])
        with pytest.raises(ValidationError):
            hub.capabilities.delegate_capability(
                issued.capability.id, worker.did, validator.did,
                restrictions=DelegationRestrictions(actions=["write"]),
            )

    def test_widening_resources_rejected(self, hub: IdentityHub, worker: Agent, validator: Agent) -> None:
        issued = grant(hub, validator, worker, actions=["read", "delegate"], resources=["agents/*"])
        with pytest.raises(ValidationError):
            hub.capabilities.delegate_capability(
                issued.capability.id, worker.did, validator.did,
                restrictions=DelegationRestrictions(resources=["*"]),
            )

    def test_expiry_capped_at_parent(self, hub: IdentityHub, worker: Agent, validator: Agent) -> None:
        issued = grant(hub, validator, worker, actions=["delegate"], expires_in_hours=1)
        delegation = hub.capabilities.delegate_capability(
            issued.capability.id, worker.did, validator.did, expires_in_hours=48
        )
        assert delegation.expires_at == issued.capability.expiration

    def test_requires_delegate_action(self, hub: IdentityHub, worker: Agent, validator: Agent) -> None:
        issued = grant(hub, validator, worker, actions=["read"])
        with pytest.raises(AuthorizationError):
            hub.capabilities.delegate_capability(issued.capability.id, worker.did, validator.did)

    def test_only_subject_may_delegate(self, hub: IdentityHub, worker: Agent, validator: Agent) -> None:
        issued = grant(hub, validator, worker, actions=["delegate"])
        with pytest.raises(AuthorizationError):
            hub.capabilities.delegate_capability(issued.capability.id, validator.did, worker.did)

    def test_revoked_parent_cannot_delegate(self, hub: IdentityHub, worker: Agent, validator: Agent) -> None:
        issued = grant(hub, validator, worker, actions=["delegate"])
        hub.capabilities.revoke_capability(issued.capability.id, validator.did)
        with pytest.raises(AuthorizationError):
            hub.capabilities.delegate_capability(issued.capability.id, worker.did, validator.did)


# ---------------------------------------------------------------------------
# list_capabilities()
# ---------------------------------------------------------------------------


class TestList:
    def test_effective_status_filter(self, hub: IdentityHub, worker: Agent, validator: Agent, clock: FakeClock) -> None:
        short = grant(hub, validator, worker, expires_in_hours=1)
        long = grant(hub, validator, worker, expires_in_hours=48)
        clock.advance(hours=2)
        expired = hub.capabilities.list_capabilities(subject=worker.did, status=CapabilityStatus.EXPIRED)
        active = hub.capabilities.list_capabilities(subject=worker.did, status=CapabilityStatus.ACTIVE)
        assert [c.id for c in expired] == [short.capability.id]
        assert [c.id for c in active] == [long.capability.id]

    def test_get_unknown_capability(self, hub: IdentityHub) -> None:
        with pytest.raises(NotFoundError):
            hub.capabilities.get_capability("urn:cap:nope")
