"""CapabilityIssuer: issue, verify, revoke and delegate capability tokens.

A capability is persisted in the identity store and mirrored into the
issuer's active-capability cache; the bearer token carries the grant
signed with the hub's HMAC secret. Verification re-reads the stored
record (cache first, then store) so that revocation and expiry take
effect immediately even for tokens already handed out.

Verification checks run in a fixed order and stop at the first failing
stage, except for conditions, whose failures are reported together:

1. token signature and structure
2. record exists and is not revoked
3. validity window ``[not_before, expiration)``
4. token subject matches the stored subject
5. requested action granted
6. requested resource matched by a granted pattern
7. every condition holds for the supplied context
"""
from __future__ import annotations

import datetime
import logging
from dataclasses import dataclass, field

from agent_identity_hub.cache import ServiceCache
from agent_identity_hub.capabilities.conditions import evaluate_conditions
from agent_identity_hub.capabilities.token import (
    CapabilityClaims,
    CapabilityTokenCodec,
    TokenError,
)
from agent_identity_hub.clock import Clock, utc_now
from agent_identity_hub.config import HubConfig
from agent_identity_hub.errors import AuthorizationError, NotFoundError, ValidationError
from agent_identity_hub.identity.manager import IdentityManager
from agent_identity_hub.models import (
    ActivityType,
    Agent,
    AgentStatus,
    Capability,
    CapabilityDelegation,
    CapabilityStatus,
    Condition,
)
from agent_identity_hub.store import IdentityStore

logger = logging.getLogger(__name__)

DEFAULT_ACTIONS: frozenset[str] = frozenset(
    {"read", "write", "execute", "admin", "delegate", "verify", "attest"}
)
DEFAULT_RESOURCE_PREFIXES: frozenset[str] = frozenset(
    {"agents", "identities", "capabilities", "attestations", "messages", "system"}
)


# ---------------------------------------------------------------------------
# Request / result types
# ---------------------------------------------------------------------------


@dataclass
class CapabilityRequest:
    """Parameters for :meth:`CapabilityIssuer.issue_capability`.

    ``expires_in_hours`` defaults to the configured capability lifetime.
    """

    subject: str
    actions: list[str]
    resources: list[str]
    conditions: list[Condition] = field(default_factory=list)
    expires_in_hours: float | None = None


@dataclass
class CapabilityToken:
    """A freshly issued token. ``expires_in`` is in seconds."""

    token: str
    capability: Capability
    expires_in: int

    def to_dict(self) -> dict[str, object]:
        return {
            "token": self.token,
            "capability": self.capability.to_dict(),
            "expiresIn": self.expires_in,
        }


@dataclass
class CapabilityVerificationRequest:
    token: str
    action: str
    resource: str
    context: dict[str, object] | None = None


@dataclass
class CapabilityVerificationResult:
    valid: bool
    capability: Capability | None = None
    subject: str | None = None
    allowed_actions: list[str] | None = None
    errors: list[str] | None = None

    @classmethod
    def failure(cls, *errors: str) -> "CapabilityVerificationResult":
        return cls(valid=False, errors=list(errors))

    def to_dict(self) -> dict[str, object]:
        payload: dict[str, object] = {"valid": self.valid}
        if self.capability is not None:
            payload["capability"] = self.capability.to_dict()
        if self.subject is not None:
            payload["subject"] = self.subject
        if self.allowed_actions is not None:
            payload["allowedActions"] = list(self.allowed_actions)
        if self.errors:
            payload["errors"] = list(self.errors)
        return payload


@dataclass
class DelegationRestrictions:
    """Narrowing applied to a delegated capability. ``None`` keeps the parent's list."""

    actions: list[str] | None = None
    resources: list[str] | None = None


# ---------------------------------------------------------------------------
# Resource matching
# ---------------------------------------------------------------------------


def resource_matches(granted: str, requested: str) -> bool:
    """Return ``True`` if the granted resource pattern covers *requested*.

    A pattern matches on equality or as a prefix. A trailing ``*`` is
    stripped before the prefix test, so ``agents/*`` covers ``agents/123``
    and ``*`` covers everything.
    """
    if granted == "*" or granted == requested:
        return True
    return requested.startswith(granted.rstrip("*"))


# ---------------------------------------------------------------------------
# Issuer
# ---------------------------------------------------------------------------


class CapabilityIssuer:
    """Issues and verifies capability tokens.

    Parameters
    ----------
    store:
        The identity store.
    identities:
        Identity manager used for agent lookups and activity logging.
    config:
        Hub configuration (token secret, capability lifetimes).
    cache:
        Active-capability cache. A fresh one is created when omitted.
    clock:
        Source of the current UTC time.
    """

    def __init__(
        self,
        store: IdentityStore,
        identities: IdentityManager,
        config: HubConfig | None = None,
        cache: ServiceCache[Capability] | None = None,
        clock: Clock = utc_now,
    ) -> None:
        self._store = store
        self._identities = identities
        self._config = config or HubConfig()
        self._codec = CapabilityTokenCodec(self._config.token_secret)
        self._cache: ServiceCache[Capability] = cache or ServiceCache("active-capabilities")
        self._clock = clock
        identities.add_deletion_listener(self._evict_subject)

    @property
    def codec(self) -> CapabilityTokenCodec:
        return self._codec

    # ------------------------------------------------------------------
    # Issuance
    # ------------------------------------------------------------------

    def issue_capability(self, issuer_did: str, request: CapabilityRequest) -> CapabilityToken:
        """Grant *request* from *issuer_did* and return a signed token.

        Raises
        ------
        NotFoundError
            If the issuer or subject agent does not exist.
        AuthorizationError
            If the issuer or subject is not active.
        ValidationError
            If the lifetime is outside ``(0, max_capability_hours]`` or the
            grant names no action or no resource.
        """
        issuer = self._require_active(issuer_did, "Issuer")
        subject = self._require_active(request.subject, "Subject")

        if not request.actions:
            raise ValidationError("A capability must grant at least one action.")
        if not request.resources:
            raise ValidationError("A capability must name at least one resource.")
        hours = (
            request.expires_in_hours
            if request.expires_in_hours is not None
            else self._config.default_capability_hours
        )
        if not 0 < hours <= self._config.max_capability_hours:
            raise ValidationError(
                f"expires_in_hours must be within (0, {self._config.max_capability_hours:g}], got {hours}"
            )
        self._warn_custom_vocabulary(request.actions, request.resources)

        now = self._clock()
        capability = Capability(
            subject=request.subject,
            issuer=issuer_did,
            actions=list(request.actions),
            resources=list(request.resources),
            conditions=list(request.conditions),
            not_before=now,
            expiration=now + datetime.timedelta(hours=hours),
            issued_at=now,
            status=CapabilityStatus.ACTIVE,
        )
        claims = CapabilityClaims(
            jti=capability.id,
            sub=capability.subject,
            iss=capability.issuer,
            iat=int(capability.issued_at.timestamp()),
            nbf=int(capability.not_before.timestamp()),
            exp=int(capability.expiration.timestamp()),
            actions=list(capability.actions),
            resources=list(capability.resources),
            conditions=[c.to_dict() for c in capability.conditions],
        )
        token = self._codec.encode(claims)

        with self._store.transaction():
            self._store.add_capability(capability)
            self._identities.log_activity(
                subject.id,
                ActivityType.CAPABILITY_GRANTED,
                f"Capability granted by {issuer.name}",
                metadata={
                    "capabilityId": capability.id,
                    "issuer": issuer_did,
                    "actions": list(capability.actions),
                    "resources": list(capability.resources),
                },
                related_agent_ids=[issuer.id],
            )
        self._cache.set(capability.id, capability)

        logger.info(
            "Capability issued: %s (issuer=%s, subject=%s)",
            capability.id,
            issuer_did,
            request.subject,
        )
        return CapabilityToken(token=token, capability=capability, expires_in=int(hours * 3600))

    # ------------------------------------------------------------------
    # Verification
    # ------------------------------------------------------------------

    def verify_capability(
        self,
        request: CapabilityVerificationRequest,
        now: datetime.datetime | None = None,
    ) -> CapabilityVerificationResult:
        """Check whether *request.token* permits the requested action.

        Never raises for caller errors; every rejection is reported in
        :attr:`CapabilityVerificationResult.errors`.
        """
        try:
            return self._verify(request, now or self._clock())
        except Exception:
            logger.exception("Capability verification failed unexpectedly")
            return CapabilityVerificationResult.failure("Verification failed")

    def _verify(
        self, request: CapabilityVerificationRequest, now: datetime.datetime
    ) -> CapabilityVerificationResult:
        try:
            claims = self._codec.decode(request.token)
        except TokenError as exc:
            logger.debug("Rejected capability token: %s", exc)
            return CapabilityVerificationResult.failure("Invalid token")

        capability = self._load(claims.jti)
        if capability is None:
            return CapabilityVerificationResult.failure("Capability not found")

        status = capability.effective_status(now)
        if status is CapabilityStatus.REVOKED:
            return CapabilityVerificationResult.failure("Capability has been revoked")
        if status is CapabilityStatus.EXPIRED:
            return CapabilityVerificationResult.failure("Capability has expired")
        if now < capability.not_before or status is CapabilityStatus.PENDING:
            return CapabilityVerificationResult.failure("Capability is not yet valid")

        if claims.sub != capability.subject:
            return CapabilityVerificationResult.failure("Subject mismatch")

        if request.action not in capability.actions:
            return CapabilityVerificationResult.failure(
                f"Action '{request.action}' not permitted"
            )

        if not any(resource_matches(r, request.resource) for r in capability.resources):
            return CapabilityVerificationResult.failure(
                f"Resource '{request.resource}' not accessible"
            )

        if capability.conditions:
            condition_errors = evaluate_conditions(capability.conditions, request.context)
            if condition_errors:
                return CapabilityVerificationResult.failure(*condition_errors)

        return CapabilityVerificationResult(
            valid=True,
            capability=capability,
            subject=claims.sub,
            allowed_actions=list(capability.actions),
        )

    # ------------------------------------------------------------------
    # Revocation
    # ------------------------------------------------------------------

    def revoke_capability(
        self,
        capability_id: str,
        revoked_by: str,
        reason: str | None = None,
    ) -> Capability:
        """Revoke a capability. Repeating the call leaves the first revocation intact.

        Raises
        ------
        NotFoundError
            If the capability does not exist.
        AuthorizationError
            If *revoked_by* is neither the issuer nor an admin holder.
        """
        capability = self._store.get_capability(capability_id)
        if capability is None:
            raise NotFoundError("Capability", capability_id)

        if revoked_by != capability.issuer and not self._has_admin_capability(revoked_by):
            raise AuthorizationError("Not authorized to revoke this capability")

        if capability.status is CapabilityStatus.REVOKED:
            self._cache.evict(capability_id)
            logger.debug("Capability %s already revoked", capability_id)
            return capability

        capability.status = CapabilityStatus.REVOKED
        capability.revoked_at = self._clock()
        capability.revoked_by = revoked_by
        capability.revocation_reason = reason

        subject = self._identities.find_agent(capability.subject)
        with self._store.transaction():
            self._store.update_capability(capability)
            if subject is not None:
                self._identities.log_activity(
                    subject.id,
                    ActivityType.CAPABILITY_REVOKED,
                    f"Capability revoked: {reason or 'No reason provided'}",
                    metadata={"capabilityId": capability_id, "revokedBy": revoked_by, "reason": reason},
                )
        self._cache.evict(capability_id)

        logger.info("Capability revoked: %s (by %s)", capability_id, revoked_by)
        return capability

    # ------------------------------------------------------------------
    # Delegation
    # ------------------------------------------------------------------

    def delegate_capability(
        self,
        capability_id: str,
        delegator: str,
        delegatee: str,
        restrictions: DelegationRestrictions | None = None,
        expires_in_hours: float | None = None,
    ) -> CapabilityDelegation:
        """Re-grant a narrowed subset of a capability to *delegatee*.

        The parent capability is not modified.

        Raises
        ------
        NotFoundError
            If the capability does not exist.
        AuthorizationError
            If *delegator* is not the subject, the capability does not
            include ``delegate``, or it is no longer active.
        ValidationError
            If the restrictions widen the parent grant or the lifetime is
            not positive.
        """
        parent = self._store.get_capability(capability_id)
        if parent is None:
            raise NotFoundError("Capability", capability_id)
        if parent.subject != delegator:
            raise AuthorizationError("Only the capability subject can delegate")
        if "delegate" not in parent.actions:
            raise AuthorizationError("Capability does not allow delegation")

        now = self._clock()
        if parent.effective_status(now) is not CapabilityStatus.ACTIVE:
            raise AuthorizationError(
                f"Capability is {parent.effective_status(now).value} and cannot be delegated"
            )

        restrictions = restrictions or DelegationRestrictions()
        actions = list(restrictions.actions) if restrictions.actions is not None else list(parent.actions)
        resources = (
            list(restrictions.resources) if restrictions.resources is not None else list(parent.resources)
        )
        extra_actions = [a for a in actions if a not in parent.actions]
        if extra_actions:
            raise ValidationError(
                f"Delegation cannot add actions not held by the parent: {extra_actions}"
            )
        extra_resources = [
            r for r in resources if not any(resource_matches(p, r.rstrip("*")) for p in parent.resources)
        ]
        if extra_resources:
            raise ValidationError(
                f"Delegation cannot widen the parent's resources: {extra_resources}"
            )

        expires_at = parent.expiration
        if expires_in_hours is not None:
            if expires_in_hours <= 0:
                raise ValidationError(f"expires_in_hours must be positive, got {expires_in_hours}")
            expires_at = min(parent.expiration, now + datetime.timedelta(hours=expires_in_hours))

        delegation = CapabilityDelegation(
            capability_id=capability_id,
            delegator=delegator,
            delegatee=delegatee,
            actions=actions,
            resources=resources,
            expires_at=expires_at,
            delegated_at=now,
        )
        self._store.add_delegation(delegation)
        logger.info(
            "Capability delegated: %s (%s -> %s)", capability_id, delegator, delegatee
        )
        return delegation

    def list_delegations(self, capability_id: str | None = None) -> list[CapabilityDelegation]:
        return self._store.list_delegations(capability_id)

    # ------------------------------------------------------------------
    # Listing
    # ------------------------------------------------------------------

    def list_capabilities(
        self,
        subject: str | None = None,
        issuer: str | None = None,
        status: CapabilityStatus | None = None,
    ) -> list[Capability]:
        """Return matching capabilities, newest first, with expiry applied to ``status``.

        Filtering by *status* uses the effective status, so ``EXPIRED``
        includes active rows whose expiration has passed.
        """
        now = self._clock()
        results: list[Capability] = []
        for capability in self._store.list_capabilities(subject=subject, issuer=issuer):
            capability.status = capability.effective_status(now)
            if status is not None and capability.status is not status:
                continue
            results.append(capability)
        return results

    def get_capability(self, capability_id: str) -> Capability:
        capability = self._load(capability_id)
        if capability is None:
            raise NotFoundError("Capability", capability_id)
        return capability

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _load(self, capability_id: str) -> Capability | None:
        cached = self._cache.get(capability_id)
        if cached is not None:
            return cached
        capability = self._store.get_capability(capability_id)
        if capability is not None and capability.status is CapabilityStatus.ACTIVE:
            self._cache.set(capability_id, capability)
        return capability

    def _evict_subject(self, agent: Agent) -> None:
        """Drop cached capabilities granted to a deleted agent."""
        for capability_id in self._cache.keys():
            cached = self._cache.get(capability_id)
            if cached is not None and cached.subject == agent.did:
                self._cache.evict(capability_id)

    def _require_active(self, did: str, role: str) -> Agent:
        agent = self._identities.find_agent(did)
        if agent is None:
            raise NotFoundError("Agent", did)
        if agent.status is not AgentStatus.ACTIVE:
            raise AuthorizationError(f"{role} is not active")
        return agent

    def _has_admin_capability(self, did: str) -> bool:
        now = self._clock()
        return any(
            capability.subject == did
            and "admin" in capability.actions
            and capability.effective_status(now) is CapabilityStatus.ACTIVE
            and now >= capability.not_before
            for capability in self._store.list_capabilities(subject=did)
        )

    @staticmethod
    def _warn_custom_vocabulary(actions: list[str], resources: list[str]) -> None:
        for action in actions:
            if action not in DEFAULT_ACTIONS and action != "*":
                logger.warning("Custom action used: %s", action)
        for resource in resources:
            if resource != "*" and resource.split("/")[0] not in DEFAULT_RESOURCE_PREFIXES:
                logger.warning("Custom resource used: %s", resource)


__all__ = [
    "CapabilityIssuer",
    "CapabilityRequest",
    "CapabilityToken",
    "CapabilityVerificationRequest",
    "CapabilityVerificationResult",
    "DEFAULT_ACTIONS",
    "DEFAULT_RESOURCE_PREFIXES",
    "DelegationRestrictions",
    "resource_matches",
]
