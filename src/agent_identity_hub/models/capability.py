"""Capability, Condition and CapabilityDelegation records.

A capability is a time-bounded grant of actions over resources from an
issuer DID to a subject DID, optionally guarded by conditions evaluated
against a caller-supplied context at verification time.

Status lifecycle::

    pending -> active -> {expired, revoked}

``active -> expired`` is never written; :meth:`Capability.effective_status`
infers it from the clock.
"""
from __future__ import annotations

import datetime
import uuid
from dataclasses import dataclass, field
from enum import Enum

from agent_identity_hub.clock import parse_datetime, to_iso, utc_now


class CapabilityStatus(str, Enum):
    ACTIVE = "active"
    EXPIRED = "expired"
    REVOKED = "revoked"
    PENDING = "pending"


class ConditionType(str, Enum):
    TIME = "time"
    RATE_LIMIT = "rate_limit"
    RESOURCE_SCOPE = "resource_scope"
    CONTEXT = "context"


class ConditionOperator(str, Enum):
    EQUALS = "equals"
    NOT_EQUALS = "not_equals"
    GREATER_THAN = "greater_than"
    LESS_THAN = "less_than"
    CONTAINS = "contains"
    IN = "in"
    BEFORE = "before"
    AFTER = "after"


@dataclass(frozen=True)
class Condition:
    """A single guard on a capability.

    Parameters
    ----------
    type:
        Category of the condition (informational; evaluation depends only
        on ``operator``).
    parameter:
        Key looked up in the verification context.
    operator:
        Comparison applied between the context value and ``value``.
    value:
        Expected value (JSON-compatible).
    """

    type: ConditionType
    parameter: str
    operator: ConditionOperator
    value: object

    def to_dict(self) -> dict[str, object]:
        """Serialize to a plain dictionary."""
        return {
            "type": self.type.value,
            "parameter": self.parameter,
            "operator": self.operator.value,
            "value": self.value,
        }

    @classmethod
    def from_dict(cls, data: dict[str, object]) -> "Condition":
        """Reconstruct a condition from :meth:`to_dict` output."""
        return cls(
            type=ConditionType(data["type"]),
            parameter=str(data["parameter"]),
            operator=ConditionOperator(data["operator"]),
            value=data.get("value"),
        )


def new_capability_id() -> str:
    """Return a fresh ``urn:cap:<uuid>`` identifier."""
    return f"urn:cap:{uuid.uuid4()}"


@dataclass
class Capability:
    """A stored capability grant.

    Parameters
    ----------
    id:
        ``urn:cap:<uuid>`` identifier; also the token ``jti``.
    subject:
        DID of the grantee.
    issuer:
        DID of the grantor.
    actions:
        Granted action names.
    resources:
        Granted resource patterns (exact, prefix, ``agents/*`` or ``*``).
    conditions:
        Guards evaluated at verification time.
    not_before / expiration:
        Validity window ``[not_before, expiration)``.
    status:
        Stored status. Use :meth:`effective_status` to account for expiry.
    """

    subject: str
    issuer: str
    actions: list[str]
    resources: list[str]
    expiration: datetime.datetime
    conditions: list[Condition] = field(default_factory=list)
    id: str = field(default_factory=new_capability_id)
    issued_at: datetime.datetime = field(default_factory=utc_now)
    not_before: datetime.datetime = field(default_factory=utc_now)
    revoked_at: datetime.datetime | None = None
    revocation_reason: str | None = None
    revoked_by: str | None = None
    status: CapabilityStatus = CapabilityStatus.ACTIVE

    def effective_status(self, now: datetime.datetime | None = None) -> CapabilityStatus:
        """Return the status with expiry inferred from *now*."""
        if self.status in (CapabilityStatus.REVOKED, CapabilityStatus.EXPIRED):
            return self.status
        current = now or utc_now()
        if current >= self.expiration:
            return CapabilityStatus.EXPIRED
        return self.status

    def to_dict(self) -> dict[str, object]:
        """Serialize to a camelCase dictionary."""
        return {
            "id": self.id,
            "subject": self.subject,
            "issuer": self.issuer,
            "actions": list(self.actions),
            "resources": list(self.resources),
            "conditions": [c.to_dict() for c in self.conditions],
            "notBefore": self.not_before.isoformat(),
            "expiration": self.expiration.isoformat(),
            "issuedAt": self.issued_at.isoformat(),
            "revokedAt": to_iso(self.revoked_at),
            "revocationReason": self.revocation_reason,
            "revokedBy": self.revoked_by,
            "status": self.status.value,
        }

    @classmethod
    def from_dict(cls, data: dict[str, object]) -> "Capability":
        """Reconstruct a capability from :meth:`to_dict` output."""
        now = utc_now()
        return cls(
            id=str(data["id"]),
            subject=str(data["subject"]),
            issuer=str(data["issuer"]),
            actions=[str(a) for a in data.get("actions", [])],  # type: ignore[union-attr]
            resources=[str(r) for r in data.get("resources", [])],  # type: ignore[union-attr]
            conditions=[
                Condition.from_dict(c)  # type: ignore[arg-type]
                for c in data.get("conditions", [])  # type: ignore[union-attr]
            ],
            not_before=parse_datetime(data.get("notBefore")) or now,
            expiration=parse_datetime(data.get("expiration")) or now,
            issued_at=parse_datetime(data.get("issuedAt")) or now,
            revoked_at=parse_datetime(data.get("revokedAt")),
            revocation_reason=data.get("revocationReason"),  # type: ignore[arg-type]
            revoked_by=data.get("revokedBy"),  # type: ignore[arg-type]
            status=CapabilityStatus(data.get("status", CapabilityStatus.ACTIVE.value)),
        )


@dataclass
class CapabilityDelegation:
    """A narrowed re-grant of a parent capability to another DID.

    The parent capability is never mutated by delegation.
    """

    capability_id: str
    delegator: str
    delegatee: str
    actions: list[str]
    resources: list[str]
    expires_at: datetime.datetime
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    delegated_at: datetime.datetime = field(default_factory=utc_now)

    def to_dict(self) -> dict[str, object]:
        """Serialize to a camelCase dictionary."""
        return {
            "id": self.id,
            "capabilityId": self.capability_id,
            "delegator": self.delegator,
            "delegatee": self.delegatee,
            "restrictions": {
                "actions": list(self.actions),
                "resources": list(self.resources),
            },
            "delegatedAt": self.delegated_at.isoformat(),
            "expiresAt": self.expires_at.isoformat(),
        }


__all__ = [
    "Capability",
    "CapabilityDelegation",
    "CapabilityStatus",
    "Condition",
    "ConditionOperator",
    "ConditionType",
    "new_capability_id",
]
