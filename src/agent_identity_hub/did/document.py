"""DIDDocument: W3C DID Core document model for the ``key`` and ``ethr`` methods.

W3C data model
--------------
This module follows the W3C DID Core data model:
https://www.w3.org/TR/did-core/#data-model

The JSON shape produced by :meth:`DIDDocument.to_dict` is contractual::

    {
      "@context": [...],
      "id": "did:key:z6Mk...",
      "controller": "did:key:z6Mk...",
      "verificationMethod": [{"id", "type", "controller", "publicKeyMultibase" | "publicKeyHex"}],
      "authentication": ["did:key:z6Mk...#keys-1"],
      "assertionMethod": ["did:key:z6Mk...#keys-1"],
      "service": [{"id", "type", "serviceEndpoint"}],
      "created": "...",
      "updated": "..."
    }
"""
from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime

from pydantic import BaseModel, Field, field_validator, model_validator

from agent_identity_hub.clock import parse_datetime, utc_now
from agent_identity_hub.did.encoding import is_valid_did

DEFAULT_CONTEXT: list[str] = [
    "https://www.w3.org/ns/did/v1",
    "https://w3id.org/security/suites/ed25519-2020/v1",
    "https://w3id.org/security/suites/secp256k1-2019/v1",
]


# ------------------------------------------------------------------
# Verification method
# ------------------------------------------------------------------


@dataclass(frozen=True)
class VerificationMethod:
    """A cryptographic verification method attached to a DID document.

    Exactly one of ``public_key_multibase`` (Ed25519) or ``public_key_hex``
    (secp256k1) carries the key material.

    Parameters
    ----------
    id:
        The verification method identifier (e.g. ``did:key:z6Mk...#keys-1``).
    type:
        Key type, e.g. ``"Ed25519VerificationKey2020"``.
    controller:
        The DID that controls this key.
    """

    id: str
    type: str
    controller: str
    public_key_multibase: str | None = None
    public_key_hex: str | None = None

    def __post_init__(self) -> None:
        if not self.id:
            raise ValueError("VerificationMethod.id must not be empty.")
        if not self.type:
            raise ValueError("VerificationMethod.type must not be empty.")
        if not self.controller:
            raise ValueError("VerificationMethod.controller must not be empty.")
        if not (self.public_key_multibase or self.public_key_hex):
            raise ValueError(
                "VerificationMethod requires public_key_multibase or public_key_hex."
            )

    def to_dict(self) -> dict[str, object]:
        """Serialize to a W3C-compatible plain dictionary."""
        data: dict[str, object] = {
            "id": self.id,
            "type": self.type,
            "controller": self.controller,
        }
        if self.public_key_multibase is not None:
            data["publicKeyMultibase"] = self.public_key_multibase
        if self.public_key_hex is not None:
            data["publicKeyHex"] = self.public_key_hex
        return data

    @classmethod
    def from_dict(cls, data: dict[str, object]) -> "VerificationMethod":
        return cls(
            id=str(data["id"]),
            type=str(data["type"]),
            controller=str(data["controller"]),
            public_key_multibase=data.get("publicKeyMultibase"),  # type: ignore[arg-type]
            public_key_hex=data.get("publicKeyHex"),  # type: ignore[arg-type]
        )


# ------------------------------------------------------------------
# Service endpoint
# ------------------------------------------------------------------


@dataclass(frozen=True)
class ServiceEndpoint:
    """A service endpoint advertised in a DID document.

    Parameters
    ----------
    id:
        The service identifier (e.g. ``did:key:z6Mk...#mcp``).
    type:
        Service type string (e.g. ``"MCPService"``, ``"LinkedDomains"``).
    endpoint:
        The URL or URI for this service.
    """

    id: str
    type: str
    endpoint: str

    def __post_init__(self) -> None:
        if not self.id:
            raise ValueError("ServiceEndpoint.id must not be empty.")
        if not self.type:
            raise ValueError("ServiceEndpoint.type must not be empty.")
        if not self.endpoint:
            raise ValueError("ServiceEndpoint.endpoint must not be empty.")

    def to_dict(self) -> dict[str, str]:
        """Serialize to a W3C-compatible plain dictionary."""
        return {
            "id": self.id,
            "type": self.type,
            "serviceEndpoint": self.endpoint,
        }

    @classmethod
    def from_dict(cls, data: dict[str, object]) -> "ServiceEndpoint":
        return cls(
            id=str(data["id"]),
            type=str(data["type"]),
            endpoint=str(data["serviceEndpoint"]),
        )


# ------------------------------------------------------------------
# DID Document (Pydantic v2)
# ------------------------------------------------------------------


class DIDDocument(BaseModel):
    """A W3C DID Core document.

    Parameters
    ----------
    context:
        JSON-LD context URIs.
    id:
        The DID subject identifier. Never changes after creation.
    controller:
        DID(s) authorized to make changes to this document.
    verification_method:
        Public keys associated with this DID.
    authentication / assertion_method:
        Verification method ids authorized for each relationship.
    service:
        Service endpoints associated with this DID subject.
    created / updated:
        UTC datetimes of creation and most recent mutation.
    """

    model_config = {"arbitrary_types_allowed": True}

    context: list[str] = Field(default_factory=lambda: list(DEFAULT_CONTEXT))
    id: str
    controller: str | list[str]
    verification_method: list[VerificationMethod] = Field(default_factory=list)
    authentication: list[str] = Field(default_factory=list)
    assertion_method: list[str] = Field(default_factory=list)
    service: list[ServiceEndpoint] = Field(default_factory=list)
    created: datetime = Field(default_factory=utc_now)
    updated: datetime = Field(default_factory=utc_now)

    @field_validator("id")
    @classmethod
    def validate_did_format(cls, value: str) -> str:
        """Validate the id is a syntactically valid DID."""
        if not is_valid_did(value):
            raise ValueError(f"Malformed DID {value!r}. Expected did:<method>:<identifier>.")
        return value

    @model_validator(mode="after")
    def validate_references(self) -> "DIDDocument":
        """Validate authentication/assertion references point to declared methods."""
        method_ids = {vm.id for vm in self.verification_method}
        for ref in [*self.authentication, *self.assertion_method]:
            if method_ids and ref not in method_ids:
                raise ValueError(
                    f"Verification relationship reference {ref!r} does not match "
                    "any declared verification_method id."
                )
        return self

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def resolve_verification_method(self, method_id: str) -> VerificationMethod | None:
        """Return the VerificationMethod with the given id, or None."""
        for method in self.verification_method:
            if method.id == method_id:
                return method
        return None

    def primary_verification_method(self) -> VerificationMethod | None:
        """Return the method referenced first by ``authentication``, else the first declared."""
        for ref in self.authentication:
            method = self.resolve_verification_method(ref)
            if method is not None:
                return method
        return self.verification_method[0] if self.verification_method else None

    def has_service(self, service_id: str) -> bool:
        return any(svc.id == service_id for svc in self.service)

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    def to_dict(self) -> dict[str, object]:
        """Serialize to the W3C JSON representation with camelCase keys."""
        return {
            "@context": list(self.context),
            "id": self.id,
            "controller": self.controller,
            "verificationMethod": [vm.to_dict() for vm in self.verification_method],
            "authentication": list(self.authentication),
            "assertionMethod": list(self.assertion_method),
            "service": [svc.to_dict() for svc in self.service],
            "created": self.created.isoformat(),
            "updated": self.updated.isoformat(),
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), indent=2)

    @classmethod
    def from_dict(cls, data: dict[str, object]) -> "DIDDocument":
        """Reconstruct a document from its W3C JSON representation.

        Raises
        ------
        ValueError
            If required fields are missing or the document fails validation.
        """
        try:
            verification_methods = [
                VerificationMethod.from_dict(vm)  # type: ignore[arg-type]
                for vm in data.get("verificationMethod", [])  # type: ignore[union-attr]
            ]
            services = [
                ServiceEndpoint.from_dict(svc)  # type: ignore[arg-type]
                for svc in data.get("service", []) or []  # type: ignore[union-attr]
            ]
            did = str(data["id"])
        except (KeyError, TypeError, AttributeError) as exc:
            raise ValueError(f"Invalid DID document structure: {exc}") from exc

        now = utc_now()
        return cls(
            context=list(data.get("@context", DEFAULT_CONTEXT)),  # type: ignore[arg-type]
            id=did,
            controller=data.get("controller", did),  # type: ignore[arg-type]
            verification_method=verification_methods,
            authentication=list(data.get("authentication", [])),  # type: ignore[arg-type]
            assertion_method=list(data.get("assertionMethod", [])),  # type: ignore[arg-type]
            service=services,
            created=parse_datetime(data.get("created")) or now,
            updated=parse_datetime(data.get("updated")) or now,
        )

    @classmethod
    def from_json(cls, json_str: str) -> "DIDDocument":
        try:
            data = json.loads(json_str)
        except json.JSONDecodeError as exc:
            raise ValueError(f"Invalid JSON: {exc}") from exc
        return cls.from_dict(data)


__all__ = ["DEFAULT_CONTEXT", "DIDDocument", "ServiceEndpoint", "VerificationMethod"]
