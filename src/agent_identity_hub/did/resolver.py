"""External DID resolution.

Non-local DIDs are delegated to a :class:`DIDResolver` collaborator. The
bundled :class:`HttpDIDResolver` talks to a DIF Universal Resolver
compatible endpoint (``GET <base>/1.0/identifiers/<did>``) with a bounded
timeout.

Resolvers raise :class:`ResolverError` on transport or protocol failure;
:class:`~agent_identity_hub.did.service.DIDService` converts every failure
into a ``notFound`` / ``invalidDid`` resolution envelope.
"""
from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from urllib.parse import quote

import httpx

from agent_identity_hub.did.document import DIDDocument

logger = logging.getLogger(__name__)

DID_JSON_CONTENT_TYPE: str = "application/did+json"


class ResolverError(Exception):
    """Raised when an external resolver cannot complete a lookup."""

    def __init__(self, did: str, reason: str) -> None:
        self.did = did
        self.reason = reason
        super().__init__(f"Could not resolve {did!r}: {reason}")


@dataclass
class DIDResolutionResult:
    """W3C DID resolution envelope.

    Parameters
    ----------
    did_document:
        The resolved document, or ``None`` when resolution failed.
    did_resolution_metadata:
        ``{"contentType": ...}`` on success, ``{"error": "notFound" | "invalidDid"}``
        on failure.
    did_document_metadata:
        ``{"created": ..., "updated": ...}`` for locally held documents.
    """

    did_document: DIDDocument | None
    did_resolution_metadata: dict[str, object] = field(default_factory=dict)
    did_document_metadata: dict[str, object] = field(default_factory=dict)

    @property
    def error(self) -> str | None:
        value = self.did_resolution_metadata.get("error")
        return str(value) if value is not None else None

    @property
    def found(self) -> bool:
        return self.did_document is not None

    @classmethod
    def success(cls, document: DIDDocument, local: bool = True) -> "DIDResolutionResult":
        metadata: dict[str, object] = {}
        if local:
            metadata = {
                "created": document.created.isoformat(),
                "updated": document.updated.isoformat(),
            }
        return cls(
            did_document=document,
            did_resolution_metadata={"contentType": DID_JSON_CONTENT_TYPE},
            did_document_metadata=metadata,
        )

    @classmethod
    def failure(cls, error: str, message: str | None = None) -> "DIDResolutionResult":
        metadata: dict[str, object] = {"error": error}
        if message:
            metadata["message"] = message
        return cls(did_document=None, did_resolution_metadata=metadata)

    def to_dict(self) -> dict[str, object]:
        return {
            "didResolutionMetadata": dict(self.did_resolution_metadata),
            "didDocument": self.did_document.to_dict() if self.did_document else None,
            "didDocumentMetadata": dict(self.did_document_metadata),
        }


class DIDResolver(ABC):
    """Collaborator that resolves DIDs not held locally."""

    @abstractmethod
    def resolve(self, did: str) -> DIDDocument | None:
        """Return the document for *did*, or ``None`` if the DID is unknown.

        Raises
        ------
        ResolverError
            On transport failures, timeouts, or malformed responses.
        """

    def close(self) -> None:
        """Release any resources held by the resolver."""


class HttpDIDResolver(DIDResolver):
    """Resolve DIDs against a Universal Resolver compatible HTTP endpoint.

    Parameters
    ----------
    base_url:
        Resolver base URL, e.g. ``https://dev.uniresolver.io``.
    timeout_seconds:
        Upper bound for a single request.
    client:
        Optional shared :class:`httpx.Client`. When omitted the resolver
        creates and owns one.
    """

    def __init__(
        self,
        base_url: str,
        timeout_seconds: float = 5.0,
        client: httpx.Client | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._owns_client = client is None
        self._client = client or httpx.Client(timeout=timeout_seconds)
        self._timeout = timeout_seconds

    def resolve(self, did: str) -> DIDDocument | None:
        url = f"{self._base_url}/1.0/identifiers/{quote(did, safe=':')}"
        try:
            response = self._client.get(
                url,
                timeout=self._timeout,
                headers={"Accept": f"{DID_JSON_CONTENT_TYPE}, application/json"},
            )
        except httpx.HTTPError as exc:
            raise ResolverError(did, f"request failed: {exc}") from exc

        if response.status_code == 404:
            return None
        if response.status_code >= 400:
            raise ResolverError(did, f"resolver returned HTTP {response.status_code}")

        try:
            payload = response.json()
        except ValueError as exc:
            raise ResolverError(did, "response is not JSON") from exc

        raw_document = payload.get("didDocument", payload) if isinstance(payload, dict) else None
        if not isinstance(raw_document, dict) or "id" not in raw_document:
            return None
        try:
            return DIDDocument.from_dict(raw_document)
        except ValueError as exc:
            raise ResolverError(did, f"invalid document: {exc}") from exc

    def close(self) -> None:
        if self._owns_client:
            self._client.close()


__all__ = [
    "DID_JSON_CONTENT_TYPE",
    "DIDResolutionResult",
    "DIDResolver",
    "HttpDIDResolver",
    "ResolverError",
]
