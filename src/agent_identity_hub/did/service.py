"""DIDService: DID document lifecycle: create, resolve, mutate, deactivate.

Documents created by this service are written through to the identity
store (as opaque JSON on the :class:`~agent_identity_hub.models.Identity`
row) and to the service's own document cache. Resolution order is:

1. the document cache,
2. the identity store (authoritative for locally issued DIDs),
3. ``did:key`` self-resolution (the key is embedded in the identifier),
4. the external :class:`~agent_identity_hub.did.resolver.DIDResolver`.

Resolution never raises; every failure becomes a ``notFound`` or
``invalidDid`` envelope.
"""
from __future__ import annotations

import hashlib
import logging
from collections.abc import Iterable

from agent_identity_hub.cache import ServiceCache
from agent_identity_hub.clock import Clock, utc_now
from agent_identity_hub.did.document import DIDDocument, ServiceEndpoint, VerificationMethod
from agent_identity_hub.did.encoding import (
    did_ethr_from_public_key,
    did_key_from_public_key,
    ed25519_to_multibase,
    is_valid_did,
    multibase_to_ed25519,
    parse_did,
    public_key_from_did_key,
)
from agent_identity_hub.did.keys import (
    KEY_MANAGERS,
    MANAGERS_BY_METHOD_TYPE,
    KeyEntry,
    KeyRing,
)
from agent_identity_hub.did.resolver import DIDResolutionResult, DIDResolver, ResolverError
from agent_identity_hub.errors import DIDError, NotFoundError
from agent_identity_hub.models import Identity
from agent_identity_hub.store import IdentityStore

logger = logging.getLogger(__name__)

PRIMARY_KEY_FRAGMENT: str = "#keys-1"

# Top-level document fields that update_did() may replace.
_UPDATABLE_FIELDS: frozenset[str] = frozenset(
    {"@context", "controller", "verificationMethod", "authentication", "assertionMethod", "service"}
)


def _digest(message: str | bytes) -> bytes:
    data = message.encode("utf-8") if isinstance(message, str) else message
    return hashlib.sha256(data).digest()


def public_key_bytes(method: VerificationMethod) -> bytes:
    """Return the raw public key carried by a verification method.

    Raises
    ------
    ValueError
        If the key material cannot be decoded.
    """
    if method.public_key_multibase:
        return multibase_to_ed25519(method.public_key_multibase)
    if method.public_key_hex:
        hex_value = method.public_key_hex
        return bytes.fromhex(hex_value[2:] if hex_value.startswith("0x") else hex_value)
    raise ValueError(f"Verification method {method.id!r} carries no key material.")


def _coerce_public_key(method: str, public_key: bytes | str) -> bytes:
    if isinstance(public_key, bytes):
        return public_key
    if method == "key" and public_key.startswith("z"):
        return multibase_to_ed25519(public_key)
    return bytes.fromhex(public_key[2:] if public_key.startswith("0x") else public_key)


class DIDService:
    """Create, resolve, and manage DID documents.

    Parameters
    ----------
    store:
        Identity store that persists documents.
    resolver:
        Optional external resolver for DIDs not held locally.
    key_ring:
        Holder for private keys of DIDs generated by this service.
    cache:
        Document cache. A fresh one is created when omitted.
    clock:
        Source of the current UTC time.

    Example
    -------
    ::

        service = DIDService(InMemoryIdentityStore())
        did, document = service.create_did("key")
        signature = service.sign_message(did, "challenge")
        assert service.verify_did_ownership(did, signature, "challenge")
    """

    def __init__(
        self,
        store: IdentityStore,
        resolver: DIDResolver | None = None,
        key_ring: KeyRing | None = None,
        cache: ServiceCache[DIDDocument] | None = None,
        clock: Clock = utc_now,
    ) -> None:
        self._store = store
        self._resolver = resolver
        self._keys = key_ring or KeyRing()
        self._cache: ServiceCache[DIDDocument] = cache or ServiceCache("did-documents")
        self._clock = clock

    @property
    def key_ring(self) -> KeyRing:
        return self._keys

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    def create_did(
        self,
        method: str = "key",
        public_key: bytes | str | None = None,
        services: Iterable[ServiceEndpoint] | None = None,
        agent_id: str | None = None,
    ) -> tuple[str, DIDDocument]:
        """Create a DID and its document.

        A key pair is generated when *public_key* is omitted; its private
        half stays in this service's key ring. Service ids starting with
        ``#`` are expanded relative to the new DID.

        Parameters
        ----------
        method:
            ``"key"`` (Ed25519) or ``"ethr"`` (secp256k1).
        public_key:
            Optional existing public key (raw bytes, hex, or multibase for ``key``).
        services:
            Optional service endpoints.
        agent_id:
            Agent to associate the identity row with.

        Returns
        -------
        tuple[str, DIDDocument]
            The new DID and its document.

        Raises
        ------
        DIDError
            On an unsupported method or an undecodable public key.
        """
        manager = KEY_MANAGERS.get(method)
        if manager is None:
            raise DIDError(f"Unsupported DID method: {method}", code="UNSUPPORTED_DID_METHOD")

        private_bytes: bytes | None = None
        try:
            if public_key is None:
                private_bytes, public_bytes = manager.generate_keypair()
            else:
                public_bytes = manager.load_public_key(_coerce_public_key(method, public_key))
        except ValueError as exc:
            raise DIDError(f"Invalid public key for did:{method}: {exc}") from exc

        if method == "key":
            did = did_key_from_public_key(public_bytes)
            verification_method = VerificationMethod(
                id=did + PRIMARY_KEY_FRAGMENT,
                type=manager.verification_method_type,
                controller=did,
                public_key_multibase=ed25519_to_multibase(public_bytes),
            )
        else:
            did = did_ethr_from_public_key(public_bytes)
            verification_method = VerificationMethod(
                id=did + PRIMARY_KEY_FRAGMENT,
                type=manager.verification_method_type,
                controller=did,
                public_key_hex=public_bytes.hex(),
            )

        if self._store.is_did_deactivated(did):
            raise DIDError(f"DID has been deactivated: {did}", code="DID_DEACTIVATED")

        endpoints = [
            ServiceEndpoint(
                id=did + svc.id if svc.id.startswith("#") else svc.id,
                type=svc.type,
                endpoint=svc.endpoint,
            )
            for svc in services or []
        ]

        now = self._clock()
        document = DIDDocument(
            id=did,
            controller=did,
            verification_method=[verification_method],
            authentication=[verification_method.id],
            assertion_method=[verification_method.id],
            service=endpoints,
            created=now,
            updated=now,
        )

        self._store.add_identity(
            Identity(
                did=did,
                agent_id=agent_id,
                document=document.to_dict(),
                created_at=now,
                updated_at=now,
            )
        )
        if private_bytes is not None:
            self._keys.add(KeyEntry(did, method, private_bytes, public_bytes))
        self._cache.set(did, document)
        logger.info("DID created: %s (method=%s)", did, method)
        return did, document

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    def resolve_did(self, did: str) -> DIDResolutionResult:
        """Resolve *did* to a resolution envelope. Never raises."""
        if not is_valid_did(did):
            return DIDResolutionResult.failure("invalidDid", f"Malformed DID: {did}")

        if self._store.is_did_deactivated(did):
            return DIDResolutionResult.failure("notFound", "DID has been deactivated")

        try:
            local = self._get_local(did)
        except ValueError:
            return DIDResolutionResult.failure("invalidDid", "Stored document is invalid")
        if local is not None:
            return DIDResolutionResult.success(local)

        method, _ = parse_did(did)
        if method == "key":
            try:
                return DIDResolutionResult.success(self._document_from_did_key(did), local=False)
            except ValueError as exc:
                return DIDResolutionResult.failure("invalidDid", str(exc))

        if self._resolver is None:
            return DIDResolutionResult.failure("notFound")

        try:
            document = self._resolver.resolve(did)
        except ResolverError as exc:
            logger.warning("External DID resolution failed for %s: %s", did, exc.reason)
            return DIDResolutionResult.failure("notFound", exc.reason)
        except Exception:
            logger.exception("Unexpected resolver fault for %s", did)
            return DIDResolutionResult.failure("notFound", "resolver failure")

        if document is None:
            return DIDResolutionResult.failure("notFound")
        if document.id != did:
            logger.warning("Resolver returned document %s for %s", document.id, did)
            return DIDResolutionResult.failure("invalidDid", "document id does not match DID")
        return DIDResolutionResult.success(document, local=False)

    def get_document(self, did: str) -> DIDDocument | None:
        """Return the resolved document for *did*, or ``None``."""
        return self.resolve_did(did).did_document

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def update_did(self, did: str, updates: dict[str, object]) -> DIDDocument:
        """Merge *updates* into a locally held document.

        Only ``@context``, ``controller``, ``verificationMethod``,
        ``authentication``, ``assertionMethod`` and ``service`` may be
        replaced. ``id`` is always preserved and ``updated`` is bumped.

        Raises
        ------
        NotFoundError
            If *did* is not held locally.
        DIDError
            If the merged document is invalid.
        """
        document = self._require_local(did)
        ignored = sorted(set(updates) - _UPDATABLE_FIELDS)
        if ignored:
            logger.warning("update_did(%s) ignoring non-updatable fields: %s", did, ignored)

        merged = document.to_dict()
        merged.update({k: v for k, v in updates.items() if k in _UPDATABLE_FIELDS})
        merged["id"] = did
        merged["updated"] = self._clock().isoformat()
        try:
            updated = DIDDocument.from_dict(merged)
        except ValueError as exc:
            raise DIDError(f"Invalid DID document update: {exc}") from exc
        self._persist(updated)
        logger.info("DID updated: %s", did)
        return updated

    def add_verification_method(
        self, did: str, method: VerificationMethod
    ) -> DIDDocument:
        """Append a verification method. Its controller is forced to *did*.

        Raises
        ------
        DIDError
            If a method with the same id already exists.
        """
        document = self._require_local(did)
        if document.resolve_verification_method(method.id) is not None:
            raise DIDError(
                f"Verification method already exists: {method.id}",
                code="DUPLICATE_VERIFICATION_METHOD",
            )
        controlled = VerificationMethod(
            id=method.id,
            type=method.type,
            controller=did,
            public_key_multibase=method.public_key_multibase,
            public_key_hex=method.public_key_hex,
        )
        updated = document.model_copy(
            update={
                "verification_method": [*document.verification_method, controlled],
                "updated": self._clock(),
            }
        )
        self._persist(updated)
        logger.info("Verification method %s added to %s", method.id, did)
        return updated

    def add_service_endpoint(self, did: str, service: ServiceEndpoint) -> DIDDocument:
        """Append a service endpoint.

        Raises
        ------
        DIDError
            With code ``DUPLICATE_SERVICE`` if the service id already exists.
        """
        document = self._require_local(did)
        if service.id.startswith("#"):
            service = ServiceEndpoint(id=did + service.id, type=service.type, endpoint=service.endpoint)
        if document.has_service(service.id):
            raise DIDError(f"Service endpoint already exists: {service.id}", code="DUPLICATE_SERVICE")
        updated = document.model_copy(
            update={"service": [*document.service, service], "updated": self._clock()}
        )
        self._persist(updated)
        logger.info("Service endpoint %s added to %s", service.id, did)
        return updated

    def deactivate_did(self, did: str) -> bool:
        """Remove the local document for *did* and tombstone it in the store.

        Irreversible: a tombstoned DID resolves to ``notFound`` from any
        service over the same store and cannot be created again. Nothing is
        tombstoned for a DID this hub does not hold.

        Returns
        -------
        bool
            ``True`` if a local document existed.
        """
        existed = self._store.delete_identity(did)
        self._cache.evict(did)
        self._keys.remove(did)
        if existed:
            self._store.mark_did_deactivated(did)
            logger.info("DID deactivated: %s", did)
        return existed

    def forget(self, did: str) -> None:
        """Drop cached state for *did* after a rolled-back transaction."""
        self._cache.evict(did)
        self._keys.remove(did)

    # ------------------------------------------------------------------
    # Signatures
    # ------------------------------------------------------------------

    def sign_message(self, did: str, message: str | bytes) -> str:
        """Sign the SHA-256 digest of *message* with the DID's private key.

        Returns
        -------
        str
            Hex-encoded signature.

        Raises
        ------
        DIDError
            If no private key for *did* is held by this service.
        """
        try:
            return self._keys.sign(did, _digest(message)).hex()
        except KeyError as exc:
            raise DIDError(f"No signing key held for {did}", code="NO_SIGNING_KEY") from exc

    def can_sign(self, did: str) -> bool:
        return self._keys.has_key(did)

    def verify_did_ownership(self, did: str, signature: str | bytes, message: str | bytes) -> bool:
        """Check *signature* over the SHA-256 digest of *message* against the DID's primary key.

        The signature scheme is chosen from the verification method type.
        Returns ``False`` on any failure; never raises.
        """
        document = self.get_document(did)
        if document is None:
            return False
        method = document.primary_verification_method()
        if method is None:
            return False
        manager = MANAGERS_BY_METHOD_TYPE.get(method.type)
        if manager is None:
            logger.warning("No verifier for verification method type %s", method.type)
            return False
        try:
            signature_bytes = bytes.fromhex(signature) if isinstance(signature, str) else signature
            key = public_key_bytes(method)
        except ValueError:
            return False
        return manager.verify(key, signature_bytes, _digest(message))

    # ------------------------------------------------------------------
    # Query
    # ------------------------------------------------------------------

    def list_local_dids(self) -> list[str]:
        return [identity.did for identity in self._store.list_identities()]

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _get_local(self, did: str) -> DIDDocument | None:
        cached = self._cache.get(did)
        if cached is not None:
            return cached
        identity = self._store.get_identity(did)
        if identity is None:
            return None
        try:
            document = DIDDocument.from_dict(identity.document)
        except ValueError:
            logger.exception("Stored DID document for %s is invalid", did)
            raise
        self._cache.set(did, document)
        return document

    def _require_local(self, did: str) -> DIDDocument:
        document = self._get_local(did)
        if document is None:
            raise NotFoundError("DID", did)
        return document

    def _persist(self, document: DIDDocument) -> None:
        identity = self._store.get_identity(document.id)
        if identity is None:
            raise NotFoundError("DID", document.id)
        identity.document = document.to_dict()
        identity.updated_at = document.updated
        self._store.update_identity(identity)
        self._cache.set(document.id, document)

    def _document_from_did_key(self, did: str) -> DIDDocument:
        public_bytes = public_key_from_did_key(did)
        method = VerificationMethod(
            id=did + PRIMARY_KEY_FRAGMENT,
            type=KEY_MANAGERS["key"].verification_method_type,
            controller=did,
            public_key_multibase=ed25519_to_multibase(public_bytes),
        )
        return DIDDocument(
            id=did,
            controller=did,
            verification_method=[method],
            authentication=[method.id],
            assertion_method=[method.id],
        )


__all__ = ["DIDService", "PRIMARY_KEY_FRAGMENT", "public_key_bytes"]
