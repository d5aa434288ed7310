"""Key managers for the supported DID methods, plus a private-key ring.

Two signature schemes are supported:

* ``did:key``: Ed25519, raw 32-byte keys, 64-byte signatures.
* ``did:ethr``: secp256k1 ECDSA over SHA-256, 33-byte compressed public
  keys, DER-encoded signatures.

Each manager handles key material as raw bytes so callers can store or
transmit keys without depending on ``cryptography`` types.
"""
from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.asymmetric.ed25519 import (
    Ed25519PrivateKey,
    Ed25519PublicKey,
)
from cryptography.hazmat.primitives.serialization import (
    Encoding,
    NoEncryption,
    PrivateFormat,
    PublicFormat,
)


class KeyManager(ABC):
    """Generate, sign, and verify for one signature scheme.

    Attributes
    ----------
    verification_method_type:
        The DID document verification method type produced for this scheme.
    proof_type:
        The proof ``type`` written into attestations signed with this scheme.
    """

    verification_method_type: str
    proof_type: str

    @abstractmethod
    def generate_keypair(self) -> tuple[bytes, bytes]:
        """Return a new ``(private_key_bytes, public_key_bytes)`` pair."""

    @abstractmethod
    def load_public_key(self, public_key_bytes: bytes) -> bytes:
        """Validate *public_key_bytes* and return its canonical encoding.

        Raises ValueError when the bytes are not a key of this scheme.
        """

    @abstractmethod
    def sign(self, private_key_bytes: bytes, data: bytes) -> bytes:
        """Sign *data* and return the signature bytes."""

    @abstractmethod
    def verify(self, public_key_bytes: bytes, signature: bytes, data: bytes) -> bool:
        """Return ``True`` if *signature* over *data* is valid. Never raises."""


class Ed25519KeyManager(KeyManager):
    """Ed25519 key management: generate, sign, and verify.

    Example
    -------
    ::

        manager = Ed25519KeyManager()
        private_bytes, public_bytes = manager.generate_keypair()
        signature = manager.sign(private_bytes, b"hello world")
        assert manager.verify(public_bytes, signature, b"hello world")
    """

    verification_method_type = "Ed25519VerificationKey2020"
    proof_type = "Ed25519Signature2020"

    def generate_keypair(self) -> tuple[bytes, bytes]:
        """Generate a new Ed25519 keypair.

        Returns
        -------
        tuple[bytes, bytes]
            A ``(private_key_bytes, public_key_bytes)`` pair, both 32 raw bytes.
        """
        private_key = Ed25519PrivateKey.generate()
        private_bytes = private_key.private_bytes(
            Encoding.Raw, PrivateFormat.Raw, NoEncryption()
        )
        public_bytes = private_key.public_key().public_bytes(Encoding.Raw, PublicFormat.Raw)
        return private_bytes, public_bytes

    def load_public_key(self, public_key_bytes: bytes) -> bytes:
        public_key = Ed25519PublicKey.from_public_bytes(public_key_bytes)
        return public_key.public_bytes(Encoding.Raw, PublicFormat.Raw)

    def sign(self, private_key_bytes: bytes, data: bytes) -> bytes:
        private_key = Ed25519PrivateKey.from_private_bytes(private_key_bytes)
        return private_key.sign(data)

    def verify(self, public_key_bytes: bytes, signature: bytes, data: bytes) -> bool:
        try:
            public_key = Ed25519PublicKey.from_public_bytes(public_key_bytes)
            public_key.verify(signature, data)
            return True
        except (InvalidSignature, ValueError):
            return False


class Secp256k1KeyManager(KeyManager):
    """secp256k1 ECDSA key management for ``did:ethr`` identifiers.

    Private keys are 32-byte big-endian scalars; public keys are 33-byte
    SEC1 compressed points.
    """

    verification_method_type = "EcdsaSecp256k1VerificationKey2019"
    proof_type = "EcdsaSecp256k1Signature2019"

    def generate_keypair(self) -> tuple[bytes, bytes]:
        private_key = ec.generate_private_key(ec.SECP256K1())
        private_bytes = private_key.private_numbers().private_value.to_bytes(32, "big")
        public_bytes = private_key.public_key().public_bytes(
            Encoding.X962, PublicFormat.CompressedPoint
        )
        return private_bytes, public_bytes

    def load_public_key(self, public_key_bytes: bytes) -> bytes:
        """Accept a compressed or uncompressed SEC1 point; return it compressed."""
        public_key = ec.EllipticCurvePublicKey.from_encoded_point(ec.SECP256K1(), public_key_bytes)
        return public_key.public_bytes(Encoding.X962, PublicFormat.CompressedPoint)

    def sign(self, private_key_bytes: bytes, data: bytes) -> bytes:
        private_key = ec.derive_private_key(
            int.from_bytes(private_key_bytes, "big"), ec.SECP256K1()
        )
        return private_key.sign(data, ec.ECDSA(hashes.SHA256()))

    def verify(self, public_key_bytes: bytes, signature: bytes, data: bytes) -> bool:
        try:
            public_key = ec.EllipticCurvePublicKey.from_encoded_point(
                ec.SECP256K1(), public_key_bytes
            )
            public_key.verify(signature, data, ec.ECDSA(hashes.SHA256()))
            return True
        except (InvalidSignature, ValueError):
            return False


KEY_MANAGERS: dict[str, KeyManager] = {
    "key": Ed25519KeyManager(),
    "ethr": Secp256k1KeyManager(),
}

# Verification method type -> key manager, used when verifying against a document.
MANAGERS_BY_METHOD_TYPE: dict[str, KeyManager] = {
    manager.verification_method_type: manager for manager in KEY_MANAGERS.values()
}


@dataclass(frozen=True)
class KeyEntry:
    """Private key material for a locally created DID."""

    did: str
    method: str
    private_key: bytes
    public_key: bytes


class KeyRing:
    """Thread-safe in-memory holder of private keys for locally created DIDs.

    Private keys never leave the ring; callers ask the ring to sign.
    """

    def __init__(self) -> None:
        self._entries: dict[str, KeyEntry] = {}
        self._lock = threading.Lock()

    def add(self, entry: KeyEntry) -> None:
        with self._lock:
            self._entries[entry.did] = entry

    def remove(self, did: str) -> None:
        with self._lock:
            self._entries.pop(did, None)

    def has_key(self, did: str) -> bool:
        with self._lock:
            return did in self._entries

    def sign(self, did: str, data: bytes) -> bytes:
        """Sign *data* with the private key held for *did*.

        Raises
        ------
        KeyError
            If no private key is held for *did*.
        """
        with self._lock:
            entry = self._entries.get(did)
        if entry is None:
            raise KeyError(
                f"No private key available for {did!r}. "
                "The DID must be created by this service instance."
            )
        return KEY_MANAGERS[entry.method].sign(entry.private_key, data)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


__all__ = [
    "Ed25519KeyManager",
    "KEY_MANAGERS",
    "KeyEntry",
    "KeyManager",
    "KeyRing",
    "MANAGERS_BY_METHOD_TYPE",
    "Secp256k1KeyManager",
]
