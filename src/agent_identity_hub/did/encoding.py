"""DID string encoding for the ``did:key`` and ``did:ethr`` methods.

did:key encoding
----------------
1. Take the 32-byte raw Ed25519 public key.
2. Prepend the Ed25519 multicodec prefix ``0xed 0x01``.
3. Encode the 34-byte result with base58btc and prefix it with ``z``
   (the multibase indicator for base58btc).
4. Assemble ``did:key:z<base58btc>``.

did:ethr encoding
-----------------
``did:ethr:0x<hex>`` where ``<hex>`` is the 33-byte compressed secp256k1
public key.
"""
from __future__ import annotations

import re

_ED25519_MULTICODEC_PREFIX: bytes = b"\xed\x01"

_BASE58_ALPHABET: str = "123456789ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz"

_DID_PATTERN = re.compile(r"^did:(?P<method>[a-z0-9]+):(?P<identifier>[A-Za-z0-9._:%\-]+)$")


def base58btc_encode(data: bytes) -> str:
    """Encode *data* to a base58btc string."""
    n = int.from_bytes(data, "big")
    result: list[str] = []
    while n > 0:
        n, remainder = divmod(n, 58)
        result.append(_BASE58_ALPHABET[remainder])
    # Leading zero bytes are preserved as '1' characters
    for byte in data:
        if byte != 0:
            break
        result.append("1")
    return "".join(reversed(result))


def base58btc_decode(encoded: str) -> bytes:
    """Decode a base58btc string back to bytes.

    Raises
    ------
    ValueError
        If the string contains a character outside the base58btc alphabet.
    """
    n = 0
    for char in encoded:
        index = _BASE58_ALPHABET.find(char)
        if index < 0:
            raise ValueError(f"Invalid base58btc character {char!r} in {encoded!r}")
        n = n * 58 + index
    body = n.to_bytes((n.bit_length() + 7) // 8, "big") if n > 0 else b""
    pad_size = len(encoded) - len(encoded.lstrip("1"))
    return b"\x00" * pad_size + body


def parse_did(did: str) -> tuple[str, str]:
    """Split a DID into ``(method, identifier)``.

    Raises
    ------
    ValueError
        If *did* is not syntactically a DID.
    """
    match = _DID_PATTERN.match(did)
    if not match:
        raise ValueError(f"Malformed DID {did!r}. Expected format: did:<method>:<identifier>")
    return match.group("method"), match.group("identifier")


def is_valid_did(did: str) -> bool:
    return bool(_DID_PATTERN.match(did))


# ------------------------------------------------------------------
# did:key
# ------------------------------------------------------------------


def ed25519_to_multibase(public_key: bytes) -> str:
    """Return the ``z``-prefixed multibase form of an Ed25519 public key."""
    return "z" + base58btc_encode(_ED25519_MULTICODEC_PREFIX + public_key)


def multibase_to_ed25519(multibase: str) -> bytes:
    """Decode a ``z``-prefixed multibase Ed25519 key back to 32 raw bytes.

    Raises
    ------
    ValueError
        If the value is not base58btc multibase or carries another multicodec.
    """
    if not multibase.startswith("z") or len(multibase) < 2:
        raise ValueError(f"Expected base58btc multibase value, got {multibase!r}")
    decoded = base58btc_decode(multibase[1:])
    if not decoded.startswith(_ED25519_MULTICODEC_PREFIX):
        raise ValueError(
            f"Unsupported multicodec prefix 0x{decoded[:2].hex()}; only Ed25519 (0xed01) is supported."
        )
    return decoded[len(_ED25519_MULTICODEC_PREFIX):]


def did_key_from_public_key(public_key: bytes) -> str:
    """Encode a raw Ed25519 public key as ``did:key:z<base58btc>``."""
    return f"did:key:{ed25519_to_multibase(public_key)}"


def public_key_from_did_key(did: str) -> bytes:
    """Recover the Ed25519 public key embedded in a ``did:key`` DID."""
    if not did.startswith("did:key:z"):
        raise ValueError(f"Invalid did:key format: {did!r}")
    return multibase_to_ed25519(did[len("did:key:"):])


# ------------------------------------------------------------------
# did:ethr
# ------------------------------------------------------------------


def did_ethr_from_public_key(public_key: bytes) -> str:
    """Encode a compressed secp256k1 public key as ``did:ethr:0x<hex>``."""
    return f"did:ethr:0x{public_key.hex()}"


__all__ = [
    "base58btc_decode",
    "base58btc_encode",
    "did_ethr_from_public_key",
    "did_key_from_public_key",
    "ed25519_to_multibase",
    "is_valid_did",
    "multibase_to_ed25519",
    "parse_did",
    "public_key_from_did_key",
]
