"""Capability bearer tokens: HMAC-SHA256 signed, JWT-compatible encoding.

Token format
------------
A dot-separated string::

    base64url(header).base64url(payload).base64url(signature)

- header: ``{"alg": "HS256", "typ": "JWT"}``
- payload: ``{jti, sub, iss, iat, nbf, exp, capability: {actions, resources, conditions}}``
  with ``iat``/``nbf``/``exp`` as integer Unix seconds
- signature: HMAC-SHA256 over ``header.payload`` with the shared secret

Base64url segments are unpadded, as in RFC 7515. The codec verifies the
signature and structure only; time-window and revocation checks belong to
the capability issuer.
"""
from __future__ import annotations

import base64
import hashlib
import hmac
import json
from dataclasses import dataclass, field


# ---------------------------------------------------------------------------
# Custom exceptions
# ---------------------------------------------------------------------------


class TokenError(Exception):
    """Base class for all token-related errors."""


class TokenInvalidError(TokenError):
    """Raised when the token is structurally invalid (bad format or payload)."""

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(f"Invalid token: {reason}")


class TokenTamperedError(TokenError):
    """Raised when HMAC signature verification fails."""

    def __init__(self) -> None:
        super().__init__("Token signature verification failed")


# ---------------------------------------------------------------------------
# Claims
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CapabilityClaims:
    """Decoded token payload.

    Parameters
    ----------
    jti:
        Capability id.
    sub / iss:
        Subject and issuer DIDs.
    iat / nbf / exp:
        Issued-at, not-before and expiry as integer Unix seconds.
    actions / resources / conditions:
        The embedded capability grant.
    """

    jti: str
    sub: str
    iss: str
    iat: int
    nbf: int
    exp: int
    actions: list[str] = field(default_factory=list)
    resources: list[str] = field(default_factory=list)
    conditions: list[dict[str, object]] = field(default_factory=list)

    def to_payload(self) -> dict[str, object]:
        return {
            "jti": self.jti,
            "sub": self.sub,
            "iss": self.iss,
            "iat": self.iat,
            "nbf": self.nbf,
            "exp": self.exp,
            "capability": {
                "actions": list(self.actions),
                "resources": list(self.resources),
                "conditions": list(self.conditions),
            },
        }

    @classmethod
    def from_payload(cls, payload: dict[str, object]) -> "CapabilityClaims":
        """Build claims from a decoded payload.

        Raises
        ------
        TokenInvalidError
            When a required claim is missing or has the wrong type.
        """
        try:
            capability = payload["capability"]
            if not isinstance(capability, dict):
                raise TypeError("capability claim must be an object")
            return cls(
                jti=_require_str(payload, "jti"),
                sub=_require_str(payload, "sub"),
                iss=_require_str(payload, "iss"),
                iat=_require_int(payload, "iat"),
                nbf=_require_int(payload, "nbf"),
                exp=_require_int(payload, "exp"),
                actions=[str(a) for a in capability.get("actions", [])],
                resources=[str(r) for r in capability.get("resources", [])],
                conditions=list(capability.get("conditions", []) or []),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise TokenInvalidError(f"malformed claims: {exc}") from exc


def _require_str(payload: dict[str, object], key: str) -> str:
    value = payload[key]
    if not isinstance(value, str) or not value:
        raise TypeError(f"claim {key!r} must be a non-empty string")
    return value


def _require_int(payload: dict[str, object], key: str) -> int:
    value = payload[key]
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise TypeError(f"claim {key!r} must be a number")
    return int(value)


# ---------------------------------------------------------------------------
# Codec
# ---------------------------------------------------------------------------

_TOKEN_HEADER: dict[str, str] = {"alg": "HS256", "typ": "JWT"}


def _b64encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).decode("ascii").rstrip("=")


def _b64decode(segment: str) -> bytes:
    return base64.urlsafe_b64decode(segment + "=" * (-len(segment) % 4))


def _split_token(token: str) -> list[str]:
    if not token.isascii():
        raise TokenInvalidError("Token contains non-ASCII characters")
    parts = token.split(".")
    if len(parts) != 3:
        raise TokenInvalidError(f"Expected 3 dot-separated parts, got {len(parts)}")
    return parts


_HEADER_B64: str = _b64encode(json.dumps(_TOKEN_HEADER, separators=(",", ":")).encode("utf-8"))


class CapabilityTokenCodec:
    """Sign and verify capability tokens with a shared HMAC secret.

    Example
    -------
    ::

        codec = CapabilityTokenCodec(b"secret")
        token = codec.encode(claims)
        assert codec.decode(token) == claims
    """

    def __init__(self, secret: bytes | str) -> None:
        if not secret:
            raise ValueError("Token secret must not be empty.")
        self._secret = secret.encode("utf-8") if isinstance(secret, str) else secret

    def encode(self, claims: CapabilityClaims) -> str:
        """Produce a signed token string for *claims*."""
        payload_bytes = json.dumps(
            claims.to_payload(), sort_keys=True, separators=(",", ":")
        ).encode("utf-8")
        signing_input = f"{_HEADER_B64}.{_b64encode(payload_bytes)}"
        signature = self._compute_signature(signing_input.encode("ascii"))
        return f"{signing_input}.{signature}"

    def decode(self, token: str) -> CapabilityClaims:
        """Verify *token* and return its claims.

        Raises
        ------
        TokenInvalidError
            When the token has an unexpected format or payload.
        TokenTamperedError
            When signature verification fails.
        """
        header_b64, payload_b64, signature_b64 = _split_token(token)

        expected_sig = self._compute_signature(f"{header_b64}.{payload_b64}".encode("ascii"))
        if not hmac.compare_digest(signature_b64, expected_sig):
            raise TokenTamperedError()

        try:
            header = json.loads(_b64decode(header_b64))
            payload = json.loads(_b64decode(payload_b64))
        except (ValueError, UnicodeDecodeError) as exc:
            raise TokenInvalidError(f"Could not decode token: {exc}") from exc
        if not isinstance(header, dict) or header.get("alg") != "HS256":
            raise TokenInvalidError("unsupported algorithm")
        if not isinstance(payload, dict):
            raise TokenInvalidError("payload is not an object")
        return CapabilityClaims.from_payload(payload)

    @staticmethod
    def peek(token: str) -> dict[str, object]:
        """Decode the payload of *token* WITHOUT verifying its signature.

        Intended for inspection tooling only.

        Raises
        ------
        TokenInvalidError
            When the token cannot be decoded.
        """
        parts = _split_token(token)
        try:
            payload = json.loads(_b64decode(parts[1]))
        except (ValueError, UnicodeDecodeError) as exc:
            raise TokenInvalidError(f"Could not decode payload: {exc}") from exc
        if not isinstance(payload, dict):
            raise TokenInvalidError("payload is not an object")
        return payload

    def _compute_signature(self, data: bytes) -> str:
        """Compute a base64url-encoded HMAC-SHA256 signature."""
        return _b64encode(hmac.new(self._secret, data, hashlib.sha256).digest())


__all__ = [
    "CapabilityClaims",
    "CapabilityTokenCodec",
    "TokenError",
    "TokenInvalidError",
    "TokenTamperedError",
]
