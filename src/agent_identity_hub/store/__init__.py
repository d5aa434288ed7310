"""Identity store: persistence contract and the in-memory backend."""
from __future__ import annotations

from agent_identity_hub.store.base import AttestationFilter, IdentityStore
from agent_identity_hub.store.memory import InMemoryIdentityStore

__all__ = ["AttestationFilter", "IdentityStore", "InMemoryIdentityStore"]
