"""Agent lifecycle management."""
from __future__ import annotations

from agent_identity_hub.identity.manager import (
    CreateAgentRequest,
    IdentityManager,
    UpdateAgentRequest,
)

__all__ = ["CreateAgentRequest", "IdentityManager", "UpdateAgentRequest"]
