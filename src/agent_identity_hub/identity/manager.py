"""IdentityManager: agent lifecycle, relationships, and the activity log.

Creating an agent is a single transactional unit: the DID document, the
Agent row, the Identity row, and the ``IDENTITY_CREATED`` activity commit
together or not at all. Deleting an agent cascades to its dependent rows
and deactivates its DID, also inside one transaction.

Every activity appended here is persisted to the store first and then
forwarded to the configured :class:`~agent_identity_hub.activity_log.ActivitySink`
instances.
"""
from __future__ import annotations

import dataclasses
import logging
import uuid
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field

from agent_identity_hub.activity_log import ActivitySink
from agent_identity_hub.clock import Clock, utc_now
from agent_identity_hub.config import HubConfig
from agent_identity_hub.did.document import ServiceEndpoint
from agent_identity_hub.did.service import DIDService, public_key_bytes
from agent_identity_hub.errors import NotFoundError, ValidationError
from agent_identity_hub.models import (
    ActivityType,
    Agent,
    AgentActivity,
    AgentRelationship,
    AgentStatus,
    AgentType,
    Identity,
    RelationshipType,
)
from agent_identity_hub.store import IdentityStore

logger = logging.getLogger(__name__)


@dataclass
class CreateAgentRequest:
    """Parameters for :meth:`IdentityManager.create_agent`."""

    name: str
    type: AgentType
    description: str | None = None
    capabilities: list[str] = field(default_factory=list)
    metadata: dict[str, object] = field(default_factory=dict)


@dataclass
class UpdateAgentRequest:
    """Partial update for :meth:`IdentityManager.update_agent`. ``None`` fields are left unchanged.

    ``metadata`` is merged into the existing metadata rather than replacing it.
    """

    name: str | None = None
    description: str | None = None
    status: AgentStatus | None = None
    capabilities: list[str] | None = None
    metadata: dict[str, object] | None = None


class IdentityManager:
    """Owns Agent, Identity, relationship, and activity records.

    Parameters
    ----------
    store:
        The identity store.
    dids:
        DID service used to create and deactivate agent DIDs.
    config:
        Hub configuration (DID method, service base URL).
    sinks:
        Activity sinks receiving every appended activity.
    clock:
        Source of the current UTC time.
    """

    def __init__(
        self,
        store: IdentityStore,
        dids: DIDService,
        config: HubConfig | None = None,
        sinks: Sequence[ActivitySink] = (),
        clock: Clock = utc_now,
    ) -> None:
        self._store = store
        self._dids = dids
        self._config = config or HubConfig()
        self._sinks = list(sinks)
        self._clock = clock
        self._deletion_listeners: list[Callable[[Agent], None]] = []

    # ------------------------------------------------------------------
    # Agent lifecycle
    # ------------------------------------------------------------------

    def create_agent(
        self,
        request: CreateAgentRequest,
        owner_did: str | None = None,
    ) -> tuple[Agent, Identity]:
        """Create an agent together with its DID and identity.

        Parameters
        ----------
        request:
            Name, type and optional description/capabilities/metadata.
        owner_did:
            DID of the creating principal, recorded in metadata.

        Returns
        -------
        tuple[Agent, Identity]
            The persisted agent and identity rows.

        Raises
        ------
        ValidationError
            If the name is empty.
        """
        if not request.name or not request.name.strip():
            raise ValidationError("Agent name must not be empty.")

        agent_id = uuid.uuid4().hex
        mcp_service = ServiceEndpoint(
            id="#mcp",
            type="MCPService",
            endpoint=f"{self._config.service_base_url.rstrip('/')}/mcp",
        )
        did: str | None = None
        try:
            with self._store.transaction():
                did, document = self._dids.create_did(
                    self._config.default_did_method,
                    services=[mcp_service],
                    agent_id=agent_id,
                )
                primary = document.primary_verification_method()
                now = self._clock()
                agent = Agent(
                    id=agent_id,
                    did=did,
                    name=request.name,
                    description=request.description,
                    type=request.type,
                    public_key=public_key_bytes(primary).hex() if primary else "",
                    capabilities=list(request.capabilities),
                    metadata={
                        **request.metadata,
                        "ownerDid": owner_did,
                        "createdBy": owner_did or "system",
                    },
                    created_at=now,
                    updated_at=now,
                    last_active_at=now,
                )
                self._store.add_agent(agent)
                self.log_activity(
                    agent_id,
                    ActivityType.IDENTITY_CREATED,
                    f"Agent identity created: {request.name}",
                    metadata={"did": did, "type": request.type.value},
                )
        except Exception:
            if did is not None:
                self._dids.forget(did)
            logger.exception("Failed to create agent %r", request.name)
            raise

        identity = self._store.get_identity(did)
        if identity is None:
            raise NotFoundError("Identity", did)
        logger.info("Agent created: %s (%s, type=%s)", agent.id, did, request.type.value)
        return agent, identity

    def find_agent(self, id_or_did: str) -> Agent | None:
        """Return the agent with the given id or DID, or ``None``."""
        if id_or_did.startswith("did:"):
            return self._store.get_agent_by_did(id_or_did)
        return self._store.get_agent(id_or_did)

    def get_agent(self, id_or_did: str) -> Agent:
        """Return the agent with the given id or DID.

        Raises
        ------
        NotFoundError
            If no such agent exists.
        """
        agent = self.find_agent(id_or_did)
        if agent is None:
            raise NotFoundError("Agent", id_or_did)
        return agent

    def list_agents(
        self,
        status: AgentStatus | None = None,
        agent_type: AgentType | None = None,
        search: str | None = None,
        page: int = 1,
        limit: int = 20,
    ) -> tuple[list[Agent], int]:
        return self._store.list_agents(
            status=status, agent_type=agent_type, search=search, page=page, limit=limit
        )

    def update_agent(self, agent_id: str, request: UpdateAgentRequest) -> Agent:
        """Apply a partial update and log ``IDENTITY_UPDATED``."""
        agent = self.get_agent(agent_id)
        changed: list[str] = []
        if request.name is not None:
            agent.name = request.name
            changed.append("name")
        if request.description is not None:
            agent.description = request.description
            changed.append("description")
        if request.status is not None:
            agent.status = request.status
            changed.append("status")
        if request.capabilities is not None:
            agent.capabilities = list(request.capabilities)
            changed.append("capabilities")
        if request.metadata is not None:
            agent.metadata = {**agent.metadata, **request.metadata}
            changed.append("metadata")
        agent.updated_at = self._clock()
        self._store.update_agent(agent)
        self.log_activity(
            agent.id,
            ActivityType.IDENTITY_UPDATED,
            "Agent updated",
            metadata={"updates": changed},
        )
        return agent

    def set_status(self, agent_id: str, status: AgentStatus) -> Agent:
        """Administrative status transition."""
        return self.update_agent(agent_id, UpdateAgentRequest(status=status))

    def adjust_reputation(self, agent_id: str, delta: int) -> Agent:
        """Add *delta* to an agent's reputation counter."""
        agent = self.get_agent(agent_id)
        agent.reputation += delta
        agent.updated_at = self._clock()
        self._store.update_agent(agent)
        return agent

    def delete_agent(self, agent_id: str) -> None:
        """Delete an agent, cascade to its records, and deactivate its DID."""
        agent = self.get_agent(agent_id)
        with self._store.transaction():
            self._dids.deactivate_did(agent.did)
            self._store.delete_agent(agent.id)
        logger.info("Agent deleted: %s (%s)", agent.id, agent.did)
        for listener in self._deletion_listeners:
            listener(agent)

    def add_deletion_listener(self, listener: Callable[[Agent], None]) -> None:
        """Call *listener* with every agent after its deletion has committed.

        Services holding per-agent caches register here to drop the
        entries the store cascade removed.
        """
        self._deletion_listeners.append(listener)

    # ------------------------------------------------------------------
    # Relationships
    # ------------------------------------------------------------------

    def create_relationship(
        self,
        source_agent_id: str,
        target_agent_id: str,
        relationship_type: RelationshipType,
        permissions: list[str] | None = None,
        trust_level: float = 0.5,
    ) -> AgentRelationship:
        """Create (or update the permissions of) a directed relationship.

        Raises
        ------
        ValidationError
            If source and target are the same agent, or *trust_level* is
            outside ``[0, 1]``.
        NotFoundError
            If either agent does not exist.
        """
        if source_agent_id == target_agent_id:
            raise ValidationError("Cannot create relationship with self")
        if not 0.0 <= trust_level <= 1.0:
            raise ValidationError(f"trust_level must be within [0, 1], got {trust_level}")
        self.get_agent(source_agent_id)
        self.get_agent(target_agent_id)
        now = self._clock()
        relationship = AgentRelationship(
            source_agent_id=source_agent_id,
            target_agent_id=target_agent_id,
            relationship_type=relationship_type,
            trust_level=trust_level,
            permissions=list(permissions or []),
            established_at=now,
            last_interaction_at=now,
        )
        return self._store.upsert_relationship(relationship)

    def get_relationships(self, agent_id: str) -> dict[str, list[AgentRelationship]]:
        incoming, outgoing = self._store.list_relationships(agent_id)
        return {"incoming": incoming, "outgoing": outgoing}

    def record_interaction(self, source_agent_id: str, target_agent_id: str) -> None:
        """Count an interaction on every source->target relationship and log it."""
        source = self.get_agent(source_agent_id)
        now = self._clock()
        _, outgoing = self._store.list_relationships(source_agent_id)
        for relationship in outgoing:
            if relationship.target_agent_id != target_agent_id:
                continue
            self._store.update_relationship(
                dataclasses.replace(
                    relationship,
                    interaction_count=relationship.interaction_count + 1,
                    last_interaction_at=now,
                )
            )
        source.last_active_at = now
        self._store.update_agent(source)
        self.log_activity(
            source_agent_id,
            ActivityType.INTERACTION,
            f"Interaction with {target_agent_id}",
            related_agent_ids=[target_agent_id],
        )

    # ------------------------------------------------------------------
    # Activity log
    # ------------------------------------------------------------------

    def get_agent_activity(self, agent_id: str, limit: int = 50) -> list[AgentActivity]:
        return self._store.list_activities(agent_id, limit=limit)

    def log_activity(
        self,
        agent_id: str,
        activity_type: ActivityType,
        description: str,
        metadata: dict[str, object] | None = None,
        related_agent_ids: list[str] | None = None,
    ) -> AgentActivity:
        """Append an activity for *agent_id* and forward it to the sinks."""
        activity = AgentActivity(
            agent_id=agent_id,
            activity_type=activity_type,
            description=description,
            metadata=dict(metadata or {}),
            related_agent_ids=list(related_agent_ids or []),
            timestamp=self._clock(),
        )
        self.append_activity(activity)
        return activity

    def append_activity(self, activity: AgentActivity) -> None:
        """Persist a pre-built activity record and forward it to the sinks."""
        self._store.append_activity(activity)
        for sink in self._sinks:
            sink.emit(activity)


__all__ = ["CreateAgentRequest", "IdentityManager", "UpdateAgentRequest"]
