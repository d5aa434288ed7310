"""TrustEngine: computes, persists and tracks agent trust scores.

The engine gathers a :class:`~agent_identity_hub.trust.scoring.TrustInputs`
snapshot from the store, hands it to the pure scoring function, records a
:class:`~agent_identity_hub.models.TrustScoreRecord` and overwrites
``Agent.trust_score``. Recalculations for the same agent are serialised
by a per-agent lock; different agents never contend.
"""
from __future__ import annotations

import datetime
import logging
import threading
from collections import defaultdict

from agent_identity_hub.clock import Clock, utc_now
from agent_identity_hub.config import HubConfig
from agent_identity_hub.identity.manager import IdentityManager
from agent_identity_hub.models import AgentStatus, TrustScoreRecord
from agent_identity_hub.store import AttestationFilter, IdentityStore
from agent_identity_hub.trust.scoring import TrustInputs, TrustScoreCalculation, compute_trust_score

logger = logging.getLogger(__name__)

ATTESTATION_SAMPLE_SIZE: int = 100
ACTIVITY_SAMPLE_SIZE: int = 100
_SWEEP_PAGE_SIZE: int = 100


class TrustEngine:
    """Trust score computation and history.

    Parameters
    ----------
    store:
        The identity store.
    identities:
        Identity manager used for agent lookups.
    config:
        Hub configuration (decay and boost rates).
    clock:
        Source of the current UTC time.
    """

    def __init__(
        self,
        store: IdentityStore,
        identities: IdentityManager,
        config: HubConfig | None = None,
        clock: Clock = utc_now,
    ) -> None:
        self._store = store
        self._identities = identities
        self._config = config or HubConfig()
        self._clock = clock
        self._agent_locks: dict[str, threading.Lock] = defaultdict(threading.Lock)
        self._locks_guard = threading.Lock()

    def _lock_for(self, agent_id: str) -> threading.Lock:
        with self._locks_guard:
            return self._agent_locks[agent_id]

    # ------------------------------------------------------------------
    # Scoring
    # ------------------------------------------------------------------

    def snapshot(self, agent_id: str, now: datetime.datetime | None = None) -> TrustInputs:
        """Collect the scoring inputs for *agent_id* as of *now*.

        Raises
        ------
        NotFoundError
            If the agent does not exist.
        """
        agent = self._identities.get_agent(agent_id)
        current = now or self._clock()
        attestations, _ = self._store.list_attestations(
            AttestationFilter(subject=agent.did, valid_only=True, valid_at=current),
            page=1,
            limit=ATTESTATION_SAMPLE_SIZE,
        )
        incoming, outgoing = self._store.list_relationships(agent.id)
        return TrustInputs(
            agent_id=agent.id,
            created_at=agent.created_at,
            reputation=agent.reputation,
            attestation_types=[a.type for a in attestations],
            activities=self._store.list_activities(agent.id, limit=ACTIVITY_SAMPLE_SIZE),
            relationship_trust_levels=[r.trust_level for r in incoming + outgoing],
            unresolved_anomalies=self._store.list_anomalies(agent.id, resolved=False),
        )

    def calculate_trust_score(
        self, agent_id: str, now: datetime.datetime | None = None
    ) -> TrustScoreCalculation:
        """Recompute, persist and return the trust score for *agent_id*.

        Raises
        ------
        NotFoundError
            If the agent does not exist.
        """
        with self._lock_for(agent_id):
            current = now or self._clock()
            inputs = self.snapshot(agent_id, current)
            calculation = compute_trust_score(
                inputs,
                current,
                decay_rate=self._config.trust_decay_rate,
                boost_rate=self._config.trust_boost_rate,
            )
            with self._store.transaction():
                self._store.add_trust_score(
                    TrustScoreRecord(
                        agent_id=inputs.agent_id,
                        score=calculation.final_score,
                        reason=calculation.reason,
                        calculated_at=current,
                    )
                )
                agent = self._identities.get_agent(inputs.agent_id)
                agent.trust_score = calculation.final_score
                self._store.update_agent(agent)

        logger.info(
            "Trust score calculated for %s: %.3f (%s)",
            inputs.agent_id,
            calculation.final_score,
            calculation.level.name,
        )
        return calculation

    def recalculate_all(self) -> dict[str, float]:
        """Recompute scores for every active agent.

        Each agent is scored independently; a failure is logged and the
        sweep moves on. Returns the new score per successfully scored agent.
        """
        scores: dict[str, float] = {}
        page = 1
        while True:
            agents, total = self._store.list_agents(
                status=AgentStatus.ACTIVE, page=page, limit=_SWEEP_PAGE_SIZE
            )
            for agent in agents:
                try:
                    scores[agent.id] = self.calculate_trust_score(agent.id).final_score
                except Exception:
                    logger.exception("Trust recalculation failed for %s", agent.id)
            if page * _SWEEP_PAGE_SIZE >= total or not agents:
                break
            page += 1
        logger.info("Trust sweep complete: %d agent(s) rescored", len(scores))
        return scores

    # ------------------------------------------------------------------
    # History
    # ------------------------------------------------------------------

    def get_trust_history(self, agent_id: str, days: int = 30) -> list[TrustScoreRecord]:
        """Return score records from the last *days* days, oldest first."""
        since = self._clock() - datetime.timedelta(days=days)
        return self._store.list_trust_scores(agent_id, since=since)

    def get_trust_trend(self, agent_id: str, window: int = 5, threshold: float = 0.03) -> str:
        """Classify recent score movement as ``improving``, ``declining`` or ``stable``.

        Compares the oldest and newest score among the last *window*
        records. Fewer than two records is always ``stable``.
        """
        records = self._store.list_trust_scores(agent_id)
        if len(records) < 2:
            return "stable"
        recent = records[-window:]
        delta = recent[-1].score - recent[0].score
        if delta >= threshold:
            return "improving"
        if delta <= -threshold:
            return "declining"
        return "stable"


__all__ = ["TrustEngine"]
