"""Trust tiers derived from the final ``[0, 1]`` trust score.

A tier is a coarse label for callers that gate behaviour on trust
(``hub.trust.calculate_trust_score(agent_id).level >= TrustLevel.ELEVATED``).
Boundaries are half-open: a score exactly on a boundary belongs to the
higher tier.
"""
from __future__ import annotations

import bisect
from enum import IntEnum


class TrustLevel(IntEnum):
    """Ordered trust tiers; comparisons follow the integer value.

    A new agent with neutral signals lands in ``STANDARD``. ``UNTRUSTED``
    usually means several unresolved anomalies or a heavily negative
    reputation.
    """

    UNTRUSTED = 0
    BASIC = 1
    STANDARD = 2
    ELEVATED = 3
    FULL = 4


# Lowest final score at which each tier above UNTRUSTED starts.
LEVEL_THRESHOLDS: dict[TrustLevel, float] = {
    TrustLevel.BASIC: 0.2,
    TrustLevel.STANDARD: 0.4,
    TrustLevel.ELEVATED: 0.65,
    TrustLevel.FULL: 0.85,
}

_BOUNDARIES: list[float] = sorted(LEVEL_THRESHOLDS.values())


def derive_level(score: float) -> TrustLevel:
    """Return the tier for a final trust *score*.

    Scores below the ``BASIC`` boundary (including negative input) map to
    ``UNTRUSTED``; anything at or above ``0.85`` maps to ``FULL``.
    """
    return TrustLevel(bisect.bisect_right(_BOUNDARIES, score))


__all__ = ["LEVEL_THRESHOLDS", "TrustLevel", "derive_level"]
