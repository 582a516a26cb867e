"""
Threat tier heuristic for enemy players.

Pure function, evaluated on read and never persisted. Rules are checked in
order; the first match wins:

    HIGH    kills_24h > 2, or level > 300 while online
    MEDIUM  kills_24h > 0, or level > 200
    LOW     otherwise
"""

from __future__ import annotations

import enum

HIGH_KILLS_THRESHOLD = 2
HIGH_LEVEL_THRESHOLD = 300
MEDIUM_LEVEL_THRESHOLD = 200


class ThreatTier(str, enum.Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


def classify_threat(kills_24h: int, level: int, is_online: bool) -> ThreatTier:
    if kills_24h > HIGH_KILLS_THRESHOLD or (
        level > HIGH_LEVEL_THRESHOLD and is_online
    ):
        return ThreatTier.HIGH
    if kills_24h > 0 or level > MEDIUM_LEVEL_THRESHOLD:
        return ThreatTier.MEDIUM
    return ThreatTier.LOW
