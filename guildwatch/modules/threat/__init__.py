"""Enemy threat classification."""

from .classifier import ThreatTier, classify_threat
from .service import ThreatService

__all__ = ["ThreatTier", "classify_threat", "ThreatService"]
