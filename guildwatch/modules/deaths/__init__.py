"""On-demand death import from TibiaData."""

from .tracker import DeathTrackerService, classify_death

__all__ = ["DeathTrackerService", "classify_death"]
