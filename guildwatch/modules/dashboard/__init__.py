"""Read-only dashboard queries over tracked guild data."""

from .service import DEATH_STATS_RANGES, DashboardService, range_start

__all__ = ["DEATH_STATS_RANGES", "DashboardService", "range_start"]
