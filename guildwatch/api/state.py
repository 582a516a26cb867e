"""
Service container held on ``app.state.services``.

Built once per process so per-guild sync locks and the HTTP connection pool
are shared by every request.
"""

from __future__ import annotations

from dataclasses import dataclass

from guildwatch.core.database.service import DatabaseService
from guildwatch.core.logging import get_logger
from guildwatch.modules.accounts import AccountService, MonitoringService
from guildwatch.modules.billing import BillingService, BusinessMetricsService
from guildwatch.modules.dashboard import DashboardService
from guildwatch.modules.deaths import DeathTrackerService
from guildwatch.modules.roster import RosterService
from guildwatch.modules.threat import ThreatService
from guildwatch.modules.tibiadata import TibiaDataClient


@dataclass
class Services:
    db: DatabaseService
    tibiadata: TibiaDataClient
    accounts: AccountService
    monitoring: MonitoringService
    roster: RosterService
    deaths: DeathTrackerService
    threat: ThreatService
    dashboard: DashboardService
    billing: BillingService
    metrics: BusinessMetricsService


def build_services(db: DatabaseService, client: TibiaDataClient) -> Services:
    return Services(
        db=db,
        tibiadata=client,
        accounts=AccountService(db, get_logger("guildwatch.accounts")),
        monitoring=MonitoringService(db, client, get_logger("guildwatch.monitoring")),
        roster=RosterService(db, client, get_logger("guildwatch.roster")),
        deaths=DeathTrackerService(db, client, get_logger("guildwatch.deaths")),
        threat=ThreatService(db, get_logger("guildwatch.threat")),
        dashboard=DashboardService(db, get_logger("guildwatch.dashboard")),
        billing=BillingService(db, get_logger("guildwatch.billing")),
        metrics=BusinessMetricsService(db, get_logger("guildwatch.metrics")),
    )
