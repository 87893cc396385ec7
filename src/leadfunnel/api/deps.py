"""Service wiring shared by the API routers."""

from dataclasses import dataclass

from fastapi import Request

from leadfunnel.affiliates.service import AffiliateService
from leadfunnel.api.rate_limit import SubmissionGate
from leadfunnel.attribution.engine import CommissionEngine
from leadfunnel.leads.intake import Gate, LeadIntake
from leadfunnel.leads.service import LeadService
from leadfunnel.settings import settings
from leadfunnel.stats.aggregator import StatsService
from leadfunnel.storage.db import Database, db


@dataclass
class Services:
    """Everything a request handler needs, bound to one database."""

    database: Database
    engine: CommissionEngine
    leads: LeadService
    affiliates: AffiliateService
    stats: StatsService
    intake: LeadIntake

    @classmethod
    def build(cls, database: Database | None = None, gate: Gate | None = None) -> "Services":
        database = database or db
        engine = CommissionEngine(database)
        leads = LeadService(database, engine)
        return cls(
            database=database,
            engine=engine,
            leads=leads,
            affiliates=AffiliateService(database),
            stats=StatsService(database, top_n=settings.stats_top_n),
            intake=LeadIntake(gate or SubmissionGate(), leads),
        )


def get_services(request: Request) -> Services:
    """FastAPI dependency returning the app's services."""
    return request.app.state.services
