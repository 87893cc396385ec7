"""Dashboard rollups computed on demand from the current records."""

from collections import Counter
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta
from typing import Any, Iterable, Sequence

from leadfunnel.affiliates.service import AFFILIATE_STATUSES
from leadfunnel.leads.status import LeadStatus
from leadfunnel.logging_config import get_logger
from leadfunnel.storage.db import Database, db
from leadfunnel.storage.models import Affiliate, Lead, utcnow
from leadfunnel.storage.repo import AffiliateRepository, LeadRepository

logger = get_logger(__name__)

DIRECT_SOURCE = "direct"
DAILY_WINDOW_DAYS = 7
RECENT_ACTIVITY_LIMIT = 10


@dataclass
class LeadStats:
    """Lead snapshot for the operator dashboard."""

    total_leads: int = 0
    status_breakdown: dict[str, int] = field(default_factory=dict)
    qualified_count: int = 0
    referred_leads: int = 0
    conversion_rate: float = 0.0
    average_time_to_complete: float = 0.0
    top_states: list[dict[str, Any]] = field(default_factory=list)
    top_referral_sources: list[dict[str, Any]] = field(default_factory=list)
    daily_counts: list[dict[str, Any]] = field(default_factory=list)
    recent_activity: list[dict[str, Any]] = field(default_factory=list)

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class AffiliateStats:
    """Affiliate program snapshot."""

    total_affiliates: int = 0
    active_affiliates: int = 0
    status_breakdown: dict[str, int] = field(default_factory=dict)
    top_performers: list[dict[str, Any]] = field(default_factory=list)
    total_commissions: float = 0.0
    paid_commissions: float = 0.0
    pending_commissions: float = 0.0
    avg_commission_per_affiliate: float = 0.0

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


def conversion_rate(qualified: int, total: int) -> float:
    """qualified / total rounded to 4 places; 0 for an empty set."""
    if total <= 0:
        return 0.0
    return round(qualified / total, 4)


def average_time_to_complete(values: Iterable[float | None]) -> float:
    """Mean of recorded values rounded to 1 place; missing values are skipped."""
    recorded = [v for v in values if v is not None]
    if not recorded:
        return 0.0
    return round(sum(recorded) / len(recorded), 1)


def _top(counter: Counter, key: str, limit: int) -> list[dict[str, Any]]:
    # Ties broken alphabetically so snapshots are stable
    ranked = sorted(counter.items(), key=lambda item: (-item[1], str(item[0])))
    return [{key: name, "count": count} for name, count in ranked[:limit]]


def _daily_counts(leads: Sequence[Lead], now: datetime) -> list[dict[str, Any]]:
    today = now.date()
    days = [today - timedelta(days=offset) for offset in range(DAILY_WINDOW_DAYS - 1, -1, -1)]
    counts = Counter(lead.created_at.date() for lead in leads if lead.created_at is not None)
    return [{"date": day.isoformat(), "count": counts.get(day, 0)} for day in days]


def _recent_activity(leads: Sequence[Lead]) -> list[dict[str, Any]]:
    newest = sorted(
        leads,
        key=lambda lead: (lead.created_at or datetime.min, lead.id or 0),
        reverse=True,
    )
    return [
        {
            "lead_id": lead.id,
            "type": "new_lead",
            "description": f"{lead.full_name} from {lead.state} submitted an application",
            "timestamp": lead.created_at.isoformat() if lead.created_at else None,
            "status": lead.status,
        }
        for lead in newest[:RECENT_ACTIVITY_LIMIT]
    ]


def summarize_leads(
    leads: Sequence[Lead],
    top_n: int = 5,
    now: datetime | None = None,
) -> LeadStats:
    """Compute the lead snapshot. An empty sequence yields all zeros."""
    now = now or utcnow()
    total = len(leads)

    statuses = Counter(lead.status for lead in leads)
    breakdown = {status.value: statuses.get(status.value, 0) for status in LeadStatus}
    # Keep unknown legacy statuses visible rather than dropping them
    for status, count in statuses.items():
        breakdown.setdefault(status, count)

    qualified = sum(1 for lead in leads if lead.qualified)

    return LeadStats(
        total_leads=total,
        status_breakdown=breakdown,
        qualified_count=qualified,
        referred_leads=sum(1 for lead in leads if lead.referral_code),
        conversion_rate=conversion_rate(qualified, total),
        average_time_to_complete=average_time_to_complete(lead.time_to_complete for lead in leads),
        top_states=_top(Counter(lead.state for lead in leads), "state", top_n),
        top_referral_sources=_top(
            Counter(lead.referral_source or DIRECT_SOURCE for lead in leads), "source", top_n
        ),
        daily_counts=_daily_counts(leads, now),
        recent_activity=_recent_activity(leads),
    )


def summarize_affiliates(affiliates: Sequence[Affiliate], top_n: int = 5) -> AffiliateStats:
    """Compute the affiliate snapshot. An empty sequence yields all zeros."""
    total = len(affiliates)
    statuses = Counter(a.status for a in affiliates)
    breakdown = {status: statuses.get(status, 0) for status in AFFILIATE_STATUSES}
    for status, count in statuses.items():
        breakdown.setdefault(status, count)

    performers = sorted(
        (a for a in affiliates if a.approved_referrals > 0),
        key=lambda a: (-a.approved_referrals, a.affiliate_code),
    )
    total_commissions = round(sum(a.total_commissions for a in affiliates), 2)

    return AffiliateStats(
        total_affiliates=total,
        active_affiliates=statuses.get("active", 0),
        status_breakdown=breakdown,
        top_performers=[
            {
                "id": a.id,
                "name": a.name,
                "affiliate_code": a.affiliate_code,
                "approved_referrals": a.approved_referrals,
                "total_commissions": a.total_commissions,
            }
            for a in performers[:top_n]
        ],
        total_commissions=total_commissions,
        paid_commissions=round(sum(a.paid_commissions for a in affiliates), 2),
        pending_commissions=round(sum(a.pending_commissions for a in affiliates), 2),
        avg_commission_per_affiliate=round(total_commissions / total, 2) if total else 0.0,
    )


class StatsService:
    """Loads current records and rolls them up."""

    def __init__(self, database: Database | None = None, top_n: int = 5):
        self.db = database or db
        self.top_n = top_n

    def lead_stats(self) -> LeadStats:
        with self.db.session() as session:
            leads = LeadRepository(session).all()
            stats = summarize_leads(leads, top_n=self.top_n)
        logger.debug("lead_stats_computed", total=stats.total_leads)
        return stats

    def affiliate_stats(self) -> AffiliateStats:
        with self.db.session() as session:
            affiliates = AffiliateRepository(session).all()
            return summarize_affiliates(affiliates, top_n=self.top_n)
