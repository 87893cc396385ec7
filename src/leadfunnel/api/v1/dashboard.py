"""Operator dashboard API v1 endpoints."""

from dataclasses import asdict

from fastapi import APIRouter, Depends, Query

from leadfunnel.api.auth import require_operator
from leadfunnel.api.deps import Services, get_services
from leadfunnel.logging_config import get_logger

logger = get_logger(__name__)

router = APIRouter(
    prefix="/dashboard",
    tags=["dashboard"],
    dependencies=[Depends(require_operator)],
)


@router.get("/stats")
def lead_stats(services: Services = Depends(get_services)):
    """Lead totals, breakdowns and recent activity."""
    return services.stats.lead_stats().as_dict()


@router.get("/affiliate-stats")
def affiliate_stats(services: Services = Depends(get_services)):
    """Affiliate program totals and top performers."""
    return services.stats.affiliate_stats().as_dict()


@router.post("/reconcile")
def reconcile(
    limit: int = Query(500, ge=1, le=5000),
    services: Services = Depends(get_services),
):
    """Retry attribution events that were not applied inline."""
    report = services.engine.reconcile(limit=limit)
    logger.info("reconcile_requested", **asdict(report))
    return asdict(report)
