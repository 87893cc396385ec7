"""Referral code lookup for the landing page."""

from fastapi import APIRouter, Depends, Request

from leadfunnel.api.deps import Services, get_services
from leadfunnel.api.rate_limit import limiter
from leadfunnel.settings import settings

router = APIRouter(prefix="/referral", tags=["referral"])


@router.get("/{code}")
@limiter.limit(settings.default_rate_limit)
def lookup_referral(request: Request, code: str, services: Services = Depends(get_services)):
    """Tell the landing page whether ``?ref=<code>`` belongs to an active affiliate.

    Unknown or inactive codes answer ``valid: false``; nothing is recorded.
    """
    result = services.affiliates.lookup_code(code)
    if not result.valid:
        return {"code": result.code, "valid": False}
    return {
        "code": result.code,
        "valid": True,
        "referrer_name": result.referrer_name,
        "commission_rate": result.commission_rate,
    }
