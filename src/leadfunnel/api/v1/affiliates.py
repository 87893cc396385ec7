"""Affiliates API v1 endpoints."""

import math
from datetime import datetime
from typing import Literal

from fastapi import APIRouter, Depends, Query, Request, status
from pydantic import BaseModel, ConfigDict, EmailStr, Field

from leadfunnel.api.auth import require_operator
from leadfunnel.api.deps import Services, get_services
from leadfunnel.api.rate_limit import limiter
from leadfunnel.settings import settings

router = APIRouter(prefix="/affiliates", tags=["affiliates"])


# ==================== MODELS ====================


class AffiliateCreate(BaseModel):
    """Affiliate sign-up request."""

    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(..., min_length=2, max_length=255)
    email: EmailStr
    phone: str | None = Field(None, max_length=50)
    payment_method: str = Field("paypal", max_length=50)
    payment_details: str = Field("", max_length=255)
    custom_message: str | None = None


class AffiliateUpdate(BaseModel):
    """Operator edit. Counters and the referral code cannot be set."""

    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)

    name: str | None = Field(None, min_length=2, max_length=255)
    email: EmailStr | None = None
    phone: str | None = Field(None, max_length=50)
    status: Literal["active", "inactive", "suspended"] | None = None
    commission_rate: float | None = Field(None, ge=0)
    payment_method: str | None = Field(None, max_length=50)
    payment_details: str | None = Field(None, max_length=255)
    notes: str | None = None
    custom_message: str | None = None


class PayoutRequest(BaseModel):
    """Amount moved from pending to paid commissions."""

    amount: float = Field(..., gt=0)


class AffiliateOut(BaseModel):
    """Affiliate record as returned by the API."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    email: str
    phone: str | None = None
    affiliate_code: str
    status: str
    commission_rate: float
    total_referrals: int
    approved_referrals: int
    total_commissions: float
    paid_commissions: float
    pending_commissions: float
    payment_method: str
    payment_details: str
    notes: str
    custom_message: str
    created_at: datetime
    updated_at: datetime


# ==================== ENDPOINTS ====================


@router.post("", response_model=AffiliateOut, status_code=status.HTTP_201_CREATED)
@limiter.limit(settings.default_rate_limit)
def register_affiliate(
    request: Request,
    body: AffiliateCreate,
    services: Services = Depends(get_services),
):
    """Public affiliate sign-up. Issues a unique referral code."""
    affiliate = services.affiliates.create(
        name=body.name,
        email=body.email,
        phone=body.phone,
        payment_method=body.payment_method,
        payment_details=body.payment_details,
        custom_message=body.custom_message,
    )
    return AffiliateOut.model_validate(affiliate)


@router.get("", dependencies=[Depends(require_operator)])
def list_affiliates(
    status_filter: Literal["active", "inactive", "suspended"] | None = Query(None, alias="status"),
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=100),
    services: Services = Depends(get_services),
):
    """List affiliates (operator only)."""
    affiliates, total = services.affiliates.list(
        status=status_filter, page=page, page_size=page_size
    )
    return {
        "items": [
            AffiliateOut.model_validate(affiliate).model_dump(mode="json")
            for affiliate in affiliates
        ],
        "pagination": {
            "page": page,
            "page_size": page_size,
            "total": total,
            "total_pages": math.ceil(total / page_size) if total else 0,
        },
    }


@router.get(
    "/{affiliate_id}", response_model=AffiliateOut, dependencies=[Depends(require_operator)]
)
def get_affiliate(affiliate_id: int, services: Services = Depends(get_services)):
    """Get a single affiliate (operator only)."""
    return AffiliateOut.model_validate(services.affiliates.get(affiliate_id))


@router.patch(
    "/{affiliate_id}", response_model=AffiliateOut, dependencies=[Depends(require_operator)]
)
def update_affiliate(
    affiliate_id: int,
    body: AffiliateUpdate,
    services: Services = Depends(get_services),
):
    """Edit an affiliate's profile (operator only)."""
    affiliate = services.affiliates.update(affiliate_id, body.model_dump(exclude_unset=True))
    return AffiliateOut.model_validate(affiliate)


@router.delete("/{affiliate_id}", dependencies=[Depends(require_operator)])
def delete_affiliate(affiliate_id: int, services: Services = Depends(get_services)):
    """Delete an affiliate (operator only)."""
    services.affiliates.delete(affiliate_id)
    return {"success": True, "message": "Affiliate deleted successfully"}


@router.post(
    "/{affiliate_id}/payouts",
    response_model=AffiliateOut,
    dependencies=[Depends(require_operator)],
)
def record_payout(
    affiliate_id: int,
    body: PayoutRequest,
    services: Services = Depends(get_services),
):
    """Record a payout against pending commissions (operator only)."""
    affiliate = services.affiliates.record_payout(affiliate_id, body.amount)
    return AffiliateOut.model_validate(affiliate)
