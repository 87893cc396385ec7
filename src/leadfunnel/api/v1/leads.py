"""Leads API v1 endpoints."""

import math
from datetime import datetime

from fastapi import APIRouter, Depends, Query, Request, status
from pydantic import BaseModel, ConfigDict, Field
from starlette.concurrency import run_in_threadpool

from leadfunnel.api.auth import require_operator
from leadfunnel.api.deps import Services, get_services
from leadfunnel.api.rate_limit import client_identity
from leadfunnel.leads.status import LeadStatus
from leadfunnel.logging_config import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/leads", tags=["leads"])


# ==================== MODELS ====================


class LeadOut(BaseModel):
    """Lead record as returned by the API."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    full_name: str
    email: str
    phone: str
    city: str
    state: str
    has_residence: bool
    has_internet: bool
    has_space: bool
    qualified: bool
    referral_code: str | None = None
    affiliate_id: int | None = None
    referral_source: str | None = None
    session_id: str | None = None
    utm_source: str | None = None
    utm_medium: str | None = None
    utm_campaign: str | None = None
    ip_address: str | None = None
    user_agent: str | None = None
    screen_resolution: str | None = None
    submission_time: datetime
    time_to_complete: float | None = None
    status: str
    monthly_earnings: float | None = None
    equipment_type: str | None = None
    installation_date: datetime | None = None
    notes: str = ""
    created_at: datetime
    updated_at: datetime


class LeadUpdate(BaseModel):
    """Operator update. Counters and contact details are not editable here."""

    model_config = ConfigDict(extra="forbid")

    status: LeadStatus | None = None
    monthly_earnings: float | None = Field(None, ge=0)
    equipment_type: str | None = Field(None, max_length=100)
    installation_date: datetime | None = None
    notes: str | None = None


# ==================== ENDPOINTS ====================


@router.post("", response_model=LeadOut, status_code=status.HTTP_201_CREATED)
async def submit_lead(request: Request, services: Services = Depends(get_services)):
    """Submit an application from the public form.

    Rate limited per client before the body is validated.
    """
    try:
        payload = await request.json()
    except ValueError:
        payload = None

    identity = client_identity(request)
    lead = await run_in_threadpool(
        services.intake.submit,
        payload,
        identity,
        ip_address=identity,
        user_agent=request.headers.get("user-agent"),
    )
    return LeadOut.model_validate(lead)


@router.get("", dependencies=[Depends(require_operator)])
def list_leads(
    status_filter: LeadStatus | None = Query(None, alias="status"),
    state: str | None = None,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    page: int = Query(1, ge=1),
    page_size: int = Query(10, ge=1, le=100),
    services: Services = Depends(get_services),
):
    """List leads with filters and pagination (operator only)."""
    leads, total = services.leads.list(
        status=status_filter.value if status_filter else None,
        state=state,
        start_date=start_date,
        end_date=end_date,
        page=page,
        page_size=page_size,
    )
    return {
        "items": [LeadOut.model_validate(lead).model_dump(mode="json") for lead in leads],
        "pagination": {
            "page": page,
            "page_size": page_size,
            "total": total,
            "total_pages": math.ceil(total / page_size) if total else 0,
        },
    }


@router.get("/{lead_id}", response_model=LeadOut, dependencies=[Depends(require_operator)])
def get_lead(lead_id: int, services: Services = Depends(get_services)):
    """Get a single lead (operator only)."""
    return LeadOut.model_validate(services.leads.get(lead_id))


@router.patch("/{lead_id}", response_model=LeadOut, dependencies=[Depends(require_operator)])
def update_lead(lead_id: int, body: LeadUpdate, services: Services = Depends(get_services)):
    """Update status and lifecycle fields (operator only)."""
    lead = services.leads.update(lead_id, body.model_dump(exclude_unset=True))
    return LeadOut.model_validate(lead)


@router.delete("/{lead_id}", dependencies=[Depends(require_operator)])
def delete_lead(lead_id: int, services: Services = Depends(get_services)):
    """Delete a lead (operator only)."""
    services.leads.delete(lead_id)
    return {"success": True, "message": "Lead deleted successfully"}
