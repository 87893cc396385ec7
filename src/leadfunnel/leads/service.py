"""Lead service: capture, operator updates and listing."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from leadfunnel.attribution.engine import CommissionEngine, EventKind
from leadfunnel.errors import NotFoundError
from leadfunnel.leads.status import transition
from leadfunnel.leads.validator import LeadSubmission
from leadfunnel.logging_config import get_logger
from leadfunnel.storage.db import Database, db
from leadfunnel.storage.models import Lead, utcnow
from leadfunnel.storage.repo import AttributionEventRepository, LeadRepository

logger = get_logger(__name__)

# Operator-editable fields with no lifecycle side effects
EDITABLE_FIELDS = ("monthly_earnings", "equipment_type", "installation_date", "notes")


class LeadService:
    """Service for capturing and managing leads."""

    def __init__(self, database: Database | None = None, engine: CommissionEngine | None = None):
        """Initialize lead service.

        Args:
            database: Database to use (defaults to the global instance)
            engine: Commission engine (defaults to one on the same database)
        """
        self.db = database or db
        self.engine = engine or CommissionEngine(self.db)
        self.logger = get_logger(__name__)

    def create(self, submission: LeadSubmission, ip_address: str | None = None) -> Lead:
        """Persist a validated submission.

        The referral event is written in the same transaction as the lead;
        applying it afterwards is best-effort and never undoes the insert.

        Args:
            submission: Validated form payload
            ip_address: Client IP as seen by the server

        Returns:
            Created lead

        Raises:
            DuplicateLeadError: If the email was already submitted
            StoreUnavailableError: If the lead could not be stored
        """
        fields = submission.model_dump()
        fields["ip_address"] = ip_address

        with self.db.session() as session:
            lead = LeadRepository(session).add(**fields)
            event_id = None
            if lead.referral_code:
                event = AttributionEventRepository(session).enqueue(
                    lead.id, EventKind.REFERRAL.value, lead.referral_code
                )
                event_id = event.id

        self.logger.info(
            "lead_created",
            lead_id=lead.id,
            state=lead.state,
            qualified=lead.qualified,
            referral_code=lead.referral_code,
        )

        if event_id is not None:
            for applied in self.engine.dispatch([event_id]):
                if applied.attributed:
                    lead.affiliate_id = applied.affiliate_id
        return lead

    def get(self, lead_id: int) -> Lead:
        """Get lead by ID.

        Raises:
            NotFoundError: If the lead does not exist
        """
        with self.db.session() as session:
            lead = LeadRepository(session).get(lead_id)
            if lead is None:
                raise NotFoundError("Lead", lead_id)
            return lead

    def list(
        self,
        status: str | None = None,
        state: str | None = None,
        start_date: datetime | None = None,
        end_date: datetime | None = None,
        page: int = 1,
        page_size: int = 10,
    ) -> tuple[list[Lead], int]:
        """List leads newest first.

        Returns:
            Tuple of (page of leads, total matching count)
        """
        with self.db.session() as session:
            return LeadRepository(session).list(
                status=status,
                state=state,
                start_date=start_date,
                end_date=end_date,
                page=page,
                page_size=page_size,
            )

    def update(self, lead_id: int, changes: dict[str, Any]) -> Lead:
        """Apply an operator update.

        A status change is checked against the transition table; entering
        ``approved`` queues an approval event and ``approved -> rejected``
        queues a reversal. Other fields are plain edits.

        Raises:
            NotFoundError: If the lead does not exist
            IllegalTransitionError: If the status change is not allowed
        """
        changes = dict(changes)
        event_ids: list[int] = []

        with self.db.session() as session:
            lead = LeadRepository(session).get(lead_id, for_update=True)
            if lead is None:
                raise NotFoundError("Lead", lead_id)

            target = changes.pop("status", None)
            if target is not None:
                step = transition(lead.status, target)
                lead.status = step.target.value
                if lead.referral_code:
                    events = AttributionEventRepository(session)
                    if step.enters_approved:
                        event_ids.append(
                            events.enqueue(lead.id, EventKind.APPROVAL.value, lead.referral_code).id
                        )
                    if step.reverses_approval:
                        event_ids.append(
                            events.enqueue(lead.id, EventKind.REVERSAL.value, lead.referral_code).id
                        )
                if step.changed:
                    self.logger.info(
                        "lead_status_changed",
                        lead_id=lead.id,
                        source=step.source.value,
                        target=step.target.value,
                    )

            for field in EDITABLE_FIELDS:
                if field not in changes:
                    continue
                if field == "notes" and changes[field] is None:
                    # notes is NOT NULL; a null edit leaves it as is
                    continue
                setattr(lead, field, changes[field])
            lead.updated_at = utcnow()

        self.engine.dispatch(event_ids)
        return lead

    def delete(self, lead_id: int) -> None:
        """Delete a lead and its outbox events. Affiliate counters are left as they are.

        Raises:
            NotFoundError: If the lead does not exist
        """
        with self.db.session() as session:
            if not LeadRepository(session).delete(lead_id):
                raise NotFoundError("Lead", lead_id)
            # Pending events must not credit an affiliate for a lead that is gone
            dropped = AttributionEventRepository(session).delete_for_lead(lead_id)
        self.logger.info("lead_deleted", lead_id=lead_id, events_dropped=dropped)

    def count_by_email(self, email: str) -> int:
        with self.db.session() as session:
            return LeadRepository(session).count_by_email(email)
