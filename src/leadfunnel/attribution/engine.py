"""Attribution and commission engine.

Lead writes record outbox events (``attribution_events``) in the same
transaction as the lead change. The engine applies each event at most once
in its own transaction: claim the event, then adjust the affiliate counters
with in-place increments.

Lead capture is never blocked by this module. ``dispatch`` logs and records
failures on the event so ``reconcile`` can retry them later.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Iterable

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from leadfunnel.errors import LeadFunnelError
from leadfunnel.logging_config import get_logger
from leadfunnel.storage.db import Database, db
from leadfunnel.storage.models import AttributionEvent
from leadfunnel.storage.repo import (
    AffiliateRepository,
    AttributionEventRepository,
    LeadRepository,
    normalize_code,
)

logger = get_logger(__name__)


class EventKind(str, Enum):
    """Counter changes driven by lead activity."""
    REFERRAL = "referral"  # lead submitted with a code
    APPROVAL = "approval"  # lead entered approved
    REVERSAL = "reversal"  # approved lead was rejected


@dataclass(frozen=True)
class AppliedEvent:
    """Result of applying one outbox event."""

    event_id: int
    kind: EventKind
    affiliate_id: int | None
    amount: float = 0.0

    @property
    def attributed(self) -> bool:
        return self.affiliate_id is not None


@dataclass
class ReconcileReport:
    """Outcome of a reconciliation pass."""

    attempted: int = 0
    applied: int = 0
    failed: int = 0  # attempted but not applied by this pass
    remaining: int = 0


class CommissionEngine:
    """Applies attribution events to affiliate counters."""

    def __init__(self, database: Database | None = None):
        """Initialize commission engine.

        Args:
            database: Database to use (defaults to the global instance)
        """
        self.db = database or db
        self.logger = get_logger(__name__)

    # ==================== APPLY ====================

    def apply(self, event_id: int) -> AppliedEvent | None:
        """Apply one event exactly once.

        Returns:
            The applied event, or None if it was missing or already applied

        Raises:
            StoreUnavailableError: If the store cannot be reached
        """
        with self.db.session() as session:
            events = AttributionEventRepository(session)
            event = events.get(event_id)
            if event is None or event.applied_at is not None:
                return None
            if not events.claim(event_id):
                # Another worker applied it between our read and claim
                return None

            kind = EventKind(event.kind)
            if kind is EventKind.REFERRAL:
                self._apply_referral(session, event)
            elif kind is EventKind.APPROVAL:
                self._apply_approval(session, event)
            else:
                self._apply_reversal(session, event)

            applied = AppliedEvent(
                event_id=event.id,
                kind=kind,
                affiliate_id=event.affiliate_id,
                amount=event.amount,
            )

        self.logger.info(
            "attribution_event_applied",
            event_id=applied.event_id,
            kind=applied.kind.value,
            affiliate_id=applied.affiliate_id,
            amount=applied.amount,
        )
        return applied

    def _resolve_affiliate(self, session: Session, event: AttributionEvent) -> int | None:
        """Affiliate for the event's lead, caching the id on the lead.

        A cached id wins over the code so later code changes do not
        reattribute the lead.
        """
        lead = LeadRepository(session).get(event.lead_id)
        if lead is not None and lead.affiliate_id is not None:
            return lead.affiliate_id
        if event.kind != EventKind.REFERRAL.value and self._referral_settled(session, event.lead_id):
            # Attribution was decided at referral time; a reissued code must not capture the lead
            return None

        code = normalize_code(event.referral_code or (lead.referral_code if lead else None))
        affiliate = AffiliateRepository(session).get_by_code(code)
        if affiliate is None:
            self.logger.info("attribution_miss", lead_id=event.lead_id, code=code)
            return None

        if lead is not None:
            lead.affiliate_id = affiliate.id
        return affiliate.id

    @staticmethod
    def _referral_settled(session: Session, lead_id: int) -> bool:
        events = AttributionEventRepository(session)
        referral = events.get_by_key(events.key_for(lead_id, EventKind.REFERRAL.value))
        return referral is not None and referral.applied_at is not None

    def _apply_referral(self, session: Session, event: AttributionEvent) -> None:
        affiliate_id = self._resolve_affiliate(session, event)
        if affiliate_id is None:
            return
        AffiliateRepository(session).increment(affiliate_id, total_referrals=1)
        event.affiliate_id = affiliate_id

    def _apply_approval(self, session: Session, event: AttributionEvent) -> None:
        affiliate_id = self._resolve_affiliate(session, event)
        if affiliate_id is None:
            return

        affiliates = AffiliateRepository(session)
        # Rate at the moment of approval; later rate changes do not touch this accrual
        rate = affiliates.current_rate(affiliate_id)
        if rate is None:
            return
        affiliates.increment(
            affiliate_id,
            approved_referrals=1,
            total_commissions=rate,
            pending_commissions=rate,
        )
        event.affiliate_id = affiliate_id
        event.amount = rate

    def _apply_reversal(self, session: Session, event: AttributionEvent) -> None:
        events = AttributionEventRepository(session)
        approval = events.get_by_key(events.key_for(event.lead_id, EventKind.APPROVAL.value))
        if approval is None:
            return

        if approval.applied_at is None:
            # Approval never accrued; retire it so a late apply cannot accrue
            if events.claim(approval.id):
                approval.last_error = "superseded by reversal"
            return

        if approval.affiliate_id is None:
            return

        AffiliateRepository(session).increment(
            approval.affiliate_id,
            approved_referrals=-1,
            total_commissions=-approval.amount,
            pending_commissions=-approval.amount,
        )
        event.affiliate_id = approval.affiliate_id
        event.amount = approval.amount

    # ==================== BEST EFFORT ====================

    def dispatch(self, event_ids: Iterable[int]) -> list[AppliedEvent]:
        """Apply events without ever raising.

        Failures are logged and recorded on the event for reconciliation.

        Returns:
            Events applied by this call
        """
        applied = []
        for event_id in event_ids:
            try:
                result = self.apply(event_id)
            except (LeadFunnelError, SQLAlchemyError) as exc:
                self.logger.error(
                    "attribution_apply_failed",
                    event_id=event_id,
                    error=str(exc),
                    error_type=type(exc).__name__,
                )
                self._record_failure(event_id, exc)
                continue
            if result is not None:
                applied.append(result)
        return applied

    def _record_failure(self, event_id: int, exc: Exception) -> None:
        try:
            with self.db.session() as session:
                AttributionEventRepository(session).record_failure(
                    event_id, f"{type(exc).__name__}: {exc}"
                )
        except (LeadFunnelError, SQLAlchemyError) as record_exc:
            self.logger.error(
                "attribution_failure_not_recorded",
                event_id=event_id,
                error=str(record_exc),
            )

    def reconcile(self, limit: int = 500) -> ReconcileReport:
        """Retry every pending event.

        Raises:
            StoreUnavailableError: If pending events cannot be listed
        """
        with self.db.session() as session:
            pending = AttributionEventRepository(session).pending_ids(limit)

        report = ReconcileReport(attempted=len(pending))
        for event_id in pending:
            if self.dispatch([event_id]):
                report.applied += 1

        with self.db.session() as session:
            report.remaining = AttributionEventRepository(session).count_pending()
        report.failed = report.attempted - report.applied

        self.logger.info(
            "attribution_reconciled",
            attempted=report.attempted,
            applied=report.applied,
            failed=report.failed,
            remaining=report.remaining,
        )
        return report
