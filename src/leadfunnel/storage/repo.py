"""Repository layer for data access."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from leadfunnel.errors import DuplicateAffiliateError, DuplicateLeadError
from leadfunnel.logging_config import get_logger
from leadfunnel.storage.models import Affiliate, AttributionEvent, Lead, utcnow

logger = get_logger(__name__)

MONEY_COUNTERS = frozenset({"total_commissions", "paid_commissions", "pending_commissions"})


def _violated_column(exc: IntegrityError) -> str:
    """Best-effort name of the column behind a unique violation.

    SQLite reports ``table.column``, PostgreSQL reports the constraint name;
    both contain the column name.
    """
    message = str(exc.orig).lower()
    for column in ("affiliate_code", "idempotency_key", "email"):
        if column in message:
            return column
    return "unknown"


def normalize_code(code: str | None) -> str | None:
    """Referral codes are case-insensitive and stored upper-case."""
    if code is None:
        return None
    code = code.strip().upper()
    return code or None


class LeadRepository:
    """Repository for Lead entities."""

    def __init__(self, session: Session):
        self.session = session

    def add(self, **fields: Any) -> Lead:
        """Insert a lead, relying on the unique email index for dedup.

        Raises:
            DuplicateLeadError: If a lead with the same email exists
        """
        lead = Lead(**fields)
        self.session.add(lead)
        try:
            self.session.flush()
        except IntegrityError as exc:
            if _violated_column(exc) == "email":
                raise DuplicateLeadError(fields["email"]) from exc
            raise
        logger.info("lead_inserted", lead_id=lead.id, referral_code=lead.referral_code)
        return lead

    def get(self, lead_id: int, for_update: bool = False) -> Lead | None:
        """Get lead by ID."""
        if for_update:
            stmt = select(Lead).where(Lead.id == lead_id).with_for_update()
            return self.session.scalars(stmt).first()
        return self.session.get(Lead, lead_id)

    def count_by_email(self, email: str) -> int:
        """Number of leads stored under an email (0 or 1)."""
        stmt = select(func.count(Lead.id)).where(Lead.email == email.strip().lower())
        return self.session.scalar(stmt) or 0

    def list(
        self,
        status: str | None = None,
        state: str | None = None,
        start_date: datetime | None = None,
        end_date: datetime | None = None,
        page: int = 1,
        page_size: int = 10,
    ) -> tuple[list[Lead], int]:
        """List leads newest first with filters.

        Returns:
            Tuple of (page of leads, total matching count)
        """
        filters = []
        if status:
            filters.append(Lead.status == status)
        if state:
            filters.append(Lead.state == state)
        if start_date:
            filters.append(Lead.created_at >= start_date)
        if end_date:
            filters.append(Lead.created_at <= end_date)

        total = self.session.scalar(select(func.count(Lead.id)).where(*filters)) or 0
        stmt = (
            select(Lead)
            .where(*filters)
            .order_by(Lead.created_at.desc(), Lead.id.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
        )
        return list(self.session.scalars(stmt)), total

    def all(self) -> list[Lead]:
        """Every lead, for rollups."""
        return list(self.session.scalars(select(Lead)))

    def delete(self, lead_id: int) -> bool:
        """Delete a lead. Returns False if it did not exist."""
        result = self.session.execute(delete(Lead).where(Lead.id == lead_id))
        return result.rowcount > 0


class AffiliateRepository:
    """Repository for Affiliate entities."""

    def __init__(self, session: Session):
        self.session = session

    def try_insert(self, affiliate_code: str, **fields: Any) -> Affiliate | None:
        """Conditionally insert an affiliate under ``affiliate_code``.

        Runs in a SAVEPOINT so a code collision leaves the outer
        transaction usable for the next candidate.

        Returns:
            The new affiliate, or None if the code is already taken

        Raises:
            DuplicateAffiliateError: If the email is already registered
        """
        affiliate = Affiliate(affiliate_code=affiliate_code, **fields)
        try:
            with self.session.begin_nested():
                self.session.add(affiliate)
                self.session.flush()
        except IntegrityError as exc:
            column = _violated_column(exc)
            if column == "affiliate_code":
                logger.debug("affiliate_code_collision", code=affiliate_code)
                return None
            if column == "email":
                raise DuplicateAffiliateError(fields["email"]) from exc
            raise
        return affiliate

    def get(self, affiliate_id: int) -> Affiliate | None:
        """Get affiliate by ID."""
        return self.session.get(Affiliate, affiliate_id)

    def get_by_code(self, code: str | None) -> Affiliate | None:
        """Resolve a referral code (case-insensitive)."""
        code = normalize_code(code)
        if not code:
            return None
        stmt = select(Affiliate).where(Affiliate.affiliate_code == code)
        return self.session.scalars(stmt).first()

    def list(
        self,
        status: str | None = None,
        page: int = 1,
        page_size: int = 50,
    ) -> tuple[list[Affiliate], int]:
        """List affiliates newest first."""
        filters = [Affiliate.status == status] if status else []
        total = self.session.scalar(select(func.count(Affiliate.id)).where(*filters)) or 0
        stmt = (
            select(Affiliate)
            .where(*filters)
            .order_by(Affiliate.created_at.desc(), Affiliate.id.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
        )
        return list(self.session.scalars(stmt)), total

    def all(self) -> list[Affiliate]:
        """Every affiliate, for rollups."""
        return list(self.session.scalars(select(Affiliate)))

    def increment(self, affiliate_id: int, **deltas: float) -> bool:
        """Add deltas to counter columns in place (``col = col + delta``).

        Money counters are rounded to the cent on every write.

        Returns:
            False if the affiliate no longer exists
        """
        values: dict[str, Any] = {}
        for name, delta in deltas.items():
            column = getattr(Affiliate, name)
            if name in MONEY_COUNTERS:
                values[name] = func.round(column + round(delta, 2), 2)
            else:
                values[name] = column + delta
        values["updated_at"] = utcnow()
        result = self.session.execute(
            update(Affiliate).where(Affiliate.id == affiliate_id).values(**values)
        )
        return result.rowcount > 0

    def current_rate(self, affiliate_id: int) -> float | None:
        """Commission rate, read under a row lock where the backend supports it."""
        stmt = (
            select(Affiliate.commission_rate)
            .where(Affiliate.id == affiliate_id)
            .with_for_update()
        )
        rate = self.session.scalar(stmt)
        return None if rate is None else round(rate, 2)

    def move_to_paid(self, affiliate_id: int, amount: float) -> bool:
        """Move ``amount`` from pending to paid if enough is pending."""
        amount = round(amount, 2)
        result = self.session.execute(
            update(Affiliate)
            .where(
                Affiliate.id == affiliate_id,
                Affiliate.pending_commissions >= amount,
            )
            .values(
                pending_commissions=func.round(Affiliate.pending_commissions - amount, 2),
                paid_commissions=func.round(Affiliate.paid_commissions + amount, 2),
                updated_at=utcnow(),
            )
        )
        return result.rowcount > 0

    def delete(self, affiliate_id: int) -> bool:
        """Delete an affiliate. Returns False if it did not exist."""
        result = self.session.execute(delete(Affiliate).where(Affiliate.id == affiliate_id))
        return result.rowcount > 0


class AttributionEventRepository:
    """Repository for attribution outbox events."""

    def __init__(self, session: Session):
        self.session = session

    @staticmethod
    def key_for(lead_id: int, kind: str) -> str:
        return f"{lead_id}:{kind}"

    def enqueue(self, lead_id: int, kind: str, referral_code: str | None = None) -> AttributionEvent:
        """Record a pending counter change; a repeat for the same lead and kind
        returns the existing event."""
        key = self.key_for(lead_id, kind)
        existing = self.get_by_key(key)
        if existing is not None:
            return existing

        event = AttributionEvent(
            idempotency_key=key,
            lead_id=lead_id,
            kind=kind,
            referral_code=referral_code,
        )
        try:
            with self.session.begin_nested():
                self.session.add(event)
                self.session.flush()
        except IntegrityError as exc:
            if _violated_column(exc) != "idempotency_key":
                raise
            return self.get_by_key(key)
        logger.debug("attribution_event_enqueued", key=key)
        return event

    def get(self, event_id: int) -> AttributionEvent | None:
        return self.session.get(AttributionEvent, event_id)

    def get_by_key(self, key: str) -> AttributionEvent | None:
        stmt = select(AttributionEvent).where(AttributionEvent.idempotency_key == key)
        return self.session.scalars(stmt).first()

    def claim(self, event_id: int) -> bool:
        """Mark an event applied; only one caller can ever win the claim."""
        result = self.session.execute(
            update(AttributionEvent)
            .where(AttributionEvent.id == event_id, AttributionEvent.applied_at.is_(None))
            .values(applied_at=utcnow(), attempts=AttributionEvent.attempts + 1)
        )
        return result.rowcount == 1

    def record_failure(self, event_id: int, error: str) -> None:
        self.session.execute(
            update(AttributionEvent)
            .where(AttributionEvent.id == event_id)
            .values(attempts=AttributionEvent.attempts + 1, last_error=error[:1000])
        )

    def pending_ids(self, limit: int = 500) -> list[int]:
        stmt = (
            select(AttributionEvent.id)
            .where(AttributionEvent.applied_at.is_(None))
            .order_by(AttributionEvent.id)
            .limit(limit)
        )
        return list(self.session.scalars(stmt))

    def count_pending(self) -> int:
        stmt = select(func.count(AttributionEvent.id)).where(AttributionEvent.applied_at.is_(None))
        return self.session.scalar(stmt) or 0

    def delete_for_lead(self, lead_id: int) -> int:
        """Drop every event of a lead. Returns the number of rows removed."""
        result = self.session.execute(
            delete(AttributionEvent).where(AttributionEvent.lead_id == lead_id)
        )
        return result.rowcount
