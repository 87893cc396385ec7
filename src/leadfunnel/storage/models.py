"""Database models for leads, affiliates and attribution events."""

from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

# Money is stored to the cent; floats stay the Python-side type
Money = Numeric(12, 2, asdecimal=False)


def utcnow() -> datetime:
    """Naive UTC timestamp, the format stored in every DateTime column."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


class Affiliate(Base):
    """Referral partner earning commission on approved leads.

    Counters are only changed through atomic in-place updates issued by the
    commission engine and payout bookkeeping. ``total_commissions`` always
    equals ``paid_commissions + pending_commissions``.
    """

    __tablename__ = "affiliates"
    __table_args__ = (
        UniqueConstraint("email", name="uq_affiliates_email"),
        UniqueConstraint("affiliate_code", name="uq_affiliates_affiliate_code"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    phone: Mapped[str | None] = mapped_column(String(50), nullable=True)
    affiliate_code: Mapped[str] = mapped_column(String(20), nullable=False, index=True)

    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default="active", index=True
    )  # active, inactive, suspended

    # Economics
    commission_rate: Mapped[float] = mapped_column(Money, nullable=False, default=50.0)
    total_referrals: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    approved_referrals: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_commissions: Mapped[float] = mapped_column(Money, nullable=False, default=0.0)
    paid_commissions: Mapped[float] = mapped_column(Money, nullable=False, default=0.0)
    pending_commissions: Mapped[float] = mapped_column(Money, nullable=False, default=0.0)

    # Payment and outreach
    payment_method: Mapped[str] = mapped_column(String(50), nullable=False, default="paypal")
    payment_details: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    notes: Mapped[str] = mapped_column(Text, nullable=False, default="")
    custom_message: Mapped[str] = mapped_column(Text, nullable=False, default="")

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    def __repr__(self) -> str:
        return f"<Affiliate(id={self.id}, code='{self.affiliate_code}', status='{self.status}')>"


class Lead(Base):
    """Application submitted through the public intake form."""

    __tablename__ = "leads"
    __table_args__ = (
        UniqueConstraint("email", name="uq_leads_email"),
        # Outbox keys embed the lead id, so ids must never be reused
        {"sqlite_autoincrement": True},
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    # Contact
    full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    phone: Mapped[str] = mapped_column(String(50), nullable=False)
    city: Mapped[str] = mapped_column(String(100), nullable=False)
    state: Mapped[str] = mapped_column(String(50), nullable=False, index=True)

    # Qualification answers
    has_residence: Mapped[bool] = mapped_column(Boolean, nullable=False)
    has_internet: Mapped[bool] = mapped_column(Boolean, nullable=False)
    has_space: Mapped[bool] = mapped_column(Boolean, nullable=False)

    # Attribution (referral_code is matched by value, affiliate_id cached once resolved)
    referral_code: Mapped[str | None] = mapped_column(String(50), nullable=True, index=True)
    affiliate_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("affiliates.id", ondelete="SET NULL"), nullable=True, index=True
    )
    referral_source: Mapped[str | None] = mapped_column(String(100), nullable=True)
    session_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    utm_source: Mapped[str | None] = mapped_column(String(255), nullable=True)
    utm_medium: Mapped[str | None] = mapped_column(String(255), nullable=True)
    utm_campaign: Mapped[str | None] = mapped_column(String(255), nullable=True)
    ip_address: Mapped[str | None] = mapped_column(String(64), nullable=True)
    user_agent: Mapped[str | None] = mapped_column(Text, nullable=True)
    screen_resolution: Mapped[str | None] = mapped_column(String(50), nullable=True)

    # Timing
    submission_time: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    time_to_complete: Mapped[float | None] = mapped_column(Float, nullable=True)

    # Lifecycle
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default="new", index=True
    )  # new, contacted, qualified, approved, installed, rejected
    monthly_earnings: Mapped[float | None] = mapped_column(Float, nullable=True)
    equipment_type: Mapped[str | None] = mapped_column(String(100), nullable=True)
    installation_date: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    notes: Mapped[str] = mapped_column(Text, nullable=False, default="")

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False, index=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    @property
    def qualified(self) -> bool:
        """All three qualification answers are yes."""
        return bool(self.has_residence and self.has_internet and self.has_space)

    def __repr__(self) -> str:
        return f"<Lead(id={self.id}, email='{self.email}', status='{self.status}')>"


class AttributionEvent(Base):
    """Outbox row for an affiliate counter change triggered by a lead.

    One row per (lead, kind); ``applied_at`` is set exactly once when the
    commission engine applies the change.
    """

    __tablename__ = "attribution_events"
    __table_args__ = (
        UniqueConstraint("idempotency_key", name="uq_attribution_events_idempotency_key"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    idempotency_key: Mapped[str] = mapped_column(String(100), nullable=False)
    lead_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    kind: Mapped[str] = mapped_column(String(20), nullable=False)  # referral, approval, reversal
    referral_code: Mapped[str | None] = mapped_column(String(50), nullable=True)

    # Filled in when applied
    affiliate_id: Mapped[int | None] = mapped_column(Integer, nullable=True, index=True)
    amount: Mapped[float] = mapped_column(Money, nullable=False, default=0.0)

    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    applied_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True, index=True)

    def __repr__(self) -> str:
        return f"<AttributionEvent(key='{self.idempotency_key}', applied={self.applied_at is not None})>"
