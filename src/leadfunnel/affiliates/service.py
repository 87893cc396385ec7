"""Affiliate service for sign-up, code lookup and commission bookkeeping."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from sqlalchemy.exc import IntegrityError

from leadfunnel.affiliates.codes import ReferralCodeGenerator
from leadfunnel.errors import DuplicateAffiliateError, NotFoundError, PayoutError
from leadfunnel.logging_config import get_logger
from leadfunnel.settings import settings
from leadfunnel.storage.db import Database, db
from leadfunnel.storage.models import Affiliate, utcnow
from leadfunnel.storage.repo import AffiliateRepository, normalize_code

logger = get_logger(__name__)

DEFAULT_CUSTOM_MESSAGE = "Join me and earn $500-$1000 monthly passive income!"

AFFILIATE_STATUSES = ("active", "inactive", "suspended")

# Operator-editable profile fields; counters and the code are not editable
EDITABLE_FIELDS = (
    "name",
    "email",
    "phone",
    "status",
    "commission_rate",
    "payment_method",
    "payment_details",
    "notes",
    "custom_message",
)


@dataclass(frozen=True)
class CodeLookup:
    """Result of checking a ``?ref=`` code."""

    code: str
    valid: bool
    referrer_name: str | None = None
    commission_rate: float | None = None


class AffiliateService:
    """Service for managing affiliates and their commission counters."""

    def __init__(
        self,
        database: Database | None = None,
        generator: ReferralCodeGenerator | None = None,
    ):
        """Initialize affiliate service.

        Args:
            database: Database to use (defaults to the global instance)
            generator: Referral code generator
        """
        self.db = database or db
        self.generator = generator or ReferralCodeGenerator(
            max_attempts=settings.referral_code_max_attempts
        )
        self.logger = get_logger(__name__)

    def create(
        self,
        name: str,
        email: str,
        phone: str | None = None,
        payment_method: str = "paypal",
        payment_details: str = "",
        commission_rate: float | None = None,
        custom_message: str | None = None,
        notes: str = "",
    ) -> Affiliate:
        """Register an affiliate under a freshly issued code.

        Raises:
            DuplicateAffiliateError: If the email is already registered
            CodeGenerationExhaustedError: If no unique code could be issued
        """
        fields = {
            "name": name.strip(),
            "email": email.strip().lower(),
            "phone": phone,
            "status": "active",
            "commission_rate": (
                settings.default_commission_rate if commission_rate is None else commission_rate
            ),
            "payment_method": payment_method,
            "payment_details": payment_details,
            "custom_message": custom_message or DEFAULT_CUSTOM_MESSAGE,
            "notes": notes,
        }

        with self.db.session() as session:
            affiliates = AffiliateRepository(session)
            code, affiliate = self.generator.generate(
                fields["name"],
                lambda candidate: affiliates.try_insert(candidate, **fields),
            )

        self.logger.info(
            "affiliate_registered",
            affiliate_id=affiliate.id,
            code=code,
            email=affiliate.email,
        )
        return affiliate

    def get(self, affiliate_id: int) -> Affiliate:
        """Get affiliate by ID.

        Raises:
            NotFoundError: If the affiliate does not exist
        """
        with self.db.session() as session:
            affiliate = AffiliateRepository(session).get(affiliate_id)
            if affiliate is None:
                raise NotFoundError("Affiliate", affiliate_id)
            return affiliate

    def list(
        self,
        status: str | None = None,
        page: int = 1,
        page_size: int = 50,
    ) -> tuple[list[Affiliate], int]:
        """List affiliates newest first."""
        with self.db.session() as session:
            return AffiliateRepository(session).list(status=status, page=page, page_size=page_size)

    def update(self, affiliate_id: int, changes: dict[str, Any]) -> Affiliate:
        """Edit profile fields. A new commission rate only affects future approvals.

        Raises:
            NotFoundError: If the affiliate does not exist
            DuplicateAffiliateError: If the new email is taken
        """
        with self.db.session() as session:
            affiliate = AffiliateRepository(session).get(affiliate_id)
            if affiliate is None:
                raise NotFoundError("Affiliate", affiliate_id)

            for field in EDITABLE_FIELDS:
                if field in changes and changes[field] is not None:
                    value = changes[field]
                    if field == "email":
                        value = value.strip().lower()
                    setattr(affiliate, field, value)
            affiliate.updated_at = utcnow()

            try:
                session.flush()
            except IntegrityError as exc:
                raise DuplicateAffiliateError(changes.get("email", "")) from exc

        self.logger.info("affiliate_updated", affiliate_id=affiliate_id, fields=sorted(changes))
        return affiliate

    def delete(self, affiliate_id: int) -> None:
        """Delete an affiliate. Leads keep their referral code string.

        Raises:
            NotFoundError: If the affiliate does not exist
        """
        with self.db.session() as session:
            if not AffiliateRepository(session).delete(affiliate_id):
                raise NotFoundError("Affiliate", affiliate_id)
        self.logger.info("affiliate_deleted", affiliate_id=affiliate_id)

    def lookup_code(self, code: str) -> CodeLookup:
        """Check whether a referral code belongs to an active affiliate.

        Pure read; nothing is recorded.
        """
        normalized = normalize_code(code) or ""
        with self.db.session() as session:
            affiliate = AffiliateRepository(session).get_by_code(normalized)
            if affiliate is None or affiliate.status != "active":
                return CodeLookup(code=normalized, valid=False)
            return CodeLookup(
                code=normalized,
                valid=True,
                referrer_name=affiliate.name.split()[0] if affiliate.name else None,
                commission_rate=affiliate.commission_rate,
            )

    def record_payout(self, affiliate_id: int, amount: float) -> Affiliate:
        """Book a payout: move ``amount`` from pending to paid commissions.

        No money moves here; this only keeps the ledger consistent.

        Raises:
            NotFoundError: If the affiliate does not exist
            PayoutError: If amount is not positive or exceeds pending
        """
        with self.db.session() as session:
            affiliates = AffiliateRepository(session)
            affiliate = affiliates.get(affiliate_id)
            if affiliate is None:
                raise NotFoundError("Affiliate", affiliate_id)
            if amount <= 0 or not affiliates.move_to_paid(affiliate_id, amount):
                raise PayoutError(affiliate_id, amount, affiliate.pending_commissions)
            session.refresh(affiliate)

        self.logger.info(
            "affiliate_payout_recorded",
            affiliate_id=affiliate_id,
            amount=amount,
            pending=affiliate.pending_commissions,
            paid=affiliate.paid_commissions,
        )
        return affiliate
