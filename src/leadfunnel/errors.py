"""Exception taxonomy for the lead funnel.

Every error raised by the engine derives from ``LeadFunnelError`` so the API
layer can map categories to HTTP responses in one place.
"""

from typing import Any


class LeadFunnelError(Exception):
    """Base class for lead funnel errors."""

    # Message safe to show to public (unauthenticated) callers
    public_message = "Request could not be processed"


class Violation(dict):
    """A single field-level validation failure.

    A dict subclass so it serialises straight into JSON responses.
    """

    def __init__(self, field: str, message: str, code: str):
        super().__init__(field=field, message=message, code=code)

    @property
    def field(self) -> str:
        return self["field"]

    @property
    def code(self) -> str:
        return self["code"]


class LeadValidationError(LeadFunnelError):
    """Raised when an inbound payload fails schema validation."""

    public_message = "Invalid input data"

    def __init__(self, violations: list[Violation]):
        self.violations = violations
        fields = ", ".join(v.field for v in violations)
        super().__init__(f"Validation failed for: {fields}")


class ConflictError(LeadFunnelError):
    """Raised when a write collides with an existing record."""


class DuplicateLeadError(ConflictError):
    """Raised when a lead with the same email already exists."""

    public_message = "An application with this email already exists"

    def __init__(self, email: str):
        self.email = email
        super().__init__(f"Lead already exists for {email}")


class DuplicateAffiliateError(ConflictError):
    """Raised when an affiliate with the same email already exists."""

    public_message = "Email already registered as affiliate"

    def __init__(self, email: str):
        self.email = email
        super().__init__(f"Affiliate already exists for {email}")


class CodeGenerationExhaustedError(LeadFunnelError):
    """Raised when no unique referral code could be issued."""

    public_message = "Unable to generate unique affiliate code"

    def __init__(self, prefix: str, attempts: int):
        self.prefix = prefix
        self.attempts = attempts
        super().__init__(f"No unique code for prefix {prefix!r} after {attempts} attempts")


class RateLimitedError(LeadFunnelError):
    """Raised when a client exceeds its request window."""

    public_message = "Too many requests. Please try again later."

    def __init__(self, identity: str, limit: str, retry_after: int):
        self.identity = identity
        self.limit = limit
        self.retry_after = retry_after
        super().__init__(f"Rate limit {limit} exceeded for {identity}")


class StoreUnavailableError(LeadFunnelError):
    """Raised when the identity store times out or cannot be reached."""

    public_message = "Service temporarily unavailable. Please retry."


class NotFoundError(LeadFunnelError):
    """Raised when a record does not exist."""

    public_message = "Not found"

    def __init__(self, entity: str, key: Any):
        self.entity = entity
        self.key = key
        self.public_message = f"{entity} not found"
        super().__init__(f"{entity} {key} not found")


class IllegalTransitionError(LeadFunnelError):
    """Raised when a lead status change is not in the transition table."""

    public_message = "Illegal status transition"

    def __init__(self, current: str, target: str):
        self.current = current
        self.target = target
        super().__init__(f"Cannot move lead from '{current}' to '{target}'")


class PayoutError(LeadFunnelError):
    """Raised when a payout cannot be booked against pending commissions."""

    public_message = "Payout rejected"

    def __init__(self, affiliate_id: int, amount: float, pending: float):
        self.affiliate_id = affiliate_id
        self.amount = amount
        self.pending = pending
        super().__init__(
            f"Payout {amount} exceeds pending commissions {pending} for affiliate {affiliate_id}"
        )
