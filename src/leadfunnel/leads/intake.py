"""Public submission pipeline: rate limit, validate, store, attribute."""

from datetime import datetime
from typing import Any, Callable, Protocol

from leadfunnel.leads.service import LeadService
from leadfunnel.leads.validator import LeadSubmission, validate_submission
from leadfunnel.storage.models import Lead, utcnow


class Gate(Protocol):
    def check(self, identity: str) -> None: ...


Validator = Callable[..., LeadSubmission]


class LeadIntake:
    """Runs a public submission through every stage in order.

    The gate is consulted first so a denied client never reaches the
    validator or the store.
    """

    def __init__(
        self,
        gate: Gate,
        leads: LeadService,
        validator: Validator = validate_submission,
    ):
        self.gate = gate
        self.leads = leads
        self.validator = validator

    def submit(
        self,
        payload: Any,
        identity: str,
        ip_address: str | None = None,
        user_agent: str | None = None,
        received_at: datetime | None = None,
    ) -> Lead:
        """Accept one submission.

        Raises:
            RateLimitedError: If ``identity`` is over its window
            LeadValidationError: If the payload is malformed
            DuplicateLeadError: If the email was already submitted
            StoreUnavailableError: If the lead could not be stored
        """
        self.gate.check(identity)
        submission = self.validator(payload, received_at=received_at or utcnow())
        if submission.user_agent is None and user_agent:
            submission.user_agent = user_agent
        return self.leads.create(submission, ip_address=ip_address)
