"""Lead capture: validation, intake pipeline and status lifecycle."""

from leadfunnel.leads.intake import LeadIntake
from leadfunnel.leads.service import LeadService
from leadfunnel.leads.status import LeadStatus, transition
from leadfunnel.leads.validator import LeadSubmission, validate_submission

__all__ = [
    "LeadIntake",
    "LeadService",
    "LeadStatus",
    "LeadSubmission",
    "transition",
    "validate_submission",
]
