"""Lead intake validation.

Turns an untyped form payload into a normalised ``LeadSubmission`` or raises
``LeadValidationError`` carrying every field violation, in schema order.
"""

from datetime import datetime, timezone
from typing import Any, Iterable, Mapping

from pydantic import BaseModel, ConfigDict, EmailStr, Field, ValidationError, field_validator

from leadfunnel.errors import LeadValidationError, Violation
from leadfunnel.storage.models import utcnow

PHONE_PATTERN = r"^[\d\s\-\(\)\+]+$"

# pydantic error type -> stable violation code
_ERROR_CODES = {
    "missing": "REQUIRED_FIELD",
    "string_too_short": "MIN_LENGTH",
    "string_too_long": "MAX_LENGTH",
    "string_pattern_mismatch": "INVALID_PATTERN",
    "value_error": "INVALID_FORMAT",
    "bool_parsing": "INVALID_TYPE",
    "bool_type": "INVALID_TYPE",
    "string_type": "INVALID_TYPE",
    "float_parsing": "INVALID_TYPE",
    "float_type": "INVALID_TYPE",
    "greater_than_equal": "MIN_VALUE",
    "datetime_parsing": "INVALID_DATETIME",
    "datetime_from_date_parsing": "INVALID_DATETIME",
    "datetime_type": "INVALID_DATETIME",
}


class LeadSubmission(BaseModel):
    """Public application form payload."""

    model_config = ConfigDict(
        populate_by_name=True,
        str_strip_whitespace=True,
        extra="ignore",
    )

    # Required
    full_name: str = Field(..., alias="fullName", min_length=2, max_length=255)
    email: EmailStr
    phone: str = Field(..., pattern=PHONE_PATTERN, max_length=50)
    city: str = Field(..., min_length=2, max_length=100)
    state: str = Field(..., min_length=2, max_length=50)
    has_residence: bool = Field(..., alias="hasResidence")
    has_internet: bool = Field(..., alias="hasInternet")
    has_space: bool = Field(..., alias="hasSpace")

    # Optional attribution and analytics
    referral_code: str | None = Field(None, alias="referralCode", max_length=50)
    referral_source: str | None = Field(None, alias="referralSource", max_length=100)
    session_id: str | None = Field(None, alias="sessionId", max_length=255)
    utm_source: str | None = Field(None, alias="utmSource", max_length=255)
    utm_medium: str | None = Field(None, alias="utmMedium", max_length=255)
    utm_campaign: str | None = Field(None, alias="utmCampaign", max_length=255)
    user_agent: str | None = Field(None, alias="userAgent")
    screen_resolution: str | None = Field(None, alias="screenResolution", max_length=50)
    submission_time: datetime | None = Field(None, alias="submissionTime")
    time_to_complete: float | None = Field(None, alias="timeToComplete", ge=0)

    @field_validator("email")
    @classmethod
    def lowercase_email(cls, v: str) -> str:
        return v.lower()

    @field_validator("referral_code")
    @classmethod
    def normalize_referral_code(cls, v: str | None) -> str | None:
        if v is None:
            return None
        return v.upper() or None

    @field_validator(
        "referral_source", "session_id", "utm_source", "utm_medium",
        "utm_campaign", "user_agent", "screen_resolution",
    )
    @classmethod
    def empty_to_none(cls, v: str | None) -> str | None:
        return v or None

    @field_validator("submission_time")
    @classmethod
    def to_naive_utc(cls, v: datetime | None) -> datetime | None:
        if v is not None and v.tzinfo is not None:
            return v.astimezone(timezone.utc).replace(tzinfo=None)
        return v

    @property
    def qualified(self) -> bool:
        return self.has_residence and self.has_internet and self.has_space


def violations_from_errors(errors: Iterable[Mapping[str, Any]]) -> list[Violation]:
    """Convert pydantic error dicts into violations.

    A leading request location (``body``, ``query``, ``path``) is dropped.
    """
    violations = []
    for error in errors:
        loc = list(error["loc"])
        if len(loc) > 1 and loc[0] in ("body", "query", "path"):
            loc = loc[1:]
        field = ".".join(str(part) for part in loc) or "body"
        code = _ERROR_CODES.get(error["type"], error["type"].upper())
        violations.append(Violation(field=field, message=error["msg"], code=code))
    return violations


def validate_submission(
    payload: Any,
    received_at: datetime | None = None,
) -> LeadSubmission:
    """Validate and normalise a lead submission.

    Args:
        payload: Raw decoded request body
        received_at: Server receipt time, used when the client sent no
            submission time

    Returns:
        Normalised submission

    Raises:
        LeadValidationError: With every field violation found
    """
    if not isinstance(payload, Mapping):
        raise LeadValidationError(
            [Violation(field="body", message="Payload must be a JSON object", code="INVALID_TYPE")]
        )
    try:
        submission = LeadSubmission.model_validate(dict(payload))
    except ValidationError as exc:
        raise LeadValidationError(violations_from_errors(exc.errors())) from exc

    if submission.submission_time is None:
        submission.submission_time = received_at or utcnow()
    return submission
