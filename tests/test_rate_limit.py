"""
Tests for `api/rate_limit.py` and the intake pipeline ordering.

Covers submission rate limiting:
- A burst beyond the window is denied before the validator runs.
- Rejected payloads still count against the window.
- Identities are limited independently.
- The client identity prefers forwarding headers over the peer address.
"""

import pytest
from starlette.requests import Request

from leadfunnel.api.rate_limit import SubmissionGate, client_identity
from leadfunnel.errors import LeadValidationError, RateLimitedError
from leadfunnel.leads.intake import LeadIntake
from leadfunnel.leads.validator import validate_submission


class RecordingLeads:
    """Stands in for the lead service and records what reached the store."""

    def __init__(self):
        self.created = []

    def create(self, submission, ip_address=None):
        self.created.append(submission)
        return submission


class CountingValidator:
    def __init__(self):
        self.calls = 0

    def __call__(self, payload, received_at=None):
        self.calls += 1
        return validate_submission(payload, received_at=received_at)


@pytest.fixture
def small_gate() -> SubmissionGate:
    gate = SubmissionGate(limit="3/minute", storage_uri="memory://", enabled=True)
    yield gate
    gate.reset()


def _request(headers: dict[str, str], client=("10.0.0.1", 4321)) -> Request:
    scope = {
        "type": "http",
        "method": "POST",
        "path": "/api/v1/leads",
        "headers": [(k.lower().encode(), v.encode()) for k, v in headers.items()],
        "client": client,
    }
    return Request(scope)


def test_burst_is_denied_before_validation(small_gate, make_payload) -> None:
    validator = CountingValidator()
    store = RecordingLeads()
    intake = LeadIntake(small_gate, store, validator=validator)

    for i in range(3):
        intake.submit(make_payload(email=f"lead{i}@mail.com"), identity="198.51.100.1")

    for i in range(3, 5):
        with pytest.raises(RateLimitedError) as exc_info:
            intake.submit(make_payload(email=f"lead{i}@mail.com"), identity="198.51.100.1")
        assert exc_info.value.retry_after >= 1

    assert validator.calls == 3
    assert len(store.created) == 3


def test_invalid_payloads_count_against_the_window(small_gate, make_payload) -> None:
    intake = LeadIntake(small_gate, RecordingLeads())

    for _ in range(3):
        with pytest.raises(LeadValidationError):
            intake.submit({"fullName": "x"}, identity="198.51.100.2")

    with pytest.raises(RateLimitedError):
        intake.submit(make_payload(), identity="198.51.100.2")


def test_identities_are_limited_independently(small_gate) -> None:
    for _ in range(3):
        small_gate.check("198.51.100.3")

    with pytest.raises(RateLimitedError):
        small_gate.check("198.51.100.3")
    small_gate.check("198.51.100.4")


def test_disabled_gate_allows_everything() -> None:
    gate = SubmissionGate(limit="1/minute", storage_uri="memory://", enabled=False)

    for _ in range(5):
        gate.check("198.51.100.5")


def test_user_agent_header_fills_missing_field(small_gate, make_payload) -> None:
    store = RecordingLeads()
    intake = LeadIntake(small_gate, store)

    intake.submit(make_payload(), identity="198.51.100.6", user_agent="Mozilla/5.0")

    assert store.created[0].user_agent == "Mozilla/5.0"


def test_client_identity_prefers_first_forwarded_hop() -> None:
    request = _request({"X-Forwarded-For": "203.0.113.7, 10.0.0.9", "X-Real-IP": "203.0.113.8"})

    assert client_identity(request) == "203.0.113.7"


def test_client_identity_falls_back_to_real_ip_then_peer() -> None:
    assert client_identity(_request({"X-Real-IP": "203.0.113.8"})) == "203.0.113.8"
    assert client_identity(_request({})) == "10.0.0.1"
    assert client_identity(_request({}, client=None)) == "unknown"
