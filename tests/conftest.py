"""
Pytest configuration shared by the lead funnel tests.

Settings are read from the environment at import time, so the overrides
below must run before any ``leadfunnel`` module is imported.
"""

import os

os.environ.setdefault("LEADFUNNEL_DATABASE_URL", "sqlite://")
os.environ.setdefault("LEADFUNNEL_LOG_LEVEL", "WARNING")
os.environ["LEADFUNNEL_DEFAULT_RATE_LIMIT"] = "1000/minute"

from typing import Any, Callable  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from leadfunnel.affiliates.codes import ReferralCodeGenerator  # noqa: E402
from leadfunnel.affiliates.service import AffiliateService  # noqa: E402
from leadfunnel.api.main import create_app  # noqa: E402
from leadfunnel.api.rate_limit import SubmissionGate, limiter  # noqa: E402
from leadfunnel.attribution.engine import CommissionEngine  # noqa: E402
from leadfunnel.leads.service import LeadService  # noqa: E402
from leadfunnel.leads.validator import validate_submission  # noqa: E402
from leadfunnel.settings import settings  # noqa: E402
from leadfunnel.storage.db import Database  # noqa: E402
from leadfunnel.storage.models import Lead  # noqa: E402


@pytest.fixture
def database(tmp_path) -> Database:
    """File-backed SQLite so every thread gets its own connection."""
    database = Database(f"sqlite:///{tmp_path / 'leadfunnel.db'}")
    database.create_tables()
    yield database
    database.dispose()


@pytest.fixture
def engine(database: Database) -> CommissionEngine:
    return CommissionEngine(database)


@pytest.fixture
def leads(database: Database, engine: CommissionEngine) -> LeadService:
    return LeadService(database, engine)


@pytest.fixture
def affiliates(database: Database) -> AffiliateService:
    return AffiliateService(database)


@pytest.fixture
def fixed_code_affiliates(database: Database) -> AffiliateService:
    """Affiliate service whose codes always end in ``001``."""
    return AffiliateService(database, ReferralCodeGenerator(max_attempts=3, randbelow=lambda n: 1))


@pytest.fixture
def make_payload() -> Callable[..., dict[str, Any]]:
    """Build a valid public form payload, overriding any field."""

    def _make(**overrides: Any) -> dict[str, Any]:
        payload = {
            "fullName": "John Smith",
            "email": "john.smith@mail.com",
            "phone": "(555) 123-4567",
            "city": "Austin",
            "state": "Texas",
            "hasResidence": True,
            "hasInternet": True,
            "hasSpace": True,
            "timeToComplete": 42.5,
        }
        payload.update(overrides)
        return {key: value for key, value in payload.items() if value is not None}

    return _make


@pytest.fixture
def submit(leads: LeadService, make_payload) -> Callable[..., Lead]:
    """Validate and store a lead through the service layer."""

    def _submit(**overrides: Any) -> Lead:
        return leads.create(validate_submission(make_payload(**overrides)), ip_address="203.0.113.5")

    return _submit


@pytest.fixture
def gate() -> SubmissionGate:
    gate = SubmissionGate(limit="5/minute", storage_uri="memory://", enabled=True)
    yield gate
    gate.reset()


@pytest.fixture
def client(database: Database, gate: SubmissionGate) -> TestClient:
    limiter.reset()
    app = create_app(database=database, gate=gate)
    with TestClient(app) as client:
        yield client


@pytest.fixture
def operator_headers() -> dict[str, str]:
    return {"X-Admin-Key": settings.admin_api_key}
