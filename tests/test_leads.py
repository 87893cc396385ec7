"""
Tests for `leads/service.py` and `attribution/engine.py`.

Covers lead capture and commission accrual:
- Distinct emails are all stored; a repeated email is a conflict.
- A referral code credits the owning affiliate once.
- Approval accrues the affiliate's current rate; approved -> rejected reverses it.
- Events are applied exactly once, even when redelivered.
- An attribution failure never loses the lead and is reconciled later.
- Deleting a lead drops its events; concurrent approvals still accrue N * R.
"""

from concurrent.futures import ThreadPoolExecutor
from typing import get_type_hints

import pytest
from sqlalchemy import select

from leadfunnel.attribution.engine import CommissionEngine, EventKind
from leadfunnel.errors import (
    DuplicateLeadError,
    IllegalTransitionError,
    NotFoundError,
    StoreUnavailableError,
)
from leadfunnel.leads.service import LeadService
from leadfunnel.leads.validator import validate_submission
from leadfunnel.storage.models import Affiliate, AttributionEvent, Lead
from leadfunnel.storage.repo import (
    AffiliateRepository,
    AttributionEventRepository,
    LeadRepository,
)


class UnreachableEngine(CommissionEngine):
    """Commission engine whose store is always down."""

    def apply(self, event_id):
        raise StoreUnavailableError("database is locked")


def _approve(leads: LeadService, lead_id: int):
    for status in ("contacted", "qualified", "approved"):
        lead = leads.update(lead_id, {"status": status})
    return lead


def _events(database, lead_id: int) -> dict[str, AttributionEvent]:
    with database.session() as session:
        stmt = select(AttributionEvent).where(AttributionEvent.lead_id == lead_id)
        return {event.kind: event for event in session.scalars(stmt)}


def test_distinct_emails_are_all_stored(database, submit) -> None:
    for i in range(10):
        submit(email=f"lead{i}@mail.com")

    with database.session() as session:
        assert len(list(session.scalars(select(Lead)))) == 10


def test_duplicate_email_is_rejected_and_store_unchanged(leads, submit) -> None:
    first = submit(email="jane@mail.com")

    with pytest.raises(DuplicateLeadError):
        submit(email="JANE@mail.com", fullName="Jane Again")

    assert leads.count_by_email("jane@mail.com") == 1
    assert leads.get(first.id).full_name == "John Smith"


def test_new_lead_defaults(submit) -> None:
    lead = submit()

    assert lead.status == "new"
    assert lead.qualified
    assert lead.ip_address == "203.0.113.5"
    assert lead.affiliate_id is None


def test_referral_and_approval_scenario(database, leads, fixed_code_affiliates, submit) -> None:
    affiliate = fixed_code_affiliates.create(name="John", email="john@mail.com")
    assert affiliate.affiliate_code == "JOH001"
    assert affiliate.commission_rate == 50.0

    lead = submit(email="referred@mail.com", referralCode="joh001")
    assert lead.affiliate_id == affiliate.id
    after_referral = fixed_code_affiliates.get(affiliate.id)
    assert after_referral.total_referrals == 1
    assert after_referral.total_commissions == 0

    _approve(leads, lead.id)

    after_approval = fixed_code_affiliates.get(affiliate.id)
    assert after_approval.approved_referrals == 1
    assert after_approval.total_commissions == 50.0
    assert after_approval.pending_commissions == 50.0
    assert after_approval.paid_commissions == 0


def test_approving_n_leads_accrues_n_times_rate(affiliates, leads, submit) -> None:
    affiliate = affiliates.create(name="Rita Rate", email="rita@mail.com", commission_rate=35.0)

    for i in range(4):
        lead = submit(email=f"lead{i}@mail.com", referralCode=affiliate.affiliate_code)
        _approve(leads, lead.id)

    refreshed = affiliates.get(affiliate.id)
    assert refreshed.total_referrals == 4
    assert refreshed.approved_referrals == 4
    assert refreshed.total_commissions == pytest.approx(4 * 35.0)
    assert refreshed.total_commissions == pytest.approx(
        refreshed.pending_commissions + refreshed.paid_commissions
    )


def test_rejecting_an_approved_lead_reverses_the_accrual(affiliates, leads, submit) -> None:
    affiliate = affiliates.create(name="Rex Reverse", email="rex@mail.com")
    lead = submit(referralCode=affiliate.affiliate_code)
    _approve(leads, lead.id)

    # A later rate change must not alter what is clawed back
    affiliates.update(affiliate.id, {"commission_rate": 80.0})
    leads.update(lead.id, {"status": "rejected"})

    refreshed = affiliates.get(affiliate.id)
    assert refreshed.total_referrals == 1
    assert refreshed.approved_referrals == 0
    assert refreshed.total_commissions == 0
    assert refreshed.pending_commissions == 0


def test_installed_keeps_the_commission(affiliates, leads, submit) -> None:
    affiliate = affiliates.create(name="Ivy Install", email="ivy@mail.com")
    lead = submit(referralCode=affiliate.affiliate_code)
    _approve(leads, lead.id)

    leads.update(lead.id, {"status": "installed"})

    assert affiliates.get(affiliate.id).pending_commissions == 50.0


def test_illegal_transition_leaves_lead_unchanged(leads, submit) -> None:
    lead = submit()

    with pytest.raises(IllegalTransitionError):
        leads.update(lead.id, {"status": "approved"})

    assert leads.get(lead.id).status == "new"


def test_plain_edits_have_no_side_effects(database, affiliates, leads, submit) -> None:
    affiliate = affiliates.create(name="Ed Edit", email="ed@mail.com")
    lead = submit(referralCode=affiliate.affiliate_code)

    updated = leads.update(lead.id, {"notes": "Called twice", "monthly_earnings": 120.0})

    assert updated.notes == "Called twice"
    assert updated.monthly_earnings == 120.0
    assert updated.updated_at >= lead.updated_at
    assert set(_events(database, lead.id)) == {EventKind.REFERRAL.value}


def test_redelivered_events_do_not_double_count(database, engine, affiliates, leads, submit) -> None:
    affiliate = affiliates.create(name="Dee Dupe", email="dee@mail.com")
    lead = submit(referralCode=affiliate.affiliate_code)
    _approve(leads, lead.id)
    events = _events(database, lead.id)

    for event in events.values():
        assert engine.apply(event.id) is None
    # Re-entering approved is a no-op and queues nothing new
    leads.update(lead.id, {"status": "approved"})
    with database.session() as session:
        again = AttributionEventRepository(session).enqueue(lead.id, EventKind.APPROVAL.value)
        assert again.id == events[EventKind.APPROVAL.value].id

    refreshed = affiliates.get(affiliate.id)
    assert refreshed.total_referrals == 1
    assert refreshed.approved_referrals == 1
    assert refreshed.total_commissions == 50.0


def test_unknown_code_is_an_attribution_miss(database, engine, submit) -> None:
    lead = submit(referralCode="NOPE999")

    assert lead.referral_code == "NOPE999"
    assert lead.affiliate_id is None
    referral = _events(database, lead.id)[EventKind.REFERRAL.value]
    assert referral.applied_at is not None
    assert referral.affiliate_id is None
    assert engine.reconcile().attempted == 0


def test_attribution_failure_keeps_the_lead_and_reconciles(database, affiliates, make_payload) -> None:
    affiliate = affiliates.create(name="Fay Fail", email="fay@mail.com")
    failing = LeadService(database, UnreachableEngine(database))

    lead = failing.create(validate_submission(make_payload(referralCode=affiliate.affiliate_code)))

    assert failing.get(lead.id).email == "john.smith@mail.com"
    assert affiliates.get(affiliate.id).total_referrals == 0
    referral = _events(database, lead.id)[EventKind.REFERRAL.value]
    assert referral.applied_at is None
    assert referral.attempts == 1
    assert "database is locked" in referral.last_error

    report = CommissionEngine(database).reconcile()

    assert (report.attempted, report.applied, report.remaining) == (1, 1, 0)
    assert affiliates.get(affiliate.id).total_referrals == 1


def test_get_and_delete_missing_lead(leads) -> None:
    with pytest.raises(NotFoundError):
        leads.get(404)
    with pytest.raises(NotFoundError):
        leads.delete(404)


def test_list_filters_and_paginates(leads, submit) -> None:
    for i in range(5):
        submit(email=f"tx{i}@mail.com", state="Texas")
    submit(email="ca@mail.com", state="California")

    page, total = leads.list(state="Texas", page=2, page_size=2)

    assert total == 5
    assert len(page) == 2
    assert all(lead.state == "Texas" for lead in page)


def test_reissued_code_does_not_capture_old_leads(leads, fixed_code_affiliates, submit) -> None:
    original = fixed_code_affiliates.create(name="John", email="john@mail.com")
    lead = submit(referralCode=original.affiliate_code)
    fixed_code_affiliates.delete(original.id)

    successor = fixed_code_affiliates.create(name="Johan", email="johan@mail.com")
    assert successor.affiliate_code == original.affiliate_code

    _approve(leads, lead.id)

    refreshed = fixed_code_affiliates.get(successor.id)
    assert refreshed.approved_referrals == 0
    assert refreshed.total_commissions == 0
    assert leads.get(lead.id).affiliate_id is None


def test_repository_signatures_resolve() -> None:
    # Methods named ``list`` must not shadow the builtin in later annotations
    assert get_type_hints(LeadRepository.all)["return"] == list[Lead]
    assert get_type_hints(LeadRepository.list)["return"] == tuple[list[Lead], int]
    assert get_type_hints(AffiliateRepository.all)["return"] == list[Affiliate]
    assert get_type_hints(LeadService.update)["return"] is Lead


def test_deleting_a_lead_does_not_block_the_next_one(database, affiliates, leads, submit) -> None:
    affiliate = affiliates.create(name="Nora Next", email="nora@mail.com")
    first = submit(email="first@mail.com", referralCode=affiliate.affiliate_code)
    leads.delete(first.id)

    second = submit(email="second@mail.com", referralCode=affiliate.affiliate_code)
    _approve(leads, second.id)

    assert second.id != first.id
    assert _events(database, first.id) == {}
    refreshed = affiliates.get(affiliate.id)
    assert refreshed.total_referrals == 2
    assert refreshed.approved_referrals == 1
    assert refreshed.total_commissions == 50.0


def test_zero_rate_reversal_still_drops_the_approval(affiliates, leads, submit) -> None:
    affiliate = affiliates.create(name="Zed Zero", email="zed@mail.com", commission_rate=0.0)
    lead = submit(referralCode=affiliate.affiliate_code)
    _approve(leads, lead.id)
    assert affiliates.get(affiliate.id).approved_referrals == 1

    leads.update(lead.id, {"status": "rejected"})

    refreshed = affiliates.get(affiliate.id)
    assert refreshed.approved_referrals == 0
    assert refreshed.total_commissions == 0


def test_concurrent_approvals_accrue_n_times_rate(database, affiliates, submit) -> None:
    affiliate = affiliates.create(name="Cora Concurrent", email="cora@mail.com", commission_rate=35.0)
    lead_ids = [
        submit(email=f"lead{i}@mail.com", referralCode=affiliate.affiliate_code).id
        for i in range(8)
    ]

    def approve(lead_id: int) -> None:
        _approve(LeadService(database, CommissionEngine(database)), lead_id)

    with ThreadPoolExecutor(max_workers=8) as pool:
        list(pool.map(approve, lead_ids))

    refreshed = affiliates.get(affiliate.id)
    assert refreshed.approved_referrals == 8
    assert refreshed.total_commissions == 8 * 35.0
    assert refreshed.pending_commissions == 8 * 35.0


def test_cent_rates_accrue_without_drift(affiliates, leads, submit) -> None:
    affiliate = affiliates.create(name="Cent Sum", email="cent@mail.com", commission_rate=0.1)

    for i in range(3):
        lead = submit(email=f"cent{i}@mail.com", referralCode=affiliate.affiliate_code)
        _approve(leads, lead.id)

    refreshed = affiliates.get(affiliate.id)
    # 0.1 + 0.1 + 0.1 in binary floating point is 0.30000000000000004
    assert refreshed.total_commissions == 0.3
    assert refreshed.pending_commissions == 0.3
