"""
Tests for `leads/status.py`.

Covers the lead lifecycle:
- The forward path new -> contacted -> qualified -> approved -> installed.
- rejected is reachable from every non-terminal state.
- installed and rejected are terminal.
- Re-setting the current status is a no-op.
- Only approved -> rejected reverses a commission.
"""

import pytest

from leadfunnel.errors import IllegalTransitionError
from leadfunnel.leads.status import TRANSITIONS, LeadStatus, is_terminal, transition


def test_forward_path_is_allowed() -> None:
    path = ["new", "contacted", "qualified", "approved", "installed"]
    for source, target in zip(path, path[1:]):
        step = transition(source, target)
        assert step.changed
        assert step.target is LeadStatus(target)


@pytest.mark.parametrize("source", ["new", "contacted", "qualified", "approved"])
def test_rejected_reachable_from_non_terminal_states(source: str) -> None:
    assert transition(source, "rejected").target is LeadStatus.REJECTED


@pytest.mark.parametrize("source", ["installed", "rejected"])
def test_terminal_states_cannot_move(source: str) -> None:
    assert is_terminal(LeadStatus(source))
    with pytest.raises(IllegalTransitionError):
        transition(source, "new")


def test_skipping_a_stage_is_illegal() -> None:
    with pytest.raises(IllegalTransitionError) as exc_info:
        transition("new", "approved")

    assert exc_info.value.current == "new"
    assert exc_info.value.target == "approved"


def test_unknown_target_is_illegal() -> None:
    with pytest.raises(IllegalTransitionError):
        transition("new", "archived")


def test_same_status_is_a_noop() -> None:
    step = transition("approved", LeadStatus.APPROVED)

    assert not step.changed
    assert not step.enters_approved
    assert not step.reverses_approval


def test_commission_effects() -> None:
    assert transition("qualified", "approved").enters_approved
    assert transition("approved", "rejected").reverses_approval
    assert not transition("approved", "installed").reverses_approval
    assert not transition("qualified", "rejected").reverses_approval


def test_every_status_has_a_row() -> None:
    assert set(TRANSITIONS) == set(LeadStatus)
