"""Lead status lifecycle.

new -> contacted -> qualified -> approved -> installed, with rejected
reachable from every non-terminal state. installed and rejected are terminal.
"""

from dataclasses import dataclass
from enum import Enum

from leadfunnel.errors import IllegalTransitionError


class LeadStatus(str, Enum):
    """Lead lifecycle states."""
    NEW = "new"
    CONTACTED = "contacted"
    QUALIFIED = "qualified"
    APPROVED = "approved"
    INSTALLED = "installed"
    REJECTED = "rejected"


TRANSITIONS: dict[LeadStatus, frozenset[LeadStatus]] = {
    LeadStatus.NEW: frozenset({LeadStatus.CONTACTED, LeadStatus.REJECTED}),
    LeadStatus.CONTACTED: frozenset({LeadStatus.QUALIFIED, LeadStatus.REJECTED}),
    LeadStatus.QUALIFIED: frozenset({LeadStatus.APPROVED, LeadStatus.REJECTED}),
    LeadStatus.APPROVED: frozenset({LeadStatus.INSTALLED, LeadStatus.REJECTED}),
    LeadStatus.INSTALLED: frozenset(),
    LeadStatus.REJECTED: frozenset(),
}


@dataclass(frozen=True)
class Transition:
    """A validated status change and the commission effect it carries."""

    source: LeadStatus
    target: LeadStatus

    @property
    def changed(self) -> bool:
        return self.source is not self.target

    @property
    def enters_approved(self) -> bool:
        return self.changed and self.target is LeadStatus.APPROVED

    @property
    def reverses_approval(self) -> bool:
        # approved -> installed keeps the commission, only rejection claws it back
        return (
            self.changed
            and self.source is LeadStatus.APPROVED
            and self.target is LeadStatus.REJECTED
        )


def is_terminal(status: LeadStatus) -> bool:
    return not TRANSITIONS[status]


def transition(current: str | LeadStatus, target: str | LeadStatus) -> Transition:
    """Validate a status change against the transition table.

    Setting the current status again is allowed and changes nothing.

    Raises:
        IllegalTransitionError: If the edge is not in the table
    """
    source = LeadStatus(current)
    try:
        destination = LeadStatus(target)
    except ValueError as exc:
        raise IllegalTransitionError(source.value, str(target)) from exc
    if source is not destination and destination not in TRANSITIONS[source]:
        raise IllegalTransitionError(source.value, destination.value)
    return Transition(source, destination)
