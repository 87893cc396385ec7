"""Attribution of leads to affiliates and commission accrual."""

from leadfunnel.attribution.engine import CommissionEngine, EventKind, ReconcileReport

__all__ = ["CommissionEngine", "EventKind", "ReconcileReport"]
