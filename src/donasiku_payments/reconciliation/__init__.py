"""Payment confirmation: status mapping, reconciliation and sweeps."""

from .status import map_result_code
from .models import (
    ReconcileOutcome,
    CheckResult,
    SweepEntry,
    SweepResult,
    STILL_PENDING_REASON,
)
from .reconciler import Reconciler
from .service import ReconciliationService

__all__ = [
    "map_result_code",
    "ReconcileOutcome",
    "CheckResult",
    "SweepEntry",
    "SweepResult",
    "STILL_PENDING_REASON",
    "Reconciler",
    "ReconciliationService",
]
