"""
Service layer: match lifecycle, dual-submission verification, and the
finalization coordinator that applies results to rating records.
"""

from cuerank.services.finalization import (
    FinalizationCoordinator,
    FinalizedResult,
    ScheduledBaseline,
)
from cuerank.services.ledger import SubmissionLedger
from cuerank.services.matches import (
    RaceTargets,
    SlotState,
    list_audits,
    match_state,
    rating_record,
    reset_slot,
    resolve_dispute,
    schedule_match,
    set_manual_unlock,
    slot_state,
    start_slot,
    submit_scorecard,
)
from cuerank.services.verification import Reconciliation, VerificationProtocol, reconcile

__all__ = [
    "FinalizationCoordinator",
    "FinalizedResult",
    "ScheduledBaseline",
    "SubmissionLedger",
    "RaceTargets",
    "SlotState",
    "list_audits",
    "match_state",
    "rating_record",
    "reset_slot",
    "resolve_dispute",
    "schedule_match",
    "set_manual_unlock",
    "slot_state",
    "start_slot",
    "submit_scorecard",
    "Reconciliation",
    "VerificationProtocol",
    "reconcile",
]
