"""
Dual-submission verification.

Both participants submit a scorecard independently. Once a submission is
recorded, the protocol compares it with the other side's:

- MISSING: the other side has not submitted yet -> pending_verification
- MATCHING: identical scores, winner and per-rack achievements (racks are
  compared as a multiset, entry order does not matter) -> finalized
- CONFLICTING: anything differs -> disputed, until an operator supplies the
  authoritative scorecard

A conflict is not an error: ``disputed`` is a normal resting state and the
verdict is reported back to the submitter.
"""

from __future__ import annotations

import enum
import logging
from typing import Optional

from sqlalchemy.orm import Session

from cuerank.db.models import MatchSlot
from cuerank.services.finalization import FinalizationCoordinator, FinalizedResult
from cuerank.services.ledger import SubmissionLedger, other_side
from cuerank.services.transitions import claim_transition
from cuerank.slot_statuses import DISPUTED, PENDING_VERIFICATION

logger = logging.getLogger(__name__)


class Reconciliation(str, enum.Enum):
    MISSING = "missing"
    MATCHING = "matching"
    CONFLICTING = "conflicting"


def reconcile(mine, theirs) -> Reconciliation:
    """Classify two scorecards. Neither argument is modified."""
    if mine is None or theirs is None:
        return Reconciliation.MISSING
    if mine.fingerprint() == theirs.fingerprint():
        return Reconciliation.MATCHING
    return Reconciliation.CONFLICTING


class VerificationProtocol:
    """Drives a slot forward after a submission has been recorded."""

    def __init__(
        self,
        coordinator: FinalizationCoordinator,
        ledger: Optional[SubmissionLedger] = None,
    ):
        self.coordinator = coordinator
        self.ledger = ledger or SubmissionLedger()

    def process(
        self,
        session: Session,
        slot: MatchSlot,
        side: str,
    ) -> tuple[Reconciliation, Optional[FinalizedResult]]:
        """
        Reconcile ``side``'s submission against the other side's and apply
        the resulting transition.

        Returns:
            (verdict, FinalizedResult when the slot was finalized, else None)
        """
        mine = self.ledger.get(slot, side)
        theirs = self.ledger.get(slot, other_side(side))
        verdict = reconcile(mine, theirs)

        if verdict is Reconciliation.MISSING:
            claim_transition(session, slot, "submit", PENDING_VERIFICATION)
            return verdict, None

        if verdict is Reconciliation.CONFLICTING:
            claim_transition(session, slot, "submit", DISPUTED)
            logger.warning(
                "Slot %s (%s) disputed: submissions disagree", slot.id, slot.discipline
            )
            return verdict, None

        result = self.coordinator.finalize(session, slot, mine, resolution="agreed")
        return verdict, result
