"""Per-slot store of each participant's pending scorecard."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from cuerank.db.models import MatchSlot, Submission, utcnow
from cuerank.scorecards import parse_scorecard

logger = logging.getLogger(__name__)

SIDES = ("p1", "p2")


def other_side(side: str) -> str:
    return "p2" if side == "p1" else "p1"


class SubmissionLedger:
    """
    Holds at most one submission per side per slot.

    A participant may replace their own submission while the slot is still
    open; nobody ever edits the other side's. Submissions are read back as
    validated scorecards, never as raw payloads.
    """

    def record(
        self,
        session: Session,
        slot: MatchSlot,
        side: str,
        submitted_by: int,
        scorecard,
        submitted_at: Optional[datetime] = None,
    ) -> Submission:
        payload = scorecard.model_dump(mode="json")
        when = submitted_at or utcnow()

        existing = self.entry(slot, side)
        if existing is not None:
            existing.scorecard = payload
            existing.submitted_by = submitted_by
            existing.submitted_at = when
            logger.info("Replaced %s submission on slot %s", side, slot.id)
            submission = existing
        else:
            submission = Submission(
                slot=slot,
                side=side,
                submitted_by=submitted_by,
                scorecard=payload,
                submitted_at=when,
            )
            session.add(submission)
            logger.info("Recorded %s submission on slot %s", side, slot.id)

        setattr(slot, f"verified_{side}", True)
        return submission

    def entry(self, slot: MatchSlot, side: str) -> Optional[Submission]:
        for submission in slot.submissions:
            if submission.side == side:
                return submission
        return None

    def get(self, slot: MatchSlot, side: str):
        """Validated scorecard submitted by ``side``, or None."""
        submission = self.entry(slot, side)
        if submission is None:
            return None
        return parse_scorecard(slot.discipline, submission.scorecard)

    def sides_submitted(self, slot: MatchSlot) -> list[str]:
        return [side for side in SIDES if self.entry(slot, side) is not None]

    def clear(self, slot: MatchSlot) -> int:
        """Drop every submission on the slot. Returns how many were removed."""
        count = len(slot.submissions)
        slot.submissions.clear()
        return count
