"""
Guarded slot status changes.

Every status change is a conditional UPDATE keyed on the current status:

    UPDATE match_slots SET status = :target
    WHERE id = :id AND status IN (:allowed_sources)

If the row no longer matches (another request moved it first), zero rows
are updated and the loser gets the same domain error an in-memory check
would have raised. Two concurrent finalizes of one slot therefore cannot
both succeed, whatever each of them read beforehand.
"""

from __future__ import annotations

import logging

from sqlalchemy import update
from sqlalchemy.orm import Session
from sqlalchemy.orm.attributes import set_committed_value

from cuerank.db.models import MatchSlot
from cuerank.errors import InvariantViolation, PreconditionError
from cuerank.slot_statuses import SLOT_TRANSITIONS, require_transition

logger = logging.getLogger(__name__)


def _sources_for(action: str, target: str) -> list[str]:
    return [
        source
        for source, targets in SLOT_TRANSITIONS[action].items()
        if target in targets
    ]


def claim_transition(session: Session, slot: MatchSlot, action: str, target: str) -> None:
    """
    Move ``slot`` to ``target`` if ``action`` is legal from its stored status.

    Raises:
        PreconditionError / InvariantViolation subclass chosen by
        cuerank.slot_statuses.require_transition.
    """
    try:
        require_transition(slot.status, action, target)
    except InvariantViolation:
        logger.error(
            "Refused %s on slot %s (%s, status=%s)",
            action, slot.id, slot.discipline, slot.status,
        )
        raise

    # Pending attribute changes must reach the row before it is claimed
    session.flush()

    previous = slot.status
    result = session.execute(
        update(MatchSlot)
        .where(
            MatchSlot.id == slot.id,
            MatchSlot.status.in_(_sources_for(action, target)),
        )
        .values(status=target)
        .execution_options(synchronize_session=False)
    )

    if result.rowcount != 1:
        session.refresh(slot, attribute_names=["status"])
        logger.warning(
            "Lost %s race on slot %s: status is now %s", action, slot.id, slot.status
        )
        try:
            require_transition(slot.status, action, target)
        except InvariantViolation:
            logger.error("Refused %s on slot %s after concurrent change", action, slot.id)
            raise
        raise PreconditionError(
            f"Slot {slot.id} changed concurrently (status={slot.status})"
        )

    set_committed_value(slot, "status", target)
    if previous != target:
        logger.info("Slot %s (%s): %s -> %s", slot.id, slot.discipline, previous, target)
