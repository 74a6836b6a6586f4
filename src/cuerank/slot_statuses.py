"""Shared slot-status definitions and the guarded transition table.

This module is the single source of truth for which slot transitions are
legal. Every state change in the services goes through ``require_transition``
(in-memory check) and ``cuerank.services.transitions.claim_transition``
(conditional update), so "already finalized" is decided here and nowhere else.
"""

from __future__ import annotations

from typing import Iterable

from cuerank.errors import (
    AlreadyFinalized,
    AlreadyStarted,
    DuplicateFinalization,
    NotDisputed,
    NotFinalized,
    NotStarted,
    PreconditionError,
    SlotDisputed,
)

SCHEDULED = "scheduled"
IN_PROGRESS = "in_progress"
PENDING_VERIFICATION = "pending_verification"
FINALIZED = "finalized"
DISPUTED = "disputed"

ALL_SLOT_STATUSES: tuple[str, ...] = (
    SCHEDULED,
    IN_PROGRESS,
    PENDING_VERIFICATION,
    FINALIZED,
    DISPUTED,
)

# action -> {from_status: allowed target statuses}
SLOT_TRANSITIONS: dict[str, dict[str, tuple[str, ...]]] = {
    "start": {SCHEDULED: (IN_PROGRESS,)},
    "submit": {
        IN_PROGRESS: (PENDING_VERIFICATION,),
        PENDING_VERIFICATION: (PENDING_VERIFICATION, DISPUTED),
    },
    "finalize": {
        PENDING_VERIFICATION: (FINALIZED,),
        DISPUTED: (FINALIZED,),
    },
    "resolve": {DISPUTED: (FINALIZED,)},
    # Operator-recorded forfeit, before or during play
    "forfeit": {
        SCHEDULED: (FINALIZED,),
        IN_PROGRESS: (FINALIZED,),
        PENDING_VERIFICATION: (FINALIZED,),
        DISPUTED: (FINALIZED,),
    },
    "reverse": {FINALIZED: (SCHEDULED,)},
}


def allowed_sources(action: str) -> tuple[str, ...]:
    """Statuses from which ``action`` may be taken."""
    return tuple(SLOT_TRANSITIONS[action])


def require_transition(status: str, action: str, target: str | None = None) -> None:
    """Raise the matching domain error if ``action`` is illegal from ``status``.

    ``target`` narrows the check to a specific destination status.
    """
    targets = SLOT_TRANSITIONS[action].get(status)
    if targets is not None and (target is None or target in targets):
        return

    if action == "start":
        raise AlreadyStarted(f"Slot already started (status={status})")
    if action == "reverse":
        raise NotFinalized(f"Only finalized slots can be reset (status={status})")
    if action == "resolve":
        raise NotDisputed(f"Slot is not disputed (status={status})")
    if status == FINALIZED:
        if action == "finalize":
            raise DuplicateFinalization("Slot already finalized")
        raise AlreadyFinalized("Slot already finalized")
    if status == SCHEDULED:
        raise NotStarted("Slot has not been started")
    if status == DISPUTED:
        raise SlotDisputed("Slot is disputed and awaiting operator resolution")
    raise PreconditionError(f"Cannot {action} a slot in status {status}")


def derive_match_status(slot_statuses: Iterable[str]) -> str:
    """Overall match status, derived from its slots and never stored.

    - every slot finalized -> finalized
    - any slot disputed -> disputed
    - any slot started (or some, not all, finalized) -> in_progress
    - otherwise -> scheduled
    """
    statuses = list(slot_statuses)
    if not statuses:
        return SCHEDULED
    if all(s == FINALIZED for s in statuses):
        return FINALIZED
    if any(s == DISPUTED for s in statuses):
        return DISPUTED
    if any(s != SCHEDULED for s in statuses):
        return IN_PROGRESS
    return SCHEDULED
