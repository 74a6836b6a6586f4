"""
Error taxonomy for match verification and rating updates.

Two families of exceptions are raised to callers:

- PreconditionError: the request is valid but the slot (or window, or
  caller) is in the wrong state for it. Always surfaced, never retried.
- InvariantViolation: misuse that the guarded transitions should make
  impossible. Logged loudly where raised.

Two further outcomes are deliberately *not* exceptions:

- A scorecard conflict is a valid sub-state (``disputed``), reported through
  the verification verdict.
- A missing rating record is recovered by substituting the default rating.
"""

from __future__ import annotations


class CueRankError(Exception):
    """Base class for all domain errors."""


# =============================================================================
# Precondition errors
# =============================================================================

class PreconditionError(CueRankError):
    """The attempted operation is not allowed in the current state."""


class MatchNotFound(PreconditionError):
    def __init__(self, match_id: int):
        super().__init__(f"Match {match_id} not found")
        self.match_id = match_id


class SlotNotFound(PreconditionError):
    def __init__(self, match_id: int, discipline: str):
        super().__init__(f"No {discipline} slot for match {match_id}")
        self.match_id = match_id
        self.discipline = discipline


class Locked(PreconditionError):
    """The slot's play window is closed."""

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class AlreadyStarted(PreconditionError):
    pass


class NotStarted(PreconditionError):
    pass


class AlreadyFinalized(PreconditionError):
    pass


class NotAParticipant(PreconditionError):
    pass


class NotDisputed(PreconditionError):
    pass


class SlotDisputed(PreconditionError):
    """Submissions are closed until an operator resolves the dispute."""


class SlotForfeited(PreconditionError):
    """A forfeited slot cannot be started or played."""


class InvalidScorecard(PreconditionError):
    pass


# =============================================================================
# Invariant violations
# =============================================================================

class InvariantViolation(CueRankError):
    """A transition that the serializing boundary should have prevented."""


class NotFinalized(InvariantViolation):
    pass


class DuplicateFinalization(AlreadyFinalized, InvariantViolation):
    """finalize() reached a slot that is already finalized."""


class MissingAuditRecord(InvariantViolation):
    """A finalized slot has no audit record to reverse."""
