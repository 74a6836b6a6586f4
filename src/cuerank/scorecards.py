"""
Typed scorecards submitted by participants (and by operators on dispute).

Each discipline has its own closed model so that flags which only make sense
in one game cannot appear in the other: an 8-ball rack can be won early
(the 8 on the break), a 9-ball rack can be won on the snap. Payloads are
validated here, at the boundary, before they reach verification.

Usage:
    card = parse_scorecard("8ball", {
        "score_p1": 5, "score_p2": 4, "winner": "p1",
        "games": [...],
    })
"""

from __future__ import annotations

from collections import Counter
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, model_validator

from cuerank.errors import InvalidScorecard

EIGHT_BALL = "8ball"
NINE_BALL = "9ball"
DISCIPLINES: tuple[str, ...] = (EIGHT_BALL, NINE_BALL)

RACE_LENGTHS: tuple[str, ...] = ("short", "long")

Side = Literal["p1", "p2"]

# Counter name on PlayerRatingRecord for each achievement flag.
ACHIEVEMENT_COUNTERS: dict[str, str] = {
    "break_and_run": "break_and_runs",
    "rack_and_run": "rack_and_runs",
    "snap_win": "snap_wins",
    "early_win": "early_wins",
}


class GameEntry(BaseModel):
    """One rack: who won it and what they did."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    winner: Side
    break_and_run: bool = False
    rack_and_run: bool = False

    def flags(self) -> dict[str, bool]:
        return {name: bool(getattr(self, name, False)) for name in ACHIEVEMENT_COUNTERS}

    def fingerprint(self) -> tuple:
        flags = self.flags()
        return (self.winner,) + tuple(flags[name] for name in sorted(flags))


class EightBallGame(GameEntry):
    early_win: bool = False


class NineBallGame(GameEntry):
    snap_win: bool = False


class _ScorecardBase(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    score_p1: int = Field(ge=0)
    score_p2: int = Field(ge=0)
    winner: Side

    @model_validator(mode="after")
    def _check_consistency(self):
        if self.score_p1 == self.score_p2:
            raise ValueError("a slot cannot end level")
        leader = "p1" if self.score_p1 > self.score_p2 else "p2"
        if self.winner != leader:
            raise ValueError(f"winner {self.winner} does not have the higher score")

        games = getattr(self, "games", [])
        if games:
            tally = Counter(g.winner for g in games)
            if tally["p1"] != self.score_p1 or tally["p2"] != self.score_p2:
                raise ValueError(
                    f"game winners ({tally['p1']}-{tally['p2']}) do not match "
                    f"score ({self.score_p1}-{self.score_p2})"
                )
        return self

    @property
    def racks_played(self) -> int:
        return self.score_p1 + self.score_p2

    def score_for(self, side: str) -> int:
        return self.score_p1 if side == "p1" else self.score_p2

    def fingerprint(self) -> tuple:
        """Canonical form used to decide whether two submissions agree.

        Games are compared as a multiset: order of entry does not matter.
        """
        games = tuple(sorted(g.fingerprint() for g in getattr(self, "games", [])))
        return (self.score_p1, self.score_p2, self.winner, games)


class EightBallScorecard(_ScorecardBase):
    discipline: Literal["8ball"] = EIGHT_BALL
    games: list[EightBallGame] = Field(default_factory=list)


class NineBallScorecard(_ScorecardBase):
    discipline: Literal["9ball"] = NINE_BALL
    games: list[NineBallGame] = Field(default_factory=list)


Scorecard = Annotated[
    Union[EightBallScorecard, NineBallScorecard],
    Field(discriminator="discipline"),
]

_scorecard_adapter: TypeAdapter = TypeAdapter(Scorecard)


def parse_scorecard(discipline: str, payload: Any) -> EightBallScorecard | NineBallScorecard:
    """
    Validate a raw payload (or an already-built scorecard) for ``discipline``.

    Raises:
        InvalidScorecard: If the payload is malformed, inconsistent, or was
                          built for the other discipline.
    """
    if discipline not in DISCIPLINES:
        raise InvalidScorecard(f"Unknown discipline: {discipline}")

    if isinstance(payload, (EightBallScorecard, NineBallScorecard)):
        if payload.discipline != discipline:
            raise InvalidScorecard(
                f"Scorecard is for {payload.discipline}, expected {discipline}"
            )
        return payload

    if isinstance(payload, BaseModel):
        payload = payload.model_dump()
    data = dict(payload or {})
    if data.setdefault("discipline", discipline) != discipline:
        raise InvalidScorecard(f"Scorecard is for {data['discipline']}, expected {discipline}")

    try:
        return _scorecard_adapter.validate_python(data)
    except ValidationError as exc:
        raise InvalidScorecard(str(exc)) from exc
