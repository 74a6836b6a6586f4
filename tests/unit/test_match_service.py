"""
Tests for the match and slot operations.

These drive the full lifecycle through the same functions the API calls:
schedule -> start -> submit (both sides) -> finalized or disputed -> resolve
-> reset -> restart, plus operator-recorded forfeits.
"""

from datetime import date, datetime, timezone
from decimal import Decimal

import pytest

from conftest import ALICE, BOB, CAROL, LEAGUE_ID, NOON_UTC
from cuerank.db.models import PlayerRatingRecord, RatingAudit, Submission
from cuerank.errors import (
    AlreadyFinalized,
    AlreadyStarted,
    InvalidScorecard,
    Locked,
    MatchNotFound,
    NotAParticipant,
    NotDisputed,
    NotFinalized,
    NotStarted,
    PreconditionError,
    SlotDisputed,
    SlotForfeited,
    SlotNotFound,
)
from cuerank.services.matches import (
    forfeit_slot,
    get_slot,
    list_audits,
    match_state,
    rating_record,
    reset_slot,
    resolve_dispute,
    schedule_match,
    set_manual_unlock,
    start_slot,
    submit_scorecard,
)

ALICE_WINS = {"score_p1": 5, "score_p2": 3, "winner": "p1"}
BOB_WINS = {"score_p1": 3, "score_p2": 5, "winner": "p2"}


def _seed_record(session, player_id, rating, confidence=0):
    session.add(PlayerRatingRecord(
        league_id=LEAGUE_ID, player_id=player_id, rating=Decimal(rating), confidence=confidence,
    ))
    session.flush()


def _play(session, match, discipline, p1_card, p2_card, now=NOON_UTC):
    submit_scorecard(session, match.id, discipline, ALICE, p1_card, now=now)
    return submit_scorecard(session, match.id, discipline, BOB, p2_card, now=now)


class TestScheduleMatch:
    def test_creates_both_slots(self, db_session, match):
        assert sorted(slot.discipline for slot in match.slots) == ["8ball", "9ball"]
        assert all(slot.status == "scheduled" for slot in match.slots)
        assert match.status == "scheduled"

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"player1_id": ALICE, "player2_id": ALICE},
            {"player1_id": ALICE, "player2_id": 99},
            {"player1_id": ALICE, "player2_id": BOB, "event_type": "exhibition"},
            {"player1_id": ALICE, "player2_id": BOB, "timezone": "Nowhere/Special"},
        ],
    )
    def test_rejects_bad_fixtures(self, db_session, players, kwargs):
        with pytest.raises(PreconditionError):
            schedule_match(db_session, LEAGUE_ID, **kwargs)

    def test_unknown_match(self, db_session, players):
        with pytest.raises(MatchNotFound):
            match_state(db_session, 12345)

    def test_unknown_discipline(self, db_session, match):
        with pytest.raises(SlotNotFound):
            start_slot(db_session, match.id, "straight", now=NOON_UTC)


class TestStartSlot:
    def test_freezes_ratings_and_targets(self, db_session, players):
        _seed_record(db_session, ALICE, "309.00")
        _seed_record(db_session, BOB, "495.00")
        match = schedule_match(db_session, LEAGUE_ID, ALICE, BOB)

        targets = start_slot(db_session, match.id, "8ball", now=NOON_UTC)

        assert targets.race_length == "short"
        assert (targets.race_target_p1, targets.race_target_p2) == (3, 5)
        assert targets.frozen_rating_p1 == Decimal("309.00")
        assert not targets.reused

        slot = get_slot(db_session, match.id, "8ball")
        assert slot.status == "in_progress"
        assert slot.started_at is not None
        assert match.status == "in_progress"

    def test_nine_ball_plays_the_long_race(self, db_session, match):
        assert start_slot(db_session, match.id, "9ball", now=NOON_UTC).race_length == "long"

    def test_unrated_players_race_as_500(self, db_session, match):
        targets = start_slot(db_session, match.id, "8ball", now=NOON_UTC)
        assert targets.frozen_rating_p1 == Decimal("500")
        assert targets.race_target_p1 == targets.race_target_p2
        # Starting a slot never creates rating records
        assert db_session.query(PlayerRatingRecord).count() == 0

    def test_second_start_rejected(self, db_session, started_8ball):
        with pytest.raises(AlreadyStarted):
            start_slot(db_session, started_8ball.match_id, "8ball", now=NOON_UTC)

    def test_locked_before_window(self, db_session, players):
        match = schedule_match(
            db_session, LEAGUE_ID, ALICE, BOB,
            scheduled_date=date(2099, 1, 1), timezone="America/Chicago",
        )
        with pytest.raises(Locked) as exc_info:
            start_slot(db_session, match.id, "8ball", now=NOON_UTC)

        assert exc_info.value.reason == "Match starts on 2099-01-01 at 8:00 AM (America/Chicago)."
        slot = get_slot(db_session, match.id, "8ball")
        assert slot.status == "scheduled"
        assert slot.race_target_p1 is None

    def test_manual_unlock_bypasses_window(self, db_session, players):
        match = schedule_match(
            db_session, LEAGUE_ID, ALICE, BOB,
            scheduled_date=date(2099, 1, 1), timezone="America/Chicago",
        )
        set_manual_unlock(db_session, match.id, True, operator="desk")

        start_slot(db_session, match.id, "8ball", now=NOON_UTC)

        state = match_state(db_session, match.id, now=NOON_UTC)
        assert state["lock"] == {"locked": False, "reason": None}
        assert state["is_manually_unlocked"] is True

    def test_match_state_reports_lock(self, db_session, players):
        match = schedule_match(
            db_session, LEAGUE_ID, ALICE, BOB,
            scheduled_date=date(2026, 3, 1), timezone="America/Chicago",
        )
        state = match_state(db_session, match.id, now=NOON_UTC)
        assert state["lock"] == {"locked": True, "reason": "Match window expired."}
        assert len(state["slots"]) == 2


class TestSubmitScorecard:
    def test_first_submission_waits_for_opponent(self, db_session, started_8ball):
        state = submit_scorecard(db_session, started_8ball.match_id, "8ball", ALICE, ALICE_WINS, now=NOON_UTC)

        assert state.status == "pending_verification"
        assert state.reconciliation == "missing"
        assert state.submitted == ["p1"]
        assert state.verified_p1 and not state.verified_p2

    def test_matching_submissions_finalize(self, db_session, match, started_8ball):
        state = _play(db_session, match, "8ball", ALICE_WINS, ALICE_WINS)

        assert state.status == "finalized"
        assert state.reconciliation == "matching"
        assert (state.score_p1, state.score_p2, state.winner_id) == (5, 3, ALICE)
        assert state.verified_p1 and state.verified_p2

        alice = rating_record(db_session, LEAGUE_ID, ALICE)
        bob = rating_record(db_session, LEAGUE_ID, BOB)
        assert Decimal(alice["rating"]) > Decimal("500")
        assert Decimal(bob["rating"]) < Decimal("500")
        assert alice["confidence"] == 8
        assert alice["counters"]["matches_won"] == 1
        assert bob["counters"]["racks_won"] == 3

        audits = list_audits(db_session, match.id, "8ball")
        assert len(audits) == 1
        assert audits[0]["resolution"] == "agreed"

    def test_either_side_may_submit_first(self, db_session, match, started_8ball):
        submit_scorecard(db_session, match.id, "8ball", BOB, BOB_WINS, now=NOON_UTC)
        state = submit_scorecard(db_session, match.id, "8ball", ALICE, BOB_WINS, now=NOON_UTC)
        assert state.status == "finalized"
        assert state.winner_id == BOB

    def test_participant_may_replace_own_submission(self, db_session, match, started_8ball):
        submit_scorecard(db_session, match.id, "8ball", ALICE, BOB_WINS, now=NOON_UTC)
        state = submit_scorecard(db_session, match.id, "8ball", ALICE, ALICE_WINS, now=NOON_UTC)
        assert state.status == "pending_verification"
        assert db_session.query(Submission).count() == 1

        state = submit_scorecard(db_session, match.id, "8ball", BOB, ALICE_WINS, now=NOON_UTC)
        assert state.status == "finalized"

    def test_conflicting_submissions_dispute(self, db_session, match, started_8ball):
        state = _play(db_session, match, "8ball", ALICE_WINS, BOB_WINS)

        assert state.status == "disputed"
        assert state.reconciliation == "conflicting"
        assert match.status == "disputed"
        # Nothing applied until an operator decides
        assert db_session.query(PlayerRatingRecord).count() == 0
        assert db_session.query(RatingAudit).count() == 0

    def test_disputed_slot_takes_no_more_submissions(self, db_session, match, started_8ball):
        _play(db_session, match, "8ball", ALICE_WINS, BOB_WINS)
        with pytest.raises(SlotDisputed):
            submit_scorecard(db_session, match.id, "8ball", BOB, ALICE_WINS, now=NOON_UTC)

    def test_finalized_slot_rejects_submission(self, db_session, match, started_8ball):
        _play(db_session, match, "8ball", ALICE_WINS, ALICE_WINS)
        with pytest.raises(AlreadyFinalized):
            submit_scorecard(db_session, match.id, "8ball", ALICE, ALICE_WINS, now=NOON_UTC)

    def test_non_participant_rejected(self, db_session, started_8ball):
        with pytest.raises(NotAParticipant):
            submit_scorecard(db_session, started_8ball.match_id, "8ball", CAROL, ALICE_WINS, now=NOON_UTC)

    def test_unstarted_slot_rejected(self, db_session, match):
        with pytest.raises(NotStarted):
            submit_scorecard(db_session, match.id, "9ball", ALICE, ALICE_WINS, now=NOON_UTC)

    def test_invalid_scorecard_leaves_slot_untouched(self, db_session, started_8ball):
        with pytest.raises(InvalidScorecard):
            submit_scorecard(
                db_session, started_8ball.match_id, "8ball", ALICE,
                {"score_p1": 5, "score_p2": 5, "winner": "p1"}, now=NOON_UTC,
            )
        assert started_8ball.status == "in_progress"
        assert db_session.query(Submission).count() == 0

    def test_submission_after_window_is_locked(self, db_session, players):
        match = schedule_match(
            db_session, LEAGUE_ID, ALICE, BOB,
            scheduled_date=date(2026, 3, 10), timezone="America/Chicago",
        )
        # 9:00 CDT on the scheduled day
        start_slot(db_session, match.id, "8ball", now=datetime(2026, 3, 10, 14, tzinfo=timezone.utc))

        with pytest.raises(Locked) as exc_info:
            submit_scorecard(
                db_session, match.id, "8ball", ALICE, ALICE_WINS,
                now=datetime(2026, 3, 11, 14, tzinfo=timezone.utc),
            )
        assert exc_info.value.reason == "Match window ended today at 8:00 AM (America/Chicago)."

    def test_match_finalized_when_both_slots_are(self, db_session, match):
        start_slot(db_session, match.id, "8ball", now=NOON_UTC)
        start_slot(db_session, match.id, "9ball", now=NOON_UTC)
        _play(db_session, match, "8ball", ALICE_WINS, ALICE_WINS)
        assert match.status == "in_progress"

        _play(db_session, match, "9ball", BOB_WINS, BOB_WINS)
        assert match.status == "finalized"
        assert match_state(db_session, match.id)["status"] == "finalized"


class TestResolveDispute:
    def test_operator_override_finalizes(self, db_session, match, started_8ball):
        _play(db_session, match, "8ball", ALICE_WINS, BOB_WINS)

        result = resolve_dispute(db_session, match.id, "8ball", BOB_WINS, operator="desk")

        assert result.status == "finalized"
        assert result.winner_id == BOB
        assert result.resolution == "operator_override"
        audit = db_session.get(RatingAudit, result.audit_id)
        assert audit.resolved_by == "desk"

    def test_only_disputed_slots(self, db_session, match, started_8ball):
        submit_scorecard(db_session, match.id, "8ball", ALICE, ALICE_WINS, now=NOON_UTC)
        with pytest.raises(NotDisputed):
            resolve_dispute(db_session, match.id, "8ball", ALICE_WINS, operator="desk")

    def test_invalid_override_rejected(self, db_session, match, started_8ball):
        _play(db_session, match, "8ball", ALICE_WINS, BOB_WINS)
        with pytest.raises(InvalidScorecard):
            resolve_dispute(db_session, match.id, "8ball", {"score_p1": 1}, operator="desk")
        assert get_slot(db_session, match.id, "8ball").status == "disputed"

    def test_finalized_slot_is_not_disputed(self, db_session, match, started_8ball):
        _play(db_session, match, "8ball", ALICE_WINS, ALICE_WINS)
        with pytest.raises(NotDisputed):
            resolve_dispute(db_session, match.id, "8ball", BOB_WINS, operator="desk")


class TestResetSlot:
    def test_reset_then_restart_reuses_race(self, db_session, match, started_8ball):
        first = (started_8ball.race_target_p1, started_8ball.race_target_p2, started_8ball.frozen_rating_p1)
        _play(db_session, match, "8ball", ALICE_WINS, ALICE_WINS)

        baseline = reset_slot(db_session, match.id, "8ball", operator="desk")
        assert baseline.status == "scheduled"
        assert Decimal(rating_record(db_session, LEAGUE_ID, ALICE)["rating"]) == Decimal("500")
        assert match.status == "scheduled"

        # Ratings move elsewhere in the meantime; the replay keeps its race
        record = db_session.query(PlayerRatingRecord).filter_by(player_id=ALICE).one()
        record.rating = Decimal("900.00")
        db_session.flush()

        targets = start_slot(db_session, match.id, "8ball", now=NOON_UTC)
        assert targets.reused
        assert (targets.race_target_p1, targets.race_target_p2, targets.frozen_rating_p1) == first

    def test_reset_requires_finalized(self, db_session, match, started_8ball):
        with pytest.raises(NotFinalized):
            reset_slot(db_session, match.id, "8ball", operator="desk")

    def test_replay_after_reset(self, db_session, match, started_8ball):
        _play(db_session, match, "8ball", ALICE_WINS, ALICE_WINS)
        reset_slot(db_session, match.id, "8ball", operator="desk")
        start_slot(db_session, match.id, "8ball", now=NOON_UTC)

        state = _play(db_session, match, "8ball", BOB_WINS, BOB_WINS)

        assert state.winner_id == BOB
        audits = list_audits(db_session, match.id, "8ball")
        assert len(audits) == 2
        assert audits[0]["reversed_at"] is not None
        assert audits[1]["reversed_at"] is None


class TestForfeitSlot:
    def test_opponent_wins_and_ratings_stay(self, db_session, match, started_8ball):
        result = forfeit_slot(db_session, match.id, "8ball", ALICE, operator="desk")

        assert result.winner_id == BOB
        assert result.resolution == "forfeit"
        slot = match_state(db_session, match.id)["slots"][0]
        assert slot["status"] == "finalized"
        assert slot["is_forfeit"] is True
        assert slot["forfeited_by"] == ALICE

        alice = rating_record(db_session, LEAGUE_ID, ALICE)
        bob = rating_record(db_session, LEAGUE_ID, BOB)
        assert Decimal(alice["rating"]) == Decimal("500")
        assert Decimal(bob["rating"]) == Decimal("500")
        assert alice["counters"]["matches_played"] == 1
        assert bob["counters"]["matches_won"] == 1
        assert list_audits(db_session, match.id, "8ball")[0]["resolved_by"] == "desk"

    def test_forfeited_slot_cannot_be_started(self, db_session, match):
        forfeit_slot(db_session, match.id, "9ball", BOB, operator="desk")
        with pytest.raises(SlotForfeited):
            start_slot(db_session, match.id, "9ball", now=NOON_UTC)

    def test_forfeited_slot_takes_no_submissions(self, db_session, match, started_8ball):
        forfeit_slot(db_session, match.id, "8ball", BOB, operator="desk")
        with pytest.raises(AlreadyFinalized):
            submit_scorecard(db_session, match.id, "8ball", ALICE, ALICE_WINS, now=NOON_UTC)

    def test_forfeit_twice_rejected(self, db_session, match, started_8ball):
        forfeit_slot(db_session, match.id, "8ball", BOB, operator="desk")
        with pytest.raises(AlreadyFinalized):
            forfeit_slot(db_session, match.id, "8ball", ALICE, operator="desk")

    def test_non_participant_rejected(self, db_session, match, started_8ball):
        with pytest.raises(NotAParticipant):
            forfeit_slot(db_session, match.id, "8ball", CAROL, operator="desk")
        assert get_slot(db_session, match.id, "8ball").status == "in_progress"

    def test_reset_forfeit_then_play(self, db_session, match, started_8ball):
        forfeit_slot(db_session, match.id, "8ball", ALICE, operator="desk")
        reset_slot(db_session, match.id, "8ball", operator="desk")

        targets = start_slot(db_session, match.id, "8ball", now=NOON_UTC)
        assert targets.reused
        state = _play(db_session, match, "8ball", ALICE_WINS, ALICE_WINS)

        assert state.status == "finalized"
        assert state.is_forfeit is False
        assert rating_record(db_session, LEAGUE_ID, BOB)["counters"]["matches_won"] == 0

    def test_both_slots_forfeited_finalizes_match(self, db_session, match):
        forfeit_slot(db_session, match.id, "8ball", ALICE, operator="desk")
        forfeit_slot(db_session, match.id, "9ball", ALICE, operator="desk")
        assert match.status == "finalized"
