# mypy: ignore-errors
"""Tests for the vote history log and derived statistics."""

from datetime import UTC, date, datetime, timedelta

from sqlalchemy import update

from consensus_engine.models import HumanVoter, Response, ResponseHistory, VoteValue
from consensus_engine.services.history import VoteHistoryLog, streak_from_days


def test_initial_vote_and_change_are_logged(service, db_session, question):
    service.cast_vote("alice", question.id, "human", "YES")
    service.cast_vote("alice", question.id, "human", "NO")

    history = VoteHistoryLog(db_session).list_history("alice")
    transitions = {(entry.previous_value, entry.new_value) for entry in history}
    assert (None, VoteValue.YES) in transitions
    assert (VoteValue.YES, VoteValue.NO) in transitions
    assert len(history) == 2


def test_retraction_is_not_logged(service, db_session, question):
    """Retracting removes the vote but leaves the log untouched."""
    service.cast_vote("alice", question.id, "human", "YES")
    service.cast_vote("alice", question.id, "human", "YES")

    assert len(VoteHistoryLog(db_session).list_history("alice")) == 1


def test_same_value_transition_is_ignored(db_session, question):
    log = VoteHistoryLog(db_session)
    assert log.append_transition(HumanVoter("alice"), question.id, VoteValue.NO, VoteValue.NO) is None
    assert log.list_history("alice") == []


def test_has_history(db_session, question):
    log = VoteHistoryLog(db_session)
    assert log.has_history(HumanVoter("alice"), question.id) is False
    log.append_transition(HumanVoter("alice"), question.id, None, VoteValue.YES)
    assert log.has_history(HumanVoter("alice"), question.id) is True
    assert log.has_history(HumanVoter("bob"), question.id) is False


def test_count_mind_changes(service, db_session, make_question):
    first, second = make_question(), make_question()
    service.cast_vote("alice", first.id, "human", "YES")
    service.cast_vote("alice", first.id, "human", "NO")
    service.cast_vote("alice", first.id, "human", "UNSURE")
    service.cast_vote("alice", second.id, "human", "YES")

    assert VoteHistoryLog(db_session).count_mind_changes("alice") == 2


def test_list_history_newest_first_and_limited(db_session, make_question):
    log = VoteHistoryLog(db_session)
    base = datetime(2026, 3, 1, 12, tzinfo=UTC)
    for offset in range(3):
        question = make_question()
        db_session.add(
            ResponseHistory(
                voter_id="alice",
                question_id=question.id,
                voter_kind="human",
                previous_value=None,
                new_value=VoteValue.YES,
                changed_at=base + timedelta(days=offset),
            )
        )
    db_session.commit()

    history = log.list_history("alice", limit=2)
    assert len(history) == 2
    assert history[0].changed_at > history[1].changed_at


class TestStreakFromDays:
    def test_no_activity(self):
        summary = streak_from_days([], date(2026, 5, 10))
        assert (summary.current, summary.longest, summary.last_active_day) == (0, 0, None)

    def test_consecutive_days_ending_today(self):
        days = [date(2026, 5, 8), date(2026, 5, 9), date(2026, 5, 10)]
        summary = streak_from_days(days, date(2026, 5, 10))
        assert (summary.current, summary.longest) == (3, 3)

    def test_streak_survives_until_end_of_next_day(self):
        days = [date(2026, 5, 8), date(2026, 5, 9)]
        summary = streak_from_days(days, date(2026, 5, 10))
        assert summary.current == 2

    def test_gap_resets_current_but_keeps_longest(self):
        days = [
            date(2026, 5, 1),
            date(2026, 5, 2),
            date(2026, 5, 3),
            date(2026, 5, 4),
            date(2026, 5, 9),
            date(2026, 5, 10),
        ]
        summary = streak_from_days(days, date(2026, 5, 10))
        assert (summary.current, summary.longest) == (2, 4)

    def test_stale_streak_is_zero(self):
        days = [date(2026, 5, 1), date(2026, 5, 2)]
        summary = streak_from_days(days, date(2026, 5, 10))
        assert (summary.current, summary.longest) == (0, 2)

    def test_duplicate_days_count_once(self):
        day = date(2026, 5, 10)
        assert streak_from_days([day, day, day], day).longest == 1


def test_compute_streak_uses_local_day(db_session, make_question, make_profile):
    """Votes just before and after local midnight land on different days."""
    make_profile("alice", timezone="America/New_York")
    log = VoteHistoryLog(db_session)
    moments = [
        # 2026-06-01 23:30 in New York
        datetime(2026, 6, 2, 3, 30, tzinfo=UTC),
        # 2026-06-02 00:30 in New York
        datetime(2026, 6, 2, 4, 30, tzinfo=UTC),
    ]
    for moment in moments:
        question = make_question()
        db_session.add(
            ResponseHistory(
                voter_id="alice",
                question_id=question.id,
                voter_kind="human",
                previous_value=None,
                new_value=VoteValue.NO,
                changed_at=moment,
            )
        )
    db_session.commit()

    local = log.compute_streak("alice", today=date(2026, 6, 2))
    assert (local.current, local.longest) == (2, 2)

    in_utc = log.compute_streak("alice", tz="UTC", today=date(2026, 6, 2))
    assert (in_utc.current, in_utc.longest) == (1, 1)


def test_compute_streak_counts_current_votes(service, db_session, question):
    service.cast_vote("alice", question.id, "human", "YES")
    db_session.execute(
        update(Response)
        .where(Response.voter_id == "alice")
        .values(created_at=datetime(2026, 1, 5, 10, tzinfo=UTC))
    )
    db_session.execute(
        update(ResponseHistory)
        .where(ResponseHistory.voter_id == "alice")
        .values(changed_at=datetime(2026, 1, 4, 10, tzinfo=UTC))
    )
    db_session.commit()

    summary = VoteHistoryLog(db_session).compute_streak("alice", today=date(2026, 1, 5))
    assert (summary.current, summary.longest) == (2, 2)
    assert summary.last_active_day == date(2026, 1, 5)
