# mypy: ignore-errors
"""Tests for the cached tally and its compare-and-swap maintenance."""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed

import pytest
from sqlalchemy import create_engine, func, select, update
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import NullPool

from consensus_engine.core.errors import AggregateRetryExhausted, QuestionNotFoundError
from consensus_engine.db.session import Base
from consensus_engine.models import HumanVoter, Question, Response, VoterKind, VoteValue
from consensus_engine.repositories.response_repo import ResponseStore
from consensus_engine.services.aggregate import (
    Aggregate,
    AggregateMaintainer,
    _Snapshot,
    compute_aggregate,
)
from consensus_engine.services.vote_service import VoteService


def _tally(aggregate: Aggregate) -> tuple[int, ...]:
    return (
        aggregate.yes_count,
        aggregate.no_count,
        aggregate.unsure_count,
        aggregate.total_votes,
        aggregate.yes_pct,
        aggregate.no_pct,
        aggregate.unsure_pct,
    )


class TestComputeAggregate:
    def test_empty_question_is_all_zero(self):
        """No votes means every count and percentage is zero."""
        assert _tally(compute_aggregate(0, 0, 0)) == (0, 0, 0, 0, 0, 0, 0)

    def test_thirds_assign_remainder_to_unsure(self):
        """33.3 rounds down for YES and NO; UNSURE takes what is left."""
        assert _tally(compute_aggregate(1, 1, 1)) == (1, 1, 1, 3, 33, 33, 34)

    def test_half_rounds_up(self):
        """A .5 share rounds up."""
        aggregate = compute_aggregate(1, 0, 1)
        assert (aggregate.yes_pct, aggregate.no_pct, aggregate.unsure_pct) == (50, 0, 50)

    def test_overflow_is_taken_from_no(self):
        """0.5 + 99.5 would round to 101; NO gives back the extra point."""
        aggregate = compute_aggregate(1, 199, 0)
        assert (aggregate.yes_pct, aggregate.no_pct, aggregate.unsure_pct) == (1, 99, 0)

    @pytest.mark.parametrize(
        "counts",
        [(1, 0, 0), (2, 1, 0), (1, 2, 4), (5, 5, 1), (7, 3, 3), (0, 0, 9), (1, 1, 5)],
    )
    def test_percentages_sum_to_one_hundred(self, counts):
        """Any non-empty tally reports percentages summing to exactly 100."""
        aggregate = compute_aggregate(*counts)
        assert aggregate.total_votes == sum(counts)
        assert aggregate.yes_pct + aggregate.no_pct + aggregate.unsure_pct == 100


class TestVoteScenario:
    def test_cast_change_and_retract_sequence(self, service, question):
        """YES, NO, change to NO, retract: tallies follow each transition."""
        result = service.cast_vote("alice", question.id, "human", "YES")
        assert _tally(result.aggregate) == (1, 0, 0, 1, 100, 0, 0)

        result = service.cast_vote("bob", question.id, "human", "NO")
        assert _tally(result.aggregate) == (1, 1, 0, 2, 50, 50, 0)

        result = service.cast_vote("alice", question.id, "human", "NO")
        assert _tally(result.aggregate) == (0, 2, 0, 2, 0, 100, 0)

        result = service.cast_vote("alice", question.id, "human", "NO")
        assert result.retracted is True
        assert _tally(result.aggregate) == (0, 1, 0, 1, 0, 100, 0)

        assert _tally(service.get_aggregate(question.id)) == (0, 1, 0, 1, 0, 100, 0)

    def test_many_distinct_voters_all_counted(self, service, question):
        """N votes from N voters always land as total == N."""
        values = ["YES", "NO", "UNSURE"]
        for index in range(25):
            service.cast_vote(f"voter-{index}", question.id, "human", values[index % 3])

        aggregate = service.get_aggregate(question.id)
        assert aggregate.total_votes == 25
        assert aggregate.yes_count + aggregate.no_count + aggregate.unsure_count == 25
        assert aggregate.yes_pct + aggregate.no_pct + aggregate.unsure_pct == 100

    def test_anonymous_votes_are_counted_separately(self, service, question):
        """Anonymous votes count toward the tally and the anonymous counter."""
        service.cast_vote("alice", question.id, "human", "YES", is_anonymous=True)
        result = service.cast_vote("bob", question.id, "human", "YES")
        assert result.aggregate.yes_count == 2
        assert result.aggregate.anonymous_vote_count == 1

        result = service.cast_vote("alice", question.id, "human", "YES")
        assert result.retracted is True
        assert result.aggregate.anonymous_vote_count == 0


class TestConcurrentWriters:
    def test_threads_with_own_sessions_all_counted(self, tmp_path):
        """N voters casting at once through separate connections give total == N."""
        voters = 24
        file_engine = create_engine(
            f"sqlite:///{tmp_path / 'concurrent.db'}",
            connect_args={"check_same_thread": False, "timeout": 30},
            poolclass=NullPool,
        )
        Base.metadata.create_all(bind=file_engine)
        make_session = sessionmaker(bind=file_engine, autoflush=False, expire_on_commit=False)

        with make_session() as setup:
            question = Question(content="Do threads agree?", author_id="author")
            setup.add(question)
            setup.commit()
            question_id = question.id

        values = ["YES", "NO", "UNSURE"]
        start = threading.Barrier(voters, timeout=30)

        def cast(index: int) -> bool:
            with make_session() as session:
                start.wait()
                result = VoteService(session).cast_vote(
                    f"voter-{index}", question_id, "human", values[index % 3]
                )
                return result.accepted

        results = []
        with ThreadPoolExecutor(max_workers=voters) as executor:
            futures = [executor.submit(cast, index) for index in range(voters)]
            for future in as_completed(futures):
                results.append(future.result())

        try:
            assert results == [True] * voters
            with make_session() as check:
                aggregate = VoteService(check).get_aggregate(question_id)
                stored = check.execute(
                    select(func.count()).select_from(Response).where(
                        Response.question_id == question_id
                    )
                ).scalar_one()
            assert aggregate.total_votes == voters
            assert stored == voters
            assert (aggregate.yes_count, aggregate.no_count, aggregate.unsure_count) == (8, 8, 8)
            assert aggregate.yes_pct + aggregate.no_pct + aggregate.unsure_pct == 100
        finally:
            file_engine.dispose()


class TestCompareAndSwap:
    def test_lost_race_is_retried(self, db_session, question, monkeypatch, caplog):
        """A stale version read once conflicts, then the fresh read succeeds."""
        original = AggregateMaintainer._read_snapshot
        calls = {"count": 0}

        def stale_once(self, question_id):
            snapshot = original(self, question_id)
            calls["count"] += 1
            if calls["count"] == 1:
                return _Snapshot(version=snapshot.version - 1, aggregate=snapshot.aggregate)
            return snapshot

        monkeypatch.setattr(AggregateMaintainer, "_read_snapshot", stale_once)
        maintainer = AggregateMaintainer(db_session)

        with caplog.at_level(logging.WARNING, logger="consensus_engine.services.aggregate"):
            aggregate = maintainer.apply_transition(question.id, None, VoteValue.YES)

        assert aggregate.yes_count == 1
        assert calls["count"] == 2
        assert "Aggregate conflict" in caplog.text

    def test_exhausted_retries_leave_no_partial_write(
        self, service, db_session, question, monkeypatch
    ):
        """When every attempt conflicts, the vote is rolled back with the tally."""
        original = AggregateMaintainer._read_snapshot

        def always_stale(self, question_id):
            snapshot = original(self, question_id)
            return _Snapshot(version=snapshot.version - 1, aggregate=snapshot.aggregate)

        monkeypatch.setattr(AggregateMaintainer, "_read_snapshot", always_stale)

        with pytest.raises(AggregateRetryExhausted) as excinfo:
            service.cast_vote("alice", question.id, "human", "YES")
        assert excinfo.value.code == "TRY_AGAIN"

        monkeypatch.undo()
        assert ResponseStore(db_session).get_vote(HumanVoter("alice"), question.id) is None
        assert service.get_aggregate(question.id).total_votes == 0

    def test_version_increments_on_every_write(self, db_session, question):
        maintainer = AggregateMaintainer(db_session)
        maintainer.apply_transition(question.id, None, VoteValue.YES)
        maintainer.apply_transition(question.id, VoteValue.YES, VoteValue.NO)
        db_session.commit()
        db_session.refresh(question)
        assert question.version == 2
        assert (question.yes_count, question.no_count) == (0, 1)

    def test_unknown_question(self, db_session):
        with pytest.raises(QuestionNotFoundError):
            AggregateMaintainer(db_session).apply_transition("missing", None, VoteValue.YES)


class TestReconcile:
    def test_reconcile_repairs_drift(self, service, db_session, question, caplog):
        """A corrupted cache is recomputed from the stored votes."""
        service.cast_vote("alice", question.id, "human", "YES")
        service.cast_vote("bob", question.id, "human", "NO")

        db_session.execute(
            update(Question)
            .where(Question.id == question.id)
            .values(yes_count=5, total_votes=6, yes_pct=83, no_pct=17)
        )
        db_session.commit()

        maintainer = AggregateMaintainer(db_session)
        with caplog.at_level(logging.INFO, logger="consensus_engine.services.aggregate"):
            report = maintainer.reconcile(question.id)
        db_session.commit()

        assert report.corrected is True
        assert report.before.yes_count == 5
        assert _tally(report.after) == (1, 1, 0, 2, 50, 50, 0)
        assert _tally(service.get_aggregate(question.id)) == (1, 1, 0, 2, 50, 50, 0)
        assert "Corrected aggregate drift" in caplog.text

    def test_reconcile_without_drift_is_noop(self, service, db_session, question):
        service.cast_vote("alice", question.id, "human", "UNSURE")
        report = AggregateMaintainer(db_session).reconcile(question.id)
        assert report.corrected is False
        assert report.before == report.after

    def test_reconcile_all_covers_every_question(self, db_session, make_question):
        first = make_question()
        second = make_question()
        db_session.add(
            Response(
                voter_id="carol",
                question_id=second.id,
                voter_kind=VoterKind.HUMAN,
                value=VoteValue.YES,
            )
        )
        db_session.commit()

        reports = AggregateMaintainer(db_session).reconcile_all()
        by_id = {report.question_id: report for report in reports}
        assert set(by_id) == {first.id, second.id}
        assert by_id[first.id].corrected is False
        assert by_id[second.id].corrected is True
        assert by_id[second.id].after.yes_count == 1
