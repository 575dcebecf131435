# src/consensus_engine/services/vote_service.py
"""Public entry point of the voting core.

State machine per ``(voter_id, question_id, voter_kind)``::

    NoVote --cast v--> Voted(v) --cast v'--> Voted(v')
    Voted(v) --cast v / retract--> NoVote

A cast or revote upserts the response row, adjusts the tally and logs the
transition, all in one transaction. A retraction deletes the row and adjusts
the tally; it writes no history and sends no notification. First-vote
notifications are queued only after the vote committed.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from consensus_engine.core.errors import (
    ConsensusError,
    ExpiredPollError,
    QuestionNotFoundError,
)
from consensus_engine.db.time import utcnow
from consensus_engine.models import (
    HumanVoter,
    Question,
    Response,
    ResponseHistory,
    Voter,
    VoteValue,
    make_voter,
    voter_for_user,
)
from consensus_engine.repositories.response_repo import ResponseStore
from consensus_engine.services.aggregate import Aggregate, AggregateMaintainer
from consensus_engine.services.compatibility import (
    AgreementRanking,
    CommonGroundItem,
    CompatibilityEngine,
    CompatibilityResult,
    CrowdAlignment,
    DivergenceItem,
)
from consensus_engine.services.history import StreakSummary, VoteHistoryLog
from consensus_engine.services.notifications import NotificationOutbox
from consensus_engine.services.visibility import (
    ProfileProvider,
    VisibilityResolver,
    VisibleVote,
    VisibleVoters,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CastVoteResult:
    accepted: bool
    retracted: bool
    aggregate: Aggregate
    vote: Response | None = None
    first_vote: bool = False


@dataclass(frozen=True)
class RetractVoteResult:
    aggregate: Aggregate
    retracted: bool


@dataclass(frozen=True)
class VoteStats:
    """Profile statistics for one voter."""

    current_votes: int
    mind_changes: int
    streak: StreakSummary
    crowd_alignment: CrowdAlignment


class VoteService:
    """Validates vote requests and applies them through the core components."""

    def __init__(
        self,
        session: Session,
        *,
        profiles: ProfileProvider | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.session = session
        self.clock = clock
        self.store = ResponseStore(session)
        self.aggregates = AggregateMaintainer(session)
        self.history = VoteHistoryLog(session)
        self.visibility = VisibilityResolver(session, profiles)
        self.compatibility = CompatibilityEngine(session)
        self.outbox = NotificationOutbox(session)

    def cast_vote(
        self,
        voter_id: str,
        question_id: str,
        voter_kind: str,
        value: VoteValue | str,
        is_anonymous: bool = False,
        reasoning: str | None = None,
    ) -> CastVoteResult:
        """Cast, change or (by resubmitting the current value) retract a vote.

        Raises:
            ValidationError: Malformed value or a kind/anonymity conflict.
            QuestionNotFoundError: Unknown or deleted question.
            ExpiredPollError: The question has closed.
            AggregateRetryExhausted: The tally kept conflicting; nothing committed.
        """
        vote_value = VoteValue.parse(value)
        voter = make_voter(voter_id, voter_kind)
        voter.check_vote_fields(is_anonymous=is_anonymous, reasoning=reasoning)
        question = self._get_open_question(question_id)
        author_id = question.author_id

        try:
            existing = self.store.get_vote(voter, question_id, for_update=True)
            if existing is not None and existing.value == vote_value:
                aggregate = self._retract(voter, question_id)
                self.session.commit()
                return CastVoteResult(accepted=True, retracted=True, aggregate=aggregate)

            first_vote = existing is None and not self.history.has_history(voter, question_id)
            outcome = self.store.upsert_vote(
                voter,
                question_id,
                vote_value,
                is_anonymous=is_anonymous,
                reasoning=reasoning,
            )
            if outcome.previous_value == vote_value:
                # Lost the insert race to an identical vote: same as resubmitting it.
                aggregate = self._retract(voter, question_id)
                self.session.commit()
                return CastVoteResult(accepted=True, retracted=True, aggregate=aggregate)
            aggregate = self.aggregates.apply_transition(
                question_id,
                outcome.previous_value,
                vote_value,
                old_anonymous=outcome.previous_anonymous,
                new_anonymous=is_anonymous,
            )
            self.history.append_transition(voter, question_id, outcome.previous_value, vote_value)
            self.session.commit()
        except (ConsensusError, SQLAlchemyError):
            self.session.rollback()
            raise

        if (
            first_vote
            and isinstance(voter, HumanVoter)
            and not is_anonymous
            and author_id != voter.voter_id
        ):
            self.outbox.enqueue_first_vote(question, voter.voter_id)

        return CastVoteResult(
            accepted=True,
            retracted=False,
            aggregate=aggregate,
            vote=outcome.record,
            first_vote=first_vote,
        )

    def retract_vote(self, voter_id: str, question_id: str, voter_kind: str) -> RetractVoteResult:
        """Delete the voter's current vote. A no-op when there is none."""
        voter = make_voter(voter_id, voter_kind)
        self._get_open_question(question_id)
        try:
            aggregate = self._retract(voter, question_id)
            self.session.commit()
        except (ConsensusError, SQLAlchemyError):
            self.session.rollback()
            raise
        if aggregate is None:
            return RetractVoteResult(
                aggregate=self.aggregates.get_aggregate(question_id), retracted=False
            )
        return RetractVoteResult(aggregate=aggregate, retracted=True)

    def _retract(self, voter: Voter, question_id: str) -> Aggregate | None:
        removed = self.store.delete_vote(voter, question_id)
        if removed is None:
            return None
        logger.info(
            "Vote retracted: voter=%s kind=%s question=%s value=%s",
            voter.voter_id,
            voter.kind.value,
            question_id,
            removed.value.value,
        )
        return self.aggregates.apply_transition(
            question_id,
            removed.value,
            None,
            old_anonymous=removed.is_anonymous,
        )

    def _get_question(self, question_id: str) -> Question:
        question = self.session.get(Question, question_id)
        if question is None or question.deleted:
            raise QuestionNotFoundError(f"Question {question_id} not found")
        return question

    def _get_open_question(self, question_id: str) -> Question:
        question = self._get_question(question_id)
        if question.is_expired(self.clock()):
            raise ExpiredPollError(f"Question {question_id} is closed for voting")
        return question

    def get_aggregate(self, question_id: str) -> Aggregate:
        self._get_question(question_id)
        return self.aggregates.get_aggregate(question_id)

    def get_vote(self, voter_id: str, question_id: str, voter_kind: str) -> Response | None:
        return self.store.get_vote(make_voter(voter_id, voter_kind), question_id)

    def list_visible_voters(self, question_id: str, viewer_id: str | None) -> VisibleVoters:
        self._get_question(question_id)
        return self.visibility.list_visible_voters(question_id, viewer_id)

    def list_visible_votes_for_voter(
        self, voter_id: str, viewer_id: str | None
    ) -> list[VisibleVote]:
        return self.visibility.list_visible_votes_for_voter(voter_id, viewer_id)

    def get_compatibility(
        self, user_a: str, user_b: str, *, viewer_id: str | None = None
    ) -> CompatibilityResult:
        return self.compatibility.compute_compatibility(user_a, user_b, viewer_id=viewer_id)

    def get_common_ground(
        self,
        user_a: str,
        user_b: str,
        limit: int | None = None,
        *,
        viewer_id: str | None = None,
    ) -> list[CommonGroundItem]:
        return self.compatibility.compute_common_ground(
            user_a, user_b, limit, viewer_id=viewer_id
        )

    def get_divergence(
        self,
        user_a: str,
        user_b: str,
        limit: int | None = None,
        *,
        viewer_id: str | None = None,
    ) -> list[DivergenceItem]:
        return self.compatibility.compute_divergence(user_a, user_b, limit, viewer_id=viewer_id)

    def get_agreement_rankings(
        self, user_id: str, *, limit: int = 5, offset: int = 0, ascending: bool = False
    ) -> list[AgreementRanking]:
        return self.compatibility.rank_agreement(
            user_id, limit=limit, offset=offset, ascending=ascending
        )

    def get_history(self, voter_id: str, limit: int = 50) -> list[ResponseHistory]:
        return self.history.list_history(voter_id, limit)

    def get_vote_stats(self, user_id: str, *, tz: str | None = None) -> VoteStats:
        """Streak, mind changes and crowd alignment for a profile."""
        return VoteStats(
            current_votes=len(self.store.list_votes_for_voter(voter_for_user(user_id))),
            mind_changes=self.history.count_mind_changes(user_id),
            streak=self.history.compute_streak(user_id, tz=tz),
            crowd_alignment=self.compatibility.compute_crowd_alignment(user_id),
        )
