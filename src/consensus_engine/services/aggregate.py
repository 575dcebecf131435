# src/consensus_engine/services/aggregate.py
"""Maintenance of the denormalized per-question vote tally.

Every vote transition adjusts the cached counters on the ``questions`` row in
one compare-and-swap UPDATE guarded by ``Question.version``. A lost race is
retried from a fresh read; the increment and decrement of a transition are
always written together.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from decimal import ROUND_HALF_UP, Decimal

from sqlalchemy import case, func, select, update
from sqlalchemy.orm import Session

from consensus_engine.core.errors import (
    AggregateRetryExhausted,
    ConcurrencyConflict,
    QuestionNotFoundError,
)
from consensus_engine.core.settings import settings
from consensus_engine.models import Question, Response, VoteValue

logger = logging.getLogger(__name__)


def round_half_up(value: Decimal) -> int:
    """Round to the nearest integer with halves going up (50.5 -> 51)."""
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


@dataclass(frozen=True)
class Aggregate:
    """Snapshot of a question's tally."""

    yes_count: int = 0
    no_count: int = 0
    unsure_count: int = 0
    total_votes: int = 0
    yes_pct: int = 0
    no_pct: int = 0
    unsure_pct: int = 0
    anonymous_vote_count: int = 0

    @classmethod
    def from_question(cls, question: Question) -> Aggregate:
        return cls(
            yes_count=question.yes_count,
            no_count=question.no_count,
            unsure_count=question.unsure_count,
            total_votes=question.total_votes,
            yes_pct=question.yes_pct,
            no_pct=question.no_pct,
            unsure_pct=question.unsure_pct,
            anonymous_vote_count=question.anonymous_vote_count,
        )

    @property
    def percentages(self) -> dict[str, int]:
        return {
            VoteValue.YES.value: self.yes_pct,
            VoteValue.NO.value: self.no_pct,
            VoteValue.UNSURE.value: self.unsure_pct,
        }

    def count_for(self, value: VoteValue) -> int:
        return {
            VoteValue.YES: self.yes_count,
            VoteValue.NO: self.no_count,
            VoteValue.UNSURE: self.unsure_count,
        }[value]

    def as_dict(self) -> dict[str, int]:
        return asdict(self)


def compute_aggregate(yes: int, no: int, unsure: int, anonymous: int = 0) -> Aggregate:
    """Build an aggregate from bucket counts.

    YES and NO percentages are rounded independently; UNSURE receives the
    remainder so the three always sum to exactly 100. When the two rounded
    values overshoot 100 the excess comes off NO.
    """
    total = yes + no + unsure
    if total <= 0:
        return Aggregate(anonymous_vote_count=max(anonymous, 0))

    hundred = Decimal(100)
    yes_pct = round_half_up(Decimal(yes) * hundred / Decimal(total))
    no_pct = round_half_up(Decimal(no) * hundred / Decimal(total))
    overflow = yes_pct + no_pct - 100
    if overflow > 0:
        no_pct -= overflow
    unsure_pct = 100 - yes_pct - no_pct

    return Aggregate(
        yes_count=yes,
        no_count=no,
        unsure_count=unsure,
        total_votes=total,
        yes_pct=yes_pct,
        no_pct=no_pct,
        unsure_pct=unsure_pct,
        anonymous_vote_count=max(anonymous, 0),
    )


@dataclass(frozen=True)
class _Snapshot:
    version: int
    aggregate: Aggregate


@dataclass(frozen=True)
class ReconcileReport:
    """Outcome of recomputing one question's tally from raw votes."""

    question_id: str
    before: Aggregate
    after: Aggregate

    @property
    def corrected(self) -> bool:
        return self.before != self.after


class AggregateMaintainer:
    """Applies vote transitions to the cached tally of a question."""

    def __init__(self, session: Session, max_retries: int | None = None) -> None:
        self.session = session
        self.max_retries = max_retries or settings.aggregate_max_retries

    def get_aggregate(self, question_id: str) -> Aggregate:
        """Return the cached aggregate for a question."""
        return self._read_snapshot(question_id).aggregate

    def apply_transition(
        self,
        question_id: str,
        old_value: VoteValue | None,
        new_value: VoteValue | None,
        *,
        old_anonymous: bool = False,
        new_anonymous: bool = False,
    ) -> Aggregate:
        """Move one vote from ``old_value`` to ``new_value`` on a question.

        Either side may be ``None`` (initial vote or retraction).

        Raises:
            QuestionNotFoundError: If the question row does not exist.
            AggregateRetryExhausted: If every compare-and-swap attempt lost.
        """
        return self._with_retries(
            question_id,
            lambda current: _shift(
                current,
                old_value,
                new_value,
                old_anonymous=old_anonymous,
                new_anonymous=new_anonymous,
                question_id=question_id,
            ),
        )

    def reconcile(self, question_id: str) -> ReconcileReport:
        """Recompute a question's tally from its responses and repair drift."""
        recomputed = self._recount(question_id)
        before = self._read_snapshot(question_id).aggregate
        if before == recomputed:
            return ReconcileReport(question_id=question_id, before=before, after=before)

        after = self._with_retries(question_id, lambda _current: self._recount(question_id))
        logger.info(
            "Corrected aggregate drift on question %s: %s -> %s",
            question_id,
            before.as_dict(),
            after.as_dict(),
        )
        return ReconcileReport(question_id=question_id, before=before, after=after)

    def reconcile_all(self) -> list[ReconcileReport]:
        """Run :meth:`reconcile` for every question."""
        question_ids = self.session.execute(select(Question.id).order_by(Question.id)).scalars()
        return [self.reconcile(question_id) for question_id in list(question_ids)]

    def _with_retries(self, question_id: str, build) -> Aggregate:
        for attempt in range(1, self.max_retries + 1):
            snapshot = self._read_snapshot(question_id)
            target = build(snapshot.aggregate)
            try:
                self._compare_and_swap(question_id, snapshot.version, target)
            except ConcurrencyConflict:
                logger.warning(
                    "Aggregate conflict on question %s (attempt %d/%d)",
                    question_id,
                    attempt,
                    self.max_retries,
                )
                continue
            return target

        raise AggregateRetryExhausted(
            f"Could not update the tally for question {question_id}; try again"
        )

    def _read_snapshot(self, question_id: str) -> _Snapshot:
        row = self.session.execute(
            select(
                Question.version,
                Question.yes_count,
                Question.no_count,
                Question.unsure_count,
                Question.total_votes,
                Question.yes_pct,
                Question.no_pct,
                Question.unsure_pct,
                Question.anonymous_vote_count,
            ).where(Question.id == question_id)
        ).first()
        if row is None:
            raise QuestionNotFoundError(f"Question {question_id} not found")
        return _Snapshot(
            version=row.version,
            aggregate=Aggregate(
                yes_count=row.yes_count,
                no_count=row.no_count,
                unsure_count=row.unsure_count,
                total_votes=row.total_votes,
                yes_pct=row.yes_pct,
                no_pct=row.no_pct,
                unsure_pct=row.unsure_pct,
                anonymous_vote_count=row.anonymous_vote_count,
            ),
        )

    def _compare_and_swap(self, question_id: str, expected_version: int, target: Aggregate) -> None:
        result = self.session.execute(
            update(Question)
            .where(Question.id == question_id, Question.version == expected_version)
            .values(version=expected_version + 1, **target.as_dict())
        )
        if result.rowcount != 1:
            raise ConcurrencyConflict(
                f"Question {question_id} changed since version {expected_version}"
            )

    def _recount(self, question_id: str) -> Aggregate:
        row = self.session.execute(
            select(
                func.coalesce(func.sum(case((Response.value == VoteValue.YES, 1), else_=0)), 0),
                func.coalesce(func.sum(case((Response.value == VoteValue.NO, 1), else_=0)), 0),
                func.coalesce(
                    func.sum(case((Response.value == VoteValue.UNSURE, 1), else_=0)), 0
                ),
                func.coalesce(func.sum(case((Response.is_anonymous.is_(True), 1), else_=0)), 0),
            ).where(Response.question_id == question_id)
        ).one()
        yes, no, unsure, anonymous = (int(value) for value in row)
        return compute_aggregate(yes, no, unsure, anonymous)


def _shift(
    current: Aggregate,
    old_value: VoteValue | None,
    new_value: VoteValue | None,
    *,
    old_anonymous: bool,
    new_anonymous: bool,
    question_id: str,
) -> Aggregate:
    buckets = {
        VoteValue.YES: current.yes_count,
        VoteValue.NO: current.no_count,
        VoteValue.UNSURE: current.unsure_count,
    }
    anonymous = current.anonymous_vote_count

    if old_value is not None:
        if buckets[old_value] <= 0:
            # Cache already drifted; reconcile() repairs it from raw rows.
            logger.warning(
                "Aggregate for question %s has no %s vote to remove", question_id, old_value.value
            )
        else:
            buckets[old_value] -= 1
        if old_anonymous:
            anonymous -= 1
    if new_value is not None:
        buckets[new_value] += 1
        if new_anonymous:
            anonymous += 1

    return compute_aggregate(
        buckets[VoteValue.YES],
        buckets[VoteValue.NO],
        buckets[VoteValue.UNSURE],
        anonymous,
    )
