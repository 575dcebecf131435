# src/consensus_engine/services/compatibility.py
"""Pairwise opinion comparison between voters.

Scores are derived from current ``responses`` rows only, never from the
cached aggregate, so they need no locking. The aggregate is read solely to
rank common ground by controversy.

An anonymous vote is invisible to every other user, so it takes no part in
any comparison between two distinct users. It is only included when the
owner compares themselves with themselves (``viewer_id == user_a == user_b``).
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from sqlalchemy import case, func, select
from sqlalchemy.orm import Session, aliased

from consensus_engine.core.settings import settings
from consensus_engine.db.time import ensure_aware
from consensus_engine.models import (
    AIPersona,
    Profile,
    Question,
    Response,
    Voter,
    VoterKind,
    VoteValue,
    voter_for_user,
)
from consensus_engine.services.aggregate import round_half_up

__all__ = [
    "AgreementRanking",
    "CommonGroundItem",
    "CompatibilityEngine",
    "CompatibilityResult",
    "CrowdAlignment",
    "DivergenceItem",
    "controversy_score",
]


@dataclass(frozen=True)
class CompatibilityResult:
    """Agreement summary for a pair of users.

    ``compatibility_score`` is 0 both for "no overlap" and "never agree";
    check ``common_questions`` to tell them apart.
    """

    compatibility_score: int
    agreements: int
    disagreements: int
    common_questions: int


@dataclass(frozen=True)
class CommonGroundItem:
    question_id: str
    content: str
    shared_vote: VoteValue
    controversy: int


@dataclass(frozen=True)
class DivergenceItem:
    question_id: str
    content: str
    vote_a: VoteValue
    vote_b: VoteValue
    last_voted_at: datetime


@dataclass(frozen=True)
class AgreementRanking:
    user_id: str
    display_name: str | None
    avatar_url: str | None
    result: CompatibilityResult


@dataclass(frozen=True)
class CrowdAlignment:
    """How often a voter sided with the human YES/NO majority."""

    alignment_score: int | None
    questions_counted: int
    with_majority: int
    against_majority: int
    excluded_ties: int


@dataclass(frozen=True)
class _SharedVote:
    question_id: str
    content: str
    vote_a: VoteValue
    vote_b: VoteValue
    updated_a: datetime
    updated_b: datetime
    yes_pct: int
    no_pct: int
    unsure_pct: int

    @property
    def last_voted_at(self) -> datetime:
        return max(ensure_aware(self.updated_a), ensure_aware(self.updated_b))


def controversy_score(yes_pct: int, no_pct: int, unsure_pct: int) -> int:
    """Return ``(1 - max(pct) / 100)`` on a 0-100 display scale.

    An even split scores high, a unanimous question scores 0. A question with
    no votes scores 0.
    """
    top = max(yes_pct, no_pct, unsure_pct)
    if top <= 0:
        return 0
    return round_half_up((Decimal(1) - Decimal(top) / Decimal(100)) * Decimal(100))


def _score(agreements: int, disagreements: int) -> int:
    compared = agreements + disagreements
    if compared == 0:
        return 0
    return round_half_up(Decimal(agreements) * Decimal(100) / Decimal(compared))


def _is_unsure_mismatch(vote_a: VoteValue, vote_b: VoteValue) -> bool:
    return (vote_a is VoteValue.UNSURE) != (vote_b is VoteValue.UNSURE)


class CompatibilityEngine:
    """Computes compatibility, common ground and divergence for two users."""

    def __init__(self, session: Session, *, ignore_unsure_mismatch: bool | None = None) -> None:
        self.session = session
        if ignore_unsure_mismatch is None:
            ignore_unsure_mismatch = settings.compatibility_ignore_unsure_mismatch
        self.ignore_unsure_mismatch = ignore_unsure_mismatch

    def compute_compatibility(
        self, user_a: str, user_b: str, *, viewer_id: str | None = None
    ) -> CompatibilityResult:
        """Agreement rate over the questions both users currently have a vote on."""
        agreements = disagreements = 0
        for shared in self._comparable(user_a, user_b, viewer_id):
            if shared.vote_a == shared.vote_b:
                agreements += 1
            else:
                disagreements += 1
        return CompatibilityResult(
            compatibility_score=_score(agreements, disagreements),
            agreements=agreements,
            disagreements=disagreements,
            common_questions=agreements + disagreements,
        )

    def compute_common_ground(
        self,
        user_a: str,
        user_b: str,
        limit: int | None = None,
        *,
        viewer_id: str | None = None,
    ) -> list[CommonGroundItem]:
        """Shared agreements, most divisive questions first."""
        limit = settings.common_ground_default_limit if limit is None else limit
        agreed = [
            shared
            for shared in self._comparable(user_a, user_b, viewer_id)
            if shared.vote_a == shared.vote_b
        ]
        ranked = sorted(
            agreed,
            key=lambda shared: (
                -controversy_score(shared.yes_pct, shared.no_pct, shared.unsure_pct),
                -shared.last_voted_at.timestamp(),
                shared.question_id,
            ),
        )
        return [
            CommonGroundItem(
                question_id=shared.question_id,
                content=shared.content,
                shared_vote=shared.vote_a,
                controversy=controversy_score(shared.yes_pct, shared.no_pct, shared.unsure_pct),
            )
            for shared in ranked[: max(limit, 0)]
        ]

    def compute_divergence(
        self,
        user_a: str,
        user_b: str,
        limit: int | None = None,
        *,
        viewer_id: str | None = None,
    ) -> list[DivergenceItem]:
        """Shared disagreements, most recently voted first."""
        limit = settings.divergence_default_limit if limit is None else limit
        differing = [
            shared
            for shared in self._comparable(user_a, user_b, viewer_id)
            if shared.vote_a != shared.vote_b
        ]
        ranked = sorted(
            differing,
            key=lambda shared: (-shared.last_voted_at.timestamp(), shared.question_id),
        )
        return [
            DivergenceItem(
                question_id=shared.question_id,
                content=shared.content,
                vote_a=shared.vote_a,
                vote_b=shared.vote_b,
                last_voted_at=shared.last_voted_at,
            )
            for shared in ranked[: max(limit, 0)]
        ]

    def rank_agreement(
        self,
        target_user: str,
        *,
        limit: int = 5,
        offset: int = 0,
        ascending: bool = False,
    ) -> list[AgreementRanking]:
        """Rank every other human by compatibility with ``target_user``.

        Only public votes take part. Ties on score go to the user with more
        questions in common.
        """
        target = aliased(Response)
        other = aliased(Response)
        rows = self.session.execute(
            select(other.voter_id, target.value, other.value)
            .join(target, target.question_id == other.question_id)
            .join(Question, Question.id == other.question_id)
            .where(
                target.voter_id == target_user,
                target.voter_kind == VoterKind.HUMAN,
                target.is_anonymous.is_(False),
                other.voter_id != target_user,
                other.voter_kind == VoterKind.HUMAN,
                other.is_anonymous.is_(False),
                Question.deleted.is_(False),
            )
        ).all()

        tallies: dict[str, list[int]] = defaultdict(lambda: [0, 0])
        for voter_id, target_value, other_value in rows:
            if self.ignore_unsure_mismatch and _is_unsure_mismatch(target_value, other_value):
                continue
            tallies[voter_id][0 if target_value == other_value else 1] += 1

        results = {
            voter_id: CompatibilityResult(
                compatibility_score=_score(agree, disagree),
                agreements=agree,
                disagreements=disagree,
                common_questions=agree + disagree,
            )
            for voter_id, (agree, disagree) in tallies.items()
        }
        direction = 1 if ascending else -1
        ordered = sorted(
            results.items(),
            key=lambda item: (
                direction * item[1].compatibility_score,
                -item[1].common_questions,
                item[0],
            ),
        )
        page = ordered[offset : offset + limit]

        profiles = {
            profile.id: profile
            for profile in self.session.execute(
                select(Profile).where(Profile.id.in_([voter_id for voter_id, _ in page]))
            ).scalars()
        }
        return [
            AgreementRanking(
                user_id=voter_id,
                display_name=profiles[voter_id].username if voter_id in profiles else None,
                avatar_url=profiles[voter_id].avatar_url if voter_id in profiles else None,
                result=result,
            )
            for voter_id, result in page
        ]

    def compute_crowd_alignment(self, user_id: str) -> CrowdAlignment:
        """Share of a voter's YES/NO votes that match the human majority.

        Exact ties are excluded from the score and reported separately.
        """
        voter = voter_for_user(user_id)
        human = aliased(Response)
        majority = (
            select(
                human.question_id.label("question_id"),
                func.sum(case((human.value == VoteValue.YES, 1), else_=0)).label("yes_count"),
                func.sum(case((human.value == VoteValue.NO, 1), else_=0)).label("no_count"),
            )
            .where(human.voter_kind == VoterKind.HUMAN)
            .group_by(human.question_id)
            .subquery()
        )
        conditions = [
            Response.voter_id == voter.voter_id,
            Response.voter_kind == voter.kind,
            Response.value != VoteValue.UNSURE,
        ]
        if not isinstance(voter, AIPersona):
            conditions.append(Response.is_anonymous.is_(False))
        rows = self.session.execute(
            select(Response.value, majority.c.yes_count, majority.c.no_count)
            .join(majority, majority.c.question_id == Response.question_id)
            .where(*conditions)
        ).all()

        with_majority = against_majority = ties = 0
        for value, yes_count, no_count in rows:
            yes_count, no_count = int(yes_count or 0), int(no_count or 0)
            if yes_count + no_count == 0:
                continue
            if yes_count == no_count:
                ties += 1
                continue
            leader = VoteValue.YES if yes_count > no_count else VoteValue.NO
            if value == leader:
                with_majority += 1
            else:
                against_majority += 1

        counted = with_majority + against_majority
        return CrowdAlignment(
            alignment_score=_score(with_majority, against_majority) if counted else None,
            questions_counted=counted,
            with_majority=with_majority,
            against_majority=against_majority,
            excluded_ties=ties,
        )

    def _comparable(self, user_a: str, user_b: str, viewer_id: str | None) -> list[_SharedVote]:
        include_anonymous = viewer_id is not None and viewer_id == user_a == user_b
        shared = self._shared_votes(
            voter_for_user(user_a),
            voter_for_user(user_b),
            include_anonymous=include_anonymous,
        )
        if not self.ignore_unsure_mismatch:
            return shared
        return [item for item in shared if not _is_unsure_mismatch(item.vote_a, item.vote_b)]

    def _shared_votes(
        self, voter_a: Voter, voter_b: Voter, *, include_anonymous: bool
    ) -> list[_SharedVote]:
        side_a = aliased(Response)
        side_b = aliased(Response)
        stmt = (
            select(
                side_a.question_id,
                Question.content,
                side_a.value,
                side_b.value,
                side_a.updated_at,
                side_b.updated_at,
                Question.yes_pct,
                Question.no_pct,
                Question.unsure_pct,
            )
            .join(side_b, side_b.question_id == side_a.question_id)
            .join(Question, Question.id == side_a.question_id)
            .where(
                side_a.voter_id == voter_a.voter_id,
                side_a.voter_kind == voter_a.kind,
                side_b.voter_id == voter_b.voter_id,
                side_b.voter_kind == voter_b.kind,
                Question.deleted.is_(False),
            )
        )
        if not include_anonymous:
            stmt = stmt.where(side_a.is_anonymous.is_(False), side_b.is_anonymous.is_(False))

        return [
            _SharedVote(
                question_id=row[0],
                content=row[1],
                vote_a=row[2],
                vote_b=row[3],
                updated_a=row[4],
                updated_b=row[5],
                yes_pct=row[6],
                no_pct=row[7],
                unsure_pct=row[8],
            )
            for row in self.session.execute(stmt).all()
        ]
