# src/consensus_engine/services/history.py
"""Append-only log of vote transitions and the statistics derived from it."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import UTC, date, datetime, timedelta, tzinfo
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from consensus_engine.core.settings import settings
from consensus_engine.db.time import ensure_aware, utcnow
from consensus_engine.models import Profile, Response, ResponseHistory, Voter, VoteValue

__all__ = ["StreakSummary", "VoteHistoryLog", "streak_from_days"]


@dataclass(frozen=True)
class StreakSummary:
    """Consecutive-day voting streak for one voter."""

    current: int
    longest: int
    last_active_day: date | None


def streak_from_days(days: Iterable[date], today: date) -> StreakSummary:
    """Compute current and longest streak from a set of active calendar days.

    Consecutive days extend a run and any larger gap starts a new one. The
    current streak is zero unless the last active day is today or yesterday.
    """
    ordered = sorted(set(days))
    if not ordered:
        return StreakSummary(current=0, longest=0, last_active_day=None)

    longest = run = 1
    for previous, day in zip(ordered, ordered[1:]):
        run = run + 1 if day - previous == timedelta(days=1) else 1
        longest = max(longest, run)

    last = ordered[-1]
    current = run if today - last <= timedelta(days=1) else 0
    return StreakSummary(current=current, longest=longest, last_active_day=last)


class VoteHistoryLog:
    """Writes and reads ``response_history`` rows."""

    def __init__(self, session: Session) -> None:
        self.session = session

    def append_transition(
        self,
        voter: Voter,
        question_id: str,
        previous_value: VoteValue | None,
        new_value: VoteValue,
    ) -> ResponseHistory | None:
        """Record a genuine value change. Same-value resubmissions are ignored."""
        if previous_value == new_value:
            return None
        entry = ResponseHistory(
            voter_id=voter.voter_id,
            question_id=question_id,
            voter_kind=voter.kind,
            previous_value=previous_value,
            new_value=new_value,
            changed_at=utcnow(),
        )
        self.session.add(entry)
        self.session.flush()
        return entry

    def has_history(self, voter: Voter, question_id: str) -> bool:
        """Return True if the voter has ever voted on the question."""
        stmt = (
            select(ResponseHistory.id)
            .where(
                ResponseHistory.voter_id == voter.voter_id,
                ResponseHistory.question_id == question_id,
                ResponseHistory.voter_kind == voter.kind,
            )
            .limit(1)
        )
        return self.session.execute(stmt).first() is not None

    def list_history(self, voter_id: str, limit: int = 50) -> list[ResponseHistory]:
        """Return a voter's transitions, newest first."""
        result = self.session.execute(
            select(ResponseHistory)
            .where(ResponseHistory.voter_id == voter_id)
            .order_by(ResponseHistory.changed_at.desc(), ResponseHistory.id.desc())
            .limit(limit)
        )
        return list(result.scalars())

    def count_mind_changes(self, voter_id: str) -> int:
        """Number of transitions away from an earlier vote."""
        return self.session.execute(
            select(func.count())
            .select_from(ResponseHistory)
            .where(
                ResponseHistory.voter_id == voter_id,
                ResponseHistory.previous_value.is_not(None),
            )
        ).scalar_one()

    def compute_streak(
        self,
        voter_id: str,
        *,
        tz: str | None = None,
        today: date | None = None,
    ) -> StreakSummary:
        """Compute the voter's day-level streak in their local timezone."""
        zone = self._zone_for(voter_id, tz)
        timestamps = list(
            self.session.execute(
                select(ResponseHistory.changed_at).where(ResponseHistory.voter_id == voter_id)
            ).scalars()
        )
        timestamps.extend(
            self.session.execute(
                select(Response.created_at).where(Response.voter_id == voter_id)
            ).scalars()
        )
        days = {_local_day(moment, zone) for moment in timestamps}
        return streak_from_days(days, today or utcnow().astimezone(zone).date())

    def _zone_for(self, voter_id: str, tz: str | None) -> tzinfo:
        name = tz
        if name is None:
            profile = self.session.get(Profile, voter_id)
            name = profile.timezone if profile is not None else None
        for candidate in (name, settings.streak_default_timezone):
            if not candidate:
                continue
            try:
                return ZoneInfo(candidate)
            except (ZoneInfoNotFoundError, ValueError):
                continue
        return UTC


def _local_day(moment: datetime, zone: tzinfo) -> date:
    return ensure_aware(moment).astimezone(zone).date()
