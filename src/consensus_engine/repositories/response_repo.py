"""Data access helpers for current votes."""
from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from consensus_engine.db.time import utcnow
from consensus_engine.models.response import Response
from consensus_engine.models.voter import Voter, VoteValue

__all__ = ["ResponseStore", "UpsertOutcome"]


def _conflict_insert(dialect_name: str):
    """Return the dialect ``insert`` construct that supports ON CONFLICT, if any."""
    if dialect_name == "postgresql":
        from sqlalchemy.dialects.postgresql import insert

        return insert
    if dialect_name == "sqlite":
        from sqlalchemy.dialects.sqlite import insert

        return insert
    return None


@dataclass(frozen=True)
class UpsertOutcome:
    """Result of an upsert: the stored row plus what it replaced."""

    record: Response
    previous_value: VoteValue | None
    previous_anonymous: bool

    @property
    def created(self) -> bool:
        return self.previous_value is None

    @property
    def changed(self) -> bool:
        return self.previous_value != self.record.value


class ResponseStore:
    """Thin wrapper around database access for vote rows.

    Rows are keyed by ``(voter_id, question_id, voter_kind)``. Writes lock the
    key row where the dialect supports ``FOR UPDATE`` so concurrent requests
    for the same key serialize to one deterministic row.
    """

    def __init__(self, session: Session) -> None:
        """Initialize the store with a SQLAlchemy session."""
        self.session = session

    def _key_stmt(self, voter: Voter, question_id: str):
        return select(Response).where(
            Response.voter_id == voter.voter_id,
            Response.question_id == question_id,
            Response.voter_kind == voter.kind,
        )

    def get_vote(
        self, voter: Voter, question_id: str, *, for_update: bool = False
    ) -> Response | None:
        """Return the current vote for a key, optionally locking it."""
        stmt = self._key_stmt(voter, question_id)
        if for_update:
            stmt = stmt.with_for_update()
        return self.session.execute(stmt).scalars().first()

    def upsert_vote(
        self,
        voter: Voter,
        question_id: str,
        value: VoteValue | str,
        *,
        is_anonymous: bool = False,
        reasoning: str | None = None,
    ) -> UpsertOutcome:
        """Insert or replace the current vote for a key.

        If a concurrent request inserted the same key first with the same
        value, the row is left untouched and the outcome reports that value
        as ``previous_value``. Callers treat that like any other same-value
        resubmission.

        Raises:
            ValidationError: If the value is not YES/NO/UNSURE, or the voter
                kind does not allow the requested anonymity or reasoning.
        """
        vote_value = VoteValue.parse(value)
        voter.check_vote_fields(is_anonymous=is_anonymous, reasoning=reasoning)

        existing = self.get_vote(voter, question_id, for_update=True)
        if existing is None:
            inserted = self._try_insert(
                voter, question_id, vote_value, is_anonymous=is_anonymous, reasoning=reasoning
            )
            if inserted is not None:
                return UpsertOutcome(
                    record=inserted, previous_value=None, previous_anonymous=False
                )
            # A concurrent request inserted the same key first; update its row.
            existing = self.get_vote(voter, question_id, for_update=True)
            if existing is None:  # pragma: no cover - row vanished between statements
                raise RuntimeError("Vote row disappeared during upsert")
            if existing.value == vote_value:
                return UpsertOutcome(
                    record=existing,
                    previous_value=existing.value,
                    previous_anonymous=existing.is_anonymous,
                )

        previous_value = existing.value
        previous_anonymous = existing.is_anonymous
        existing.value = vote_value
        existing.is_anonymous = is_anonymous
        existing.reasoning = reasoning
        existing.updated_at = utcnow()
        self.session.flush()
        return UpsertOutcome(
            record=existing,
            previous_value=previous_value,
            previous_anonymous=previous_anonymous,
        )

    def _try_insert(
        self,
        voter: Voter,
        question_id: str,
        value: VoteValue,
        *,
        is_anonymous: bool,
        reasoning: str | None,
    ) -> Response | None:
        now = utcnow()
        values = {
            "voter_id": voter.voter_id,
            "question_id": question_id,
            "voter_kind": voter.kind,
            "value": value,
            "is_anonymous": is_anonymous,
            "reasoning": reasoning,
            "created_at": now,
            "updated_at": now,
        }
        insert = _conflict_insert(self.session.get_bind().dialect.name)
        if insert is not None:
            result = self.session.execute(
                insert(Response).values(**values).on_conflict_do_nothing()
            )
            if result.rowcount == 0:
                return None
            return self.get_vote(voter, question_id)

        # Dialects without ON CONFLICT fall back to a savepoint around the insert.
        record = Response(**values)
        savepoint = self.session.begin_nested()
        try:
            self.session.add(record)
            self.session.flush()
        except IntegrityError:
            savepoint.rollback()
            return None
        savepoint.commit()
        return record

    def delete_vote(self, voter: Voter, question_id: str) -> Response | None:
        """Delete the current vote for a key and return the removed row."""
        existing = self.get_vote(voter, question_id, for_update=True)
        if existing is None:
            return None
        self.session.delete(existing)
        self.session.flush()
        return existing

    def list_votes_for_question(self, question_id: str) -> list[Response]:
        """Return every current vote on a question, oldest first."""
        result = self.session.execute(
            select(Response)
            .where(Response.question_id == question_id)
            .order_by(Response.created_at.asc())
        )
        return list(result.scalars())

    def list_votes_for_voter(self, voter: Voter) -> list[Response]:
        """Return every current vote held by a voter, newest first."""
        result = self.session.execute(
            select(Response)
            .where(
                Response.voter_id == voter.voter_id,
                Response.voter_kind == voter.kind,
            )
            .order_by(Response.updated_at.desc())
        )
        return list(result.scalars())
