# src/consensus_engine/models/response.py
"""Models capturing current votes and their change history."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column

from consensus_engine.db.session import Base
from consensus_engine.db.time import utcnow

from .voter import VoteValue, VoterKind

_vote_value_type = Enum(
    VoteValue,
    name="vote_value",
    native_enum=False,
    values_callable=lambda enum: [member.value for member in enum],
    validate_strings=True,
)
_voter_kind_type = Enum(
    VoterKind,
    name="voter_kind",
    native_enum=False,
    values_callable=lambda enum: [member.value for member in enum],
    validate_strings=True,
)


class Response(Base):
    """One voter's current vote on a question."""

    __tablename__ = "responses"
    __table_args__ = (
        CheckConstraint(
            "NOT (voter_kind = 'ai' AND is_anonymous)",
            name="ck_responses_ai_not_anonymous",
        ),
        Index("ix_responses_question_id", "question_id"),
        Index("ix_responses_voter_id", "voter_id"),
    )

    # Composite primary key: one current vote per (voter, question, kind).
    voter_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    question_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("questions.id", ondelete="CASCADE"),
        primary_key=True,
    )
    voter_kind: Mapped[VoterKind] = mapped_column(_voter_kind_type, primary_key=True)

    value: Mapped[VoteValue] = mapped_column(_vote_value_type, nullable=False)
    is_anonymous: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    reasoning: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )


class ResponseHistory(Base):
    """Append-only record of vote value transitions.

    ``previous_value`` is null for an initial vote. Retractions are not
    recorded here.
    """

    __tablename__ = "response_history"
    __table_args__ = (
        Index("ix_response_history_voter_id", "voter_id"),
        Index("ix_response_history_question_id", "question_id"),
        Index("ix_response_history_changed_at", "changed_at"),
    )

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    voter_id: Mapped[str] = mapped_column(String(64), nullable=False)
    question_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("questions.id", ondelete="CASCADE"),
        nullable=False,
    )
    voter_kind: Mapped[VoterKind] = mapped_column(_voter_kind_type, nullable=False)
    previous_value: Mapped[VoteValue | None] = mapped_column(_vote_value_type, nullable=True)
    new_value: Mapped[VoteValue] = mapped_column(_vote_value_type, nullable=False)
    changed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
