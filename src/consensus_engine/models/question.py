# src/consensus_engine/models/question.py
"""SQLAlchemy model for poll questions and their cached tally."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import Boolean, CheckConstraint, DateTime, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from consensus_engine.db.session import Base
from consensus_engine.db.time import ensure_aware, utcnow


class Question(Base):
    """Binary poll question.

    The count and percentage columns are a denormalized cache of the
    ``responses`` rows. Only the aggregate maintainer writes them, always
    through a compare-and-swap on ``version``.
    """

    __tablename__ = "questions"
    __table_args__ = (
        CheckConstraint(
            "yes_count + no_count + unsure_count = total_votes",
            name="ck_questions_total_votes",
        ),
        Index("ix_questions_author_id", "author_id"),
        Index("ix_questions_total_votes", "total_votes"),
    )

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    content: Mapped[str] = mapped_column(Text, nullable=False)
    # Null for system or AI-authored questions.
    author_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    is_ai: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    # Hides the author, not the voters.
    is_anonymous: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    yes_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    no_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    unsure_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_votes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    yes_pct: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    no_pct: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    unsure_pct: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    anonymous_vote_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Bumped on every aggregate write; compare-and-swap guard.
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    def is_expired(self, now: datetime | None = None) -> bool:
        """Return True once the expiry timestamp has passed."""
        if self.expires_at is None:
            return False
        return ensure_aware(self.expires_at) <= (now or utcnow())
