"""initial schema

Revision ID: 3c1f9a7e2b40
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from __future__ import annotations

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "3c1f9a7e2b40"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

VOTE_VALUES = ("YES", "NO", "UNSURE")
VOTER_KINDS = ("human", "ai")


def _vote_value(name: str = "vote_value") -> sa.Enum:
    return sa.Enum(*VOTE_VALUES, name=name, native_enum=False)


def _voter_kind() -> sa.Enum:
    return sa.Enum(*VOTER_KINDS, name="voter_kind", native_enum=False)


def upgrade() -> None:
    """Create questions, votes, history, profiles, follows and the outbox."""
    op.create_table(
        "questions",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("author_id", sa.String(length=36), nullable=True),
        sa.Column("is_ai", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("is_anonymous", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("deleted", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("yes_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("no_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("unsure_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_votes", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("yes_pct", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("no_pct", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("unsure_pct", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("anonymous_vote_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("version", sa.Integer(), nullable=False, server_default="0"),
        sa.CheckConstraint(
            "yes_count + no_count + unsure_count = total_votes",
            name="ck_questions_total_votes",
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_questions_author_id", "questions", ["author_id"])
    op.create_index("ix_questions_total_votes", "questions", ["total_votes"])

    op.create_table(
        "responses",
        sa.Column("voter_id", sa.String(length=64), nullable=False),
        sa.Column("question_id", sa.String(length=36), nullable=False),
        sa.Column("voter_kind", _voter_kind(), nullable=False),
        sa.Column("value", _vote_value(), nullable=False),
        sa.Column("is_anonymous", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("reasoning", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint(
            "NOT (voter_kind = 'ai' AND is_anonymous)",
            name="ck_responses_ai_not_anonymous",
        ),
        sa.ForeignKeyConstraint(["question_id"], ["questions.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("voter_id", "question_id", "voter_kind"),
    )
    op.create_index("ix_responses_question_id", "responses", ["question_id"])
    op.create_index("ix_responses_voter_id", "responses", ["voter_id"])

    op.create_table(
        "response_history",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("voter_id", sa.String(length=64), nullable=False),
        sa.Column("question_id", sa.String(length=36), nullable=False),
        sa.Column("voter_kind", _voter_kind(), nullable=False),
        sa.Column("previous_value", _vote_value(), nullable=True),
        sa.Column("new_value", _vote_value(), nullable=False),
        sa.Column("changed_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["question_id"], ["questions.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_response_history_voter_id", "response_history", ["voter_id"])
    op.create_index("ix_response_history_question_id", "response_history", ["question_id"])
    op.create_index("ix_response_history_changed_at", "response_history", ["changed_at"])

    op.create_table(
        "profiles",
        sa.Column("id", sa.String(length=64), nullable=False),
        sa.Column("username", sa.Text(), nullable=True),
        sa.Column("avatar_url", sa.Text(), nullable=True),
        sa.Column("timezone", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("username"),
    )

    op.create_table(
        "follows",
        sa.Column("follower_id", sa.String(length=64), nullable=False),
        sa.Column("following_id", sa.String(length=64), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("follower_id != following_id", name="ck_follows_not_self"),
        sa.PrimaryKeyConstraint("follower_id", "following_id"),
    )
    op.create_index("ix_follows_following_id", "follows", ["following_id"])

    op.create_table(
        "notifications",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("recipient_id", sa.String(length=64), nullable=False),
        sa.Column("kind", sa.Text(), nullable=False),
        sa.Column("actor_id", sa.String(length=64), nullable=False),
        sa.Column("question_id", sa.String(length=36), nullable=True),
        sa.Column("status", sa.VARCHAR(length=20), nullable=False, server_default="pending"),
        sa.Column("attempts", sa.SmallInteger(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_notifications_status", "notifications", ["status"])


def downgrade() -> None:
    """Drop every table created by this revision."""
    op.drop_index("ix_notifications_status", table_name="notifications")
    op.drop_table("notifications")
    op.drop_index("ix_follows_following_id", table_name="follows")
    op.drop_table("follows")
    op.drop_table("profiles")
    op.drop_index("ix_response_history_changed_at", table_name="response_history")
    op.drop_index("ix_response_history_question_id", table_name="response_history")
    op.drop_index("ix_response_history_voter_id", table_name="response_history")
    op.drop_table("response_history")
    op.drop_index("ix_responses_voter_id", table_name="responses")
    op.drop_index("ix_responses_question_id", table_name="responses")
    op.drop_table("responses")
    op.drop_index("ix_questions_total_votes", table_name="questions")
    op.drop_index("ix_questions_author_id", table_name="questions")
    op.drop_table("questions")
