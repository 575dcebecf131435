# src/consensus_engine/schemas/vote.py
"""Vote-related Pydantic schemas."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from consensus_engine.models.voter import VoteValue, VoterKind

from .question import AggregateResponse


class VoteCreate(BaseModel):
    """Schema for casting a vote.

    ``value`` is validated by the vote service so a bad value is reported as
    ``INVALID_VALUE`` instead of a generic request validation error.
    """

    question_id: str
    value: str = Field(..., description="YES, NO or UNSURE")
    is_anonymous: bool = False
    voter_kind: str = Field("human", description="human or ai")
    reasoning: str | None = Field(None, max_length=2000, description="AI votes only")


class VoteRecord(BaseModel):
    """A stored vote as returned to its owner."""

    model_config = ConfigDict(from_attributes=True)

    question_id: str
    voter_kind: VoterKind
    value: VoteValue
    is_anonymous: bool
    reasoning: str | None = None
    created_at: datetime
    updated_at: datetime


class CastVoteResponse(BaseModel):
    accepted: bool
    retracted: bool
    first_vote: bool = False
    aggregate: AggregateResponse
    vote: VoteRecord | None = None


class RetractVoteResponse(BaseModel):
    retracted: bool
    aggregate: AggregateResponse


class MyVoteResponse(BaseModel):
    question_id: str
    value: VoteValue | None = None
    is_anonymous: bool = False


class HistoryEntry(BaseModel):
    """One logged value transition."""

    model_config = ConfigDict(from_attributes=True)

    question_id: str
    voter_kind: VoterKind
    previous_value: VoteValue | None
    new_value: VoteValue
    changed_at: datetime
