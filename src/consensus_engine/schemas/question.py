# src/consensus_engine/schemas/question.py
"""Question and tally schemas."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict

from consensus_engine.models.voter import VoteValue


class AggregateResponse(BaseModel):
    """Cached tally for a question."""

    model_config = ConfigDict(from_attributes=True)

    yes_count: int
    no_count: int
    unsure_count: int
    total_votes: int
    yes_pct: int
    no_pct: int
    unsure_pct: int
    anonymous_vote_count: int = 0


class VoterIdentityResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    voter_id: str | None
    display_name: str | None
    avatar_url: str | None
    is_anonymous_to_viewer: bool
    is_self: bool = False
    is_ai: bool = False
    anonymous_badge: bool = False


class VisibleVoteResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    question_id: str
    value: VoteValue
    identity: VoterIdentityResponse
    updated_at: datetime
    reasoning: str | None = None


class VisibleVotersResponse(BaseModel):
    """Named voters plus per-option counts of votes hidden from the viewer."""

    model_config = ConfigDict(from_attributes=True)

    named_voters: list[VisibleVoteResponse]
    anonymous_counts: dict[str, int]


class ReconcileResponse(BaseModel):
    question_id: str
    corrected: bool
    before: AggregateResponse
    after: AggregateResponse
