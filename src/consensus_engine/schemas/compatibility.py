# src/consensus_engine/schemas/compatibility.py
"""Compatibility, common ground and divergence schemas."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict

from consensus_engine.models.voter import VoteValue


class CompatibilityResponse(BaseModel):
    """``compatibility_score`` is 0 for both "no overlap" and "never agree"."""

    model_config = ConfigDict(from_attributes=True)

    compatibility_score: int
    agreements: int
    disagreements: int
    common_questions: int


class CommonGroundResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    question_id: str
    content: str
    shared_vote: VoteValue
    controversy: int


class DivergenceResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    question_id: str
    content: str
    vote_a: VoteValue
    vote_b: VoteValue
    last_voted_at: datetime


class AgreementRankingResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    user_id: str
    display_name: str | None
    avatar_url: str | None
    result: CompatibilityResponse
