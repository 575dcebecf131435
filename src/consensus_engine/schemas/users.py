# src/consensus_engine/schemas/users.py
from datetime import date

from pydantic import BaseModel, ConfigDict


class StreakResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    current: int
    longest: int
    last_active_day: date | None


class CrowdAlignmentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    alignment_score: int | None
    questions_counted: int
    with_majority: int
    against_majority: int
    excluded_ties: int


class VoteStatsResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    current_votes: int
    mind_changes: int
    streak: StreakResponse
    crowd_alignment: CrowdAlignmentResponse
