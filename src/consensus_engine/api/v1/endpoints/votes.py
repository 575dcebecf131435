# src/consensus_engine/api/v1/endpoints/votes.py
"""Vote-related endpoints for the Consensus API."""

import logging

from fastapi import APIRouter, HTTPException, status

from consensus_engine.core.settings import settings
from consensus_engine.models import VoterKind, voter_for_user
from consensus_engine.schemas.question import AggregateResponse
from consensus_engine.schemas.vote import (
    CastVoteResponse,
    MyVoteResponse,
    RetractVoteResponse,
    VoteCreate,
    VoteRecord,
)

from ..dependencies import CurrentUserIdDep, VoteServiceDep

router = APIRouter(prefix="/votes", tags=["votes"])

logger = logging.getLogger(__name__)


def _check_voter_kind(current_user_id: str, voter_kind: str) -> str:
    """AI votes belong to the persona's service principal, and it casts nothing else."""
    kind = voter_kind.strip().lower()
    is_persona = current_user_id == settings.ai_persona_id
    if kind == VoterKind.AI.value and not is_persona:
        logger.warning("Rejected AI vote from non-persona principal %s", current_user_id)
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only the AI persona may cast AI votes",
        )
    if kind == VoterKind.HUMAN.value and is_persona:
        logger.warning("Rejected human vote from the AI persona principal")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="The AI persona may only cast AI votes",
        )
    return voter_kind


@router.post("/", status_code=status.HTTP_200_OK, response_model=CastVoteResponse)
async def cast_vote(
    vote_data: VoteCreate,
    current_user_id: CurrentUserIdDep,
    service: VoteServiceDep,
) -> CastVoteResponse:
    """Cast a vote. Resubmitting the current value retracts it."""
    voter_kind = _check_voter_kind(current_user_id, vote_data.voter_kind)
    result = service.cast_vote(
        current_user_id,
        vote_data.question_id,
        voter_kind,
        vote_data.value,
        is_anonymous=vote_data.is_anonymous,
        reasoning=vote_data.reasoning,
    )
    return CastVoteResponse(
        accepted=result.accepted,
        retracted=result.retracted,
        first_vote=result.first_vote,
        aggregate=AggregateResponse.model_validate(result.aggregate),
        vote=VoteRecord.model_validate(result.vote) if result.vote is not None else None,
    )


@router.delete("/{question_id}", response_model=RetractVoteResponse)
async def retract_vote(
    question_id: str,
    current_user_id: CurrentUserIdDep,
    service: VoteServiceDep,
) -> RetractVoteResponse:
    """Remove the caller's current vote on a question."""
    voter = voter_for_user(current_user_id)
    result = service.retract_vote(current_user_id, question_id, voter.kind)
    return RetractVoteResponse(
        retracted=result.retracted,
        aggregate=AggregateResponse.model_validate(result.aggregate),
    )


@router.get("/{question_id}/my-vote", response_model=MyVoteResponse)
async def get_my_vote(
    question_id: str,
    current_user_id: CurrentUserIdDep,
    service: VoteServiceDep,
) -> MyVoteResponse:
    """Get the caller's current vote on a specific question."""
    voter = voter_for_user(current_user_id)
    vote = service.get_vote(current_user_id, question_id, voter.kind)
    if vote is None:
        return MyVoteResponse(question_id=question_id)
    return MyVoteResponse(question_id=question_id, value=vote.value, is_anonymous=vote.is_anonymous)
