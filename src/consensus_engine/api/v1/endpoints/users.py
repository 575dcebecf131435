"""Per-user vote statistics, history and rankings."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Query

from consensus_engine.schemas.compatibility import AgreementRankingResponse
from consensus_engine.schemas.question import VisibleVoteResponse
from consensus_engine.schemas.users import VoteStatsResponse
from consensus_engine.schemas.vote import HistoryEntry

from ..dependencies import CurrentUserIdDep, OptionalUserIdDep, VoteServiceDep

router = APIRouter(prefix="/users", tags=["users"])


@router.get("/me/history", response_model=list[HistoryEntry])
async def get_my_history(
    current_user_id: CurrentUserIdDep,
    service: VoteServiceDep,
    limit: Annotated[int, Query(ge=1, le=200)] = 50,
) -> list[HistoryEntry]:
    """Return the caller's own vote transitions, newest first."""
    return [HistoryEntry.model_validate(entry) for entry in service.get_history(current_user_id, limit)]


@router.get("/{user_id}/stats", response_model=VoteStatsResponse)
async def get_vote_stats(
    user_id: str,
    service: VoteServiceDep,
    tz: Annotated[str | None, Query(description="IANA time zone for day boundaries")] = None,
) -> VoteStatsResponse:
    """Streak, mind changes and crowd alignment for a profile."""
    return VoteStatsResponse.model_validate(service.get_vote_stats(user_id, tz=tz))


@router.get("/{user_id}/votes", response_model=list[VisibleVoteResponse])
async def list_user_votes(
    user_id: str,
    viewer_id: OptionalUserIdDep,
    service: VoteServiceDep,
) -> list[VisibleVoteResponse]:
    """A profile's vote list as the viewer is allowed to see it."""
    votes = service.list_visible_votes_for_voter(user_id, viewer_id)
    return [VisibleVoteResponse.model_validate(vote) for vote in votes]


@router.get("/{user_id}/agreement-rankings", response_model=list[AgreementRankingResponse])
async def get_agreement_rankings(
    user_id: str,
    service: VoteServiceDep,
    limit: Annotated[int, Query(ge=1, le=100)] = 5,
    offset: Annotated[int, Query(ge=0)] = 0,
    ascending: bool = False,
) -> list[AgreementRankingResponse]:
    """Other users ranked by how often they agree with ``user_id``."""
    rankings = service.get_agreement_rankings(
        user_id, limit=limit, offset=offset, ascending=ascending
    )
    return [AgreementRankingResponse.model_validate(item) for item in rankings]
