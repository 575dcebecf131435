# src/consensus_engine/api/v1/endpoints/compatibility.py
"""Pairwise compatibility endpoints."""

from typing import Annotated

from fastapi import APIRouter, Query

from consensus_engine.schemas.compatibility import (
    CommonGroundResponse,
    CompatibilityResponse,
    DivergenceResponse,
)

from ..dependencies import OptionalUserIdDep, VoteServiceDep

router = APIRouter(prefix="/compatibility", tags=["compatibility"])

LimitQuery = Annotated[int | None, Query(ge=1, le=100)]


@router.get("/{user_a}/{user_b}", response_model=CompatibilityResponse)
async def get_compatibility(
    user_a: str,
    user_b: str,
    viewer_id: OptionalUserIdDep,
    service: VoteServiceDep,
) -> CompatibilityResponse:
    """Agreement rate between two users over the votes the viewer may see."""
    result = service.get_compatibility(user_a, user_b, viewer_id=viewer_id)
    return CompatibilityResponse.model_validate(result)


@router.get("/{user_a}/{user_b}/common-ground", response_model=list[CommonGroundResponse])
async def get_common_ground(
    user_a: str,
    user_b: str,
    viewer_id: OptionalUserIdDep,
    service: VoteServiceDep,
    limit: LimitQuery = None,
) -> list[CommonGroundResponse]:
    """Questions both users answered the same way, most divisive first."""
    items = service.get_common_ground(user_a, user_b, limit, viewer_id=viewer_id)
    return [CommonGroundResponse.model_validate(item) for item in items]


@router.get("/{user_a}/{user_b}/divergence", response_model=list[DivergenceResponse])
async def get_divergence(
    user_a: str,
    user_b: str,
    viewer_id: OptionalUserIdDep,
    service: VoteServiceDep,
    limit: LimitQuery = None,
) -> list[DivergenceResponse]:
    """Questions the two users answered differently, most recent first."""
    items = service.get_divergence(user_a, user_b, limit, viewer_id=viewer_id)
    return [DivergenceResponse.model_validate(item) for item in items]
