# src/consensus_engine/api/v1/endpoints/questions.py
"""Question tally and voter list endpoints."""

import logging

from fastapi import APIRouter

from consensus_engine.schemas.question import (
    AggregateResponse,
    ReconcileResponse,
    VisibleVotersResponse,
)

from ..dependencies import OperatorUserIdDep, OptionalUserIdDep, VoteServiceDep

router = APIRouter(prefix="/questions", tags=["questions"])

logger = logging.getLogger(__name__)


@router.get("/{question_id}/aggregate", response_model=AggregateResponse)
async def get_aggregate(question_id: str, service: VoteServiceDep) -> AggregateResponse:
    """Return the cached tally for a question."""
    return AggregateResponse.model_validate(service.get_aggregate(question_id))


@router.get("/{question_id}/voters", response_model=VisibleVotersResponse)
async def list_visible_voters(
    question_id: str,
    viewer_id: OptionalUserIdDep,
    service: VoteServiceDep,
) -> VisibleVotersResponse:
    """List voters the viewer may see; everyone else is only counted."""
    return VisibleVotersResponse.model_validate(service.list_visible_voters(question_id, viewer_id))


@router.post("/{question_id}/reconcile", response_model=ReconcileResponse)
async def reconcile_question(
    question_id: str,
    operator_id: OperatorUserIdDep,
    service: VoteServiceDep,
) -> ReconcileResponse:
    """Recount a question's tally from the stored votes."""
    logger.info("Reconcile of question %s requested by %s", question_id, operator_id)
    service.get_aggregate(question_id)
    report = service.aggregates.reconcile(question_id)
    service.session.commit()
    return ReconcileResponse(
        question_id=report.question_id,
        corrected=report.corrected,
        before=AggregateResponse.model_validate(report.before),
        after=AggregateResponse.model_validate(report.after),
    )
