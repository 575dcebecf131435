# src/consensus_engine/schemas/__init__.py
"""
Pydantic schemas for API request/response models.

These schemas define the structure of API data for serialization and validation.
"""

from .compatibility import (
    AgreementRankingResponse,
    CommonGroundResponse,
    CompatibilityResponse,
    DivergenceResponse,
)
from .question import (
    AggregateResponse,
    ReconcileResponse,
    VisibleVoteResponse,
    VisibleVotersResponse,
)
from .users import VoteStatsResponse
from .vote import (
    CastVoteResponse,
    HistoryEntry,
    MyVoteResponse,
    RetractVoteResponse,
    VoteCreate,
    VoteRecord,
)

__all__ = [
    "AggregateResponse", "ReconcileResponse",
    "VisibleVoteResponse", "VisibleVotersResponse",
    "AgreementRankingResponse", "CommonGroundResponse", "CompatibilityResponse",
    "DivergenceResponse",
    "CastVoteResponse", "HistoryEntry", "MyVoteResponse", "RetractVoteResponse",
    "VoteCreate", "VoteRecord",
    "VoteStatsResponse",
]
