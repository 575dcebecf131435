# src/consensus_engine/api/v1/__init__.py
"""Version 1 API endpoints."""

from .endpoints import (
    compatibility_router,
    questions_router,
    users_router,
    votes_router,
)

__all__ = [
    "compatibility_router",
    "questions_router",
    "users_router",
    "votes_router",
]
