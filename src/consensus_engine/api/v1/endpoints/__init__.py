# src/consensus_engine/api/v1/endpoints/__init__.py
"""API endpoint modules for version 1."""

from .compatibility import router as compatibility_router
from .questions import router as questions_router
from .users import router as users_router
from .votes import router as votes_router

__all__ = [
    "compatibility_router",
    "questions_router",
    "users_router",
    "votes_router",
]
