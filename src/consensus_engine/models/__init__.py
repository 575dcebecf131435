# src/consensus_engine/models/__init__.py
"""SQLAlchemy models for the Consensus Engine."""

from .notification import Notification
from .profile import Follow, Profile
from .question import Question
from .response import Response, ResponseHistory
from .voter import (
    AIPersona,
    HumanVoter,
    Voter,
    VoterKind,
    VoteValue,
    make_voter,
    voter_for_user,
)

__all__ = [
    "Notification",
    "Follow", "Profile",
    "Question",
    "Response", "ResponseHistory",
    "AIPersona", "HumanVoter", "Voter", "VoterKind", "VoteValue",
    "make_voter", "voter_for_user",
]
