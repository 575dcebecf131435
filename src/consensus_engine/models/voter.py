# src/consensus_engine/models/voter.py
"""Vote values, voter kinds and the voter variant.

A voter is either a human account or the single AI persona. Both share the
``responses`` table; the ``voter_kind`` column is part of the primary key so
a human and the persona can each hold one current vote on a question.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from consensus_engine.core.errors import (
    INVALID_VALUE,
    VOTER_KIND_ANONYMITY_CONFLICT,
    ValidationError,
)
from consensus_engine.core.settings import settings


class VoteValue(str, Enum):
    """The three options offered on every question."""

    YES = "YES"
    NO = "NO"
    UNSURE = "UNSURE"

    @classmethod
    def parse(cls, raw: object) -> VoteValue:
        """Coerce raw input to a vote value or raise ``ValidationError``."""
        if isinstance(raw, cls):
            return raw
        if isinstance(raw, str):
            try:
                return cls(raw.strip().upper())
            except ValueError:
                pass
        raise ValidationError(f"Invalid vote value: {raw!r}", code=INVALID_VALUE)


class VoterKind(str, Enum):
    """Whether a vote belongs to a human account or the AI persona."""

    HUMAN = "human"
    AI = "ai"

    @classmethod
    def parse(cls, raw: object) -> VoterKind:
        """Coerce raw input to a voter kind or raise ``ValidationError``."""
        if isinstance(raw, cls):
            return raw
        if isinstance(raw, str):
            try:
                return cls(raw.strip().lower())
            except ValueError:
                pass
        raise ValidationError(f"Invalid voter kind: {raw!r}", code=INVALID_VALUE)


@dataclass(frozen=True)
class HumanVoter:
    """A human account voting under its own user id."""

    user_id: str

    kind = VoterKind.HUMAN

    @property
    def voter_id(self) -> str:
        return self.user_id

    def check_vote_fields(self, *, is_anonymous: bool, reasoning: str | None) -> None:
        """Humans may vote anonymously but never attach AI reasoning."""
        if reasoning is not None:
            raise ValidationError("Only AI votes carry reasoning", code=INVALID_VALUE)


@dataclass(frozen=True)
class AIPersona:
    """The system AI persona. Its votes are always attributed."""

    persona_id: str

    kind = VoterKind.AI

    @property
    def voter_id(self) -> str:
        return self.persona_id

    def check_vote_fields(self, *, is_anonymous: bool, reasoning: str | None) -> None:
        """AI votes are never anonymous."""
        if is_anonymous:
            raise ValidationError(
                "AI votes cannot be anonymous",
                code=VOTER_KIND_ANONYMITY_CONFLICT,
            )


Voter = HumanVoter | AIPersona


def make_voter(voter_id: str, voter_kind: VoterKind | str) -> Voter:
    """Build the voter variant for a ``(voter_id, voter_kind)`` pair."""
    kind = VoterKind.parse(voter_kind)
    if kind is VoterKind.AI:
        return AIPersona(persona_id=voter_id)
    return HumanVoter(user_id=voter_id)


def voter_for_user(user_id: str) -> Voter:
    """Map a public user id to its voter; the configured persona id is the AI."""
    if user_id == settings.ai_persona_id:
        return AIPersona(persona_id=user_id)
    return HumanVoter(user_id=user_id)
