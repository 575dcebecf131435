# src/consensus_engine/services/visibility.py
"""Per-vote disclosure rules for voter identities.

Anonymity belongs to the vote, not to the page that renders it. Every read
path that lists voters resolves each row through
:meth:`VisibilityResolver.resolve_voter_identity`.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Protocol

from sqlalchemy import select
from sqlalchemy.orm import Session

from consensus_engine.core.settings import settings
from consensus_engine.models import Profile, Response, VoterKind, VoteValue, voter_for_user
from consensus_engine.repositories.response_repo import ResponseStore

__all__ = [
    "DatabaseProfileProvider",
    "ProfileInfo",
    "ProfileProvider",
    "VisibilityResolver",
    "VisibleVote",
    "VisibleVoters",
    "VoterIdentity",
]


@dataclass(frozen=True)
class ProfileInfo:
    """Public identity supplied by the profile service."""

    user_id: str
    display_name: str | None
    avatar_url: str | None = None


class ProfileProvider(Protocol):
    """Source of public profile data for non-anonymous voters."""

    def get_profiles(self, user_ids: Iterable[str]) -> dict[str, ProfileInfo]:
        ...


class DatabaseProfileProvider:
    """Reads public profiles from the local ``profiles`` table."""

    def __init__(self, session: Session) -> None:
        self.session = session

    def get_profiles(self, user_ids: Iterable[str]) -> dict[str, ProfileInfo]:
        ids = set(user_ids)
        if not ids:
            return {}
        rows = self.session.execute(select(Profile).where(Profile.id.in_(ids))).scalars()
        return {
            row.id: ProfileInfo(user_id=row.id, display_name=row.username, avatar_url=row.avatar_url)
            for row in rows
        }


@dataclass(frozen=True)
class VoterIdentity:
    """What a particular viewer may learn about who cast a vote."""

    voter_id: str | None
    display_name: str | None
    avatar_url: str | None
    is_anonymous_to_viewer: bool
    is_self: bool = False
    is_ai: bool = False
    # Shown on the viewer's own anonymous vote.
    anonymous_badge: bool = False


@dataclass(frozen=True)
class VisibleVote:
    """A vote paired with the identity the viewer may see."""

    question_id: str
    value: VoteValue
    identity: VoterIdentity
    updated_at: datetime
    reasoning: str | None = None


@dataclass
class VisibleVoters:
    """Voter list for a question as seen by one viewer."""

    named_voters: list[VisibleVote] = field(default_factory=list)
    anonymous_counts: dict[str, int] = field(
        default_factory=lambda: {value.value: 0 for value in VoteValue}
    )


_HIDDEN = VoterIdentity(
    voter_id=None,
    display_name=None,
    avatar_url=None,
    is_anonymous_to_viewer=True,
)


class VisibilityResolver:
    """Applies the disclosure rules to vote rows."""

    def __init__(self, session: Session, profiles: ProfileProvider | None = None) -> None:
        self.session = session
        self.profiles = profiles or DatabaseProfileProvider(session)
        self.store = ResponseStore(session)

    def resolve_voter_identity(
        self,
        vote: Response,
        viewer_id: str | None,
        viewer_is_owner: bool = False,
        profile: ProfileInfo | None = None,
    ) -> VoterIdentity:
        """Decide what ``viewer_id`` may see about the author of ``vote``.

        Rules, first match wins:

        1. AI votes always show the AI persona.
        2. Non-anonymous votes show the voter's public profile.
        3. The voter always sees their own anonymous vote, badged.
        4. Anyone else gets no identity at all.
        """
        if vote.voter_kind is VoterKind.AI:
            return VoterIdentity(
                voter_id=vote.voter_id,
                display_name=settings.ai_persona_name,
                avatar_url=settings.ai_persona_avatar_url,
                is_anonymous_to_viewer=False,
                is_ai=True,
            )

        is_self = viewer_is_owner or (viewer_id is not None and viewer_id == vote.voter_id)
        if not vote.is_anonymous or is_self:
            if profile is None:
                profile = self.profiles.get_profiles([vote.voter_id]).get(vote.voter_id)
            return VoterIdentity(
                voter_id=vote.voter_id,
                display_name=profile.display_name if profile else None,
                avatar_url=profile.avatar_url if profile else None,
                is_anonymous_to_viewer=False,
                is_self=is_self,
                anonymous_badge=vote.is_anonymous,
            )

        return _HIDDEN

    def list_visible_voters(self, question_id: str, viewer_id: str | None) -> VisibleVoters:
        """Return named voters and per-option anonymous counts for a question."""
        votes = self.store.list_votes_for_question(question_id)
        profiles = self.profiles.get_profiles(
            vote.voter_id
            for vote in votes
            if vote.voter_kind is VoterKind.HUMAN
            and (not vote.is_anonymous or vote.voter_id == viewer_id)
        )

        visible = VisibleVoters()
        for vote in votes:
            identity = self.resolve_voter_identity(
                vote, viewer_id, profile=profiles.get(vote.voter_id)
            )
            if identity.is_anonymous_to_viewer:
                visible.anonymous_counts[vote.value.value] += 1
                continue
            visible.named_voters.append(_visible(vote, identity))
        return visible

    def list_visible_votes_for_voter(
        self, voter_id: str, viewer_id: str | None
    ) -> list[VisibleVote]:
        """Return a profile's vote list, dropping votes hidden from the viewer."""
        votes = self.store.list_votes_for_voter(voter_for_user(voter_id))
        profile = self.profiles.get_profiles([voter_id]).get(voter_id)
        visible: list[VisibleVote] = []
        for vote in votes:
            identity = self.resolve_voter_identity(vote, viewer_id, profile=profile)
            if identity.is_anonymous_to_viewer:
                continue
            visible.append(_visible(vote, identity))
        return visible


def _visible(vote: Response, identity: VoterIdentity) -> VisibleVote:
    return VisibleVote(
        question_id=vote.question_id,
        value=vote.value,
        identity=identity,
        updated_at=vote.updated_at,
        reasoning=vote.reasoning,
    )
