# src/consensus_engine/services/__init__.py
"""Business logic services for the consensus engine."""

from .aggregate import AggregateMaintainer
from .compatibility import CompatibilityEngine
from .history import VoteHistoryLog
from .notifications import NotificationDeliveryWorker, NotificationOutbox
from .visibility import VisibilityResolver
from .vote_service import VoteService

__all__ = [
    "AggregateMaintainer",
    "CompatibilityEngine",
    "VoteHistoryLog",
    "NotificationOutbox",
    "NotificationDeliveryWorker",
    "VisibilityResolver",
    "VoteService",
]
