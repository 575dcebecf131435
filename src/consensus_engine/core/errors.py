"""Exception taxonomy for the voting core.

Every error the service layer raises on purpose derives from
``ConsensusError`` and carries a stable ``code`` that the API layer returns
verbatim to clients.
"""

from __future__ import annotations

INVALID_VALUE = "INVALID_VALUE"
VOTER_KIND_ANONYMITY_CONFLICT = "VOTER_KIND_ANONYMITY_CONFLICT"
EXPIRED_POLL = "EXPIRED_POLL"
QUESTION_NOT_FOUND = "QUESTION_NOT_FOUND"
CONCURRENCY_CONFLICT = "CONCURRENCY_CONFLICT"
TRY_AGAIN = "TRY_AGAIN"
NOTIFICATION_DELIVERY_FAILED = "NOTIFICATION_DELIVERY_FAILED"


class ConsensusError(Exception):
    """Base class for errors surfaced by the voting core."""

    code: str = "CONSENSUS_ERROR"

    def __init__(self, message: str, *, code: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code


class ValidationError(ConsensusError):
    """Raised for malformed vote requests. Never retried."""

    code = INVALID_VALUE


class ExpiredPollError(ConsensusError):
    """Raised when a vote targets a question whose expiry has passed."""

    code = EXPIRED_POLL


class QuestionNotFoundError(ConsensusError):
    """Raised when a question does not exist or has been deleted."""

    code = QUESTION_NOT_FOUND


class ConcurrencyConflict(ConsensusError):
    """Raised when a compare-and-swap on an aggregate row loses a race.

    Handled inside the aggregate maintainer; callers only ever see
    ``AggregateRetryExhausted``.
    """

    code = CONCURRENCY_CONFLICT


class AggregateRetryExhausted(ConsensusError):
    """Raised when aggregate adjustment kept conflicting. The vote did not commit."""

    code = TRY_AGAIN


class NotificationDeliveryFailure(ConsensusError):
    """Raised by notification senders; logged and swallowed by callers."""

    code = NOTIFICATION_DELIVERY_FAILED
