"""Notification outbox and background delivery.

Votes commit first. Notification rows are written afterwards in their own
transaction and drained by :class:`NotificationDeliveryWorker`, which hands
each row to the external delivery service. Nothing here can undo a vote.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Protocol

import httpx
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from consensus_engine.core.errors import NotificationDeliveryFailure
from consensus_engine.core.settings import settings
from consensus_engine.db.session import SessionLocal
from consensus_engine.models import Follow, Notification, Question
from consensus_engine.models.notification import (
    NOTIFICATION_KIND_FOLLOW_ACTIVITY,
    NOTIFICATION_KIND_VOTE,
    NOTIFICATION_STATUS_DELIVERED,
    NOTIFICATION_STATUS_FAILED,
    NOTIFICATION_STATUS_PENDING,
)

# Configure logger for this module
logger = logging.getLogger(__name__)

HTTP_SUCCESS_MIN = 200
HTTP_SUCCESS_MAX = 299


@dataclass(frozen=True)
class NotificationMessage:
    """Payload handed to the delivery service."""

    notification_id: str
    recipient_id: str
    kind: str
    actor_id: str
    question_id: str | None

    @classmethod
    def from_row(cls, row: Notification) -> NotificationMessage:
        return cls(
            notification_id=row.id,
            recipient_id=row.recipient_id,
            kind=row.kind,
            actor_id=row.actor_id,
            question_id=row.question_id,
        )

    def as_payload(self) -> dict[str, str | None]:
        return {
            "id": self.notification_id,
            "recipient_id": self.recipient_id,
            "type": self.kind,
            "actor_id": self.actor_id,
            "question_id": self.question_id,
        }


class NotificationSender(Protocol):
    """Boundary to the external notification-delivery service."""

    async def send(self, message: NotificationMessage) -> None:
        ...

    async def close(self) -> None:
        ...


class LoggingNotificationSender:
    """Sender used when no delivery endpoint is configured."""

    async def send(self, message: NotificationMessage) -> None:
        logger.info(
            "Notification %s (%s) for %s", message.notification_id, message.kind, message.recipient_id
        )

    async def close(self) -> None:
        return None


class WebhookNotificationSender:
    """POSTs each notification as JSON to the delivery service."""

    def __init__(self, url: str, timeout_seconds: float | None = None) -> None:
        self.url = url
        self.timeout_seconds = timeout_seconds or settings.notification_http_timeout_seconds
        self._client: httpx.AsyncClient | None = None

    async def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=httpx.Timeout(self.timeout_seconds))
        return self._client

    async def send(self, message: NotificationMessage) -> None:
        client = await self._ensure_client()
        try:
            response = await client.post(self.url, json=message.as_payload())
        except httpx.HTTPError as exc:
            raise NotificationDeliveryFailure(f"Notification request failed: {exc}") from exc
        if not HTTP_SUCCESS_MIN <= response.status_code <= HTTP_SUCCESS_MAX:
            raise NotificationDeliveryFailure(
                f"Notification service returned {response.status_code}"
            )

    async def close(self) -> None:
        """Clean up underlying HTTP client resources."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None


def build_sender() -> NotificationSender:
    """Return the sender matching the current configuration."""
    if settings.notification_webhook_url:
        return WebhookNotificationSender(settings.notification_webhook_url)
    return LoggingNotificationSender()


class NotificationOutbox:
    """Writes pending notification rows."""

    def __init__(self, session: Session) -> None:
        self.session = session

    def enqueue_first_vote(self, question: Question, voter_id: str) -> list[Notification]:
        """Queue notifications for a voter's first vote on a question.

        The question author (unless it is the voter) and the voter's
        followers each get one row. Database errors are logged and swallowed;
        the caller has already committed the vote.
        """
        if not settings.notifications_enabled:
            return []

        try:
            rows = self._build_first_vote_rows(question, voter_id)
            if rows:
                self.session.add_all(rows)
                self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            logger.warning(
                "Could not enqueue notifications for vote by %s on %s: %s",
                voter_id,
                question.id,
                exc,
            )
            return []
        return rows

    def _build_first_vote_rows(self, question: Question, voter_id: str) -> list[Notification]:
        rows: list[Notification] = []
        notified: set[str] = {voter_id}
        if question.author_id and question.author_id not in notified:
            rows.append(
                Notification(
                    recipient_id=question.author_id,
                    kind=NOTIFICATION_KIND_VOTE,
                    actor_id=voter_id,
                    question_id=question.id,
                )
            )
            notified.add(question.author_id)

        followers = self.session.execute(
            select(Follow.follower_id).where(Follow.following_id == voter_id)
        ).scalars()
        for follower_id in followers:
            if follower_id in notified:
                continue
            rows.append(
                Notification(
                    recipient_id=follower_id,
                    kind=NOTIFICATION_KIND_FOLLOW_ACTIVITY,
                    actor_id=voter_id,
                    question_id=question.id,
                )
            )
            notified.add(follower_id)
        return rows


class NotificationDeliveryWorker:
    """Periodically drains the outbox into the delivery service.

    Each pending row is sent once per pass. A failed send bumps ``attempts``;
    after ``NOTIFICATION_MAX_ATTEMPTS`` the row is marked failed and left for
    inspection.
    """

    def __init__(
        self,
        sender: NotificationSender | None = None,
        session_factory: Callable[[], Session] | None = None,
    ) -> None:
        self.sender = sender or build_sender()
        self._session_factory = session_factory or SessionLocal
        self._task: asyncio.Task[None] | None = None
        self._stopping = asyncio.Event()

    async def start(self) -> None:
        """Start the background delivery loop."""
        if self._task is None or self._task.done():
            self._stopping.clear()
            self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        """Stop the background delivery loop and release the sender."""
        if self._task is not None:
            self._stopping.set()
            await self._task
            self._task = None
        await self.sender.close()

    async def _run(self) -> None:
        interval = max(0.1, float(settings.notification_poll_interval_seconds))

        while not self._stopping.is_set():
            try:
                await self.deliver_pending()
            except SQLAlchemyError as exc:
                logger.warning("NotificationDeliveryWorker database error: %s", exc)
            except (ValueError, TypeError, KeyError, AttributeError) as exc:
                logger.error(
                    "NotificationDeliveryWorker encountered data processing error: %s",
                    exc,
                    exc_info=True,
                )

            try:
                await asyncio.wait_for(self._stopping.wait(), timeout=interval)
            except TimeoutError:
                continue

    async def deliver_pending(self) -> int:
        """Send one batch of pending notifications. Returns how many were delivered."""
        delivered = 0
        with self._session_factory() as db:
            rows = list(
                db.execute(
                    select(Notification)
                    .where(Notification.status == NOTIFICATION_STATUS_PENDING)
                    .order_by(Notification.created_at.asc())
                    .limit(settings.notification_batch_size)
                ).scalars()
            )
            for row in rows:
                try:
                    await self.sender.send(NotificationMessage.from_row(row))
                except NotificationDeliveryFailure as exc:
                    row.attempts += 1
                    if row.attempts >= settings.notification_max_attempts:
                        row.status = NOTIFICATION_STATUS_FAILED
                    logger.warning(
                        "Notification %s delivery failed (attempt %d): %s",
                        row.id,
                        row.attempts,
                        exc,
                    )
                    continue
                row.status = NOTIFICATION_STATUS_DELIVERED
                delivered += 1
            db.commit()
        return delivered
