# mypy: ignore-errors
"""Tests for the notification outbox and its delivery worker."""

import asyncio
from unittest.mock import AsyncMock

import httpx
import pytest
from sqlalchemy import select
from sqlalchemy.orm import sessionmaker

from consensus_engine.core.errors import NotificationDeliveryFailure
from consensus_engine.core.settings import settings
from consensus_engine.models import Notification
from consensus_engine.services.notifications import (
    LoggingNotificationSender,
    NotificationDeliveryWorker,
    NotificationMessage,
    NotificationOutbox,
    WebhookNotificationSender,
    build_sender,
)


@pytest.fixture()
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


@pytest.fixture()
def pending(db_session, question, follow):
    follow("fan", "alice")
    rows = NotificationOutbox(db_session).enqueue_first_vote(question, "alice")
    assert len(rows) == 2
    return rows


def _statuses(db_session):
    db_session.expire_all()
    return {
        row.recipient_id: (row.status, row.attempts)
        for row in db_session.execute(select(Notification)).scalars()
    }


def test_outbox_skips_voter_and_duplicates(db_session, make_question, follow):
    own = make_question(author_id="alice")
    follow("fan", "alice")
    follow("alice", "fan")

    rows = NotificationOutbox(db_session).enqueue_first_vote(own, "alice")
    assert [(row.recipient_id, row.kind) for row in rows] == [("fan", "follow_activity")]


@pytest.mark.asyncio
async def test_worker_delivers_pending(db_session, pending, session_factory):
    sender = AsyncMock()
    worker = NotificationDeliveryWorker(sender=sender, session_factory=session_factory)

    delivered = await worker.deliver_pending()

    assert delivered == 2
    assert sender.send.await_count == 2
    sent = {call.args[0].recipient_id for call in sender.send.await_args_list}
    assert sent == {"author", "fan"}
    assert _statuses(db_session) == {"author": ("delivered", 0), "fan": ("delivered", 0)}

    assert await worker.deliver_pending() == 0


@pytest.mark.asyncio
async def test_worker_marks_failed_after_max_attempts(
    db_session, pending, session_factory, monkeypatch
):
    monkeypatch.setattr(settings, "notification_max_attempts", 2)
    sender = AsyncMock()
    sender.send.side_effect = NotificationDeliveryFailure("service down")
    worker = NotificationDeliveryWorker(sender=sender, session_factory=session_factory)

    assert await worker.deliver_pending() == 0
    assert _statuses(db_session) == {"author": ("pending", 1), "fan": ("pending", 1)}

    assert await worker.deliver_pending() == 0
    assert _statuses(db_session) == {"author": ("failed", 2), "fan": ("failed", 2)}

    # Failed rows are no longer picked up.
    await worker.deliver_pending()
    assert sender.send.await_count == 4


@pytest.mark.asyncio
async def test_worker_loop_start_stop(db_session, pending, session_factory, monkeypatch):
    monkeypatch.setattr(settings, "notification_poll_interval_seconds", 0.1)
    sender = AsyncMock()
    worker = NotificationDeliveryWorker(sender=sender, session_factory=session_factory)

    await worker.start()
    for _ in range(20):
        if sender.send.await_count >= 2:
            break
        await asyncio.sleep(0.05)
    await worker.stop()

    assert sender.send.await_count == 2
    sender.close.assert_awaited_once()


def _message() -> NotificationMessage:
    return NotificationMessage(
        notification_id="n-1",
        recipient_id="author",
        kind="vote",
        actor_id="alice",
        question_id="q-1",
    )


@pytest.mark.asyncio
async def test_webhook_sender_posts_payload():
    received = []

    def handler(request: httpx.Request) -> httpx.Response:
        received.append(request)
        return httpx.Response(202)

    sender = WebhookNotificationSender("https://notify.example/hook")
    sender._client = httpx.AsyncClient(transport=httpx.MockTransport(handler))

    await sender.send(_message())
    await sender.close()

    assert len(received) == 1
    assert received[0].url == "https://notify.example/hook"
    assert b'"recipient_id":"author"' in received[0].content.replace(b" ", b"")


@pytest.mark.asyncio
async def test_webhook_sender_raises_on_error_status():
    sender = WebhookNotificationSender("https://notify.example/hook")
    sender._client = httpx.AsyncClient(
        transport=httpx.MockTransport(lambda request: httpx.Response(500))
    )

    with pytest.raises(NotificationDeliveryFailure):
        await sender.send(_message())
    await sender.close()


@pytest.mark.asyncio
async def test_webhook_sender_raises_on_transport_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    sender = WebhookNotificationSender("https://notify.example/hook")
    sender._client = httpx.AsyncClient(transport=httpx.MockTransport(handler))

    with pytest.raises(NotificationDeliveryFailure):
        await sender.send(_message())
    await sender.close()


def test_build_sender_follows_configuration(monkeypatch):
    monkeypatch.setattr(settings, "notification_webhook_url", None)
    assert isinstance(build_sender(), LoggingNotificationSender)

    monkeypatch.setattr(settings, "notification_webhook_url", "https://notify.example/hook")
    assert isinstance(build_sender(), WebhookNotificationSender)
