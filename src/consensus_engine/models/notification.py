# src/consensus_engine/models/notification.py
"""SQLAlchemy model for the notification outbox."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import VARCHAR, DateTime, Index, SmallInteger, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from consensus_engine.db.session import Base
from consensus_engine.db.time import utcnow

NOTIFICATION_KIND_VOTE = "vote"
NOTIFICATION_KIND_FOLLOW_ACTIVITY = "follow_activity"

NOTIFICATION_STATUS_PENDING = "pending"
NOTIFICATION_STATUS_DELIVERED = "delivered"
NOTIFICATION_STATUS_FAILED = "failed"


class Notification(Base):
    """Pending or processed notification awaiting hand-off to the delivery service."""

    __tablename__ = "notifications"
    __table_args__ = (Index("ix_notifications_status", "status"),)

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    recipient_id: Mapped[str] = mapped_column(String(64), nullable=False)
    kind: Mapped[str] = mapped_column(Text, nullable=False)  # 'vote' or 'follow_activity'
    actor_id: Mapped[str] = mapped_column(String(64), nullable=False)
    question_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    status: Mapped[str] = mapped_column(
        VARCHAR(20), nullable=False, default=NOTIFICATION_STATUS_PENDING
    )  # 'pending', 'delivered', 'failed'
    attempts: Mapped[int] = mapped_column(SmallInteger, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
