"""Notification queue model.

Rows are produced elsewhere; this service only moves their status forward
(pending -> processing -> sent) and stamps `sent_at`.
"""

from datetime import datetime
from uuid import uuid4

from sqlalchemy import DateTime, Index, String, Text, case, func
from sqlalchemy.orm import Mapped, mapped_column

from pushrelay.common.db import Base, JSONType


STATUS_PENDING = "pending"
STATUS_PROCESSING = "processing"
STATUS_SENT = "sent"

PRIORITY_RANK = {"high": 2, "normal": 1, "default": 0}


class QueueEntry(Base):
    """One notification for one user, fanned out to all of the user's devices."""

    __tablename__ = "notification_queue"
    __table_args__ = (Index("ix_notification_queue_status_scheduled", "status", "scheduled_for"),)

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: str(uuid4()))
    user_id: Mapped[str] = mapped_column(String, index=True)
    title: Mapped[str] = mapped_column(String)
    body: Mapped[str] = mapped_column(Text)
    data: Mapped[dict | None] = mapped_column(JSONType, nullable=True)
    priority: Mapped[str | None] = mapped_column(String, nullable=True)
    category: Mapped[str | None] = mapped_column(String, nullable=True)
    status: Mapped[str] = mapped_column(String, default=STATUS_PENDING)
    scheduled_for: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    sent_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


# Unknown or missing priorities rank with "default".
priority_rank = case(PRIORITY_RANK, value=QueueEntry.priority, else_=0)
