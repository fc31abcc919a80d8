"""SQLAlchemy model for user notifications."""

from __future__ import annotations

import enum
from datetime import datetime

from sqlalchemy import Boolean, Enum, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from chattersphere.db.ids import new_id
from chattersphere.db.session import Base
from chattersphere.db.time import utcnow


class NotificationType(str, enum.Enum):
    """Kinds of events a user can be notified about."""

    COMMENT = "comment"
    REPLY = "reply"
    FOLLOW = "follow"
    MENTION = "mention"
    POST_LIKE = "post_like"
    COMMENT_LIKE = "comment_like"
    COMMUNITY_INVITE = "community_invite"
    COMMUNITY_JOIN = "community_join"
    MEMBERSHIP_REQUEST = "membership_request"
    MEMBERSHIP_APPROVED = "membership_approved"
    MEMBERSHIP_REJECTED = "membership_rejected"


class Notification(Base):
    """Fire-and-forget record informing a recipient about something that happened.

    The entity that spawned a notification never refers back to it.
    """

    __tablename__ = "notification"
    __table_args__ = (
        Index("ix_notification_recipient_read_created", "recipient_id", "read", "created_at"),
    )

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    recipient_id: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    sender_id: Mapped[str | None] = mapped_column(String(32), nullable=True)
    type: Mapped[NotificationType] = mapped_column(
        Enum(
            NotificationType,
            name="notification_type",
            values_callable=lambda members: [member.value for member in members],
        ),
        nullable=False,
    )
    message: Mapped[str] = mapped_column(Text, nullable=False)
    read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    related_post_id: Mapped[str | None] = mapped_column(String(32), nullable=True)
    related_comment_id: Mapped[str | None] = mapped_column(String(32), nullable=True)
    related_community_id: Mapped[str | None] = mapped_column(String(32), nullable=True)

    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(default=utcnow, onupdate=utcnow, nullable=False)
