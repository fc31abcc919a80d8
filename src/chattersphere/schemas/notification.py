"""Notification-related Pydantic schemas."""

from __future__ import annotations

from .common import ApiModel, Pagination, UserSummary


class CommunityRef(ApiModel):
    """Minimal community reference embedded in notifications."""

    id: str
    name: str
    image: str | None = None


class NotificationView(ApiModel):
    """Notification returned to its recipient."""

    id: str
    type: str
    message: str
    read: bool
    created_at: str | None = None
    sender: UserSummary | None = None
    related_community: CommunityRef | None = None
    related_post_id: str | None = None
    related_comment_id: str | None = None


class NotificationPage(ApiModel):
    """Paginated notification listing with the recipient's unread total."""

    notifications: list[NotificationView]
    unread_count: int
    pagination: Pagination


class MarkReadResult(ApiModel):
    """Outcome of marking notifications read."""

    success: bool = True
    count: int = 1
