"""Notification endpoints for the ChatterSphere API."""

from __future__ import annotations

from fastapi import APIRouter, Query

from chattersphere.api.dependencies import CurrentUserDep, PageDep, SessionDep
from chattersphere.schemas.notification import MarkReadResult, NotificationPage
from chattersphere.services.notifications import NotificationService

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("", response_model=NotificationPage)
async def list_notifications(
    current_user: CurrentUserDep,
    db: SessionDep,
    paging: PageDep,
    unread_only: bool = Query(False, alias="unreadOnly"),
) -> NotificationPage:
    """Get the caller's notifications, newest first."""
    page, limit = paging
    return NotificationService(db).list_for_user(current_user, page, limit, unread_only)


# Declared before the parameterised route so "read-all" is not taken for an id.
@router.put("/read-all", response_model=MarkReadResult)
async def mark_all_notifications_read(
    current_user: CurrentUserDep,
    db: SessionDep,
) -> MarkReadResult:
    """Mark every unread notification of the caller as read."""
    return NotificationService(db).mark_all_read(current_user)


@router.put("/{notification_id}/read", response_model=MarkReadResult)
async def mark_notification_read(
    notification_id: str,
    current_user: CurrentUserDep,
    db: SessionDep,
) -> MarkReadResult:
    """Mark one notification as read."""
    return NotificationService(db).mark_read(current_user, notification_id)
