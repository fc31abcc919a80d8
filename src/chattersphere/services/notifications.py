"""Notification fan-out for membership events and recipient-side reads."""

from __future__ import annotations

import logging
from collections.abc import Iterable

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from chattersphere.core.errors import NotFoundError, PermissionDeniedError
from chattersphere.db.time import isoformat_utc
from chattersphere.models import Community, Notification, NotificationType, User
from chattersphere.schemas.common import Pagination, page_offset
from chattersphere.schemas.notification import (
    CommunityRef,
    MarkReadResult,
    NotificationPage,
    NotificationView,
)
from chattersphere.services.events import (
    EventBus,
    MemberJoined,
    MembershipApproved,
    MembershipRejected,
    MembershipRequested,
)
from chattersphere.services.users import get_user, summarize, users_by_id

logger = logging.getLogger(__name__)


def _display_name(db: Session, user_id: str) -> str:
    user = get_user(db, user_id)
    if user is None:
        return "Someone"
    return user.name or user.username


class NotificationNotifier:
    """Turns membership events into notification rows."""

    def register(self, bus: EventBus) -> None:
        """Subscribe to every membership event on ``bus``."""
        bus.subscribe(MemberJoined, self.on_member_joined)
        bus.subscribe(MembershipRequested, self.on_membership_requested)
        bus.subscribe(MembershipApproved, self.on_membership_approved)
        bus.subscribe(MembershipRejected, self.on_membership_rejected)

    def _create(
        self,
        db: Session,
        recipients: Iterable[str],
        *,
        sender_id: str,
        type_: NotificationType,
        message: str,
        community_id: str,
    ) -> int:
        created = 0
        for recipient_id in recipients:
            db.add(
                Notification(
                    recipient_id=recipient_id,
                    sender_id=sender_id,
                    type=type_,
                    message=message,
                    read=False,
                    related_community_id=community_id,
                )
            )
            created += 1
        db.commit()
        return created

    def on_member_joined(self, event: MemberJoined, db: Session) -> None:
        if not event.creator_id or event.creator_id == event.user_id:
            return
        self._create(
            db,
            [event.creator_id],
            sender_id=event.user_id,
            type_=NotificationType.COMMUNITY_JOIN,
            message=f"{_display_name(db, event.user_id)} joined {event.community_name}",
            community_id=event.community_id,
        )

    def on_membership_requested(self, event: MembershipRequested, db: Session) -> None:
        recipients = [rid for rid in dict.fromkeys(event.reviewer_ids) if rid != event.user_id]
        self._create(
            db,
            recipients,
            sender_id=event.user_id,
            type_=NotificationType.MEMBERSHIP_REQUEST,
            message=(
                f"{_display_name(db, event.user_id)} requested to join {event.community_name}"
            ),
            community_id=event.community_id,
        )

    def on_membership_approved(self, event: MembershipApproved, db: Session) -> None:
        self._create(
            db,
            [event.user_id],
            sender_id=event.actor_id,
            type_=NotificationType.COMMUNITY_JOIN,
            message=f"Your request to join {event.community_name} has been approved",
            community_id=event.community_id,
        )

    def on_membership_rejected(self, event: MembershipRejected, db: Session) -> None:
        message = f"Your request to join {event.community_name} has been declined"
        if event.message:
            message = f"{message}: {event.message}"
        self._create(
            db,
            [event.user_id],
            sender_id=event.actor_id,
            type_=NotificationType.MEMBERSHIP_REJECTED,
            message=message,
            community_id=event.community_id,
        )


class NotificationService:
    """Recipient-facing notification queries and read-state updates."""

    def __init__(self, db: Session) -> None:
        self.db = db

    def list_for_user(
        self, user: User, page: int, limit: int, unread_only: bool = False
    ) -> NotificationPage:
        """Return the user's notifications, newest first."""
        conditions = [Notification.recipient_id == user.id]
        if unread_only:
            conditions.append(Notification.read.is_(False))

        offset = page_offset(page, limit)
        total = int(
            self.db.execute(
                select(func.count()).select_from(Notification).where(*conditions)
            ).scalar()
            or 0
        )
        unread = int(
            self.db.execute(
                select(func.count())
                .select_from(Notification)
                .where(Notification.recipient_id == user.id, Notification.read.is_(False))
            ).scalar()
            or 0
        )
        rows = (
            self.db.execute(
                select(Notification)
                .where(*conditions)
                .order_by(Notification.created_at.desc(), Notification.id)
                .offset(offset)
                .limit(limit)
            )
            .scalars()
            .all()
        )

        senders = users_by_id(self.db, (row.sender_id for row in rows if row.sender_id))
        community_ids = {row.related_community_id for row in rows if row.related_community_id}
        communities: dict[str, Community] = {}
        if community_ids:
            communities = {
                community.id: community
                for community in self.db.execute(
                    select(Community).where(Community.id.in_(community_ids))
                ).scalars()
            }

        notifications = []
        for row in rows:
            community = communities.get(row.related_community_id or "")
            sender = senders.get(row.sender_id or "")
            notifications.append(
                NotificationView(
                    id=row.id,
                    type=row.type.value,
                    message=row.message,
                    read=row.read,
                    created_at=isoformat_utc(row.created_at),
                    sender=summarize(sender) if sender is not None else None,
                    related_community=(
                        CommunityRef(id=community.id, name=community.name, image=community.image)
                        if community is not None
                        else None
                    ),
                    related_post_id=row.related_post_id,
                    related_comment_id=row.related_comment_id,
                )
            )

        return NotificationPage(
            notifications=notifications,
            unread_count=unread,
            pagination=Pagination(
                page=page,
                limit=limit,
                total=total,
                has_more=offset + len(notifications) < total,
            ),
        )

    def mark_read(self, user: User, notification_id: str) -> MarkReadResult:
        """Mark one of the user's notifications as read."""
        notification = self.db.get(Notification, notification_id)
        if notification is None:
            raise NotFoundError("Notification not found")
        if notification.recipient_id != user.id:
            raise PermissionDeniedError("Not authorized to update this notification")
        notification.read = True
        self.db.commit()
        return MarkReadResult(count=1)

    def mark_all_read(self, user: User) -> MarkReadResult:
        """Mark every unread notification of the user as read."""
        result = self.db.execute(
            update(Notification)
            .where(Notification.recipient_id == user.id, Notification.read.is_(False))
            .values(read=True)
        )
        self.db.commit()
        count = int(result.rowcount or 0)
        logger.debug("Marked %d notifications read for user %s", count, user.id)
        return MarkReadResult(count=count)
