"""In-process domain events emitted by membership mutations.

Mutations publish an event after their own transaction has committed. The bus
delivers it synchronously to every subscriber; a failing subscriber is logged
and its partial writes rolled back, but the failure never reaches the caller,
so a membership change does not depend on its side effects succeeding.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Callable
from dataclasses import dataclass
from functools import lru_cache

from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MembershipEvent:
    """Common payload of every membership event."""

    community_id: str
    community_name: str
    user_id: str
    actor_id: str


@dataclass(frozen=True)
class MemberJoined(MembershipEvent):
    """A user joined an open community; ``actor_id`` is the joiner."""

    creator_id: str = ""


@dataclass(frozen=True)
class MembershipRequested(MembershipEvent):
    """A user asked to join an approval-gated community."""

    reviewer_ids: tuple[str, ...] = ()


@dataclass(frozen=True)
class MembershipApproved(MembershipEvent):
    """A moderator accepted ``user_id``'s pending request."""


@dataclass(frozen=True)
class MembershipRejected(MembershipEvent):
    """A moderator declined ``user_id``'s pending request."""

    message: str | None = None


Handler = Callable[[MembershipEvent, Session], None]


class EventBus:
    """Synchronous publish/subscribe keyed by event class."""

    def __init__(self) -> None:
        self._handlers: dict[type[MembershipEvent], list[Handler]] = defaultdict(list)

    def subscribe(self, event_type: type[MembershipEvent], handler: Handler) -> None:
        """Register ``handler`` for events of exactly ``event_type``."""
        self._handlers[event_type].append(handler)

    def handlers_for(self, event_type: type[MembershipEvent]) -> list[Handler]:
        """Return the handlers registered for ``event_type``."""
        return list(self._handlers.get(event_type, ()))

    def publish(self, event: MembershipEvent, db: Session) -> None:
        """Deliver ``event`` to its subscribers using ``db`` for their writes."""
        for handler in self.handlers_for(type(event)):
            try:
                handler(event, db)
            except Exception:
                db.rollback()
                logger.exception(
                    "Handler %r failed for %s in community %s",
                    handler,
                    type(event).__name__,
                    event.community_id,
                )


@lru_cache(maxsize=1)
def get_event_bus() -> EventBus:
    """Return the process-wide event bus with the notifier subscribed."""
    from chattersphere.services.notifications import NotificationNotifier

    bus = EventBus()
    NotificationNotifier().register(bus)
    return bus
