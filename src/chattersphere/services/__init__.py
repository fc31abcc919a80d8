"""Business logic services for the ChatterSphere application."""

from .communities import CommunityService
from .events import EventBus, get_event_bus
from .membership import MembershipService
from .notifications import NotificationNotifier, NotificationService

__all__ = [
    "CommunityService",
    "EventBus",
    "MembershipService",
    "NotificationNotifier",
    "NotificationService",
    "get_event_bus",
]
