"""SQLAlchemy models for the ChatterSphere service."""

from .community import Channel, Community, CommunityMember, CommunityModerator
from .membership_request import MembershipRequest
from .notification import Notification, NotificationType
from .post import Post
from .user import User

__all__ = [
    "Channel", "Community", "CommunityMember", "CommunityModerator",
    "MembershipRequest",
    "Notification", "NotificationType",
    "Post",
    "User",
]
