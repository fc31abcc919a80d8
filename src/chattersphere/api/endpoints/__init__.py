"""API endpoint routers."""

from .communities import router as communities_router
from .membership import router as membership_router
from .notifications import router as notifications_router
from .users import router as users_router
from .users import webhooks_router

__all__ = [
    "communities_router",
    "membership_router",
    "notifications_router",
    "users_router",
    "webhooks_router",
]
