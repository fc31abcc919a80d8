"""HTTP API for ChatterSphere."""

from .endpoints import (
    communities_router,
    membership_router,
    notifications_router,
    users_router,
    webhooks_router,
)

__all__ = [
    "communities_router",
    "membership_router",
    "notifications_router",
    "users_router",
    "webhooks_router",
]
