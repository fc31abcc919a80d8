"""User lookups, public summaries and identity-provider synchronisation."""
from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from chattersphere.core.errors import NotFoundError, ValidationError
from chattersphere.models import User
from chattersphere.schemas.common import UserSummary
from chattersphere.schemas.user import IdentityUserData

logger = logging.getLogger(__name__)

UNKNOWN_USERNAME = "unknown"
UNKNOWN_NAME = "Unknown User"


def summarize(user: User | None, fallback_id: str | None = None) -> UserSummary:
    """Return the public profile of ``user``, or a placeholder when it is missing."""
    if user is None:
        return UserSummary(
            id=fallback_id or "",
            username=UNKNOWN_USERNAME,
            name=UNKNOWN_NAME,
            image=None,
        )
    return UserSummary(id=user.id, username=user.username, name=user.name, image=user.image)


def get_user(db: Session, user_id: str) -> User | None:
    """Return a single user by primary key."""
    return db.get(User, user_id)


def get_user_by_external_id(db: Session, external_id: str) -> User | None:
    """Return the local projection of an identity-provider account."""
    return db.execute(select(User).where(User.external_id == external_id)).scalar_one_or_none()


def users_by_id(db: Session, user_ids: Iterable[str]) -> dict[str, User]:
    """Load several users at once, keyed by id; unknown ids are simply absent."""
    ids = {user_id for user_id in user_ids if user_id}
    if not ids:
        return {}
    rows = db.execute(select(User).where(User.id.in_(ids))).scalars()
    return {user.id: user for user in rows}


def _primary_email(data: IdentityUserData) -> str | None:
    for entry in data.email_addresses:
        if entry.id == data.primary_email_address_id:
            return entry.email_address
    if data.email_addresses:
        return data.email_addresses[0].email_address
    return None


def _unique_username(db: Session, wanted: str, external_id: str) -> str:
    """Return ``wanted`` or a suffixed variant that no other account holds."""
    candidate = wanted
    suffix = 1
    while True:
        holder = db.execute(select(User).where(User.username == candidate)).scalar_one_or_none()
        if holder is None or holder.external_id == external_id:
            return candidate
        suffix += 1
        candidate = f"{wanted}{suffix}"


def upsert_from_identity(db: Session, payload: dict[str, Any]) -> tuple[User, bool]:
    """Create or update the local user described by an identity-provider payload.

    Returns:
        The persisted user and whether it was newly created.

    Raises:
        ValidationError: If the payload is not a valid user object.
    """
    try:
        data = IdentityUserData.model_validate(payload)
    except ValueError as err:
        raise ValidationError("Invalid user payload") from err

    fallback_username = f"user_{data.id[:8]}"
    full_name = " ".join(part for part in (data.first_name, data.last_name) if part).strip()
    email = _primary_email(data)

    user = get_user_by_external_id(db, data.id)
    created = user is None
    if user is None:
        username = _unique_username(db, data.username or fallback_username, data.id)
        user = User(
            external_id=data.id,
            username=username,
            name=full_name or data.username or fallback_username,
            email=email,
            image=data.image_url,
        )
        db.add(user)
    else:
        if data.username:
            user.username = _unique_username(db, data.username, data.id)
        user.name = full_name or user.name
        user.email = email or user.email
        user.image = data.image_url or user.image

    db.commit()
    db.refresh(user)
    logger.info("%s user %s from identity provider", "Created" if created else "Updated", user.id)
    return user, created


def delete_by_external_id(db: Session, external_id: str) -> User:
    """Remove the local projection of a deleted identity-provider account.

    Raises:
        NotFoundError: If no local user corresponds to ``external_id``.
    """
    user = get_user_by_external_id(db, external_id)
    if user is None:
        raise NotFoundError("User not found")
    db.delete(user)
    db.commit()
    logger.info("Deleted user %s after identity-provider removal", user.id)
    return user
