"""Shared API dependencies for authentication and common functionality."""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends, HTTPException, Query, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from chattersphere.core.security import InvalidSessionError, decode_session_token
from chattersphere.core.settings import settings
from chattersphere.db.session import get_db
from chattersphere.models import User
from chattersphere.services.events import EventBus, get_event_bus
from chattersphere.services.users import get_user_by_external_id

# Sessions are optional at the HTTP layer; each dependency decides whether
# an absent one is anonymous or an error.
bearer_scheme = HTTPBearer(auto_error=False)

# Type alias for database session dependency
SessionDep = Annotated[Session, Depends(get_db)]
CredentialsDep = Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)]


def _resolve_user(credentials: HTTPAuthorizationCredentials | None, db: Session) -> User:
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
            headers={"WWW-Authenticate": "Bearer"},
        )
    try:
        external_id = decode_session_token(credentials.credentials)
    except InvalidSessionError as err:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        ) from err

    user = get_user_by_external_id(db, external_id)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found",
        )
    return user


def get_current_user(credentials: CredentialsDep, db: SessionDep) -> User:
    """Get the authenticated user from the bearer session.

    Raises:
        HTTPException: 401 if there is no session, it is invalid, or it maps
            to no local user.
    """
    return _resolve_user(credentials, db)


def get_optional_user(credentials: CredentialsDep, db: SessionDep) -> User | None:
    """Get the authenticated user, treating any unresolvable session as anonymous."""
    try:
        return _resolve_user(credentials, db)
    except HTTPException:
        return None


def get_event_bus_dep() -> EventBus:
    """Return the shared domain event bus."""
    return get_event_bus()


def page_params(
    page: int = Query(1, ge=1, description="1-based page number"),
    limit: int | None = Query(None, ge=1, description="Page size"),
) -> tuple[int, int]:
    """Normalise pagination query parameters against configured bounds."""
    size = limit or settings.default_page_size
    return page, min(size, settings.max_page_size)


# Type aliases for current user dependencies
CurrentUserDep = Annotated[User, Depends(get_current_user)]
OptionalUserDep = Annotated[User | None, Depends(get_optional_user)]
EventBusDep = Annotated[EventBus, Depends(get_event_bus_dep)]
PageDep = Annotated[tuple[int, int], Depends(page_params)]
