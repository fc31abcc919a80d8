# tests/conftest.py
from __future__ import annotations

import os
from collections.abc import Callable, Generator, Iterator
from itertools import count

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault("IDENTITY_JWT_SECRET", "test-identity-secret")
os.environ.setdefault(
    "IDENTITY_WEBHOOK_SECRET", "whsec_Y2hhdHRlcnNwaGVyZS10ZXN0LWtleS0zMi1ieXRlcyE="
)
os.environ.setdefault("DATABASE_URL", "sqlite://")

from chattersphere.core.security import create_session_token
from chattersphere.db.session import Base
from chattersphere.db.session import get_db as app_get_session
from chattersphere.main import app as fastapi_app
from chattersphere.models import Community, CommunityMember, CommunityModerator, User

TEST_DB_URL = "sqlite://"

_USER_COUNTER = count(1)
_COMMUNITY_COUNTER = count(1)


@pytest.fixture(scope="session")
def engine() -> Generator[Engine, None, None]:
    engine = create_engine(
        TEST_DB_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture()
def db_session(engine: Engine) -> Iterator[Session]:
    # Services commit and roll back on their own, so each test gets a plain
    # session and the tables are emptied afterwards.
    SessionLocal = sessionmaker(
        bind=engine,
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
    )
    session = SessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.close()
        with engine.begin() as cleanup_conn:
            for table in reversed(Base.metadata.sorted_tables):
                cleanup_conn.execute(table.delete())


@pytest.fixture(scope="session")
def app() -> FastAPI:
    return fastapi_app


@pytest.fixture(autouse=True)
def override_session_dependency(app: FastAPI, db_session: Session) -> Iterator[None]:
    def _get_session_override() -> Generator[Session, None, None]:
        yield db_session

    app.dependency_overrides[app_get_session] = _get_session_override
    try:
        yield
    finally:
        app.dependency_overrides.pop(app_get_session, None)


@pytest.fixture()
def client(app: FastAPI) -> Iterator[TestClient]:
    with TestClient(app, base_url="http://test") as test_client:
        yield test_client


@pytest.fixture()
def make_user(db_session: Session) -> Callable[..., User]:
    """Return a factory that persists users with unique handles."""

    def _make_user(username: str | None = None, name: str | None = None) -> User:
        n = next(_USER_COUNTER)
        handle = username or f"user{n}"
        user = User(
            external_id=f"ext_{handle}_{n}",
            username=handle,
            name=name or handle.title(),
        )
        db_session.add(user)
        db_session.commit()
        return user

    return _make_user


@pytest.fixture()
def make_community(db_session: Session) -> Callable[..., Community]:
    """Return a factory that persists a community with its creator as member and moderator."""

    def _make_community(
        creator: User,
        *,
        requires_approval: bool = False,
        is_private: bool = False,
        name: str | None = None,
    ) -> Community:
        n = next(_COMMUNITY_COUNTER)
        community = Community(
            name=name or f"Test Community {n}",
            slug=f"test-community-{n}",
            description="Test community description",
            is_private=is_private,
            requires_approval=requires_approval,
            creator_id=creator.id,
            member_count=1,
        )
        db_session.add(community)
        db_session.flush()
        db_session.add(CommunityMember(community_id=community.id, user_id=creator.id))
        db_session.add(CommunityModerator(community_id=community.id, user_id=creator.id))
        db_session.commit()
        return community

    return _make_community


@pytest.fixture()
def test_user(make_user: Callable[..., User]) -> User:
    """Create and return the primary test user (a community creator)."""
    return make_user("creator", "Community Creator")


@pytest.fixture()
def other_user(make_user: Callable[..., User]) -> User:
    """Create and return a second persisted user."""
    return make_user("joiner", "Jo Joiner")


@pytest.fixture()
def community(make_community: Callable[..., Community], test_user: User) -> Community:
    """Create an open community owned by ``test_user``."""
    return make_community(test_user)


@pytest.fixture()
def gated_community(make_community: Callable[..., Community], test_user: User) -> Community:
    """Create an approval-gated community owned by ``test_user``."""
    return make_community(test_user, requires_approval=True, name="Gated Community")


def bearer_for(user: User) -> dict[str, str]:
    """Return authorization headers carrying a session for ``user``."""
    token = create_session_token(user.external_id)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture()
def auth_token(test_user: User) -> dict[str, str]:
    """Return authorization headers for the primary test user."""
    return bearer_for(test_user)


@pytest.fixture()
def other_auth_token(other_user: User) -> dict[str, str]:
    """Return authorization headers for the secondary test user."""
    return bearer_for(other_user)


@pytest.fixture()
def bearer() -> Callable[[User], dict[str, str]]:
    """Expose :func:`bearer_for` to tests that need headers for ad-hoc users."""
    return bearer_for
