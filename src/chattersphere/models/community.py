"""SQLAlchemy models for communities, their member sets and channels."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from chattersphere.db.ids import new_id
from chattersphere.db.session import Base
from chattersphere.db.time import utcnow


class Community(Base):
    """Community metadata, visibility flags and the cached member counter."""

    __tablename__ = "community"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    # URL-safe handle: lowercase, hyphen separated.
    slug: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    image: Mapped[str | None] = mapped_column(Text, nullable=True)
    banner: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Independent flags: private-and-open and public-but-gated are both valid.
    is_private: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    requires_approval: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Immutable after creation. No FK so a vanished creator profile stays representable.
    creator_id: Mapped[str] = mapped_column(String(32), nullable=False, index=True)

    # Cached projection of COUNT(community_member); refreshed in every membership write.
    member_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(default=utcnow, onupdate=utcnow, nullable=False)


class CommunityMember(Base):
    """Join table holding the set of community members."""

    __tablename__ = "community_member"

    community_id: Mapped[str] = mapped_column(
        String(32),
        ForeignKey("community.id", ondelete="CASCADE"),
        primary_key=True,
    )
    user_id: Mapped[str] = mapped_column(String(32), primary_key=True, index=True)
    joined_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)


class CommunityModerator(Base):
    """Join table holding the set of community moderators."""

    __tablename__ = "community_moderator"

    community_id: Mapped[str] = mapped_column(
        String(32),
        ForeignKey("community.id", ondelete="CASCADE"),
        primary_key=True,
    )
    user_id: Mapped[str] = mapped_column(String(32), primary_key=True)


class Channel(Base):
    """Named discussion channel inside a community."""

    __tablename__ = "channel"
    __table_args__ = (UniqueConstraint("community_id", "name", name="uq_channel_community_name"),)

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    community_id: Mapped[str] = mapped_column(
        String(32),
        ForeignKey("community.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name: Mapped[str] = mapped_column(String(64), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)
