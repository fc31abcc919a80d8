"""SQLAlchemy model for pending community join requests."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import ForeignKey, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from chattersphere.db.ids import new_id
from chattersphere.db.session import Base
from chattersphere.db.time import utcnow


class MembershipRequest(Base):
    """Outstanding request to join an approval-gated community.

    The row exists only while the request is pending; approving or rejecting
    it deletes the row.
    """

    __tablename__ = "membership_request"
    # At most one outstanding request per (community, user) pair.
    __table_args__ = (
        UniqueConstraint("community_id", "user_id", name="uq_membership_request_pair"),
    )

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    community_id: Mapped[str] = mapped_column(
        String(32),
        ForeignKey("community.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id: Mapped[str] = mapped_column(String(32), nullable=False)
    message: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)
