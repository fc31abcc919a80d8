"""Community membership state and the join/leave/approve/reject workflow.

Membership rows are the ground truth; ``Community.member_count`` is a cached
projection recomputed inside the transaction of every mutation that changes
the member set, so the row change and the counter change commit together.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Union

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from chattersphere.core.errors import (
    AuthenticationError,
    InternalError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from chattersphere.db.time import isoformat_utc
from chattersphere.models import (
    Community,
    CommunityMember,
    CommunityModerator,
    MembershipRequest,
    User,
)
from chattersphere.schemas.common import Pagination, page_offset
from chattersphere.schemas.membership import (
    MemberPage,
    MemberView,
    MembershipResult,
    ModeratorChange,
    PendingRequest,
    PendingRequestPage,
    RequestDecisionResult,
)
from chattersphere.services.events import (
    EventBus,
    MemberJoined,
    MembershipApproved,
    MembershipRejected,
    MembershipRequested,
)
from chattersphere.services.users import summarize, users_by_id

logger = logging.getLogger(__name__)

# Either a raw id or a resolved object/mapping carrying one.
Reference = Union[str, Mapping[str, Any], Any]

_SEQUENCE_TYPES = (list, tuple, set, frozenset)


def ref_id(value: Reference | None) -> str | None:
    """Return the id a reference points at, or ``None`` if it carries none."""
    if value is None:
        return None
    if isinstance(value, str):
        return value or None
    if isinstance(value, Mapping):
        candidate = value.get("id", value.get("_id"))
    else:
        candidate = getattr(value, "id", None)
    if candidate is None:
        return None
    return str(candidate)


def resolve_user(db: Session, value: Reference | None) -> User | None:
    """Turn a user reference into a ``User``, loading it when only the id is known."""
    if isinstance(value, User):
        return value
    user_id = ref_id(value)
    if user_id is None:
        return None
    return db.get(User, user_id)


@dataclass(frozen=True)
class MembershipFlags:
    """A viewer's relationship to a community."""

    is_member: bool = False
    is_moderator: bool = False
    is_creator: bool = False

    @property
    def can_moderate(self) -> bool:
        return self.is_creator or self.is_moderator

    def status(self, pending: bool = False) -> str:
        """Collapse the flags into ``member``, ``pending`` or ``none``."""
        if self.is_member:
            return "member"
        if pending:
            return "pending"
        return "none"


ANONYMOUS = MembershipFlags()


def _field(community: Any, name: str) -> Any:
    if isinstance(community, Mapping):
        return community.get(name)
    return getattr(community, name, None)


def _contains(refs: Any, viewer_id: str) -> bool:
    if not isinstance(refs, _SEQUENCE_TYPES):
        return False
    return any(ref_id(ref) == viewer_id for ref in refs)


def resolve_membership(community: Any, viewer_id: str | None) -> MembershipFlags:
    """Compute the viewer's flags from a community's member, moderator and creator fields.

    Partially populated communities are tolerated: a missing or non-sequence
    ``members``/``moderators`` field simply yields ``False`` for that flag.
    """
    if not viewer_id or community is None:
        return ANONYMOUS
    return MembershipFlags(
        is_member=_contains(_field(community, "members"), viewer_id),
        is_moderator=_contains(_field(community, "moderators"), viewer_id),
        is_creator=ref_id(_field(community, "creator")) == viewer_id,
    )


@dataclass
class CommunitySnapshot:
    """Membership view of a community as consumed by :func:`resolve_membership`.

    Loaded relative to one viewer: ``members`` and ``moderators`` hold only the
    viewer's own entries, which is all the resolver needs.
    """

    id: str
    creator: Reference
    members: list[str] = field(default_factory=list)
    moderators: list[str] = field(default_factory=list)


def load_snapshot(db: Session, community: Community, viewer_id: str | None) -> CommunitySnapshot:
    """Build the viewer-relative snapshot of ``community``."""
    snapshot = CommunitySnapshot(id=community.id, creator=community.creator_id)
    if viewer_id:
        if db.get(CommunityMember, (community.id, viewer_id)) is not None:
            snapshot.members.append(viewer_id)
        if db.get(CommunityModerator, (community.id, viewer_id)) is not None:
            snapshot.moderators.append(viewer_id)
    return snapshot


def viewer_flags(db: Session, community: Community, viewer_id: str | None) -> MembershipFlags:
    """Return ``viewer_id``'s flags for a stored community."""
    return resolve_membership(load_snapshot(db, community, viewer_id), viewer_id)


def has_pending_request(db: Session, community_id: str, user_id: str | None) -> bool:
    """Return True when ``user_id`` has an outstanding join request."""
    if not user_id:
        return False
    stmt = select(MembershipRequest.id).where(
        MembershipRequest.community_id == community_id,
        MembershipRequest.user_id == user_id,
    )
    return db.execute(stmt).first() is not None


def count_members(db: Session, community_id: str) -> int:
    """Count member rows of a community."""
    stmt = select(func.count()).select_from(CommunityMember).where(
        CommunityMember.community_id == community_id
    )
    return int(db.execute(stmt).scalar() or 0)


class MembershipService:
    """Membership mutations for a single request's database session."""

    def __init__(self, db: Session, events: EventBus) -> None:
        self.db = db
        self.events = events

    # -- helpers ---------------------------------------------------------

    def _get_community(self, community_id: str) -> Community:
        community = self.db.get(Community, community_id)
        if community is None:
            raise NotFoundError("Community not found")
        return community

    def _is_member(self, community_id: str, user_id: str) -> bool:
        return self.db.get(CommunityMember, (community_id, user_id)) is not None

    def _refresh_member_count(self, community: Community) -> int:
        self.db.flush()
        community.member_count = count_members(self.db, community.id)
        return community.member_count

    def _commit(self, *, tolerate_duplicate: bool = False) -> bool:
        """Commit the pending mutation.

        Returns False when ``tolerate_duplicate`` is set and a uniqueness
        constraint showed that a concurrent request already made the change.
        """
        try:
            self.db.commit()
        except IntegrityError as err:
            self.db.rollback()
            if tolerate_duplicate:
                return False
            logger.error("Membership update violated a constraint", exc_info=err)
            raise InternalError("Failed to update membership") from err
        except SQLAlchemyError as err:
            self.db.rollback()
            logger.error("Membership update failed", exc_info=err)
            raise InternalError("Failed to update membership") from err
        return True

    def _delete_request(self, community_id: str, user_id: str) -> int:
        result = self.db.execute(
            delete(MembershipRequest).where(
                MembershipRequest.community_id == community_id,
                MembershipRequest.user_id == user_id,
            )
        )
        return int(result.rowcount or 0)

    def _reviewer_ids(self, community: Community) -> tuple[str, ...]:
        stmt = select(CommunityModerator.user_id).where(
            CommunityModerator.community_id == community.id
        )
        reviewers = [community.creator_id]
        for user_id in self.db.execute(stmt).scalars():
            if user_id not in reviewers:
                reviewers.append(user_id)
        return tuple(reviewers)

    def _require_moderation_rights(self, community: Community, actor: User, message: str) -> None:
        if not viewer_flags(self.db, community, actor.id).can_moderate:
            raise PermissionDeniedError(message)

    # -- join / leave ----------------------------------------------------

    def toggle(
        self,
        community_id: str,
        user: User,
        action: str | None = None,
        message: str | None = None,
    ) -> MembershipResult:
        """Join or leave ``community_id``; an empty ``action`` flips the current state.

        ``message`` is kept on the join request when the community requires approval.
        """
        community = self._get_community(community_id)
        action = action or None
        if action not in (None, "join", "leave"):
            raise ValidationError("Invalid action")

        is_member = self._is_member(community.id, user.id)
        if action is None:
            action = "leave" if is_member else "join"

        if action == "leave":
            return self._leave(community, user, is_member)
        return self._join(community, user, is_member, message)

    def _leave(self, community: Community, user: User, is_member: bool) -> MembershipResult:
        if community.creator_id == user.id:
            raise PermissionDeniedError("Creator cannot leave")

        if not is_member:
            if self._delete_request(community.id, user.id):
                self._commit()
                logger.info("User %s withdrew request for community %s", user.id, community.id)
            return MembershipResult(
                action="leave",
                is_member=False,
                member_count=count_members(self.db, community.id),
            )

        self.db.execute(
            delete(CommunityMember).where(
                CommunityMember.community_id == community.id,
                CommunityMember.user_id == user.id,
            )
        )
        # Leaving also drops any moderator role.
        self.db.execute(
            delete(CommunityModerator).where(
                CommunityModerator.community_id == community.id,
                CommunityModerator.user_id == user.id,
            )
        )
        member_count = self._refresh_member_count(community)
        self._commit()
        logger.info("User %s left community %s", user.id, community.id)
        return MembershipResult(action="leave", is_member=False, member_count=member_count)

    def _join(
        self,
        community: Community,
        user: User,
        is_member: bool,
        message: str | None = None,
    ) -> MembershipResult:
        if is_member:
            return MembershipResult(
                action="join",
                is_member=True,
                member_count=count_members(self.db, community.id),
                status="member",
            )

        if community.requires_approval:
            return self._request(community, user, message)

        self.db.add(CommunityMember(community_id=community.id, user_id=user.id))
        self._refresh_member_count(community)
        joined = self._commit(tolerate_duplicate=True)
        member_count = count_members(self.db, community.id)
        if joined:
            logger.info("User %s joined community %s", user.id, community.id)
            self.events.publish(
                MemberJoined(
                    community_id=community.id,
                    community_name=community.name,
                    user_id=user.id,
                    actor_id=user.id,
                    creator_id=community.creator_id,
                ),
                self.db,
            )
        return MembershipResult(
            action="join",
            is_member=True,
            member_count=member_count,
            status="member",
        )

    def _request(
        self, community: Community, user: User, message: str | None = None
    ) -> MembershipResult:
        created = False
        if not has_pending_request(self.db, community.id, user.id):
            self.db.add(
                MembershipRequest(community_id=community.id, user_id=user.id, message=message)
            )
            created = self._commit(tolerate_duplicate=True)

        member_count = count_members(self.db, community.id)
        if created:
            logger.info("User %s requested to join community %s", user.id, community.id)
            self.events.publish(
                MembershipRequested(
                    community_id=community.id,
                    community_name=community.name,
                    user_id=user.id,
                    actor_id=user.id,
                    reviewer_ids=self._reviewer_ids(community),
                ),
                self.db,
            )
        return MembershipResult(
            action="request",
            is_member=False,
            member_count=member_count,
            status="pending",
        )

    # -- approve / reject ------------------------------------------------

    def resolve_request(
        self,
        community_id: str,
        actor: User,
        target_user_id: str,
        action: str,
        message: str | None = None,
    ) -> RequestDecisionResult:
        """Approve or reject ``target_user_id``'s pending request.

        The request row is removed with one conditional delete before anything
        else is written; only the caller whose delete removed the row goes on
        to mutate membership, so concurrent approvals take effect at most once.
        """
        if action not in ("approve", "reject"):
            raise ValidationError("Invalid action")
        community = self._get_community(community_id)
        self._require_moderation_rights(
            community, actor, "You don't have permission to manage membership requests"
        )

        if not self._delete_request(community.id, target_user_id):
            self.db.rollback()
            raise NotFoundError("No pending membership request found")

        if action == "approve":
            if not self._is_member(community.id, target_user_id):
                self.db.add(CommunityMember(community_id=community.id, user_id=target_user_id))
            member_count = self._refresh_member_count(community)
            self._commit()
            logger.info(
                "User %s approved %s for community %s", actor.id, target_user_id, community.id
            )
            self.events.publish(
                MembershipApproved(
                    community_id=community.id,
                    community_name=community.name,
                    user_id=target_user_id,
                    actor_id=actor.id,
                ),
                self.db,
            )
            return RequestDecisionResult(
                action="approve",
                user_id=target_user_id,
                community_id=community.id,
                is_member=True,
                member_count=member_count,
            )

        self._commit()
        logger.info("User %s rejected %s for community %s", actor.id, target_user_id, community.id)
        self.events.publish(
            MembershipRejected(
                community_id=community.id,
                community_name=community.name,
                user_id=target_user_id,
                actor_id=actor.id,
                message=message,
            ),
            self.db,
        )
        return RequestDecisionResult(
            action="reject",
            user_id=target_user_id,
            community_id=community.id,
            is_member=self._is_member(community.id, target_user_id),
            member_count=count_members(self.db, community.id),
        )

    def list_requests(
        self,
        community_id: str,
        actor: User,
        page: int,
        limit: int,
    ) -> PendingRequestPage:
        """Return pending requests, newest first, to the creator or a moderator."""
        community = self._get_community(community_id)
        self._require_moderation_rights(
            community, actor, "You don't have permission to view membership requests"
        )

        offset = page_offset(page, limit)
        total = int(
            self.db.execute(
                select(func.count())
                .select_from(MembershipRequest)
                .where(MembershipRequest.community_id == community.id)
            ).scalar()
            or 0
        )
        rows = (
            self.db.execute(
                select(MembershipRequest)
                .where(MembershipRequest.community_id == community.id)
                .order_by(MembershipRequest.created_at.desc(), MembershipRequest.id)
                .offset(offset)
                .limit(limit)
            )
            .scalars()
            .all()
        )
        users = users_by_id(self.db, (row.user_id for row in rows))
        requests = [
            PendingRequest(
                id=row.id,
                user=summarize(users.get(row.user_id), row.user_id),
                message=row.message,
                requested_at=isoformat_utc(row.created_at),
            )
            for row in rows
        ]
        return PendingRequestPage(
            requests=requests,
            pagination=Pagination(
                page=page,
                limit=limit,
                total=total,
                has_more=offset + len(requests) < total,
            ),
        )

    # -- members and roles -----------------------------------------------

    def list_members(
        self,
        community_id: str,
        viewer: User | None,
        page: int,
        limit: int,
    ) -> MemberPage:
        """List members with their role; private communities are visible to members only."""
        community = self._get_community(community_id)
        if community.is_private:
            if viewer is None:
                raise AuthenticationError(
                    "You must be signed in to view members in a private community"
                )
            if not viewer_flags(self.db, community, viewer.id).is_member:
                raise PermissionDeniedError(
                    "You must be a member to view members in this community"
                )

        offset = page_offset(page, limit)
        total = count_members(self.db, community.id)
        rows = (
            self.db.execute(
                select(CommunityMember)
                .where(CommunityMember.community_id == community.id)
                .order_by(CommunityMember.joined_at, CommunityMember.user_id)
                .offset(offset)
                .limit(limit)
            )
            .scalars()
            .all()
        )
        user_ids = [row.user_id for row in rows]
        users = users_by_id(self.db, user_ids)
        moderator_ids = set(
            self.db.execute(
                select(CommunityModerator.user_id).where(
                    CommunityModerator.community_id == community.id,
                    CommunityModerator.user_id.in_(user_ids),
                )
            ).scalars()
        )

        members = []
        for row in rows:
            if row.user_id == community.creator_id:
                role = "creator"
            elif row.user_id in moderator_ids:
                role = "moderator"
            else:
                role = "member"
            members.append(
                MemberView(
                    user=summarize(users.get(row.user_id), row.user_id),
                    role=role,
                    joined_at=isoformat_utc(row.joined_at),
                )
            )
        return MemberPage(
            members=members,
            pagination=Pagination(
                page=page,
                limit=limit,
                total=total,
                has_more=offset + len(members) < total,
            ),
        )

    def set_moderator(
        self,
        community_id: str,
        actor: User,
        target_user_id: str,
        promote: bool,
    ) -> ModeratorChange:
        """Grant or revoke the moderator role; only the creator may do this."""
        community = self._get_community(community_id)
        if not viewer_flags(self.db, community, actor.id).is_creator:
            raise PermissionDeniedError("Only the creator can change moderators")

        existing = self.db.get(CommunityModerator, (community.id, target_user_id))
        if promote:
            if not self._is_member(community.id, target_user_id):
                raise ValidationError("User is not a member")
            if existing is None:
                self.db.add(CommunityModerator(community_id=community.id, user_id=target_user_id))
                self._commit(tolerate_duplicate=True)
                logger.info("User %s is now a moderator of %s", target_user_id, community.id)
            return ModeratorChange(user_id=target_user_id, is_moderator=True)

        if target_user_id == community.creator_id:
            raise ValidationError("The creator cannot be demoted")
        if existing is not None:
            self.db.delete(existing)
            self._commit()
            logger.info("User %s is no longer a moderator of %s", target_user_id, community.id)
        return ModeratorChange(user_id=target_user_id, is_moderator=False)
