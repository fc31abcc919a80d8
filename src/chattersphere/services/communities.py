"""Community creation, listing and the viewer-relative read projection."""

from __future__ import annotations

import logging
import re
import unicodedata
from typing import Literal

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from chattersphere.core.errors import (
    AuthenticationError,
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from chattersphere.db.time import isoformat_utc
from chattersphere.models import (
    Channel,
    Community,
    CommunityMember,
    CommunityModerator,
    Post,
    User,
)
from chattersphere.schemas.common import Pagination, page_offset
from chattersphere.schemas.community import (
    ChannelCreate,
    ChannelView,
    CommunityCreate,
    CommunityPage,
    CommunityView,
    PostCreate,
    PostView,
)
from chattersphere.services.membership import (
    MembershipFlags,
    count_members,
    has_pending_request,
    resolve_user,
    viewer_flags,
)
from chattersphere.services.users import summarize, users_by_id

logger = logging.getLogger(__name__)

SORT_KEYS: tuple[str, ...] = ("members", "posts", "recent")

_NON_SLUG_CHARS = re.compile(r"[^a-z0-9]+")


def slugify(name: str) -> str:
    """Derive a lowercase, hyphen-separated slug from a community name."""
    ascii_name = unicodedata.normalize("NFKD", name).encode("ascii", "ignore").decode()
    return _NON_SLUG_CHARS.sub("-", ascii_name.lower()).strip("-")


def _count(db: Session, model: type, community_id: str) -> int:
    stmt = select(func.count()).select_from(model).where(model.community_id == community_id)
    return int(db.execute(stmt).scalar() or 0)


class CommunityService:
    """Community reads and writes for a single request's database session."""

    def __init__(self, db: Session) -> None:
        self.db = db

    # -- lookups ---------------------------------------------------------

    def find(self, identifier: str, by: Literal["id", "slug"] = "id") -> Community:
        """Load a community by id or slug.

        Raises:
            ValidationError: If the identifier is blank.
            NotFoundError: If nothing matches.
        """
        identifier = (identifier or "").strip()
        if not identifier:
            raise ValidationError(f"Missing {by} parameter")
        if by == "slug":
            community = self.db.execute(
                select(Community).where(Community.slug == identifier.lower())
            ).scalar_one_or_none()
        else:
            community = self.db.get(Community, identifier)
        if community is None:
            raise NotFoundError("Community not found")
        return community

    # -- projection ------------------------------------------------------

    def project(
        self,
        community: Community,
        viewer: User | None,
        creator: User | None = None,
        flags: MembershipFlags | None = None,
    ) -> CommunityView:
        """Render ``community`` for ``viewer``.

        Every optional field has a fallback, so a missing creator profile or
        absent timestamps degrade the output instead of failing it.
        """
        viewer_id = viewer.id if viewer is not None else None
        if flags is None:
            flags = viewer_flags(self.db, community, viewer_id)
        if creator is None:
            creator = resolve_user(self.db, community.creator_id)
        pending = not flags.is_member and has_pending_request(self.db, community.id, viewer_id)

        return CommunityView(
            id=community.id,
            name=community.name,
            slug=community.slug,
            description=community.description or "",
            image=community.image or "",
            banner=community.banner or "",
            is_private=bool(community.is_private),
            requires_approval=bool(community.requires_approval),
            creator=summarize(creator, community.creator_id),
            member_count=count_members(self.db, community.id),
            post_count=_count(self.db, Post, community.id),
            channel_count=_count(self.db, Channel, community.id),
            moderator_count=_count(self.db, CommunityModerator, community.id),
            is_member=flags.is_member,
            is_moderator=flags.is_moderator,
            is_creator=flags.is_creator,
            membership_status=flags.status(pending),
            created_at=isoformat_utc(community.created_at),
            updated_at=isoformat_utc(community.updated_at),
        )

    def get_projection(
        self,
        identifier: str,
        viewer: User | None,
        by: Literal["id", "slug"] = "id",
    ) -> CommunityView:
        """Find a community by id or slug and render it for ``viewer``."""
        return self.project(self.find(identifier, by), viewer)

    # -- create / list ---------------------------------------------------

    def create(self, creator: User, data: CommunityCreate) -> CommunityView:
        """Create a community whose creator is its first member and moderator."""
        slug = data.slug or slugify(data.name)
        if not slug:
            raise ValidationError("Could not derive a slug from the community name")

        if self.db.execute(select(Community.id).where(Community.name == data.name)).first():
            raise ConflictError("Community name already exists")
        if self.db.execute(select(Community.id).where(Community.slug == slug)).first():
            raise ConflictError("Community slug already exists")

        community = Community(
            name=data.name,
            slug=slug,
            description=data.description,
            image=data.image,
            banner=data.banner,
            is_private=data.is_private,
            requires_approval=data.requires_approval,
            creator_id=creator.id,
            member_count=1,
        )
        self.db.add(community)
        self.db.flush()
        self.db.add(CommunityMember(community_id=community.id, user_id=creator.id))
        self.db.add(CommunityModerator(community_id=community.id, user_id=creator.id))
        try:
            self.db.commit()
        except IntegrityError as err:
            self.db.rollback()
            raise ConflictError("Community name or slug already exists") from err

        logger.info("User %s created community %s (%s)", creator.id, community.id, slug)
        return self.project(
            community,
            creator,
            creator=creator,
            flags=MembershipFlags(is_member=True, is_moderator=True, is_creator=True),
        )

    def list_communities(
        self,
        viewer: User | None,
        page: int,
        limit: int,
        sort: str = "members",
    ) -> CommunityPage:
        """Return a page of communities sorted by members, posts or recency."""
        if sort not in SORT_KEYS:
            raise ValidationError("Invalid sort parameter")

        members = (
            select(CommunityMember.community_id, func.count().label("n"))
            .group_by(CommunityMember.community_id)
            .subquery()
        )
        posts = (
            select(Post.community_id, func.count().label("n"))
            .group_by(Post.community_id)
            .subquery()
        )
        stmt = (
            select(Community)
            .outerjoin(members, members.c.community_id == Community.id)
            .outerjoin(posts, posts.c.community_id == Community.id)
        )
        if sort == "recent":
            stmt = stmt.order_by(Community.created_at.desc(), Community.id)
        elif sort == "posts":
            stmt = stmt.order_by(func.coalesce(posts.c.n, 0).desc(), Community.id)
        else:
            stmt = stmt.order_by(func.coalesce(members.c.n, 0).desc(), Community.id)

        offset = page_offset(page, limit)
        total = int(self.db.execute(select(func.count()).select_from(Community)).scalar() or 0)
        rows = self.db.execute(stmt.offset(offset).limit(limit)).scalars().all()
        creators = users_by_id(self.db, (row.creator_id for row in rows))
        communities = [
            self.project(row, viewer, creator=creators.get(row.creator_id)) for row in rows
        ]
        return CommunityPage(
            communities=communities,
            pagination=Pagination(
                page=page,
                limit=limit,
                total=total,
                has_more=offset + len(communities) < total,
            ),
            sort=sort,
        )

    # -- channels and posts ----------------------------------------------

    def _require_content_access(self, community: Community, viewer: User | None) -> None:
        if not community.is_private:
            return
        if viewer is None:
            raise AuthenticationError("You must be signed in to view this community")
        if not viewer_flags(self.db, community, viewer.id).is_member:
            raise PermissionDeniedError("You must be a member to view this community")

    def list_channels(self, community_id: str, viewer: User | None) -> list[ChannelView]:
        """Channels of a community, oldest first."""
        community = self.find(community_id)
        self._require_content_access(community, viewer)
        rows = self.db.execute(
            select(Channel)
            .where(Channel.community_id == community.id)
            .order_by(Channel.created_at, Channel.name)
        ).scalars()
        return [
            ChannelView(
                id=row.id,
                community_id=row.community_id,
                name=row.name,
                description=row.description,
                created_at=isoformat_utc(row.created_at),
            )
            for row in rows
        ]

    def create_channel(self, community_id: str, actor: User, data: ChannelCreate) -> ChannelView:
        """Add a channel; creator or moderator only."""
        community = self.find(community_id)
        if not viewer_flags(self.db, community, actor.id).can_moderate:
            raise PermissionDeniedError("You don't have permission to create channels")

        name = data.name.strip().lower()
        exists = self.db.execute(
            select(Channel.id).where(Channel.community_id == community.id, Channel.name == name)
        ).first()
        if exists:
            raise ConflictError("Channel name already exists")

        channel = Channel(community_id=community.id, name=name, description=data.description)
        self.db.add(channel)
        self.db.commit()
        return ChannelView(
            id=channel.id,
            community_id=channel.community_id,
            name=channel.name,
            description=channel.description,
            created_at=isoformat_utc(channel.created_at),
        )

    def list_posts(
        self,
        community_id: str,
        viewer: User | None,
        limit: int,
        page: int = 1,
    ) -> list[PostView]:
        """Posts of a community, newest first."""
        community = self.find(community_id)
        self._require_content_access(community, viewer)
        rows = (
            self.db.execute(
                select(Post)
                .where(Post.community_id == community.id)
                .order_by(Post.created_at.desc(), Post.id)
                .offset(page_offset(page, limit))
                .limit(limit)
            )
            .scalars()
            .all()
        )
        authors = users_by_id(self.db, (row.author_id for row in rows if row.author_id))
        return [
            PostView(
                id=row.id,
                community_id=row.community_id,
                author=(
                    summarize(authors.get(row.author_id), row.author_id)
                    if row.author_id
                    else None
                ),
                title=row.title,
                content=row.content,
                created_at=isoformat_utc(row.created_at),
            )
            for row in rows
        ]

    def create_post(self, community_id: str, author: User, data: PostCreate) -> PostView:
        """Publish a post; members only."""
        community = self.find(community_id)
        if not viewer_flags(self.db, community, author.id).is_member:
            raise PermissionDeniedError("You must be a member to post in this community")

        post = Post(
            community_id=community.id,
            author_id=author.id,
            title=data.title,
            content=data.content,
        )
        self.db.add(post)
        self.db.commit()
        return PostView(
            id=post.id,
            community_id=post.community_id,
            author=summarize(author),
            title=post.title,
            content=post.content,
            created_at=isoformat_utc(post.created_at),
        )
