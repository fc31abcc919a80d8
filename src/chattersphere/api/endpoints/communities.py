"""Community-related endpoints for the ChatterSphere API."""

from __future__ import annotations

from fastapi import APIRouter, Query, status

from chattersphere.api.dependencies import (
    CurrentUserDep,
    OptionalUserDep,
    PageDep,
    SessionDep,
)
from chattersphere.schemas.community import (
    ChannelCreate,
    ChannelView,
    CommunityCreate,
    CommunityEnvelope,
    CommunityPage,
    PostCreate,
    PostView,
)
from chattersphere.services.communities import CommunityService

router = APIRouter(prefix="/communities", tags=["communities"])


@router.get("", response_model=CommunityPage)
async def list_communities(
    db: SessionDep,
    viewer: OptionalUserDep,
    paging: PageDep,
    sort: str = Query("members", description="members, posts or recent"),
) -> CommunityPage:
    """List communities with the viewer's membership flags."""
    page, limit = paging
    return CommunityService(db).list_communities(viewer, page, limit, sort)


@router.post("", response_model=CommunityEnvelope, status_code=status.HTTP_201_CREATED)
async def create_community(
    community_data: CommunityCreate,
    current_user: CurrentUserDep,
    db: SessionDep,
) -> CommunityEnvelope:
    """Create a community owned by the caller."""
    community = CommunityService(db).create(current_user, community_data)
    return CommunityEnvelope(community=community)


@router.get("/slug/{slug}", response_model=CommunityEnvelope)
async def get_community_by_slug(
    slug: str,
    db: SessionDep,
    viewer: OptionalUserDep,
) -> CommunityEnvelope:
    """Get a community by its slug."""
    community = CommunityService(db).get_projection(slug, viewer, by="slug")
    return CommunityEnvelope(community=community)


@router.get("/{community_id}", response_model=CommunityEnvelope)
async def get_community(
    community_id: str,
    db: SessionDep,
    viewer: OptionalUserDep,
) -> CommunityEnvelope:
    """Get a community by id."""
    community = CommunityService(db).get_projection(community_id, viewer)
    return CommunityEnvelope(community=community)


@router.get("/{community_id}/channels", response_model=list[ChannelView])
async def list_channels(
    community_id: str,
    db: SessionDep,
    viewer: OptionalUserDep,
) -> list[ChannelView]:
    """List a community's channels."""
    return CommunityService(db).list_channels(community_id, viewer)


@router.post(
    "/{community_id}/channels",
    response_model=ChannelView,
    status_code=status.HTTP_201_CREATED,
)
async def create_channel(
    community_id: str,
    channel_data: ChannelCreate,
    current_user: CurrentUserDep,
    db: SessionDep,
) -> ChannelView:
    """Create a channel in a community the caller moderates."""
    return CommunityService(db).create_channel(community_id, current_user, channel_data)


@router.get("/{community_id}/posts", response_model=list[PostView])
async def list_community_posts(
    community_id: str,
    db: SessionDep,
    viewer: OptionalUserDep,
    paging: PageDep,
) -> list[PostView]:
    """Get posts from a specific community."""
    page, limit = paging
    return CommunityService(db).list_posts(community_id, viewer, limit, page)


@router.post(
    "/{community_id}/posts",
    response_model=PostView,
    status_code=status.HTTP_201_CREATED,
)
async def create_community_post(
    community_id: str,
    post_data: PostCreate,
    current_user: CurrentUserDep,
    db: SessionDep,
) -> PostView:
    """Publish a post in a community the caller belongs to."""
    return CommunityService(db).create_post(community_id, current_user, post_data)
