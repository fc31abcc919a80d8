"""Community-related Pydantic schemas."""

from __future__ import annotations

import re
from typing import Literal

from pydantic import Field, field_validator

from .common import ApiModel, Pagination, UserSummary

SLUG_PATTERN = re.compile(r"^[a-z0-9]+(?:-[a-z0-9]+)*$")

MembershipStatus = Literal["none", "pending", "member"]


class CommunityCreate(ApiModel):
    """Schema for creating a new community."""

    name: str = Field(..., min_length=3, max_length=100)
    description: str = Field(..., min_length=1, max_length=2000)
    slug: str | None = Field(None, min_length=1, max_length=100)
    image: str | None = None
    banner: str | None = None
    is_private: bool = False
    requires_approval: bool = False

    @field_validator("name")
    @classmethod
    def strip_name(cls, value: str) -> str:
        """Reject names that are only whitespace."""
        value = value.strip()
        if len(value) < 3:
            raise ValueError("Name must be at least 3 characters")
        return value

    @field_validator("slug")
    @classmethod
    def validate_slug(cls, value: str | None) -> str | None:
        """Ensure an explicit slug is lowercase and hyphen separated."""
        if value is None:
            return value
        if not SLUG_PATTERN.match(value):
            raise ValueError("Slug must be lowercase letters, digits and single hyphens")
        return value


class CommunityView(ApiModel):
    """Externally visible community, including the viewer's relationship to it."""

    id: str
    name: str
    slug: str
    description: str = ""
    image: str = ""
    banner: str = ""
    is_private: bool = False
    requires_approval: bool = False
    creator: UserSummary
    member_count: int = 0
    post_count: int = 0
    channel_count: int = 0
    moderator_count: int = 0
    is_member: bool = False
    is_moderator: bool = False
    is_creator: bool = False
    membership_status: MembershipStatus = "none"
    created_at: str | None = None
    updated_at: str | None = None


class CommunityEnvelope(ApiModel):
    """Single community response body."""

    community: CommunityView


class CommunityPage(ApiModel):
    """Paginated community listing."""

    communities: list[CommunityView]
    pagination: Pagination
    sort: str


class ChannelCreate(ApiModel):
    """Schema for creating a channel."""

    name: str = Field(..., min_length=1, max_length=64)
    description: str | None = Field(None, max_length=500)


class ChannelView(ApiModel):
    """Channel returned by the API."""

    id: str
    community_id: str
    name: str
    description: str | None = None
    created_at: str | None = None


class PostCreate(ApiModel):
    """Schema for creating a community post."""

    title: str | None = Field(None, max_length=300)
    content: str = Field(..., min_length=1, max_length=10000)


class PostView(ApiModel):
    """Post returned by the API."""

    id: str
    community_id: str
    author: UserSummary | None = None
    title: str | None = None
    content: str
    created_at: str | None = None
