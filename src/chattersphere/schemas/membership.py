"""Membership workflow request and response schemas."""

from __future__ import annotations

from typing import Literal

from pydantic import Field

from .common import ApiModel, Pagination, UserSummary


class MembershipAction(ApiModel):
    """Optional explicit action for the join/leave toggle, plus a note for join requests."""

    action: str | None = Field(None, description="join, leave, or empty to toggle")
    message: str | None = Field(None, max_length=500)


class MembershipResult(ApiModel):
    """Outcome of a join/leave toggle."""

    action: Literal["join", "leave", "request"]
    is_member: bool
    member_count: int
    status: Literal["none", "pending", "member"] = "none"


class RequestDecision(ApiModel):
    """Body of an approve/reject call."""

    action: Literal["approve", "reject"]
    message: str | None = Field(None, max_length=500)


class RequestDecisionResult(ApiModel):
    """Outcome of an approve/reject call."""

    success: bool = True
    action: Literal["approve", "reject"]
    user_id: str
    community_id: str
    is_member: bool
    member_count: int


class PendingRequest(ApiModel):
    """A pending join request as shown to moderators."""

    id: str
    user: UserSummary
    message: str | None = None
    requested_at: str | None = None


class PendingRequestPage(ApiModel):
    """Paginated pending request listing."""

    requests: list[PendingRequest]
    pagination: Pagination


class MemberView(ApiModel):
    """A community member and their role."""

    user: UserSummary
    role: Literal["creator", "moderator", "member"]
    joined_at: str | None = None


class MemberPage(ApiModel):
    """Paginated member listing."""

    members: list[MemberView]
    pagination: Pagination


class ModeratorChange(ApiModel):
    """Outcome of promoting or demoting a moderator."""

    user_id: str
    is_moderator: bool
