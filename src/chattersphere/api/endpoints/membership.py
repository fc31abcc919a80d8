"""Community membership endpoints: join/leave, requests, members and moderators."""

from __future__ import annotations

from fastapi import APIRouter, Body

from chattersphere.api.dependencies import (
    CurrentUserDep,
    EventBusDep,
    OptionalUserDep,
    PageDep,
    SessionDep,
)
from chattersphere.schemas.membership import (
    MemberPage,
    MembershipAction,
    MembershipResult,
    ModeratorChange,
    PendingRequestPage,
    RequestDecision,
    RequestDecisionResult,
)
from chattersphere.services.membership import MembershipService

router = APIRouter(prefix="/communities", tags=["membership"])


@router.post("/{community_id}/membership", response_model=MembershipResult)
async def toggle_membership(
    community_id: str,
    current_user: CurrentUserDep,
    db: SessionDep,
    events: EventBusDep,
    body: MembershipAction | None = Body(None),
) -> MembershipResult:
    """Join or leave a community; approval-gated communities record a request instead."""
    if body is None:
        body = MembershipAction()
    return MembershipService(db, events).toggle(
        community_id, current_user, body.action, body.message
    )


@router.patch("/{community_id}/membership/{user_id}", response_model=RequestDecisionResult)
async def decide_membership_request(
    community_id: str,
    user_id: str,
    decision: RequestDecision,
    current_user: CurrentUserDep,
    db: SessionDep,
    events: EventBusDep,
) -> RequestDecisionResult:
    """Approve or reject a pending join request (creator or moderator only)."""
    return MembershipService(db, events).resolve_request(
        community_id,
        current_user,
        user_id,
        decision.action,
        decision.message,
    )


@router.get("/{community_id}/membership-requests", response_model=PendingRequestPage)
async def list_membership_requests(
    community_id: str,
    current_user: CurrentUserDep,
    db: SessionDep,
    events: EventBusDep,
    paging: PageDep,
) -> PendingRequestPage:
    """List pending join requests (creator or moderator only)."""
    page, limit = paging
    return MembershipService(db, events).list_requests(community_id, current_user, page, limit)


@router.get("/{community_id}/members", response_model=MemberPage)
async def list_members(
    community_id: str,
    viewer: OptionalUserDep,
    db: SessionDep,
    events: EventBusDep,
    paging: PageDep,
) -> MemberPage:
    """List a community's members with their roles."""
    page, limit = paging
    return MembershipService(db, events).list_members(community_id, viewer, page, limit)


@router.put("/{community_id}/moderators/{user_id}", response_model=ModeratorChange)
async def add_moderator(
    community_id: str,
    user_id: str,
    current_user: CurrentUserDep,
    db: SessionDep,
    events: EventBusDep,
) -> ModeratorChange:
    """Promote a member to moderator (creator only)."""
    return MembershipService(db, events).set_moderator(
        community_id, current_user, user_id, promote=True
    )


@router.delete("/{community_id}/moderators/{user_id}", response_model=ModeratorChange)
async def remove_moderator(
    community_id: str,
    user_id: str,
    current_user: CurrentUserDep,
    db: SessionDep,
    events: EventBusDep,
) -> ModeratorChange:
    """Revoke a moderator role (creator only)."""
    return MembershipService(db, events).set_moderator(
        community_id, current_user, user_id, promote=False
    )
