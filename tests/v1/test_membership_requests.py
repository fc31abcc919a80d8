# tests/v1/test_membership_requests.py
"""Tests for reviewing pending membership requests."""

import pytest
from fastapi import status
from sqlalchemy import func, select

from chattersphere.models import (
    CommunityMember,
    MembershipRequest,
    Notification,
    NotificationType,
)


@pytest.fixture()
def pending_request(client, gated_community, other_user, other_auth_token):
    """Have ``other_user`` ask to join the gated community."""
    response = client.post(
        f"/api/communities/{gated_community.id}/membership",
        json={"action": "join"},
        headers=other_auth_token,
    )
    assert response.json()["status"] == "pending"
    return other_user


def _decision_url(community_id: str, user_id: str) -> str:
    return f"/api/communities/{community_id}/membership/{user_id}"


def _request_count(db_session) -> int:
    return db_session.execute(select(func.count()).select_from(MembershipRequest)).scalar()


def test_approve_request(
    client, gated_community, pending_request, auth_token, db_session
) -> None:
    """Approval consumes the request and adds the member exactly once."""
    response = client.patch(
        _decision_url(gated_community.id, pending_request.id),
        json={"action": "approve"},
        headers=auth_token,
    )
    assert response.status_code == status.HTTP_200_OK
    assert response.json() == {
        "success": True,
        "action": "approve",
        "userId": pending_request.id,
        "communityId": gated_community.id,
        "isMember": True,
        "memberCount": 2,
    }

    assert _request_count(db_session) == 0
    assert db_session.get(CommunityMember, (gated_community.id, pending_request.id)) is not None
    db_session.refresh(gated_community)
    assert gated_community.member_count == 2


def test_approve_twice_is_not_found(
    client, gated_community, pending_request, auth_token, db_session
) -> None:
    """A second approval finds no request and does not bump the counter."""
    url = _decision_url(gated_community.id, pending_request.id)
    client.patch(url, json={"action": "approve"}, headers=auth_token)

    response = client.patch(url, json={"action": "approve"}, headers=auth_token)
    assert response.status_code == status.HTTP_404_NOT_FOUND
    assert response.json()["detail"] == "No pending membership request found"

    db_session.refresh(gated_community)
    assert gated_community.member_count == 2


def test_approval_notifies_requester(
    client, gated_community, pending_request, auth_token, db_session
) -> None:
    """The approved user receives a community_join notification."""
    client.patch(
        _decision_url(gated_community.id, pending_request.id),
        json={"action": "approve"},
        headers=auth_token,
    )

    received = db_session.execute(
        select(Notification).where(Notification.recipient_id == pending_request.id)
    ).scalars().all()
    assert len(received) == 1
    assert received[0].type == NotificationType.COMMUNITY_JOIN
    assert received[0].message == f"Your request to join {gated_community.name} has been approved"


def test_reject_request(
    client, gated_community, pending_request, auth_token, db_session
) -> None:
    """Rejection consumes the request without adding a member."""
    response = client.patch(
        _decision_url(gated_community.id, pending_request.id),
        json={"action": "reject", "message": "Not a fit"},
        headers=auth_token,
    )
    assert response.status_code == status.HTTP_200_OK
    data = response.json()
    assert data["action"] == "reject"
    assert data["isMember"] is False
    assert data["memberCount"] == 1

    assert _request_count(db_session) == 0
    assert db_session.get(CommunityMember, (gated_community.id, pending_request.id)) is None

    received = db_session.execute(
        select(Notification).where(Notification.recipient_id == pending_request.id)
    ).scalars().all()
    assert len(received) == 1
    assert received[0].type == NotificationType.MEMBERSHIP_REJECTED
    assert received[0].message.endswith(": Not a fit")


def test_rejected_user_can_request_again(
    client, gated_community, pending_request, auth_token, other_auth_token, db_session
) -> None:
    """Once rejected, a fresh request may be filed."""
    client.patch(
        _decision_url(gated_community.id, pending_request.id),
        json={"action": "reject"},
        headers=auth_token,
    )
    response = client.post(
        f"/api/communities/{gated_community.id}/membership",
        json={"action": "join"},
        headers=other_auth_token,
    )
    assert response.json()["status"] == "pending"
    assert _request_count(db_session) == 1


def test_non_moderator_cannot_decide(
    client, gated_community, pending_request, make_user, bearer, db_session
) -> None:
    """A caller without moderation rights gets 403 and the request survives."""
    outsider = make_user("outsider")
    response = client.patch(
        _decision_url(gated_community.id, pending_request.id),
        json={"action": "approve"},
        headers=bearer(outsider),
    )
    assert response.status_code == status.HTTP_403_FORBIDDEN
    assert _request_count(db_session) == 1


def test_permission_checked_before_request_lookup(
    client, gated_community, make_user, bearer
) -> None:
    """Without rights the answer is 403 even when no request exists."""
    outsider = make_user("outsider")
    response = client.patch(
        _decision_url(gated_community.id, outsider.id),
        json={"action": "approve"},
        headers=bearer(outsider),
    )
    assert response.status_code == status.HTTP_403_FORBIDDEN


def test_moderator_can_decide(
    client, gated_community, pending_request, make_user, bearer, auth_token, db_session
) -> None:
    """A promoted moderator may approve requests."""
    moderator = make_user("moderator")
    db_session.add(CommunityMember(community_id=gated_community.id, user_id=moderator.id))
    db_session.commit()
    promoted = client.put(
        f"/api/communities/{gated_community.id}/moderators/{moderator.id}",
        headers=auth_token,
    )
    assert promoted.status_code == status.HTTP_200_OK

    response = client.patch(
        _decision_url(gated_community.id, pending_request.id),
        json={"action": "approve"},
        headers=bearer(moderator),
    )
    assert response.status_code == status.HTTP_200_OK


def test_unknown_decision_action(client, gated_community, pending_request, auth_token) -> None:
    """Only approve and reject are accepted."""
    response = client.patch(
        _decision_url(gated_community.id, pending_request.id),
        json={"action": "maybe"},
        headers=auth_token,
    )
    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert response.json()["code"] == "BAD_REQUEST"


def test_decision_on_missing_community(client, other_user, auth_token) -> None:
    """A missing community yields 404."""
    response = client.patch(
        _decision_url("doesnotexist", other_user.id),
        json={"action": "approve"},
        headers=auth_token,
    )
    assert response.status_code == status.HTTP_404_NOT_FOUND


def test_list_requests(client, gated_community, pending_request, auth_token) -> None:
    """Moderators see pending requests with the requester's profile."""
    response = client.get(
        f"/api/communities/{gated_community.id}/membership-requests",
        headers=auth_token,
    )
    assert response.status_code == status.HTTP_200_OK
    data = response.json()
    assert data["pagination"] == {"page": 1, "limit": 20, "total": 1, "hasMore": False}
    assert len(data["requests"]) == 1
    entry = data["requests"][0]
    assert entry["user"]["id"] == pending_request.id
    assert entry["user"]["username"] == pending_request.username
    assert entry["requestedAt"] is not None
    assert entry["message"] is None


def test_list_requests_forbidden_for_members(
    client, gated_community, pending_request, other_auth_token
) -> None:
    """The requester cannot see the review queue."""
    response = client.get(
        f"/api/communities/{gated_community.id}/membership-requests",
        headers=other_auth_token,
    )
    assert response.status_code == status.HTTP_403_FORBIDDEN


def test_approved_user_sees_membership_on_read(
    client, gated_community, pending_request, auth_token, other_auth_token
) -> None:
    """After approval the community read shows the requester as a member."""
    before = client.get(f"/api/communities/{gated_community.id}", headers=other_auth_token)
    assert before.json()["isMember"] is False
    assert before.json()["membershipStatus"] == "pending"

    client.patch(
        _decision_url(gated_community.id, pending_request.id),
        json={"action": "approve"},
        headers=auth_token,
    )

    by_id = client.get(f"/api/communities/{gated_community.id}", headers=other_auth_token)
    assert by_id.status_code == status.HTTP_200_OK
    assert by_id.json()["isMember"] is True
    assert by_id.json()["memberCount"] == 2

    by_slug = client.get(
        f"/api/communities/slug/{gated_community.slug}", headers=other_auth_token
    )
    assert by_slug.json()["isMember"] is True


def test_request_message_is_listed(
    client, gated_community, other_user, other_auth_token, auth_token, db_session
) -> None:
    """A note sent with a join request is stored and shown to moderators."""
    response = client.post(
        f"/api/communities/{gated_community.id}/membership",
        json={"action": "join", "message": "Long-time lurker, keen to post"},
        headers=other_auth_token,
    )
    assert response.json()["status"] == "pending"

    row = db_session.execute(select(MembershipRequest)).scalar_one()
    assert row.message == "Long-time lurker, keen to post"

    listed = client.get(
        f"/api/communities/{gated_community.id}/membership-requests",
        headers=auth_token,
    )
    assert listed.json()["requests"][0]["message"] == "Long-time lurker, keen to post"
