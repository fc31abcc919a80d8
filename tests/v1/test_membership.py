# tests/v1/test_membership.py
"""Tests for joining and leaving communities."""

from fastapi import status
from sqlalchemy import func, select

from chattersphere.models import (
    Community,
    CommunityMember,
    CommunityModerator,
    MembershipRequest,
    Notification,
    NotificationType,
)


def _membership_url(community_id: str) -> str:
    return f"/api/communities/{community_id}/membership"


def _member_rows(db_session, community_id: str) -> int:
    return db_session.execute(
        select(func.count())
        .select_from(CommunityMember)
        .where(CommunityMember.community_id == community_id)
    ).scalar()


def test_join_open_community(client, community, other_user, other_auth_token, db_session) -> None:
    """Joining an open community adds the member and bumps the counter."""
    response = client.post(
        _membership_url(community.id),
        json={"action": "join"},
        headers=other_auth_token,
    )
    assert response.status_code == status.HTTP_200_OK
    data = response.json()
    assert data == {"action": "join", "isMember": True, "memberCount": 2, "status": "member"}

    db_session.refresh(community)
    assert community.member_count == 2
    assert _member_rows(db_session, community.id) == 2


def test_repeated_join_is_noop(client, community, other_auth_token, db_session) -> None:
    """An explicit join by an existing member changes nothing."""
    client.post(_membership_url(community.id), json={"action": "join"}, headers=other_auth_token)
    response = client.post(
        _membership_url(community.id),
        json={"action": "join"},
        headers=other_auth_token,
    )
    assert response.status_code == status.HTTP_200_OK
    assert response.json()["memberCount"] == 2

    db_session.refresh(community)
    assert community.member_count == 2
    assert _member_rows(db_session, community.id) == 2


def test_toggle_without_body(client, community, other_auth_token) -> None:
    """Omitting the action flips the current membership state."""
    joined = client.post(_membership_url(community.id), headers=other_auth_token)
    assert joined.json()["action"] == "join"
    assert joined.json()["isMember"] is True

    left = client.post(_membership_url(community.id), headers=other_auth_token)
    assert left.status_code == status.HTTP_200_OK
    assert left.json()["action"] == "leave"
    assert left.json()["isMember"] is False
    assert left.json()["memberCount"] == 1


def test_join_notifies_creator(
    client, community, test_user, other_user, other_auth_token, db_session
) -> None:
    """The creator hears about a new member; the joiner does not."""
    client.post(_membership_url(community.id), json={"action": "join"}, headers=other_auth_token)

    notifications = db_session.execute(select(Notification)).scalars().all()
    assert len(notifications) == 1
    assert notifications[0].recipient_id == test_user.id
    assert notifications[0].sender_id == other_user.id
    assert notifications[0].type == NotificationType.COMMUNITY_JOIN
    assert community.name in notifications[0].message


def test_leave_community(client, community, other_auth_token, db_session) -> None:
    """Leaving removes the member row and decrements the counter."""
    client.post(_membership_url(community.id), json={"action": "join"}, headers=other_auth_token)
    response = client.post(
        _membership_url(community.id),
        json={"action": "leave"},
        headers=other_auth_token,
    )
    assert response.status_code == status.HTTP_200_OK
    assert response.json()["isMember"] is False
    assert response.json()["memberCount"] == 1

    db_session.refresh(community)
    assert community.member_count == 1


def test_leave_when_not_member_is_noop(client, community, other_auth_token, db_session) -> None:
    """Leaving a community one never joined keeps the counter intact."""
    response = client.post(
        _membership_url(community.id),
        json={"action": "leave"},
        headers=other_auth_token,
    )
    assert response.status_code == status.HTTP_200_OK
    assert response.json()["memberCount"] == 1

    db_session.refresh(community)
    assert community.member_count == 1


def test_moderator_leaving_loses_role(
    client, community, other_user, other_auth_token, auth_token, db_session
) -> None:
    """A moderator who leaves is neither member nor moderator afterwards."""
    client.post(_membership_url(community.id), json={"action": "join"}, headers=other_auth_token)
    promoted = client.put(
        f"/api/communities/{community.id}/moderators/{other_user.id}",
        headers=auth_token,
    )
    assert promoted.status_code == status.HTTP_200_OK
    assert promoted.json() == {"userId": other_user.id, "isModerator": True}

    client.post(_membership_url(community.id), json={"action": "leave"}, headers=other_auth_token)

    assert db_session.get(CommunityMember, (community.id, other_user.id)) is None
    assert db_session.get(CommunityModerator, (community.id, other_user.id)) is None

    view = client.get(f"/api/communities/{community.id}", headers=other_auth_token).json()
    assert view["community"]["isMember"] is False
    assert view["community"]["isModerator"] is False


def test_creator_cannot_leave(client, community, auth_token, db_session) -> None:
    """The creator is refused and stays a member."""
    response = client.post(
        _membership_url(community.id),
        json={"action": "leave"},
        headers=auth_token,
    )
    assert response.status_code == status.HTTP_403_FORBIDDEN
    assert response.json() == {"detail": "Creator cannot leave", "code": "FORBIDDEN"}

    db_session.refresh(community)
    assert community.member_count == 1


def test_invalid_action(client, community, other_auth_token) -> None:
    """Unknown actions are rejected with 400."""
    response = client.post(
        _membership_url(community.id),
        json={"action": "subscribe"},
        headers=other_auth_token,
    )
    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert response.json()["detail"] == "Invalid action"


def test_membership_requires_session(client, community) -> None:
    """Anonymous callers cannot change membership."""
    response = client.post(_membership_url(community.id), json={"action": "join"})
    assert response.status_code == status.HTTP_401_UNAUTHORIZED


def test_membership_unknown_community(client, other_auth_token) -> None:
    """A missing community yields 404."""
    response = client.post(
        _membership_url("doesnotexist"),
        json={"action": "join"},
        headers=other_auth_token,
    )
    assert response.status_code == status.HTTP_404_NOT_FOUND
    assert response.json()["detail"] == "Community not found"


def test_join_gated_community_creates_one_request(
    client, gated_community, other_user, other_auth_token, db_session
) -> None:
    """Approval-gated joins record a single pending request and no membership."""
    for _ in range(2):
        response = client.post(
            _membership_url(gated_community.id),
            json={"action": "join"},
            headers=other_auth_token,
        )
        assert response.status_code == status.HTTP_200_OK
        assert response.json() == {
            "action": "request",
            "isMember": False,
            "memberCount": 1,
            "status": "pending",
        }

    requests = db_session.execute(
        select(MembershipRequest).where(MembershipRequest.community_id == gated_community.id)
    ).scalars().all()
    assert [r.user_id for r in requests] == [other_user.id]
    assert db_session.get(CommunityMember, (gated_community.id, other_user.id)) is None

    view = client.get(f"/api/communities/{gated_community.id}", headers=other_auth_token)
    assert view.json()["community"]["membershipStatus"] == "pending"


def test_gated_request_notifies_reviewers_once(
    client, gated_community, test_user, other_user, other_auth_token, db_session
) -> None:
    """Only the first request notifies, and never the requester."""
    for _ in range(2):
        client.post(
            _membership_url(gated_community.id),
            json={"action": "join"},
            headers=other_auth_token,
        )

    notifications = db_session.execute(select(Notification)).scalars().all()
    assert len(notifications) == 1
    assert notifications[0].recipient_id == test_user.id
    assert notifications[0].type == NotificationType.MEMBERSHIP_REQUEST


def test_leave_withdraws_pending_request(
    client, gated_community, other_user, other_auth_token, db_session
) -> None:
    """Leaving while a request is pending withdraws it."""
    client.post(
        _membership_url(gated_community.id),
        json={"action": "join"},
        headers=other_auth_token,
    )
    response = client.post(
        _membership_url(gated_community.id),
        json={"action": "leave"},
        headers=other_auth_token,
    )
    assert response.status_code == status.HTTP_200_OK
    assert response.json()["isMember"] is False

    remaining = db_session.execute(
        select(func.count()).select_from(MembershipRequest)
    ).scalar()
    assert remaining == 0


def test_empty_action_toggles(client, community, other_auth_token) -> None:
    """An empty action behaves like an omitted one."""
    joined = client.post(
        _membership_url(community.id), json={"action": ""}, headers=other_auth_token
    )
    assert joined.status_code == status.HTTP_200_OK
    assert joined.json()["action"] == "join"

    left = client.post(
        _membership_url(community.id), json={"action": ""}, headers=other_auth_token
    )
    assert left.json()["action"] == "leave"
    assert left.json()["memberCount"] == 1


def test_join_and_leave_community_without_members(
    client, test_user, other_auth_token, db_session
) -> None:
    """A community with no member rows counts up to one and back to zero."""
    community = Community(
        name="Test Community",
        slug="test-community",
        description="Test community description",
        creator_id=test_user.id,
        member_count=0,
    )
    db_session.add(community)
    db_session.commit()

    joined = client.post(
        _membership_url(community.id), json={"action": "join"}, headers=other_auth_token
    )
    assert joined.json() == {
        "action": "join",
        "isMember": True,
        "memberCount": 1,
        "status": "member",
    }
    assert client.get("/api/communities/slug/test-community").json()["memberCount"] == 1

    left = client.post(
        _membership_url(community.id), json={"action": "leave"}, headers=other_auth_token
    )
    assert left.json() == {
        "action": "leave",
        "isMember": False,
        "memberCount": 0,
        "status": "none",
    }
    db_session.refresh(community)
    assert community.member_count == 0
    assert _member_rows(db_session, community.id) == 0
