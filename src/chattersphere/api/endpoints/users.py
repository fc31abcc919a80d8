"""User profile and identity-provider webhook endpoints."""

from __future__ import annotations

import logging
from collections.abc import Mapping

from fastapi import APIRouter, HTTPException, Request, Response, status

from chattersphere.api.dependencies import CurrentUserDep, SessionDep
from chattersphere.core.errors import InternalError
from chattersphere.core.security import InvalidWebhookSignatureError, verify_webhook
from chattersphere.core.settings import settings
from chattersphere.db.time import isoformat_utc
from chattersphere.schemas.user import UserProfile, WebhookResult
from chattersphere.services.users import delete_by_external_id, upsert_from_identity

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/users", tags=["users"])
webhooks_router = APIRouter(prefix="/webhooks", tags=["webhooks"])


@router.get("/me", response_model=UserProfile)
async def get_my_profile(current_user: CurrentUserDep) -> UserProfile:
    """Return the caller's own profile."""
    return UserProfile(
        id=current_user.id,
        external_id=current_user.external_id,
        username=current_user.username,
        name=current_user.name,
        email=current_user.email,
        image=current_user.image,
        created_at=isoformat_utc(current_user.created_at),
    )


@webhooks_router.post("/identity", response_model=WebhookResult)
async def identity_webhook(
    request: Request,
    response: Response,
    db: SessionDep,
) -> WebhookResult:
    """Keep local users in sync with the identity provider.

    The raw body is verified before it is parsed. Deliveries carry either the
    ``svix-*`` or the ``webhook-*`` header set.
    """
    headers = request.headers
    delivery_id = headers.get("svix-id") or headers.get("webhook-id")
    if not _has_signature_headers(headers):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Missing webhook headers",
        )

    secret = settings.identity_webhook_secret
    if not secret:
        raise InternalError("Webhook secret is not configured")

    body = await request.body()
    try:
        event = verify_webhook(secret, body, headers)
    except InvalidWebhookSignatureError as err:
        logger.warning("Rejected identity webhook %s: %s", delivery_id, err)
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid webhook signature",
        ) from err
    except ValueError as err:
        raise InternalError("Webhook secret is not valid") from err

    if not isinstance(event, dict):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid webhook payload",
        )

    event_type = event.get("type")
    data = event.get("data")
    if not isinstance(data, dict):
        data = {}

    if event_type in ("user.created", "user.updated"):
        _user, created = upsert_from_identity(db, data)
        if created:
            response.status_code = status.HTTP_201_CREATED
            return WebhookResult(operation="created")
        return WebhookResult(operation="updated")

    if event_type == "user.deleted":
        external_id = data.get("id")
        if not external_id:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Missing user id",
            )
        delete_by_external_id(db, str(external_id))
        return WebhookResult(operation="deleted")

    logger.info("Ignoring identity webhook event %s", event_type)
    return WebhookResult(operation="ignored")


def _has_signature_headers(headers: Mapping[str, str]) -> bool:
    for prefix in ("svix", "webhook"):
        if all(headers.get(f"{prefix}-{part}") for part in ("id", "timestamp", "signature")):
            return True
    return False
