"""Session token and webhook signature helpers for the identity provider."""
from __future__ import annotations

from collections.abc import Mapping
from datetime import UTC, datetime, timedelta
from typing import Any

from jose import JWTError, jwt
from svix.webhooks import Webhook, WebhookVerificationError

from chattersphere.core.settings import settings


class InvalidSessionError(Exception):
    """Raised when a bearer session token cannot be resolved to a subject."""


class InvalidWebhookSignatureError(Exception):
    """Raised when a webhook delivery fails signature or freshness checks."""


def create_session_token(external_id: str, expires_minutes: int | None = None) -> str:
    """Issue a session token for ``external_id`` the way the identity provider does.

    Used by tooling and tests; production sessions come from the provider.
    """
    expire = datetime.now(UTC) + timedelta(
        minutes=expires_minutes or settings.access_token_expire_minutes
    )
    claims: dict[str, Any] = {"sub": external_id, "exp": expire, "iat": datetime.now(UTC)}
    if settings.identity_jwt_issuer:
        claims["iss"] = settings.identity_jwt_issuer
    if settings.identity_jwt_audience:
        claims["aud"] = settings.identity_jwt_audience
    return jwt.encode(
        claims,
        settings.identity_jwt_secret,
        algorithm=settings.identity_jwt_algorithm,
    )


def decode_session_token(token: str) -> str:
    """Validate a bearer session token and return its subject.

    Raises:
        InvalidSessionError: If the signature, expiry, issuer or audience is
            wrong, or the token carries no subject.
    """
    options = {"verify_aud": settings.identity_jwt_audience is not None}
    try:
        payload = jwt.decode(
            token,
            settings.identity_jwt_secret,
            algorithms=[settings.identity_jwt_algorithm],
            audience=settings.identity_jwt_audience,
            issuer=settings.identity_jwt_issuer,
            options=options,
        )
    except JWTError as err:
        raise InvalidSessionError("Could not validate credentials") from err

    subject = payload.get("sub")
    if not subject or not isinstance(subject, str):
        raise InvalidSessionError("Could not validate credentials")
    return subject


def verify_webhook(secret: str, body: bytes, headers: Mapping[str, str]) -> Any:
    """Verify a signed identity-provider delivery and return its decoded payload.

    ``secret`` is the provider's ``whsec_`` signing secret. Either the
    ``svix-*`` or the ``webhook-*`` header set is accepted, and a signature
    header may list several signatures during key rotation.

    Raises:
        ValueError: If ``secret`` is not a valid signing secret.
        InvalidWebhookSignatureError: On a stale timestamp, a malformed
            signature header or no matching signature.
    """
    webhook = Webhook(secret)
    try:
        return webhook.verify(body, dict(headers))
    except WebhookVerificationError as err:
        raise InvalidWebhookSignatureError(str(err)) from err
    except ValueError as err:
        raise InvalidWebhookSignatureError("Malformed webhook delivery") from err
