"""User-related Pydantic schemas."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from .common import ApiModel


class UserProfile(ApiModel):
    """The caller's own profile."""

    id: str
    external_id: str
    username: str
    name: str
    email: str | None = None
    image: str | None = None
    created_at: str | None = None


class IdentityEmail(BaseModel):
    """Email address entry in an identity-provider user payload."""

    id: str
    email_address: str


class IdentityUserData(BaseModel):
    """User object delivered by identity-provider webhooks (snake_case on the wire)."""

    id: str = Field(..., min_length=1)
    username: str | None = None
    first_name: str | None = None
    last_name: str | None = None
    image_url: str | None = None
    email_addresses: list[IdentityEmail] = Field(default_factory=list)
    primary_email_address_id: str | None = None

    model_config = ConfigDict(extra="ignore")


class WebhookResult(BaseModel):
    """Outcome of processing an identity webhook."""

    success: bool = True
    operation: str
