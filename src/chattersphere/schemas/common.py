"""Shared Pydantic schemas for common API elements."""
from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class ApiModel(BaseModel):
    """Base schema whose JSON field names are camelCase."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class UserSummary(ApiModel):
    """Public profile fields of a user."""

    id: str
    username: str
    name: str
    image: str | None = None


class Pagination(ApiModel):
    """Page metadata returned by list endpoints."""

    page: int = Field(..., ge=1)
    limit: int = Field(..., ge=1)
    total: int = Field(..., ge=0)
    has_more: bool


def page_offset(page: int, limit: int) -> int:
    """Return the row offset for a 1-based ``page`` of ``limit`` rows."""
    return (max(page, 1) - 1) * limit
