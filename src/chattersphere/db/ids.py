"""Opaque identifier generation."""

import uuid


def new_id() -> str:
    """Return a new opaque 32-character identifier."""
    return uuid.uuid4().hex
