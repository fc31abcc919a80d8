"""Pydantic schemas exposed at the HTTP boundary."""
