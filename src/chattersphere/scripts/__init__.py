"""Operational scripts for ChatterSphere."""
