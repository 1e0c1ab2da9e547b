"""Persistence helpers on top of the ORM models."""
