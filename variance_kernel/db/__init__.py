"""Persistence helpers: declarative base, engine/session management, ORM models."""
