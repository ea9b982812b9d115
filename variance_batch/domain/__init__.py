"""Frozen DTOs for batch reconciliation."""
