"""Exception types raised by the sync pipeline."""

from __future__ import annotations


class SyncError(Exception):
    """Base class for sync pipeline errors."""


class EventSourceError(SyncError):
    """Upstream indexing API failed (network, 5xx, GraphQL errors, bad payload)."""


class AuthenticationError(SyncError):
    """Credential for the indexing API is missing or was rejected."""
