"""Error types raised by the StakeMap core.

Nothing here is fatal: every failure degrades to a visible, recoverable page
state.  The page controller maps each kind to its surface:

    DataFetchError   → page-level error state, nothing partial is rendered
    MutationError    → transient alert; optimistic local state is kept
    ValidationError  → inline message; rejected before any network call
"""

from __future__ import annotations

from typing import Optional


class StakeMapError(Exception):
    """Base class for all StakeMap errors."""


class StoreError(StakeMapError):
    """A call to the external data store failed."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class DataFetchError(StakeMapError):
    """Loading the map dataset failed."""


class MutationError(StakeMapError):
    """A write (position, relationship, archive) failed."""


class ValidationError(StakeMapError):
    """User input was rejected locally."""


class GraphHandleDestroyed(StakeMapError):
    """A render handle was used after it was torn down."""
