"""Typed failures raised by the bracket services.

All of them subclass ValueError so callers that only care about "the request was
invalid" can keep catching ValueError; routes map the subclasses to status codes.
"""
from __future__ import annotations


class BracketError(ValueError):
    """Base class for bracket engine failures."""


class PreconditionError(BracketError):
    """Operation rejected before any write (wrong status, too few participants, ...)."""


class AlreadyGeneratedError(PreconditionError):
    """Tournament already has matches and regeneration was not requested."""


class NotFoundError(BracketError):
    """Tournament or match does not exist (in the requested tournament)."""


class ReferentialError(BracketError):
    """Persisted structure references something that is missing or inconsistent."""


class SlotCollisionError(ReferentialError):
    """Advancement target slot is already occupied; nothing was overwritten."""

    def __init__(self, message: str, match_id: int | None = None, target_match_id: int | None = None):
        super().__init__(message)
        self.match_id = match_id
        self.target_match_id = target_match_id


class BracketPersistenceError(BracketError):
    """Database failure while building or updating a bracket; the transaction was rolled back."""
