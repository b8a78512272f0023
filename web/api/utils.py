"""Shared API utilities."""
import logging

from fastapi import HTTPException

from brackets.services.errors import (
    AlreadyGeneratedError,
    BracketError,
    BracketPersistenceError,
    NotFoundError,
    SlotCollisionError,
)

logger = logging.getLogger("brackets.api")


def bracket_http_error(e: BracketError) -> HTTPException:
    """Map a bracket service failure to the HTTP error the caller sees."""
    if isinstance(e, NotFoundError):
        return HTTPException(404, str(e))
    if isinstance(e, (SlotCollisionError, AlreadyGeneratedError)):
        return HTTPException(409, str(e))
    if isinstance(e, BracketPersistenceError):
        logger.exception("Bracket persistence failure: %s", e)
        return HTTPException(500, str(e))
    return HTTPException(400, str(e))
