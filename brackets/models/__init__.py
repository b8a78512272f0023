"""Database models."""
from brackets.models.base import Base, get_async_session, init_db
from brackets.models.tournament import Tournament
from brackets.models.participant import Participant
from brackets.models.match import Match

__all__ = [
    "Base",
    "Tournament",
    "Participant",
    "Match",
    "get_async_session",
    "init_db",
]
