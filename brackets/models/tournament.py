"""Tournament model."""
from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from brackets.models.base import Base

SINGLE_ELIM = "single_elim"
DOUBLE_ELIM = "double_elim"
FORMATS = (SINGLE_ELIM, DOUBLE_ELIM)

STATUS_REGISTRATION_OPEN = "registration_open"
STATUS_REGISTRATION_CLOSED = "registration_closed"
STATUS_CHECK_IN = "check_in"
STATUS_IN_PROGRESS = "in_progress"
STATUS_COMPLETED = "completed"
STATUS_CANCELLED = "cancelled"
STATUSES = (
    STATUS_REGISTRATION_OPEN,
    STATUS_REGISTRATION_CLOSED,
    STATUS_CHECK_IN,
    STATUS_IN_PROGRESS,
    STATUS_COMPLETED,
    STATUS_CANCELLED,
)


class Tournament(Base):
    """Tournament row. Metadata is owned by the platform; the engine reads format and status."""

    __tablename__ = "tournaments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    format: Mapped[str] = mapped_column(String(16), nullable=False, default=SINGLE_ELIM)  # single_elim, double_elim
    status: Mapped[str] = mapped_column(String(32), default=STATUS_REGISTRATION_OPEN)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    participants = relationship(
        "Participant", back_populates="tournament", cascade="all, delete-orphan"
    )
    matches = relationship(
        "Match", back_populates="tournament", cascade="all, delete-orphan"
    )
