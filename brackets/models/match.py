"""Tournament match model."""
from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from brackets.models.base import Base

WINNERS = "winners"
LOSERS = "losers"
FINALS = "finals"


class Match(Base):
    """Single match in a tournament bracket.

    next_match_id / loser_next_match_id point forward to the match the winner
    (or, in double elimination, the loser) is routed into; the *_slot columns
    hold the slot (1 or 2) assigned when the bracket was built.
    """

    __tablename__ = "tournament_matches"
    __table_args__ = (
        UniqueConstraint("tournament_id", "bracket_section", "round", "match_number", name="uq_match_position"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    tournament_id: Mapped[int] = mapped_column(ForeignKey("tournaments.id"), nullable=False, index=True)
    round: Mapped[int] = mapped_column(Integer, nullable=False)
    match_number: Mapped[int] = mapped_column(Integer, nullable=False)
    bracket_section: Mapped[str] = mapped_column(String(16), nullable=False, default=WINNERS)
    player1_id: Mapped[Optional[int]] = mapped_column(ForeignKey("tournament_participants.id"), nullable=True)
    player2_id: Mapped[Optional[int]] = mapped_column(ForeignKey("tournament_participants.id"), nullable=True)
    winner_id: Mapped[Optional[int]] = mapped_column(ForeignKey("tournament_participants.id"), nullable=True)
    player1_score: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    player2_score: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    is_bye_match: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    next_match_id: Mapped[Optional[int]] = mapped_column(ForeignKey("tournament_matches.id"), nullable=True)
    next_match_slot: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    loser_next_match_id: Mapped[Optional[int]] = mapped_column(ForeignKey("tournament_matches.id"), nullable=True)
    loser_next_match_slot: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    tournament = relationship("Tournament", back_populates="matches")

    def players(self) -> tuple[Optional[int], Optional[int]]:
        return self.player1_id, self.player2_id

    def slot_player(self, slot: int) -> Optional[int]:
        return self.player1_id if slot == 1 else self.player2_id

    def set_slot_player(self, slot: int, participant_id: Optional[int]) -> None:
        if slot == 1:
            self.player1_id = participant_id
        else:
            self.player2_id = participant_id

    def loser_id(self) -> Optional[int]:
        """The participant who lost, once a winner is set and both players are known."""
        if self.winner_id is None or self.player1_id is None or self.player2_id is None:
            return None
        return self.player2_id if self.winner_id == self.player1_id else self.player1_id

    def label(self) -> str:
        return f"{self.bracket_section[0].upper()}R{self.round}-M{self.match_number}"
