"""Automatic advancement for bye matches, which never get a reported result."""
from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from brackets.models import Match
from brackets.services.errors import ReferentialError
from brackets.services.slots import place_participant, winner_slot_policy

logger = logging.getLogger("brackets.byes")


async def auto_advance_byes(session: AsyncSession, tournament_id: int) -> int:
    """Move the winner of every bye match into its next match. Returns how many moved.

    Goes through the same slot policy as a reported result, so a round-1 bye
    lands in its designated round-2 slot.
    """
    result = await session.execute(
        select(Match)
        .where(
            Match.tournament_id == tournament_id,
            Match.is_bye_match.is_(True),
            Match.next_match_id.is_not(None),
        )
        .order_by(Match.bracket_section, Match.round, Match.match_number)
    )
    byes = list(result.scalars().all())
    for m in byes:
        if m.winner_id is None:
            raise ReferentialError(f"Bye match {m.id} ({m.label()}) has no winner")
        target, slot = await place_participant(
            session, m, m.winner_id, m.next_match_id, m.next_match_slot, winner_slot_policy(m)
        )
        logger.debug("Bye %s: participant %s -> match %s slot %d", m.label(), m.winner_id, target.id, slot)
    await session.flush()
    return len(byes)
