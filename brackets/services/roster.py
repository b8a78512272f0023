"""Reads from the roster side of the platform: participants and tournament status."""
from __future__ import annotations

from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from brackets.models import Participant, Tournament
from brackets.services.seeding import Entrant


async def get_participants(session: AsyncSession, tournament_id: int) -> List[Entrant]:
    """Participants ordered by seed (unseeded last), then signup order."""
    result = await session.execute(
        select(Participant)
        .where(Participant.tournament_id == tournament_id)
        .order_by(Participant.seed.is_(None), Participant.seed, Participant.id)
    )
    return [
        Entrant(id=p.id, display_name=p.display_name, seed=p.seed)
        for p in result.scalars().all()
    ]


async def get_tournament_status(session: AsyncSession, tournament_id: int) -> Optional[str]:
    t = await session.get(Tournament, tournament_id)
    return t.status if t else None


async def get_participant_names(session: AsyncSession, tournament_id: int) -> dict[int, str]:
    result = await session.execute(
        select(Participant.id, Participant.display_name).where(
            Participant.tournament_id == tournament_id
        )
    )
    return {pid: name for pid, name in result.all()}
