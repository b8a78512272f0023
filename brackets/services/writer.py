"""Bracket generation: seeding, building, mapping and persisting in one transaction."""
from __future__ import annotations

import logging
import random
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from sqlalchemy import delete, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from brackets.models import Match
from brackets.models.tournament import (
    STATUS_IN_PROGRESS,
    STATUS_REGISTRATION_CLOSED,
)
from brackets.services.advancement import AdvancementMap, map_advancement
from brackets.services.builder import Bracket, MatchKey, build_bracket
from brackets.services.byes import auto_advance_byes
from brackets.services.errors import (
    AlreadyGeneratedError,
    BracketError,
    BracketPersistenceError,
    NotFoundError,
    PreconditionError,
    ReferentialError,
)
from brackets.services.locks import lock_tournament, tournament_locks
from brackets.services.roster import get_participants
from brackets.services.seeding import distribute_seeds
import config

logger = logging.getLogger("brackets.writer")

REGENERATE_STATUSES = (STATUS_REGISTRATION_CLOSED, STATUS_IN_PROGRESS)


@dataclass
class GenerationResult:
    tournament_id: int
    format: str
    total_rounds: int
    bracket_size: int
    number_of_byes: int
    matches: List[Match] = field(default_factory=list)


def default_rng() -> random.Random:
    return random.Random(config.BRACKET_RNG_SEED)


async def count_matches(session: AsyncSession, tournament_id: int) -> int:
    result = await session.execute(
        select(func.count(Match.id)).where(Match.tournament_id == tournament_id)
    )
    return result.scalar_one()


async def persist_bracket(
    session: AsyncSession,
    tournament_id: int,
    bracket: Bracket,
    advancement: AdvancementMap,
) -> Dict[MatchKey, Match]:
    """Write every match, then link them. Returns the rows by arena key.

    Pass 1 inserts with null pointers to learn the row ids; pass 2 fills
    next_match_id / loser_next_match_id from the advancement map.
    """
    rows: Dict[MatchKey, Match] = {}
    for m in bracket.matches():
        winner = m.winner
        row = Match(
            tournament_id=tournament_id,
            round=m.round,
            match_number=m.match_number,
            bracket_section=m.section,
            player1_id=m.player1.id if m.player1 else None,
            player2_id=m.player2.id if m.player2 else None,
            is_bye_match=m.is_bye,
            winner_id=winner.id if winner else None,
        )
        session.add(row)
        rows[m.key] = row
    await session.flush()

    for key, route in advancement.winner_routes.items():
        target = rows.get(route.target)
        if target is None:
            raise ReferentialError(f"{key.label()} advances to unknown match {route.target.label()}")
        rows[key].next_match_id = target.id
        rows[key].next_match_slot = route.slot
    for key, route in advancement.loser_routes.items():
        target = rows.get(route.target)
        if target is None:
            raise ReferentialError(f"{key.label()} routes its loser to unknown match {route.target.label()}")
        rows[key].loser_next_match_id = target.id
        rows[key].loser_next_match_slot = route.slot
    await session.flush()
    return rows


async def generate_bracket(
    session: AsyncSession,
    tournament_id: int,
    rng: Optional[random.Random] = None,
    regenerate: bool = False,
) -> GenerationResult:
    """Build and store the bracket for a tournament, then mark it in progress.

    Without regenerate, the tournament must be registration_closed with no
    matches yet. With regenerate, existing matches are deleted in the same
    transaction. Any failure rolls everything back. Status is checked on the
    row held by lock_tournament rather than through get_tournament_status.
    """
    async with tournament_locks.hold(tournament_id):
        try:
            t = await lock_tournament(session, tournament_id)
            if not t:
                raise NotFoundError("Tournament not found")

            existing = await count_matches(session, tournament_id)
            if existing and not regenerate:
                raise AlreadyGeneratedError("Tournament brackets have already been generated")
            allowed = REGENERATE_STATUSES if regenerate else (STATUS_REGISTRATION_CLOSED,)
            if t.status not in allowed:
                raise PreconditionError(
                    f"Tournament must be {' or '.join(allowed)} to generate brackets (is {t.status})"
                )

            entrants = await get_participants(session, tournament_id)
            seeding = distribute_seeds(entrants, rng or default_rng())
            bracket = build_bracket(seeding, t.format)
            advancement = map_advancement(bracket)

            if existing:
                logger.info("Clearing %d existing matches for tournament %s", existing, tournament_id)
                await session.execute(delete(Match).where(Match.tournament_id == tournament_id))

            rows = await persist_bracket(session, tournament_id, bracket, advancement)
            advanced = await auto_advance_byes(session, tournament_id)
            t.status = STATUS_IN_PROGRESS
            await session.commit()
        except BracketError:
            await session.rollback()
            raise
        except SQLAlchemyError as e:
            await session.rollback()
            logger.exception("Bracket generation failed for tournament %s", tournament_id)
            raise BracketPersistenceError(f"Failed to generate brackets: {e}") from e

    logger.info(
        "Generated %s bracket for tournament %s: %d participants, size %d, %d byes, %d matches (%d byes advanced)",
        bracket.format, tournament_id, seeding.participant_count, bracket.bracket_size,
        bracket.number_of_byes, len(rows), advanced,
    )
    return GenerationResult(
        tournament_id=tournament_id,
        format=bracket.format,
        total_rounds=bracket.total_rounds,
        bracket_size=bracket.bracket_size,
        number_of_byes=bracket.number_of_byes,
        matches=list(rows.values()),
    )
