"""Match result processing: record a winner and push players forward."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from brackets.models import Match, Tournament
from brackets.models.tournament import STATUS_COMPLETED, STATUS_IN_PROGRESS
from brackets.services.errors import (
    BracketError,
    BracketPersistenceError,
    NotFoundError,
    PreconditionError,
    ReferentialError,
)
from brackets.services.locks import lock_match, lock_tournament, tournament_locks
from brackets.services.slots import (
    loser_slot_policy,
    place_participant,
    winner_slot_policy,
)

logger = logging.getLogger("brackets.results")


@dataclass
class ReportOutcome:
    match: Match
    next_match_id: Optional[int]
    advanced: bool
    next_match_slot: Optional[int] = None
    loser_next_match_id: Optional[int] = None
    loser_routed: bool = False
    champion_id: Optional[int] = None


async def _load_for_update(session: AsyncSession, tournament_id: int, match_id: int) -> tuple[Tournament, Match]:
    t = await lock_tournament(session, tournament_id)
    if not t:
        raise NotFoundError("Tournament not found")
    match = await lock_match(session, match_id)
    if not match or match.tournament_id != tournament_id:
        raise NotFoundError("Match not found")
    return t, match


def _validate_report(match: Match, score1: Optional[int], score2: Optional[int], winner_id: Optional[int]) -> None:
    if match.is_bye_match:
        raise PreconditionError("Bye matches are decided automatically")
    for score in (score1, score2):
        if score is not None and score < 0:
            raise PreconditionError("Scores cannot be negative")
    if winner_id is None:
        return
    if winner_id not in (match.player1_id, match.player2_id):
        raise ReferentialError("Winner must be one of the match participants")
    if match.player1_id is None or match.player2_id is None:
        raise PreconditionError("Match is still waiting for a participant")


async def report_result(
    session: AsyncSession,
    tournament_id: int,
    match_id: int,
    player1_score: Optional[int],
    player2_score: Optional[int],
    winner_id: Optional[int],
) -> ReportOutcome:
    """Record scores and winner, then advance the winner (and route the loser).

    Scores alone (winner_id None) are stored without advancing anyone.
    Re-reporting a decided match with the same winner only updates scores; a
    different winner must go through clear_result first. Everything happens in
    one transaction: if advancement fails nothing is stored.
    """
    async with tournament_locks.hold(tournament_id):
        try:
            t, match = await _load_for_update(session, tournament_id, match_id)
            _validate_report(match, player1_score, player2_score, winner_id)

            if match.winner_id is not None:
                if winner_id != match.winner_id:
                    raise PreconditionError(
                        "Match already has a winner; clear the result before changing it"
                    )
                match.player1_score = player1_score
                match.player2_score = player2_score
                await session.commit()
                return ReportOutcome(match=match, next_match_id=match.next_match_id, advanced=False)

            match.player1_score = player1_score
            match.player2_score = player2_score
            match.winner_id = winner_id
            outcome = ReportOutcome(
                match=match,
                next_match_id=match.next_match_id,
                advanced=False,
                loser_next_match_id=match.loser_next_match_id,
            )
            if winner_id is not None:
                if match.next_match_id is not None:
                    _, slot = await place_participant(
                        session, match, winner_id, match.next_match_id,
                        match.next_match_slot, winner_slot_policy(match),
                    )
                    outcome.advanced = True
                    outcome.next_match_slot = slot
                else:
                    outcome.champion_id = winner_id
                    t.status = STATUS_COMPLETED

                loser_id = match.loser_id()
                if match.loser_next_match_id is not None and loser_id is not None:
                    await place_participant(
                        session, match, loser_id, match.loser_next_match_id,
                        match.loser_next_match_slot, loser_slot_policy(match),
                    )
                    outcome.loser_routed = True
            await session.commit()
        except BracketError:
            await session.rollback()
            raise
        except SQLAlchemyError as e:
            await session.rollback()
            logger.exception("Result report failed for match %s", match_id)
            raise BracketPersistenceError(f"Failed to update match: {e}") from e

    logger.info(
        "Match %s (%s) result %s-%s, winner %s, advanced=%s",
        match.id, match.label(), player1_score, player2_score, winner_id, outcome.advanced,
    )
    if outcome.champion_id is not None:
        logger.info("Tournament %s completed, champion %s", tournament_id, outcome.champion_id)
    return outcome


async def _withdraw(session: AsyncSession, source: Match, participant_id: int, target_id: int) -> Match:
    target = await lock_match(session, target_id)
    if target is None:
        raise ReferentialError(f"Next match {target_id} not found for match {source.id}")
    if target.winner_id is not None:
        raise PreconditionError(
            f"Match {target.id} ({target.label()}) is already decided; clear it first"
        )
    for slot in (1, 2):
        if target.slot_player(slot) == participant_id:
            target.set_slot_player(slot, None)
            target.player1_score = None
            target.player2_score = None
            return target
    raise ReferentialError(
        f"Participant {participant_id} from match {source.id} is missing from match {target.id}"
    )


async def clear_result(session: AsyncSession, tournament_id: int, match_id: int) -> Match:
    """Undo a reported result, pulling the winner (and loser) back out of later matches.

    Only possible while those later matches are undecided.
    """
    async with tournament_locks.hold(tournament_id):
        try:
            t, match = await _load_for_update(session, tournament_id, match_id)
            if match.is_bye_match:
                raise PreconditionError("Bye matches cannot be cleared")
            if match.winner_id is None:
                raise PreconditionError("Match has no result to clear")

            loser_id = match.loser_id()
            if match.next_match_id is not None:
                await _withdraw(session, match, match.winner_id, match.next_match_id)
            if match.loser_next_match_id is not None and loser_id is not None:
                await _withdraw(session, match, loser_id, match.loser_next_match_id)

            match.winner_id = None
            match.player1_score = None
            match.player2_score = None
            if t.status == STATUS_COMPLETED:
                t.status = STATUS_IN_PROGRESS
            await session.commit()
        except BracketError:
            await session.rollback()
            raise
        except SQLAlchemyError as e:
            await session.rollback()
            logger.exception("Clearing result failed for match %s", match_id)
            raise BracketPersistenceError(f"Failed to clear match: {e}") from e

    logger.info("Cleared result of match %s (%s)", match.id, match.label())
    return match
