"""API routes for tournament setup, bracket generation and match results."""
from __future__ import annotations

import logging
import random
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, field_validator
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from brackets.models import Participant, Tournament, get_async_session
from brackets.models.tournament import FORMATS, SINGLE_ELIM, STATUS_IN_PROGRESS, STATUSES
from brackets.services.errors import BracketError
from web.api.utils import bracket_http_error
from web.auth import TokenUser, require_staff_user

logger = logging.getLogger("brackets.api")

router = APIRouter(prefix="/api", tags=["tournaments"])


# --- Pydantic schemas ---


class TournamentCreate(BaseModel):
    name: str
    format: str = SINGLE_ELIM  # single_elim or double_elim

    @field_validator("format")
    @classmethod
    def check_format(cls, v):
        if v not in FORMATS:
            raise ValueError(f"format must be one of {', '.join(FORMATS)}")
        return v


class ParticipantCreate(BaseModel):
    display_name: str
    seed: Optional[int] = None


class SeedsUpdate(BaseModel):
    seeds: dict[int, Optional[int]]  # participant_id -> seed (null clears it)


class StatusUpdate(BaseModel):
    status: str

    @field_validator("status")
    @classmethod
    def check_status(cls, v):
        if v not in STATUSES:
            raise ValueError(f"status must be one of {', '.join(STATUSES)}")
        return v


class GenerateBracketRequest(BaseModel):
    rng_seed: Optional[int] = None  # Fixed shuffle seed; falls back to BRACKET_RNG_SEED


class MatchResultUpdate(BaseModel):
    player1_score: Optional[int] = None
    player2_score: Optional[int] = None
    winner_id: Optional[int] = None


def _tournament_dict(t: Tournament) -> dict:
    return {"id": t.id, "name": t.name, "format": t.format, "status": t.status}


def _participant_dict(p: Participant) -> dict:
    return {"id": p.id, "tournament_id": p.tournament_id, "display_name": p.display_name, "seed": p.seed}


def _rng(body: Optional[GenerateBracketRequest]) -> Optional[random.Random]:
    if body is None or body.rng_seed is None:
        return None
    return random.Random(body.rng_seed)


async def _get_tournament(session: AsyncSession, tournament_id: int) -> Tournament:
    t = await session.get(Tournament, tournament_id)
    if not t:
        raise HTTPException(404, "Tournament not found")
    return t


async def _ensure_no_bracket(session: AsyncSession, tournament_id: int) -> None:
    from brackets.services.writer import count_matches

    if await count_matches(session, tournament_id):
        raise HTTPException(409, "Tournament brackets have already been generated")


# --- Tournaments ---


@router.get("/tournaments")
async def list_tournaments(session: AsyncSession = Depends(get_async_session)):
    """List tournaments, newest first."""
    result = await session.execute(select(Tournament).order_by(Tournament.id.desc()))
    return [_tournament_dict(t) for t in result.scalars().all()]


@router.post("/tournaments")
async def create_tournament(
    body: TournamentCreate,
    user: TokenUser = Depends(require_staff_user),
    session: AsyncSession = Depends(get_async_session),
):
    """Create a tournament. Registration starts open."""
    t = Tournament(name=body.name.strip() or body.name, format=body.format)
    session.add(t)
    await session.commit()
    await session.refresh(t)
    logger.info("Tournament %s (%s) created by %s", t.id, t.name, user.username)
    return _tournament_dict(t)


@router.put("/tournaments/{tournament_id}/status")
async def update_status(
    tournament_id: int,
    body: StatusUpdate,
    user: TokenUser = Depends(require_staff_user),
    session: AsyncSession = Depends(get_async_session),
):
    """Change tournament status. Starting a tournament that has no bracket yet generates it."""
    from brackets.services.locks import tournament_locks
    from brackets.services.writer import count_matches, generate_bracket

    t = await _get_tournament(session, tournament_id)
    if body.status == STATUS_IN_PROGRESS and not await count_matches(session, tournament_id):
        try:
            result = await generate_bracket(session, tournament_id)
        except BracketError as e:
            raise bracket_http_error(e)
        return {"ok": True, "status": STATUS_IN_PROGRESS, "bracket_generated": True, "matches": len(result.matches)}

    async with tournament_locks.hold(tournament_id):
        await session.refresh(t)
        old_status = t.status
        t.status = body.status
        await session.commit()
    logger.info("Tournament %s status %s -> %s", tournament_id, old_status, body.status)
    return {"ok": True, "status": t.status, "bracket_generated": False}


# --- Participants ---


@router.get("/tournaments/{tournament_id}/participants")
async def list_participants(tournament_id: int, session: AsyncSession = Depends(get_async_session)):
    """List participants in seed order (unseeded last)."""
    await _get_tournament(session, tournament_id)
    result = await session.execute(
        select(Participant)
        .where(Participant.tournament_id == tournament_id)
        .order_by(Participant.seed.is_(None), Participant.seed, Participant.id)
    )
    return [_participant_dict(p) for p in result.scalars().all()]


@router.post("/tournaments/{tournament_id}/participants")
async def add_participant(
    tournament_id: int,
    body: ParticipantCreate,
    user: TokenUser = Depends(require_staff_user),
    session: AsyncSession = Depends(get_async_session),
):
    """Register a participant. The roster is frozen once brackets exist."""
    await _get_tournament(session, tournament_id)
    await _ensure_no_bracket(session, tournament_id)
    name = body.display_name.strip()
    if not name:
        raise HTTPException(400, "display_name cannot be empty")
    if body.seed is not None and body.seed < 1:
        raise HTTPException(400, "Seeds start at 1")
    p = Participant(tournament_id=tournament_id, display_name=name, seed=body.seed)
    session.add(p)
    await session.commit()
    await session.refresh(p)
    return _participant_dict(p)


@router.put("/tournaments/{tournament_id}/seeds")
async def update_seeds(
    tournament_id: int,
    body: SeedsUpdate,
    user: TokenUser = Depends(require_staff_user),
    session: AsyncSession = Depends(get_async_session),
):
    """Set or clear seeds by participant id. Rejected once brackets exist."""
    await _get_tournament(session, tournament_id)
    await _ensure_no_bracket(session, tournament_id)
    result = await session.execute(
        select(Participant).where(Participant.tournament_id == tournament_id)
    )
    participants = {p.id: p for p in result.scalars().all()}
    for pid, seed in body.seeds.items():
        if pid not in participants:
            raise HTTPException(404, f"Participant {pid} not found in this tournament")
        if seed is not None and seed < 1:
            raise HTTPException(400, "Seeds start at 1")
        participants[pid].seed = seed
    await session.commit()
    return {"ok": True, "updated": len(body.seeds)}


# --- Bracket generation ---


@router.post("/tournaments/{tournament_id}/bracket/generate")
async def generate_bracket(
    tournament_id: int,
    body: Optional[GenerateBracketRequest] = None,
    user: TokenUser = Depends(require_staff_user),
    session: AsyncSession = Depends(get_async_session),
):
    """Generate the bracket for a tournament whose registration is closed."""
    from brackets.services.writer import generate_bracket as generate

    try:
        result = await generate(session, tournament_id, rng=_rng(body))
    except BracketError as e:
        raise bracket_http_error(e)
    return {
        "ok": True,
        "format": result.format,
        "total_rounds": result.total_rounds,
        "bracket_size": result.bracket_size,
        "number_of_byes": result.number_of_byes,
        "matches": len(result.matches),
    }


@router.post("/tournaments/{tournament_id}/bracket/regenerate")
async def regenerate_bracket(
    tournament_id: int,
    body: Optional[GenerateBracketRequest] = None,
    user: TokenUser = Depends(require_staff_user),
    session: AsyncSession = Depends(get_async_session),
):
    """Delete existing matches and generate a new bracket from current participants."""
    from brackets.services.writer import generate_bracket as generate

    try:
        result = await generate(session, tournament_id, rng=_rng(body), regenerate=True)
    except BracketError as e:
        raise bracket_http_error(e)
    logger.info("Bracket for tournament %s regenerated by %s", tournament_id, user.username)
    return {
        "ok": True,
        "format": result.format,
        "total_rounds": result.total_rounds,
        "bracket_size": result.bracket_size,
        "number_of_byes": result.number_of_byes,
        "matches": len(result.matches),
    }


# --- Match results ---


@router.put("/tournaments/{tournament_id}/matches/{match_id}")
async def report_match_result(
    tournament_id: int,
    match_id: int,
    body: MatchResultUpdate,
    user: TokenUser = Depends(require_staff_user),
    session: AsyncSession = Depends(get_async_session),
):
    """Record scores and winner. The winner advances (and the loser drops down) in the same transaction."""
    from brackets.services.results import report_result
    from brackets.services.structure import match_to_dict

    try:
        outcome = await report_result(
            session, tournament_id, match_id,
            body.player1_score, body.player2_score, body.winner_id,
        )
    except BracketError as e:
        raise bracket_http_error(e)
    return {
        "ok": True,
        "match": match_to_dict(outcome.match),
        "advanced": outcome.advanced,
        "next_match_id": outcome.next_match_id,
        "next_match_slot": outcome.next_match_slot,
        "loser_next_match_id": outcome.loser_next_match_id if outcome.loser_routed else None,
        "champion_id": outcome.champion_id,
    }


@router.post("/tournaments/{tournament_id}/matches/{match_id}/clear")
async def clear_match_result(
    tournament_id: int,
    match_id: int,
    user: TokenUser = Depends(require_staff_user),
    session: AsyncSession = Depends(get_async_session),
):
    """Undo a result that was reported incorrectly. Later matches must still be undecided."""
    from brackets.services.results import clear_result
    from brackets.services.structure import match_to_dict

    try:
        match = await clear_result(session, tournament_id, match_id)
    except BracketError as e:
        raise bracket_http_error(e)
    logger.info("Match %s result cleared by %s", match_id, user.username)
    return {"ok": True, "match": match_to_dict(match)}
