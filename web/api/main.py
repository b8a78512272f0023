"""FastAPI bracket API - serves bracket structure, previews and audits."""
import logging
import random
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.ext.asyncio import AsyncSession

import config
from brackets.models import Tournament, get_async_session, init_db
from brackets.models.tournament import FORMATS
from brackets.services.errors import BracketError

from web.api.routes import router as api_router
from web.api.utils import bracket_http_error

logging.basicConfig(
    level=getattr(logging, config.LOG_LEVEL, logging.INFO),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    await init_db()
    yield


app = FastAPI(title="Bracket Engine API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.include_router(api_router)


@app.get("/api/tournaments/{tournament_id}/bracket")
async def get_bracket(tournament_id: int, session: AsyncSession = Depends(get_async_session)):
    """Get bracket data for a tournament, grouped by section and round."""
    from brackets.services.structure import get_bracket_structure

    t = await session.get(Tournament, tournament_id)
    if not t:
        raise HTTPException(404, "Tournament not found")
    rounds = await get_bracket_structure(session, tournament_id)
    return {
        "tournament": {"id": t.id, "name": t.name, "format": t.format, "status": t.status},
        "rounds": rounds,
    }


@app.get("/api/tournaments/{tournament_id}/bracket/preview")
async def get_bracket_preview(
    tournament_id: int,
    bracket_type: Optional[str] = None,
    rng_seed: Optional[int] = None,
    session: AsyncSession = Depends(get_async_session),
):
    """Preview bracket structure before generating. Uses current participants; nothing is stored."""
    from brackets.services.roster import get_participants
    from brackets.services.structure import preview_bracket

    t = await session.get(Tournament, tournament_id)
    if not t:
        raise HTTPException(404, "Tournament not found")
    bracket_format = bracket_type or t.format
    if bracket_format not in FORMATS:
        raise HTTPException(400, f"bracket_type must be one of {', '.join(FORMATS)}")
    entrants = await get_participants(session, tournament_id)
    rng = random.Random(rng_seed if rng_seed is not None else config.BRACKET_RNG_SEED)
    try:
        preview = preview_bracket(entrants, bracket_format, rng)
    except BracketError as e:
        raise bracket_http_error(e)
    preview["tournament"] = {"id": t.id, "name": t.name, "format": t.format}
    return preview


@app.get("/api/tournaments/{tournament_id}/bracket/verify")
async def verify_bracket_route(tournament_id: int, session: AsyncSession = Depends(get_async_session)):
    """Audit the stored bracket. An empty issue list means every pointer and slot is consistent."""
    from brackets.services.roster import get_tournament_status
    from brackets.services.structure import verify_bracket

    status = await get_tournament_status(session, tournament_id)
    if status is None:
        raise HTTPException(404, "Tournament not found")
    issues = await verify_bracket(session, tournament_id)
    if issues:
        logging.getLogger("brackets.api").warning(
            "Tournament %s bracket has %d issue(s)", tournament_id, len(issues)
        )
    return {"ok": not issues, "status": status, "issues": issues}


@app.get("/api/health")
async def health():
    return {"status": "ok"}
