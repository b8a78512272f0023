"""Pytest configuration and fixtures for service and API tests."""
import os

# Set test env BEFORE any imports that use config
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["JWT_SECRET"] = "test-secret-for-bracket-engine-suite"
os.environ["STAFF_ROLES"] = "staff,admin"
os.environ.pop("BRACKET_RNG_SEED", None)

import random

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from brackets.models import Base, Match, Participant, Tournament, get_async_session
from brackets.models.tournament import SINGLE_ELIM, STATUS_REGISTRATION_CLOSED
from brackets.services import locks
from web.api.main import app
from web.auth import create_access_token


@pytest.fixture(autouse=True)
def _fresh_locks(monkeypatch):
    """asyncio locks bind to the loop that first waits on them; each test has its own loop."""
    monkeypatch.setattr(locks.tournament_locks, "_locks", {})


@pytest.fixture
async def engine(tmp_path):
    """One file-backed SQLite database per test."""
    eng = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'brackets.db'}")
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest.fixture
async def session(session_factory):
    async with session_factory() as s:
        yield s


@pytest.fixture
def rng():
    return random.Random(1234)


@pytest.fixture
def make_tournament(session_factory):
    """Create a tournament with participants; returns (tournament_id, [participant ids])."""

    async def _make(
        n: int,
        bracket_format: str = SINGLE_ELIM,
        status: str = STATUS_REGISTRATION_CLOSED,
        seeds: dict | None = None,
    ):
        seeds = seeds or {}
        async with session_factory() as s:
            t = Tournament(name=f"Cup of {n}", format=bracket_format, status=status)
            s.add(t)
            await s.flush()
            participants = [
                Participant(tournament_id=t.id, display_name=f"Player {i + 1}", seed=seeds.get(i))
                for i in range(n)
            ]
            s.add_all(participants)
            await s.commit()
            return t.id, [p.id for p in participants]

    return _make


@pytest.fixture
def fetch_matches(session_factory):
    """Read matches with a fresh session, keyed by (section, round, match_number)."""

    async def _fetch(tournament_id: int) -> dict:
        async with session_factory() as s:
            result = await s.execute(select(Match).where(Match.tournament_id == tournament_id))
            return {(m.bracket_section, m.round, m.match_number): m for m in result.scalars().all()}

    return _fetch


@pytest.fixture
async def client(session_factory):
    """Async HTTP client for testing the API, bound to the per-test database."""

    async def _session():
        async with session_factory() as s:
            yield s

    app.dependency_overrides[get_async_session] = _session
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    """Authorization headers for a staff user (tokens come from the platform's auth service)."""
    token = create_access_token("organizer", role="staff")
    return {"Authorization": f"Bearer {token}"}
