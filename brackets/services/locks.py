"""Per-tournament serialization for bracket writes."""
from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from brackets.models import Match, Tournament


class _LockEntry:
    __slots__ = ("lock", "users")

    def __init__(self) -> None:
        self.lock = asyncio.Lock()
        self.users = 0


class TournamentLocks:
    """One asyncio.Lock per tournament id for this process.

    Row locks (SELECT ... FOR UPDATE) cover other processes on databases that
    support them; SQLite ignores them, so in-process writers also queue here.
    An entry lives only while some task holds or waits on it.
    """

    def __init__(self) -> None:
        self._locks: Dict[int, _LockEntry] = {}

    @asynccontextmanager
    async def hold(self, tournament_id: int) -> AsyncIterator[None]:
        entry = self._locks.get(tournament_id)
        if entry is None:
            entry = self._locks[tournament_id] = _LockEntry()
        entry.users += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.users -= 1
            if not entry.users and self._locks.get(tournament_id) is entry:
                del self._locks[tournament_id]


tournament_locks = TournamentLocks()


async def lock_tournament(session: AsyncSession, tournament_id: int) -> Optional[Tournament]:
    """Load the tournament row with a row lock held until the transaction ends."""
    result = await session.execute(
        select(Tournament)
        .where(Tournament.id == tournament_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def lock_match(session: AsyncSession, match_id: int) -> Optional[Match]:
    """Load a match row with a row lock, refreshing any stale identity-map copy.

    Pending changes are flushed first so the refresh cannot discard them.
    """
    await session.flush()
    result = await session.execute(
        select(Match)
        .where(Match.id == match_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()
