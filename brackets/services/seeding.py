"""Seeding: bracket size, bye count, and who receives the byes."""
from __future__ import annotations

import math
import random
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from brackets.services.errors import PreconditionError


@dataclass(frozen=True)
class Entrant:
    """Participant as seen by the bracket engine (read-only copy of the roster row)."""

    id: int
    display_name: str
    seed: Optional[int] = None


@dataclass
class SeedingResult:
    bracket_size: int
    number_of_byes: int
    bye_recipients: List[Entrant] = field(default_factory=list)
    round1_participants: List[Entrant] = field(default_factory=list)

    @property
    def participant_count(self) -> int:
        return len(self.bye_recipients) + len(self.round1_participants)


def next_power_of_2(n: int) -> int:
    """Round up to next power of 2."""
    p = 1
    while p < n:
        p *= 2
    return p


def total_rounds_for(bracket_size: int) -> int:
    return int(math.log2(bracket_size)) if bracket_size > 1 else 0


def order_entrants(entrants: Sequence[Entrant], rng: random.Random) -> List[Entrant]:
    """Seeded entrants first by ascending seed, then the unseeded ones in random order.

    With no seeds at all this is a uniform shuffle, so bye recipients cannot be
    predicted from signup order.
    """
    seeded = sorted((e for e in entrants if e.seed is not None), key=lambda e: (e.seed, e.id))
    unseeded = [e for e in entrants if e.seed is None]
    rng.shuffle(unseeded)
    return seeded + unseeded


def distribute_seeds(
    entrants: Sequence[Entrant], rng: Optional[random.Random] = None
) -> SeedingResult:
    """Split entrants into bye recipients and round-1 participants.

    The first number_of_byes entrants of the seeded order skip round 1.
    """
    n = len(entrants)
    if n < 2:
        raise PreconditionError(
            "Not enough participants to generate brackets (minimum 2 required)"
        )
    if len({e.id for e in entrants}) != n:
        raise PreconditionError("Participant list contains duplicates")

    ordered = order_entrants(entrants, rng or random.Random())
    size = next_power_of_2(n)
    byes = size - n
    return SeedingResult(
        bracket_size=size,
        number_of_byes=byes,
        bye_recipients=ordered[:byes],
        round1_participants=ordered[byes:],
    )
