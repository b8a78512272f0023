"""Advancement mapping: where every match sends its winner (and loser)."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterator, NamedTuple, Tuple

from brackets.models.match import FINALS, LOSERS, WINNERS
from brackets.services.builder import LOSER, WINNER, Bracket, MatchKey
from brackets.services.errors import ReferentialError


class Route(NamedTuple):
    target: MatchKey
    slot: int


@dataclass
class AdvancementMap:
    winner_routes: Dict[MatchKey, Route] = field(default_factory=dict)
    loser_routes: Dict[MatchKey, Route] = field(default_factory=dict)

    def all_routes(self) -> Iterator[Tuple[str, MatchKey, Route]]:
        for key, route in self.winner_routes.items():
            yield WINNER, key, route
        for key, route in self.loser_routes.items():
            yield LOSER, key, route


def formula_route(key: MatchKey) -> Route:
    """Standard doubling: match m of round r feeds match ceil(m/2) of round r+1."""
    return Route(
        MatchKey(key.section, key.round + 1, (key.match_number + 1) // 2),
        1 if key.match_number % 2 == 1 else 2,
    )


def _add(routes: Dict[MatchKey, Route], key: MatchKey, route: Route) -> None:
    if key in routes:
        raise ReferentialError(f"{key.label()} already advances to {routes[key].target.label()}")
    routes[key] = route


def map_advancement(bracket: Bracket) -> AdvancementMap:
    """Compute winner/loser routes for every match of a built bracket.

    Round 1 -> 2 comes from the builder's explicit placeholder map (bye
    distribution breaks the ceil(m/2) relationship); later winners rounds use the
    formula. Losers bracket and grand final slots are all explicitly sourced.
    Raises ReferentialError if two routes would land on the same (match, slot).
    """
    amap = AdvancementMap()
    winners = bracket.rounds(WINNERS)
    final_key = bracket.final_key()

    for m in winners[1] if len(winners) > 1 else []:
        for slot in (1, 2):
            source = m.slot_source(slot)
            if source is not None:
                _add(amap.winner_routes, source.match, Route(m.key, slot))

    for round_matches in winners[1:-1]:
        for m in round_matches:
            _add(amap.winner_routes, m.key, formula_route(m.key))

    for section in (LOSERS, FINALS):
        for round_matches in bracket.rounds(section):
            for m in round_matches:
                for slot in (1, 2):
                    source = m.slot_source(slot)
                    if source is None:
                        continue
                    routes = amap.winner_routes if source.kind == WINNER else amap.loser_routes
                    _add(routes, source.match, Route(m.key, slot))

    validate_advancement(bracket, amap, final_key)
    return amap


def validate_advancement(bracket: Bracket, amap: AdvancementMap, final_key: MatchKey) -> None:
    """Check the structural invariants of an advancement map."""
    taken: Dict[Route, MatchKey] = {}
    for _, key, route in amap.all_routes():
        if bracket.get(route.target) is None:
            raise ReferentialError(f"{key.label()} advances to missing match {route.target.label()}")
        if route in taken:
            raise ReferentialError(
                f"{key.label()} and {taken[route].label()} both advance to "
                f"{route.target.label()} slot {route.slot}"
            )
        taken[route] = key
        target = bracket.get(route.target)
        if (target.player1 if route.slot == 1 else target.player2) is not None:
            raise ReferentialError(f"{route.target.label()} slot {route.slot} is pre-filled")

    for m in bracket.matches():
        if m.key == final_key:
            if m.key in amap.winner_routes:
                raise ReferentialError("Final match must not advance anywhere")
        elif m.key not in amap.winner_routes:
            raise ReferentialError(f"{m.key.label()} has no next match")
