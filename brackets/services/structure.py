"""Read-side views of a bracket: grouped structure, consistency audit, preview."""
from __future__ import annotations

import random
from collections import Counter
from typing import Dict, List, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from brackets.models import Match
from brackets.models.tournament import SINGLE_ELIM
from brackets.services.advancement import map_advancement
from brackets.services.builder import SECTION_ORDER, ArenaMatch, build_bracket
from brackets.services.roster import get_participant_names
from brackets.services.seeding import Entrant, distribute_seeds


def match_to_dict(m: Match, names: Optional[Dict[int, str]] = None) -> dict:
    names = names or {}
    data = {
        "id": m.id,
        "tournament_id": m.tournament_id,
        "round": m.round,
        "match_number": m.match_number,
        "bracket_section": m.bracket_section,
        "player1_id": m.player1_id,
        "player2_id": m.player2_id,
        "player1_score": m.player1_score,
        "player2_score": m.player2_score,
        "winner_id": m.winner_id,
        "is_bye_match": m.is_bye_match,
        "next_match_id": m.next_match_id,
        "next_match_slot": m.next_match_slot,
        "loser_next_match_id": m.loser_next_match_id,
        "loser_next_match_slot": m.loser_next_match_slot,
    }
    if names:
        data["player1_name"] = names.get(m.player1_id) if m.player1_id else None
        data["player2_name"] = names.get(m.player2_id) if m.player2_id else None
        data["winner_name"] = names.get(m.winner_id) if m.winner_id else None
    return data


async def load_matches(session: AsyncSession, tournament_id: int) -> List[Match]:
    result = await session.execute(
        select(Match)
        .where(Match.tournament_id == tournament_id)
        .order_by(Match.round, Match.match_number)
    )
    matches = list(result.scalars().all())
    matches.sort(key=lambda m: (SECTION_ORDER.get(m.bracket_section, 99), m.round, m.match_number))
    return matches


def group_rounds(matches: Sequence[Match], names: Optional[Dict[int, str]] = None) -> List[dict]:
    rounds: List[dict] = []
    for m in matches:
        if not rounds or (rounds[-1]["bracket_section"], rounds[-1]["round"]) != (m.bracket_section, m.round):
            rounds.append({"bracket_section": m.bracket_section, "round": m.round, "matches": []})
        rounds[-1]["matches"].append(match_to_dict(m, names))
    return rounds


async def get_bracket_structure(session: AsyncSession, tournament_id: int) -> List[dict]:
    """Persisted matches grouped by (section, round), in display order. No recomputation."""
    matches = await load_matches(session, tournament_id)
    names = await get_participant_names(session, tournament_id)
    return group_rounds(matches, names)


def find_issues(matches: Sequence[Match]) -> List[str]:
    """Structural problems in a persisted bracket; empty when consistent."""
    issues: List[str] = []
    by_id = {m.id: m for m in matches}

    targets: Counter = Counter()
    for m in matches:
        if m.next_match_id is not None:
            targets[(m.next_match_id, m.next_match_slot)] += 1
        if m.loser_next_match_id is not None:
            targets[(m.loser_next_match_id, m.loser_next_match_slot)] += 1
    for (target, slot), count in targets.items():
        if count > 1:
            issues.append(f"{count} matches advance into match {target} slot {slot}")

    finals = [m for m in matches if m.next_match_id is None]
    if matches and len(finals) != 1:
        issues.append(f"Expected exactly one final match, found {len(finals)}")

    positions: Dict[tuple, List[int]] = {}
    for m in matches:
        positions.setdefault((m.bracket_section, m.round), []).append(m.match_number)
    for (section, rnd), numbers in sorted(positions.items()):
        if sorted(numbers) != list(range(1, len(numbers) + 1)):
            issues.append(f"{section} round {rnd} match numbers are not 1..{len(numbers)}")

    for m in matches:
        for label, target_id in (("next", m.next_match_id), ("loser next", m.loser_next_match_id)):
            if target_id is not None and target_id not in by_id:
                issues.append(f"Match {m.id} ({m.label()}) {label} match {target_id} does not exist")
        if m.winner_id is not None and m.winner_id not in (m.player1_id, m.player2_id):
            issues.append(f"Match {m.id} ({m.label()}) winner is not one of its players")
        if m.is_bye_match:
            present = [p for p in m.players() if p is not None]
            if len(present) != 1 or m.winner_id != present[0]:
                issues.append(f"Bye match {m.id} ({m.label()}) must have one player who is the winner")
        if m.winner_id is not None and m.next_match_id in by_id:
            if m.winner_id not in by_id[m.next_match_id].players():
                issues.append(
                    f"Match {m.id} ({m.label()}) winner {m.winner_id} never reached match {m.next_match_id}"
                )
        loser = m.loser_id()
        if loser is not None and m.loser_next_match_id in by_id:
            if loser not in by_id[m.loser_next_match_id].players():
                issues.append(
                    f"Match {m.id} ({m.label()}) loser {loser} never reached match {m.loser_next_match_id}"
                )
    return issues


async def verify_bracket(session: AsyncSession, tournament_id: int) -> List[str]:
    return find_issues(await load_matches(session, tournament_id))


def _arena_to_dict(m: ArenaMatch, routes) -> dict:
    route = routes.winner_routes.get(m.key)
    loser_route = routes.loser_routes.get(m.key)
    sources = []
    for slot in (1, 2):
        source = m.slot_source(slot)
        sources.append(f"{source.kind} of {source.match.label()}" if source else None)
    return {
        "id": f"preview-{m.key.label()}",
        "round": m.round,
        "match_number": m.match_number,
        "bracket_section": m.section,
        "player1_name": m.player1.display_name if m.player1 else None,
        "player2_name": m.player2.display_name if m.player2 else None,
        "player1_source": sources[0],
        "player2_source": sources[1],
        "is_bye_match": m.is_bye,
        "next_match": route.target.label() if route else None,
        "next_match_slot": route.slot if route else None,
        "loser_next_match": loser_route.target.label() if loser_route else None,
    }


def preview_bracket(
    entrants: Sequence[Entrant],
    bracket_format: str = SINGLE_ELIM,
    rng: Optional[random.Random] = None,
) -> dict:
    """Build the bracket in memory only. Same grouping as get_bracket_structure."""
    seeding = distribute_seeds(entrants, rng)
    bracket = build_bracket(seeding, bracket_format)
    routes = map_advancement(bracket)
    rounds = []
    for m in bracket.matches():
        if not rounds or (rounds[-1]["bracket_section"], rounds[-1]["round"]) != (m.section, m.round):
            rounds.append({"bracket_section": m.section, "round": m.round, "matches": []})
        rounds[-1]["matches"].append(_arena_to_dict(m, routes))
    return {
        "format": bracket.format,
        "bracket_size": bracket.bracket_size,
        "number_of_byes": bracket.number_of_byes,
        "total_rounds": bracket.total_rounds,
        "rounds": rounds,
        "preview": True,
    }
