"""Losers bracket and grand final for double elimination."""
from __future__ import annotations

import logging
from typing import Dict, List, Optional

from brackets.models.match import FINALS, LOSERS, WINNERS
from brackets.models.tournament import DOUBLE_ELIM
from brackets.services.builder import (
    LOSER,
    WINNER,
    ArenaMatch,
    Bracket,
    MatchKey,
    SlotSource,
)

logger = logging.getLogger("brackets.double_elim")


def _losers_skeleton(bracket: Bracket) -> List[List[ArenaMatch]]:
    """Full-size losers bracket for a power-of-two field, before byes are collapsed.

    Round 1 pairs the losers of adjacent round-2 slot positions (a bye position
    has no loser). Even rounds 2k drop the losers of winners round k+1 into slot 2
    against the previous losers-round winners, in reverse order when k is odd;
    odd rounds halve the field.
    """
    size = bracket.bracket_size
    w_rounds = bracket.total_rounds
    layout = bracket.round2_layout
    rounds: List[List[ArenaMatch]] = []

    r1 = []
    for j in range(size // 4):
        m = ArenaMatch(LOSERS, 1, j + 1)
        for slot, pos in ((1, 2 * j), (2, 2 * j + 1)):
            entry = layout[pos]
            if isinstance(entry, MatchKey):
                m.sources[slot - 1] = SlotSource(LOSER, entry)
        r1.append(m)
    rounds.append(r1)

    for k in range(1, w_rounds):
        # Drop-in round: losers-round winners vs losers of winners round k+1
        count = size // 2 ** (k + 1)
        prev = rounds[-1]
        drop_in = []
        for j in range(count):
            # Alternate the winners-side order, reversed first: losers round 1 match j
            # holds the round-1 losers whose winners meet in winners round-2 match j.
            w_num = count - j if k % 2 == 1 else j + 1
            m = ArenaMatch(LOSERS, len(rounds) + 1, j + 1)
            m.sources[0] = SlotSource(WINNER, prev[j].key)
            m.sources[1] = SlotSource(LOSER, MatchKey(WINNERS, k + 1, w_num))
            drop_in.append(m)
        rounds.append(drop_in)
        if k == w_rounds - 1:
            break
        halving = []
        for j in range(count // 2):
            m = ArenaMatch(LOSERS, len(rounds) + 1, j + 1)
            m.sources[0] = SlotSource(WINNER, drop_in[2 * j].key)
            m.sources[1] = SlotSource(WINNER, drop_in[2 * j + 1].key)
            halving.append(m)
        rounds.append(halving)
    return rounds


def _collapse(
    bracket: Bracket, rounds: List[List[ArenaMatch]], grand_final: ArenaMatch
) -> List[List[ArenaMatch]]:
    """Drop losers matches with no feeder and skip those with only one.

    A match fed by a single live source would be a bye nobody ever reports, so
    that source is routed straight to wherever the skipped match would have sent
    its winner. Survivors are renumbered so every (section, round) is 1..k again.
    """
    resolved: Dict[MatchKey, Optional[SlotSource]] = {}

    def resolve(source: Optional[SlotSource]) -> Optional[SlotSource]:
        if source is None:
            return None
        if source.match.section == LOSERS:
            return resolved[source.match]
        if source.kind == LOSER:
            origin = bracket.get(source.match)
            if origin is None or origin.is_bye:
                return None
        return source

    survivors: List[List[ArenaMatch]] = []
    for round_matches in rounds:
        kept = []
        for m in round_matches:
            sources = [resolve(s) for s in m.sources]
            live = [s for s in sources if s is not None]
            if len(live) == 2:
                m.sources = sources
                kept.append(m)
                resolved[m.key] = SlotSource(WINNER, m.key)
            elif len(live) == 1:
                resolved[m.key] = live[0]
            else:
                resolved[m.key] = None
        if kept:
            survivors.append(kept)

    grand_final.sources = [resolve(s) for s in grand_final.sources]

    renumbered: Dict[MatchKey, MatchKey] = {}
    for r, round_matches in enumerate(survivors, start=1):
        for n, m in enumerate(round_matches, start=1):
            renumbered[m.key] = MatchKey(LOSERS, r, n)
            m.round, m.match_number = r, n

    def rekey(source: Optional[SlotSource]) -> Optional[SlotSource]:
        if source is None or source.match.section != LOSERS:
            return source
        return SlotSource(source.kind, renumbered[source.match])

    for m in [grand_final] + [m for rm in survivors for m in rm]:
        m.sources = [rekey(s) for s in m.sources]
    return survivors


def add_losers_bracket(bracket: Bracket) -> Bracket:
    """Attach the losers bracket and grand final to a built winners bracket."""
    skeleton = _losers_skeleton(bracket)
    last = skeleton[-1][0]
    grand_final = ArenaMatch(FINALS, 1, 1)
    grand_final.sources = [
        SlotSource(WINNER, MatchKey(WINNERS, bracket.total_rounds, 1)),
        SlotSource(WINNER, last.key),
    ]
    losers = _collapse(bracket, skeleton, grand_final)
    collapsed = sum(len(r) for r in skeleton) - sum(len(r) for r in losers)
    if collapsed:
        logger.debug("Collapsed %d losers-bracket bye matches", collapsed)
    bracket.sections[LOSERS] = losers
    bracket.sections[FINALS] = [[grand_final]]
    bracket.format = DOUBLE_ELIM
    return bracket
