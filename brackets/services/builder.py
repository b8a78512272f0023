"""Bracket construction (in memory, before any database ids exist).

Matches live in an arena keyed by (section, round, match_number). Slots that are
filled at runtime carry a SlotSource naming the match whose winner (or loser)
will arrive there, so advancement is resolved symbolically and only translated
to row ids when the bracket is persisted.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterator, List, NamedTuple, Optional, Union

from brackets.models.match import FINALS, LOSERS, WINNERS
from brackets.models.tournament import DOUBLE_ELIM, SINGLE_ELIM
from brackets.services.errors import PreconditionError
from brackets.services.seeding import Entrant, SeedingResult, total_rounds_for

WINNER = "winner"
LOSER = "loser"

SECTION_ORDER = {WINNERS: 0, LOSERS: 1, FINALS: 2}


class MatchKey(NamedTuple):
    section: str
    round: int
    match_number: int

    def label(self) -> str:
        return f"{self.section[0].upper()}R{self.round}-M{self.match_number}"


class SlotSource(NamedTuple):
    """'The winner (or loser) of match X fills this slot.'"""

    kind: str  # winner | loser
    match: MatchKey


@dataclass
class ArenaMatch:
    section: str
    round: int
    match_number: int
    player1: Optional[Entrant] = None
    player2: Optional[Entrant] = None
    is_bye: bool = False
    sources: List[Optional[SlotSource]] = field(default_factory=lambda: [None, None])

    @property
    def key(self) -> MatchKey:
        return MatchKey(self.section, self.round, self.match_number)

    @property
    def winner(self) -> Optional[Entrant]:
        """Known at build time only for bye matches."""
        if not self.is_bye:
            return None
        return self.player1 or self.player2

    def slot_source(self, slot: int) -> Optional[SlotSource]:
        return self.sources[slot - 1]


Round2Slot = Union[Entrant, MatchKey]


@dataclass
class Bracket:
    """Transient build artifact: the full match skeleton of one tournament."""

    format: str
    bracket_size: int
    number_of_byes: int
    total_rounds: int
    sections: Dict[str, List[List[ArenaMatch]]] = field(default_factory=dict)
    # Round-2 slot array: bye recipient, or the round-1 match whose winner lands there
    round2_layout: List[Round2Slot] = field(default_factory=list)

    def rounds(self, section: str = WINNERS) -> List[List[ArenaMatch]]:
        return self.sections.get(section, [])

    def matches(self) -> Iterator[ArenaMatch]:
        for section in sorted(self.sections, key=lambda s: SECTION_ORDER[s]):
            for round_matches in self.sections[section]:
                yield from round_matches

    def get(self, key: MatchKey) -> Optional[ArenaMatch]:
        rounds = self.sections.get(key.section, [])
        if not 1 <= key.round <= len(rounds):
            return None
        round_matches = rounds[key.round - 1]
        if not 1 <= key.match_number <= len(round_matches):
            return None
        return round_matches[key.match_number - 1]

    def final_key(self) -> MatchKey:
        """Match with no successor: the grand final, else the last winners round."""
        if self.sections.get(FINALS):
            return MatchKey(FINALS, 1, 1)
        return MatchKey(WINNERS, self.total_rounds, 1)


def bye_positions(number_of_byes: int, round1_match_count: int, slots: int) -> List[int]:
    """Round-2 slot indexes that receive bye recipients.

    Even spacing (floor(i * slots / byes)) keeps byes out of each other's way while
    they are fewer than the round-1 matches. Otherwise every round-2 match gets a
    bye in slot 1 first (even indexes), then the rest go to odd indexes in order.
    """
    if number_of_byes <= 0:
        return []
    if number_of_byes >= round1_match_count:
        parity_order = list(range(0, slots, 2)) + list(range(1, slots, 2))
        return parity_order[:number_of_byes]
    return [i * slots // number_of_byes for i in range(number_of_byes)]


def layout_round2(
    bye_recipients: List[Entrant], round1_matches: List[ArenaMatch], slots: int
) -> List[Round2Slot]:
    layout: List[Optional[Round2Slot]] = [None] * slots
    for recipient, pos in zip(
        bye_recipients, bye_positions(len(bye_recipients), len(round1_matches), slots)
    ):
        layout[pos] = recipient
    placeholders = iter(m.key for m in round1_matches)
    for pos in range(slots):
        if layout[pos] is None:
            layout[pos] = next(placeholders)
    if next(placeholders, None) is not None:
        raise PreconditionError("Round-1 matches do not fit into round 2")
    return layout  # type: ignore[return-value]


def _pair_round1(participants: List[Entrant]) -> List[ArenaMatch]:
    matches = []
    for i in range(0, len(participants), 2):
        p1 = participants[i]
        p2 = participants[i + 1] if i + 1 < len(participants) else None
        matches.append(
            ArenaMatch(WINNERS, 1, len(matches) + 1, player1=p1, player2=p2, is_bye=p2 is None)
        )
    return matches


def build_winners_bracket(seeding: SeedingResult) -> Bracket:
    """Build the single-elimination skeleton from a seeding result."""
    size = seeding.bracket_size
    total_rounds = total_rounds_for(size)
    slots = size // 2
    round1 = _pair_round1(seeding.round1_participants)
    if len(round1) + seeding.number_of_byes != slots:
        raise PreconditionError(
            f"Seeding does not fill a bracket of {size}: "
            f"{len(round1)} round-1 matches, {seeding.number_of_byes} byes"
        )

    bracket = Bracket(
        format=SINGLE_ELIM,
        bracket_size=size,
        number_of_byes=seeding.number_of_byes,
        total_rounds=total_rounds,
    )
    rounds: List[List[ArenaMatch]] = [round1]

    if total_rounds >= 2:
        layout = layout_round2(seeding.bye_recipients, round1, slots)
        bracket.round2_layout = layout
        round2 = []
        for i in range(0, slots, 2):
            m = ArenaMatch(WINNERS, 2, i // 2 + 1)
            for slot, entry in ((1, layout[i]), (2, layout[i + 1])):
                if isinstance(entry, Entrant):
                    if slot == 1:
                        m.player1 = entry
                    else:
                        m.player2 = entry
                else:
                    m.sources[slot - 1] = SlotSource(WINNER, entry)
            round2.append(m)
        rounds.append(round2)

    for r in range(3, total_rounds + 1):
        rounds.append([ArenaMatch(WINNERS, r, i + 1) for i in range(size // 2 ** r)])

    bracket.sections[WINNERS] = rounds
    return bracket


def build_bracket(seeding: SeedingResult, bracket_format: str = SINGLE_ELIM) -> Bracket:
    """Build a bracket of the requested format. Double elimination below 4 slots is single elim."""
    bracket = build_winners_bracket(seeding)
    if bracket_format == DOUBLE_ELIM and bracket.bracket_size >= 4:
        from brackets.services.double_elim import add_losers_bracket

        add_losers_bracket(bracket)
    elif bracket_format not in (SINGLE_ELIM, DOUBLE_ELIM):
        raise PreconditionError(f"Unsupported bracket format: {bracket_format}")
    return bracket
