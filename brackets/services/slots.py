"""Runtime slot filling: putting an advancing participant into its next match."""
from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from brackets.models import Match
from brackets.models.match import WINNERS
from brackets.services.errors import ReferentialError, SlotCollisionError
from brackets.services.locks import lock_match

logger = logging.getLogger("brackets.slots")


class SlotPolicy:
    """Chooses which slot of the target match an advancing participant takes."""

    name = "base"

    def choose_slot(self, target: Match, designated_slot: Optional[int]) -> Optional[int]:
        """Return 1 or 2, or None when the policy finds no free slot."""
        raise NotImplementedError


class DesignatedSlotPolicy(SlotPolicy):
    """Use the slot fixed when the bracket was built.

    Round-2 matches may already hold a bye recipient in a specific slot, so
    round-1 winners must land exactly where the advancement map put them.
    """

    name = "designated"

    def choose_slot(self, target: Match, designated_slot: Optional[int]) -> Optional[int]:
        if designated_slot not in (1, 2):
            raise ReferentialError(f"Match {target.id} has no designated slot recorded")
        if target.slot_player(designated_slot) is not None:
            return None
        return designated_slot


class FirstEmptySlotPolicy(SlotPolicy):
    """player1 if free, else player2."""

    name = "first_empty"

    def choose_slot(self, target: Match, designated_slot: Optional[int]) -> Optional[int]:
        if target.player1_id is None:
            return 1
        if target.player2_id is None:
            return 2
        return None


DESIGNATED = DesignatedSlotPolicy()
FIRST_EMPTY = FirstEmptySlotPolicy()


def winner_slot_policy(match: Match) -> SlotPolicy:
    """Round-1 winners follow the explicit map; every later round fills the first empty slot."""
    if match.bracket_section == WINNERS and match.round == 1:
        return DESIGNATED
    return FIRST_EMPTY


def loser_slot_policy(match: Match) -> SlotPolicy:
    return FIRST_EMPTY


async def place_participant(
    session: AsyncSession,
    source: Match,
    participant_id: int,
    target_match_id: int,
    designated_slot: Optional[int],
    policy: SlotPolicy,
) -> tuple[Match, int]:
    """Put participant_id into the target match. Returns (target, slot).

    Never overwrites an occupied slot: raises SlotCollisionError instead.
    """
    target = await lock_match(session, target_match_id)
    if target is None or target.tournament_id != source.tournament_id:
        logger.warning(
            "Match %s points at missing next match %s", source.id, target_match_id
        )
        raise ReferentialError(f"Next match {target_match_id} not found for match {source.id}")

    for slot in (1, 2):
        if target.slot_player(slot) == participant_id:
            return target, slot

    slot = policy.choose_slot(target, designated_slot)
    if slot is None:
        logger.warning(
            "Slot collision advancing participant %s from match %s into match %s (%s policy): "
            "slots hold %s and %s",
            participant_id, source.id, target.id, policy.name, target.player1_id, target.player2_id,
        )
        raise SlotCollisionError(
            f"Cannot advance into match {target.id}: target slot already occupied",
            match_id=source.id,
            target_match_id=target.id,
        )
    target.set_slot_player(slot, participant_id)
    return target, slot
