"""Tests for result reporting, advancement and clearing results."""
import asyncio
import random

import pytest

from brackets.models import Match, Tournament
from brackets.models.match import FINALS, LOSERS, WINNERS
from brackets.models.tournament import DOUBLE_ELIM, STATUS_COMPLETED, STATUS_IN_PROGRESS
from brackets.services.errors import (
    NotFoundError,
    PreconditionError,
    ReferentialError,
    SlotCollisionError,
)
from brackets.services.results import clear_result, report_result
from brackets.services.structure import find_issues
from brackets.services.writer import generate_bracket


@pytest.fixture
def generated(session_factory, make_tournament, fetch_matches):
    """Create and generate a tournament; returns (tournament_id, participant ids, matches)."""

    async def _generated(n, bracket_format="single_elim", seed=0):
        tid, pids = await make_tournament(n, bracket_format=bracket_format)
        async with session_factory() as s:
            await generate_bracket(s, tid, rng=random.Random(seed))
        return tid, pids, await fetch_matches(tid)

    return _generated


async def _report(session_factory, tid, match, winner_id, scores=(3, 1)):
    async with session_factory() as s:
        return await report_result(s, tid, match.id, scores[0], scores[1], winner_id)


async def test_winner_advances_to_designated_slot(session_factory, generated, fetch_matches):
    tid, _, matches = await generated(4)
    w1m2 = matches[(WINNERS, 1, 2)]
    outcome = await _report(session_factory, tid, w1m2, w1m2.player2_id, scores=(0, 2))
    assert outcome.advanced
    assert outcome.next_match_slot == 2

    after = await fetch_matches(tid)
    assert after[(WINNERS, 1, 2)].winner_id == w1m2.player2_id
    assert after[(WINNERS, 1, 2)].player2_score == 2
    final = after[(WINNERS, 2, 1)]
    assert final.player1_id is None
    assert final.player2_id == w1m2.player2_id


async def test_round1_winner_joins_bye_recipient(session_factory, generated, fetch_matches):
    tid, _, matches = await generated(6, seed=2)
    w1m1 = matches[(WINNERS, 1, 1)]
    bye_holder = matches[(WINNERS, 2, 1)].player1_id
    await _report(session_factory, tid, w1m1, w1m1.player1_id)
    r2 = (await fetch_matches(tid))[(WINNERS, 2, 1)]
    assert r2.players() == (bye_holder, w1m1.player1_id)


async def test_invalid_winner_rejected_without_changes(session_factory, generated, fetch_matches):
    tid, pids, matches = await generated(4)
    w1m1 = matches[(WINNERS, 1, 1)]
    outsider = next(p for p in pids if p not in w1m1.players())
    with pytest.raises(ReferentialError):
        await _report(session_factory, tid, w1m1, outsider)

    after = await fetch_matches(tid)
    for key, m in matches.items():
        assert after[key].players() == m.players()
        assert after[key].winner_id is None
        assert after[key].player1_score is None and after[key].player2_score is None


async def test_full_target_is_collision_and_nothing_overwritten(session_factory, generated, fetch_matches):
    tid, pids, matches = await generated(4)
    w1m1 = matches[(WINNERS, 1, 1)]
    w1m2 = matches[(WINNERS, 1, 2)]
    final = matches[(WINNERS, 2, 1)]

    # Corrupt the final so both slots are already taken
    async with session_factory() as s:
        row = await s.get(Match, final.id)
        row.player1_id, row.player2_id = w1m2.player1_id, w1m2.player2_id
        await s.commit()

    with pytest.raises(SlotCollisionError) as exc_info:
        await _report(session_factory, tid, w1m1, w1m1.player1_id)
    assert exc_info.value.target_match_id == final.id
    assert exc_info.value.match_id == w1m1.id

    after = await fetch_matches(tid)
    assert after[(WINNERS, 2, 1)].players() == (w1m2.player1_id, w1m2.player2_id)
    assert after[(WINNERS, 1, 1)].winner_id is None
    assert after[(WINNERS, 1, 1)].player1_score is None


async def test_later_rounds_fill_first_empty_slot(session_factory, generated, fetch_matches):
    tid, _, matches = await generated(8)
    # Decide W1M3 and W1M4 then W2M2 before W2M1: its winner takes slot 1 of the final
    await _report(session_factory, tid, matches[(WINNERS, 1, 3)], matches[(WINNERS, 1, 3)].player1_id)
    await _report(session_factory, tid, matches[(WINNERS, 1, 4)], matches[(WINNERS, 1, 4)].player1_id)
    w2m2 = (await fetch_matches(tid))[(WINNERS, 2, 2)]
    outcome = await _report(session_factory, tid, w2m2, w2m2.player2_id)
    assert outcome.next_match_slot == 1
    final = (await fetch_matches(tid))[(WINNERS, 3, 1)]
    assert final.player1_id == w2m2.player2_id


async def _play_out(session_factory, fetch_matches, tid, pick=lambda m: m.player1_id):
    """Report every ready match until the tournament has a champion."""
    champion = None
    for _ in range(200):
        matches = await fetch_matches(tid)
        ready = [
            m for m in matches.values()
            if m.winner_id is None and m.player1_id is not None and m.player2_id is not None
        ]
        if not ready:
            break
        m = sorted(ready, key=lambda x: (x.bracket_section, x.round, x.match_number))[0]
        outcome = await _report(session_factory, tid, m, pick(m))
        if outcome.champion_id is not None:
            champion = outcome.champion_id
    return champion


@pytest.mark.parametrize("n", [2, 3, 5, 8, 11])
async def test_single_elim_play_through(session_factory, generated, fetch_matches, n):
    tid, pids, _ = await generated(n, seed=n)
    champion = await _play_out(session_factory, fetch_matches, tid)
    assert champion in pids

    matches = await fetch_matches(tid)
    assert all(m.winner_id is not None for m in matches.values())
    assert find_issues(list(matches.values())) == []
    async with session_factory() as s:
        t = await s.get(Tournament, tid)
        assert t.status == STATUS_COMPLETED


@pytest.mark.parametrize("n", [3, 4, 6, 8, 13])
async def test_double_elim_play_through(session_factory, generated, fetch_matches, n):
    tid, pids, _ = await generated(n, bracket_format=DOUBLE_ELIM, seed=n)
    # Alternate slots so both brackets see upsets
    champion = await _play_out(
        session_factory, fetch_matches, tid,
        pick=lambda m: m.player1_id if m.match_number % 2 else m.player2_id,
    )
    assert champion in pids

    matches = await fetch_matches(tid)
    assert all(m.winner_id is not None for m in matches.values())
    assert find_issues(list(matches.values())) == []
    # Everyone but the champion lost exactly twice, except the grand final loser (once)
    losses = {pid: 0 for pid in pids}
    for m in matches.values():
        losses[m.loser_id()] += 1
    grand_final = matches[(FINALS, 1, 1)]
    assert losses[champion] <= 1
    assert losses[grand_final.loser_id()] >= 1
    for pid in pids:
        if pid not in (champion, grand_final.loser_id()):
            assert losses[pid] == 2


async def test_loser_routed_to_losers_bracket(session_factory, generated, fetch_matches):
    tid, _, matches = await generated(4, bracket_format=DOUBLE_ELIM)
    w1m1 = matches[(WINNERS, 1, 1)]
    outcome = await _report(session_factory, tid, w1m1, w1m1.player1_id)
    assert outcome.loser_routed
    after = await fetch_matches(tid)
    assert after[(LOSERS, 1, 1)].player1_id == w1m1.player2_id


async def test_scores_only_do_not_advance(session_factory, generated, fetch_matches):
    tid, _, matches = await generated(4)
    w1m1 = matches[(WINNERS, 1, 1)]
    outcome = await _report(session_factory, tid, w1m1, None, scores=(1, 1))
    assert not outcome.advanced
    after = await fetch_matches(tid)
    assert after[(WINNERS, 1, 1)].player1_score == 1
    assert after[(WINNERS, 1, 1)].winner_id is None
    assert after[(WINNERS, 2, 1)].players() == (None, None)


async def test_rereport_same_winner_updates_scores(session_factory, generated, fetch_matches):
    tid, _, matches = await generated(4)
    w1m1 = matches[(WINNERS, 1, 1)]
    await _report(session_factory, tid, w1m1, w1m1.player1_id, scores=(3, 1))
    outcome = await _report(session_factory, tid, w1m1, w1m1.player1_id, scores=(3, 2))
    assert not outcome.advanced
    after = await fetch_matches(tid)
    assert after[(WINNERS, 1, 1)].player2_score == 2
    assert after[(WINNERS, 2, 1)].player1_id == w1m1.player1_id


async def test_rereport_different_winner_rejected(session_factory, generated):
    tid, _, matches = await generated(4)
    w1m1 = matches[(WINNERS, 1, 1)]
    await _report(session_factory, tid, w1m1, w1m1.player1_id)
    with pytest.raises(PreconditionError):
        await _report(session_factory, tid, w1m1, w1m1.player2_id)


async def test_report_waiting_match_rejected(session_factory, generated):
    tid, _, matches = await generated(6, seed=2)
    r2 = matches[(WINNERS, 2, 1)]
    with pytest.raises(PreconditionError):
        await _report(session_factory, tid, r2, r2.player1_id)


async def test_negative_score_rejected(session_factory, generated):
    tid, _, matches = await generated(4)
    w1m1 = matches[(WINNERS, 1, 1)]
    with pytest.raises(PreconditionError):
        await _report(session_factory, tid, w1m1, w1m1.player1_id, scores=(-1, 0))


async def test_match_from_other_tournament_not_found(session_factory, generated):
    tid_a, _, matches_a = await generated(4)
    tid_b, _, _ = await generated(4)
    m = matches_a[(WINNERS, 1, 1)]
    with pytest.raises(NotFoundError):
        await _report(session_factory, tid_b, m, m.player1_id)


async def test_final_completes_tournament(session_factory, generated, fetch_matches):
    tid, pids, matches = await generated(2)
    final = matches[(WINNERS, 1, 1)]
    outcome = await _report(session_factory, tid, final, final.player2_id)
    assert outcome.champion_id == final.player2_id
    assert not outcome.advanced
    async with session_factory() as s:
        assert (await s.get(Tournament, tid)).status == STATUS_COMPLETED


async def test_clear_result_withdraws_winner(session_factory, generated, fetch_matches):
    tid, _, matches = await generated(4, bracket_format=DOUBLE_ELIM)
    w1m1 = matches[(WINNERS, 1, 1)]
    await _report(session_factory, tid, w1m1, w1m1.player1_id)
    async with session_factory() as s:
        cleared = await clear_result(s, tid, w1m1.id)
    assert cleared.winner_id is None

    after = await fetch_matches(tid)
    assert after[(WINNERS, 1, 1)].winner_id is None
    assert after[(WINNERS, 1, 1)].player1_score is None
    assert after[(WINNERS, 2, 1)].players() == (None, None)
    assert after[(LOSERS, 1, 1)].players() == (None, None)

    # A different winner can now be reported
    await _report(session_factory, tid, w1m1, w1m1.player2_id)
    assert (await fetch_matches(tid))[(WINNERS, 2, 1)].player1_id == w1m1.player2_id


async def test_clear_blocked_when_next_match_decided(session_factory, generated, fetch_matches):
    tid, _, matches = await generated(4)
    for key in ((WINNERS, 1, 1), (WINNERS, 1, 2)):
        await _report(session_factory, tid, matches[key], matches[key].player1_id)
    final = (await fetch_matches(tid))[(WINNERS, 2, 1)]
    await _report(session_factory, tid, final, final.player1_id)
    with pytest.raises(PreconditionError):
        async with session_factory() as s:
            await clear_result(s, tid, matches[(WINNERS, 1, 1)].id)


async def test_clear_final_reopens_tournament(session_factory, generated):
    tid, _, matches = await generated(2)
    final = matches[(WINNERS, 1, 1)]
    await _report(session_factory, tid, final, final.player1_id)
    async with session_factory() as s:
        await clear_result(s, tid, final.id)
    async with session_factory() as s:
        assert (await s.get(Tournament, tid)).status == STATUS_IN_PROGRESS


async def test_clear_undecided_match_rejected(session_factory, generated):
    tid, _, matches = await generated(4)
    with pytest.raises(PreconditionError):
        async with session_factory() as s:
            await clear_result(s, tid, matches[(WINNERS, 1, 1)].id)


async def test_concurrent_reports_into_same_match(session_factory, generated, fetch_matches):
    tid, _, matches = await generated(4)
    w1m1 = matches[(WINNERS, 1, 1)]
    w1m2 = matches[(WINNERS, 1, 2)]
    await asyncio.gather(
        _report(session_factory, tid, w1m1, w1m1.player1_id),
        _report(session_factory, tid, w1m2, w1m2.player1_id),
    )
    final = (await fetch_matches(tid))[(WINNERS, 2, 1)]
    assert final.players() == (w1m1.player1_id, w1m2.player1_id)


async def test_concurrent_conflicting_reports(session_factory, generated, fetch_matches):
    tid, _, matches = await generated(4)
    w1m1 = matches[(WINNERS, 1, 1)]
    results = await asyncio.gather(
        _report(session_factory, tid, w1m1, w1m1.player1_id),
        _report(session_factory, tid, w1m1, w1m1.player2_id),
        return_exceptions=True,
    )
    errors = [r for r in results if isinstance(r, Exception)]
    assert len(errors) == 1
    assert isinstance(errors[0], PreconditionError)
    after = await fetch_matches(tid)
    winner = after[(WINNERS, 1, 1)].winner_id
    assert after[(WINNERS, 2, 1)].player1_id == winner
    assert after[(WINNERS, 2, 1)].player2_id is None
