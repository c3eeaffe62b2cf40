"""
Topology of the generated double-elimination bracket.

Round numbers below are the 1-based round_number stored on each match.
"""

from dataclasses import replace

import pytest

from domain.enums import BracketType, MatchStatus
from domain.models import match_id
from services.bracket_generator import (
    BracketInvariantError,
    DoubleEliminationGenerator,
    UnsupportedBracketSizeError,
    check_bracket,
    expected_match_count,
    loser_intake_round,
    losers_round_sizes,
    winners_round_sizes,
)


def _find(matches, bracket, round_number, slot):
    for m in matches:
        if (
            m.bracket == bracket
            and m.round_number == round_number
            and m.match_number_in_round == slot
            and not m.is_grand_final
        ):
            return m
    raise AssertionError(f"no match {bracket.value}R{round_number}M{slot}")


def _grand_finals(matches):
    gf1 = next(m for m in matches if m.is_grand_final and not m.is_bracket_reset)
    gf2 = next(m for m in matches if m.is_bracket_reset)
    return gf1, gf2


# -------------------------
# Counts and ordering
# -------------------------

def test_generates_63_matches(matches):
    assert len(matches) == 63
    winners = [m for m in matches if m.bracket == BracketType.WINNERS and not m.is_grand_final]
    losers = [m for m in matches if m.bracket == BracketType.LOSERS]
    finals = [m for m in matches if m.is_grand_final]
    assert (len(winners), len(losers), len(finals)) == (31, 30, 2)


def test_round_sizes(matches):
    def sizes(bracket):
        rounds = {}
        for m in matches:
            if m.bracket == bracket and not m.is_grand_final:
                rounds[m.round_number] = rounds.get(m.round_number, 0) + 1
        return [rounds[r] for r in sorted(rounds)]

    assert sizes(BracketType.WINNERS) == [16, 8, 4, 2, 1]
    assert sizes(BracketType.LOSERS) == [8, 8, 4, 4, 2, 2, 1, 1]


def test_order_is_winners_then_losers_then_grand_finals(matches):
    assert all(m.bracket == BracketType.WINNERS for m in matches[:31])
    assert all(m.bracket == BracketType.LOSERS for m in matches[31:61])
    gf1, gf2 = matches[61], matches[62]
    assert gf1.is_grand_final and not gf1.is_bracket_reset
    assert gf2.is_grand_final and gf2.is_bracket_reset

    keys = [(m.round_number, m.match_number_in_round) for m in matches[:31]]
    assert keys == sorted(keys)


def test_ids_unique_and_deterministic(matches):
    assert len({m.id for m in matches}) == 63
    assert matches[0].id == "t1_WR1M0"
    assert matches[31].id == "t1_LR1M0"


def test_all_matches_pending_and_tagged(matches):
    for m in matches:
        assert m.status == MatchStatus.PENDING
        assert m.tournament_id == "t1"
        assert m.group_id == "g1"


def test_generate_is_pure(generator):
    assert generator.generate("t1", "g1") == generator.generate("t1", "g1")


# -------------------------
# Winner edges
# -------------------------

def test_every_winner_edge_resolves(matches, by_id):
    _, gf2 = _grand_finals(matches)
    for m in matches:
        if m is gf2:
            assert m.next_match_winner_id is None
            continue
        assert m.next_match_winner_id in by_id


def test_winner_edges_halve_slots(matches):
    m = _find(matches, BracketType.WINNERS, 1, 13)
    assert m.next_match_winner_id == match_id("t1", BracketType.WINNERS, 2, 6)

    m = _find(matches, BracketType.LOSERS, 1, 1)
    assert m.next_match_winner_id == match_id("t1", BracketType.LOSERS, 2, 0)

    m = _find(matches, BracketType.LOSERS, 2, 7)
    assert m.next_match_winner_id == match_id("t1", BracketType.LOSERS, 3, 3)


def test_winners_bracket_is_a_binary_merge(matches):
    incoming = {}
    for m in matches:
        if m.bracket == BracketType.WINNERS and not m.is_grand_final and m.round_number < 5:
            incoming[m.next_match_winner_id] = incoming.get(m.next_match_winner_id, 0) + 1

    later_rounds = [m for m in matches if m.bracket == BracketType.WINNERS and 2 <= m.round_number <= 5]
    assert len(later_rounds) == 15
    assert all(incoming[m.id] == 2 for m in later_rounds)


def test_bracket_finals_meet_in_grand_final(matches):
    gf1, gf2 = _grand_finals(matches)
    assert _find(matches, BracketType.WINNERS, 5, 0).next_match_winner_id == gf1.id
    assert _find(matches, BracketType.LOSERS, 8, 0).next_match_winner_id == gf1.id
    assert gf1.next_match_winner_id == gf2.id
    assert gf2.next_match_winner_id is None


def test_grand_finals_continue_winners_numbering(matches):
    gf1, gf2 = _grand_finals(matches)
    assert (gf1.bracket, gf1.round_number, gf1.match_number_in_round) == (BracketType.WINNERS, 6, 0)
    assert (gf2.bracket, gf2.round_number, gf2.match_number_in_round) == (BracketType.WINNERS, 7, 0)
    assert gf1.id == "t1_WR6M0"
    assert gf2.id == "t1_WR7M0"


# -------------------------
# Loser edges
# -------------------------

def test_every_winners_match_drops_into_losers(matches, by_id):
    for m in matches:
        if m.bracket == BracketType.WINNERS and not m.is_grand_final:
            assert m.next_match_loser_id is not None, m.id
            assert by_id[m.next_match_loser_id].bracket == BracketType.LOSERS
        else:
            assert m.next_match_loser_id is None, m.id


@pytest.mark.parametrize(
    "w_round, w_slot, l_round, l_slot",
    [
        (1, 0, 1, 0),
        (1, 1, 1, 0),
        (1, 14, 1, 7),
        (1, 15, 1, 7),
        (2, 3, 2, 3),
        (3, 0, 4, 0),
        (4, 1, 6, 1),
        (5, 0, 8, 0),
    ],
)
def test_loser_drop_mapping(matches, w_round, w_slot, l_round, l_slot):
    m = _find(matches, BracketType.WINNERS, w_round, w_slot)
    assert m.next_match_loser_id == match_id("t1", BracketType.LOSERS, l_round, l_slot)


def test_consolidation_rounds_receive_no_drops(matches, by_id):
    intake = {by_id[m.next_match_loser_id].round_number for m in matches if m.next_match_loser_id}
    assert intake == {1, 2, 4, 6, 8}


def test_each_losers_round_one_match_takes_two_first_round_losers(matches):
    dropped = {}
    for m in matches:
        if m.bracket == BracketType.WINNERS and m.round_number == 1:
            dropped[m.next_match_loser_id] = dropped.get(m.next_match_loser_id, 0) + 1
    assert len(dropped) == 8
    assert set(dropped.values()) == {2}


# -------------------------
# Sizes other than 32
# -------------------------

def test_round_size_tables():
    assert winners_round_sizes(32) == [16, 8, 4, 2, 1]
    assert losers_round_sizes(32) == [8, 8, 4, 4, 2, 2, 1, 1]
    assert winners_round_sizes(8) == [4, 2, 1]
    assert losers_round_sizes(8) == [2, 2, 1, 1]
    assert losers_round_sizes(4) == [1, 1]


def test_loser_intake_round():
    assert [loser_intake_round(r) for r in range(1, 7)] == [1, 2, 4, 6, 8, 10]
    with pytest.raises(ValueError):
        loser_intake_round(0)


@pytest.mark.parametrize("size", [4, 8, 16, 32, 64, 128])
def test_power_of_two_sizes_produce_valid_brackets(size):
    gen = DoubleEliminationGenerator(bracket_size=size)
    ms = gen.generate("t9", "g9")
    assert len(ms) == gen.match_count == expected_match_count(size)
    assert len(ms) == 2 * size - 1
    check_bracket(ms, size)


@pytest.mark.parametrize("size", [0, 1, 2, 3, 12, 24, 33, 48])
def test_unsupported_sizes_fail_fast(size):
    with pytest.raises(UnsupportedBracketSizeError):
        DoubleEliminationGenerator(bracket_size=size)


# -------------------------
# check_bracket
# -------------------------

def test_check_bracket_accepts_generated_set(matches):
    check_bracket(matches)


def test_check_bracket_rejects_missing_match(matches):
    with pytest.raises(BracketInvariantError) as exc:
        check_bracket(matches[:-1])
    assert any("expected 63 matches" in p for p in exc.value.problems)


def test_check_bracket_rejects_duplicate_ids(matches):
    broken = list(matches)
    broken[1] = replace(broken[1], id=broken[0].id)
    with pytest.raises(BracketInvariantError) as exc:
        check_bracket(broken)
    assert any("duplicate match id" in p for p in exc.value.problems)


def test_check_bracket_rejects_unlinked_match(matches):
    broken = list(matches)
    broken[40] = replace(broken[40], next_match_winner_id=None)
    with pytest.raises(BracketInvariantError) as exc:
        check_bracket(broken)
    assert exc.value.problems == [f"{broken[40].id} has no winner edge"]


def test_check_bracket_rejects_loser_edge_into_winners(matches):
    broken = list(matches)
    broken[0] = replace(broken[0], next_match_loser_id=broken[20].id)
    with pytest.raises(BracketInvariantError):
        check_bracket(broken)


def test_check_bracket_rejects_grand_finals_out_of_order(matches):
    broken = matches[-2:] + matches[:-2]
    with pytest.raises(BracketInvariantError):
        check_bracket(broken)


def test_losers_final_takes_winners_final_loser(generator, matches):
    assert generator.losers_final_round == 8
    lf_id = match_id("t1", BracketType.LOSERS, 8, 0)
    feeders = [m for m in matches if lf_id in (m.next_match_winner_id, m.next_match_loser_id)]
    assert sorted(m.id for m in feeders) == ["t1_LR7M0", "t1_WR5M0"]
