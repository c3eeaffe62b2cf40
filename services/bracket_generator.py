# services/bracket_generator.py
from __future__ import annotations

from typing import Iterable, Optional

from domain.enums import BracketType, MatchStatus
from domain.models import Match, match_id


DEFAULT_BRACKET_SIZE = 32


class BracketServiceError(Exception):
    pass


class UnsupportedBracketSizeError(BracketServiceError):
    pass


class BracketInvariantError(BracketServiceError):
    def __init__(self, problems: list[str]) -> None:
        self.problems = list(problems)
        shown = "; ".join(self.problems[:5])
        more = f" (+{len(self.problems) - 5} more)" if len(self.problems) > 5 else ""
        super().__init__(f"Generated bracket is invalid: {shown}{more}")


def _is_pow2(n: int) -> bool:
    return n > 0 and (n & (n - 1)) == 0


def validate_bracket_size(bracket_size: int) -> int:
    n = int(bracket_size)
    if n < 4 or not _is_pow2(n):
        raise UnsupportedBracketSizeError(
            f"bracket_size must be a power of two >= 4 (byes are not supported), got: {bracket_size!r}"
        )
    return n


def winners_round_sizes(bracket_size: int) -> list[int]:
    """
    Matches per winners round, first round first.
    32 => [16, 8, 4, 2, 1]
    """
    n = validate_bracket_size(bracket_size)
    sizes: list[int] = []
    width = n // 2
    while width >= 1:
        sizes.append(width)
        width //= 2
    return sizes


def losers_round_sizes(bracket_size: int) -> list[int]:
    """
    Matches per losers round. Every width is played twice: an intake round
    (new drops from the winners bracket) then a consolidation round. The last
    round is the losers final, where the winners-final loser drops in.
    32 => [8, 8, 4, 4, 2, 2, 1, 1]
    """
    n = validate_bracket_size(bracket_size)
    sizes: list[int] = []
    width = n // 4
    while width >= 1:
        sizes.extend([width, width])
        width //= 2
    return sizes


def loser_intake_round(winners_round: int) -> int:
    """
    Losers round that receives the losers of a winners round.
    W1 -> L1, then every later winners round drops into the next intake
    round, skipping one consolidation round each time: W2 -> L2, W3 -> L4, ...
    """
    r = int(winners_round)
    if r < 1:
        raise ValueError(f"winners_round must be >= 1, got: {winners_round!r}")
    return 1 if r == 1 else 2 * (r - 1)


def expected_match_count(bracket_size: int) -> int:
    return sum(winners_round_sizes(bracket_size)) + sum(losers_round_sizes(bracket_size)) + 2


class DoubleEliminationGenerator:
    """
    Builds the full match graph of a double-elimination bracket.

    Output order is part of the contract:
      winners (round, slot) ++ losers (round, slot) ++ [GF1, GF2]

    Every match is built with its edges already resolved; ids come from
    match_id(), so nothing is patched after construction.
    """

    def __init__(self, bracket_size: int = DEFAULT_BRACKET_SIZE) -> None:
        self.bracket_size = validate_bracket_size(bracket_size)
        self._w_sizes = winners_round_sizes(self.bracket_size)
        self._l_sizes = losers_round_sizes(self.bracket_size)

    @property
    def required_participants(self) -> int:
        return self.bracket_size

    @property
    def match_count(self) -> int:
        return sum(self._w_sizes) + sum(self._l_sizes) + 2

    @property
    def winners_final_round(self) -> int:
        return len(self._w_sizes)

    @property
    def losers_final_round(self) -> int:
        return len(self._l_sizes)

    @property
    def grand_final_round(self) -> int:
        # grand finals continue the winners numbering space
        return self.winners_final_round + 1

    def generate(self, tournament_id: str, group_id: str) -> list[Match]:
        gf1_id = match_id(tournament_id, BracketType.WINNERS, self.grand_final_round, 0)
        gf2_id = match_id(tournament_id, BracketType.WINNERS, self.grand_final_round + 1, 0)

        winners = self._winners_bracket(tournament_id, group_id, gf1_id)
        losers = self._losers_bracket(tournament_id, group_id, gf1_id)
        finals = [
            Match(
                id=gf1_id,
                tournament_id=tournament_id,
                group_id=group_id,
                bracket=BracketType.WINNERS,
                round_number=self.grand_final_round,
                match_number_in_round=0,
                status=MatchStatus.PENDING,
                next_match_winner_id=gf2_id,
                is_grand_final=True,
                is_bracket_reset=False,
            ),
            Match(
                id=gf2_id,
                tournament_id=tournament_id,
                group_id=group_id,
                bracket=BracketType.WINNERS,
                round_number=self.grand_final_round + 1,
                match_number_in_round=0,
                status=MatchStatus.PENDING,
                is_grand_final=True,
                is_bracket_reset=True,
            ),
        ]
        return winners + losers + finals

    # -------------------------
    # Internals
    # -------------------------

    def _loser_drop_id(self, tournament_id: str, winners_round: int, slot: int) -> str:
        w_width = self._w_sizes[winners_round - 1]
        l_round = loser_intake_round(winners_round)
        l_width = self._l_sizes[l_round - 1]
        # identity once widths match, 2-to-1 when the winners round is twice as wide
        return match_id(tournament_id, BracketType.LOSERS, l_round, slot * l_width // w_width)

    def _winners_bracket(self, tournament_id: str, group_id: str, gf1_id: str) -> list[Match]:
        out: list[Match] = []
        last = len(self._w_sizes)
        for round_number, width in enumerate(self._w_sizes, start=1):
            for slot in range(width):
                if round_number < last:
                    next_winner = match_id(tournament_id, BracketType.WINNERS, round_number + 1, slot // 2)
                else:
                    next_winner = gf1_id
                out.append(
                    Match(
                        id=match_id(tournament_id, BracketType.WINNERS, round_number, slot),
                        tournament_id=tournament_id,
                        group_id=group_id,
                        bracket=BracketType.WINNERS,
                        round_number=round_number,
                        match_number_in_round=slot,
                        status=MatchStatus.PENDING,
                        next_match_winner_id=next_winner,
                        next_match_loser_id=self._loser_drop_id(tournament_id, round_number, slot),
                    )
                )
        return out

    def _losers_bracket(self, tournament_id: str, group_id: str, gf1_id: str) -> list[Match]:
        out: list[Match] = []
        last = len(self._l_sizes)
        for round_number, width in enumerate(self._l_sizes, start=1):
            for slot in range(width):
                if round_number < last:
                    next_winner = match_id(tournament_id, BracketType.LOSERS, round_number + 1, slot // 2)
                else:
                    next_winner = gf1_id
                out.append(
                    Match(
                        id=match_id(tournament_id, BracketType.LOSERS, round_number, slot),
                        tournament_id=tournament_id,
                        group_id=group_id,
                        bracket=BracketType.LOSERS,
                        round_number=round_number,
                        match_number_in_round=slot,
                        status=MatchStatus.PENDING,
                        next_match_winner_id=next_winner,
                    )
                )
        return out


def check_bracket(matches: Iterable[Match], bracket_size: int = DEFAULT_BRACKET_SIZE) -> None:
    """
    Raises BracketInvariantError if the match set is not a complete, fully
    linked bracket for bracket_size participants.
    """
    ms = list(matches)
    problems: list[str] = []

    expected = expected_match_count(bracket_size)
    if len(ms) != expected:
        problems.append(f"expected {expected} matches, got {len(ms)}")

    by_id: dict[str, Match] = {}
    for m in ms:
        if m.id in by_id:
            problems.append(f"duplicate match id {m.id}")
        by_id[m.id] = m

    finals = [m for m in ms if m.is_grand_final]
    resets = [m for m in finals if m.is_bracket_reset]
    if len(finals) != 2 or len(resets) != 1:
        problems.append(f"expected 2 grand-final matches (1 reset), got {len(finals)} ({len(resets)} reset)")
    elif ms[-2:] != finals or not finals[1].is_bracket_reset:
        problems.append("grand-final matches must come last (GF1, GF2)")

    for m in ms:
        if m.status != MatchStatus.PENDING:
            problems.append(f"{m.id} is {m.status.value}, expected pending")

        target: Optional[Match] = None
        if m.next_match_winner_id is not None:
            target = by_id.get(m.next_match_winner_id)
            if target is None:
                problems.append(f"{m.id} winner edge points outside the bracket: {m.next_match_winner_id}")
        elif not m.is_bracket_reset:
            problems.append(f"{m.id} has no winner edge")

        if m.bracket == BracketType.WINNERS and not m.is_grand_final:
            if m.next_match_loser_id is None:
                problems.append(f"{m.id} has no loser edge")
            else:
                drop = by_id.get(m.next_match_loser_id)
                if drop is None or drop.bracket != BracketType.LOSERS:
                    problems.append(f"{m.id} loser edge does not point into the losers bracket")
        elif m.next_match_loser_id is not None:
            problems.append(f"{m.id} must not have a loser edge")

    if problems:
        raise BracketInvariantError(problems)
