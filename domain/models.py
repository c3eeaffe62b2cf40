from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from domain.enums import BracketType, MatchStatus


def match_id(tournament_id: str, bracket: BracketType, round_number: int, slot: int) -> str:
    """
    Deterministic match id, unique per (bracket, round, slot) within a tournament.
    Example: "t-42_WR1M0", "t-42_LR8M0"
    """
    return f"{tournament_id}_{BracketType(bracket).value}R{int(round_number)}M{int(slot)}"


def match_code(bracket: str, round_no: int, match_no: int) -> str:
    b = bracket.upper()
    if b == "GF":
        return f"GF-{match_no:02d}"
    return f"{b}{round_no}-{match_no:02d}"


@dataclass(frozen=True)
class Match:
    id: str
    tournament_id: str
    group_id: str
    bracket: BracketType
    round_number: int
    match_number_in_round: int
    status: MatchStatus = MatchStatus.PENDING
    next_match_winner_id: Optional[str] = None
    next_match_loser_id: Optional[str] = None
    is_grand_final: bool = False
    is_bracket_reset: bool = False

    @property
    def code(self) -> str:
        # grand finals read as GF-01 / GF-02, slots are shown 1-based
        if self.is_grand_final:
            return match_code("GF", self.round_number, 2 if self.is_bracket_reset else 1)
        return match_code(self.bracket.value, self.round_number, self.match_number_in_round + 1)


@dataclass(frozen=True)
class ParticipantAdded:
    """Roster-changed signal for one tournament group."""

    tournament_id: str
    group_id: str
    team_id: Optional[str] = None

    @property
    def group_key(self) -> tuple[str, str]:
        return (self.tournament_id, self.group_id)


@dataclass(frozen=True)
class GroupInfo:
    group_id: str
    tournament_id: str
    name: str
    max_teams: int


@dataclass(frozen=True)
class TournamentInfo:
    tournament_id: str
    name: str
    guild_id: Optional[int] = None
