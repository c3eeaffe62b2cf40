from __future__ import annotations

from typing import Any, Mapping, Sequence

import aiomysql

from domain.enums import BracketType, MatchStatus
from domain.models import Match
from repositories.base_repo import BaseRepo


_MATCH_COLUMNS = (
    "tournament_id, group_id, match_id, bracket, round_number, match_number_in_round, status, "
    "next_match_winner_id, next_match_loser_id, is_grand_final, is_bracket_reset"
)


def _match_params(m: Match) -> tuple:
    return (
        m.tournament_id,
        m.group_id,
        m.id,
        m.bracket.value,
        m.round_number,
        m.match_number_in_round,
        m.status.value,
        m.next_match_winner_id,
        m.next_match_loser_id,
        int(m.is_grand_final),
        int(m.is_bracket_reset),
    )


def row_to_match(r: Mapping[str, Any]) -> Match:
    return Match(
        id=str(r["match_id"]),
        tournament_id=str(r["tournament_id"]),
        group_id=str(r["group_id"]),
        bracket=BracketType(str(r["bracket"])),
        round_number=int(r["round_number"]),
        match_number_in_round=int(r["match_number_in_round"]),
        status=MatchStatus(str(r["status"])),
        next_match_winner_id=r.get("next_match_winner_id"),
        next_match_loser_id=r.get("next_match_loser_id"),
        is_grand_final=bool(r.get("is_grand_final")),
        is_bracket_reset=bool(r.get("is_bracket_reset")),
    )


class MatchRepo(BaseRepo):
    async def bracket_exists(self, *, tournament_id: str, group_id: str) -> bool:
        row = await self.fetch_one(
            "SELECT 1 AS present FROM group_bracket WHERE tournament_id=%s AND group_id=%s;",
            (tournament_id, group_id),
        )
        return row is not None

    async def create_bracket(self, matches: Sequence[Match]) -> list[str]:
        """
        Writes a whole bracket in one transaction: the group_bracket guard row
        first, then every match.

        Raises aiomysql.IntegrityError if the group already has a bracket
        (guard primary key). Nothing is written unless every match row is.
        """
        ms = list(matches)
        if not ms:
            raise ValueError("create_bracket needs at least one match")
        keys = {(m.tournament_id, m.group_id) for m in ms}
        if len(keys) != 1:
            raise ValueError("create_bracket matches must all belong to one tournament group")
        (tournament_id, group_id), = keys

        async def _write(_conn: aiomysql.Connection, cur: aiomysql.Cursor) -> list[str]:
            await cur.execute(
                "INSERT INTO group_bracket (tournament_id, group_id, match_count) VALUES (%s, %s, %s);",
                (tournament_id, group_id, len(ms)),
            )
            await cur.executemany(
                f"INSERT INTO tournament_match ({_MATCH_COLUMNS}) "
                "VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s);",
                [_match_params(m) for m in ms],
            )
            if cur.rowcount != len(ms):
                # raising rolls back the guard row too
                raise RuntimeError(f"Inserted {cur.rowcount} of {len(ms)} matches; rolled back.")
            return [m.id for m in ms]

        return await self.in_tx(_write)

    async def list_matches(self, *, tournament_id: str, group_id: str) -> list[Match]:
        rows = await self.fetch_all(
            f"""
            SELECT {_MATCH_COLUMNS}
            FROM tournament_match
            WHERE tournament_id=%s AND group_id=%s
            ORDER BY is_grand_final, bracket = 'L', round_number, match_number_in_round;
            """,
            (tournament_id, group_id),
        )
        return [row_to_match(r) for r in rows]

