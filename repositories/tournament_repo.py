from __future__ import annotations

from typing import Any, Mapping, Optional

import aiomysql

from domain.enums import JoinOutcome
from repositories.base_repo import BaseRepo


class TournamentRepo(BaseRepo):
    # -------------------------
    # Tournaments
    # -------------------------

    async def create_tournament(self, *, tournament_id: str, name: str, guild_id: int | None = None) -> str:
        await self.execute(
            "INSERT INTO tournament (tournament_id, name, guild_id) VALUES (%s, %s, %s);",
            (tournament_id, name, guild_id),
        )
        return tournament_id

    async def get_tournament(self, *, tournament_id: str) -> Mapping[str, Any] | None:
        return await self.fetch_one(
            "SELECT tournament_id, name, guild_id, created_at FROM tournament WHERE tournament_id=%s;",
            (tournament_id,),
        )

    async def list_tournaments(self, *, guild_id: int | None = None) -> list[Mapping[str, Any]]:
        if guild_id is None:
            return await self.fetch_all(
                "SELECT tournament_id, name, guild_id, created_at FROM tournament ORDER BY created_at ASC;"
            )
        return await self.fetch_all(
            """
            SELECT tournament_id, name, guild_id, created_at
            FROM tournament
            WHERE guild_id=%s
            ORDER BY created_at ASC;
            """,
            (guild_id,),
        )

    async def rename_tournament(self, *, tournament_id: str, name: str) -> int:
        return await self.execute(
            "UPDATE tournament SET name=%s WHERE tournament_id=%s;",
            (name, tournament_id),
        )

    async def delete_tournament(self, *, tournament_id: str) -> int:
        """
        Deletes a tournament with its groups, teams, brackets and matches.
        Returns 1 if the tournament existed.
        """

        async def _delete(_conn: aiomysql.Connection, cur: aiomysql.Cursor) -> int:
            await cur.execute("DELETE FROM tournament_match WHERE tournament_id=%s;", (tournament_id,))
            await cur.execute("DELETE FROM group_bracket WHERE tournament_id=%s;", (tournament_id,))
            # teams belong to exactly one group; collect them before the membership rows go
            await cur.execute(
                """
                SELECT gt.team_id
                FROM group_team gt
                JOIN tournament_group g ON g.group_id = gt.group_id
                WHERE g.tournament_id=%s;
                """,
                (tournament_id,),
            )
            team_ids = [r["team_id"] for r in await cur.fetchall()]
            await cur.execute(
                """
                DELETE gt FROM group_team gt
                JOIN tournament_group g ON g.group_id = gt.group_id
                WHERE g.tournament_id=%s;
                """,
                (tournament_id,),
            )
            if team_ids:
                await cur.executemany("DELETE FROM team WHERE team_id=%s;", [(t,) for t in team_ids])
            await cur.execute("DELETE FROM tournament_group WHERE tournament_id=%s;", (tournament_id,))
            await cur.execute("DELETE FROM tournament WHERE tournament_id=%s;", (tournament_id,))
            return cur.rowcount

        return await self.in_tx(_delete)

    # -------------------------
    # Groups
    # -------------------------

    async def create_group(self, *, tournament_id: str, group_id: str, name: str, max_teams: int) -> str:
        await self.execute(
            """
            INSERT INTO tournament_group (group_id, tournament_id, name, max_teams)
            VALUES (%s, %s, %s, %s);
            """,
            (group_id, tournament_id, name, max_teams),
        )
        return group_id

    async def get_group(self, *, tournament_id: str, group_id: str) -> Mapping[str, Any] | None:
        return await self.fetch_one(
            """
            SELECT group_id, tournament_id, name, max_teams
            FROM tournament_group
            WHERE tournament_id=%s AND group_id=%s;
            """,
            (tournament_id, group_id),
        )

    async def list_groups(self, *, tournament_id: str) -> list[Mapping[str, Any]]:
        return await self.fetch_all(
            """
            SELECT g.group_id, g.tournament_id, g.name, g.max_teams, COUNT(gt.team_id) AS team_count
            FROM tournament_group g
            LEFT JOIN group_team gt ON gt.group_id = g.group_id
            WHERE g.tournament_id=%s
            GROUP BY g.group_id, g.tournament_id, g.name, g.max_teams
            ORDER BY g.created_at ASC;
            """,
            (tournament_id,),
        )

    async def rename_group(self, *, tournament_id: str, group_id: str, name: str) -> int:
        return await self.execute(
            "UPDATE tournament_group SET name=%s WHERE tournament_id=%s AND group_id=%s;",
            (name, tournament_id, group_id),
        )

    # -------------------------
    # Teams / roster
    # -------------------------

    async def join_group(self, *, group_id: str, team_id: str, name: str) -> tuple[JoinOutcome, Optional[str]]:
        """
        Creates a team and adds it to the group in one transaction.

        The group row is locked (FOR UPDATE) before the name and capacity
        checks, so concurrent joins of the same group are serialized and the
        roster never exceeds max_teams.

        Returns (outcome, team_id); team_id is the existing team for EXISTING
        and None for FULL / MISSING.
        """

        async def _join(_conn: aiomysql.Connection, cur: aiomysql.Cursor) -> tuple[JoinOutcome, Optional[str]]:
            await cur.execute("SELECT max_teams FROM tournament_group WHERE group_id=%s FOR UPDATE;", (group_id,))
            group = await cur.fetchone()
            if not group:
                return JoinOutcome.MISSING, None

            await cur.execute(
                """
                SELECT t.team_id
                FROM group_team gt
                JOIN team t ON t.team_id = gt.team_id
                WHERE gt.group_id=%s AND t.name=%s;
                """,
                (group_id, name),
            )
            existing = await cur.fetchone()
            if existing:
                return JoinOutcome.EXISTING, str(existing["team_id"])

            await cur.execute("SELECT COUNT(*) AS team_count FROM group_team WHERE group_id=%s;", (group_id,))
            row = await cur.fetchone()
            if int(row["team_count"]) >= int(group["max_teams"]):
                return JoinOutcome.FULL, None

            await cur.execute("INSERT INTO team (team_id, name) VALUES (%s, %s);", (team_id, name))
            await cur.execute("INSERT INTO group_team (group_id, team_id) VALUES (%s, %s);", (group_id, team_id))
            return JoinOutcome.JOINED, team_id

        return await self.in_tx(_join)

    async def delete_group_team(self, *, group_id: str, team_id: str) -> int:
        """Removes the team from its group and deletes it. Returns rows removed from the roster."""

        async def _delete(_conn: aiomysql.Connection, cur: aiomysql.Cursor) -> int:
            await cur.execute("DELETE FROM group_team WHERE group_id=%s AND team_id=%s;", (group_id, team_id))
            removed = cur.rowcount
            if removed:
                await cur.execute("DELETE FROM team WHERE team_id=%s;", (team_id,))
            return removed

        return await self.in_tx(_delete)

    async def rename_team(self, *, team_id: str, name: str) -> int:
        return await self.execute("UPDATE team SET name=%s WHERE team_id=%s;", (name, team_id))

    async def find_group_team_by_name(self, *, group_id: str, name: str) -> Mapping[str, Any] | None:
        return await self.fetch_one(
            """
            SELECT t.team_id, t.name
            FROM group_team gt
            JOIN team t ON t.team_id = gt.team_id
            WHERE gt.group_id=%s AND t.name=%s;
            """,
            (group_id, name),
        )

    async def list_group_teams(self, *, group_id: str) -> list[Mapping[str, Any]]:
        return await self.fetch_all(
            """
            SELECT t.team_id, t.name, gt.joined_at
            FROM group_team gt
            JOIN team t ON t.team_id = gt.team_id
            WHERE gt.group_id=%s
            ORDER BY gt.joined_at ASC, t.name ASC;
            """,
            (group_id,),
        )

    async def count_group_teams(self, *, tournament_id: str, group_id: str) -> Optional[int]:
        """
        Participant count of a group, or None when the group does not exist.
        """
        row = await self.fetch_one(
            """
            SELECT g.group_id, COUNT(gt.team_id) AS team_count
            FROM tournament_group g
            LEFT JOIN group_team gt ON gt.group_id = g.group_id
            WHERE g.tournament_id=%s AND g.group_id=%s
            GROUP BY g.group_id;
            """,
            (tournament_id, group_id),
        )
        if not row:
            return None
        return int(row["team_count"])
