from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import Any, Mapping, Optional, Sequence

import aiomysql
import pytest

from domain.enums import JoinOutcome
from domain.models import Match, ParticipantAdded
from services.bracket_generator import DoubleEliminationGenerator


class FakeRoster:
    """In-memory roster: (tournament_id, group_id) -> participant count."""

    def __init__(self, counts: Optional[dict[tuple[str, str], int]] = None, *, failures: int = 0) -> None:
        self.counts = dict(counts or {})
        self.failures = failures
        self.calls = 0

    async def count_group_teams(self, *, tournament_id: str, group_id: str) -> Optional[int]:
        self.calls += 1
        if self.failures > 0:
            self.failures -= 1
            raise aiomysql.OperationalError(2013, "Lost connection to MySQL server during query")
        return self.counts.get((tournament_id, group_id))


class FakeMatchStore:
    """
    In-memory match persistence with the same guarantees as MatchRepo:
    all-or-nothing writes and a duplicate-key error for a second bracket.
    Every call yields to the loop so concurrent handlers interleave.
    """

    def __init__(self, *, short_by: int = 0) -> None:
        self.brackets: dict[tuple[str, str], list[Match]] = {}
        self.short_by = short_by
        self.create_calls = 0
        self.rejected = 0

    async def bracket_exists(self, *, tournament_id: str, group_id: str) -> bool:
        await asyncio.sleep(0)
        return (tournament_id, group_id) in self.brackets

    async def create_bracket(self, matches: Sequence[Match]) -> list[str]:
        self.create_calls += 1
        await asyncio.sleep(0)
        key = (matches[0].tournament_id, matches[0].group_id)
        if key in self.brackets:
            self.rejected += 1
            raise aiomysql.IntegrityError(1062, f"Duplicate entry '{key[0]}-{key[1]}' for key 'PRIMARY'")
        self.brackets[key] = list(matches)
        ids = [m.id for m in matches]
        return ids[: len(ids) - self.short_by]

    async def list_matches(self, *, tournament_id: str, group_id: str) -> list[Match]:
        return list(self.brackets.get((tournament_id, group_id), []))


class FakeTournamentRepo:
    """In-memory stand-in for TournamentRepo (also usable as the roster)."""

    def __init__(self) -> None:
        self.tournaments: dict[str, dict[str, Any]] = {}
        self.groups: dict[str, dict[str, Any]] = {}
        self.teams: dict[str, str] = {}
        self.members: dict[str, list[str]] = {}

    # tournaments

    def _tournament_name_taken(self, name: str, *, other_than: str | None = None) -> bool:
        return any(t["name"] == name and tid != other_than for tid, t in self.tournaments.items())

    async def create_tournament(self, *, tournament_id: str, name: str, guild_id: int | None = None) -> str:
        if self._tournament_name_taken(name):
            raise aiomysql.IntegrityError(1062, f"Duplicate entry '{name}' for key 'uq_tournament_name'")
        self.tournaments[tournament_id] = {"tournament_id": tournament_id, "name": name, "guild_id": guild_id}
        return tournament_id

    async def get_tournament(self, *, tournament_id: str) -> Mapping[str, Any] | None:
        return self.tournaments.get(tournament_id)

    async def list_tournaments(self, *, guild_id: int | None = None) -> list[Mapping[str, Any]]:
        return [t for t in self.tournaments.values() if guild_id is None or t["guild_id"] == guild_id]

    async def rename_tournament(self, *, tournament_id: str, name: str) -> int:
        if self._tournament_name_taken(name, other_than=tournament_id):
            raise aiomysql.IntegrityError(1062, f"Duplicate entry '{name}' for key 'uq_tournament_name'")
        self.tournaments[tournament_id]["name"] = name
        return 1

    async def delete_tournament(self, *, tournament_id: str) -> int:
        for gid in [g for g, row in self.groups.items() if row["tournament_id"] == tournament_id]:
            for team_id in self.members.pop(gid):
                del self.teams[team_id]
            del self.groups[gid]
        return 1 if self.tournaments.pop(tournament_id, None) else 0

    # groups

    def _group_name_taken(self, tournament_id: str, name: str, *, other_than: str | None = None) -> bool:
        return any(
            g["tournament_id"] == tournament_id and g["name"] == name and gid != other_than
            for gid, g in self.groups.items()
        )

    async def create_group(self, *, tournament_id: str, group_id: str, name: str, max_teams: int) -> str:
        if self._group_name_taken(tournament_id, name):
            raise aiomysql.IntegrityError(1062, f"Duplicate entry '{tournament_id}-{name}' for key 'uq_group_name'")
        self.groups[group_id] = {
            "group_id": group_id,
            "tournament_id": tournament_id,
            "name": name,
            "max_teams": max_teams,
        }
        self.members[group_id] = []
        return group_id

    async def get_group(self, *, tournament_id: str, group_id: str) -> Mapping[str, Any] | None:
        g = self.groups.get(group_id)
        if g is None or g["tournament_id"] != tournament_id:
            return None
        return g

    async def list_groups(self, *, tournament_id: str) -> list[Mapping[str, Any]]:
        return [
            {**g, "team_count": len(self.members[g["group_id"]])}
            for g in self.groups.values()
            if g["tournament_id"] == tournament_id
        ]

    async def rename_group(self, *, tournament_id: str, group_id: str, name: str) -> int:
        if self._group_name_taken(tournament_id, name, other_than=group_id):
            raise aiomysql.IntegrityError(1062, f"Duplicate entry '{tournament_id}-{name}' for key 'uq_group_name'")
        self.groups[group_id]["name"] = name
        return 1

    # teams

    def _team_in_group(self, group_id: str, name: str) -> Optional[str]:
        for team_id in self.members.get(group_id, []):
            if self.teams[team_id] == name:
                return team_id
        return None

    async def join_group(self, *, group_id: str, team_id: str, name: str) -> tuple[JoinOutcome, Optional[str]]:
        # atomic like the row-locked transaction: no awaits between check and insert
        group = self.groups.get(group_id)
        if group is None:
            return JoinOutcome.MISSING, None
        existing = self._team_in_group(group_id, name)
        if existing:
            return JoinOutcome.EXISTING, existing
        if len(self.members[group_id]) >= group["max_teams"]:
            return JoinOutcome.FULL, None
        self.teams[team_id] = name
        self.members[group_id].append(team_id)
        return JoinOutcome.JOINED, team_id

    async def delete_group_team(self, *, group_id: str, team_id: str) -> int:
        if team_id not in self.members[group_id]:
            return 0
        self.members[group_id].remove(team_id)
        del self.teams[team_id]
        return 1

    async def rename_team(self, *, team_id: str, name: str) -> int:
        self.teams[team_id] = name
        return 1

    async def find_group_team_by_name(self, *, group_id: str, name: str) -> Mapping[str, Any] | None:
        team_id = self._team_in_group(group_id, name)
        return {"team_id": team_id, "name": name} if team_id else None

    async def list_group_teams(self, *, group_id: str) -> list[Mapping[str, Any]]:
        return [{"team_id": t, "name": self.teams[t]} for t in self.members.get(group_id, [])]

    async def count_group_teams(self, *, tournament_id: str, group_id: str) -> Optional[int]:
        if await self.get_group(tournament_id=tournament_id, group_id=group_id) is None:
            return None
        return len(self.members[group_id])


class FakeCursor:
    def __init__(self, conn: "FakeConn") -> None:
        self._conn = conn
        self.rowcount = 0

    async def execute(self, sql, params=()):
        self._conn.statements.append(" ".join(sql.split()))
        if self._conn.fail_on and self._conn.fail_on in self._conn.statements[-1]:
            raise aiomysql.OperationalError(2013, "Lost connection to MySQL server during query")
        self._conn.log.append((sql.strip().split()[0], params))
        self.rowcount = 1

    async def executemany(self, sql, rows):
        self._conn.statements.append(" ".join(sql.split()))
        self._conn.log.append(("EXECUTEMANY", len(rows)))
        self.rowcount = len(rows) - self._conn.short_by

    async def fetchone(self):
        return self._conn.results.pop(0) if self._conn.results else None

    async def fetchall(self):
        return self._conn.results.pop(0) if self._conn.results else []


class FakeConn:
    """
    Scripted aiomysql connection: every fetchone()/fetchall() pops the next
    entry of `results`; every statement is recorded. A statement containing
    `fail_on` raises OperationalError.
    """

    def __init__(self, *, short_by: int = 0, results: Sequence[Any] = (), fail_on: str | None = None) -> None:
        self.short_by = short_by
        self.fail_on = fail_on
        self.results = list(results)
        self.statements: list[str] = []
        self.log: list = []
        self.committed = False
        self.rolled_back = False

    async def begin(self):
        self.log.append(("BEGIN", None))

    async def commit(self):
        self.committed = True

    async def rollback(self):
        self.rolled_back = True

    @asynccontextmanager
    async def cursor(self, _cls=None):
        yield FakeCursor(self)


class FakePool:
    def __init__(self, conn: FakeConn) -> None:
        self.conn = conn

    @asynccontextmanager
    async def acquire(self):
        yield self.conn


class FakeDb:
    def __init__(self, conn: FakeConn) -> None:
        self.pool = FakePool(conn)


class EventSink:
    def __init__(self) -> None:
        self.events: list[ParticipantAdded] = []

    async def __call__(self, event: ParticipantAdded) -> None:
        self.events.append(event)


@pytest.fixture
def generator() -> DoubleEliminationGenerator:
    return DoubleEliminationGenerator()


@pytest.fixture
def matches(generator: DoubleEliminationGenerator) -> list[Match]:
    return generator.generate("t1", "g1")


@pytest.fixture
def by_id(matches: list[Match]) -> dict[str, Match]:
    return {m.id: m for m in matches}


@pytest.fixture
def store() -> FakeMatchStore:
    return FakeMatchStore()


@pytest.fixture
def full_roster() -> FakeRoster:
    return FakeRoster({("t1", "g1"): 32})
