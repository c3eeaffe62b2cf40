# services/group_service.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Mapping, Optional
from uuid import uuid4

import aiomysql

from domain.enums import BracketState, JoinOutcome
from domain.models import GroupInfo, Match, ParticipantAdded, TournamentInfo
from repositories.match_repo import MatchRepo
from repositories.tournament_repo import TournamentRepo
from services.locks import KeyedLocks


logger = logging.getLogger(__name__)

Publisher = Callable[[ParticipantAdded], Awaitable[None]]
FailureLookup = Callable[[str, str], Optional[str]]


class GroupServiceError(Exception):
    pass


class TournamentNotFoundError(GroupServiceError):
    pass


class UnknownGroupError(GroupServiceError):
    pass


class UnknownTeamError(GroupServiceError):
    pass


class DuplicateNameError(GroupServiceError):
    pass


class GroupFullError(GroupServiceError):
    pass


class GroupLockedError(GroupServiceError):
    pass


@dataclass(frozen=True)
class GroupStatus:
    group: GroupInfo
    participants: int
    required: int
    state: BracketState
    failure: Optional[str] = None


def _new_id() -> str:
    return uuid4().hex


def _clean_name(name: str | None, what: str) -> str:
    name = (name or "").strip()[:128]
    if not name:
        raise GroupServiceError(f"{what} name is required.")
    return name


def _tournament_info(row: Mapping[str, Any]) -> TournamentInfo:
    guild_id = row.get("guild_id")
    return TournamentInfo(
        tournament_id=str(row["tournament_id"]),
        name=str(row["name"]),
        guild_id=int(guild_id) if guild_id is not None else None,
    )


class GroupService:
    """
    Tournaments, groups and team registration.

    Every successful registration publishes ParticipantAdded; the bracket
    itself is created by the BracketTrigger behind the publisher, never here.

    Roster changes of one group are serialized in this process (KeyedLocks)
    and the repository re-checks capacity under a row lock, so a group never
    ends up over its bracket size.
    """

    def __init__(
        self,
        *,
        tournament_repo: TournamentRepo,
        match_repo: MatchRepo,
        publish: Publisher,
        required_participants: int,
        failure_lookup: FailureLookup | None = None,
    ) -> None:
        self._tournaments = tournament_repo
        self._matches = match_repo
        self._publish = publish
        self._required = int(required_participants)
        self._failure_lookup = failure_lookup
        self._roster_locks = KeyedLocks()

    # -------------------------
    # Tournaments
    # -------------------------

    async def create_tournament(self, *, name: str, guild_id: int | None = None) -> str:
        name = _clean_name(name, "Tournament")
        try:
            return await self._tournaments.create_tournament(tournament_id=_new_id(), name=name, guild_id=guild_id)
        except aiomysql.IntegrityError as e:
            raise DuplicateNameError(f"A tournament named {name!r} already exists.") from e

    async def get_tournament(self, *, tournament_id: str) -> TournamentInfo:
        row = await self._tournaments.get_tournament(tournament_id=tournament_id)
        if not row:
            raise TournamentNotFoundError(f"Tournament not found: {tournament_id}")
        return _tournament_info(row)

    async def list_tournaments(self, *, guild_id: int | None = None) -> list[TournamentInfo]:
        rows = await self._tournaments.list_tournaments(guild_id=guild_id)
        return [_tournament_info(r) for r in rows]

    async def rename_tournament(self, *, tournament_id: str, name: str) -> TournamentInfo:
        await self.get_tournament(tournament_id=tournament_id)
        name = _clean_name(name, "Tournament")
        try:
            await self._tournaments.rename_tournament(tournament_id=tournament_id, name=name)
        except aiomysql.IntegrityError as e:
            raise DuplicateNameError(f"A tournament named {name!r} already exists.") from e
        return await self.get_tournament(tournament_id=tournament_id)

    async def delete_tournament(self, *, tournament_id: str) -> None:
        await self.get_tournament(tournament_id=tournament_id)
        await self._tournaments.delete_tournament(tournament_id=tournament_id)
        logger.info("Tournament %s deleted", tournament_id)

    # -------------------------
    # Groups
    # -------------------------

    async def create_group(self, *, tournament_id: str, name: str) -> str:
        await self.get_tournament(tournament_id=tournament_id)
        name = _clean_name(name, "Group")
        try:
            return await self._tournaments.create_group(
                tournament_id=tournament_id,
                group_id=_new_id(),
                name=name,
                max_teams=self._required,
            )
        except aiomysql.IntegrityError as e:
            raise DuplicateNameError(f"Group name already used in this tournament: {name}") from e

    async def get_group(self, *, tournament_id: str, group_id: str) -> GroupInfo:
        row = await self._tournaments.get_group(tournament_id=tournament_id, group_id=group_id)
        if not row:
            raise UnknownGroupError(f"Group not found: {group_id}")
        return GroupInfo(
            group_id=str(row["group_id"]),
            tournament_id=str(row["tournament_id"]),
            name=str(row["name"]),
            max_teams=int(row["max_teams"]),
        )

    async def list_groups(self, *, tournament_id: str) -> list[Mapping[str, Any]]:
        await self.get_tournament(tournament_id=tournament_id)
        return await self._tournaments.list_groups(tournament_id=tournament_id)

    async def rename_group(self, *, tournament_id: str, group_id: str, name: str) -> GroupInfo:
        await self.get_group(tournament_id=tournament_id, group_id=group_id)
        name = _clean_name(name, "Group")
        try:
            await self._tournaments.rename_group(tournament_id=tournament_id, group_id=group_id, name=name)
        except aiomysql.IntegrityError as e:
            raise DuplicateNameError(f"Group name already used in this tournament: {name}") from e
        return await self.get_group(tournament_id=tournament_id, group_id=group_id)

    # -------------------------
    # Registration
    # -------------------------

    async def register_team(self, *, tournament_id: str, group_id: str, team_name: str) -> str:
        """
        Adds a new team to the group and announces it.
        Returns the team_id (the existing one if the name is already registered).
        """
        group = await self.get_group(tournament_id=tournament_id, group_id=group_id)
        team_name = _clean_name(team_name, "Team")

        async with self._roster_locks.hold((tournament_id, group_id)):
            if await self._matches.bracket_exists(tournament_id=tournament_id, group_id=group_id):
                raise GroupLockedError("Bracket already generated; registration is closed.")
            outcome, team_id = await self._tournaments.join_group(
                group_id=group_id, team_id=_new_id(), name=team_name
            )

        if outcome is JoinOutcome.MISSING:
            raise UnknownGroupError(f"Group not found: {group_id}")
        if outcome is JoinOutcome.FULL:
            raise GroupFullError(f"Group is full ({group.max_teams} teams max).")
        if outcome is JoinOutcome.EXISTING:
            return str(team_id)

        logger.info("Team %s joined group %s/%s", team_id, tournament_id, group_id)
        await self._publish(ParticipantAdded(tournament_id=tournament_id, group_id=group_id, team_id=team_id))
        return str(team_id)

    async def list_teams(self, *, tournament_id: str, group_id: str) -> list[Mapping[str, Any]]:
        await self.get_group(tournament_id=tournament_id, group_id=group_id)
        return await self._tournaments.list_group_teams(group_id=group_id)

    async def rename_team(self, *, tournament_id: str, group_id: str, team_name: str, new_name: str) -> str:
        await self.get_group(tournament_id=tournament_id, group_id=group_id)
        new_name = _clean_name(new_name, "Team")

        async with self._roster_locks.hold((tournament_id, group_id)):
            existing = await self._tournaments.find_group_team_by_name(group_id=group_id, name=(team_name or "").strip())
            if not existing:
                raise UnknownTeamError(f"No team named {team_name!r} in this group.")
            clash = await self._tournaments.find_group_team_by_name(group_id=group_id, name=new_name)
            if clash and str(clash["team_id"]) != str(existing["team_id"]):
                raise DuplicateNameError(f"A team named {new_name!r} is already in this group.")
            await self._tournaments.rename_team(team_id=str(existing["team_id"]), name=new_name)
        return str(existing["team_id"])

    async def drop_team(self, *, tournament_id: str, group_id: str, team_name: str) -> bool:
        await self.get_group(tournament_id=tournament_id, group_id=group_id)

        async with self._roster_locks.hold((tournament_id, group_id)):
            if await self._matches.bracket_exists(tournament_id=tournament_id, group_id=group_id):
                raise GroupLockedError("Cannot drop after the bracket is generated.")
            existing = await self._tournaments.find_group_team_by_name(group_id=group_id, name=(team_name or "").strip())
            if not existing:
                return False
            n = await self._tournaments.delete_group_team(group_id=group_id, team_id=str(existing["team_id"]))
        return n > 0

    # -------------------------
    # Status / bracket
    # -------------------------

    async def get_status(self, *, tournament_id: str, group_id: str) -> GroupStatus:
        group = await self.get_group(tournament_id=tournament_id, group_id=group_id)
        count = await self._tournaments.count_group_teams(tournament_id=tournament_id, group_id=group_id) or 0

        failure: Optional[str] = None
        if await self._matches.bracket_exists(tournament_id=tournament_id, group_id=group_id):
            state = BracketState.CREATED
        else:
            failure = self._failure_lookup(tournament_id, group_id) if self._failure_lookup else None
            state = BracketState.FAILED if failure else BracketState.WAITING

        return GroupStatus(group=group, participants=count, required=self._required, state=state, failure=failure)

    async def list_matches(self, *, tournament_id: str, group_id: str) -> list[Match]:
        await self.get_group(tournament_id=tournament_id, group_id=group_id)
        return await self._matches.list_matches(tournament_id=tournament_id, group_id=group_id)
