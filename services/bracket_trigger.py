# services/bracket_trigger.py
from __future__ import annotations

import logging
from enum import Enum
from typing import Optional, Protocol, Sequence

import aiomysql

from domain.models import Match
from services.bracket_generator import (
    BracketServiceError,
    DoubleEliminationGenerator,
    check_bracket,
)
from services.locks import KeyedLocks


logger = logging.getLogger(__name__)


class GroupNotFoundError(BracketServiceError):
    pass


class PartialWriteError(BracketServiceError):
    def __init__(self, *, tournament_id: str, group_id: str, expected: int, created: int) -> None:
        self.expected = expected
        self.created = created
        super().__init__(
            f"Bracket write for tournament {tournament_id} group {group_id} "
            f"created {created} matches, expected {expected}."
        )


class TriggerOutcome(str, Enum):
    WAITING = "waiting"
    ALREADY_EXISTS = "already_exists"
    CREATED = "created"


class RosterSource(Protocol):
    async def count_group_teams(self, *, tournament_id: str, group_id: str) -> Optional[int]: ...


class MatchStore(Protocol):
    async def bracket_exists(self, *, tournament_id: str, group_id: str) -> bool: ...

    async def create_bracket(self, matches: Sequence[Match]) -> list[str]: ...


class BracketTrigger:
    """
    Turns "a participant joined group G" into "group G has its bracket",
    at most once per (tournament_id, group_id).

    Two guards:
      - a per-group lock (dropped once idle) so handlers in this process never
        race the existence check against each other
      - the store's create_bracket is all-or-nothing and rejects a second
        bracket for the same group (duplicate key), which covers other processes
    """

    def __init__(
        self,
        *,
        roster: RosterSource,
        store: MatchStore,
        generator: DoubleEliminationGenerator | None = None,
    ) -> None:
        self._roster = roster
        self._store = store
        self._generator = generator or DoubleEliminationGenerator()
        self._locks = KeyedLocks()

    @property
    def required_participants(self) -> int:
        return self._generator.required_participants

    async def on_participant_added(self, *, tournament_id: str, group_id: str) -> TriggerOutcome:
        count = await self._roster.count_group_teams(tournament_id=tournament_id, group_id=group_id)
        if count is None:
            raise GroupNotFoundError(f"Group not found: tournament {tournament_id}, group {group_id}")

        required = self.required_participants
        if int(count) != required:
            logger.info(
                "Group %s/%s has %s teams, waiting for %s", tournament_id, group_id, count, required
            )
            return TriggerOutcome.WAITING

        async with self._locks.hold((tournament_id, group_id)):
            if await self._store.bracket_exists(tournament_id=tournament_id, group_id=group_id):
                logger.info("Bracket already exists for %s/%s", tournament_id, group_id)
                return TriggerOutcome.ALREADY_EXISTS

            return await self._create(tournament_id, group_id)

    # -------------------------
    # Internals
    # -------------------------

    async def _create(self, tournament_id: str, group_id: str) -> TriggerOutcome:
        matches = self._generator.generate(tournament_id, group_id)
        # refuse to persist a corrupt bracket
        check_bracket(matches, self._generator.bracket_size)

        expected = self._generator.match_count
        logger.info("Creating %s matches for %s/%s", expected, tournament_id, group_id)
        try:
            created_ids = await self._store.create_bracket(matches)
        except aiomysql.IntegrityError:
            # Unique key hit: another writer created this bracket first.
            logger.info("Bracket for %s/%s was created concurrently; skipping", tournament_id, group_id)
            return TriggerOutcome.ALREADY_EXISTS

        if len(created_ids) != expected:
            raise PartialWriteError(
                tournament_id=tournament_id,
                group_id=group_id,
                expected=expected,
                created=len(created_ids),
            )

        logger.info("Created bracket for %s/%s (%s matches)", tournament_id, group_id, expected)
        return TriggerOutcome.CREATED
