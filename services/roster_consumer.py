# services/roster_consumer.py
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

import aiomysql

from domain.models import ParticipantAdded
from services.bracket_generator import BracketServiceError
from services.bracket_trigger import BracketTrigger, GroupNotFoundError, TriggerOutcome


logger = logging.getLogger(__name__)

# connectivity / timeout failures worth another attempt
TRANSIENT_ERRORS: tuple[type[BaseException], ...] = (
    aiomysql.OperationalError,
    asyncio.TimeoutError,
    ConnectionError,
)


@dataclass(frozen=True)
class GenerationFailure:
    tournament_id: str
    group_id: str
    reason: str
    attempts: int


class RosterEventConsumer:
    """
    In-process delivery of ParticipantAdded events to the BracketTrigger.

      - publish() enqueues; a small pool of workers drains the queue
      - the same group may be handled by two workers at once (duplicates are
        expected); the trigger's idempotency makes that safe
      - transient failures are retried with a fixed delay; anything else is
        logged and recorded per group, and the worker moves on
    """

    def __init__(
        self,
        *,
        trigger: BracketTrigger,
        workers: int = 2,
        max_attempts: int = 3,
        retry_delay: float = 1.0,
    ) -> None:
        if workers < 1:
            raise ValueError("workers must be >= 1")
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self._trigger = trigger
        self._workers = int(workers)
        self._max_attempts = int(max_attempts)
        self._retry_delay = float(retry_delay)
        self._queue: asyncio.Queue[ParticipantAdded] = asyncio.Queue()
        self._tasks: list[asyncio.Task] = []
        self._failures: dict[tuple[str, str], GenerationFailure] = {}

    # -------------------------
    # Lifecycle
    # -------------------------

    @property
    def running(self) -> bool:
        return bool(self._tasks)

    async def start(self) -> None:
        if self._tasks:
            return
        for i in range(self._workers):
            self._tasks.append(asyncio.create_task(self._worker(), name=f"roster-consumer-{i}"))
        logger.info("Roster consumer started with %s workers", self._workers)

    async def drain(self) -> None:
        """Wait until every published event has been handled."""
        await self._queue.join()

    async def stop(self) -> None:
        if not self._tasks:
            return
        for t in self._tasks:
            t.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        logger.info("Roster consumer stopped")

    # -------------------------
    # Public API
    # -------------------------

    async def publish(self, event: ParticipantAdded) -> None:
        await self._queue.put(event)

    def last_failure(self, *, tournament_id: str, group_id: str) -> Optional[GenerationFailure]:
        return self._failures.get((tournament_id, group_id))

    def failure_reason(self, tournament_id: str, group_id: str) -> Optional[str]:
        f = self.last_failure(tournament_id=tournament_id, group_id=group_id)
        return f.reason if f else None

    async def handle(self, event: ParticipantAdded) -> Optional[TriggerOutcome]:
        """
        Deliver one event with retries. Never raises for bracket or collaborator
        failures; returns None when the event ultimately failed.
        """
        attempt = 0
        while True:
            attempt += 1
            try:
                outcome = await self._trigger.on_participant_added(
                    tournament_id=event.tournament_id,
                    group_id=event.group_id,
                )
            except TRANSIENT_ERRORS as ex:
                if attempt < self._max_attempts:
                    logger.warning(
                        "Transient failure for %s/%s (attempt %s/%s): %s",
                        event.tournament_id, event.group_id, attempt, self._max_attempts, ex,
                    )
                    await asyncio.sleep(self._retry_delay)
                    continue
                self._record_failure(event, f"gave up after {attempt} attempts: {ex}", attempt)
                logger.error("Bracket trigger gave up for %s/%s: %s", event.tournament_id, event.group_id, ex)
                return None
            except GroupNotFoundError as ex:
                logger.warning("%s", ex)
                return None
            except BracketServiceError as ex:
                # invariant violations and partial writes: alert, do not retry
                self._record_failure(event, str(ex), attempt)
                logger.error("Bracket generation failed for %s/%s: %s", event.tournament_id, event.group_id, ex)
                return None

            if outcome is not TriggerOutcome.WAITING:
                self._failures.pop(event.group_key, None)
            return outcome

    # -------------------------
    # Internals
    # -------------------------

    def _record_failure(self, event: ParticipantAdded, reason: str, attempts: int) -> None:
        self._failures[event.group_key] = GenerationFailure(
            tournament_id=event.tournament_id,
            group_id=event.group_id,
            reason=reason,
            attempts=attempts,
        )

    async def _worker(self) -> None:
        while True:
            event = await self._queue.get()
            try:
                await self.handle(event)
            except Exception:
                # keep the worker alive; the failure is in the log
                logger.exception("Unexpected error handling %s", event)
                self._record_failure(event, "unexpected error (see logs)", 1)
            finally:
                self._queue.task_done()
