from __future__ import annotations

import os, sys
from dataclasses import asdict
from uuid import uuid4

HERE = os.path.dirname(__file__)
ROOT = os.path.abspath(os.path.join(HERE, "..", ".."))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

import asyncio
import logging
from config import load_env_file, load_mysql_config, load_bracket_config
from db.pool import DbPool, MySqlPoolConfig
from domain.enums import JoinOutcome
from domain.models import ParticipantAdded
from repositories.tournament_repo import TournamentRepo
from repositories.match_repo import MatchRepo
from services.bracket_generator import DoubleEliminationGenerator
from services.bracket_trigger import BracketTrigger, TriggerOutcome
from services.roster_consumer import RosterEventConsumer

async def main() -> None:
    load_env_file()
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    bc = load_bracket_config()

    run_id = os.getenv("SMOKE_RUN_ID") or f"smk_{uuid4().hex[:10]}"

    db = DbPool()
    await db.start(MySqlPoolConfig(**asdict(load_mysql_config())))
    await db.apply_schema()

    tournaments = TournamentRepo(db)
    matches = MatchRepo(db)
    generator = DoubleEliminationGenerator(bracket_size=bc.bracket_size)
    trigger = BracketTrigger(roster=tournaments, store=matches, generator=generator)

    tournament_id = await tournaments.create_tournament(tournament_id=run_id, name=f"SMOKE_{run_id}")
    group_id = await tournaments.create_group(
        tournament_id=tournament_id, group_id=f"{run_id}_g1", name="Group 1", max_teams=bc.bracket_size
    )

    # Fill the group one team short, then check the trigger only waits
    for i in range(bc.bracket_size - 1):
        joined, _ = await tournaments.join_group(group_id=group_id, team_id=f"{run_id}_t{i + 1}", name=f"SMOKE_TEAM_{i + 1}")
        assert joined is JoinOutcome.JOINED, joined
    outcome = await trigger.on_participant_added(tournament_id=tournament_id, group_id=group_id)
    assert outcome is TriggerOutcome.WAITING, outcome

    last = f"{run_id}_t{bc.bracket_size}"
    joined, _ = await tournaments.join_group(group_id=group_id, team_id=last, name=f"SMOKE_TEAM_{bc.bracket_size}")
    assert joined is JoinOutcome.JOINED, joined

    # The group is at capacity now: one more join must be refused
    over, _ = await tournaments.join_group(group_id=group_id, team_id=f"{run_id}_extra", name="SMOKE_TEAM_EXTRA")
    assert over is JoinOutcome.FULL, over

    # Duplicate deliveries through several workers: exactly one bracket
    consumer = RosterEventConsumer(trigger=trigger, workers=4, max_attempts=bc.trigger_max_attempts)
    await consumer.start()
    for _ in range(8):
        await consumer.publish(ParticipantAdded(tournament_id=tournament_id, group_id=group_id, team_id=last))
    await consumer.drain()
    await consumer.stop()

    # A second trigger object has its own locks: the guard row must still hold
    other = BracketTrigger(roster=tournaments, store=matches, generator=generator)
    outcome = await other.on_participant_added(tournament_id=tournament_id, group_id=group_id)
    assert outcome is TriggerOutcome.ALREADY_EXISTS, outcome

    rows = await matches.list_matches(tournament_id=tournament_id, group_id=group_id)
    assert len(rows) == generator.match_count, len(rows)
    assert rows[-1].is_bracket_reset and rows[-2].is_grand_final

    await tournaments.delete_tournament(tournament_id=tournament_id)
    await db.close()
    print(f"OK: bracket smoke passed. run_id={run_id} matches={len(rows)}")

if __name__ == "__main__":
    asyncio.run(main())
