from __future__ import annotations

import asyncio
import logging
import signal
from dataclasses import asdict
from typing import Optional

import discord
from discord.ext import commands

from config import load_config
from db.pool import DbPool, MySqlPoolConfig

from repositories.tournament_repo import TournamentRepo
from repositories.match_repo import MatchRepo

from services.bracket_generator import DoubleEliminationGenerator
from services.bracket_trigger import BracketTrigger
from services.roster_consumer import RosterEventConsumer
from services.group_service import GroupService

from renderers.embeds import Embeds
from renderers.bracket_view import BracketView

from cogs.tournament_cog import setup as setup_tournament_cog


class BracketBot(commands.Bot):
    def __init__(self) -> None:
        self.cfg = load_config()

        intents = discord.Intents.default()
        super().__init__(
            command_prefix=self.cfg.command_prefix,
            intents=intents,
            allowed_mentions=discord.AllowedMentions.none(),
        )

        self.db: Optional[DbPool] = None
        self.consumer: Optional[RosterEventConsumer] = None

    async def setup_hook(self) -> None:
        logging.info("Starting setup_hook...")

        # --- DB ---
        self.db = DbPool()
        await self.db.start(MySqlPoolConfig(**asdict(self.cfg.mysql)))
        await self.db.apply_schema()

        # --- Repos ---
        tournament_repo = TournamentRepo(self.db)
        match_repo = MatchRepo(self.db)

        # --- Bracket core ---
        bc = self.cfg.bracket
        generator = DoubleEliminationGenerator(bracket_size=bc.bracket_size)
        trigger = BracketTrigger(roster=tournament_repo, store=match_repo, generator=generator)
        self.consumer = RosterEventConsumer(
            trigger=trigger,
            workers=bc.trigger_workers,
            max_attempts=bc.trigger_max_attempts,
            retry_delay=bc.trigger_retry_delay,
        )
        await self.consumer.start()

        # --- Services ---
        group_service = GroupService(
            tournament_repo=tournament_repo,
            match_repo=match_repo,
            publish=self.consumer.publish,
            required_participants=generator.required_participants,
            failure_lookup=self.consumer.failure_reason,
        )

        # --- Cogs ---
        await setup_tournament_cog(self, group_service=group_service, embeds=Embeds(), bracket_view=BracketView())

        # --- Slash sync ---
        if self.cfg.dev_guild_id:
            guild = discord.Object(id=self.cfg.dev_guild_id)
            self.tree.copy_global_to(guild=guild)
            await self.tree.sync(guild=guild)
            logging.info("Slash commands synced to DEV guild %s", self.cfg.dev_guild_id)
        else:
            await self.tree.sync()
            logging.info("Slash commands synced globally")

        logging.info("setup_hook complete (bracket size %s).", bc.bracket_size)

    async def close(self) -> None:
        try:
            await super().close()
        finally:
            if self.consumer:
                await self.consumer.stop()
                self.consumer = None
            if self.db:
                await self.db.close()
                self.db = None


async def _run_bot() -> None:
    cfg = load_config()

    logging.basicConfig(
        level=getattr(logging, cfg.log_level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    bot = BracketBot()

    loop = asyncio.get_running_loop()
    stop_event = asyncio.Event()

    def _request_stop(*_args) -> None:
        stop_event.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, _request_stop)
        except NotImplementedError:
            pass

    async with bot:
        runner = asyncio.create_task(bot.start(cfg.token))
        await stop_event.wait()
        await bot.close()
        await asyncio.gather(runner, return_exceptions=True)


def main() -> None:
    asyncio.run(_run_bot())


if __name__ == "__main__":
    main()
