from __future__ import annotations

import discord
from discord import app_commands
from discord.ext import commands

from domain.enums import BracketState
from renderers.bracket_view import BracketView
from renderers.embeds import Embeds
from services.group_service import GroupService, GroupServiceError


class TournamentCog(commands.Cog):
    tournament = app_commands.Group(name="tournament", description="Create tournaments, fill groups, view brackets.")

    def __init__(
        self,
        bot: commands.Bot,
        *,
        group_service: GroupService,
        embeds: Embeds,
        bracket_view: BracketView,
    ) -> None:
        self.bot = bot
        self.groups = group_service
        self.embeds = embeds
        self.bracket_view = bracket_view

    # -----------------------------
    # Helpers
    # -----------------------------

    async def _can_manage(self, interaction: discord.Interaction) -> bool:
        if not interaction.guild:
            return False
        if isinstance(interaction.user, discord.Member):
            return interaction.user.guild_permissions.manage_guild or interaction.user.guild_permissions.manage_channels
        return False

    async def _deny(self, interaction: discord.Interaction) -> None:
        await interaction.response.send_message("Missing permission to manage tournaments here.", ephemeral=True)

    # -----------------------------
    # Commands
    # -----------------------------

    @tournament.command(name="create", description="Create a new tournament.")
    @app_commands.describe(name="Tournament name")
    async def create(self, interaction: discord.Interaction, name: str) -> None:
        if not await self._can_manage(interaction):
            await self._deny(interaction)
            return
        await interaction.response.defer(ephemeral=False)

        try:
            tournament_id = await self.groups.create_tournament(
                name=name, guild_id=interaction.guild.id if interaction.guild else None
            )
        except GroupServiceError as ex:
            await interaction.followup.send(embed=self.embeds.error(title="Tournament error", description=str(ex)))
            return

        e = self.embeds.success(
            title="Tournament created",
            description=f"**ID:** `{tournament_id}`\n**Name:** {name}\nNext: `/tournament add_group {tournament_id} <name>`",
        )
        await interaction.followup.send(embed=e)

    @tournament.command(name="list", description="List the tournaments of this server.")
    async def list_tournaments(self, interaction: discord.Interaction) -> None:
        await interaction.response.defer(ephemeral=True)

        rows = await self.groups.list_tournaments(guild_id=interaction.guild.id if interaction.guild else None)
        if not rows:
            await interaction.followup.send(embed=self.embeds.warning(title="No tournaments", description="Create one with `/tournament create`."), ephemeral=True)
            return

        desc = "\n".join(f"`{t.tournament_id}` **{t.name}**" for t in rows)
        await interaction.followup.send(embed=self.embeds.info(title="Tournaments", description=desc), ephemeral=True)

    @tournament.command(name="info", description="Show a tournament and its groups.")
    async def info(self, interaction: discord.Interaction, tournament_id: str) -> None:
        await interaction.response.defer(ephemeral=True)

        try:
            t = await self.groups.get_tournament(tournament_id=tournament_id)
            groups = await self.groups.list_groups(tournament_id=tournament_id)
        except GroupServiceError as ex:
            await interaction.followup.send(embed=self.embeds.error(title="Not found", description=str(ex)), ephemeral=True)
            return

        lines = [f"**ID:** `{t.tournament_id}`", f"**Groups:** {len(groups)}"]
        lines.extend(f"- **{g['name']}**: {int(g['team_count'])}/{int(g['max_teams'])} teams" for g in groups)
        await interaction.followup.send(embed=self.embeds.info(title=t.name, description="\n".join(lines)), ephemeral=True)

    @tournament.command(name="rename", description="Rename a tournament.")
    async def rename(self, interaction: discord.Interaction, tournament_id: str, name: str) -> None:
        if not await self._can_manage(interaction):
            await self._deny(interaction)
            return
        await interaction.response.defer(ephemeral=True)

        try:
            t = await self.groups.rename_tournament(tournament_id=tournament_id, name=name)
        except GroupServiceError as ex:
            await interaction.followup.send(embed=self.embeds.warning(title="Rename failed", description=str(ex)), ephemeral=True)
            return

        await interaction.followup.send(embed=self.embeds.success(title="Renamed", description=f"`{t.tournament_id}` is now **{t.name}**."), ephemeral=True)

    @tournament.command(name="delete", description="Delete a tournament with its groups, teams and brackets.")
    async def delete(self, interaction: discord.Interaction, tournament_id: str) -> None:
        if not await self._can_manage(interaction):
            await self._deny(interaction)
            return
        await interaction.response.defer(ephemeral=True)

        try:
            await self.groups.delete_tournament(tournament_id=tournament_id)
        except GroupServiceError as ex:
            await interaction.followup.send(embed=self.embeds.error(title="Delete failed", description=str(ex)), ephemeral=True)
            return

        await interaction.followup.send(embed=self.embeds.success(title="Deleted", description=f"Tournament `{tournament_id}` is gone."), ephemeral=True)

    @tournament.command(name="add_group", description="Add a group (one double-elimination bracket) to a tournament.")
    async def add_group(self, interaction: discord.Interaction, tournament_id: str, name: str) -> None:
        if not await self._can_manage(interaction):
            await self._deny(interaction)
            return
        await interaction.response.defer(ephemeral=False)

        try:
            group_id = await self.groups.create_group(tournament_id=tournament_id, name=name)
        except GroupServiceError as ex:
            await interaction.followup.send(embed=self.embeds.error(title="Group error", description=str(ex)))
            return

        e = self.embeds.success(title="Group created", description=f"**Group ID:** `{group_id}`\n**Name:** {name}")
        await interaction.followup.send(embed=e)

    @tournament.command(name="rename_group", description="Rename a group.")
    async def rename_group(self, interaction: discord.Interaction, tournament_id: str, group_id: str, name: str) -> None:
        if not await self._can_manage(interaction):
            await self._deny(interaction)
            return
        await interaction.response.defer(ephemeral=True)

        try:
            g = await self.groups.rename_group(tournament_id=tournament_id, group_id=group_id, name=name)
        except GroupServiceError as ex:
            await interaction.followup.send(embed=self.embeds.warning(title="Rename failed", description=str(ex)), ephemeral=True)
            return

        await interaction.followup.send(embed=self.embeds.success(title="Renamed", description=f"Group `{g.group_id}` is now **{g.name}**."), ephemeral=True)

    @tournament.command(name="rename_team", description="Rename a team in a group.")
    async def rename_team(
        self, interaction: discord.Interaction, tournament_id: str, group_id: str, team_name: str, new_name: str
    ) -> None:
        if not await self._can_manage(interaction):
            await self._deny(interaction)
            return
        await interaction.response.defer(ephemeral=True)

        try:
            await self.groups.rename_team(tournament_id=tournament_id, group_id=group_id, team_name=team_name, new_name=new_name)
        except GroupServiceError as ex:
            await interaction.followup.send(embed=self.embeds.warning(title="Rename failed", description=str(ex)), ephemeral=True)
            return

        await interaction.followup.send(embed=self.embeds.success(title="Renamed", description=f"**{team_name}** is now **{new_name.strip()}**."), ephemeral=True)

    @tournament.command(name="groups", description="List the groups of a tournament.")
    async def list_groups(self, interaction: discord.Interaction, tournament_id: str) -> None:
        await interaction.response.defer(ephemeral=True)

        try:
            rows = await self.groups.list_groups(tournament_id=tournament_id)
        except GroupServiceError as ex:
            await interaction.followup.send(embed=self.embeds.error(title="Not found", description=str(ex)), ephemeral=True)
            return

        if not rows:
            await interaction.followup.send(embed=self.embeds.warning(title="No groups", description="Add one with `/tournament add_group`."), ephemeral=True)
            return

        desc = "\n".join(
            f"`{r['group_id']}` **{r['name']}**: {int(r['team_count'])}/{int(r['max_teams'])} teams" for r in rows
        )
        await interaction.followup.send(embed=self.embeds.info(title=f"Groups of {tournament_id}", description=desc), ephemeral=True)

    @tournament.command(name="join", description="Register a team into a group.")
    async def join(self, interaction: discord.Interaction, tournament_id: str, group_id: str, team_name: str) -> None:
        await interaction.response.defer(ephemeral=True)

        try:
            team_id = await self.groups.register_team(tournament_id=tournament_id, group_id=group_id, team_name=team_name)
        except GroupServiceError as ex:
            await interaction.followup.send(embed=self.embeds.warning(title="Registration failed", description=str(ex)), ephemeral=True)
            return

        e = self.embeds.success(title="Registered", description=f"**{team_name}** is in group `{group_id}` (team `{team_id}`).")
        await interaction.followup.send(embed=e, ephemeral=True)

    @tournament.command(name="teams", description="List the teams registered in a group.")
    async def teams(self, interaction: discord.Interaction, tournament_id: str, group_id: str) -> None:
        await interaction.response.defer(ephemeral=True)

        try:
            rows = await self.groups.list_teams(tournament_id=tournament_id, group_id=group_id)
        except GroupServiceError as ex:
            await interaction.followup.send(embed=self.embeds.error(title="Not found", description=str(ex)), ephemeral=True)
            return

        if not rows:
            await interaction.followup.send(embed=self.embeds.warning(title="No teams", description="Nobody has joined yet."), ephemeral=True)
            return

        desc = "\n".join(f"{i}. **{r['name']}** `{r['team_id']}`" for i, r in enumerate(rows, start=1))
        await interaction.followup.send(embed=self.embeds.info(title=f"Teams ({len(rows)})", description=desc), ephemeral=True)

    @tournament.command(name="drop", description="Remove a team from a group (before the bracket exists).")
    async def drop(self, interaction: discord.Interaction, tournament_id: str, group_id: str, team_name: str) -> None:
        if not await self._can_manage(interaction):
            await self._deny(interaction)
            return
        await interaction.response.defer(ephemeral=True)

        try:
            removed = await self.groups.drop_team(tournament_id=tournament_id, group_id=group_id, team_name=team_name)
        except GroupServiceError as ex:
            await interaction.followup.send(embed=self.embeds.warning(title="Drop failed", description=str(ex)), ephemeral=True)
            return

        if removed:
            e = self.embeds.success(title="Dropped", description=f"**{team_name}** left group `{group_id}`.")
        else:
            e = self.embeds.warning(title="No change", description=f"**{team_name}** is not in that group.")
        await interaction.followup.send(embed=e, ephemeral=True)

    @tournament.command(name="status", description="Show whether a group is still filling or has its bracket.")
    async def status(self, interaction: discord.Interaction, tournament_id: str, group_id: str) -> None:
        await interaction.response.defer(ephemeral=True)

        try:
            st = await self.groups.get_status(tournament_id=tournament_id, group_id=group_id)
        except GroupServiceError as ex:
            await interaction.followup.send(embed=self.embeds.error(title="Not found", description=str(ex)), ephemeral=True)
            return

        lines = [f"**Teams:** {st.participants}/{st.required}", f"**Bracket:** {st.state.value}"]
        if st.state == BracketState.FAILED:
            lines.append(f"**Error:** {st.failure}")
        e = self.embeds.bracket_state(title=f"Group {st.group.name}", state=st.state, description="\n".join(lines))
        await interaction.followup.send(embed=e, ephemeral=True)

    @tournament.command(name="bracket", description="Show the generated bracket of a group.")
    async def bracket(self, interaction: discord.Interaction, tournament_id: str, group_id: str) -> None:
        await interaction.response.defer(ephemeral=False)

        try:
            matches = await self.groups.list_matches(tournament_id=tournament_id, group_id=group_id)
        except GroupServiceError as ex:
            await interaction.followup.send(embed=self.embeds.error(title="Not found", description=str(ex)))
            return

        if not matches:
            await interaction.followup.send(embed=self.embeds.warning(title="No matches", description="The group is still filling up."))
            return

        text = self.bracket_view.render(matches=matches, title=f"Group {group_id}")
        await interaction.followup.send(embed=self.embeds.info(title="Bracket", description=f"{len(matches)} matches."))
        await interaction.followup.send(content=text)


async def setup(
    bot: commands.Bot,
    *,
    group_service: GroupService,
    embeds: Embeds,
    bracket_view: BracketView,
) -> None:
    await bot.add_cog(TournamentCog(bot, group_service=group_service, embeds=embeds, bracket_view=bracket_view))
