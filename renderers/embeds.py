from __future__ import annotations

from dataclasses import dataclass

import discord

from domain.enums import BracketState


@dataclass(frozen=True)
class EmbedTheme:
    primary: int = 0xB08D57
    success: int = 0x2ECC71
    warning: int = 0xF1C40F
    danger: int = 0xE74C3C
    neutral: int = 0x5865F2


class Embeds:
    """
    One place for embed colors and footer so every command looks the same.
    """

    def __init__(self, *, theme: EmbedTheme | None = None, footer: str = "Bracket Bot") -> None:
        self._theme = theme or EmbedTheme()
        self._footer = footer

    def base(self, *, title: str, description: str | None = None, color: int | None = None) -> discord.Embed:
        e = discord.Embed(
            title=title,
            description=description,
            color=color if color is not None else self._theme.primary,
        )
        e.set_footer(text=self._footer)
        return e

    def info(self, *, title: str, description: str | None = None) -> discord.Embed:
        return self.base(title=title, description=description, color=self._theme.neutral)

    def success(self, *, title: str, description: str | None = None) -> discord.Embed:
        return self.base(title=title, description=description, color=self._theme.success)

    def warning(self, *, title: str, description: str | None = None) -> discord.Embed:
        return self.base(title=title, description=description, color=self._theme.warning)

    def error(self, *, title: str, description: str | None = None) -> discord.Embed:
        return self.base(title=title, description=description, color=self._theme.danger)

    def bracket_state(self, *, title: str, state: BracketState, description: str) -> discord.Embed:
        # waiting is normal flow; failed is an operational alert
        if state == BracketState.CREATED:
            return self.success(title=title, description=description)
        if state == BracketState.FAILED:
            return self.error(title=title, description=description)
        return self.info(title=title, description=description)
