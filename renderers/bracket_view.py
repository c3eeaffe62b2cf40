from __future__ import annotations

from typing import Optional

from domain.enums import BracketType
from domain.models import Match


def _pad(s: str, width: int) -> str:
    s = s or ""
    if len(s) >= width:
        return s[: max(0, width - 1)] + "…" if width >= 2 else s[:width]
    return s + (" " * (width - len(s)))


class BracketView:
    """
    Monospace text view of a generated bracket for Discord.

    One line per match: its code, where the winner goes, where the loser drops.
        W1-01  win→W2-01  lose→L1-01
    """

    def __init__(self, *, code_width: int = 6) -> None:
        self._code_width = int(code_width)

    def render(
        self,
        *,
        matches: list[Match],
        title: str = "Bracket",
        include_losers: bool = True,
        max_lines: int = 55,
    ) -> str:
        codes = {m.id: m.code for m in matches}

        wb = [m for m in matches if m.bracket == BracketType.WINNERS and not m.is_grand_final]
        lb = [m for m in matches if m.bracket == BracketType.LOSERS]
        gf = [m for m in matches if m.is_grand_final]

        lines: list[str] = [f"=== {title} ===", ""]

        lines.append("-- WINNERS --")
        lines.extend(self._render_section(wb, codes))
        lines.append("")

        if include_losers and lb:
            lines.append("-- LOSERS --")
            lines.extend(self._render_section(lb, codes))
            lines.append("")

        if gf:
            lines.append("-- GRAND FINALS --")
            lines.extend(self._render_section(gf, codes, with_rounds=False))
            lines.append("")

        # Discord message limit: keep the head and the finals
        if len(lines) > max_lines:
            head = lines[:10]
            tail = lines[-(max_lines - 12) :]
            lines = head + ["...", ""] + tail

        return "```text\n" + "\n".join(lines).rstrip() + "\n```"

    def _edge(self, label: str, target: Optional[str], codes: dict[str, str]) -> str:
        if target is None:
            return ""
        return f"{label}→{codes.get(target, '?')}"

    def _render_section(self, matches: list[Match], codes: dict[str, str], *, with_rounds: bool = True) -> list[str]:
        if not matches:
            return ["(none)"]

        out: list[str] = []
        ordered = sorted(matches, key=lambda m: (m.round_number, m.match_number_in_round))
        curr_round: Optional[int] = None
        for m in ordered:
            if with_rounds and curr_round != m.round_number:
                curr_round = m.round_number
                out.append(f"Round {m.round_number}:")
            edges = [
                self._edge("win", m.next_match_winner_id, codes),
                self._edge("lose", m.next_match_loser_id, codes),
            ]
            label = "reset" if m.is_bracket_reset else m.status.value
            tail = "  ".join(e for e in edges if e) or "champion"
            out.append(f"  {_pad(m.code, self._code_width)} {tail}  [{label}]")
        return out
