from __future__ import annotations

from enum import Enum


class BracketType(str, Enum):
    WINNERS = "W"
    LOSERS = "L"


class MatchStatus(str, Enum):
    PENDING = "pending"
    OPEN = "open"
    COMPLETED = "completed"


class BracketState(str, Enum):
    WAITING = "waiting"
    CREATED = "created"
    FAILED = "failed"


class JoinOutcome(str, Enum):
    JOINED = "joined"
    EXISTING = "existing"
    FULL = "full"
    MISSING = "missing"
