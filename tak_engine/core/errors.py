from enum import Enum
from typing import Optional


class TakError(Exception):
    """Base class for every error raised by the engine."""


class IllegalMoveReason(Enum):
    EMPTY_ORIGIN = "EmptyOrigin"
    NOT_OWNER = "NotOwner"
    RESERVE_EXHAUSTED = "ReserveExhausted"
    OCCUPIED_TARGET = "OccupiedTarget"
    BLOCKED = "BlockedByWallOrCapstone"
    OFF_BOARD = "OffBoard"
    OPENING_RULE = "OpeningRuleViolation"
    INVALID_CARRY = "InvalidCarry"
    GAME_OVER = "GameOver"
    NOTHING_TO_UNDO = "NothingToUndo"


class IllegalMove(TakError):
    def __init__(self, reason: IllegalMoveReason, move=None, detail: Optional[str] = None):
        self.reason = reason
        self.move = move
        message = reason.value
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class MalformedNotation(TakError, ValueError):
    def __init__(self, text: str, detail: str = ""):
        self.text = text
        super().__init__(f"Malformed notation {text!r}" + (f": {detail}" if detail else ""))


class SearchExhausted(TakError):
    """Search was asked for a move in a position that has none."""
