"""
Error taxonomy shared by the coordinator, the opponent channel and the HTTP layer.

Every error states what was committed to the session when it was raised:
- "nothing": session untouched
- "client":  the client's half-move is on the board, the opponent's reply is not
- "both":    both half-moves are on the board
"""
from __future__ import annotations

from typing import Any, Optional

NOTHING = "nothing"
CLIENT = "client"
BOTH = "both"


class ChessPlayError(Exception):
    code = "error"
    status_code = 500

    def __init__(self, message: str, committed: str = NOTHING):
        super().__init__(message)
        self.message = message
        self.committed = committed

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.code, "message": self.message, "committed": self.committed}


class InputError(ChessPlayError):
    """Malformed, missing or ambiguous request input."""
    code = "input_error"
    status_code = 400


class InvalidMoveNotation(ChessPlayError):
    """Move string is not a well-formed move for the current position."""
    code = "invalid_move_notation"
    status_code = 400


class IllegalMove(ChessPlayError):
    """Well-formed move that is not legal here (wrong piece, exposes king, wrong turn)."""
    code = "illegal_move"
    status_code = 400


class GameOver(IllegalMove):
    code = "game_over"


class OpponentProtocolFault(ChessPlayError):
    """The opponent failed to answer, or answered with a move that cannot be played.

    `view` holds the game view at the time of the fault when the coordinator has one.
    """
    code = "opponent_protocol_fault"
    status_code = 500

    def __init__(self, message: str, committed: str = NOTHING, view: Optional[Any] = None):
        super().__init__(message, committed)
        self.view = view

    def to_dict(self) -> dict[str, Any]:
        d = super().to_dict()
        if self.view is not None:
            d["view"] = self.view.to_dict()
        return d


class ResourceFault(ChessPlayError):
    """Static asset, rendering or serialization failure unrelated to game logic."""
    code = "resource_fault"
    status_code = 500


class StartupFault(ChessPlayError):
    """Configuration or engine start failure; the process must not serve traffic."""
    code = "startup_fault"
    status_code = 500


__all__ = [
    "NOTHING",
    "CLIENT",
    "BOTH",
    "ChessPlayError",
    "InputError",
    "InvalidMoveNotation",
    "IllegalMove",
    "GameOver",
    "OpponentProtocolFault",
    "ResourceFault",
    "StartupFault",
]
