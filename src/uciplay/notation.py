"""
Move decoding and rendering helpers.

Two notations are accepted from the client:
- "uci": long algebraic coordinates (e2e4, e7e8q).
- "san": standard algebraic (e4, Nf3, O-O).

Exactly one of them must be supplied per move. Decoding distinguishes a
malformed string (InvalidMoveNotation) from a well-formed move that cannot be
played in the current position (IllegalMove).
"""
from __future__ import annotations

import re
from typing import Optional

import chess

from .errors import IllegalMove, InputError, InvalidMoveNotation

UCI_RE = re.compile(r"^[a-h][1-8][a-h][1-8][qrbn]?$", re.I)
CASTLE_ZERO = {"0-0": "O-O", "0-0-0": "O-O-O", "o-o": "O-O", "o-o-o": "O-O-O"}


def _present(value: Optional[str]) -> bool:
    return value is not None and value.strip() != ""


def decode_move(board: chess.Board, uci: Optional[str] = None, san: Optional[str] = None) -> chess.Move:
    """Decode exactly one of uci/san against board and return a legal move.

    Raises InputError (both or neither given), InvalidMoveNotation or IllegalMove.
    The board is not modified.
    """
    has_uci, has_san = _present(uci), _present(san)
    if has_uci and has_san:
        raise InputError("Supply the move in exactly one notation, not both 'uci' and 'san'")
    if not has_uci and not has_san:
        raise InputError("Move not specified")
    if has_uci:
        return _decode_uci(board, uci.strip())
    return _decode_san(board, san.strip())


def _decode_uci(board: chess.Board, token: str) -> chess.Move:
    token = token.lower()
    if token == "0000":
        raise IllegalMove("The null move cannot be played")
    if not UCI_RE.fullmatch(token):
        raise InvalidMoveNotation(f"Invalid UCI move: '{token}'")
    try:
        return board.parse_uci(token)
    except chess.IllegalMoveError:
        raise IllegalMove(f"Illegal move: '{token}' in {board.fen()}")
    except chess.InvalidMoveError:
        raise InvalidMoveNotation(f"Invalid UCI move: '{token}'")


def _decode_san(board: chess.Board, token: str) -> chess.Move:
    token = CASTLE_ZERO.get(token.lower(), token)
    if token in ("--", "Z0", "0000", "@@@@"):
        raise IllegalMove("The null move cannot be played")
    try:
        return board.parse_san(token)
    except chess.AmbiguousMoveError:
        raise InvalidMoveNotation(f"Ambiguous SAN move: '{token}'")
    except chess.IllegalMoveError:
        raise IllegalMove(f"Illegal move: '{token}' in {board.fen()}")
    except chess.InvalidMoveError:
        raise InvalidMoveNotation(f"Invalid SAN move: '{token}'")


def legal_moves(board: chess.Board) -> list[str]:
    """Legal moves in UCI notation, in generation order."""
    return [mv.uci() for mv in board.legal_moves]


def san_history(board: chess.Board) -> list[str]:
    """Re-render the whole move stack as SAN by replaying it from the root position."""
    replay = board.root()
    sans: list[str] = []
    for mv in board.move_stack:
        sans.append(replay.san(mv))
        replay.push(mv)
    return sans


def replay_is_legal(board: chess.Board) -> bool:
    """True if every move on the stack is legal in the position immediately before it."""
    replay = board.root()
    for mv in board.move_stack:
        if not replay.is_legal(mv):
            return False
        replay.push(mv)
    return replay.fen() == board.fen()


__all__ = ["decode_move", "legal_moves", "san_history", "replay_is_legal"]
