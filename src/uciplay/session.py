"""
Session: the single owned unit of authoritative game state, plus its result views.

- Session owns a python-chess Board; moves are appended only through push().
- Turn is always read from the board, never stored separately.
- GameView / ExchangeResult are fixed-shape, validated records built from a snapshot.
- pgn() serializes the game so far with headers and the current result.
"""
from __future__ import annotations

import datetime
import uuid
from dataclasses import dataclass, field
from typing import Any, Optional

import chess
import chess.pgn

from .notation import legal_moves, san_history


def color_name(color: chess.Color) -> str:
    return "white" if color == chess.WHITE else "black"


class Session:
    """One game: board, move history and the side the client plays."""

    def __init__(self, client_color: chess.Color = chess.WHITE, opponent_name: str = "Engine"):
        self.board = chess.Board()
        self.client_color = client_color
        # New token per session; the opponent channel treats a change as a new game
        self.game_id = uuid.uuid4().hex
        self.created_at = datetime.datetime.now()
        self._headers: dict[str, str] = {
            "Event": "uciplay",
            "Site": "?",
            "Date": self.created_at.strftime("%Y.%m.%d"),
            "Round": "?",
            "White": "Player" if client_color == chess.WHITE else opponent_name,
            "Black": opponent_name if client_color == chess.WHITE else "Player",
        }

    @property
    def history(self) -> list[chess.Move]:
        return list(self.board.move_stack)

    @property
    def client_to_move(self) -> bool:
        return self.board.turn == self.client_color

    def push(self, mv: chess.Move) -> str:
        """Apply an already validated move and return its SAN."""
        san = self.board.san(mv)
        self.board.push(mv)
        return san

    def copy(self) -> "Session":
        dup = Session.__new__(Session)
        dup.board = self.board.copy()
        dup.client_color = self.client_color
        dup.game_id = self.game_id
        dup.created_at = self.created_at
        dup._headers = dict(self._headers)
        return dup

    # ---------------- Status / Export -----------------
    def status(self) -> str:
        if self.board.is_game_over():
            return self.board.result()
        return "*"

    def view(self) -> "GameView":
        return GameView(
            fen=self.board.fen(),
            legal_moves=tuple(legal_moves(self.board)),
            pgn=tuple(san_history(self.board)),
            turn=color_name(self.board.turn),
            result=self.status(),
        )

    def pgn(self) -> str:
        game = chess.pgn.Game()
        for k, v in self._headers.items():
            game.headers[k] = v
        game.headers["Result"] = self.status()
        node = game
        for mv in self.board.move_stack:
            node = node.add_variation(mv)
        exporter = chess.pgn.StringExporter(headers=True, variations=False, comments=False)
        return game.accept(exporter)


@dataclass(frozen=True)
class GameView:
    """Snapshot of a position: FEN, legal moves (UCI) and the move history (SAN)."""
    fen: str
    legal_moves: tuple[str, ...]
    pgn: tuple[str, ...]
    turn: str
    result: str = "*"

    def __post_init__(self):
        if not self.fen:
            raise ValueError("GameView.fen must not be empty")
        if self.turn not in ("white", "black"):
            raise ValueError(f"GameView.turn must be 'white' or 'black', got {self.turn!r}")
        if self.result not in ("*", "1-0", "0-1", "1/2-1/2"):
            raise ValueError(f"GameView.result is not a PGN result: {self.result!r}")

    @property
    def game_over(self) -> bool:
        return self.result != "*"

    def to_dict(self) -> dict[str, Any]:
        return {
            "fen": self.fen,
            "legal_moves": list(self.legal_moves),
            "pgn": list(self.pgn),
            "turn": self.turn,
            "result": self.result,
        }


@dataclass(frozen=True)
class ExchangeResult:
    """Outcome of a completed exchange.

    best_move is None only when the client's move ended the game and the opponent was not asked.
    """
    best_move: Optional[str]
    view: GameView
    info: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if self.best_move is None and not self.view.game_over:
            raise ValueError("ExchangeResult.best_move is required while the game is still running")
        if not isinstance(self.info, dict):
            raise ValueError("ExchangeResult.info must be a dict")

    def to_dict(self) -> dict[str, Any]:
        d = {"best_move": self.best_move}
        d.update(self.view.to_dict())
        d["info"] = self.info
        return d
