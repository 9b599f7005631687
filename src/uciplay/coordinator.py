"""
Single-game session coordinator.

- GameCoordinator owns one Session and one opponent channel, both serialized resources.
- apply_move_exchange(): decode + apply the client move, sync the opponent, timed search,
  apply the opponent's reply, return an ExchangeResult.
- request_opponent_move(): opponent half of an exchange only (client plays black, or
  recovery after a fault left the client's move without a reply).
- current_view()/render_board()/export_pgn(): consistent snapshots, never torn by an
  in-flight exchange and never blocked by a running search.
- reset(): replaces the session wholesale; close(): drains the in-flight exchange then
  tears the channel down.

Locking: _exchange_lock is held for a whole exchange (and for reset/close). Exchanges play
on a copy of the session; _state_lock is held only while that copy is swapped in or a
snapshot is taken, so readers see the position before or after an exchange, never between.
"""
from __future__ import annotations

import enum
import logging
import threading
from typing import Any, Optional

import chess

from .errors import CLIENT, NOTHING, GameOver, IllegalMove, OpponentProtocolFault
from .notation import decode_move
from .session import ExchangeResult, GameView, Session, color_name


class ExchangeState(str, enum.Enum):
    IDLE = "idle"
    AWAITING_OPPONENT = "awaiting_opponent"
    FAULTED = "faulted"


class GameCoordinator:
    def __init__(self, channel, client_color: chess.Color = chess.WHITE):
        self.log = logging.getLogger("GameCoordinator")
        self.channel = channel
        self.session = Session(client_color, opponent_name=self._opponent_name())
        self.state = ExchangeState.IDLE
        self._closed = False
        self._exchange_lock = threading.Lock()
        self._state_lock = threading.Lock()

    def _opponent_name(self) -> str:
        named = self.channel.descriptor().get("info", {}).get("name")
        return named or getattr(self.channel, "name", None) or "Engine"

    # ---------------- Exchanges -----------------
    def apply_move_exchange(self, uci: Optional[str] = None, san: Optional[str] = None) -> ExchangeResult:
        """Play the client's move, then the opponent's reply.

        Both half-moves are played on a working copy that replaces the session only
        when the exchange ends. Nothing is committed on InputError/InvalidMoveNotation/
        IllegalMove. An OpponentProtocolFault raised here always has committed="client".
        """
        with self._exchange_lock:
            self._check_open()
            session = self.session
            board = session.board
            if board.is_game_over():
                raise GameOver(f"The game is over ({session.status()}); start a new game")
            if not session.client_to_move:
                raise IllegalMove(f"It is not the client's turn ({color_name(board.turn)} to move)")
            mv = decode_move(board, uci=uci, san=san)

            work = session.copy()
            san_played = work.push(mv)
            with self._state_lock:
                self.state = ExchangeState.AWAITING_OPPONENT
            self.log.info("[ply %d] client: %s (%s)", len(work.board.move_stack), san_played, mv.uci())

            if work.board.is_game_over():
                self._commit(work, ExchangeState.IDLE)
                self.log.info("Game finished by client move result=%s", work.status())
                return ExchangeResult(best_move=None, view=work.view(), info={})
            return self._opponent_half_move(work, committed_before=CLIENT)

    def request_opponent_move(self) -> ExchangeResult:
        """Ask the opponent to move when it is its turn; faults have committed="nothing"."""
        with self._exchange_lock:
            self._check_open()
            session = self.session
            if session.board.is_game_over():
                raise GameOver(f"The game is over ({session.status()}); start a new game")
            if session.client_to_move:
                raise IllegalMove(f"It is the client's turn ({color_name(session.board.turn)} to move)")
            with self._state_lock:
                self.state = ExchangeState.AWAITING_OPPONENT
            return self._opponent_half_move(session.copy(), committed_before=NOTHING)

    def _opponent_half_move(self, work: Session, committed_before: str) -> ExchangeResult:
        board = work.board
        try:
            self.channel.sync(board, game=work.game_id)
            result = self.channel.search()
        except OpponentProtocolFault as e:
            raise self._fault(work, e.message, committed_before)

        mv = result.move
        if mv is None:
            raise self._fault(work, "Opponent did not return a move", committed_before)
        if not board.is_legal(mv):
            raise self._fault(work, f"Opponent returned illegal move '{mv.uci()}' in {board.fen()}", committed_before)

        san_played = work.push(mv)
        self._commit(work, ExchangeState.IDLE)
        self.log.info("[ply %d] opponent: %s (%s)", len(board.move_stack), san_played, mv.uci())
        if board.is_game_over():
            self.log.info("Game finished result=%s", work.status())
        return ExchangeResult(best_move=mv.uci(), view=work.view(), info=result.info)

    def _commit(self, work: Session, state: ExchangeState) -> None:
        with self._state_lock:
            self.session = work
            self.state = state

    def _fault(self, work: Session, message: str, committed: str) -> OpponentProtocolFault:
        # work holds exactly what `committed` reports: the client move, or nothing new
        self._commit(work, ExchangeState.FAULTED)
        fault = OpponentProtocolFault(message, committed=committed, view=work.view())
        self.log.error("Exchange faulted (committed=%s): %s", committed, message)
        return fault

    def _check_open(self) -> None:
        if self._closed:
            raise OpponentProtocolFault("The opponent channel is closed", committed=NOTHING)

    # ---------------- Reads -----------------
    def _snapshot(self) -> Session:
        with self._state_lock:
            return self.session.copy()

    def current_view(self) -> GameView:
        return self._snapshot().view()

    def render_board(self) -> str:
        return str(self._snapshot().board)

    def export_pgn(self) -> str:
        return self._snapshot().pgn()

    def opponent_descriptor(self) -> dict[str, Any]:
        return self.channel.descriptor()

    # ---------------- Lifecycle -----------------
    def reset(self, client_color: chess.Color = chess.WHITE) -> None:
        with self._exchange_lock:
            fresh = Session(client_color, opponent_name=self._opponent_name())
            with self._state_lock:
                self.session = fresh
                self.state = ExchangeState.IDLE
        self.log.info("New game started (client plays %s)", color_name(client_color))

    def close(self) -> None:
        """Wait for the in-flight exchange, then tear the channel down."""
        with self._exchange_lock:
            if self._closed:
                return
            self._closed = True
            self.channel.close()
        self.log.info("Opponent channel closed")


__all__ = ["GameCoordinator", "ExchangeState"]
