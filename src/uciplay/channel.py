"""
UCI engine channel (e.g. Stockfish) used as the search opponent.

- Resolves the engine binary from the configured path or the system PATH.
- open(): launches the engine (uci handshake), applies configured options, waits for readyok.
- sync(): hands the channel the canonical position; search() consumes it, so every
  search needs a fresh sync.
- search(): timed search returning the best move and JSON-ready search info.
- Any engine failure closes the process; the next sync() relaunches it (re-arm).

Other channels only need the same duck-typed surface:
open(), sync(board, game), search() -> SearchResult, descriptor() -> dict, close().
"""
from __future__ import annotations

import asyncio
import logging
import os
import shutil
import threading
from dataclasses import dataclass, field
from typing import Any, Optional

import chess
import chess.engine

from .config import Settings
from .errors import OpponentProtocolFault, StartupFault


@dataclass
class SearchResult:
    move: Optional[chess.Move]
    info: dict[str, Any] = field(default_factory=dict)


def resolve_engine_path(candidate: str) -> str:
    resolved = shutil.which(candidate) or (candidate if os.path.isfile(candidate) else None)
    if not resolved:
        raise StartupFault(
            f"UCI engine not found (candidate='{candidate}'). Install an engine such as Stockfish "
            "and set 'engine_path' in settings.yml or UCIPLAY_ENGINE_PATH to the binary path."
        )
    return resolved


def _score_dict(pov: chess.engine.PovScore) -> dict[str, Any]:
    white = pov.white()
    return {"cp": white.score(), "mate": white.mate(), "pov": "white"}


def _json_value(value: Any) -> Any:
    if isinstance(value, chess.Move):
        return value.uci()
    if isinstance(value, chess.engine.PovScore):
        return _score_dict(value)
    if isinstance(value, chess.engine.PovWdl):
        wdl = value.white()
        return [wdl.wins, wdl.draws, wdl.losses]
    if isinstance(value, (list, tuple)):
        return [_json_value(v) for v in value]
    if isinstance(value, dict):
        return {str(_json_value(k)): _json_value(v) for k, v in value.items()}
    return value


def serialize_info(info: Optional[dict]) -> dict[str, Any]:
    """Convert a python-chess InfoDict (scores, moves, pv lines) into plain JSON types."""
    return {str(k): _json_value(v) for k, v in (info or {}).items()}


def serialize_options(options) -> dict[str, dict[str, Any]]:
    return {
        name: {
            "type": opt.type,
            "default": opt.default,
            "min": opt.min,
            "max": opt.max,
            "var": list(opt.var or []),
        }
        for name, opt in options.items()
    }


class UciChannel:
    name: str = "UCI"

    def __init__(self, engine_path: str, move_time_ms: int = 10, options: Optional[dict[str, Any]] = None,
                 timeout_s: float = 10.0):
        self.log = logging.getLogger("UciChannel")
        self.engine_path = engine_path
        self.move_time_ms = move_time_ms
        self.options = dict(options or {})
        self.timeout_s = timeout_s
        self.engine: Optional[chess.engine.SimpleEngine] = None
        self._descriptor: dict[str, Any] = {"info": {}, "options": {}}
        self._position: Optional[chess.Board] = None
        self._game: Optional[object] = None
        self._lock = threading.Lock()

    @classmethod
    def from_settings(cls, settings: Settings) -> "UciChannel":
        return cls(
            engine_path=settings.engine_path,
            move_time_ms=settings.move_time_ms,
            options=settings.uci_options,
            timeout_s=settings.engine_timeout_s,
        )

    # ---------------- Lifecycle -----------------
    def open(self) -> None:
        """Launch the engine and run the handshake. Failures raise StartupFault."""
        with self._lock:
            self._launch()

    def _launch(self) -> None:
        path = resolve_engine_path(self.engine_path)
        try:
            engine = chess.engine.SimpleEngine.popen_uci(path, timeout=self.timeout_s)
        except (OSError, chess.engine.EngineError, asyncio.TimeoutError, TimeoutError) as e:
            raise StartupFault(f"Failed launching engine at '{path}': {e}")
        try:
            if self.options:
                engine.configure(self.options)
            engine.ping()
            descriptor = {"info": dict(engine.id), "options": serialize_options(engine.options)}
        except (chess.engine.EngineError, asyncio.TimeoutError, TimeoutError, ValueError) as e:
            engine.close()
            raise StartupFault(f"Failed initializing engine at '{path}': {e}")
        self.engine = engine
        self._descriptor = descriptor
        self.log.info("Engine ready: %s (%s)", descriptor["info"].get("name", "?"), path)

    def _rearm(self) -> None:
        """Drop the engine process; the next sync() relaunches it."""
        engine, self.engine = self.engine, None
        self._position = None
        self._game = None
        if engine is None:
            return
        try:
            engine.close()
        except Exception:
            self.log.exception("Failed closing engine while re-arming")

    def close(self) -> None:
        with self._lock:
            engine, self.engine = self.engine, None
            self._position = None
            if engine is None:
                return
            try:
                engine.quit()
            except (chess.engine.EngineError, asyncio.TimeoutError, TimeoutError):
                self.log.warning("Engine did not quit cleanly, killing it")
                engine.close()

    # ---------------- Protocol -----------------
    def sync(self, board: chess.Board, game: Optional[object] = None) -> None:
        """Set the position the next search runs on (relaunching the engine if needed)."""
        with self._lock:
            if self.engine is None:
                self.log.warning("Engine not running, relaunching before sync")
                try:
                    self._launch()
                except StartupFault as e:
                    raise OpponentProtocolFault(f"Engine could not be restarted: {e.message}")
            self._position = board.copy()
            self._game = game
            self.log.debug("Synced position %s", self._position.fen())

    def search(self) -> SearchResult:
        with self._lock:
            if self.engine is None or self._position is None:
                raise OpponentProtocolFault("Search requested before the position was synchronized")
            board, self._position = self._position, None
            limit = chess.engine.Limit(time=self.move_time_ms / 1000)
            try:
                res = self.engine.play(board, limit, info=chess.engine.INFO_ALL, game=self._game)
            except (chess.engine.EngineError, asyncio.TimeoutError, TimeoutError) as e:
                self.log.error("Engine search failed: %r", e)
                self._rearm()
                raise OpponentProtocolFault(f"Engine search failed: {e!r}")
            return SearchResult(move=res.move, info=serialize_info(res.info))

    def descriptor(self) -> dict[str, Any]:
        return {"info": dict(self._descriptor["info"]), "options": dict(self._descriptor["options"])}
