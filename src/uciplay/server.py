"""
Flask front-end that lets a browser play against the UCI engine.

Endpoints (GET; /move and /new also accept POST form fields):
- /move?uci=e2e4 | /move?san=e4 -> play the client's move and receive the engine reply
- /go                          -> let the engine move when it is its turn
- /show                        -> text rendering of the board
- /fen                         -> FEN, legal moves and SAN history
- /pgn                         -> PGN of the game so far
- /new[?color=black]           -> start a new game
- /info                        -> engine identity and options
- /                            -> play.html from the static directory
- /img?piece=wK.png            -> piece image from <static>/img

Errors are returned as JSON {"error", "message", "committed"} with 400/500 status.
"""
from __future__ import annotations

import argparse
import logging
import os
import signal
import sys
import threading
from typing import Optional

import chess
from flask import Flask, Response, jsonify, request, send_file
from werkzeug.exceptions import HTTPException
from werkzeug.security import safe_join
from werkzeug.serving import make_server

from .channel import UciChannel
from .config import Settings, load_settings
from .coordinator import GameCoordinator
from .errors import ChessPlayError, InputError, ResourceFault, StartupFault

log = logging.getLogger("server")

COLORS = {"white": chess.WHITE, "black": chess.BLACK}


def _param(name: str) -> Optional[str]:
    value = request.values.get(name)
    return value if value not in (None, "") else None


def _send_asset(directory: str, name: Optional[str], missing_message: str):
    if not name:
        raise InputError(missing_message)
    path = safe_join(os.path.abspath(directory), name)
    if path is None:
        raise InputError(f"Invalid asset identifier: '{name}'")
    if not os.path.isfile(path):
        raise ResourceFault(f"Failed to open {name}")
    try:
        return send_file(path)
    except OSError as e:
        raise ResourceFault(f"Failed to serve {name}: {e}")


def create_app(coordinator: GameCoordinator, static_dir: str = "web") -> Flask:
    app = Flask(__name__)
    app.config["COORDINATOR"] = coordinator
    app.config["STATIC_DIR"] = static_dir

    @app.route("/move", methods=["GET", "POST"])
    def make_move():
        result = coordinator.apply_move_exchange(uci=_param("uci"), san=_param("san"))
        return jsonify(result.to_dict())

    @app.route("/go", methods=["GET", "POST"])
    def engine_move():
        result = coordinator.request_opponent_move()
        return jsonify(result.to_dict())

    @app.route("/show", methods=["GET"])
    def show_board():
        return Response(f"Current position:\n{coordinator.render_board()}\n", mimetype="text/plain")

    @app.route("/fen", methods=["GET"])
    def show_fen():
        return jsonify(coordinator.current_view().to_dict())

    @app.route("/pgn", methods=["GET"])
    def show_pgn():
        return Response(coordinator.export_pgn() + "\n", mimetype="text/plain")

    @app.route("/new", methods=["GET", "POST"])
    def new_game():
        color_name = (_param("color") or "white").lower()
        if color_name not in COLORS:
            raise InputError(f"color must be 'white' or 'black', got '{color_name}'")
        coordinator.reset(client_color=COLORS[color_name])
        return jsonify({"message": "New game started", "color": color_name})

    @app.route("/info", methods=["GET"])
    def engine_info():
        return jsonify(coordinator.opponent_descriptor())

    @app.route("/", methods=["GET"])
    def play_page():
        return _send_asset(static_dir, "play.html", "Page not specified")

    @app.route("/img", methods=["GET"])
    def piece_image():
        piece = request.args.get("piece")
        return _send_asset(os.path.join(static_dir, "img"), piece, "Piece not specified")

    @app.errorhandler(ChessPlayError)
    def handle_chess_error(exc: ChessPlayError):
        if exc.status_code >= 500:
            log.error("%s %s failed: %s", request.method, request.path, exc.message)
        else:
            log.info("%s %s rejected: %s", request.method, request.path, exc.message)
        return jsonify(exc.to_dict()), exc.status_code

    @app.errorhandler(Exception)
    def handle_unexpected(exc: Exception):
        if isinstance(exc, HTTPException):
            return exc
        log.exception("Unhandled error serving %s %s", request.method, request.path)
        return jsonify(ResourceFault(f"Internal error: {exc}").to_dict()), 500

    @app.after_request
    def add_cors_headers(response):
        response.headers["Access-Control-Allow-Origin"] = request.headers.get("Origin", "*")
        response.headers["Access-Control-Allow-Headers"] = "Content-Type"
        response.headers["Access-Control-Allow-Methods"] = "GET, POST, OPTIONS"
        # The board changes between requests; never let the browser cache it
        response.headers["Cache-Control"] = "no-store, max-age=0"
        return response

    return app


def build_coordinator(settings: Settings) -> GameCoordinator:
    """Open the engine channel (handshake + options) and wrap it in a coordinator.

    Raises StartupFault if the engine cannot be started.
    """
    channel = UciChannel.from_settings(settings)
    channel.open()
    return GameCoordinator(channel)


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    ap = argparse.ArgumentParser(description="Play chess against a UCI engine over HTTP.")
    ap.add_argument("--config", default=None, help="Path to settings.yml (default: ./settings.yml or UCIPLAY_CONFIG)")
    ap.add_argument("--engine-path", default=None, help="UCI engine binary (overrides config)")
    ap.add_argument("--addr", default=None, help="Listen address, e.g. ':8080' or '127.0.0.1:9000'")
    ap.add_argument("--move-time", type=int, default=None, help="Engine thinking time per move in ms")
    ap.add_argument("--log-level", default=None, help="Python logging level (e.g., INFO, DEBUG)")
    return ap.parse_args(argv)


def main(argv: Optional[list[str]] = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, (args.log_level or "INFO").upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        settings = load_settings(
            args.config,
            overrides={
                "engine_path": args.engine_path,
                "server_addr": args.addr,
                "move_time": args.move_time,
                "log_level": args.log_level,
            },
        )
        logging.getLogger().setLevel(getattr(logging, settings.log_level, logging.INFO))
        coordinator = build_coordinator(settings)
    except StartupFault as e:
        log.critical("Startup failed: %s", e.message)
        return 1

    app = create_app(coordinator, settings.static_dir)
    try:
        server = make_server(settings.host, settings.port, app, threaded=True)
    except (OSError, SystemExit) as e:
        # werkzeug prints bind errors to stderr and exits instead of raising OSError
        log.critical("Could not listen on %s: %s", settings.server_addr, e)
        coordinator.close()
        return 1

    def _stop(signum, _frame):
        log.info("Received signal %d, shutting down server...", signum)
        # shutdown() blocks until serve_forever() returns, so it cannot run on this thread
        threading.Thread(target=server.shutdown, daemon=True).start()

    signal.signal(signal.SIGINT, _stop)
    signal.signal(signal.SIGTERM, _stop)

    log.info("Starting server on %s (move time %d ms)", settings.server_addr, settings.move_time_ms)
    try:
        server.serve_forever()
    finally:
        coordinator.close()
        log.info("Server exiting")
    return 0


if __name__ == "__main__":
    sys.exit(main())
