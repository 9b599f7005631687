import os
import tempfile
import unittest
from unittest.mock import patch

import chess

from fakes import ScriptedChannel
from uciplay.config import Settings
from uciplay.coordinator import GameCoordinator
from uciplay.errors import StartupFault
from uciplay.server import build_coordinator, create_app, main


class ServerTests(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self.tmp.cleanup)
        os.makedirs(os.path.join(self.tmp.name, "img"))
        with open(os.path.join(self.tmp.name, "play.html"), "w", encoding="utf-8") as f:
            f.write("<html>play</html>")
        with open(os.path.join(self.tmp.name, "img", "wK.png"), "wb") as f:
            f.write(b"\x89PNG fake")
        self.channel = ScriptedChannel()
        self.coord = GameCoordinator(self.channel)
        app = create_app(self.coord, static_dir=self.tmp.name)
        app.testing = True
        self.client = app.test_client()

    def test_move_in_uci(self):
        rsp = self.client.get("/move?uci=e2e4")
        self.assertEqual(rsp.status_code, 200)
        body = rsp.get_json()
        self.assertEqual(body["best_move"], "a7a5")
        self.assertEqual(body["pgn"], ["e4", "a5"])
        self.assertTrue(body["legal_moves"])
        self.assertEqual(body["info"]["depth"], 1)
        self.assertEqual(set(body), {"best_move", "fen", "legal_moves", "info", "pgn", "turn", "result"})

    def test_move_in_san_via_post(self):
        rsp = self.client.post("/move", data={"san": "Nf3"})
        self.assertEqual(rsp.status_code, 200)
        self.assertEqual(rsp.get_json()["pgn"][0], "Nf3")

    def test_move_input_errors(self):
        cases = {
            "/move": "input_error",
            "/move?uci=e2e4&san=e4": "input_error",
            "/move?uci=zz": "invalid_move_notation",
            "/move?uci=e2e5": "illegal_move",
        }
        for url, code in cases.items():
            with self.subTest(url=url):
                rsp = self.client.get(url)
                self.assertEqual(rsp.status_code, 400)
                body = rsp.get_json()
                self.assertEqual(body["error"], code)
                self.assertEqual(body["committed"], "nothing")
        self.assertEqual(self.client.get("/fen").get_json()["fen"], chess.STARTING_FEN)

    def test_opponent_fault_is_500_with_view(self):
        self.channel.replies = [None]
        rsp = self.client.get("/move?uci=e2e4")
        self.assertEqual(rsp.status_code, 500)
        body = rsp.get_json()
        self.assertEqual(body["error"], "opponent_protocol_fault")
        self.assertEqual(body["committed"], "client")
        self.assertEqual(body["view"]["pgn"], ["e4"])
        # engine can be asked again to finish the exchange
        rsp = self.client.get("/go")
        self.assertEqual(rsp.status_code, 200)
        self.assertEqual(rsp.get_json()["pgn"], ["e4", "a5"])

    def test_go_on_client_turn_is_400(self):
        rsp = self.client.get("/go")
        self.assertEqual(rsp.status_code, 400)
        self.assertEqual(rsp.get_json()["error"], "illegal_move")

    def test_fen_and_show(self):
        body = self.client.get("/fen").get_json()
        self.assertEqual(body["fen"], chess.STARTING_FEN)
        self.assertEqual(len(body["legal_moves"]), 20)
        self.assertEqual(body["pgn"], [])
        rsp = self.client.get("/show")
        self.assertEqual(rsp.status_code, 200)
        self.assertTrue(rsp.mimetype.startswith("text/plain"))
        self.assertIn("r n b q k b n r", rsp.get_data(as_text=True))

    def test_pgn(self):
        self.client.get("/move?uci=e2e4")
        text = self.client.get("/pgn").get_data(as_text=True)
        self.assertIn("1. e4 a5", text)
        self.assertIn('[Black "Scripted"]', text)

    def test_new_game(self):
        self.client.get("/move?uci=e2e4")
        rsp = self.client.get("/new")
        self.assertEqual(rsp.get_json()["message"], "New game started")
        self.assertEqual(self.client.get("/fen").get_json()["pgn"], [])

    def test_new_game_as_black(self):
        rsp = self.client.post("/new", data={"color": "black"})
        self.assertEqual(rsp.status_code, 200)
        self.assertEqual(self.client.get("/go").get_json()["turn"], "black")
        self.assertEqual(self.client.get("/new?color=green").status_code, 400)

    def test_info(self):
        body = self.client.get("/info").get_json()
        self.assertEqual(body["info"]["name"], "Scripted")
        self.assertIn("Hash", body["options"])

    def test_static_assets(self):
        rsp = self.client.get("/")
        self.assertEqual(rsp.status_code, 200)
        self.assertIn(b"play", rsp.data)
        rsp = self.client.get("/img?piece=wK.png")
        self.assertEqual(rsp.status_code, 200)
        self.assertEqual(rsp.data, b"\x89PNG fake")
        rsp.close()

    def test_static_asset_errors(self):
        self.assertEqual(self.client.get("/img").status_code, 400)
        self.assertEqual(self.client.get("/img?piece=../play.html").status_code, 400)
        rsp = self.client.get("/img?piece=bQ.png")
        self.assertEqual(rsp.status_code, 500)
        self.assertEqual(rsp.get_json()["error"], "resource_fault")

    def test_cors_and_cache_headers(self):
        rsp = self.client.get("/fen")
        self.assertEqual(rsp.headers["Cache-Control"], "no-store, max-age=0")
        self.assertEqual(rsp.headers["Access-Control-Allow-Origin"], "*")

    def test_unknown_route_is_404(self):
        self.assertEqual(self.client.get("/nope").status_code, 404)


class StartupTests(unittest.TestCase):
    def test_build_coordinator_opens_channel(self):
        channel = ScriptedChannel()
        with patch("uciplay.server.UciChannel.from_settings", return_value=channel) as from_settings:
            coord = build_coordinator(Settings(engine_path="stockfish"))
        from_settings.assert_called_once()
        self.assertIs(coord.channel, channel)

    def test_main_exits_nonzero_without_engine(self):
        with patch("uciplay.server.load_settings", side_effect=StartupFault("engine_path is not configured")):
            self.assertEqual(main(["--log-level", "CRITICAL"]), 1)

    def test_main_exits_nonzero_when_engine_fails(self):
        with patch("uciplay.server.load_settings", return_value=Settings(engine_path="stockfish")), \
                patch("uciplay.server.build_coordinator", side_effect=StartupFault("Failed launching engine")):
            self.assertEqual(main([]), 1)

    def test_main_closes_engine_when_address_is_unavailable(self):
        for failure in (OSError(98, "Address already in use"), SystemExit(1)):
            with self.subTest(failure=failure):
                channel = ScriptedChannel()
                with patch("uciplay.server.load_settings", return_value=Settings(engine_path="stockfish")), \
                        patch("uciplay.server.build_coordinator", return_value=GameCoordinator(channel)), \
                        patch("uciplay.server.make_server", side_effect=failure):
                    self.assertEqual(main([]), 1)
                self.assertTrue(channel.closed)


if __name__ == "__main__":
    unittest.main()
