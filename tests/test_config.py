import json
import os
import tempfile
import unittest
from pathlib import Path
from unittest import mock

from src.config import load_settings


class LoadSettingsTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        self.servers_file = Path(self._tmp.name) / "servers.json"

    def _env(self, **extra: str) -> dict:
        env = {"RCON_SERVERS_FILE": str(self.servers_file)}
        env.update(extra)
        return env

    def test_loads_servers_file(self) -> None:
        self.servers_file.write_text(json.dumps([
            {"id": "eu1", "nickname": "EU #1", "ip": "10.0.0.5", "port": 27015, "rconPassword": "pw"},
            {"id": "broken", "ip": "10.0.0.6", "port": "not-a-port"},
            {"nickname": "missing id", "ip": "10.0.0.7", "port": 27015},
        ]), encoding="utf-8")

        with mock.patch.dict(os.environ, self._env(), clear=True):
            settings = load_settings()

        self.assertEqual(list(settings.servers), ["eu1"])
        server = settings.servers["eu1"]
        self.assertEqual((server.host, server.port, server.rcon_password), ("10.0.0.5", 27015, "pw"))
        self.assertNotIn("pw", repr(server))
        self.assertEqual(settings.rcon_timeout, 5.0)
        self.assertEqual(settings.plugin_marker, "Squidcup")

    def test_env_default_server_and_options(self) -> None:
        env = self._env(
            RCON_HOST="192.0.2.10",
            RCON_PORT="27016",
            RCON_PASSWORD="secret",
            RCON_TIMEOUT="2.5",
            MATCH_CONFIG_UPLOAD_URL="https://configs.example.com/games/",
            LOG_LEVEL="debug",
        )
        with mock.patch.dict(os.environ, env, clear=True):
            settings = load_settings()

        default = settings.servers["default"]
        self.assertEqual((default.host, default.port, default.rcon_password), ("192.0.2.10", 27016, "secret"))
        self.assertEqual(settings.rcon_timeout, 2.5)
        self.assertEqual(settings.upload_base, "https://configs.example.com/games")
        self.assertEqual(settings.log_level, "DEBUG")

    def test_bad_timeout_falls_back(self) -> None:
        for raw in ("soon", "-1", "0"):
            with self.subTest(raw=raw):
                with mock.patch.dict(os.environ, self._env(RCON_TIMEOUT=raw), clear=True):
                    self.assertEqual(load_settings().rcon_timeout, 5.0)


if __name__ == "__main__":
    unittest.main()
