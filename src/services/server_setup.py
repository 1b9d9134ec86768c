from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple

import httpx

from src.config import ServerConfig, Settings
from src.data.match import MatchSetup, build_match_config, config_file_name
from src.rcon_client import RconResult, send_rcon_command

log = logging.getLogger("squidcup_rcon.setup")

RconSender = Callable[..., Awaitable[RconResult]]

PLUGIN_LIST_COMMAND = "css_plugins list"
MISSING_CSS_MARKER = "Unknown command 'css_plugins'"


class ServerSetupService:
    """
    Prepares a game server for a match over RCON.

    The flow mirrors what an admin would do by hand: confirm the plugin
    stack is loaded, publish the generated match config somewhere the
    server can fetch it, then tell the server to load it. Each step reports
    ``(ok, message[, data])`` instead of raising.
    """

    def __init__(
        self,
        settings: Settings,
        rcon: RconSender = send_rcon_command,
        http: Optional[httpx.AsyncClient] = None,
        timeout: float = 15.0,
    ):
        self.settings = settings
        self._rcon = rcon
        self._client = http or httpx.AsyncClient(timeout=timeout)

    async def _run(self, server: ServerConfig, command: str) -> RconResult:
        return await self._rcon(
            server.host,
            server.port,
            server.rcon_password,
            command,
            timeout=self.settings.rcon_timeout,
        )

    # ------------------------------------------------------------------ #
    # Individual steps
    # ------------------------------------------------------------------ #
    async def check_plugins(self, server: ServerConfig) -> Tuple[bool, str]:
        result = await self._run(server, PLUGIN_LIST_COMMAND)
        if not result.success:
            return False, f"Failed to connect to server via RCON: {result.error}"

        response = result.response or ""
        if MISSING_CSS_MARKER in response:
            return False, "CounterStrikeSharp is not installed on the server"
        if self.settings.plugin_marker not in response:
            return False, f"{self.settings.plugin_marker} plugin is not loaded on the server"
        return True, "Required plugins are loaded"

    async def publish_match_config(self, setup: MatchSetup) -> Tuple[bool, str]:
        if not self.settings.upload_base:
            return False, "MATCH_CONFIG_UPLOAD_URL is not configured"

        url = f"{self.settings.upload_base}/{config_file_name(setup)}"
        config = build_match_config(setup, self.settings.match_end_route)
        try:
            response = await self._client.put(url, json=config)
        except httpx.HTTPError as exc:
            return False, f"{url} error: {exc}"

        if response.status_code // 100 != 2:
            return False, f"HTTP {response.status_code}: {response.text[:200]}"
        return True, url

    async def load_match(self, server: ServerConfig, config_url: str) -> Tuple[bool, str]:
        result = await self._run(server, f'squidcup_loadmatch_url "{config_url}"')
        if not result.success:
            return False, f"Match config published but failed to load on server: {result.error}"
        return True, result.response or ""

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #
    async def setup_server(
        self,
        server: ServerConfig,
        setup: MatchSetup,
    ) -> Tuple[bool, str, Optional[Dict[str, Any]]]:
        ok, message = await self.check_plugins(server)
        if not ok:
            log.warning("Plugin check failed for %s: %s", server.id, message)
            return False, message, None

        ok, url = await self.publish_match_config(setup)
        if not ok:
            log.warning("Publishing match config for game %s failed: %s", setup.game_id, url)
            return False, url, None

        ok, message = await self.load_match(server, url)
        if not ok:
            log.warning("Loading match on %s failed: %s", server.id, message)
            return False, message, {"configFile": {"url": url, "loaded": False}}

        log.info("Server %s set up for game %s", server.id, setup.game_id)
        return (
            True,
            f"Server setup completed successfully for game {setup.game_id}",
            {
                "serverInfo": {"id": server.id, "ip": server.host, "port": server.port, "nickname": server.nickname},
                "configFile": {"url": url, "loaded": True},
            },
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "ServerSetupService":
        return self

    async def __aexit__(self, *_: Any) -> None:
        await self.aclose()
