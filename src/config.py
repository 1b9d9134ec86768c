from dataclasses import dataclass, field
import json
import os
from pathlib import Path
from typing import Dict

DEFAULT_SERVERS_FILE = Path(__file__).resolve().parent / "data" / "servers.json"


@dataclass
class ServerConfig:
    id: str
    nickname: str
    host: str
    port: int
    rcon_password: str = field(default="", repr=False)


@dataclass
class Settings:
    rcon_timeout: float
    upload_base: str
    match_end_route: str
    plugin_marker: str
    log_level: str
    servers: Dict[str, ServerConfig]


def _parse_port(value) -> int | None:
    text = str(value if value is not None else "").strip()
    if not text.isdigit():
        return None
    port = int(text)
    return port if 0 < port < 65536 else None


def _parse_timeout(raw: str | None, default: float = 5.0) -> float:
    try:
        value = float(raw) if raw else default
    except ValueError:
        return default
    return value if value > 0 else default


def _load_servers(path: Path) -> Dict[str, ServerConfig]:
    if not path.exists():
        return {}

    with path.open("r", encoding="utf-8") as handle:
        raw_servers = json.load(handle)

    servers: Dict[str, ServerConfig] = {}
    for entry in raw_servers:
        server_id = entry.get("id")
        host = entry.get("ip") or entry.get("host")
        port = _parse_port(entry.get("port"))
        if not (server_id and host and port):
            continue
        servers[server_id] = ServerConfig(
            id=server_id,
            nickname=entry.get("nickname") or server_id,
            host=host,
            port=port,
            rcon_password=entry.get("rconPassword") or "",
        )
    return servers


def load_settings() -> Settings:
    servers_path = Path(os.getenv("RCON_SERVERS_FILE") or DEFAULT_SERVERS_FILE)
    servers = _load_servers(servers_path)

    host = os.getenv("RCON_HOST")
    port = _parse_port(os.getenv("RCON_PORT"))
    if host and port and "default" not in servers:
        servers["default"] = ServerConfig(
            id="default",
            nickname="Default Server",
            host=host,
            port=port,
            rcon_password=os.getenv("RCON_PASSWORD", ""),
        )

    return Settings(
        rcon_timeout=_parse_timeout(os.getenv("RCON_TIMEOUT")),
        upload_base=os.environ.get("MATCH_CONFIG_UPLOAD_URL", "").rstrip("/"),
        match_end_route=os.environ.get("MATCH_END_ROUTE", ""),
        plugin_marker=os.environ.get("RCON_PLUGIN_MARKER", "Squidcup"),
        log_level=os.environ.get("LOG_LEVEL", "INFO").upper(),
        servers=servers,
    )
