from __future__ import annotations

import argparse
import asyncio
import sys
from typing import List, Optional

from dotenv import load_dotenv

from src.config import ServerConfig, Settings, load_settings
from src.rcon_client import send_rcon_command
from src.utils.logger import setup_logger


def _parse_args(argv: Optional[List[str]]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="squidcup-rcon", description="Run one RCON command against a game server.")
    parser.add_argument("--server", help="server id from the servers file (default: 'default')")
    parser.add_argument("--host", help="server address, overrides --server")
    parser.add_argument("--port", type=int, help="RCON port, used with --host")
    parser.add_argument("--timeout", type=float, help="seconds to wait for connect and reply")
    parser.add_argument("command", nargs="+", help="console command to run")
    return parser.parse_args(argv)


def _resolve_server(args: argparse.Namespace, settings: Settings) -> Optional[ServerConfig]:
    if args.host:
        if not args.port:
            return None
        fallback = settings.servers.get("default")
        return ServerConfig(
            id="cli",
            nickname=args.host,
            host=args.host,
            port=args.port,
            rcon_password=fallback.rcon_password if fallback else "",
        )
    return settings.servers.get(args.server or "default")


async def main(argv: Optional[List[str]] = None) -> int:
    load_dotenv()
    settings = load_settings()
    logger = setup_logger(level=settings.log_level)

    args = _parse_args(argv)
    server = _resolve_server(args, settings)
    if server is None:
        logger.error("No server configured; pass --host/--port or set RCON_HOST and RCON_PORT")
        return 2

    result = await send_rcon_command(
        server.host,
        server.port,
        server.rcon_password,
        " ".join(args.command),
        timeout=args.timeout or settings.rcon_timeout,
    )
    if not result.success:
        print(f"RCON error: {result.error}", file=sys.stderr)
        return 1
    print(result.response)
    return 0


def run() -> None:
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    run()
