import asyncio
import logging
from enum import Enum

from src.errors import RconConnectionError

log = logging.getLogger("squidcup_rcon.tcp")


class ConnectionState(Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    FAILED = "failed"


class RconConnection:
    """
    Plain TCP transport for a single RCON exchange.

    Only lifecycle lives here: connect with a deadline, write, read one chunk,
    and tear down. Framing is the assembler's job.
    """
    READ_CHUNK = 4096

    def __init__(self, host: str, port: int):
        self.host = host
        self.port = port
        self.state = ConnectionState.DISCONNECTED

        self._reader: asyncio.StreamReader | None = None
        self._writer: asyncio.StreamWriter | None = None

    @property
    def address(self) -> str:
        return f"{self.host}:{self.port}"

    @property
    def is_connected(self) -> bool:
        return self.state is ConnectionState.CONNECTED and self._writer is not None

    async def connect(self, timeout: float) -> None:
        if self.is_connected:
            return
        self.state = ConnectionState.CONNECTING
        log.debug("Connecting to %s (timeout %.1fs)", self.address, timeout)
        try:
            self._reader, self._writer = await asyncio.wait_for(
                asyncio.open_connection(self.host, self.port), timeout
            )
        except asyncio.TimeoutError:
            self._fail()
            raise RconConnectionError(f"Connection to {self.address} timed out after {timeout:g}s") from None
        except OSError as exc:
            self._fail()
            reason = exc.strerror or exc.__class__.__name__
            raise RconConnectionError(f"Could not connect to {self.address}: {reason}") from exc
        self.state = ConnectionState.CONNECTED
        log.debug("Connected to %s", self.address)

    async def write(self, data: bytes) -> None:
        if not self.is_connected:
            raise RconConnectionError(f"Not connected to {self.address}")
        assert self._writer is not None
        try:
            self._writer.write(data)
            await self._writer.drain()
        except OSError as exc:
            self._fail()
            raise RconConnectionError(f"Write to {self.address} failed: {exc.__class__.__name__}") from exc

    async def read(self, n: int = READ_CHUNK) -> bytes:
        """Return whatever bytes the next read event delivers; ``b""`` means EOF."""
        if not self.is_connected:
            raise RconConnectionError(f"Not connected to {self.address}")
        assert self._reader is not None
        try:
            return await self._reader.read(n)
        except OSError as exc:
            self._fail()
            raise RconConnectionError(f"Read from {self.address} failed: {exc.__class__.__name__}") from exc

    async def disconnect(self) -> None:
        writer = self._writer
        self._reader = None
        self._writer = None
        self.state = ConnectionState.DISCONNECTED
        if writer is None:
            return
        # abort() drops the socket immediately; close() could linger on unsent data
        writer.transport.abort()
        try:
            await writer.wait_closed()
        except OSError as exc:
            log.debug("Ignoring error while closing %s: %s", self.address, exc.__class__.__name__)
        log.debug("Disconnected from %s", self.address)

    def _fail(self) -> None:
        writer = self._writer
        self._reader = None
        self._writer = None
        self.state = ConnectionState.FAILED
        if writer is not None:
            writer.transport.abort()
