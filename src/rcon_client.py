from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

from src.assembler import ResponseAssembler
from src.errors import AuthenticationError, NotAuthenticatedError, RconError
from src.packet import AUTH_FAILED_ID, Packet, PacketCodec, PacketType, Phase
from src.tcp_client import RconConnection

log = logging.getLogger("squidcup_rcon.session")

DEFAULT_TIMEOUT = 5.0


class SessionState(Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    AUTHENTICATING = "authenticating"
    AUTHENTICATED = "authenticated"
    EXECUTING = "executing"
    FAILED = "failed"
    DISCONNECTED = "disconnected"


class RconSession:
    """
    One authenticated RCON conversation over one TCP connection.

    Requests are strictly sequential: a packet is written, its reply is
    assembled and correlated by request id, and only then may the next
    request go out. Any failure moves the session to ``FAILED`` and drops
    the connection.
    """

    def __init__(self, host: str, port: int, timeout: float = DEFAULT_TIMEOUT):
        self.timeout = timeout
        self.state = SessionState.IDLE
        self.connection = RconConnection(host, port)
        self.codec = PacketCodec()
        self.assembler = ResponseAssembler(self.codec)

    async def connect(self) -> None:
        self.state = SessionState.CONNECTING
        try:
            await self.connection.connect(self.timeout)
        except BaseException:
            await self._fail()
            raise
        self.state = SessionState.CONNECTED

    async def authenticate(self, password: str) -> None:
        if self.state is not SessionState.CONNECTED:
            raise RconError(f"Cannot authenticate while {self.state.value}")
        self.state = SessionState.AUTHENTICATING
        try:
            request_id = self.codec.next_request_id()
            deadline = self._deadline()
            response = await self._request(PacketType.AUTH_REQUEST, password, request_id, Phase.AUTH, deadline)
            if response.packet_type is PacketType.RESPONSE_VALUE:
                # Stock Source servers send an empty value packet ahead of the auth reply
                response = await self._receive(Phase.AUTH, deadline)
            if response.packet_type is not PacketType.AUTH_RESPONSE:
                raise AuthenticationError("RCON authentication failed: server sent no auth response")
            if response.request_id == AUTH_FAILED_ID:
                raise AuthenticationError("RCON authentication failed: server rejected the password")
            if response.request_id != request_id:
                raise AuthenticationError(
                    f"RCON authentication failed: response id {response.request_id} does not match request id {request_id}"
                )
        except BaseException:
            await self._fail()
            raise
        self.state = SessionState.AUTHENTICATED
        log.debug("Authenticated with %s", self.connection.address)

    async def execute_command(self, command: str) -> str:
        if self.state is not SessionState.AUTHENTICATED:
            raise NotAuthenticatedError("Not authenticated")
        self.state = SessionState.EXECUTING
        try:
            request_id = self.codec.next_request_id()
            response = await self._request(
                PacketType.COMMAND_REQUEST, command, request_id, Phase.COMMAND, self._deadline()
            )
        except BaseException:
            await self._fail()
            raise
        self.state = SessionState.AUTHENTICATED
        return response.body.rstrip()

    async def disconnect(self) -> None:
        if self.assembler.buffered:
            log.warning(
                "Discarding %d unread bytes from %s; the server sent more than one reply",
                self.assembler.buffered,
                self.connection.address,
            )
        self.assembler.abandon()
        await self.connection.disconnect()
        if self.state is not SessionState.FAILED:
            self.state = SessionState.DISCONNECTED

    def _deadline(self) -> float:
        return asyncio.get_running_loop().time() + self.timeout

    async def _request(
        self, packet_type: PacketType, body: str, request_id: int, phase: Phase, deadline: float
    ) -> Packet:
        data = self.codec.encode(packet_type, body, request_id=request_id)
        # never log the body: for auth packets it is the password
        log.debug("Sending %s id=%d (%d bytes)", packet_type.value, request_id, len(data))
        await self.connection.write(data)
        while True:
            packet = await self._receive(phase, deadline)
            if phase is Phase.AUTH or packet.request_id == request_id:
                return packet
            log.debug("Skipping stale packet id=%d while waiting for id=%d", packet.request_id, request_id)

    async def _receive(self, phase: Phase, deadline: float) -> Packet:
        """Wait for one packet; every packet of a request shares the same deadline."""
        waiter = self.assembler.begin(phase)
        remaining = max(0.0, deadline - asyncio.get_running_loop().time())
        return await self.assembler.wait(waiter, self.connection.read, remaining, window=self.timeout)

    async def _fail(self) -> None:
        self.state = SessionState.FAILED
        self.assembler.abandon()
        await self.connection.disconnect()

    async def __aenter__(self) -> "RconSession":
        await self.connect()
        return self

    async def __aexit__(self, *_: Any) -> None:
        await self.disconnect()


@dataclass(frozen=True)
class RconResult:
    success: bool
    response: Optional[str] = None
    error: Optional[str] = None

    @classmethod
    def ok(cls, response: str) -> "RconResult":
        return cls(success=True, response=response)

    @classmethod
    def failed(cls, error: str) -> "RconResult":
        return cls(success=False, error=error)


async def send_rcon_command(
    server_ip: str,
    server_port: int,
    rcon_password: str,
    command: str,
    timeout: float = DEFAULT_TIMEOUT,
) -> RconResult:
    """
    Connect, authenticate, run ``command`` once and disconnect.

    Never raises: every failure is reported through ``RconResult.error``.
    The connection is torn down on every exit path.
    """
    session = RconSession(server_ip, server_port, timeout)
    try:
        await session.connect()
        await session.authenticate(rcon_password)
        response = await session.execute_command(command)
        return RconResult.ok(response)
    except RconError as exc:
        # RconError messages never include the password
        message = str(exc) or exc.__class__.__name__
        log.warning("RCON %s failed: %s", session.connection.address, message)
        return RconResult.failed(message)
    except Exception as exc:
        log.error("Unexpected RCON error talking to %s: %s", session.connection.address, exc.__class__.__name__)
        return RconResult.failed(f"Unexpected RCON error: {exc.__class__.__name__}")
    finally:
        await session.disconnect()
