from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from src.errors import CommandTimeoutError, ProtocolDecodeError, RconConnectionError
from src.packet import SIZE_OVERHEAD, Packet, PacketCodec, Phase, peek_size

log = logging.getLogger("squidcup_rcon.assembler")

# Upper bound on a single frame; anything larger is treated as garbage
MAX_PACKET_SIZE = 1 << 20


class ResponseAssembler:
    """
    Rebuilds whole packets out of a TCP byte stream.

    A read event carries an arbitrary slice of the stream: part of a packet,
    exactly one, or more than one. Bytes accumulate until the size prefix is
    known and the full frame is present; the frame is then decoded and handed
    to the single pending waiter. The waiter settles at most once; anything
    fed after it settled or was abandoned is dropped.

    Bytes past the end of the decoded frame stay buffered for the next
    ``begin()`` of the same session. Only one request is ever in flight, so
    they can only belong to a later reply (e.g. the auth reply following the
    empty response value some servers emit first).
    """

    def __init__(self, codec: PacketCodec):
        self._codec = codec
        self._buffer = bytearray()
        self._expected: Optional[int] = None
        self._phase = Phase.COMMAND
        self._waiter: Optional[asyncio.Future] = None

    @property
    def pending(self) -> bool:
        return self._waiter is not None and not self._waiter.done()

    @property
    def buffered(self) -> int:
        return len(self._buffer)

    def begin(self, phase: Phase) -> asyncio.Future:
        if self.pending:
            raise RuntimeError("A response is already pending on this connection")
        self._phase = phase
        self._expected = None
        self._waiter = asyncio.get_running_loop().create_future()
        if self._buffer:
            log.debug("Reusing %d buffered bytes for the next packet", len(self._buffer))
            self._try_complete()
        return self._waiter

    def feed(self, data: bytes) -> None:
        if not self.pending:
            if data:
                log.debug("Dropping %d bytes received with no pending request", len(data))
            return
        self._buffer.extend(data)
        self._try_complete()

    def abandon(self) -> None:
        """Detach the pending waiter so late bytes cannot settle it."""
        waiter = self._waiter
        self._waiter = None
        self._buffer.clear()
        self._expected = None
        if waiter is not None and not waiter.done():
            waiter.cancel()

    async def wait(
        self,
        waiter: asyncio.Future,
        read: Callable[[], Awaitable[bytes]],
        timeout: float,
        window: Optional[float] = None,
    ) -> Packet:
        """Pump ``read`` into the assembler until ``waiter`` settles or ``timeout`` expires.

        ``window`` is the full request budget reported in the timeout error when
        ``timeout`` is only what remains of it.
        """
        if waiter.done():
            return waiter.result()

        async def pump() -> Packet:
            while not waiter.done():
                chunk = await read()
                if not chunk:
                    raise RconConnectionError("Server closed the connection before responding")
                self.feed(chunk)
            return waiter.result()

        try:
            return await asyncio.wait_for(pump(), timeout)
        except asyncio.TimeoutError:
            self.abandon()
            raise CommandTimeoutError(
                f"RCON request timed out after {window if window is not None else timeout:g}s"
            ) from None
        except BaseException:
            self.abandon()
            raise

    def _try_complete(self) -> None:
        assert self._waiter is not None
        if self._expected is None:
            size = peek_size(self._buffer)
            if size is None:
                return
            if size < SIZE_OVERHEAD or size + 4 > MAX_PACKET_SIZE:
                self._settle_error(ProtocolDecodeError(f"Invalid packet size field: {size}"))
                return
            self._expected = size + 4
        if len(self._buffer) < self._expected:
            return

        frame = bytes(self._buffer[: self._expected])
        del self._buffer[: self._expected]
        self._expected = None
        if self._buffer:
            log.debug("%d bytes arrived past the end of the packet; keeping them buffered", len(self._buffer))
        try:
            packet = self._codec.decode(frame, self._phase)
        except ProtocolDecodeError as exc:
            self._settle_error(exc)
            return
        self._waiter.set_result(packet)

    def _settle_error(self, exc: Exception) -> None:
        assert self._waiter is not None
        self._buffer.clear()
        self._expected = None
        self._waiter.set_exception(exc)
