from __future__ import annotations

import itertools
import struct
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional, Tuple

from src.errors import PacketEncodeError, ProtocolDecodeError

HEADER = struct.Struct("<iii")
TERMINATOR = b"\x00\x00"
# size counts request id + type + the two trailing NULs, never itself
SIZE_OVERHEAD = 10
MAX_BODY_SIZE = 4096
AUTH_FAILED_ID = -1


class PacketType(Enum):
    """
    Application-level packet kinds.

    The wire protocol reuses ``2`` for both the auth reply (server -> client)
    and the exec-command request (client -> server), so the members carry
    names as values and expose the wire integer separately.
    """

    AUTH_REQUEST = "auth_request"
    AUTH_RESPONSE = "auth_response"
    COMMAND_REQUEST = "command_request"
    RESPONSE_VALUE = "response_value"

    @property
    def wire_value(self) -> int:
        return _WIRE_VALUES[self]


_WIRE_VALUES: Dict[PacketType, int] = {
    PacketType.AUTH_REQUEST: 3,
    PacketType.AUTH_RESPONSE: 2,
    PacketType.COMMAND_REQUEST: 2,
    PacketType.RESPONSE_VALUE: 0,
}


class Phase(Enum):
    """What the reading side is waiting for; decides how wire types map back."""

    AUTH = "auth"
    COMMAND = "command"
    REQUEST = "request"


_INBOUND: Dict[Phase, Dict[int, PacketType]] = {
    Phase.AUTH: {2: PacketType.AUTH_RESPONSE, 0: PacketType.RESPONSE_VALUE},
    Phase.COMMAND: {0: PacketType.RESPONSE_VALUE},
    Phase.REQUEST: {3: PacketType.AUTH_REQUEST, 2: PacketType.COMMAND_REQUEST},
}


def resolve_type(wire_value: int, phase: Phase) -> PacketType:
    try:
        return _INBOUND[phase][wire_value]
    except KeyError:
        raise ProtocolDecodeError(
            f"Unexpected packet type {wire_value} while in {phase.value} phase"
        ) from None


@dataclass(frozen=True)
class Packet:
    request_id: int
    packet_type: PacketType
    body: str = ""

    @property
    def size(self) -> int:
        return SIZE_OVERHEAD + len(_encode_body(self.body))

    def serialize(self) -> bytes:
        payload = _encode_body(self.body)
        header = HEADER.pack(SIZE_OVERHEAD + len(payload), self.request_id, self.packet_type.wire_value)
        return b"".join([header, payload, TERMINATOR])


def _encode_body(body: str) -> bytes:
    if "\x00" in body:
        raise PacketEncodeError("Packet body must not contain NUL characters")
    try:
        payload = body.encode("latin-1")
    except UnicodeEncodeError as exc:
        raise PacketEncodeError(f"Packet body is not single-byte text: {exc.reason}") from None
    if len(payload) > MAX_BODY_SIZE:
        raise PacketEncodeError(f"Packet body cannot exceed {MAX_BODY_SIZE} bytes")
    return payload


def peek_size(buffer: bytes) -> Optional[int]:
    """Return the ``size`` field once at least four bytes are buffered."""
    if len(buffer) < 4:
        return None
    return struct.unpack_from("<i", buffer, 0)[0]


class PacketCodec:
    """
    Encodes and decodes Source RCON packets.

    Each codec owns its request-id counter, so one codec per session keeps
    concurrent sessions from handing out colliding ids.
    """

    def __init__(self) -> None:
        self._ids = itertools.count(1)
        self.last_request_id: Optional[int] = None

    def next_request_id(self) -> int:
        return next(self._ids)

    def encode(self, packet_type: PacketType, body: str = "", request_id: Optional[int] = None) -> bytes:
        if request_id is None:
            request_id = self.next_request_id()
        data = Packet(request_id, packet_type, body).serialize()
        self.last_request_id = request_id
        return data

    def decode(self, buffer: bytes, phase: Phase) -> Packet:
        packet, _ = self.decode_with_length(buffer, phase)
        return packet

    def decode_with_length(self, buffer: bytes, phase: Phase) -> Tuple[Packet, int]:
        if len(buffer) < HEADER.size:
            raise ProtocolDecodeError(f"Packet too short: {len(buffer)} bytes")
        size, request_id, wire_type = HEADER.unpack_from(buffer, 0)
        if size < SIZE_OVERHEAD:
            raise ProtocolDecodeError(f"Invalid packet size field: {size}")
        total = size + 4
        if len(buffer) < total:
            raise ProtocolDecodeError(f"Truncated packet: expected {total} bytes, got {len(buffer)}")
        body_end = HEADER.size + size - SIZE_OVERHEAD
        body = bytes(buffer[HEADER.size:body_end]).decode("latin-1")
        return Packet(request_id, resolve_type(wire_type, phase), body), total
