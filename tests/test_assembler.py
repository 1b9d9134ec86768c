import asyncio
import itertools
import struct
import time
import unittest

from src.assembler import ResponseAssembler
from src.errors import CommandTimeoutError, ProtocolDecodeError, RconConnectionError
from src.packet import Packet, PacketCodec, PacketType, Phase


def _split(data: bytes, cuts):
    chunks, start = [], 0
    for position, cut in enumerate(cuts, start=1):
        if cut:
            chunks.append(data[start:position])
            start = position
    chunks.append(data[start:])
    return chunks


class ResponseAssemblerTests(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self.assembler = ResponseAssembler(PacketCodec())

    async def test_every_split_yields_the_same_packet(self) -> None:
        expected = Packet(7, PacketType.RESPONSE_VALUE, "ok")
        data = expected.serialize()

        for cuts in itertools.product((False, True), repeat=len(data) - 1):
            assembler = ResponseAssembler(PacketCodec())
            waiter = assembler.begin(Phase.COMMAND)
            chunks = _split(data, cuts)
            for chunk in chunks[:-1]:
                assembler.feed(chunk)
            if waiter.done():
                self.fail(f"settled early for split {[len(c) for c in chunks]}")
            assembler.feed(chunks[-1])
            self.assertEqual(waiter.result(), expected)
            self.assertEqual(assembler.buffered, 0)

    async def test_coalesced_packets_are_decoded_one_at_a_time(self) -> None:
        first = Packet(1, PacketType.RESPONSE_VALUE, "")
        second = Packet(1, PacketType.AUTH_RESPONSE, "")

        waiter = self.assembler.begin(Phase.AUTH)
        self.assembler.feed(first.serialize() + second.serialize())
        self.assertEqual(waiter.result(), first)
        self.assertEqual(self.assembler.buffered, len(second.serialize()))

        waiter = self.assembler.begin(Phase.AUTH)
        self.assertTrue(waiter.done())
        self.assertEqual(waiter.result(), second)
        self.assertEqual(self.assembler.buffered, 0)

    async def test_settles_at_most_once(self) -> None:
        packet = Packet(3, PacketType.RESPONSE_VALUE, "first")
        waiter = self.assembler.begin(Phase.COMMAND)
        self.assembler.feed(packet.serialize())
        self.assembler.feed(Packet(3, PacketType.RESPONSE_VALUE, "second").serialize())

        self.assertEqual(waiter.result().body, "first")
        self.assertEqual(self.assembler.buffered, 0)

    async def test_bytes_after_abandon_are_dropped(self) -> None:
        waiter = self.assembler.begin(Phase.COMMAND)
        self.assembler.feed(b"\x0c\x00")
        self.assembler.abandon()
        self.assembler.feed(Packet(1, PacketType.RESPONSE_VALUE, "late").serialize())

        self.assertTrue(waiter.cancelled())
        self.assertFalse(self.assembler.pending)
        self.assertEqual(self.assembler.buffered, 0)

    async def test_invalid_size_settles_with_decode_error(self) -> None:
        waiter = self.assembler.begin(Phase.COMMAND)
        self.assembler.feed(struct.pack("<i", 3))
        with self.assertRaises(ProtocolDecodeError):
            waiter.result()

    async def test_unexpected_type_settles_with_decode_error(self) -> None:
        waiter = self.assembler.begin(Phase.COMMAND)
        self.assembler.feed(Packet(1, PacketType.AUTH_REQUEST, "x").serialize())
        with self.assertRaises(ProtocolDecodeError):
            waiter.result()

    async def test_begin_twice_is_rejected(self) -> None:
        self.assembler.begin(Phase.COMMAND)
        with self.assertRaises(RuntimeError):
            self.assembler.begin(Phase.COMMAND)

    async def test_wait_pumps_reads_until_complete(self) -> None:
        data = Packet(9, PacketType.RESPONSE_VALUE, "status output\n").serialize()
        chunks = [data[:2], data[2:11], data[11:]]

        async def read() -> bytes:
            await asyncio.sleep(0)
            return chunks.pop(0)

        waiter = self.assembler.begin(Phase.COMMAND)
        packet = await self.assembler.wait(waiter, read, timeout=1.0)
        self.assertEqual(packet.body, "status output\n")
        self.assertEqual(chunks, [])

    async def test_wait_times_out_and_ignores_late_bytes(self) -> None:
        never = asyncio.Event()

        async def read() -> bytes:
            await never.wait()
            return b""

        waiter = self.assembler.begin(Phase.COMMAND)
        started = time.monotonic()
        with self.assertRaises(CommandTimeoutError):
            await self.assembler.wait(waiter, read, timeout=0.1)
        self.assertLess(time.monotonic() - started, 1.0)

        self.assembler.feed(Packet(1, PacketType.RESPONSE_VALUE, "late").serialize())
        self.assertTrue(waiter.cancelled())
        self.assertFalse(self.assembler.pending)

    async def test_wait_reports_eof(self) -> None:
        async def read() -> bytes:
            return b""

        waiter = self.assembler.begin(Phase.COMMAND)
        with self.assertRaises(RconConnectionError):
            await self.assembler.wait(waiter, read, timeout=1.0)
        self.assertFalse(self.assembler.pending)


if __name__ == "__main__":
    unittest.main()
