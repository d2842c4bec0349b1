"""Shared pytest fixtures for poolbus tests."""

import queue
import struct

import pytest

from poolbus.bus import PoolBus

RECEIVE_PREAMBLE = b"\x00\xff\xa5"


def make_frame(proto: int, dst: int, src: int, cmd: int, payload: bytes,
               preamble: bytes = RECEIVE_PREAMBLE) -> bytes:
    """Build a valid frame the way a device on the bus would."""
    body = bytes([proto, dst, src, cmd, len(payload)]) + payload
    total = (0xA5 + sum(body)) & 0xFFFF
    return preamble + body + struct.pack(">H", total)


def status_payload(hour=10, minute=30, circuits_lo=0x20, circuits_hi=0x00,
                   water=78, air=71, solar=80, heat=0x00, length=29) -> bytes:
    """Build a system status payload with the interesting bytes set."""
    payload = bytearray(length)
    payload[0] = hour
    payload[1] = minute
    payload[2] = circuits_lo
    payload[3] = circuits_hi
    payload[14] = water
    payload[18] = air
    payload[19] = solar
    payload[22] = heat
    return bytes(payload)


class FakeSource:
    """Test double for a byte source: fed chunks, records writes.

    ``read`` blocks until data is fed; ``end()`` or ``close()`` makes
    it return ``b""`` from then on.
    """

    def __init__(self, data: bytes = b""):
        """Initialize, optionally with bytes ready to read."""
        self._chunks: queue.Queue = queue.Queue()
        self._pending = b""
        self._eof = False
        self.written: list[bytes] = []
        self.closed = False
        if data:
            self.feed(data)

    def feed(self, data: bytes) -> None:
        """Make *data* available to the reader."""
        self._chunks.put(bytes(data))

    def end(self) -> None:
        """Signal end of stream after anything already fed."""
        self._chunks.put(b"")

    def read(self, size: int) -> bytes:
        """Return up to *size* fed bytes, blocking until some arrive."""
        if self._eof:
            return b""
        if not self._pending:
            self._pending = self._chunks.get()
            if not self._pending:
                self._eof = True
                return b""
        out, self._pending = self._pending[:size], self._pending[size:]
        return out

    def write(self, data: bytes) -> None:
        """Record *data* for later inspection."""
        self.written.append(bytes(data))

    def close(self) -> None:
        """Mark closed and wake a blocked reader."""
        self.closed = True
        self._chunks.put(b"")


class FailingSource(FakeSource):
    """Byte source whose reads fail with an I/O error."""

    def read(self, size: int) -> bytes:
        """Raise as a yanked USB adapter would."""
        raise OSError(5, "Input/output error")


@pytest.fixture
def source():
    """A fresh FakeSource."""
    return FakeSource()


@pytest.fixture
def bus(source):
    """A PoolBus over the ``source`` fixture, closed after the test."""
    b = PoolBus(source)
    yield b
    b.close()
