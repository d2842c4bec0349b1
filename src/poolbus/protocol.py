"""Frame synchronization, validation, and encoding for the pool bus.

Receive format:  00 FF A5, PROTO, DST, SRC, CMD, LEN, PAYLOAD, CK_HI, CK_LO
Send format:     FF 00 FF A5, then the same fields.

The checksum is the 16-bit sum of every byte from the final preamble
byte (0xA5) through the end of the payload.  Some devices, the pump
among them, ignore frames without the extra leading 0xFF, so we always
send the long preamble but only require the short one when receiving.

Example:
    >>> from poolbus.protocol import Frame, encode_frame, decode_frame
    >>> raw = encode_frame(Frame(0x01, 0x10, 0x22, 0xC8, b""))
    >>> raw.hex(' ')
    'ff 00 ff a5 01 10 22 c8 00 01 a0'
    >>> decode_frame(raw)
    Frame(proto=1, dst=16, src=34, cmd=200, payload=b'')
"""

import io
import logging
import struct
from dataclasses import dataclass

from poolbus.config import MAX_PAYLOAD_LEN, READ_CHUNK, RECEIVE_PAYLOAD_LIMIT

log = logging.getLogger(__name__)

# -- Protocol constants ------------------------------------------------------

RECEIVE_PREAMBLE = b"\x00\xff\xa5"
SEND_PREAMBLE = b"\xff\x00\xff\xa5"

# Checksum seed: the value of the final preamble byte.
CHECKSUM_SEED = RECEIVE_PREAMBLE[-1]

# PROTO, DST, SRC, CMD, LEN
_HEADER_LEN = 5
_CHECKSUM_LEN = 2

# -- Errors ------------------------------------------------------------------


class BusError(Exception):
    """Base class for pool bus errors."""


class FrameError(BusError):
    """A frame failed validation (implausible length or bad checksum).

    Recoverable: the reader resynchronizes on the next preamble.
    """


class TransportError(BusError):
    """The byte source ended or failed in the middle of a read."""


class DecodeError(BusError):
    """A valid frame's payload does not fit its message kind."""


class EncodeError(BusError, ValueError):
    """A message cannot be encoded (payload too long)."""


# -- Checksum ----------------------------------------------------------------


class Checksum:
    """Running 16-bit sum of frame bytes.

    Masked to 16 bits on every addition; the low 16 bits of a sum do
    not depend on when the masking happens.

    Example:
        >>> ck = Checksum()
        >>> ck.update(b"\\x01\\x10\\x22\\xc8\\x00")
        >>> hex(ck.value)
        '0x1a0'
    """

    def __init__(self, seed: int = CHECKSUM_SEED):
        self.value = seed

    def reset(self, seed: int = CHECKSUM_SEED) -> None:
        self.value = seed

    def update(self, data: bytes) -> None:
        for byte in data:
            self.value = (self.value + byte) & 0xFFFF


def checksum(data: bytes, seed: int = CHECKSUM_SEED) -> int:
    """Return the checksum of *data* (header through payload)."""
    ck = Checksum(seed)
    ck.update(data)
    return ck.value


@dataclass(frozen=True)
class Frame:
    """Validated frame contents, preamble and checksum stripped."""

    proto: int
    dst: int
    src: int
    cmd: int
    payload: bytes


# -- Encoding ----------------------------------------------------------------


def encode_frame(message) -> bytes:
    """Build the on-wire bytes for *message*.

    *message* is anything with ``proto``, ``dst``, ``src``, ``cmd`` and
    ``payload`` attributes (a Frame or a Message).

    Raises:
        EncodeError: If the payload is longer than MAX_PAYLOAD_LEN.

    Example:
        >>> encode_frame(Frame(0x00, 0x60, 0x10, 0x07, b"")).hex(' ')
        'ff 00 ff a5 00 60 10 07 00 01 1c'
    """
    payload = bytes(message.payload)
    if len(payload) > MAX_PAYLOAD_LEN:
        raise EncodeError(
            "payload too long: {} bytes, maximum is {}".format(
                len(payload), MAX_PAYLOAD_LEN
            )
        )
    body = bytes([
        message.proto, message.dst, message.src, message.cmd, len(payload),
    ]) + payload
    return SEND_PREAMBLE + body + struct.pack(">H", checksum(body))


# -- Decoding ----------------------------------------------------------------


class FrameReader:
    """Pulls validated frames out of an unstructured byte stream.

    Owns the read cursor of *source*, which must provide
    ``read(size)`` returning at least one byte, or ``b""`` at end of
    stream.  Not thread-safe; one reader per source.

    Args:
        source: The byte source to read from.
        payload_limit: LEN values at or above this raise FrameError.
        chunk: Maximum bytes requested per ``source.read`` call.

    Example:
        >>> reader = FrameReader(io.BytesIO(b"\\x17" + raw))
        >>> reader.read_frame().cmd
        200
    """

    def __init__(self, source, payload_limit: int = RECEIVE_PAYLOAD_LIMIT,
                 chunk: int = READ_CHUNK):
        self._source = source
        self._payload_limit = payload_limit
        self._chunk = chunk
        self._buf = b""
        self._pos = 0
        self._checksum = Checksum()

    def _fill(self) -> None:
        """Refill the buffer from the source.

        Raises:
            TransportError: At end of stream or on an I/O failure.
        """
        try:
            data = self._source.read(self._chunk)
        except OSError as exc:
            raise TransportError("read failed: {}".format(exc)) from exc
        if not data:
            raise TransportError("end of stream")
        self._buf = data
        self._pos = 0

    def _next_byte(self) -> int:
        if self._pos >= len(self._buf):
            self._fill()
        byte = self._buf[self._pos]
        self._pos += 1
        return byte

    def _next_bytes(self, n: int) -> bytes:
        out = bytearray()
        while len(out) < n:
            if self._pos >= len(self._buf):
                try:
                    self._fill()
                except TransportError as exc:
                    raise TransportError(
                        "{} after {} of {} bytes".format(exc, len(out), n)
                    ) from exc
            take = min(n - len(out), len(self._buf) - self._pos)
            out += self._buf[self._pos : self._pos + take]
            self._pos += take
        return bytes(out)

    def sync(self) -> int:
        """Consume bytes until the receive preamble has been seen.

        A byte equal to the first preamble byte restarts the match at
        position 1 instead of 0, so a preamble that overlaps a false
        start is still found.  Resets the running checksum to the
        seed.

        Returns:
            int: Number of bytes consumed before the preamble.
        """
        i = 0
        consumed = 0
        while i < len(RECEIVE_PREAMBLE):
            byte = self._next_byte()
            consumed += 1
            if byte == RECEIVE_PREAMBLE[i]:
                i += 1
            elif byte == RECEIVE_PREAMBLE[0]:
                i = 1
            else:
                i = 0
        self._checksum.reset()
        skipped = consumed - len(RECEIVE_PREAMBLE)
        if skipped:
            log.debug("skipped %d bytes before preamble", skipped)
        return skipped

    def read_frame(self) -> Frame:
        """Synchronize, then read and validate one frame.

        On FrameError the partial frame is abandoned; calling again
        resumes the preamble scan right after the bytes consumed so
        far.

        Raises:
            FrameError: Implausible LEN or checksum mismatch.
            TransportError: Stream ended or failed mid-read.
        """
        self.sync()

        header = self._next_bytes(_HEADER_LEN)
        self._checksum.update(header)
        proto, dst, src, cmd, length = header

        if length >= self._payload_limit:
            raise FrameError(
                "implausible LEN {} (limit {}), header: {}".format(
                    length, self._payload_limit, header.hex(" ")
                )
            )

        payload = self._next_bytes(length)
        self._checksum.update(payload)

        computed = self._checksum.value
        received = struct.unpack(">H", self._next_bytes(_CHECKSUM_LEN))[0]
        if received != computed:
            raise FrameError(
                "checksum mismatch: received 0x{:04X}, computed 0x{:04X}, "
                "header: {}, payload: {}".format(
                    received, computed, header.hex(" "), payload.hex(" ")
                )
            )

        return Frame(proto, dst, src, cmd, payload)


def decode_frame(data: bytes, payload_limit: int = RECEIVE_PAYLOAD_LIMIT) -> Frame:
    """Return the first valid frame in *data*.

    Bytes before the preamble are skipped.  Useful for one-shot
    decoding of captured traffic; the bus itself uses FrameReader.

    Raises:
        FrameError: The first frame found is invalid.
        TransportError: *data* ends before a complete frame.
    """
    return FrameReader(io.BytesIO(data), payload_limit).read_frame()
