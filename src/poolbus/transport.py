"""Serial byte source for the RS-485 pool bus.

Wraps pyserial as a plain duplex byte stream: ``read`` blocks for at
least one byte, ``write`` sends a whole buffer, ``close`` releases the
port and wakes a blocked reader.  Framing lives in
``poolbus.protocol``, not here.

Example:
    >>> from poolbus.transport import SerialTransport
    >>> port = SerialTransport("/dev/ttyUSB0")
    >>> port.write(frame_bytes)
    >>> data = port.read(64)
"""

import logging

import serial

from poolbus.config import BAUD_RATE
from poolbus.protocol import TransportError

log = logging.getLogger(__name__)


class SerialTransport:
    """RS-485 serial port, 8-N-1.

    Reads come from one thread and writes from others; pyserial
    allows that on POSIX.  Callers serialize their own writes.

    Args:
        port: Serial port device path (e.g. ``"/dev/ttyUSB0"``).
        baudrate: Baud rate, ``9600`` on this bus.

    Raises:
        TransportError: If the port cannot be opened.
    """

    def __init__(self, port: str, baudrate: int = BAUD_RATE):
        try:
            self._ser = serial.Serial(port, baudrate, timeout=None)
        except serial.SerialException as exc:
            raise TransportError("cannot open {}: {}".format(port, exc)) from exc
        self.port = port
        log.info("opened %s at %d baud", port, baudrate)

    def read(self, size: int) -> bytes:
        """Return between 1 and *size* bytes, blocking for the first one.

        Returns ``b""`` once the port has been closed.

        Raises:
            TransportError: On a serial I/O failure.
        """
        if not self._ser.is_open:
            return b""
        try:
            waiting = self._ser.in_waiting
            return self._ser.read(min(size, waiting) or 1)
        except serial.SerialException as exc:
            if not self._ser.is_open:
                return b""
            raise TransportError("read from {} failed: {}".format(self.port, exc)) from exc

    def write(self, data: bytes) -> None:
        """Write all of *data* and wait until it is transmitted.

        Raises:
            TransportError: On a serial I/O failure.
        """
        try:
            self._ser.write(data)
            self._ser.flush()
        except serial.SerialException as exc:
            raise TransportError("write to {} failed: {}".format(self.port, exc)) from exc

    def close(self) -> None:
        """Close the port, waking any thread blocked in ``read``."""
        if not self._ser.is_open:
            return
        self._ser.cancel_read()
        self._ser.close()
        log.info("closed %s", self.port)
