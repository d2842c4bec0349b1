"""Monitoring of, and message injection on, the pool automation bus.

The bus is shared by a controller and its peripherals (pump, remote
transceiver).  A PoolBus starts one daemon thread, the bus monitor,
which owns the read side of the byte source: it synchronizes on the
preamble, validates each frame, decodes it, and publishes the message
to the hub.  Any thread may ``put`` messages; writes are serialized
but never wait on the read side.

``put`` does not guarantee delivery.  Frames collide on the bus and
are lost, and consumers must tolerate that.

Running two PoolBus instances on one serial port, in one process or
several, is not supported.

Example:
    >>> from poolbus.bus import PoolBus
    >>> from poolbus.commands import HEAT_STATUS_QUERY
    >>> with PoolBus.open("/dev/ttyUSB0") as bus:
    ...     with bus.subscribe() as sub:
    ...         bus.put(HEAT_STATUS_QUERY)
    ...         msg = sub.get(timeout=5.0)
"""

import logging
import threading

from poolbus.config import BAUD_RATE, RECEIVE_PAYLOAD_LIMIT
from poolbus.hub import CURRENT, BusClosedError, Hub, Subscription
from poolbus.messages import Message
from poolbus.protocol import (
    DecodeError,
    FrameError,
    FrameReader,
    TransportError,
    encode_frame,
)
from poolbus.registry import Registry
from poolbus.transport import SerialTransport

log = logging.getLogger(__name__)


class PoolBus:
    """A bus instance bound to one byte source.

    Starts the bus monitor thread on construction.

    Args:
        source: Duplex byte source with ``read(size)``, ``write(data)``
            and ``close()``.  ``read`` blocks for at least one byte and
            returns ``b""`` at end of stream.
        registry: Frame-to-message decoder.  Defaults to Registry().
        on_error: Called with the exception if the monitor stops
            because of a transport failure.  Runs on the monitor
            thread.
        payload_limit: Received LEN values at or above this are
            treated as corrupt.
    """

    def __init__(self, source, registry: Registry | None = None, on_error=None,
                 payload_limit: int = RECEIVE_PAYLOAD_LIMIT):
        self._source = source
        self._registry = registry if registry is not None else Registry()
        self._on_error = on_error
        self._reader = FrameReader(source, payload_limit)
        self._hub = Hub()
        self._write_lock = threading.Lock()
        self._stop = threading.Event()
        self._close_lock = threading.Lock()
        self._error: BaseException | None = None

        self._thread = threading.Thread(
            target=self._monitor,
            name="poolbus monitor ({})".format(getattr(source, "port", "stream")),
            daemon=True,
        )
        self._thread.start()

    @classmethod
    def open(cls, port: str, baudrate: int = BAUD_RATE, **kwargs) -> "PoolBus":
        """Open the serial *port* and start monitoring it.

        Raises:
            TransportError: If the port cannot be opened.
        """
        return cls(SerialTransport(port, baudrate), **kwargs)

    # -- Bus monitor ---------------------------------------------------------

    def _monitor(self) -> None:
        """Thread body.  Never lets an exception escape."""
        try:
            self._run()
        except Exception as exc:
            log.exception("bus monitor crashed")
            self._fail(exc)
            return
        self._hub.close()

    def _run(self) -> None:
        """Sync, read, decode, publish until stopped or the source dies."""
        while not self._stop.is_set():
            try:
                frame = self._reader.read_frame()
            except FrameError as exc:
                log.warning("frame error, resynchronizing: %s", exc)
                continue
            except TransportError as exc:
                if self._stop.is_set():
                    break
                log.error("transport failure, bus monitor stopping: %s", exc)
                self._fail(exc)
                return

            try:
                message = self._registry.decode(frame)
            except DecodeError as exc:
                log.warning("dropping undecodable frame: %s", exc)
                continue

            log.debug("received %r", message)
            self._hub.publish(message)

    def _fail(self, exc: BaseException) -> None:
        self._error = exc
        self._hub.close()
        if self._on_error is not None:
            try:
                self._on_error(exc)
            except Exception:
                log.exception("on_error callback raised")

    @property
    def error(self) -> BaseException | None:
        """The failure that stopped the monitor, or None."""
        return self._error

    @property
    def running(self) -> bool:
        """True while the monitor thread is alive."""
        return self._thread.is_alive()

    def join(self, timeout: float | None = None) -> bool:
        """Wait for the monitor to stop.  Returns True if it has."""
        self._thread.join(timeout)
        return not self._thread.is_alive()

    # -- Consumers -----------------------------------------------------------

    def subscribe(self) -> Subscription:
        """Return a subscription to every message decoded from now on.

        Raises:
            BusClosedError: If the bus is closed or has failed.
        """
        return self._hub.subscribe()

    def unsubscribe(self, sub: Subscription) -> None:
        """Close *sub*; equivalent to ``sub.close()``."""
        self._hub.unsubscribe(sub)

    def await_next(self, previous=CURRENT, timeout: float | None = None) -> Message | None:
        """Return the next message from the bus, waiting as necessary.

        With no *previous*, waits for the first message decoded after
        the call.  Pass the message you last got to pick up where you
        left off; if newer ones arrived meanwhile you get only the
        latest.

        Returns:
            The message, or None on timeout.

        Raises:
            BusClosedError: If the bus is closed or has failed.
        """
        return self._hub.gate.await_next(previous, timeout)

    @property
    def latest(self) -> Message | None:
        """The most recently decoded message, or None."""
        return self._hub.gate.latest

    # -- Producers -----------------------------------------------------------

    def put(self, message) -> None:
        """Put *message* on the bus.

        Raises:
            EncodeError: The payload is too long; nothing is written.
            BusClosedError: The bus has been closed or its monitor has
                failed.
            TransportError: The write failed.
        """
        data = encode_frame(message)
        if self._stop.is_set() or self._error is not None:
            raise BusClosedError("bus closed")
        with self._write_lock:
            self._source.write(data)
        log.debug("sent %s", data.hex(" "))

    # -- Lifecycle -----------------------------------------------------------

    def close(self, timeout: float | None = 1.0) -> None:
        """Stop the monitor, end all subscriptions and close the source."""
        with self._close_lock:
            if self._stop.is_set():
                return
            self._stop.set()
        self._source.close()
        if threading.current_thread() is not self._thread:
            self._thread.join(timeout)
        self._hub.close()

    def __enter__(self) -> "PoolBus":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
