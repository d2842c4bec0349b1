"""Fan-out of decoded messages to consumers.

Two ways to consume:

- LatestMessageGate: a single slot holding the most recent message.
  ``await_next`` blocks until a newer one arrives.  Lossy: a slow
  caller sees only the latest.
- Subscription: a private unbounded FIFO fed with every message
  published while it is open.

Hub.publish is called by one thread only (the bus monitor) and never
waits on a consumer.

Example:
    >>> from poolbus.hub import Hub
    >>> hub = Hub()
    >>> sub = hub.subscribe()
    >>> hub.publish(msg)
    >>> sub.get(timeout=1.0) is msg
    True
"""

import logging
import queue
import threading

log = logging.getLogger(__name__)

# Marker for "whatever the gate holds right now".
CURRENT = object()
# Queue entry that tells a consumer no more messages will come.
_CLOSED = object()


class BusClosedError(Exception):
    """The bus (or the subscription) is closed; nothing more will arrive."""


class LatestMessageGate:
    """Most recently published message, with wake-up of waiters.

    Each publish stores a new object and bumps the version under a
    condition variable, so every waiter wakes on every publish.
    """

    def __init__(self):
        self._cond = threading.Condition()
        self._message = None
        self._version = 0
        self._closed = False

    @property
    def latest(self):
        """The most recent message, or None if nothing published yet."""
        with self._cond:
            return self._message

    @property
    def version(self) -> int:
        with self._cond:
            return self._version

    def publish(self, message) -> None:
        with self._cond:
            self._message = message
            self._version += 1
            self._cond.notify_all()

    def close(self) -> None:
        """Release all waiters; later waits raise BusClosedError."""
        with self._cond:
            self._closed = True
            self._cond.notify_all()

    def await_next(self, previous=CURRENT, timeout: float | None = None):
        """Block until the latest message is not *previous*, and return it.

        Comparison is by identity, not equality: two identical frames
        are still two messages.  With no *previous*, waits for the
        next publish after the call.

        Args:
            previous: The message last seen by the caller.
            timeout: Seconds to wait, or None to wait forever.

        Returns:
            The new message, or None on timeout.

        Raises:
            BusClosedError: If the gate is (or becomes) closed.
        """
        with self._cond:
            if previous is CURRENT:
                previous = self._message
            self._cond.wait_for(
                lambda: self._closed or self._message is not previous,
                timeout,
            )
            if self._message is not previous:
                return self._message
            if self._closed:
                raise BusClosedError("bus closed")
            return None


class Subscription:
    """Private ordered queue of messages published while open.

    Obtain from ``Hub.subscribe`` or ``PoolBus.subscribe``.  Use as a
    context manager, or call ``close`` when done: an open, unread
    subscription grows without bound.

    Example:
        >>> with bus.subscribe() as sub:
        ...     for msg in sub:
        ...         print(msg.kind)
    """

    def __init__(self, hub: "Hub"):
        self._hub = hub
        self._queue: queue.Queue = queue.Queue()
        self._lock = threading.Lock()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def _deliver(self, message) -> None:
        # Held only around a non-blocking put, so close() is never
        # delayed by a consumer and no put lands after close() returns.
        with self._lock:
            if not self._closed:
                self._queue.put_nowait(message)

    def _end(self) -> None:
        """Stop deliveries and wake the consumer."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            self._queue.put_nowait(_CLOSED)

    def close(self) -> None:
        """Stop deliveries.  Messages already queued can still be read."""
        self._hub.unsubscribe(self)

    def get(self, timeout: float | None = None):
        """Return the next message, waiting up to *timeout* seconds.

        Returns:
            The next message, or None on timeout.

        Raises:
            BusClosedError: No more messages will arrive.
        """
        try:
            item = self._queue.get(timeout=timeout)
        except queue.Empty:
            return None
        return self._unwrap(item)

    def get_nowait(self):
        """Return the next queued message, or None if none is queued.

        Raises:
            BusClosedError: No more messages will arrive.
        """
        try:
            item = self._queue.get_nowait()
        except queue.Empty:
            return None
        return self._unwrap(item)

    def _unwrap(self, item):
        if item is _CLOSED:
            # Leave the marker for any other reader of this queue.
            self._queue.put_nowait(_CLOSED)
            raise BusClosedError("subscription closed")
        return item

    def qsize(self) -> int:
        return self._queue.qsize()

    def __iter__(self):
        while True:
            try:
                yield self.get()
            except BusClosedError:
                return

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()


class Hub:
    """Distributes each published message to the gate and all subscribers.

    The subscriber list is copied under a short lock and the copy is
    iterated unlocked.  A subscriber added during a publish may miss
    that message; one removed during a publish may or may not get it.
    """

    def __init__(self):
        self.gate = LatestMessageGate()
        self._subscriptions: list[Subscription] = []
        self._lock = threading.Lock()
        self._closed = False

    def subscribe(self) -> Subscription:
        """Register and return a new subscription.

        Raises:
            BusClosedError: If the hub is closed.
        """
        sub = Subscription(self)
        with self._lock:
            if self._closed:
                raise BusClosedError("bus closed")
            self._subscriptions.append(sub)
        log.debug("subscribed (%d active)", len(self._subscriptions))
        return sub

    def unsubscribe(self, sub: Subscription) -> None:
        """Deregister *sub*; no delivery reaches it after this returns."""
        with self._lock:
            try:
                self._subscriptions.remove(sub)
            except ValueError:
                pass
        sub._end()

    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscriptions)

    def publish(self, message) -> None:
        """Make *message* the latest, then queue it for every subscriber."""
        self.gate.publish(message)
        with self._lock:
            snapshot = list(self._subscriptions)
        for sub in snapshot:
            sub._deliver(message)

    def close(self) -> None:
        """End all subscriptions and release all gate waiters."""
        with self._lock:
            self._closed = True
            snapshot = list(self._subscriptions)
            self._subscriptions.clear()
        for sub in snapshot:
            sub._end()
        self.gate.close()
