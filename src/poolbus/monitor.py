"""Bus monitor CLI -- logs every message seen on the pool bus.

Foreground loop driven by a TOML config file.  Shuts down cleanly on
SIGINT or SIGTERM, and exits with status 1 if the serial port fails.

Example:
    Run from the command line::

        poolbus poolbus.toml -v
"""

import argparse
import logging
import signal
import sys
import threading

from poolbus.bus import PoolBus
from poolbus.config import POLL_INTERVAL_S, load_config
from poolbus.hub import BusClosedError
from poolbus.protocol import TransportError

log = logging.getLogger(__name__)

_shutdown = threading.Event()


def _on_signal(signum: int, frame) -> None:
    """Set the module-level shutdown event on SIGINT/SIGTERM."""
    _shutdown.set()


def run_monitor(bus, shutdown: threading.Event) -> int:
    """Log messages from *bus* until *shutdown* is set or the bus closes.

    Returns the number of messages logged.

    Example:
        >>> run_monitor(bus, ev)
        42
    """
    count = 0
    try:
        sub = bus.subscribe()
    except BusClosedError:
        return count
    with sub:
        while not shutdown.is_set():
            # Use timeout so we check shutdown flag periodically
            try:
                message = sub.get(timeout=POLL_INTERVAL_S)
            except BusClosedError:
                break
            if message is None:
                continue
            count += 1
            log.info("%r", message)
    return count


def main() -> None:
    """CLI entry point -- parse args, load config, run the monitor.

    Example:
        From the shell::

            poolbus poolbus.toml
            poolbus poolbus.toml -v
    """
    _shutdown.clear()

    parser = argparse.ArgumentParser(description="pool automation bus monitor")
    parser.add_argument("config", help="path to TOML config file")
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="enable debug logging",
    )
    args = parser.parse_args()

    level = logging.DEBUG if args.verbose else logging.INFO
    logging.basicConfig(
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        level=level,
    )

    try:
        cfg = load_config(args.config)
    except FileNotFoundError:
        log.error("config file not found: %s", args.config)
        sys.exit(1)
    except ValueError as exc:
        log.error("config error: %s", exc)
        sys.exit(1)

    signal.signal(signal.SIGINT, _on_signal)
    signal.signal(signal.SIGTERM, _on_signal)

    log.info("starting: port=%s baudrate=%d", cfg["port"], cfg["baudrate"])
    try:
        bus = PoolBus.open(cfg["port"], cfg["baudrate"])
    except TransportError as exc:
        log.error("%s", exc)
        sys.exit(1)

    try:
        count = run_monitor(bus, _shutdown)
    finally:
        bus.close()
        log.info("shutting down")

    log.info("%d messages received", count)
    if bus.error is not None:
        sys.exit(1)


if __name__ == "__main__":
    main()
