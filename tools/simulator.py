#!/usr/bin/env python3
"""Virtual pool controller for poolbus.

Opens a serial port (typically one end of a socat PTY pair), puts a
system status report on the bus every interval, and answers circuit
state change requests with a state change response.

Usage:
    python simulator.py <port> [interval]

Args:
    port: Serial port path (e.g. /tmp/poolbus-controller).
    interval: Seconds between status reports (float, default 2.0).

Example:
    socat -d -d PTY,raw,echo=0,link=/tmp/poolbus-controller \\
                PTY,raw,echo=0,link=/tmp/poolbus-client &
    python simulator.py /tmp/poolbus-controller 1.0
"""

import datetime
import logging
import sys
import threading

# Add parent src to path so we can import poolbus
sys.path.insert(0, str(__import__("pathlib").Path(__file__).resolve().parents[1] / "src"))

from poolbus import codes
from poolbus.bus import PoolBus
from poolbus.codes import Circuit, CircuitPowerState
from poolbus.hub import BusClosedError
from poolbus.messages import CircuitStateChangeRequest, Message

# Circuit -> (byte index, bit) in the status report bitmap.
_STATUS_BITS = {
    Circuit.SPA: (2, 0x01),
    Circuit.AUX1: (2, 0x02),
    Circuit.AUX2: (2, 0x04),
    Circuit.AUX3: (2, 0x08),
    Circuit.FEATURE1: (2, 0x10),
    Circuit.POOL: (2, 0x20),
    Circuit.FEATURE2: (2, 0x40),
    Circuit.FEATURE3: (2, 0x80),
    Circuit.FEATURE4: (3, 0x01),
}

_STATUS_LEN = 29

log = logging.getLogger("simulator")


def make_status_payload(now, circuits, water_temp=78, air_temp=71, solar_temp=80):
    """Build a system status payload for the given circuit set.

    Args:
        now: datetime.time reported by the controller.
        circuits: Iterable of Circuit values that are on.

    Returns:
        bytes: 29-byte payload.
    """
    payload = bytearray(_STATUS_LEN)
    payload[0] = now.hour
    payload[1] = now.minute
    for circuit in circuits:
        index, bit = _STATUS_BITS[circuit]
        payload[index] |= bit
    payload[14] = water_temp
    payload[18] = air_temp
    payload[19] = solar_temp
    return bytes(payload)


class Controller:
    """Simulated controller state: the set of circuits that are on."""

    def __init__(self, bus):
        self._bus = bus
        self._lock = threading.Lock()
        self.circuits = {Circuit.POOL}

    def status(self) -> Message:
        with self._lock:
            payload = make_status_payload(datetime.datetime.now().time(), self.circuits)
        return Message(
            codes.PROTO_COMMON, codes.STATION_BROADCAST, codes.STATION_CONTROLLER,
            codes.OP_SYSTEM_STATUS, payload,
        )

    def handle(self, message) -> None:
        """Apply a circuit state change request and acknowledge it."""
        if not isinstance(message.body, CircuitStateChangeRequest):
            return
        circuit = message.body.circuit
        if circuit not in _STATUS_BITS:
            return
        with self._lock:
            if message.body.state is CircuitPowerState.ON:
                self.circuits.add(circuit)
            else:
                self.circuits.discard(circuit)
        log.info("circuit %s -> %s", circuit.name, message.body.state.name)
        self._bus.put(Message(
            codes.PROTO_COMMON, message.src, codes.STATION_CONTROLLER,
            codes.OP_STATE_CHANGE_RESPONSE, bytes([codes.OP_CIRCUIT_STATE_CHANGE]),
        ))


def run(port, interval):
    """Run the simulator until interrupted or the port fails."""
    bus = PoolBus.open(port)
    controller = Controller(bus)
    stop = threading.Event()

    def _serve():
        try:
            with bus.subscribe() as sub:
                for message in sub:
                    controller.handle(message)
        except BusClosedError:
            pass

    threading.Thread(target=_serve, daemon=True).start()
    log.info("simulator: controller on %s", port)

    try:
        while not stop.wait(interval):
            bus.put(controller.status())
    except KeyboardInterrupt:
        pass
    finally:
        bus.close()


if __name__ == "__main__":
    if len(sys.argv) not in (2, 3):
        print("usage: simulator.py <port> [interval]", file=sys.stderr)
        sys.exit(1)
    logging.basicConfig(
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        level=logging.INFO,
    )
    run(sys.argv[1], float(sys.argv[2]) if len(sys.argv) == 3 else 2.0)
