"""Byte codes and domain enums for the pool automation bus.

The constants here are the "nouns and verbs" of the bus: protocol
bytes, station addresses, and per-protocol opcodes.  The mnemonics are
our own.

Example:
    >>> from poolbus.codes import PROTO_COMMON, OP_SYSTEM_STATUS, is_pump
    >>> is_pump(0x60)
    True
    >>> is_pump(0x10)
    False
"""

import enum

# -- Protocols ---------------------------------------------------------------

# Used by the controller, remotes, and everything except the pump.
PROTO_COMMON = 0x01
# Used by all messages to and from the pump.
PROTO_PUMP = 0x00

# -- Stations ----------------------------------------------------------------

STATION_CONTROLLER = 0x10
STATION_BASIC_REMOTE = 0x48
STATION_ADVANCED_REMOTE = 0x22
# First pump; a multi-pump system uses 0x60-0x6F.
STATION_PUMP = 0x60
STATION_BROADCAST = 0xC8

# -- Opcodes, common protocol ------------------------------------------------

OP_STATE_CHANGE_RESPONSE = 0x01
OP_SYSTEM_STATUS = 0x02
OP_CLOCK_STATUS = 0x05
OP_HEAT_STATUS = 0x08
OP_REMOTE_LAYOUT_STATUS = 0x21
OP_CLOCK_CHANGE = 0x85
OP_CIRCUIT_STATE_CHANGE = 0x86
OP_HEAT_CONFIG_CHANGE = 0x88
OP_HEAT_STATUS_QUERY = 0xC8
OP_REMOTE_LAYOUT_QUERY = 0xE1

# -- Opcodes, pump protocol --------------------------------------------------

OP_PUMP_SPEED = 0x01
OP_PUMP_CONTROL_REGIMEN = 0x04
OP_PUMP_POWER_STATE = 0x06
# Status request when sent to a pump, status report otherwise.
OP_PUMP_STATUS = 0x07


def is_pump(station: int) -> bool:
    """Return True if *station* is a pump address (high nibble 0x6)."""
    return (station & 0xF0) == 0x60


# -- Domain enums ------------------------------------------------------------


class Circuit(enum.IntEnum):
    """A physical or virtual circuit managed by the controller."""

    SPA = 0x01
    AUX1 = 0x02
    AUX2 = 0x03
    AUX3 = 0x04
    FEATURE1 = 0x05
    POOL = 0x06
    FEATURE2 = 0x07
    FEATURE3 = 0x08
    FEATURE4 = 0x09
    HEAT_BOOST = 0x85
    HEAT_ENABLE = 0x86

    @classmethod
    def for_code(cls, code: int) -> "Circuit | None":
        """Return the circuit for *code*, or None if unknown."""
        try:
            return cls(code)
        except ValueError:
            return None


AUX_CIRCUITS = frozenset({Circuit.AUX1, Circuit.AUX2, Circuit.AUX3})
FEATURE_CIRCUITS = frozenset({
    Circuit.FEATURE1, Circuit.FEATURE2, Circuit.FEATURE3, Circuit.FEATURE4,
})

# Bit positions of each circuit in the two status-report circuit bytes.
_CIRCUIT_BITS = (
    (0, 0x20, Circuit.POOL),
    (0, 0x01, Circuit.SPA),
    (0, 0x02, Circuit.AUX1),
    (0, 0x04, Circuit.AUX2),
    (0, 0x08, Circuit.AUX3),
    (0, 0x10, Circuit.FEATURE1),
    (0, 0x40, Circuit.FEATURE2),
    (0, 0x80, Circuit.FEATURE3),
    (1, 0x01, Circuit.FEATURE4),
)


def circuits_from_bits(lo: int, hi: int) -> frozenset:
    """Decode the enabled-circuit bitmap of a system status report.

    Example:
        >>> sorted(circuits_from_bits(0x21, 0x00))
        [<Circuit.SPA: 1>, <Circuit.POOL: 6>]
    """
    bitmap = (lo, hi)
    return frozenset(
        circuit for index, mask, circuit in _CIRCUIT_BITS
        if bitmap[index] & mask
    )


class CircuitPowerState(enum.IntEnum):
    """Requested state of a powered circuit."""

    OFF = 0
    ON = 1

    @classmethod
    def for_code(cls, code: int) -> "CircuitPowerState":
        """Return the state for *code*.

        Raises:
            ValueError: If *code* is neither 0 nor 1.
        """
        if code not in (0, 1):
            raise ValueError("illegal circuit state code: 0x%02X" % code)
        return cls(code)


class HeatSource(enum.IntEnum):
    """A heat source, or UNHEATED for none.

    Pool and spa sources share one byte: pool in bits 0-1, spa in
    bits 2-3.
    """

    UNHEATED = 0
    HEATER = 1
    SOLAR_PREF = 2
    SOLAR = 3

    @classmethod
    def pool_from_code(cls, code: int) -> "HeatSource":
        return cls(code & 0b11)

    @classmethod
    def spa_from_code(cls, code: int) -> "HeatSource":
        return cls((code >> 2) & 0b11)

    @staticmethod
    def code_from_sources(pool: "HeatSource", spa: "HeatSource") -> int:
        """Pack pool and spa sources into the combined byte.

        Example:
            >>> HeatSource.code_from_sources(HeatSource.HEATER, HeatSource.SOLAR)
            13
        """
        return int(pool) | (int(spa) << 2)


class PumpPowerState(enum.Enum):
    """Pump power state.  UNKNOWN marks a code we have not seen before."""

    STOPPED = 0x04
    RUNNING = 0x0A
    UNKNOWN = None

    @classmethod
    def for_code(cls, code: int) -> "PumpPowerState":
        if code == 0x04:
            return cls.STOPPED
        if code == 0x0A:
            return cls.RUNNING
        return cls.UNKNOWN


class PumpControlRegimen(enum.Enum):
    """Whether the pump controls itself or obeys an external controller."""

    INTERNAL = 0x00
    EXTERNAL = 0xFF
    UNKNOWN = None

    @classmethod
    def for_code(cls, code: int) -> "PumpControlRegimen":
        if code == 0x00:
            return cls.INTERNAL
        if code == 0xFF:
            return cls.EXTERNAL
        return cls.UNKNOWN


class RequestOrResponse(enum.Enum):
    """Direction of a pump message that exists in both forms.

    A message addressed to a pump is a request; anything else is the
    pump's response.
    """

    REQUEST = "request"
    RESPONSE = "response"

    @classmethod
    def for_dst(cls, dst: int, pump_predicate=is_pump) -> "RequestOrResponse":
        return cls.REQUEST if pump_predicate(dst) else cls.RESPONSE
