"""Decoded bus messages.

A Message carries the five byte fields of a frame plus an optional
typed ``body``.  Equality and hashing look only at the bytes, so a
typed message equals a generic one built from the same frame.

Bodies are frozen dataclasses, one per message kind.  Each names the
protocol and opcode it belongs to; ``poolbus.registry`` maps those
pairs to decoders.

Example:
    >>> from poolbus.messages import Message
    >>> msg = Message(0x01, 0x10, 0x48, 0x86, b"\\x06\\x01")
    >>> msg.body is None
    True
    >>> msg.kind
    'Message'
"""

import datetime
from dataclasses import dataclass, field
from typing import ClassVar

from poolbus import codes
from poolbus.codes import (
    Circuit,
    CircuitPowerState,
    HeatSource,
    PumpControlRegimen,
    PumpPowerState,
    RequestOrResponse,
)


@dataclass(frozen=True)
class Message:
    """A message from or for the bus.

    Attributes:
        proto: Protocol byte (``PROTO_COMMON`` or ``PROTO_PUMP``).
        dst: Destination station.
        src: Source station.
        cmd: Opcode.
        payload: Raw payload bytes.
        body: Typed view of the payload, or None for an unrecognized
            (protocol, opcode) pair.  Not part of equality.

    Raises:
        ValueError: A header field is not a byte, or *body* belongs to a
            different protocol or opcode.
    """

    proto: int
    dst: int
    src: int
    cmd: int
    payload: bytes
    body: object = field(default=None, compare=False)

    def __post_init__(self):
        for name in ("proto", "dst", "src", "cmd"):
            value = getattr(self, name)
            if not 0 <= value <= 0xFF:
                raise ValueError("%s must be a byte, got %r" % (name, value))
        if self.body is not None and (
                self.body.PROTOCOL != self.proto or self.body.OPCODE != self.cmd):
            raise ValueError(
                "%s belongs to proto 0x%02X cmd 0x%02X, not proto 0x%02X cmd 0x%02X"
                % (type(self.body).__name__, self.body.PROTOCOL, self.body.OPCODE,
                   self.proto, self.cmd)
            )
        if not isinstance(self.payload, bytes):
            object.__setattr__(self, "payload", bytes(self.payload))

    @property
    def kind(self) -> str:
        """Name of the body type, or ``"Message"`` for a generic message."""
        return type(self.body).__name__ if self.body is not None else "Message"

    def __repr__(self):
        head = "proto=0x{:02X}, dst=0x{:02X}, src=0x{:02X}, cmd=0x{:02X}".format(
            self.proto, self.dst, self.src, self.cmd
        )
        if self.body is not None:
            return "{}({}, {!r})".format(self.kind, head, self.body)
        return "Message({}, payload='{}')".format(head, self.payload.hex(" "))


def _u16(payload: bytes, offset: int) -> int:
    """Big-endian 16-bit value at *offset*."""
    return (payload[offset] << 8) | payload[offset + 1]


# -- Common protocol bodies --------------------------------------------------


@dataclass(frozen=True)
class SystemStatus:
    """Periodic status report from the controller."""

    PROTOCOL: ClassVar[int] = codes.PROTO_COMMON
    OPCODE: ClassVar[int] = codes.OP_SYSTEM_STATUS

    time: datetime.time
    enabled_circuits: frozenset
    active_body: Circuit | None
    heater_on: bool
    delay_in_progress: bool
    # Temperature of the active body; meaningless with no active body.
    water_temp: int
    air_temp: int
    solar_temp: int
    pool_heat_source: HeatSource
    spa_heat_source: HeatSource

    @classmethod
    def from_payload(cls, payload: bytes) -> "SystemStatus":
        circuits = codes.circuits_from_bits(payload[2], payload[3])
        if Circuit.SPA in circuits:
            active = Circuit.SPA
        elif Circuit.POOL in circuits:
            active = Circuit.POOL
        else:
            active = None
        return cls(
            time=datetime.time(payload[0], payload[1]),
            enabled_circuits=circuits,
            active_body=active,
            heater_on=payload[10] == 15,
            delay_in_progress=bool(payload[12] & 0x04),
            water_temp=payload[14],
            air_temp=payload[18],
            solar_temp=payload[19],
            pool_heat_source=HeatSource.pool_from_code(payload[22]),
            spa_heat_source=HeatSource.spa_from_code(payload[22]),
        )


def _datetime_from_payload(payload: bytes) -> datetime.datetime:
    """HH, MM, (unused), DD, MO, YY (years since 2000)."""
    return datetime.datetime(
        2000 + payload[5], payload[4], payload[3], payload[0], payload[1]
    )


@dataclass(frozen=True)
class ClockStatus:
    """Clock/calendar report, sent periodically by the controller."""

    PROTOCOL: ClassVar[int] = codes.PROTO_COMMON
    OPCODE: ClassVar[int] = codes.OP_CLOCK_STATUS

    date_and_time: datetime.datetime

    @classmethod
    def from_payload(cls, payload: bytes) -> "ClockStatus":
        return cls(_datetime_from_payload(payload))


@dataclass(frozen=True)
class ClockChangeRequest:
    """Request to set the controller's clock."""

    PROTOCOL: ClassVar[int] = codes.PROTO_COMMON
    OPCODE: ClassVar[int] = codes.OP_CLOCK_CHANGE

    date_and_time: datetime.datetime

    @classmethod
    def from_payload(cls, payload: bytes) -> "ClockChangeRequest":
        return cls(_datetime_from_payload(payload))


@dataclass(frozen=True)
class HeatStatus:
    """Temperature and heat report, the answer to a HeatStatusQuery."""

    PROTOCOL: ClassVar[int] = codes.PROTO_COMMON
    OPCODE: ClassVar[int] = codes.OP_HEAT_STATUS

    water_temp_1: int
    # Never observed to differ from water_temp_1.
    water_temp_2: int
    air_temp: int
    pool_seek_temp: int
    spa_seek_temp: int
    pool_heat_source: HeatSource
    spa_heat_source: HeatSource
    solar_temp: int

    @classmethod
    def from_payload(cls, payload: bytes) -> "HeatStatus":
        return cls(
            water_temp_1=payload[0],
            water_temp_2=payload[1],
            air_temp=payload[2],
            pool_seek_temp=payload[3],
            spa_seek_temp=payload[4],
            pool_heat_source=HeatSource.pool_from_code(payload[5]),
            spa_heat_source=HeatSource.spa_from_code(payload[5]),
            solar_temp=payload[8],
        )


@dataclass(frozen=True)
class HeatStatusQuery:
    PROTOCOL: ClassVar[int] = codes.PROTO_COMMON
    OPCODE: ClassVar[int] = codes.OP_HEAT_STATUS_QUERY

    @classmethod
    def from_payload(cls, payload: bytes) -> "HeatStatusQuery":
        return cls()


@dataclass(frozen=True)
class HeatConfigurationChangeRequest:
    """Request to change seek temperatures and heat sources."""

    PROTOCOL: ClassVar[int] = codes.PROTO_COMMON
    OPCODE: ClassVar[int] = codes.OP_HEAT_CONFIG_CHANGE

    pool_seek_temp: int
    spa_seek_temp: int
    pool_heat_source: HeatSource
    spa_heat_source: HeatSource

    @classmethod
    def from_payload(cls, payload: bytes) -> "HeatConfigurationChangeRequest":
        return cls(
            pool_seek_temp=payload[0],
            spa_seek_temp=payload[1],
            pool_heat_source=HeatSource.pool_from_code(payload[2]),
            spa_heat_source=HeatSource.spa_from_code(payload[2]),
        )


@dataclass(frozen=True)
class RemoteLayoutStatus:
    """Circuit assigned to each of the basic remote's four buttons."""

    PROTOCOL: ClassVar[int] = codes.PROTO_COMMON
    OPCODE: ClassVar[int] = codes.OP_REMOTE_LAYOUT_STATUS

    buttons: tuple

    @classmethod
    def from_payload(cls, payload: bytes) -> "RemoteLayoutStatus":
        return cls(tuple(Circuit.for_code(payload[i]) for i in range(4)))


@dataclass(frozen=True)
class RemoteLayoutQuery:
    PROTOCOL: ClassVar[int] = codes.PROTO_COMMON
    OPCODE: ClassVar[int] = codes.OP_REMOTE_LAYOUT_QUERY

    @classmethod
    def from_payload(cls, payload: bytes) -> "RemoteLayoutQuery":
        return cls()


@dataclass(frozen=True)
class CircuitStateChangeRequest:
    """Request to switch a circuit on or off.

    ``circuit`` is None when the controller uses a code we don't know.
    """

    PROTOCOL: ClassVar[int] = codes.PROTO_COMMON
    OPCODE: ClassVar[int] = codes.OP_CIRCUIT_STATE_CHANGE

    circuit: Circuit | None
    state: CircuitPowerState

    @classmethod
    def from_payload(cls, payload: bytes) -> "CircuitStateChangeRequest":
        return cls(
            circuit=Circuit.for_code(payload[0]),
            state=CircuitPowerState.for_code(payload[1]),
        )


@dataclass(frozen=True)
class StateChangeResponse:
    """Controller's acknowledgement of a change request."""

    PROTOCOL: ClassVar[int] = codes.PROTO_COMMON
    OPCODE: ClassVar[int] = codes.OP_STATE_CHANGE_RESPONSE

    @classmethod
    def from_payload(cls, payload: bytes) -> "StateChangeResponse":
        return cls()


# -- Pump protocol bodies ----------------------------------------------------
#
# These take the frame's destination as well as its payload: the same
# opcode is used in both directions, and only the destination tells
# a request from a response.


@dataclass(frozen=True)
class PumpSpeed:
    """Set pump speed (request) or acknowledge it (response)."""

    PROTOCOL: ClassVar[int] = codes.PROTO_PUMP
    OPCODE: ClassVar[int] = codes.OP_PUMP_SPEED

    direction: RequestOrResponse
    speed: int

    @classmethod
    def from_payload(cls, payload: bytes, direction: RequestOrResponse) -> "PumpSpeed":
        # The request carries two bytes of register address before the RPM.
        offset = 2 if direction is RequestOrResponse.REQUEST else 0
        return cls(direction=direction, speed=_u16(payload, offset))


@dataclass(frozen=True)
class PumpControlRegimenMessage:
    PROTOCOL: ClassVar[int] = codes.PROTO_PUMP
    OPCODE: ClassVar[int] = codes.OP_PUMP_CONTROL_REGIMEN

    direction: RequestOrResponse
    regimen: PumpControlRegimen

    @classmethod
    def from_payload(cls, payload: bytes,
                     direction: RequestOrResponse) -> "PumpControlRegimenMessage":
        return cls(direction=direction, regimen=PumpControlRegimen.for_code(payload[0]))


@dataclass(frozen=True)
class PumpPowerStateMessage:
    """Turn the pump on or off (request) or acknowledge it (response)."""

    PROTOCOL: ClassVar[int] = codes.PROTO_PUMP
    OPCODE: ClassVar[int] = codes.OP_PUMP_POWER_STATE

    direction: RequestOrResponse
    power_state: PumpPowerState

    @classmethod
    def from_payload(cls, payload: bytes,
                     direction: RequestOrResponse) -> "PumpPowerStateMessage":
        return cls(direction=direction, power_state=PumpPowerState.for_code(payload[0]))


@dataclass(frozen=True)
class PumpStatus:
    """Status report sent by the pump."""

    PROTOCOL: ClassVar[int] = codes.PROTO_PUMP
    OPCODE: ClassVar[int] = codes.OP_PUMP_STATUS

    power_state: PumpPowerState
    power_watts: int
    speed_rpm: int
    time: datetime.time

    @classmethod
    def from_payload(cls, payload: bytes) -> "PumpStatus":
        return cls(
            power_state=PumpPowerState.for_code(payload[0]),
            power_watts=_u16(payload, 3),
            speed_rpm=_u16(payload, 5),
            time=datetime.time(payload[13], payload[14]),
        )


@dataclass(frozen=True)
class PumpStatusRequest:
    PROTOCOL: ClassVar[int] = codes.PROTO_PUMP
    OPCODE: ClassVar[int] = codes.OP_PUMP_STATUS

    @classmethod
    def from_payload(cls, payload: bytes) -> "PumpStatusRequest":
        return cls()
