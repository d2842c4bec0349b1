"""Decode-dispatch from (protocol, opcode) to typed messages.

The table below is the complete set of message kinds we understand.
To add a kind, add a body class in ``poolbus.messages`` and an entry
here.  Frames whose pair is not in the table decode to a generic
Message with ``body=None``.

One opcode is ambiguous: pump-protocol 0x07 is a status request when
addressed to a pump and a status report otherwise.  The same
destination rule tells pump requests from responses for the speed,
regimen and power-state opcodes.  The rule is the ``is_pump``
predicate handed to Registry.

Example:
    >>> from poolbus.protocol import Frame
    >>> from poolbus.registry import decode_message
    >>> msg = decode_message(Frame(0x00, 0x60, 0x10, 0x07, b""))
    >>> msg.kind
    'PumpStatusRequest'
"""

import logging
from typing import Callable

from poolbus import codes
from poolbus.codes import RequestOrResponse
from poolbus.messages import (
    CircuitStateChangeRequest,
    ClockChangeRequest,
    ClockStatus,
    HeatConfigurationChangeRequest,
    HeatStatus,
    HeatStatusQuery,
    Message,
    PumpControlRegimenMessage,
    PumpPowerStateMessage,
    PumpSpeed,
    PumpStatus,
    PumpStatusRequest,
    RemoteLayoutQuery,
    RemoteLayoutStatus,
    StateChangeResponse,
    SystemStatus,
)
from poolbus.protocol import DecodeError, Frame

log = logging.getLogger(__name__)

# decoder(frame, is_pump) -> body
Decoder = Callable[[Frame, Callable[[int], bool]], object]


def _check_opcode(frame: Frame, body_cls) -> None:
    if frame.proto != body_cls.PROTOCOL or frame.cmd != body_cls.OPCODE:
        raise DecodeError(
            "{} expects proto 0x{:02X} cmd 0x{:02X}, got proto 0x{:02X} "
            "cmd 0x{:02X}".format(
                body_cls.__name__, body_cls.PROTOCOL, body_cls.OPCODE,
                frame.proto, frame.cmd,
            )
        )


def _plain(body_cls) -> Decoder:
    """Decoder for a kind whose fields depend only on the payload."""
    def decode(frame, is_pump):
        _check_opcode(frame, body_cls)
        return body_cls.from_payload(frame.payload)
    decode.__name__ = "decode_" + body_cls.__name__
    return decode


def _directional(body_cls) -> Decoder:
    """Decoder for a pump kind that exists as request and response."""
    def decode(frame, is_pump):
        _check_opcode(frame, body_cls)
        direction = RequestOrResponse.for_dst(frame.dst, is_pump)
        return body_cls.from_payload(frame.payload, direction)
    decode.__name__ = "decode_" + body_cls.__name__
    return decode


def _decode_pump_status(frame: Frame, is_pump):
    body_cls = PumpStatusRequest if is_pump(frame.dst) else PumpStatus
    _check_opcode(frame, body_cls)
    return body_cls.from_payload(frame.payload)


DECODERS: dict[tuple[int, int], Decoder] = {
    (codes.PROTO_COMMON, codes.OP_SYSTEM_STATUS): _plain(SystemStatus),
    (codes.PROTO_COMMON, codes.OP_CLOCK_STATUS): _plain(ClockStatus),
    (codes.PROTO_COMMON, codes.OP_CLOCK_CHANGE): _plain(ClockChangeRequest),
    (codes.PROTO_COMMON, codes.OP_HEAT_STATUS): _plain(HeatStatus),
    (codes.PROTO_COMMON, codes.OP_HEAT_STATUS_QUERY): _plain(HeatStatusQuery),
    (codes.PROTO_COMMON, codes.OP_HEAT_CONFIG_CHANGE): _plain(HeatConfigurationChangeRequest),
    (codes.PROTO_COMMON, codes.OP_REMOTE_LAYOUT_STATUS): _plain(RemoteLayoutStatus),
    (codes.PROTO_COMMON, codes.OP_REMOTE_LAYOUT_QUERY): _plain(RemoteLayoutQuery),
    (codes.PROTO_COMMON, codes.OP_CIRCUIT_STATE_CHANGE): _plain(CircuitStateChangeRequest),
    (codes.PROTO_COMMON, codes.OP_STATE_CHANGE_RESPONSE): _plain(StateChangeResponse),
    (codes.PROTO_PUMP, codes.OP_PUMP_SPEED): _directional(PumpSpeed),
    (codes.PROTO_PUMP, codes.OP_PUMP_CONTROL_REGIMEN): _directional(PumpControlRegimenMessage),
    (codes.PROTO_PUMP, codes.OP_PUMP_POWER_STATE): _directional(PumpPowerStateMessage),
    (codes.PROTO_PUMP, codes.OP_PUMP_STATUS): _decode_pump_status,
}


class Registry:
    """Maps frames to messages.

    Args:
        decoders: (protocol, opcode) -> decoder table.  Defaults to
            DECODERS.
        is_pump: Predicate on a station byte; True for pump addresses.

    Example:
        >>> registry = Registry(is_pump=lambda station: station == 0x61)
        >>> registry.decode(Frame(0x00, 0x61, 0x10, 0x07, b"")).kind
        'PumpStatusRequest'
    """

    def __init__(self, decoders: dict | None = None, is_pump=codes.is_pump):
        self._decoders = dict(DECODERS if decoders is None else decoders)
        self._is_pump = is_pump

    def decode(self, frame: Frame) -> Message:
        """Classify and decode *frame*.

        Raises:
            DecodeError: The payload is too short or holds values
                that make no sense for the frame's kind.
        """
        decoder = self._decoders.get((frame.proto, frame.cmd))
        if decoder is None:
            log.debug(
                "no decoder for proto 0x%02X cmd 0x%02X", frame.proto, frame.cmd
            )
            return Message(frame.proto, frame.dst, frame.src, frame.cmd, frame.payload)

        try:
            body = decoder(frame, self._is_pump)
        except (IndexError, ValueError) as exc:
            raise DecodeError(
                "cannot decode proto 0x{:02X} cmd 0x{:02X} payload [{}]: {}".format(
                    frame.proto, frame.cmd, frame.payload.hex(" "), exc
                )
            ) from exc

        return Message(
            frame.proto, frame.dst, frame.src, frame.cmd, frame.payload, body
        )


_DEFAULT = Registry()


def decode_message(frame: Frame) -> Message:
    """Decode *frame* with the default table and pump predicate."""
    return _DEFAULT.decode(frame)
