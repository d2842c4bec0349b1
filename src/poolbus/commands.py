"""Outbound messages for putting on the bus.

Builders return fully decoded Messages, so what you send looks the
same as what a subscriber would see if another device sent it.

Example:
    >>> from poolbus.codes import Circuit, CircuitPowerState
    >>> from poolbus.commands import circuit_state_change_request
    >>> msg = circuit_state_change_request(Circuit.POOL, CircuitPowerState.ON)
    >>> msg.payload
    b'\\x06\\x01'
"""

import datetime

from poolbus import codes
from poolbus.codes import Circuit, CircuitPowerState, HeatSource
from poolbus.messages import Message
from poolbus.protocol import Frame
from poolbus.registry import decode_message

# Highest seek temperature the controller accepts.
MAX_SEEK_TEMP = 127


def _build(proto: int, dst: int, src: int, cmd: int, payload: bytes) -> Message:
    return decode_message(Frame(proto, dst, src, cmd, payload))


HEAT_STATUS_QUERY = _build(
    codes.PROTO_COMMON, codes.STATION_CONTROLLER, codes.STATION_ADVANCED_REMOTE,
    codes.OP_HEAT_STATUS_QUERY, b"",
)

PUMP_STATUS_REQUEST = _build(
    codes.PROTO_PUMP, codes.STATION_PUMP, codes.STATION_CONTROLLER,
    codes.OP_PUMP_STATUS, b"",
)


def circuit_state_change_request(circuit: Circuit, state: CircuitPowerState) -> Message:
    """Ask the controller to switch *circuit* to *state*.

    Sent as the basic remote would send it.
    """
    return _build(
        codes.PROTO_COMMON, codes.STATION_CONTROLLER, codes.STATION_BASIC_REMOTE,
        codes.OP_CIRCUIT_STATE_CHANGE, bytes([int(circuit), int(state)]),
    )


def clock_change_request(dt: datetime.datetime) -> Message:
    """Ask the controller to set its clock to *dt* (minute resolution).

    Raises:
        ValueError: If *dt* is outside 2000-2255.
    """
    if not 2000 <= dt.year <= 2255:
        raise ValueError("year must be in range 2000-2255, got {}".format(dt.year))
    payload = bytes([dt.hour, dt.minute, 0, dt.day, dt.month, dt.year - 2000])
    return _build(
        codes.PROTO_COMMON, codes.STATION_CONTROLLER, codes.STATION_ADVANCED_REMOTE,
        codes.OP_CLOCK_CHANGE, payload,
    )


def heat_configuration_change_request(pool_seek_temp: int, spa_seek_temp: int,
                                      pool_source: HeatSource,
                                      spa_source: HeatSource) -> Message:
    """Ask the controller to change seek temperatures and heat sources.

    Raises:
        ValueError: If either seek temperature is outside 0-127.

    Example:
        >>> msg = heat_configuration_change_request(
        ...     85, 102, HeatSource.HEATER, HeatSource.SOLAR_PREF)
        >>> msg.payload.hex(' ')
        '55 66 09 00'
    """
    for name, temp in (("pool", pool_seek_temp), ("spa", spa_seek_temp)):
        if not 0 <= temp <= MAX_SEEK_TEMP:
            raise ValueError(
                "{} seek temperature must be in range 0-{}, got {}".format(
                    name, MAX_SEEK_TEMP, temp
                )
            )
    payload = bytes([
        pool_seek_temp, spa_seek_temp,
        HeatSource.code_from_sources(pool_source, spa_source), 0x00,
    ])
    return _build(
        codes.PROTO_COMMON, codes.STATION_CONTROLLER, codes.STATION_ADVANCED_REMOTE,
        codes.OP_HEAT_CONFIG_CHANGE, payload,
    )
