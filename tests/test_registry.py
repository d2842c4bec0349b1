"""Tests for poolbus.registry."""

import datetime

import pytest

from conftest import status_payload
from poolbus.codes import (
    Circuit,
    CircuitPowerState,
    HeatSource,
    PumpControlRegimen,
    PumpPowerState,
    RequestOrResponse,
)
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
from poolbus.registry import DECODERS, Registry, decode_message


def _decode(proto, dst, src, cmd, payload=b""):
    return decode_message(Frame(proto, dst, src, cmd, payload))


# -- Common protocol ---------------------------------------------------------


class TestCommonProtocol:
    """Decoding of common-protocol message kinds."""

    def test_system_status(self):
        """System status fields come from their payload offsets."""
        payload = status_payload(hour=13, minute=5, circuits_lo=0x23,
                                 water=82, air=70, solar=95, heat=0b0110)
        payload = bytearray(payload)
        payload[10] = 15
        payload[12] = 0x04
        msg = _decode(0x01, 0x0F, 0x10, 0x02, bytes(payload))
        body = msg.body
        assert isinstance(body, SystemStatus)
        assert body.time == datetime.time(13, 5)
        assert body.enabled_circuits == {Circuit.POOL, Circuit.SPA, Circuit.AUX1}
        assert body.active_body is Circuit.SPA
        assert body.heater_on is True
        assert body.delay_in_progress is True
        assert (body.water_temp, body.air_temp, body.solar_temp) == (82, 70, 95)
        assert body.pool_heat_source is HeatSource.SOLAR_PREF
        assert body.spa_heat_source is HeatSource.HEATER

    def test_system_status_pool_only(self):
        """Pool is the active body when the spa is off."""
        msg = _decode(0x01, 0x0F, 0x10, 0x02, status_payload(circuits_lo=0x20))
        assert msg.body.active_body is Circuit.POOL
        assert msg.body.heater_on is False

    def test_system_status_no_body(self):
        """No active body when neither pool nor spa is on."""
        msg = _decode(0x01, 0x0F, 0x10, 0x02, status_payload(circuits_lo=0x02))
        assert msg.body.active_body is None

    def test_clock_status(self):
        """Clock status decodes hour, minute, day, month, year."""
        msg = _decode(0x01, 0x0F, 0x10, 0x05, bytes([21, 47, 0, 14, 7, 24, 0, 0]))
        assert isinstance(msg.body, ClockStatus)
        assert msg.body.date_and_time == datetime.datetime(2024, 7, 14, 21, 47)

    def test_clock_change_request(self):
        """Clock change requests share the clock layout."""
        msg = _decode(0x01, 0x10, 0x22, 0x85, bytes([8, 0, 0, 1, 1, 25]))
        assert isinstance(msg.body, ClockChangeRequest)
        assert msg.body.date_and_time == datetime.datetime(2025, 1, 1, 8, 0)

    def test_heat_status(self):
        """Heat status decodes temperatures and sources."""
        payload = bytes([80, 80, 65, 84, 101, 0b1101, 0, 0, 90, 0, 0, 0, 0])
        msg = _decode(0x01, 0x0F, 0x10, 0x08, payload)
        body = msg.body
        assert isinstance(body, HeatStatus)
        assert (body.water_temp_1, body.water_temp_2, body.air_temp) == (80, 80, 65)
        assert (body.pool_seek_temp, body.spa_seek_temp) == (84, 101)
        assert body.pool_heat_source is HeatSource.HEATER
        assert body.spa_heat_source is HeatSource.SOLAR
        assert body.solar_temp == 90

    def test_heat_status_query(self):
        """Opcode 0xC8 is a heat status query."""
        assert isinstance(_decode(0x01, 0x10, 0x22, 0xC8).body, HeatStatusQuery)

    def test_heat_configuration_change(self):
        """Heat config change decodes seek temps and sources."""
        msg = _decode(0x01, 0x10, 0x22, 0x88, bytes([85, 102, 0b1001, 0]))
        body = msg.body
        assert isinstance(body, HeatConfigurationChangeRequest)
        assert (body.pool_seek_temp, body.spa_seek_temp) == (85, 102)
        assert body.pool_heat_source is HeatSource.HEATER
        assert body.spa_heat_source is HeatSource.SOLAR_PREF

    def test_remote_layout(self):
        """Remote layout status maps four button codes to circuits."""
        msg = _decode(0x01, 0x48, 0x10, 0x21, bytes([0x06, 0x01, 0x02, 0x42]))
        assert isinstance(msg.body, RemoteLayoutStatus)
        assert msg.body.buttons == (Circuit.POOL, Circuit.SPA, Circuit.AUX1, None)

    def test_remote_layout_query(self):
        """Opcode 0xE1 is a remote layout query."""
        assert isinstance(_decode(0x01, 0x10, 0x48, 0xE1).body, RemoteLayoutQuery)

    def test_circuit_state_change(self):
        """Circuit state change decodes circuit and state."""
        msg = _decode(0x01, 0x10, 0x48, 0x86, bytes([0x03, 0x00]))
        assert msg.body == CircuitStateChangeRequest(Circuit.AUX2, CircuitPowerState.OFF)

    def test_state_change_response(self):
        """Opcode 0x01 on the common protocol is an acknowledgement."""
        msg = _decode(0x01, 0x48, 0x10, 0x01, b"\x86")
        assert isinstance(msg.body, StateChangeResponse)


# -- Pump protocol -----------------------------------------------------------


class TestPumpProtocol:
    """Decoding of pump-protocol kinds and direction disambiguation."""

    def test_pump_speed_request(self):
        """To a pump: speed follows a two-byte register address."""
        msg = _decode(0x00, 0x60, 0x10, 0x01, bytes([0x02, 0xC4, 0x05, 0xDC]))
        assert msg.body == PumpSpeed(RequestOrResponse.REQUEST, 1500)

    def test_pump_speed_response(self):
        """From a pump: speed is the first two bytes."""
        msg = _decode(0x00, 0x10, 0x60, 0x01, bytes([0x05, 0xDC]))
        assert msg.body == PumpSpeed(RequestOrResponse.RESPONSE, 1500)

    def test_pump_control_regimen(self):
        """0xFF means an external controller is in charge."""
        msg = _decode(0x00, 0x60, 0x10, 0x04, b"\xff")
        assert msg.body == PumpControlRegimenMessage(
            RequestOrResponse.REQUEST, PumpControlRegimen.EXTERNAL)

    def test_pump_power_state(self):
        """0x0A means running."""
        msg = _decode(0x00, 0x10, 0x60, 0x06, b"\x0a")
        assert msg.body == PumpPowerStateMessage(
            RequestOrResponse.RESPONSE, PumpPowerState.RUNNING)

    def test_pump_status_request_when_dst_is_pump(self):
        """0x07 addressed to a pump is a status request."""
        msg = _decode(0x00, 0x61, 0x10, 0x07)
        assert isinstance(msg.body, PumpStatusRequest)

    def test_pump_status_report_otherwise(self):
        """0x07 addressed elsewhere is the pump's status report."""
        payload = bytes([0x0A, 0, 0, 0x01, 0xF4, 0x0B, 0xB8,
                         0, 0, 0, 0, 0, 0, 14, 30])
        msg = _decode(0x00, 0x10, 0x60, 0x07, payload)
        assert msg.body == PumpStatus(
            PumpPowerState.RUNNING, 500, 3000, datetime.time(14, 30))

    def test_custom_pump_predicate(self):
        """Registry uses the supplied pump predicate."""
        registry = Registry(is_pump=lambda station: station == 0x20)
        msg = registry.decode(Frame(0x00, 0x20, 0x10, 0x07, b""))
        assert isinstance(msg.body, PumpStatusRequest)


# -- Fallbacks and errors ----------------------------------------------------


class TestFallbacks:
    """Unknown pairs, malformed payloads, and opcode checks."""

    def test_unknown_opcode_is_generic(self):
        """An unmapped opcode yields a generic message with raw payload."""
        msg = _decode(0x01, 0x10, 0x22, 0x40, b"\x01\x02\x03")
        assert msg.body is None
        assert msg.payload == b"\x01\x02\x03"

    def test_unknown_protocol_is_generic(self):
        """An unmapped protocol yields a generic message."""
        msg = _decode(0x02, 0x10, 0x22, 0x02, b"\x01")
        assert msg.kind == "Message"

    def test_protocol_selects_table(self):
        """Opcode 0x01 means different things per protocol."""
        assert isinstance(_decode(0x01, 0x48, 0x10, 0x01).body, StateChangeResponse)
        assert isinstance(_decode(0x00, 0x10, 0x60, 0x01, b"\x05\xdc").body, PumpSpeed)

    def test_short_payload_is_decode_error(self):
        """A truncated system status raises DecodeError."""
        with pytest.raises(DecodeError):
            _decode(0x01, 0x0F, 0x10, 0x02, b"\x0a\x1e\x20")

    def test_bad_value_is_decode_error(self):
        """An out-of-range circuit state raises DecodeError."""
        with pytest.raises(DecodeError):
            _decode(0x01, 0x10, 0x48, 0x86, b"\x06\x07")

    def test_bad_time_is_decode_error(self):
        """Hour 25 raises DecodeError rather than ValueError."""
        with pytest.raises(DecodeError):
            _decode(0x01, 0x0F, 0x10, 0x02, status_payload(hour=25))

    def test_decoder_checks_opcode(self):
        """A decoder fed a frame of another kind refuses it."""
        registry = Registry(decoders={
            (0x01, 0x40): DECODERS[(0x01, 0xC8)],
        })
        with pytest.raises(DecodeError, match="HeatStatusQuery"):
            registry.decode(Frame(0x01, 0x10, 0x22, 0x40, b""))

    def test_typed_equals_generic(self):
        """Decoded messages compare equal to generic ones with the same bytes."""
        typed = _decode(0x01, 0x10, 0x22, 0xC8)
        assert typed == Message(0x01, 0x10, 0x22, 0xC8, b"")

    def test_table_covers_known_kinds(self):
        """Every documented (protocol, opcode) pair has a decoder."""
        expected = {
            (0x01, 0x02), (0x01, 0x05), (0x01, 0x85), (0x01, 0x08),
            (0x01, 0xC8), (0x01, 0x88), (0x01, 0x21), (0x01, 0xE1),
            (0x01, 0x86), (0x01, 0x01),
            (0x00, 0x01), (0x00, 0x04), (0x00, 0x06), (0x00, 0x07),
        }
        assert set(DECODERS) == expected
