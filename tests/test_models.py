"""Unit tests for data models."""

import pytest
from pydantic import ValidationError

from auditdeck.core.models import (
    ChannelConfig,
    ChannelKind,
    EngageRequest,
    NetworkSnapshot,
    PortalStartRequest,
    SessionTimings,
)


class TestChannelConfig:
    """Tests for ChannelConfig."""

    def test_usb_has_no_pins(self):
        config = ChannelConfig(channel_id="usb", kind=ChannelKind.USB, port="/dev/ttyACM0")
        assert config.tx_pin is None
        assert config.baudrate == 115200

    def test_frozen(self):
        config = ChannelConfig(channel_id="usb", kind=ChannelKind.USB, port="/dev/ttyACM0")
        with pytest.raises(ValidationError):
            config.port = "/dev/ttyACM1"

    def test_empty_port_rejected(self):
        with pytest.raises(ValidationError):
            ChannelConfig(channel_id="usb", kind=ChannelKind.USB, port="")


class TestSessionTimings:
    """Tests for SessionTimings."""

    def test_defaults(self):
        timings = SessionTimings()
        assert timings.scan_timeout == 30.0
        assert timings.sniffer_timeout == 5.0
        assert timings.focus_first_poll_delay == 2.0
        assert timings.post_scan_settle == 0.5

    def test_deadline_must_be_positive(self):
        with pytest.raises(ValidationError):
            SessionTimings(scan_timeout=0)


class TestNetworkSnapshot:
    """Tests for NetworkSnapshot."""

    def test_client_count(self):
        snapshot = NetworkSnapshot(
            display_index=1,
            ssid="Cafe",
            bssid="C4:2B:44:12:29:21",
            channel=6,
            rssi=-53,
            clients=["AA:BB:CC:DD:EE:01", "AA:BB:CC:DD:EE:02"],
        )
        assert snapshot.client_count == 2

    def test_ssid_length(self):
        with pytest.raises(ValidationError):
            NetworkSnapshot(display_index=1, ssid="x" * 33, bssid="C4:2B:44:12:29:21", channel=6, rssi=-53)


class TestRequests:
    """Tests for API request models."""

    def test_engage_normalises_station(self):
        request = EngageRequest(display_index=3, station=" aa:bb:cc:dd:ee:01 ")
        assert request.station == "AA:BB:CC:DD:EE:01"
        assert request.action == "start_deauth"

    def test_engage_rejects_bad_station(self):
        with pytest.raises(ValidationError):
            EngageRequest(display_index=3, station="aa:bb:cc")

    def test_engage_index_positive(self):
        with pytest.raises(ValidationError):
            EngageRequest(display_index=0, station="AA:BB:CC:DD:EE:01")

    def test_portal_ssid_length(self):
        with pytest.raises(ValidationError):
            PortalStartRequest(ssid="x" * 33)
