"""Unit tests for response line grammars."""

import pytest

from auditdeck.protocol.parsers import (
    HOST_GRAMMAR,
    NETWORK_LIST_GRAMMAR,
    PROBE_GRAMMAR,
    SCAN_GRAMMAR,
    SNIFFER_GRAMMAR,
    CompletionMarker,
    HostEntry,
    LineClassifier,
    NetworkListing,
    ObservedNetwork,
    ProbeEntry,
    SnifferClient,
    SnifferHeader,
    SnifferOtherLine,
    is_completion_marker,
    normalize_mac,
    parse_host_entry,
    parse_network_list_line,
    parse_observer_scan_line,
    parse_probe_entry,
    parse_sniffer_client,
    parse_sniffer_header,
    parse_sniffer_other_line,
    split_quoted_csv,
)

CAFE_LINE = '"1","Cafe","","C4:2B:44:12:29:21","6","WPA2","-53","2.4GHz"'


class TestMacAddress:
    """Tests for positional MAC validation."""

    def test_valid_upper(self):
        assert normalize_mac("AA:BB:CC:DD:EE:01") == "AA:BB:CC:DD:EE:01"

    def test_lower_is_canonicalised(self):
        assert normalize_mac("aa:bb:cc:dd:ee:0f") == "AA:BB:CC:DD:EE:0F"

    @pytest.mark.parametrize(
        "token",
        [
            "AA:BB:CC:DD:EE",
            "AA:BB:CC:DD:EE:01:02",
            "AA-BB-CC-DD-EE-01",
            "AA:BB:CC:DD:EE:G1",
            "AABB:CC:DD:EE:01:",
            "",
        ],
    )
    def test_invalid(self, token):
        assert normalize_mac(token) is None


class TestQuotedCsv:
    """Tests for the shared CSV splitter."""

    def test_eight_fields(self):
        fields = split_quoted_csv(CAFE_LINE)
        assert fields == ["1", "Cafe", "", "C4:2B:44:12:29:21", "6", "WPA2", "-53", "2.4GHz"]

    def test_wrong_field_count(self):
        assert split_quoted_csv('"1","Cafe","","C4:2B:44:12:29:21","6","WPA2","-53"') is None

    def test_unquoted(self):
        assert split_quoted_csv("1,Cafe,,C4:2B:44:12:29:21,6,WPA2,-53,2.4GHz") is None

    def test_stray_quote_rejected(self):
        assert split_quoted_csv('"1","Ca"fe","","C4:2B:44:12:29:21","6","WPA2","-53","2.4GHz"') is None


class TestObserverScanLine:
    """Tests for the observer variant (field 4 is the channel)."""

    def test_parse(self):
        net = parse_observer_scan_line(CAFE_LINE)
        assert net == ObservedNetwork(
            display_index=1,
            ssid="Cafe",
            bssid="C4:2B:44:12:29:21",
            channel=6,
            rssi=-53,
            band="2.4GHz",
        )

    def test_hidden_ssid(self):
        net = parse_observer_scan_line('"7","","","10:20:30:40:50:60","36","OPEN","-81","5GHz"')
        assert net is not None
        assert net.ssid == ""
        assert net.channel == 36

    def test_ssid_with_comma(self):
        net = parse_observer_scan_line('"2","Bob, Alice","","10:20:30:40:50:60","1","WPA2","-60","2.4GHz"')
        assert net is not None
        assert net.ssid == "Bob, Alice"

    def test_bssid_canonicalised(self):
        net = parse_observer_scan_line('"2","x","","aa:bb:cc:00:11:22","11","WPA2","-70","2.4GHz"')
        assert net.bssid == "AA:BB:CC:00:11:22"

    @pytest.mark.parametrize(
        "line",
        [
            '"0","Cafe","","C4:2B:44:12:29:21","6","WPA2","-53","2.4GHz"',
            '"x","Cafe","","C4:2B:44:12:29:21","6","WPA2","-53","2.4GHz"',
            '"1","Cafe","","not-a-mac","6","WPA2","-53","2.4GHz"',
            '"1","Cafe","","C4:2B:44:12:29:21","ch","WPA2","-53","2.4GHz"',
            '"1","Cafe","","C4:2B:44:12:29:21","6","WPA2","strong","2.4GHz"',
            '"1","' + "S" * 33 + '","","C4:2B:44:12:29:21","6","WPA2","-53","2.4GHz"',
            ' "1","Cafe","","C4:2B:44:12:29:21","6","WPA2","-53","2.4GHz"',
        ],
    )
    def test_rejects_malformed(self, line):
        assert parse_observer_scan_line(line) is None

    def test_deterministic(self):
        assert parse_observer_scan_line(CAFE_LINE) == parse_observer_scan_line(CAFE_LINE)


class TestNetworkListLine:
    """Tests for the network-list variant (field 5 is security, no channel)."""

    def test_parse(self):
        net = parse_network_list_line(CAFE_LINE)
        assert net == NetworkListing(
            display_index=1,
            ssid="Cafe",
            bssid="C4:2B:44:12:29:21",
            security="WPA2",
            rssi=-53,
            band="2.4GHz",
        )

    def test_ignores_channel_field(self):
        """Field 4 is a placeholder in this variant and may hold anything."""
        net = parse_network_list_line('"3","Lab","","10:20:30:40:50:60","n/a","WPA3","-40","5GHz"')
        assert net is not None
        assert net.security == "WPA3"
        assert parse_observer_scan_line('"3","Lab","","10:20:30:40:50:60","n/a","WPA3","-40","5GHz"') is None


class TestSnifferLines:
    """Tests for sniffer header and client lines."""

    def test_header(self):
        assert parse_sniffer_header("Cafe, CH6: 2") == SnifferHeader(ssid="Cafe", channel=6, client_count=2)

    def test_header_ssid_with_marker_inside(self):
        header = parse_sniffer_header("Net, CH1 guest, CH11: 0")
        assert header == SnifferHeader(ssid="Net, CH1 guest", channel=11, client_count=0)

    def test_header_enclosing_quotes(self):
        assert parse_sniffer_header('"Cafe, CH6: 1"') == SnifferHeader(ssid="Cafe", channel=6, client_count=1)

    def test_header_cannot_be_indented(self):
        assert parse_sniffer_header("  Cafe, CH6: 2") is None

    def test_header_rejects_other_text(self):
        assert parse_sniffer_header("Sniffer started") is None

    def test_client(self):
        assert parse_sniffer_client("   aa:bb:cc:dd:ee:01") == SnifferClient(mac="AA:BB:CC:DD:EE:01")

    def test_client_with_trailing_text(self):
        assert parse_sniffer_client("\tAA:BB:CC:DD:EE:01  -67") == SnifferClient(mac="AA:BB:CC:DD:EE:01")

    def test_client_must_be_indented(self):
        assert parse_sniffer_client("AA:BB:CC:DD:EE:01") is None

    def test_client_rejects_glued_suffix(self):
        assert parse_sniffer_client("  AA:BB:CC:DD:EE:01xyz") is None

    def test_grammar_order(self):
        assert isinstance(SNIFFER_GRAMMAR.classify("Cafe, CH6: 0"), SnifferHeader)
        assert isinstance(SNIFFER_GRAMMAR.classify("  AA:BB:CC:DD:EE:01"), SnifferClient)
        assert SNIFFER_GRAMMAR.classify("> show_sniffer_results") == SnifferOtherLine(text="> show_sniffer_results")
        assert SNIFFER_GRAMMAR.classify("   not a mac") is None

    def test_other_line_is_unindented_only(self):
        assert parse_sniffer_other_line("Probe requests seen:") == SnifferOtherLine(text="Probe requests seen:")
        assert parse_sniffer_other_line("   Probe requests seen:") is None
        assert parse_sniffer_other_line("") is None


class TestListings:
    """Tests for probe and host entries."""

    def test_probe(self):
        assert parse_probe_entry("3  HomeNet  ") == ProbeEntry(index=3, ssid="HomeNet")

    def test_probe_ssid_with_spaces(self):
        assert parse_probe_entry("12\tMy Home WiFi") == ProbeEntry(index=12, ssid="My Home WiFi")

    def test_probe_requires_ssid(self):
        assert parse_probe_entry("3   ") is None
        assert parse_probe_entry("Probes:") is None

    def test_host(self):
        assert parse_host_entry("192.168.4.2 -> aa:bb:cc:dd:ee:01") == HostEntry(
            ip="192.168.4.2", mac="AA:BB:CC:DD:EE:01"
        )

    @pytest.mark.parametrize(
        "line",
        [
            "192.168.4.300 -> AA:BB:CC:DD:EE:01",
            "192.168.4 -> AA:BB:CC:DD:EE:01",
            "192.168.4.2 -> AA:BB:CC:DD:EE",
            "192.168.4.2 AA:BB:CC:DD:EE:01",
        ],
    )
    def test_host_requires_both_sides(self, line):
        assert parse_host_entry(line) is None

    def test_grammars(self):
        assert PROBE_GRAMMAR.classify("1 Cafe") == ProbeEntry(index=1, ssid="Cafe")
        assert HOST_GRAMMAR.classify("10.0.0.1 -> 10:20:30:40:50:60").ip == "10.0.0.1"


class TestClassifier:
    """Tests for LineClassifier."""

    def test_completion_marker_wins(self):
        assert isinstance(SCAN_GRAMMAR.classify("Scan results printed"), CompletionMarker)
        assert isinstance(NETWORK_LIST_GRAMMAR.classify("> Scan results printed."), CompletionMarker)

    def test_marker_substring(self):
        assert is_completion_marker("[I] Scan results printed")
        assert not is_completion_marker("Scan results")

    def test_variants_dispatch(self):
        assert isinstance(SCAN_GRAMMAR.classify(CAFE_LINE), ObservedNetwork)
        assert isinstance(NETWORK_LIST_GRAMMAR.classify(CAFE_LINE), NetworkListing)

    def test_unmatched(self):
        assert SCAN_GRAMMAR.classify("Starting scan...") is None

    def test_first_match_wins(self):
        classifier = LineClassifier(lambda line: "first", lambda line: "second")
        assert classifier.classify("x") == "first"

    def test_requires_parsers(self):
        with pytest.raises(ValueError):
            LineClassifier()
