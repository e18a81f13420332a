"""Line grammars for the remote module's text responses.

Every parser takes one assembled line and returns either a fully validated
result or ``None``. Parsers never return partially populated results and
never raise on malformed input: the module's output is free text and most
of it (prompts, echoes, diagnostics) is expected to match nothing.

Grammars, most specific first:

1. Completion marker  ``Scan results printed``
2. Quoted CSV         ``"1","Cafe","","C4:2B:44:12:29:21","6","WPA2","-53","2.4GHz"``
3. Sniffer header     ``Cafe, CH6: 2``
4. Sniffer client     ``   AA:BB:CC:DD:EE:01``
   Sniffer other line ``Probe requests seen:`` (any other unindented line)
5. Probe entry        ``3  HomeNet``
6. Host entry         ``192.168.4.2 -> AA:BB:CC:DD:EE:01``

The quoted CSV line comes in two variants whose fields 4 and 5 mean
different things, so each has its own parser.
"""

import re
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from auditdeck.protocol.constants import MAX_SSID_LENGTH, SCAN_COMPLETE_MARKER

MAC_LENGTH = 17
CSV_FIELD_COUNT = 8

_HEX_DIGITS = frozenset("0123456789abcdefABCDEF")
_INT_RE = re.compile(r"^[+-]?\d+$")
_HEADER_RE = re.compile(r"^(?P<ssid>.*), CH(?P<channel>\d+):\s*(?P<count>\d+)\s*$")
_PROBE_RE = re.compile(r"^(?P<index>\d+)\s+(?P<ssid>\S.*)$")


@dataclass(frozen=True)
class CompletionMarker:
    """The module finished printing scan results."""

    text: str


@dataclass(frozen=True)
class NetworkListing:
    """Scan line as read by the network-list view (carries security, no channel)."""

    display_index: int
    ssid: str
    bssid: str
    security: str
    rssi: int
    band: str


@dataclass(frozen=True)
class ObservedNetwork:
    """Scan line as read by the observer (carries channel, no security)."""

    display_index: int
    ssid: str
    bssid: str
    channel: int
    rssi: int
    band: str


@dataclass(frozen=True)
class SnifferHeader:
    """Start of one network's block in ``show_sniffer_results`` output."""

    ssid: str
    channel: int
    client_count: int


@dataclass(frozen=True)
class SnifferClient:
    """One station MAC listed under the preceding sniffer header."""

    mac: str


@dataclass(frozen=True)
class SnifferOtherLine:
    """Top-level sniffer output line that is not a network header.

    It closes the preceding network's block.
    """

    text: str


@dataclass(frozen=True)
class ProbeEntry:
    """SSID some station probed for."""

    index: int
    ssid: str


@dataclass(frozen=True)
class HostEntry:
    """IP to MAC pair seen on the local segment."""

    ip: str
    mac: str


# ============================================================================
# Field helpers
# ============================================================================


def normalize_mac(token: str) -> str | None:
    """Validate a ``XX:XX:XX:XX:XX:XX`` token and return it upper-cased.

    Checked by position (separator at every third offset, hex digits
    elsewhere) rather than with a regex.

    Returns:
        Canonical MAC string, or None if the token is not MAC-shaped.
    """
    if len(token) != MAC_LENGTH:
        return None
    for pos, char in enumerate(token):
        if pos % 3 == 2:
            if char != ":":
                return None
        elif char not in _HEX_DIGITS:
            return None
    return token.upper()


def _parse_int(text: str) -> int | None:
    text = text.strip()
    if not _INT_RE.match(text):
        return None
    return int(text)


def _is_dotted_quad(text: str) -> bool:
    parts = text.split(".")
    if len(parts) != 4:
        return False
    for part in parts:
        if not part.isdigit() or len(part) > 3 or int(part) > 255:
            return False
    return True


def split_quoted_csv(line: str, count: int = CSV_FIELD_COUNT) -> list[str] | None:
    """Split a ``"a","b",...`` line into exactly ``count`` fields.

    Embedded quotes are not escaped by the module, so any field containing
    a quote makes the line unparseable.

    Returns:
        List of field strings, or None if the shape does not match.
    """
    text = line.strip()
    if len(text) < 2 or text[0] != '"' or text[-1] != '"':
        return None
    fields = text[1:-1].split('","')
    if len(fields) != count:
        return None
    if any('"' in field for field in fields):
        return None
    return fields


def _common_scan_fields(line: str) -> tuple[int, str, str, int, list[str]] | None:
    """Validate the fields both CSV variants agree on.

    Returns:
        Tuple of (display_index, ssid, bssid, rssi, raw_fields), or None.
    """
    if not line.startswith('"'):
        return None
    fields = split_quoted_csv(line)
    if fields is None:
        return None

    index = _parse_int(fields[0])
    if index is None or index < 1:
        return None

    ssid = fields[1]
    if len(ssid) > MAX_SSID_LENGTH:
        return None

    bssid = normalize_mac(fields[3].strip())
    if bssid is None:
        return None

    rssi = _parse_int(fields[6])
    if rssi is None:
        return None

    return index, ssid, bssid, rssi, fields


# ============================================================================
# Parsers
# ============================================================================


def is_completion_marker(line: str) -> bool:
    """Check whether a line carries the scan completion literal."""
    return SCAN_COMPLETE_MARKER in line


def parse_completion_marker(line: str) -> CompletionMarker | None:
    if is_completion_marker(line):
        return CompletionMarker(text=line.strip())
    return None


def parse_network_list_line(line: str) -> NetworkListing | None:
    """Parse a scan line for the network-list view.

    Field mapping: 0 index, 1 ssid, 3 bssid, 5 security, 6 rssi, 7 band.
    Fields 2 and 4 are not read.
    """
    common = _common_scan_fields(line)
    if common is None:
        return None
    index, ssid, bssid, rssi, fields = common
    return NetworkListing(
        display_index=index,
        ssid=ssid,
        bssid=bssid,
        security=fields[5],
        rssi=rssi,
        band=fields[7],
    )


def parse_observer_scan_line(line: str) -> ObservedNetwork | None:
    """Parse a scan line for the observer's entity table.

    Field mapping: 0 index, 1 ssid, 3 bssid, 4 channel, 6 rssi, 7 band.
    Fields 2 and 5 are not read.
    """
    common = _common_scan_fields(line)
    if common is None:
        return None
    index, ssid, bssid, rssi, fields = common
    channel = _parse_int(fields[4])
    if channel is None or channel < 0:
        return None
    return ObservedNetwork(
        display_index=index,
        ssid=ssid,
        bssid=bssid,
        channel=channel,
        rssi=rssi,
        band=fields[7],
    )


def parse_sniffer_header(line: str) -> SnifferHeader | None:
    """Parse ``<ssid>, CH<channel>: <client_count>``.

    The SSID is everything before the last ``, CH`` marker. Header lines
    never start with whitespace (that is how client lines are told apart).
    """
    if not line or line[0].isspace():
        return None
    text = line.rstrip()
    if len(text) >= 2 and text[0] == '"' and text[-1] == '"':
        text = text[1:-1]
    match = _HEADER_RE.match(text)
    if match is None:
        return None
    return SnifferHeader(
        ssid=match.group("ssid"),
        channel=int(match.group("channel")),
        client_count=int(match.group("count")),
    )


def parse_sniffer_client(line: str) -> SnifferClient | None:
    """Parse an indented station MAC line."""
    if not line or not line[0].isspace():
        return None
    token = line.strip()
    if len(token) > MAC_LENGTH and not token[MAC_LENGTH].isspace():
        return None
    mac = normalize_mac(token[:MAC_LENGTH])
    if mac is None:
        return None
    return SnifferClient(mac=mac)


def parse_sniffer_other_line(line: str) -> SnifferOtherLine | None:
    """Match any non-blank unindented line. Must come after ``parse_sniffer_header``."""
    if not line or line[0].isspace() or not line.strip():
        return None
    return SnifferOtherLine(text=line.rstrip())


def parse_probe_entry(line: str) -> ProbeEntry | None:
    """Parse ``<digits><whitespace><ssid>``."""
    match = _PROBE_RE.match(line)
    if match is None:
        return None
    return ProbeEntry(index=int(match.group("index")), ssid=match.group("ssid").rstrip())


def parse_host_entry(line: str) -> HostEntry | None:
    """Parse ``<ipv4> -> <mac>``. Both sides must validate."""
    if "->" not in line:
        return None
    left, _, right = line.partition("->")
    ip = left.strip()
    if not _is_dotted_quad(ip):
        return None
    mac = normalize_mac(right.strip())
    if mac is None:
        return None
    return HostEntry(ip=ip, mac=mac)


# ============================================================================
# Classifier
# ============================================================================

Parser = Callable[[str], Any]


class LineClassifier:
    """Ordered set of parsers; the first one that matches wins."""

    def __init__(self, *parsers: Parser):
        if not parsers:
            raise ValueError("LineClassifier needs at least one parser")
        self.parsers = parsers

    def classify(self, line: str) -> Any | None:
        """Return the first parser's result for this line, or None if nothing matched."""
        for parser in self.parsers:
            result = parser(line)
            if result is not None:
                return result
        return None

    def __repr__(self) -> str:
        names = ", ".join(p.__name__ for p in self.parsers)
        return f"LineClassifier({names})"


SCAN_GRAMMAR = LineClassifier(parse_completion_marker, parse_observer_scan_line)
NETWORK_LIST_GRAMMAR = LineClassifier(parse_completion_marker, parse_network_list_line)
SNIFFER_GRAMMAR = LineClassifier(parse_sniffer_header, parse_sniffer_client, parse_sniffer_other_line)
PROBE_GRAMMAR = LineClassifier(parse_probe_entry)
HOST_GRAMMAR = LineClassifier(parse_host_entry)
