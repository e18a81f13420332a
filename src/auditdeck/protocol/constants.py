"""Wire vocabulary and timing constants for the remote module's text protocol."""

from enum import Enum

# Line framing
LINE_TERMINATOR = b"\r\n"
LINE_BUFFER_SIZE = 512

# The only explicit end-of-response signal. Sniffer, probe and host dumps
# end when the module goes quiet.
SCAN_COMPLETE_MARKER = "Scan results printed"

# Commands
SCAN_NETWORKS = "scan_networks"
SELECT_NETWORKS = "select_networks"
UNSELECT_NETWORKS = "unselect_networks"
SELECT_STATIONS = "select_stations"
START_SNIFFER = "start_sniffer"
START_SNIFFER_NOSCAN = "start_sniffer_noscan"
STOP = "stop"
SHOW_SNIFFER_RESULTS = "show_sniffer_results"
LIST_PROBES = "list_probes"
LIST_HOSTS = "list_hosts"
START_DEAUTH = "start_deauth"

# Exchange deadlines (seconds)
SCAN_TIMEOUT = 30.0
SNIFFER_TIMEOUT = 5.0
LISTING_TIMEOUT = 3.0
READ_TIMEOUT = 0.1

# Poll periods (seconds)
POLL_INTERVAL = 20.0
FOCUS_POLL_INTERVAL = 10.0

# Settle delay the module needs between consecutive commands (seconds)
COMMAND_SETTLE = 0.1

# Table limits
MAX_NETWORKS = 50
MAX_SSID_LENGTH = 32


class ExchangeState(str, Enum):
    """Progress of a single command/response cycle."""

    SEND_COMMAND = "send_command"
    AWAIT_RESPONSE = "await_response"
    COMPLETE = "complete"
    TIMED_OUT = "timed_out"
    STOPPED = "stopped"
    FAILED = "failed"


class ExchangeOutcome(str, Enum):
    """How an exchange ended."""

    COMPLETE = "complete"
    TIMED_OUT = "timed_out"
    STOPPED = "stopped"
    TRANSPORT_ERROR = "transport_error"
