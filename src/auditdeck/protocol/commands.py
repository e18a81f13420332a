"""Outbound command lines for the remote module."""

from auditdeck.protocol.constants import (
    LINE_TERMINATOR,
    LIST_HOSTS,
    LIST_PROBES,
    SCAN_NETWORKS,
    SELECT_NETWORKS,
    SELECT_STATIONS,
    SHOW_SNIFFER_RESULTS,
    START_SNIFFER,
    START_SNIFFER_NOSCAN,
    STOP,
    UNSELECT_NETWORKS,
)


class Command:
    """One outbound text line.

    The text is opaque to the engine: attack payloads and other module
    commands pass through unchanged. The only constraint is that the line
    must not embed its own terminator.

    Attributes:
        text: Command line without the trailing CRLF
    """

    __slots__ = ("text",)

    def __init__(self, text: str):
        """
        Initialize a command.

        Args:
            text: Command line, e.g. ``"select_networks 3"``

        Raises:
            ValueError: If text is blank or contains CR/LF
        """
        if "\r" in text or "\n" in text:
            raise ValueError(f"Command must not contain CR/LF: {text!r}")
        text = text.strip()
        if not text:
            raise ValueError("Command must not be empty")
        self.text = text

    def to_bytes(self) -> bytes:
        """Encode the command for transmission, CRLF terminated."""
        return self.text.encode("ascii", errors="replace") + LINE_TERMINATOR

    @property
    def name(self) -> str:
        """First word of the command (the verb)."""
        return self.text.split(None, 1)[0]

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Command):
            return self.text == other.text
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self.text)

    def __repr__(self) -> str:
        return f"Command({self.text!r})"

    def __str__(self) -> str:
        return self.text


def scan_networks() -> Command:
    return Command(SCAN_NETWORKS)


def select_networks(*indices: int) -> Command:
    """Build ``select_networks <idx> [<idx> ...]``.

    Indices are the module's own 1-based display indices, echoed back
    verbatim.

    Raises:
        ValueError: If no index is given or an index is not positive.
    """
    if not indices:
        raise ValueError("select_networks needs at least one index")
    for index in indices:
        if index < 1:
            raise ValueError(f"Network index must be >= 1, got {index}")
    return Command(f"{SELECT_NETWORKS} {' '.join(str(i) for i in indices)}")


def unselect_networks() -> Command:
    return Command(UNSELECT_NETWORKS)


def select_stations(mac: str) -> Command:
    return Command(f"{SELECT_STATIONS} {mac}")


def start_sniffer() -> Command:
    return Command(START_SNIFFER)


def start_sniffer_noscan() -> Command:
    return Command(START_SNIFFER_NOSCAN)


def stop() -> Command:
    return Command(STOP)


def show_sniffer_results() -> Command:
    return Command(SHOW_SNIFFER_RESULTS)


def list_probes() -> Command:
    return Command(LIST_PROBES)


def list_hosts() -> Command:
    return Command(LIST_HOSTS)
