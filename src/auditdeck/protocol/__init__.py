"""Remote module text protocol: commands, response grammars and exchanges."""

from auditdeck.protocol.commands import Command
from auditdeck.protocol.constants import SCAN_COMPLETE_MARKER, ExchangeOutcome, ExchangeState
from auditdeck.protocol.parsers import (
    HOST_GRAMMAR,
    NETWORK_LIST_GRAMMAR,
    PROBE_GRAMMAR,
    SCAN_GRAMMAR,
    SNIFFER_GRAMMAR,
    LineClassifier,
)

# Exchange imported lazily to avoid circular import with core.models
# (core.models -> protocol.constants -> protocol.__init__ -> exchange -> core.models)


def __getattr__(name: str):
    if name in ("Exchange", "ExchangeResult", "send_command"):
        from auditdeck.protocol import exchange

        return getattr(exchange, name)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


__all__ = [
    "Command",
    "Exchange",
    "ExchangeOutcome",
    "ExchangeResult",
    "ExchangeState",
    "LineClassifier",
    "SCAN_COMPLETE_MARKER",
    "SCAN_GRAMMAR",
    "NETWORK_LIST_GRAMMAR",
    "SNIFFER_GRAMMAR",
    "PROBE_GRAMMAR",
    "HOST_GRAMMAR",
    "send_command",
]
