"""Error taxonomy for the auditdeck engine.

Only faults that callers must react to are exceptions. Lines that match no
grammar, exchanges that hit their deadline and sniffer client lines with no
matching network are reported as values (``None``, an outcome, a counter).
"""


class AuditdeckError(Exception):
    """Base error for auditdeck."""


class TransportError(AuditdeckError):
    """Base transport error."""


class TransportDisconnected(TransportError):
    """Raised when the serial link is gone or fails mid-operation."""


class TransportBusy(TransportError):
    """Raised when the device is not attached yet (e.g. USB not enumerated)."""


class SessionStateError(AuditdeckError, ValueError):
    """Raised when an operation is not valid in the session's current state."""
