"""Serial communication layer."""

from auditdeck.serial.connection import SerialTransport, Transport
from auditdeck.serial.lines import LineAssembler

__all__ = ["LineAssembler", "SerialTransport", "Transport"]
