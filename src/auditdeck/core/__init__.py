"""Core application functionality."""

from auditdeck.core.config import Settings, setup_logging
from auditdeck.core.errors import (
    AuditdeckError,
    SessionStateError,
    TransportBusy,
    TransportDisconnected,
    TransportError,
)
from auditdeck.core.models import ChannelConfig, ChannelKind, SessionState, SessionTimings

__all__ = [
    "AuditdeckError",
    "ChannelConfig",
    "ChannelKind",
    "SessionState",
    "SessionStateError",
    "SessionTimings",
    "Settings",
    "TransportBusy",
    "TransportDisconnected",
    "TransportError",
    "setup_logging",
]
