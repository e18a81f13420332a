"""auditdeck - control plane for a handheld WiFi-auditing console."""

__version__ = "0.3.0"
