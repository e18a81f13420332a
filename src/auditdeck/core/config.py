"""Application configuration using pydantic-settings."""

import logging
import sys

from pydantic_settings import BaseSettings, SettingsConfigDict

from auditdeck.core.models import ChannelConfig, ChannelKind, SessionTimings


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    All settings can be overridden via environment variables
    prefixed with AUDITDECK_ (e.g., AUDITDECK_USB_PORT).

    Channel wiring is static board data: the two onboard UART pin
    mappings and the USB-CDC endpoint. Only the channels listed in
    ``enabled_channels`` are registered.
    """

    uart_a_port: str = "/dev/ttyS1"
    uart_a_baud: int = 115200
    uart_a_tx_pin: int = 53
    uart_a_rx_pin: int = 54
    uart_b_port: str = "/dev/ttyS2"
    uart_b_baud: int = 115200
    uart_b_tx_pin: int = 38
    uart_b_rx_pin: int = 37
    usb_port: str = "/dev/ttyACM0"
    usb_baud: int = 115200
    enabled_channels: list[ChannelKind] = [ChannelKind.UART_A, ChannelKind.UART_B, ChannelKind.USB]

    api_host: str = "0.0.0.0"
    api_port: int = 8000
    log_level: str = "INFO"

    scan_timeout: float = 30.0
    sniffer_timeout: float = 5.0
    listing_timeout: float = 3.0
    poll_interval: float = 20.0
    focus_poll_interval: float = 10.0
    focus_first_poll_delay: float = 2.0
    read_timeout: float = 0.1
    command_settle: float = 0.1
    focus_settle: float = 0.2
    post_scan_settle: float = 0.5
    sniffer_warmup: float = 1.0

    line_buffer_size: int = 512
    max_networks: int = 50
    reconnect_delay: float = 5.0

    # "package.module:factory" of an external captive-portal backend
    portal_backend: str | None = None

    model_config = SettingsConfigDict(env_prefix="AUDITDECK_")

    def channel_configs(self) -> list[ChannelConfig]:
        """Build the static channel table for every enabled channel."""
        table = {
            ChannelKind.UART_A: ChannelConfig(
                channel_id=ChannelKind.UART_A.value,
                kind=ChannelKind.UART_A,
                port=self.uart_a_port,
                baudrate=self.uart_a_baud,
                tx_pin=self.uart_a_tx_pin,
                rx_pin=self.uart_a_rx_pin,
            ),
            ChannelKind.UART_B: ChannelConfig(
                channel_id=ChannelKind.UART_B.value,
                kind=ChannelKind.UART_B,
                port=self.uart_b_port,
                baudrate=self.uart_b_baud,
                tx_pin=self.uart_b_tx_pin,
                rx_pin=self.uart_b_rx_pin,
            ),
            ChannelKind.USB: ChannelConfig(
                channel_id=ChannelKind.USB.value,
                kind=ChannelKind.USB,
                port=self.usb_port,
                baudrate=self.usb_baud,
            ),
        }
        return [table[kind] for kind in self.enabled_channels]

    def session_timings(self) -> SessionTimings:
        """Collect the per-session deadlines, poll periods and settle delays."""
        return SessionTimings(
            scan_timeout=self.scan_timeout,
            sniffer_timeout=self.sniffer_timeout,
            listing_timeout=self.listing_timeout,
            poll_interval=self.poll_interval,
            focus_poll_interval=self.focus_poll_interval,
            focus_first_poll_delay=self.focus_first_poll_delay,
            read_timeout=self.read_timeout,
            command_settle=self.command_settle,
            focus_settle=self.focus_settle,
            post_scan_settle=self.post_scan_settle,
            sniffer_warmup=self.sniffer_warmup,
        )


def setup_logging(level: str = "INFO") -> None:
    """Configure application logging.

    Args:
        level: Log level string (DEBUG, INFO, WARNING, ERROR, CRITICAL).
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(
        level=numeric_level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stderr,
    )
