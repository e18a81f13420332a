"""Data models for the auditdeck engine and its HTTP surface."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator

from auditdeck.protocol.constants import ExchangeOutcome
from auditdeck.protocol.parsers import normalize_mac


class ChannelKind(str, Enum):
    """Physical link to a remote radio module."""

    UART_A = "uart_a"
    UART_B = "uart_b"
    USB = "usb"


class SessionState(str, Enum):
    """Lifecycle of one channel's session."""

    IDLE = "idle"
    SCANNING = "scanning"
    SNIFFER_ACTIVE = "sniffer_active"
    FOCUSED = "focused"
    ENGAGED = "engaged"


class ChannelConfig(BaseModel):
    """Static description of one transport channel."""

    channel_id: str = Field(..., min_length=1, description="Registry key for this channel")
    kind: ChannelKind = Field(..., description="Link type")
    port: str = Field(..., min_length=1, description="Serial device path")
    baudrate: int = Field(115200, gt=0, description="Line speed")
    tx_pin: int | None = Field(None, ge=0, description="UART TX pin (None for USB)")
    rx_pin: int | None = Field(None, ge=0, description="UART RX pin (None for USB)")

    model_config = ConfigDict(frozen=True)


class SessionTimings(BaseModel):
    """Deadlines, poll periods and protocol settle delays for a session (seconds)."""

    scan_timeout: float = Field(30.0, gt=0)
    sniffer_timeout: float = Field(5.0, gt=0)
    listing_timeout: float = Field(3.0, gt=0)
    poll_interval: float = Field(20.0, gt=0)
    focus_poll_interval: float = Field(10.0, gt=0)
    focus_first_poll_delay: float = Field(2.0, ge=0)
    read_timeout: float = Field(0.1, gt=0)
    command_settle: float = Field(0.1, ge=0)
    focus_settle: float = Field(0.2, ge=0)
    post_scan_settle: float = Field(0.5, ge=0)
    sniffer_warmup: float = Field(1.0, ge=0)

    model_config = ConfigDict(frozen=True)


# ============================================================================
# Snapshots (copies handed to presentation code)
# ============================================================================


class NetworkSnapshot(BaseModel):
    """Copy of one discovered network and its accumulated clients."""

    display_index: int = Field(..., ge=1, description="1-based index assigned by the remote module")
    ssid: str = Field("", max_length=32, description="Network name (empty = hidden)")
    bssid: str = Field(..., description="Access point MAC, upper-case colon-hex")
    channel: int = Field(..., ge=0, description="Primary channel")
    rssi: int = Field(..., description="Signal strength in dBm")
    band: str = Field("", description="Band tag reported by the module")
    clients: list[str] = Field(default_factory=list, description="Station MACs seen on this network")

    @property
    def client_count(self) -> int:
        return len(self.clients)


class ExchangeSummary(BaseModel):
    """Outcome of the most recent exchange of a given kind."""

    command: str
    outcome: ExchangeOutcome
    items: int = Field(..., ge=0, description="Number of parsed results")
    elapsed: float = Field(..., ge=0)
    incomplete: bool
    error: str | None = None
    finished_at: datetime = Field(default_factory=datetime.now)


class SessionSnapshot(BaseModel):
    """Point-in-time copy of a session, safe to read while polling continues."""

    channel_id: str
    state: SessionState
    health: str = Field(..., description="online/offline/busy")
    focused_index: int | None = None
    networks: list[NetworkSnapshot] = Field(default_factory=list)
    last_scan: ExchangeSummary | None = None
    last_poll: ExchangeSummary | None = None
    poll_in_flight: bool = False
    skipped_polls: int = 0
    correlation_misses: int = 0
    transport_error: str | None = None

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "channel_id": "uart_a",
                "state": "sniffer_active",
                "health": "online",
                "focused_index": None,
                "networks": [
                    {
                        "display_index": 1,
                        "ssid": "Cafe",
                        "bssid": "C4:2B:44:12:29:21",
                        "channel": 6,
                        "rssi": -53,
                        "band": "2.4GHz",
                        "clients": ["AA:BB:CC:DD:EE:01"],
                    }
                ],
                "poll_in_flight": False,
                "skipped_polls": 0,
                "correlation_misses": 0,
            }
        }
    )


class ChannelSummary(BaseModel):
    """One row of the channel tab strip."""

    channel_id: str
    kind: ChannelKind
    port: str
    current: bool
    state: SessionState | None = Field(None, description="None until the session is first used")
    health: str
    networks: int = Field(0, ge=0)


class PortalStats(BaseModel):
    """Aggregate counters reported by the captive-portal subsystem."""

    running: bool = False
    ssid: str | None = None
    dns_queries: int = Field(0, ge=0)
    http_requests: int = Field(0, ge=0)
    credentials_captured: int = Field(0, ge=0)
    started_at: datetime | None = None


# ============================================================================
# API Request/Response Models
# ============================================================================


class CurrentChannelRequest(BaseModel):
    """Request model for PUT /api/channels/current."""

    channel_id: str = Field(..., min_length=1)


class CommandRequest(BaseModel):
    """Request model for POST /api/channels/{channel_id}/command."""

    command: str = Field(..., min_length=1, description="Opaque command line for the remote module")

    model_config = ConfigDict(json_schema_extra={"example": {"command": "start_beacon_spam"}})


class EngageRequest(BaseModel):
    """Request model for POST /api/channels/{channel_id}/engage."""

    display_index: int = Field(..., ge=1)
    station: str = Field(..., description="Station MAC to target")
    action: str = Field("start_deauth", min_length=1, description="Opaque command sent once targeted")

    @field_validator("station")
    @classmethod
    def validate_station(cls, v: str) -> str:
        """Ensure the station looks like a MAC address."""
        mac = normalize_mac(v.strip())
        if mac is None:
            raise ValueError("station must be a MAC address (XX:XX:XX:XX:XX:XX)")
        return mac


class PortalStartRequest(BaseModel):
    """Request model for POST /api/portal/start."""

    ssid: str = Field(..., min_length=1, max_length=32)


class ProbeModel(BaseModel):
    index: int
    ssid: str


class HostModel(BaseModel):
    ip: str
    mac: str


class ListingResponse(BaseModel):
    """Response model for one-shot listings (probes, hosts)."""

    command: str
    outcome: ExchangeOutcome
    incomplete: bool
    probes: list[ProbeModel] | None = None
    hosts: list[HostModel] | None = None


class CommandResponse(BaseModel):
    """Response model for POST /api/channels/{channel_id}/command."""

    success: bool = Field(..., description="Command was written to the channel")
    channel_id: str
    command: str


class TransitionResponse(BaseModel):
    """Response model for session state changes."""

    channel_id: str
    state: SessionState
    focused_index: int | None = None


class ErrorResponse(BaseModel):
    """Response model for errors."""

    success: bool = Field(False, description="Operation success status")
    error: str = Field(..., description="Error message")
    detail: str | None = Field(None, description="Additional error details")
    timestamp: datetime = Field(default_factory=datetime.now, description="Error timestamp")


class HealthResponse(BaseModel):
    """Response model for health check."""

    status: str = Field(..., description="Health status (healthy/degraded/unhealthy)")
    channels_online: int = Field(..., ge=0)
    channels_total: int = Field(..., ge=0)
    networks_count: int = Field(..., ge=0, description="Networks known across all channels")
