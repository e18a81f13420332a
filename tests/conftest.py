"""Shared test fixtures."""

import asyncio
from collections import deque

import pytest

from auditdeck.core.errors import TransportBusy, TransportDisconnected
from auditdeck.core.models import ChannelConfig, ChannelKind, SessionTimings

# Timings that keep every test well under a second: no settle delays,
# short deadlines and timers that never fire on their own.
FAST_TIMINGS = SessionTimings(
    scan_timeout=0.5,
    sniffer_timeout=0.1,
    listing_timeout=0.1,
    poll_interval=60.0,
    focus_poll_interval=60.0,
    focus_first_poll_delay=60.0,
    read_timeout=0.01,
    command_settle=0.0,
    focus_settle=0.0,
    post_scan_settle=0.0,
    sniffer_warmup=0.0,
)

SCAN_TRANSCRIPT = (
    b'"1","Cafe","","C4:2B:44:12:29:21","6","WPA2","-53","2.4GHz"\r\n'
    b'"2","HomeNet","","aa:bb:cc:00:11:22","11","WPA2","-70","2.4GHz"\r\n'
    b'"3","","","10:20:30:40:50:60","36","OPEN","-81","5GHz"\r\n'
    b"Scan results printed\r\n"
)


class ScriptedTransport:
    """In-memory transport that answers each written command from a script.

    ``respond(command, *chunks)`` queues one response for ``command``.
    Queued responses are used in order; once they run out the last one is
    replayed for every further write of that command.
    """

    def __init__(self, connected: bool = True, attached: bool = True):
        self.written: list[bytes] = []
        self.connect_calls = 0
        self.flushes = 0
        self._responses: dict[str, deque[tuple[bytes, ...]]] = {}
        self._last_response: dict[str, tuple[bytes, ...]] = {}
        self._pending: deque[bytes] = deque()
        self._connected = connected
        self._attached = attached

    @property
    def connected(self) -> bool:
        return self._connected

    @property
    def health(self) -> str:
        if self._connected:
            return "online"
        return "offline" if self._attached else "busy"

    @property
    def commands(self) -> list[str]:
        return [data.decode("ascii").strip() for data in self.written]

    def respond(self, command: str, *chunks: bytes) -> None:
        self._responses.setdefault(command, deque()).append(chunks)

    def feed(self, data: bytes) -> None:
        """Make bytes available to the next read, as if the module printed them."""
        self._pending.append(data)

    def drop(self) -> None:
        """Simulate the cable being pulled."""
        self._connected = False

    def detach(self) -> None:
        """Simulate the device disappearing (USB unplugged)."""
        self._attached = False
        self._connected = False

    async def connect(self) -> bool:
        self.connect_calls += 1
        if self._attached:
            self._connected = True
        return self._connected

    async def disconnect(self) -> None:
        self._connected = False

    def _check(self) -> None:
        if not self._attached:
            raise TransportBusy("scripted device not attached")
        if not self._connected:
            raise TransportDisconnected("scripted link down")

    async def write(self, data: bytes) -> int:
        self._check()
        self.written.append(data)
        command = data.decode("ascii").strip()
        queued = self._responses.get(command)
        if queued:
            self._last_response[command] = queued.popleft()
        self._pending.extend(self._last_response.get(command, ()))
        return len(data)

    async def read(self, timeout: float) -> bytes:
        self._check()
        if self._pending:
            return self._pending.popleft()
        await asyncio.sleep(timeout)
        return b""

    def flush_input(self) -> None:
        self.flushes += 1
        self._pending.clear()


async def wait_until(predicate, timeout: float = 2.0) -> None:
    """Yield to the loop until ``predicate()`` holds."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.005)


@pytest.fixture
def transport() -> ScriptedTransport:
    return ScriptedTransport()


@pytest.fixture
def timings() -> SessionTimings:
    return FAST_TIMINGS


@pytest.fixture
def channel_configs() -> list[ChannelConfig]:
    return [
        ChannelConfig(channel_id="uart_a", kind=ChannelKind.UART_A, port="/dev/ttyS1", tx_pin=53, rx_pin=54),
        ChannelConfig(channel_id="usb", kind=ChannelKind.USB, port="/dev/ttyACM0"),
    ]
