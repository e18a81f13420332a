"""Serial transport to a remote radio module using direct pyserial.

Blocking pyserial calls run on a single-worker executor per channel so
the event loop keeps serving other channels while one waits on its line.
"""

import asyncio
import logging
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Protocol

import serial
from serial import SerialException

from auditdeck.core.errors import TransportBusy, TransportDisconnected
from auditdeck.core.models import ChannelConfig

logger = logging.getLogger(__name__)

HEALTH_ONLINE = "online"
HEALTH_OFFLINE = "offline"
HEALTH_BUSY = "busy"


class Transport(Protocol):
    """Byte stream to one remote module.

    ``read`` returns ``b""`` when nothing arrives within the timeout; that
    is a normal outcome, not a fault. Faults raise ``TransportError``
    subclasses. The transport never retries on its own.
    """

    @property
    def connected(self) -> bool: ...

    @property
    def health(self) -> str: ...

    async def connect(self) -> bool: ...

    async def disconnect(self) -> None: ...

    async def write(self, data: bytes) -> int: ...

    async def read(self, timeout: float) -> bytes: ...

    def flush_input(self) -> None: ...


class SerialTransport:
    """Manages one serial link (onboard UART or USB-CDC).

    Uses direct pyserial with asyncio.run_in_executor() for async compatibility.
    """

    def __init__(
        self,
        port: str,
        baudrate: int = 115200,
        channel_id: str | None = None,
        reconnect_delay: float = 5.0,
    ):
        """
        Initialize serial transport.

        Args:
            port: Serial port path (e.g., '/dev/ttyACM0')
            baudrate: Communication speed (default: 115200)
            channel_id: Channel name used in log messages
            reconnect_delay: Delay between reconnection attempts in seconds
        """
        self.port = port
        self.baudrate = baudrate
        self.channel_id = channel_id or port
        self.reconnect_delay = reconnect_delay

        self._serial: serial.Serial | None = None
        self._connected = False
        self._attached = True
        self._reconnect_task: asyncio.Task | None = None
        self._lock = asyncio.Lock()
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix=f"serial-{self.channel_id}")

    @classmethod
    def from_config(cls, config: ChannelConfig, reconnect_delay: float = 5.0) -> "SerialTransport":
        """Build a transport from a static channel description."""
        return cls(
            port=config.port,
            baudrate=config.baudrate,
            channel_id=config.channel_id,
            reconnect_delay=reconnect_delay,
        )

    @property
    def connected(self) -> bool:
        """Check if currently connected."""
        return self._connected and self._serial is not None and self._serial.is_open

    @property
    def health(self) -> str:
        """Channel health as shown to the operator."""
        if self.connected:
            return HEALTH_ONLINE
        if not self._attached:
            return HEALTH_BUSY
        return HEALTH_OFFLINE

    async def connect(self) -> bool:
        """
        Open serial port connection.

        Returns:
            True if connection successful, False otherwise
        """
        async with self._lock:
            if self.connected:
                logger.debug("Already connected to %s", self.port)
                return True

            if not Path(self.port).exists():
                if self._attached:
                    logger.warning("[%s] Device %s not attached yet", self.channel_id, self.port)
                self._attached = False
                self._connected = False
                return False

            self._attached = True
            try:
                logger.info("[%s] Connecting to serial port %s at %d baud", self.channel_id, self.port, self.baudrate)

                self._serial = serial.Serial()
                self._serial.port = self.port
                self._serial.baudrate = self.baudrate
                self._serial.timeout = 0.1
                self._serial.open()

                self._connected = True
                logger.info("[%s] Successfully connected to %s", self.channel_id, self.port)
                return True

            except (OSError, SerialException) as e:
                logger.error("[%s] Failed to connect to %s: %s", self.channel_id, self.port, e)
                self._serial = None
                self._connected = False
                return False

    async def disconnect(self) -> None:
        """Close serial port connection."""
        async with self._lock:
            if self._serial is None:
                self._connected = False
                return

            logger.info("[%s] Disconnecting from %s", self.channel_id, self.port)

            if self._serial.is_open:
                try:
                    self._serial.close()
                except (OSError, SerialException) as e:
                    logger.error("Error closing serial port: %s", e)

            self._serial = None
            self._connected = False

    async def reconnect(self) -> bool:
        """
        Reconnect to serial port.

        Returns:
            True if reconnection successful, False otherwise
        """
        await self.disconnect()
        await asyncio.sleep(self.reconnect_delay)
        return await self.connect()

    async def start_reconnect_loop(self) -> None:
        """
        Start automatic reconnection loop.

        Keeps retrying while the device is absent or the link has dropped,
        so a late-enumerated USB module comes online by itself.
        """
        if self._reconnect_task and not self._reconnect_task.done():
            logger.warning("[%s] Reconnect loop already running", self.channel_id)
            return

        self._reconnect_task = asyncio.create_task(self._reconnect_loop())

    async def stop_reconnect_loop(self) -> None:
        """Stop automatic reconnection loop."""
        if self._reconnect_task:
            self._reconnect_task.cancel()
            try:
                await self._reconnect_task
            except asyncio.CancelledError:
                pass
            self._reconnect_task = None

    async def _reconnect_loop(self) -> None:
        """Internal reconnection loop."""
        while True:
            try:
                if not self.connected:
                    if self._attached:
                        logger.info("[%s] Connection lost, attempting to reconnect...", self.channel_id)
                    success = await self.reconnect()
                    if success:
                        logger.info("[%s] Reconnection successful", self.channel_id)

                await asyncio.sleep(self.reconnect_delay)

            except asyncio.CancelledError:
                logger.info("[%s] Reconnect loop cancelled", self.channel_id)
                break
            except Exception as e:
                logger.error("[%s] Error in reconnect loop: %s", self.channel_id, e)
                await asyncio.sleep(self.reconnect_delay)

    def _require_link(self) -> serial.Serial:
        if not self._attached:
            raise TransportBusy(f"{self.port} is not attached")
        if not self.connected or self._serial is None:
            raise TransportDisconnected(f"Not connected to {self.port}")
        return self._serial

    def _blocking_read(self, timeout: float) -> bytes:
        """Blocking read for use with run_in_executor.

        Waits up to ``timeout`` for the first byte, then takes whatever
        else the OS has already buffered, so a burst of lines comes back
        in one call instead of trickling out byte by byte.
        """
        port = self._require_link()
        try:
            if port.timeout != timeout:
                port.timeout = timeout
            first = port.read(1)
            if not first:
                return b""

            available = port.in_waiting
            if available > 0:
                return first + port.read(available)
            return first
        except (OSError, SerialException) as e:
            error_str = str(e)
            # "device reports readiness to read but returned no data" is transient
            if "reports readiness" in error_str or "multiple access" in error_str:
                return b""
            raise

    async def read(self, timeout: float) -> bytes:
        """
        Read whatever arrives within ``timeout`` seconds.

        Returns:
            Bytes read, or b"" if the line stayed quiet

        Raises:
            TransportBusy: If the device is not attached
            TransportDisconnected: If not connected or the link fails
        """
        self._require_link()
        try:
            loop = asyncio.get_running_loop()
            return await loop.run_in_executor(self._executor, self._blocking_read, timeout)
        except (OSError, SerialException) as e:
            logger.error("[%s] Read error: %s", self.channel_id, e)
            self._connected = False
            raise TransportDisconnected(str(e)) from e

    async def write(self, data: bytes) -> int:
        """
        Write to serial port.

        Returns:
            Number of bytes written

        Raises:
            TransportBusy: If the device is not attached
            TransportDisconnected: If not connected or the link fails
        """
        port = self._require_link()
        try:
            written = port.write(data)
            port.flush()
            return written if written is not None else len(data)
        except (OSError, SerialException) as e:
            logger.error("[%s] Write error: %s", self.channel_id, e)
            self._connected = False
            raise TransportDisconnected(str(e)) from e

    def flush_input(self) -> None:
        """Discard unread bytes so stale output cannot leak into the next response."""
        try:
            if self._serial and self._serial.is_open:
                self._serial.reset_input_buffer()
        except (OSError, SerialException) as e:
            logger.warning("[%s] Failed to flush input: %s", self.channel_id, e)

    async def __aenter__(self):
        """Async context manager entry."""
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.disconnect()
