"""Per-channel session state machine.

A session owns one transport and one table of discovered networks. It
scans once, then keeps the remote module sniffing and polls its results
on a recurring timer, folding newly seen stations into the table. The
operator can focus on one network (narrowing the sniffer and polling
faster) or engage one station with an opaque module command, and return
to broad sniffing afterwards.

States::

    idle -> scanning -> sniffer_active <-> focused
                              ^  \\
                              |   -> engaged
                              +------/

    any state -> idle (stop)

All traffic on the transport is serialised through one lock, so at most
one exchange per channel is ever in flight.
"""

import asyncio
import functools
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from auditdeck.core.errors import SessionStateError, TransportError
from auditdeck.core.models import NetworkSnapshot, SessionSnapshot, SessionState, SessionTimings
from auditdeck.protocol import commands
from auditdeck.protocol.commands import Command
from auditdeck.protocol.constants import LINE_BUFFER_SIZE, MAX_NETWORKS, START_DEAUTH, ExchangeOutcome
from auditdeck.protocol.exchange import Exchange, ExchangeResult, send_command
from auditdeck.protocol.parsers import (
    HOST_GRAMMAR,
    NETWORK_LIST_GRAMMAR,
    PROBE_GRAMMAR,
    SCAN_GRAMMAR,
    SNIFFER_GRAMMAR,
    LineClassifier,
    ObservedNetwork,
    SnifferClient,
    SnifferHeader,
    SnifferOtherLine,
    normalize_mac,
)
from auditdeck.serial.connection import Transport
from auditdeck.serial.lines import LineAssembler

logger = logging.getLogger(__name__)

_POLLING_STATES = (SessionState.SNIFFER_ACTIVE, SessionState.FOCUSED)


@dataclass
class NetworkEntity:
    """One discovered network and the stations seen on it.

    ``display_index`` is the module's own 1-based index and the only key
    it accepts when targeting a network. Clients only ever accumulate.
    """

    display_index: int
    ssid: str
    bssid: str
    channel: int
    rssi: int
    band: str
    clients: dict[str, datetime] = field(default_factory=dict)  # mac -> first seen

    @classmethod
    def from_observed(cls, observed: ObservedNetwork) -> "NetworkEntity":
        return cls(
            display_index=observed.display_index,
            ssid=observed.ssid,
            bssid=observed.bssid,
            channel=observed.channel,
            rssi=observed.rssi,
            band=observed.band,
        )

    def add_client(self, mac: str) -> bool:
        """Record a station. Returns True if it was not known yet."""
        if mac in self.clients:
            return False
        self.clients[mac] = datetime.now()
        return True

    def snapshot(self) -> NetworkSnapshot:
        return NetworkSnapshot(
            display_index=self.display_index,
            ssid=self.ssid,
            bssid=self.bssid,
            channel=self.channel,
            rssi=self.rssi,
            band=self.band,
            clients=list(self.clients),
        )


class SnifferCorrelator:
    """Accumulation logic for ``show_sniffer_results`` output.

    A header line selects the network whose SSID matches exactly; the
    indented MAC lines after it are added to that network's clients.
    Any other top-level line closes the block.
    Client lines with no selected network are dropped and counted.
    """

    def __init__(self, entities: dict[int, NetworkEntity], channel_id: str = ""):
        self._entities = entities
        self._channel_id = channel_id
        self._current: NetworkEntity | None = None
        self.new_clients = 0
        self.misses = 0

    def _find_by_ssid(self, ssid: str) -> NetworkEntity | None:
        for entity in self._entities.values():
            if entity.ssid == ssid:
                return entity
        return None

    def __call__(self, parsed: Any) -> None:
        if isinstance(parsed, SnifferHeader):
            self._current = self._find_by_ssid(parsed.ssid)
            if self._current is None:
                logger.warning("[%s] Network '%s' not in scan list, skipping its clients", self._channel_id, parsed.ssid)
            return

        if isinstance(parsed, SnifferOtherLine):
            self._current = None
            return

        if isinstance(parsed, SnifferClient):
            logger.debug("[%s] Sniffer client line: %s", self._channel_id, parsed.mac)
            if self._current is None:
                self.misses += 1
                logger.debug("[%s] Dropping client %s with no matching network", self._channel_id, parsed.mac)
                return
            if self._current.add_client(parsed.mac):
                self.new_clients += 1
                logger.info(
                    "[%s] NEW client %s on '%s' (total: %d)",
                    self._channel_id,
                    parsed.mac,
                    self._current.ssid,
                    len(self._current.clients),
                )


class Session:
    """Stateful control loop for one channel.

    Presentation code reads copies via ``snapshot()`` / ``networks()``;
    the live table is only mutated by exchange callbacks on this session.
    """

    def __init__(
        self,
        channel_id: str,
        transport: Transport,
        timings: SessionTimings | None = None,
        max_networks: int = MAX_NETWORKS,
        line_buffer_size: int = LINE_BUFFER_SIZE,
    ):
        """Initialize a session.

        Args:
            channel_id: Registry key of the channel this session drives.
            transport: Link to the remote module, owned exclusively.
            timings: Deadlines, poll periods and settle delays.
            max_networks: Cap on entities kept from one scan.
            line_buffer_size: Line assembler capacity in bytes.
        """
        self.channel_id = channel_id
        self._transport = transport
        self._timings = timings or SessionTimings()
        self._max_networks = max_networks
        self._assembler = LineAssembler(line_buffer_size)

        self._state = SessionState.IDLE
        self._entities: dict[int, NetworkEntity] = {}
        self._focused_key: int | None = None
        self._cycle = 0
        self._closed = False

        self._lock = asyncio.Lock()
        self._stop_event = asyncio.Event()
        self._poll_in_flight = False
        self._timer_task: asyncio.Task | None = None
        self._poll_task: asyncio.Task | None = None
        self._observe_task: asyncio.Task | None = None

        self._last_scan: ExchangeResult | None = None
        self._last_poll: ExchangeResult | None = None
        self._last_poll_at: datetime | None = None
        self._skipped_polls = 0
        self._correlation_misses = 0
        self._transport_error: str | None = None

    # -- read-only views -----------------------------------------------------

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def focused_key(self) -> int | None:
        """Display index of the focused or engaged network."""
        return self._focused_key

    @property
    def poll_in_flight(self) -> bool:
        return self._poll_in_flight

    @property
    def polling(self) -> bool:
        """Whether a poll timer is armed."""
        return self._timer_task is not None and not self._timer_task.done()

    @property
    def skipped_polls(self) -> int:
        return self._skipped_polls

    @property
    def correlation_misses(self) -> int:
        return self._correlation_misses

    @property
    def last_scan(self) -> ExchangeResult | None:
        return self._last_scan

    @property
    def last_poll(self) -> ExchangeResult | None:
        return self._last_poll

    @property
    def last_poll_at(self) -> datetime | None:
        return self._last_poll_at

    @property
    def transport_error(self) -> str | None:
        """Most recent transport fault, cleared by the next successful send."""
        return self._transport_error

    @property
    def health(self) -> str:
        return self._transport.health

    @property
    def network_count(self) -> int:
        return len(self._entities)

    def networks(self) -> list[NetworkSnapshot]:
        """Copies of every entity, in scan order."""
        return [entity.snapshot() for entity in self._entities.values()]

    def network(self, display_index: int) -> NetworkSnapshot:
        """Copy of one entity.

        Raises:
            KeyError: If no network has this index.
        """
        return self._get_entity(display_index).snapshot()

    def snapshot(self) -> SessionSnapshot:
        return SessionSnapshot(
            channel_id=self.channel_id,
            state=self._state,
            health=self.health,
            focused_index=self._focused_key,
            networks=self.networks(),
            last_scan=self._last_scan.summary() if self._last_scan else None,
            last_poll=self._last_poll.summary() if self._last_poll else None,
            poll_in_flight=self._poll_in_flight,
            skipped_polls=self._skipped_polls,
            correlation_misses=self._correlation_misses,
            transport_error=self._transport_error,
        )

    # -- helpers -------------------------------------------------------------

    def _set_state(self, state: SessionState) -> None:
        if state is not self._state:
            logger.info("[%s] %s -> %s", self.channel_id, self._state.value, state.value)
        self._state = state

    def _require_state(self, operation: str, *allowed: SessionState) -> None:
        if self._state not in allowed:
            raise SessionStateError(f"Cannot {operation} while {self._state.value}")

    def _get_entity(self, display_index: int) -> NetworkEntity:
        entity = self._entities.get(display_index)
        if entity is None:
            raise KeyError(f"No network with index {display_index}")
        return entity

    async def _ensure_open(self) -> None:
        if not self._transport.connected:
            await self._transport.connect()

    def _note_transport(self, result: ExchangeResult) -> None:
        if result.outcome is ExchangeOutcome.TRANSPORT_ERROR:
            self._transport_error = result.error
        else:
            self._transport_error = None

    async def _send(self, command: Command, settle: float) -> bool:
        """Send a fire-and-forget command. Caller holds the lock."""
        await self._ensure_open()
        try:
            await send_command(self._transport, command, settle)
        except TransportError as e:
            self._transport_error = str(e)
            logger.warning("[%s] Could not send '%s': %s", self.channel_id, command, e)
            return False
        self._transport_error = None
        return True

    async def _exchange(
        self,
        command: Command,
        grammar: LineClassifier,
        deadline: float,
        expects_marker: bool,
        on_result=None,
        stop_event: asyncio.Event | None = None,
    ) -> ExchangeResult:
        """Run one exchange. Caller holds the lock."""
        await self._ensure_open()
        exchange = Exchange(
            self._transport,
            command,
            grammar,
            on_result=on_result,
            deadline=deadline,
            expects_marker=expects_marker,
            read_timeout=self._timings.read_timeout,
            assembler=self._assembler,
            stop_event=stop_event,
        )
        result = await exchange.run()
        self._note_transport(result)
        return result

    def _upsert_scanned(self, cycle: int, observed: ObservedNetwork) -> None:
        if cycle != self._cycle:
            return
        existing = self._entities.get(observed.display_index)
        if existing is None and len(self._entities) >= self._max_networks:
            logger.debug("[%s] Network table full, ignoring #%d", self.channel_id, observed.display_index)
            return
        entity = NetworkEntity.from_observed(observed)
        if existing is not None:
            entity.clients = existing.clients
        self._entities[observed.display_index] = entity
        logger.info(
            "[%s] Parsed scan network #%d: '%s' BSSID=%s CH%d %s %ddBm",
            self.channel_id,
            entity.display_index,
            entity.ssid,
            entity.bssid,
            entity.channel,
            entity.band,
            entity.rssi,
        )

    # -- poll timer ----------------------------------------------------------

    def _arm_timer(self, interval: float, initial_delay: float) -> None:
        self._cancel_timer()
        if self._closed:
            return
        self._timer_task = asyncio.create_task(
            self._timer_loop(interval, initial_delay),
            name=f"poll-timer-{self.channel_id}",
        )
        logger.info("[%s] Poll timer armed (every %.0fs)", self.channel_id, interval)

    def _cancel_timer(self) -> None:
        if self._timer_task is not None:
            self._timer_task.cancel()
            self._timer_task = None

    async def _timer_loop(self, interval: float, initial_delay: float) -> None:
        if initial_delay > 0:
            await asyncio.sleep(initial_delay)
        while True:
            self.poll_tick()
            await asyncio.sleep(interval)

    def poll_tick(self) -> bool:
        """Start a sniffer-results poll unless one is already running.

        Returns:
            True if a poll exchange was started.
        """
        if self._closed or self._state not in _POLLING_STATES:
            return False
        if self._poll_in_flight:
            self._skipped_polls += 1
            logger.debug("[%s] Previous poll still running, skipping tick", self.channel_id)
            return False

        self._poll_in_flight = True
        self._poll_task = asyncio.create_task(self._run_poll(), name=f"poll-{self.channel_id}")
        return True

    async def _run_poll(self) -> ExchangeResult | None:
        try:
            correlator = SnifferCorrelator(self._entities, self.channel_id)
            async with self._lock:
                if self._state not in _POLLING_STATES:
                    return None
                result = await self._exchange(
                    commands.show_sniffer_results(),
                    SNIFFER_GRAMMAR,
                    deadline=self._timings.sniffer_timeout,
                    expects_marker=False,
                    on_result=correlator,
                    stop_event=self._stop_event,
                )

            self._last_poll = result
            self._last_poll_at = datetime.now()
            self._correlation_misses += correlator.misses
            with_clients = sum(1 for e in self._entities.values() if e.clients)
            logger.info(
                "[%s] Sniffer update: %d new clients, %d/%d networks with clients",
                self.channel_id,
                correlator.new_clients,
                with_clients,
                len(self._entities),
            )
            return result
        finally:
            self._poll_in_flight = False

    # -- transitions ---------------------------------------------------------

    def _enter_scanning(self) -> tuple[int, asyncio.Event]:
        if self._closed:
            raise SessionStateError("Cannot start observing a closed session")
        self._require_state("start observing", SessionState.IDLE)
        self._set_state(SessionState.SCANNING)
        self._cycle += 1
        # Each cycle gets its own event so a stop aimed at the previous
        # scan stays set for that scan's exchange.
        self._stop_event = asyncio.Event()
        self._entities.clear()
        self._focused_key = None
        self._skipped_polls = 0
        self._correlation_misses = 0
        return self._cycle, self._stop_event

    def _observing(self, cycle: int) -> bool:
        return self._cycle == cycle and self._state is SessionState.SCANNING

    async def start_observing(self) -> ExchangeResult:
        """Scan for networks, then start the sniffer and background polling.

        Returns:
            The scan exchange result; partial if the scan timed out.

        Raises:
            SessionStateError: If the session is not idle.
        """
        return await self._observe(*self._enter_scanning())

    async def _observe(self, cycle: int, stop_event: asyncio.Event) -> ExchangeResult:
        async with self._lock:
            if stop_event.is_set():
                logger.info("[%s] Observer stopped before scan started", self.channel_id)
                return ExchangeResult(command=commands.scan_networks().text, outcome=ExchangeOutcome.STOPPED)
            result = await self._exchange(
                commands.scan_networks(),
                SCAN_GRAMMAR,
                deadline=self._timings.scan_timeout,
                expects_marker=True,
                on_result=functools.partial(self._upsert_scanned, cycle),
                stop_event=stop_event,
            )
        if stop_event is self._stop_event:
            self._last_scan = result
        logger.info(
            "[%s] Scan %s: %d networks added to observer list",
            self.channel_id,
            "complete" if not result.incomplete else f"ended ({result.outcome.value})",
            len(self._entities),
        )

        if not self._observing(cycle):
            logger.info("[%s] Observer stopped during scan", self.channel_id)
            return result

        async with self._lock:
            await asyncio.sleep(self._timings.post_scan_settle)
            self._transport.flush_input()
            await self._send(commands.start_sniffer_noscan(), settle=self._timings.sniffer_warmup)

        if not self._observing(cycle):
            return result

        self._set_state(SessionState.SNIFFER_ACTIVE)
        self._arm_timer(self._timings.poll_interval, initial_delay=0)
        return result

    def begin_observing(self) -> asyncio.Task:
        """Enter scanning now and run the rest of ``start_observing`` in the background.

        Raises:
            SessionStateError: If the session is not idle.
        """
        cycle, stop_event = self._enter_scanning()
        self._observe_task = asyncio.create_task(self._observe(cycle, stop_event), name=f"observe-{self.channel_id}")
        self._observe_task.add_done_callback(self._log_task_failure)
        return self._observe_task

    def _log_task_failure(self, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("[%s] Background observer start failed: %s", self.channel_id, exc)

    async def focus(self, display_index: int) -> None:
        """Narrow sniffing to one network and poll it on the fast timer.

        Raises:
            SessionStateError: If the sniffer is not running.
            KeyError: If no network has this index.
        """
        self._require_state("focus", SessionState.SNIFFER_ACTIVE)
        entity = self._get_entity(display_index)
        logger.info("[%s] Focusing on '%s' (index %d)", self.channel_id, entity.ssid, display_index)

        self._cancel_timer()
        self._set_state(SessionState.FOCUSED)
        self._focused_key = display_index

        async with self._lock:
            await self._send(commands.stop(), settle=self._timings.focus_settle)
            await self._send(commands.select_networks(display_index), settle=self._timings.command_settle)
            await self._send(commands.start_sniffer(), settle=0)

        if self._state is SessionState.FOCUSED and self._focused_key == display_index:
            self._arm_timer(self._timings.focus_poll_interval, initial_delay=self._timings.focus_first_poll_delay)

    async def unfocus(self) -> None:
        """Return from focus to sniffing every network. Accumulated clients are kept.

        Raises:
            SessionStateError: If not focused.
        """
        self._require_state("unfocus", SessionState.FOCUSED)
        self._cancel_timer()
        self._set_state(SessionState.SNIFFER_ACTIVE)
        self._focused_key = None

        async with self._lock:
            await self._send(commands.unselect_networks(), settle=self._timings.command_settle)
            await self._send(commands.start_sniffer_noscan(), settle=0)

        if self._state is SessionState.SNIFFER_ACTIVE:
            self._arm_timer(self._timings.poll_interval, initial_delay=self._timings.poll_interval)

    async def engage_station(self, display_index: int, station_mac: str, action: str = START_DEAUTH) -> None:
        """Target one station on one network and send an opaque action command.

        Polling pauses until ``disengage``.

        Raises:
            SessionStateError: If the sniffer is not running.
            KeyError: If no network has this index.
            ValueError: If the MAC or the action text is malformed.
        """
        self._require_state("engage a station", SessionState.SNIFFER_ACTIVE, SessionState.FOCUSED)
        self._get_entity(display_index)
        mac = normalize_mac(station_mac.strip())
        if mac is None:
            raise ValueError(f"Not a MAC address: {station_mac!r}")
        action_command = Command(action)

        self._cancel_timer()
        self._set_state(SessionState.ENGAGED)
        self._focused_key = display_index
        logger.info("[%s] Engaging %s on network %d with '%s'", self.channel_id, mac, display_index, action_command)

        settle = self._timings.command_settle
        async with self._lock:
            await self._send(commands.stop(), settle=settle)
            await self._send(commands.select_networks(display_index), settle=settle)
            await self._send(commands.select_stations(mac), settle=settle)
            await self._send(action_command, settle=0)

    async def disengage(self) -> None:
        """Stop the station action and resume sniffing every network.

        Raises:
            SessionStateError: If no station is engaged.
        """
        self._require_state("disengage", SessionState.ENGAGED)
        self._set_state(SessionState.SNIFFER_ACTIVE)
        self._focused_key = None

        async with self._lock:
            await self._send(commands.stop(), settle=self._timings.command_settle)
            await self._send(commands.start_sniffer_noscan(), settle=0)

        if self._state is SessionState.SNIFFER_ACTIVE:
            self._arm_timer(self._timings.poll_interval, initial_delay=self._timings.poll_interval)

    async def stop(self) -> None:
        """Stop everything and go idle.

        Timers are cancelled; an exchange already running finishes at its
        next read boundary. The network table is kept for browsing.
        """
        logger.info("[%s] Stopping session", self.channel_id)
        self._cancel_timer()
        self._stop_event.set()
        self._cycle += 1
        self._set_state(SessionState.IDLE)
        self._focused_key = None

        async with self._lock:
            await self._send(commands.stop(), settle=0)

    # -- one-shot exchanges --------------------------------------------------

    async def list_probes(self) -> ExchangeResult:
        """Fetch the module's probe list. Results are not stored."""
        async with self._lock:
            return await self._exchange(
                commands.list_probes(),
                PROBE_GRAMMAR,
                deadline=self._timings.listing_timeout,
                expects_marker=False,
            )

    async def list_hosts(self) -> ExchangeResult:
        """Fetch the module's IP/MAC host list. Results are not stored."""
        async with self._lock:
            return await self._exchange(
                commands.list_hosts(),
                HOST_GRAMMAR,
                deadline=self._timings.listing_timeout,
                expects_marker=False,
            )

    async def scan_network_list(self) -> ExchangeResult:
        """Run a plain network scan (with security info) without touching the table."""
        async with self._lock:
            result = await self._exchange(
                commands.scan_networks(),
                NETWORK_LIST_GRAMMAR,
                deadline=self._timings.scan_timeout,
                expects_marker=True,
            )
        del result.items[self._max_networks :]
        return result

    async def send_raw(self, text: str) -> bool:
        """Send an opaque command line to the module.

        Returns:
            True if the command was written.

        Raises:
            ValueError: If the text is blank or contains CR/LF.
        """
        command = Command(text)
        async with self._lock:
            return await self._send(command, settle=self._timings.command_settle)

    async def close(self) -> None:
        """Cancel timers and wait for background work to wind down.

        A closed session goes idle and never arms its poll timer again, so
        a scan that was still running cannot restart the sniffer.
        """
        self._closed = True
        self._stop_event.set()
        self._cycle += 1
        timer = self._timer_task
        self._cancel_timer()
        self._set_state(SessionState.IDLE)
        self._focused_key = None
        pending = [t for t in (timer, self._poll_task, self._observe_task) if t is not None and not t.done()]
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        self._cancel_timer()
