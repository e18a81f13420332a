"""Channel registry: one lazily created session per configured channel."""

import logging
from collections.abc import Callable, Iterable

from auditdeck.control.session import Session
from auditdeck.core.models import ChannelConfig, ChannelSummary, SessionTimings
from auditdeck.protocol.constants import LINE_BUFFER_SIZE, MAX_NETWORKS
from auditdeck.serial.connection import HEALTH_OFFLINE, SerialTransport, Transport

logger = logging.getLogger(__name__)

TransportFactory = Callable[[ChannelConfig], Transport]


class ChannelRegistry:
    """Maps channel ids to sessions.

    Sessions (and their transports) are built on first use and live for
    the rest of the process. Every session keeps polling whether or not
    its channel is the one the operator is looking at.
    """

    def __init__(
        self,
        configs: Iterable[ChannelConfig],
        transport_factory: TransportFactory = SerialTransport.from_config,
        timings: SessionTimings | None = None,
        max_networks: int = MAX_NETWORKS,
        line_buffer_size: int = LINE_BUFFER_SIZE,
    ):
        self._configs: dict[str, ChannelConfig] = {}
        for config in configs:
            if config.channel_id in self._configs:
                raise ValueError(f"Duplicate channel id: {config.channel_id}")
            self._configs[config.channel_id] = config

        self._transport_factory = transport_factory
        self._timings = timings or SessionTimings()
        self._max_networks = max_networks
        self._line_buffer_size = line_buffer_size

        self._sessions: dict[str, Session] = {}
        self._transports: dict[str, Transport] = {}
        self._current: str | None = next(iter(self._configs), None)

    def channel_ids(self) -> list[str]:
        """Configured channel ids, in configuration order."""
        return list(self._configs)

    def config(self, channel_id: str) -> ChannelConfig:
        """Static description of a channel.

        Raises:
            KeyError: If the channel is not configured.
        """
        try:
            return self._configs[channel_id]
        except KeyError:
            raise KeyError(f"Unknown channel: {channel_id}") from None

    def session_for(self, channel_id: str) -> Session:
        """Return the channel's session, creating it on first use.

        Raises:
            KeyError: If the channel is not configured.
        """
        session = self._sessions.get(channel_id)
        if session is not None:
            return session

        config = self.config(channel_id)
        transport = self._transport_factory(config)
        session = Session(
            channel_id,
            transport,
            timings=self._timings,
            max_networks=self._max_networks,
            line_buffer_size=self._line_buffer_size,
        )
        self._transports[channel_id] = transport
        self._sessions[channel_id] = session
        logger.info("Created session for %s (%s on %s)", channel_id, config.kind.value, config.port)
        return session

    def transport_for(self, channel_id: str) -> Transport:
        """Transport owned by the channel's session."""
        self.session_for(channel_id)
        return self._transports[channel_id]

    def sessions(self) -> list[Session]:
        """Sessions created so far."""
        return list(self._sessions.values())

    @property
    def current(self) -> str | None:
        """Channel the operator has selected."""
        return self._current

    @current.setter
    def current(self, channel_id: str) -> None:
        self.config(channel_id)
        if channel_id != self._current:
            logger.info("Current channel: %s -> %s", self._current, channel_id)
        self._current = channel_id

    def summaries(self) -> list[ChannelSummary]:
        """One row per configured channel; sessions are not created by this."""
        rows = []
        for channel_id, config in self._configs.items():
            session = self._sessions.get(channel_id)
            rows.append(
                ChannelSummary(
                    channel_id=channel_id,
                    kind=config.kind,
                    port=config.port,
                    current=channel_id == self._current,
                    state=session.state if session else None,
                    health=session.health if session else HEALTH_OFFLINE,
                    networks=session.network_count if session else 0,
                )
            )
        return rows

    async def shutdown(self) -> None:
        """Close every session and disconnect its transport."""
        for channel_id, session in self._sessions.items():
            logger.info("Closing session for %s", channel_id)
            await session.close()
            transport = self._transports[channel_id]
            if transport.connected:
                await transport.disconnect()
