"""Main application entry point."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from auditdeck import __version__
from auditdeck.api.dependencies import app_state
from auditdeck.api.routes import router as api_router
from auditdeck.control.portal import PortalController, load_portal_backend
from auditdeck.control.registry import ChannelRegistry
from auditdeck.core.config import Settings, setup_logging
from auditdeck.core.models import HealthResponse
from auditdeck.serial.connection import HEALTH_ONLINE, SerialTransport

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: startup and shutdown."""
    settings = app_state.settings or Settings()
    app_state.settings = settings

    setup_logging(settings.log_level)
    logger.info(f"Starting auditdeck v{__version__}")

    registry = ChannelRegistry(
        settings.channel_configs(),
        transport_factory=lambda config: SerialTransport.from_config(config, settings.reconnect_delay),
        timings=settings.session_timings(),
        max_networks=settings.max_networks,
        line_buffer_size=settings.line_buffer_size,
    )
    app_state.registry = registry

    # An embedding application may set app_state.portal before startup;
    # otherwise AUDITDECK_PORTAL_BACKEND names the backend to load.
    if app_state.portal is None and settings.portal_backend:
        app_state.portal = PortalController(load_portal_backend(settings.portal_backend))
        logger.info(f"Portal backend {settings.portal_backend} loaded")

    # Bring every channel up at boot; the reconnect loop picks up modules
    # that are absent now (USB not enumerated, cable unplugged).
    transports = []
    for channel_id in registry.channel_ids():
        transport = registry.transport_for(channel_id)
        connected = await transport.connect()
        if connected:
            logger.info(f"Channel {channel_id} online on {transport.port}")
        else:
            logger.warning(f"Channel {channel_id} not available on {transport.port}, will retry in background")
        await transport.start_reconnect_loop()
        transports.append(transport)

    yield

    # Shutdown
    logger.info("Shutting down...")
    if app_state.portal is not None and app_state.portal.running:
        await app_state.portal.stop()
    for transport in transports:
        await transport.stop_reconnect_loop()
    await registry.shutdown()


app = FastAPI(
    title="auditdeck",
    description="Session engine and REST API for serial-attached WiFi auditing modules",
    version=__version__,
    lifespan=lifespan,
)

app.include_router(api_router)


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "name": "auditdeck",
        "version": __version__,
        "status": "running",
    }


@app.get("/health", response_model=HealthResponse)
async def health():
    """Health check endpoint."""
    registry = app_state.registry

    if registry is None:
        return HealthResponse(status="unhealthy", channels_online=0, channels_total=0, networks_count=0)

    rows = registry.summaries()
    online = sum(1 for row in rows if row.health == HEALTH_ONLINE)
    total = len(rows)
    networks = sum(row.networks for row in rows)

    if total and online == total:
        status = "healthy"
    elif online:
        status = "degraded"
    else:
        status = "unhealthy"

    return HealthResponse(
        status=status,
        channels_online=online,
        channels_total=total,
        networks_count=networks,
    )


def main():
    """Run the application (for CLI entry point)."""
    import uvicorn

    settings = Settings()
    setup_logging(settings.log_level)
    app_state.settings = settings

    uvicorn.run(app, host=settings.api_host, port=settings.api_port)


if __name__ == "__main__":
    main()
