"""FastAPI dependency injection for shared application state."""

from auditdeck.control.portal import PortalController
from auditdeck.control.registry import ChannelRegistry
from auditdeck.core.config import Settings


class AppState:
    """Holds shared application state instances.

    Created during app startup and accessed via FastAPI dependencies.
    ``portal`` stays None unless a portal backend has been wired in.
    """

    def __init__(self) -> None:
        self.settings: Settings | None = None
        self.registry: ChannelRegistry | None = None
        self.portal: PortalController | None = None


# Global app state singleton
app_state = AppState()


def get_registry() -> ChannelRegistry:
    """Get the channel registry instance."""
    assert app_state.registry is not None, "App not initialized"
    return app_state.registry


def get_portal() -> PortalController | None:
    """Get the portal controller, if a backend is configured."""
    return app_state.portal


def get_settings() -> Settings:
    """Get the settings instance."""
    assert app_state.settings is not None, "App not initialized"
    return app_state.settings
