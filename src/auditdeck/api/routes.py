"""API route handlers."""

from fastapi import APIRouter, Depends, HTTPException

from auditdeck.api.dependencies import get_portal, get_registry
from auditdeck.control.portal import PortalController
from auditdeck.control.registry import ChannelRegistry
from auditdeck.control.session import Session
from auditdeck.core.errors import SessionStateError
from auditdeck.core.models import (
    ChannelSummary,
    CommandRequest,
    CommandResponse,
    CurrentChannelRequest,
    EngageRequest,
    ErrorResponse,
    HostModel,
    ListingResponse,
    NetworkSnapshot,
    PortalStartRequest,
    PortalStats,
    ProbeModel,
    SessionSnapshot,
    TransitionResponse,
)

router = APIRouter(prefix="/api")

_ERRORS = {
    404: {"model": ErrorResponse},
    409: {"model": ErrorResponse},
}


def get_session(channel_id: str, registry: ChannelRegistry = Depends(get_registry)) -> Session:
    """Resolve the path's channel id to its session."""
    try:
        return registry.session_for(channel_id)
    except KeyError:
        raise HTTPException(status_code=404, detail=f"Channel not found: {channel_id}") from None


def require_portal(portal: PortalController | None = Depends(get_portal)) -> PortalController:
    if portal is None:
        raise HTTPException(status_code=503, detail="No portal backend configured")
    return portal


def _transition(session: Session) -> TransitionResponse:
    return TransitionResponse(
        channel_id=session.channel_id,
        state=session.state,
        focused_index=session.focused_key,
    )


# ============================================================================
# Channels
# ============================================================================


@router.get("/channels", response_model=list[ChannelSummary])
async def list_channels(registry: ChannelRegistry = Depends(get_registry)):
    """List every configured channel with its session state."""
    return registry.summaries()


@router.put("/channels/current", response_model=ChannelSummary, responses={404: {"model": ErrorResponse}})
async def set_current_channel(
    request: CurrentChannelRequest,
    registry: ChannelRegistry = Depends(get_registry),
):
    """Select the channel the operator is looking at. Polling is unaffected."""
    try:
        registry.current = request.channel_id
    except KeyError:
        raise HTTPException(status_code=404, detail=f"Channel not found: {request.channel_id}") from None

    return next(row for row in registry.summaries() if row.current)


@router.get("/channels/{channel_id}", response_model=SessionSnapshot, responses={404: {"model": ErrorResponse}})
async def get_channel(session: Session = Depends(get_session)):
    """Snapshot of one channel's session and its networks."""
    return session.snapshot()


@router.get(
    "/channels/{channel_id}/networks/{display_index}",
    response_model=NetworkSnapshot,
    responses={404: {"model": ErrorResponse}},
)
async def get_network(display_index: int, session: Session = Depends(get_session)):
    """One discovered network with its clients."""
    try:
        return session.network(display_index)
    except KeyError as e:
        raise HTTPException(status_code=404, detail=str(e.args[0])) from None


@router.post("/channels/{channel_id}/observe", status_code=202, response_model=TransitionResponse, responses=_ERRORS)
async def start_observing(session: Session = Depends(get_session)):
    """Scan for networks, then sniff and poll in the background."""
    try:
        session.begin_observing()
    except SessionStateError as e:
        raise HTTPException(status_code=409, detail=str(e)) from None
    return _transition(session)


@router.post("/channels/{channel_id}/stop", response_model=TransitionResponse, responses={404: {"model": ErrorResponse}})
async def stop_channel(session: Session = Depends(get_session)):
    """Stop scanning, sniffing or engaging. Networks are kept."""
    await session.stop()
    return _transition(session)


@router.post("/channels/{channel_id}/focus/{display_index}", response_model=TransitionResponse, responses=_ERRORS)
async def focus_network(display_index: int, session: Session = Depends(get_session)):
    """Narrow the sniffer to one network."""
    try:
        await session.focus(display_index)
    except SessionStateError as e:
        raise HTTPException(status_code=409, detail=str(e)) from None
    except KeyError as e:
        raise HTTPException(status_code=404, detail=str(e.args[0])) from None
    return _transition(session)


@router.delete("/channels/{channel_id}/focus", response_model=TransitionResponse, responses=_ERRORS)
async def unfocus_network(session: Session = Depends(get_session)):
    """Return to sniffing every network."""
    try:
        await session.unfocus()
    except SessionStateError as e:
        raise HTTPException(status_code=409, detail=str(e)) from None
    return _transition(session)


@router.post(
    "/channels/{channel_id}/engage",
    response_model=TransitionResponse,
    responses={400: {"model": ErrorResponse}, **_ERRORS},
)
async def engage_station(request: EngageRequest, session: Session = Depends(get_session)):
    """Target one station and send the requested action command."""
    try:
        await session.engage_station(request.display_index, request.station, request.action)
    except SessionStateError as e:
        raise HTTPException(status_code=409, detail=str(e)) from None
    except KeyError as e:
        raise HTTPException(status_code=404, detail=str(e.args[0])) from None
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from None
    return _transition(session)


@router.delete("/channels/{channel_id}/engage", response_model=TransitionResponse, responses=_ERRORS)
async def disengage_station(session: Session = Depends(get_session)):
    """Stop the station action and resume sniffing."""
    try:
        await session.disengage()
    except SessionStateError as e:
        raise HTTPException(status_code=409, detail=str(e)) from None
    return _transition(session)


@router.get("/channels/{channel_id}/probes", response_model=ListingResponse, responses={404: {"model": ErrorResponse}})
async def list_probes(session: Session = Depends(get_session)):
    """Fetch the probe SSIDs collected by the module."""
    result = await session.list_probes()
    return ListingResponse(
        command=result.command,
        outcome=result.outcome,
        incomplete=result.incomplete,
        probes=[ProbeModel(index=p.index, ssid=p.ssid) for p in result.items],
    )


@router.get("/channels/{channel_id}/hosts", response_model=ListingResponse, responses={404: {"model": ErrorResponse}})
async def list_hosts(session: Session = Depends(get_session)):
    """Fetch the IP/MAC pairs collected by the module."""
    result = await session.list_hosts()
    return ListingResponse(
        command=result.command,
        outcome=result.outcome,
        incomplete=result.incomplete,
        hosts=[HostModel(ip=h.ip, mac=h.mac) for h in result.items],
    )


@router.post(
    "/channels/{channel_id}/command",
    response_model=CommandResponse,
    responses={
        400: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        503: {"model": ErrorResponse},
    },
)
async def send_command(request: CommandRequest, session: Session = Depends(get_session)):
    """Send an opaque command line to the module."""
    try:
        success = await session.send_raw(request.command)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from None

    if not success:
        raise HTTPException(status_code=503, detail=session.transport_error or "Channel not available")

    return CommandResponse(success=True, channel_id=session.channel_id, command=request.command.strip())


# ============================================================================
# Portal
# ============================================================================


@router.get("/portal", response_model=PortalStats, responses={503: {"model": ErrorResponse}})
async def get_portal_stats(portal: PortalController = Depends(require_portal)):
    """Captive-portal counters."""
    return portal.stats


@router.post("/portal/start", response_model=PortalStats, responses={503: {"model": ErrorResponse}})
async def start_portal(request: PortalStartRequest, portal: PortalController = Depends(require_portal)):
    """Start the captive portal. A no-op if it is already running."""
    await portal.start(request.ssid)
    return portal.stats


@router.post("/portal/stop", response_model=PortalStats, responses={503: {"model": ErrorResponse}})
async def stop_portal(portal: PortalController = Depends(require_portal)):
    """Stop the captive portal. A no-op if it is not running."""
    await portal.stop()
    return portal.stats
