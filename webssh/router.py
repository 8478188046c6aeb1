"""
FastAPI Router for the WebSSH WebSocket Endpoint

Browsers connect to ``/webssh/{session_id}``. When ``host`` is given in the
query string the gateway dials the SSH host itself; otherwise the network
half of the session is expected to be registered by other means.
"""

import logging

from fastapi import APIRouter, FastAPI, WebSocket

from webssh.config import WebSSHConfig
from webssh.gateway import Gateway
from webssh.transport import StarletteTransport

LOG = logging.getLogger(__name__)

router = APIRouter(prefix="/webssh", tags=["webssh"])


def get_gateway(app: FastAPI) -> Gateway:
    """Return the app's gateway, creating it from ``webssh_config`` on first use."""
    gateway = app.extra.get("webssh_gateway")
    if gateway is None:
        config = app.extra.get("webssh_config")
        if config is None:
            config = WebSSHConfig()
        elif not isinstance(config, WebSSHConfig):
            config = WebSSHConfig.model_validate(config)
        gateway = Gateway(config)
        app.extra["webssh_gateway"] = gateway
    return gateway


@router.websocket("/{session_id}")
async def webssh_websocket(
    websocket: WebSocket,
    session_id: str,
    host: str | None = None,
    port: int | None = None,
) -> None:
    """
    WebSocket endpoint for browser terminals.

    The handler stays alive until the session's transport is closed, which
    happens when the bridge tears the session down.
    """
    await websocket.accept()
    LOG.info("New webssh connection: %s", session_id)

    gateway = get_gateway(websocket.app)
    transport = StarletteTransport(websocket)
    gateway.register_transport(session_id, transport)

    if host:
        try:
            await gateway.dial_ssh_host(session_id, host, port)
        except OSError:
            LOG.exception("Could not reach SSH host %s for session %s", host, session_id)
            await transport.close()
            return

    await transport.wait_closed()
    LOG.info("Webssh connection closed: %s", session_id)
