"""
WebSSH Server

Standalone WebSocket listener for use outside of FastAPI. Clients connect
to ``/webssh/<session_id>?host=<ssh host>&port=<ssh port>``.

For FastAPI integration, use the router module instead.
"""

import argparse
import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING
from urllib.parse import parse_qs, urlsplit

from websockets.asyncio.server import serve

if TYPE_CHECKING:
    from websockets.asyncio.server import ServerConnection

from webssh.gateway import Gateway
from webssh.transport import WebSocketTransport

LOG = logging.getLogger(__name__)

PATH_PREFIX = "/webssh/"


@dataclass
class WebSSHServer:
    """
    WebSocket server feeding client connections into a gateway.

    Usage:
        server = WebSSHServer(Gateway())
        await server.serve("0.0.0.0", 8080)
    """

    gateway: Gateway = field(default_factory=Gateway)
    on_connect: Callable[[str], Awaitable[None]] | None = field(default=None, kw_only=True)
    on_disconnect: Callable[[str], Awaitable[None]] | None = field(default=None, kw_only=True)

    async def serve(self, host: str, port: int) -> None:
        """Accept connections until cancelled."""
        async with serve(self.handler, host, port) as server:
            LOG.info("webssh listening on %s:%d", host, port)
            try:
                await server.serve_forever()
            finally:
                await self.gateway.shutdown()

    async def handler(self, websocket: "ServerConnection") -> None:
        path = websocket.request.path if websocket.request else ""
        url = urlsplit(path)
        if not url.path.startswith(PATH_PREFIX) or len(url.path) == len(PATH_PREFIX):
            LOG.warning("Rejecting connection to %s", url.path)
            await websocket.close(code=1008, reason="unknown path")
            return

        session_id = url.path[len(PATH_PREFIX) :]
        query = parse_qs(url.query)
        ssh_host = query.get("host", [None])[0]
        try:
            ssh_port = int(query["port"][0]) if "port" in query else None
        except ValueError:
            LOG.warning("Rejecting connection with invalid SSH port %r", query["port"][0])
            await websocket.close(code=1008, reason="invalid port")
            return

        await self.handle_connection(session_id, websocket, ssh_host, ssh_port)

    async def handle_connection(
        self,
        session_id: str,
        websocket: "ServerConnection",
        ssh_host: str | None = None,
        ssh_port: int | None = None,
    ) -> None:
        """
        Handle a WebSocket connection lifecycle.

        This method blocks until the session is torn down.
        """
        transport = WebSocketTransport(websocket)
        try:
            if self.on_connect:
                await self.on_connect(session_id)

            self.gateway.register_transport(session_id, transport)
            if ssh_host:
                await self.gateway.dial_ssh_host(session_id, ssh_host, ssh_port)

            await transport.wait_closed()

        except OSError:
            LOG.exception("Could not reach SSH host %s for session %s", ssh_host, session_id)
            await transport.close()

        finally:
            if self.on_disconnect:
                await self.on_disconnect(session_id)


def main() -> None:
    parser = argparse.ArgumentParser(description="Bridge browser WebSockets to SSH hosts.")
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=8080)
    parser.add_argument("--log-level", default="INFO")
    args = parser.parse_args()

    logging.basicConfig(level=args.log_level, format="%(asctime)s %(name)s %(levelname)s %(message)s")
    asyncio.run(WebSSHServer().serve(args.host, args.port))


if __name__ == "__main__":
    main()
