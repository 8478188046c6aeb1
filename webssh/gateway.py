"""
WebSSH Gateway

Process-wide entry point. The listener registers the two halves of each
session here under a shared session id; once both are known the gateway
starts exactly one bridge task for the session.
"""

import asyncio
import contextlib
import logging
import socket
from dataclasses import dataclass, field

from webssh.bridge import SessionBridge
from webssh.config import WebSSHConfig
from webssh.errors import WebSSHError
from webssh.registry import EndpointKind, SessionRegistry
from webssh.ssh import Connector, open_shell_session
from webssh.transport import MessageTransport

LOG = logging.getLogger(__name__)


@dataclass
class Gateway:
    """
    Pair client transports with SSH host connections and bridge them.

    Usage:
        gateway = Gateway()
        gateway.register_transport(session_id, WebSocketTransport(websocket))
        gateway.register_network(session_id, sock)

    Registration must happen on the event loop the bridges should run on.
    """

    config: WebSSHConfig = field(default_factory=WebSSHConfig)
    logger: logging.Logger = field(default=LOG, kw_only=True)
    connector: Connector = field(default=open_shell_session, kw_only=True)
    registry: SessionRegistry = field(init=False)
    bridges: dict[str, asyncio.Task[None]] = field(default_factory=dict, init=False)
    closing: set[asyncio.Task[None]] = field(default_factory=set, init=False, repr=False)

    def __post_init__(self) -> None:
        self.registry = SessionRegistry(logger=self.logger)

    @property
    def active_sessions(self) -> list[str]:
        """Session ids whose bridge is still running."""
        return [session_id for session_id, task in self.bridges.items() if not task.done()]

    def register_transport(
        self,
        session_id: str,
        transport: MessageTransport,
    ) -> asyncio.Task[None] | None:
        """
        Register the client side of ``session_id``.

        Returns the bridge task if this call completed the pair.
        """
        self.logger.debug("(%s) add websocket", session_id)
        return self.register(session_id, EndpointKind.TRANSPORT, transport)

    def register_network(
        self,
        session_id: str,
        sock: socket.socket,
    ) -> asyncio.Task[None] | None:
        """
        Register the connected socket to the SSH host for ``session_id``.

        Returns the bridge task if this call completed the pair.
        """
        self.logger.debug("(%s) add ssh conn", session_id)
        return self.register(session_id, EndpointKind.NETWORK, sock)

    async def dial_ssh_host(
        self,
        session_id: str,
        host: str,
        port: int | None = None,
    ) -> asyncio.Task[None] | None:
        """
        Connect to an SSH host and register the socket for ``session_id``.

        Raises:
            OSError: If the host cannot be reached
        """
        if port is None:
            port = self.config.default_ssh_port

        self.logger.debug("(%s) dialing %s:%d", session_id, host, port)
        sock = await asyncio.to_thread(
            socket.create_connection,
            (host, port),
            self.config.connect_timeout_seconds,
        )
        sock.settimeout(None)
        return self.register_network(session_id, sock)

    def register(
        self,
        session_id: str,
        kind: EndpointKind,
        endpoint: MessageTransport | socket.socket,
    ) -> asyncio.Task[None] | None:
        pair = self.registry.register(session_id, kind, endpoint)
        if pair is None:
            if self.registry.pairs[session_id].get(kind) is not endpoint:
                self.discard(session_id, endpoint)
            return None

        self.logger.info("(%s) ready", session_id)
        task = asyncio.create_task(
            self.serve(session_id, pair.transport, pair.network),
            name=f"webssh-{session_id}",
        )
        self.bridges[session_id] = task
        return task

    def discard(self, session_id: str, endpoint: MessageTransport | socket.socket) -> None:
        """Close an endpoint that was refused by the registry."""
        self.logger.debug("(%s) closing refused %s", session_id, type(endpoint).__name__)
        if isinstance(endpoint, MessageTransport):
            task = asyncio.create_task(endpoint.close())
            self.closing.add(task)
            task.add_done_callback(self.closing.discard)
        else:
            endpoint.close()

    async def serve(
        self,
        session_id: str,
        transport: MessageTransport | None,
        network: socket.socket | None,
    ) -> None:
        assert transport is not None and network is not None
        bridge = SessionBridge(
            session_id,
            transport,
            network,
            self.config,
            connector=self.connector,
            logger=self.logger,
        )
        try:
            await bridge.run()
        except WebSSHError as exc:
            self.logger.info("(%s) server exit %s", session_id, exc)
        except asyncio.CancelledError:
            self.logger.info("(%s) server cancelled", session_id)
            raise
        except Exception:
            self.logger.exception("(%s) server exit with unexpected error", session_id)
        finally:
            self.registry.release(session_id)
            self.bridges.pop(session_id, None)

    async def shutdown(self) -> None:
        """Cancel every running bridge and wait for their teardown."""
        self.logger.info("Shutting down webssh gateway (%d sessions)", len(self.active_sessions))
        tasks = list(self.bridges.values())
        for task in tasks:
            task.cancel()
        for task in tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task
