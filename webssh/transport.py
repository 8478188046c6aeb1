"""
Message transports.

A transport moves whole envelopes to and from the browser client. The
bridge only sees the ``MessageTransport`` interface; adapters exist for a
``websockets`` server connection and for a FastAPI/Starlette WebSocket.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

from fastapi.websockets import WebSocketDisconnect, WebSocketState
from websockets.exceptions import ConnectionClosed

if TYPE_CHECKING:
    from fastapi import WebSocket
    from websockets.asyncio.server import ServerConnection

from webssh.errors import TransportError
from webssh.models import MessageEnvelope, decode_envelope, encode_envelope

LOG = logging.getLogger(__name__)


class MessageTransport(ABC):
    """
    Ordered, reliable delivery of envelopes over one client connection.

    Sends are serialized so concurrent writers (the stdout and stderr
    relays) never interleave frames. ``close`` may be called any number of
    times.
    """

    def __init__(self) -> None:
        self.send_lock = asyncio.Lock()
        self.closed = asyncio.Event()

    @abstractmethod
    async def recv_frame(self) -> str | bytes: ...

    @abstractmethod
    async def send_frame(self, frame: str) -> None: ...

    @abstractmethod
    async def close_connection(self) -> None: ...

    async def read_envelope(self) -> MessageEnvelope:
        """Block until the next envelope arrives."""
        frame = await self.recv_frame()
        return decode_envelope(frame)

    async def write_envelope(self, envelope: MessageEnvelope) -> None:
        if self.closed.is_set():
            raise TransportError("transport is closed")
        async with self.send_lock:
            await self.send_frame(encode_envelope(envelope))

    async def close(self) -> None:
        if self.closed.is_set():
            return
        self.closed.set()
        try:
            await self.close_connection()
        except Exception:
            LOG.debug("Error closing transport", exc_info=True)

    async def wait_closed(self) -> None:
        await self.closed.wait()


class WebSocketTransport(MessageTransport):
    """Adapter for a ``websockets`` server connection."""

    def __init__(self, websocket: "ServerConnection") -> None:
        super().__init__()
        self.websocket = websocket

    async def recv_frame(self) -> str | bytes:
        try:
            return await self.websocket.recv()
        except ConnectionClosed as exc:
            raise TransportError("websocket closed") from exc

    async def send_frame(self, frame: str) -> None:
        try:
            await self.websocket.send(frame)
        except ConnectionClosed as exc:
            raise TransportError("websocket closed") from exc

    async def close_connection(self) -> None:
        await self.websocket.close()


class StarletteTransport(MessageTransport):
    """Adapter for an accepted FastAPI/Starlette WebSocket."""

    def __init__(self, websocket: "WebSocket") -> None:
        super().__init__()
        self.websocket = websocket

    async def recv_frame(self) -> str | bytes:
        try:
            message = await self.websocket.receive()
        except RuntimeError as exc:
            raise TransportError("websocket is not connected") from exc

        if message["type"] == "websocket.disconnect":
            raise TransportError(f"websocket disconnected ({message.get('code')})")
        if message.get("text") is not None:
            return message["text"]
        if message.get("bytes") is not None:
            return message["bytes"]
        raise TransportError(f"unexpected ASGI message {message['type']}")

    async def send_frame(self, frame: str) -> None:
        try:
            await self.websocket.send_text(frame)
        except (WebSocketDisconnect, RuntimeError, OSError) as exc:
            raise TransportError("websocket closed") from exc

    async def close_connection(self) -> None:
        if self.websocket.application_state == WebSocketState.DISCONNECTED:
            return
        if self.websocket.client_state == WebSocketState.DISCONNECTED:
            return
        await self.websocket.close()
