"""
webssh - WebSocket to SSH Gateway

Lets a browser terminal drive an interactive shell on an SSH host. A client
WebSocket and a network connection to the SSH host are registered under a
shared session id; once both have arrived they are bridged: client messages
drive password login and shell input, and shell output flows back as
messages.
"""

import logging

from webssh.bridge import SessionBridge, SessionState
from webssh.config import WebSSHConfig
from webssh.errors import (
    AuthenticationError,
    MalformedEnvelope,
    RemoteWriteError,
    SetupError,
    TransportError,
    UnsupportedMethod,
    WebSSHError,
)
from webssh.gateway import Gateway
from webssh.models import MessageEnvelope, MessageType, decode_envelope, encode_envelope
from webssh.registry import EndpointKind, SessionRegistry
from webssh.transport import MessageTransport, StarletteTransport, WebSocketTransport

logging.getLogger(__name__).addHandler(logging.NullHandler())

__all__ = [
    # Gateway
    "Gateway",
    "SessionBridge",
    "SessionState",
    "SessionRegistry",
    "EndpointKind",
    "WebSSHConfig",
    # Transports
    "MessageTransport",
    "StarletteTransport",
    "WebSocketTransport",
    # Models
    "MessageEnvelope",
    "MessageType",
    "decode_envelope",
    "encode_envelope",
    # Errors
    "WebSSHError",
    "TransportError",
    "MalformedEnvelope",
    "AuthenticationError",
    "UnsupportedMethod",
    "SetupError",
    "RemoteWriteError",
]

__version__ = "0.1.0"
